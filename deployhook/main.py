"""deployhook entry point: load config, serve hooks until signalled."""

from __future__ import annotations

import asyncio
import signal
import sys

import click

from deployhook import __version__
from deployhook.config import Settings, load_settings
from deployhook.errors import ConfigurationError
from deployhook.server import HookServer
from deployhook.utils.logging import get_logger, setup_logging

log = get_logger(__name__)


async def run(settings: Settings) -> None:
    server = HookServer(settings)

    loop = asyncio.get_running_loop()
    stop_event = asyncio.Event()

    def _signal_handler() -> None:
        log.info("shutdown_signal")
        stop_event.set()

    if sys.platform != "win32":
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, _signal_handler)

    log.info("deployhook_starting", version=__version__, hooks=len(settings.hooks))
    await server.start()

    try:
        if sys.platform == "win32":
            while not stop_event.is_set():
                await asyncio.sleep(1)
        else:
            await stop_event.wait()
    except KeyboardInterrupt:
        pass
    finally:
        await server.stop()


@click.command()
@click.option("--config", "config_path", default=None, help="Path to config YAML file")
@click.option("--log-level", default=None, help="Log level (DEBUG, INFO, WARNING, ERROR)")
@click.option("--port", type=int, default=None, help="Override the listening port")
def cli(config_path: str | None, log_level: str | None, port: int | None) -> None:
    """Run the webhook receiver."""
    settings = load_settings(config_path)
    if log_level:
        settings.log_level = log_level
    if port is not None:
        settings.server.port = port
    setup_logging(level=settings.log_level, json_output=settings.log_json)
    try:
        asyncio.run(run(settings))
    except ConfigurationError as e:
        raise click.ClickException(str(e)) from e


if __name__ == "__main__":
    cli()
