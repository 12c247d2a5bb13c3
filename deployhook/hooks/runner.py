"""Detached command execution."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import IO

from deployhook.errors import InvalidCommandError, SinkOpenError, SpawnError
from deployhook.hooks.models import ResolvedCommand
from deployhook.utils.logging import get_logger

log = get_logger(__name__)

_DEFAULT_SINK_TIMEOUT = 10.0


def _open_sink(path: Path) -> IO[bytes]:
    path.parent.mkdir(parents=True, exist_ok=True)
    return open(path, "ab")


def _close_late_sink(opening: asyncio.Future) -> None:
    if opening.cancelled() or opening.exception() is not None:
        return
    opening.result().close()
    log.debug("late_sink_closed")


class CommandRunner:
    """Launches resolved commands in their own session and does not wait for them.

    The returned process handle is for optional supervision only; exit codes
    are not part of the result. Output goes to an append-mode log file when
    one is given and is discarded otherwise. Stdin is always ``/dev/null``.
    """

    def __init__(self, sink_timeout: float = _DEFAULT_SINK_TIMEOUT) -> None:
        self._sink_timeout = sink_timeout

    async def run(
        self,
        command: ResolvedCommand,
        log_path: str | Path | None = None,
        *,
        sink_timeout: float | None = None,
    ) -> asyncio.subprocess.Process:
        if not command.executable:
            raise InvalidCommandError("Command has no executable")

        sink: IO[bytes] | None = None
        if log_path is not None:
            sink = await self._open(Path(log_path), sink_timeout or self._sink_timeout)

        out = sink if sink is not None else asyncio.subprocess.DEVNULL
        try:
            proc = await asyncio.create_subprocess_exec(
                command.executable,
                *command.args,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=out,
                stderr=out,
                start_new_session=True,
            )
        except OSError as e:
            raise SpawnError(command.executable, e.strerror or str(e)) from e
        finally:
            # The child holds its own descriptor from here on
            if sink is not None:
                sink.close()

        log.info(
            "command_launched",
            command=str(command),
            pid=proc.pid,
            log_path=str(log_path) if log_path is not None else None,
        )
        return proc

    async def _open(self, path: Path, timeout: float) -> IO[bytes]:
        opening = asyncio.ensure_future(asyncio.to_thread(_open_sink, path))
        try:
            return await asyncio.wait_for(asyncio.shield(opening), timeout=timeout)
        except asyncio.TimeoutError as e:
            # The thread cannot be interrupted; close the file if it opens later
            opening.add_done_callback(_close_late_sink)
            raise SinkOpenError(str(path), f"timed out after {timeout}s") from e
        except OSError as e:
            raise SinkOpenError(str(path), e.strerror or str(e)) from e
