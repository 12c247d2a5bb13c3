"""Webhook HTTP server using aiohttp."""

from __future__ import annotations

from aiohttp import web

from deployhook.config import Settings
from deployhook.hooks.handler import Hook, build_hook_request, respond
from deployhook.hooks.runner import CommandRunner
from deployhook.utils.logging import get_logger

log = get_logger(__name__)


class HookServer:
    """Serves every configured hook; hooks sharing a route are tried in order."""

    def __init__(self, settings: Settings, runner: CommandRunner | None = None) -> None:
        self._settings = settings
        self._config = settings.server
        self._routes: dict[str, list[Hook]] = {}
        for hook_config in settings.hooks:
            hook = Hook(hook_config, runner)
            self._routes.setdefault(hook.route, []).append(hook)
        self._runner: web.AppRunner | None = None

    @property
    def routes(self) -> dict[str, list[Hook]]:
        return self._routes

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        if not self._routes:
            log.warning("hook_server_no_hooks", msg="No hooks configured; every request will get 404.")
        app = self._build_app()
        self._runner = web.AppRunner(app)
        await self._runner.setup()
        site = web.TCPSite(self._runner, self._config.bind, self._config.port)
        await site.start()
        log.info(
            "hook_server_started",
            bind=self._config.bind,
            port=self._config.port,
            routes=sorted(self._routes),
        )

    async def stop(self) -> None:
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None
        log.info("hook_server_stopped")

    # ------------------------------------------------------------------
    # App construction
    # ------------------------------------------------------------------

    def _build_app(self) -> web.Application:
        app = web.Application()
        for path in self._routes:
            app.router.add_post(path, self._handle_webhook)
        return app

    # ------------------------------------------------------------------
    # Request handling
    # ------------------------------------------------------------------

    async def _handle_webhook(self, request: web.Request) -> web.Response:
        hooks = self._routes.get(request.match_info.route.resource.canonical, [])
        if not hooks:
            return web.Response(status=404, text="Not found")

        hook_request = await build_hook_request(request, trust_proxy=self._config.trust_proxy)
        if isinstance(hook_request, web.Response):
            return hook_request

        for hook in hooks:
            status = await hook.handle(hook_request)
            if status is not None:
                return respond(status)

        return respond(None)
