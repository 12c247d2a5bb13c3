"""Assemble filters, normalization, templating and the runner into one hook."""

from __future__ import annotations

import json
from typing import Any, Awaitable, Callable, Mapping

from aiohttp import web

from deployhook.config import HookConfig
from deployhook.errors import HookError
from deployhook.hooks.filters import FilterChain, build_filter_chain
from deployhook.hooks.models import HookRequest
from deployhook.hooks.runner import CommandRunner
from deployhook.hooks.template import render_path, resolve
from deployhook.utils.logging import get_logger

log = get_logger(__name__)

OK = 200
DISPATCH_FAILED = 500


class Hook:
    """One configured webhook: filter, normalize, launch.

    ``handle`` returns the response status, or None when the request is not
    for this hook and the next handler on the route should try it.
    """

    def __init__(self, config: HookConfig, runner: CommandRunner | None = None) -> None:
        self.config = config
        self.chain: FilterChain = build_filter_chain(config)
        self.runner = runner if runner is not None else CommandRunner(sink_timeout=config.sink_timeout)

    @property
    def route(self) -> str:
        return self.config.path

    async def handle(self, request: HookRequest) -> int | None:
        rejection = self.chain.evaluate(request)
        if rejection is not None:
            log.info(
                "hook_request_rejected",
                route=self.route,
                filter=rejection.filter,
                remote=request.remote,
                strict=self.config.strict,
            )
            return rejection.status if self.config.strict else None

        if not isinstance(request.body, Mapping):
            log.info("hook_request_without_body", route=self.route, remote=request.remote)
            return None

        event = request.event
        log.info(
            "hook_request_accepted",
            route=self.route,
            kind=event.kind.value,
            push_event=event.event,
            ref=event.ref,
            remote=request.remote,
        )

        if not self.config.exec:
            return OK

        try:
            command = resolve(self.config.exec, event)
            log_path = render_path(self.config.exec_log, event) if self.config.exec_log else None
            await self.runner.run(command, log_path)
        except HookError as e:
            log.error("hook_dispatch_failed", route=self.route, error=str(e))
            return DISPATCH_FAILED
        except Exception:
            log.exception("hook_dispatch_error", route=self.route)
            return DISPATCH_FAILED

        return OK


def create_hook_handler(
    config: HookConfig,
    runner: CommandRunner | None = None,
    *,
    trust_proxy: bool = False,
) -> Callable[[web.Request], Awaitable[web.Response]]:
    """aiohttp handler for a single hook; a pass-through answers 404."""
    hook = Hook(config, runner)

    async def handler(request: web.Request) -> web.Response:
        hook_request = await build_hook_request(request, trust_proxy=trust_proxy)
        if isinstance(hook_request, web.Response):
            return hook_request
        status = await hook.handle(hook_request)
        return respond(status)

    return handler


def respond(status: int | None) -> web.Response:
    if status is None:
        return web.Response(status=404, text="Not found")
    return web.Response(status=status, text=_REASONS.get(status, ""))


_REASONS: dict[int, str] = {
    200: "OK",
    403: "Forbidden",
    404: "Not found",
    500: "Command failed",
}


# ---------------------------------------------------------------------------
# aiohttp boundary
# ---------------------------------------------------------------------------

_FORM_TYPES = ("application/x-www-form-urlencoded", "multipart/form-data")


async def read_body(request: web.Request) -> Any:
    """Decode a JSON or form-encoded body. Raises ValueError on bad JSON."""
    if not request.can_read_body:
        return {}
    if request.content_type in _FORM_TYPES:
        form = await request.post()
        return {k: v for k, v in form.items() if isinstance(v, str)}
    text = await request.text()
    if not text.strip():
        return {}
    return json.loads(text)


def remote_address(request: web.Request, trust_proxy: bool = False) -> str | None:
    if trust_proxy:
        forwarded = request.headers.get("X-Forwarded-For", "")
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    return request.remote


async def build_hook_request(
    request: web.Request, *, trust_proxy: bool = False
) -> HookRequest | web.Response:
    """Translate an aiohttp request, or answer 400 for an unreadable body."""
    try:
        body = await read_body(request)
    except ValueError:
        return web.Response(status=400, text="Invalid JSON")

    # Route params win over body fields, body fields over the query string
    params: dict[str, Any] = dict(request.query)
    if isinstance(body, Mapping):
        params.update(body)
    params.update(request.match_info)

    return HookRequest(
        body=body,
        remote=remote_address(request, trust_proxy),
        params=params,
        headers=request.headers,
    )
