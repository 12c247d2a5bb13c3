"""structlog configuration for the hook server.

Everything goes through stdlib logging so that aiohttp's own loggers share
the same handler and renderer. Hook tokens travel in query strings, form
bodies and the ``X-Gitlab-Token`` header, so a redaction step runs before
any renderer sees the event.
"""

from __future__ import annotations

import logging
import re
import sys

import structlog

REDACTED = "***REDACTED***"

# Keys whose values are never logged, whatever they look like
_SECRET_KEYS = frozenset({"token", "secret", "password", "authorization", "x-gitlab-token"})

# `token=abc` in a URL, `"secret": "abc"` in a dumped body, and similar
_INLINE_SECRET = re.compile(
    r"(token|key|secret|password|authorization)[\"']?\s*[:=]\s*[\"']?[\w\-\.]+",
    re.IGNORECASE,
)


def redact_secrets(
    _logger: structlog.types.WrappedLogger,
    _method: str,
    event_dict: structlog.types.EventDict,
) -> structlog.types.EventDict:
    for key, value in list(event_dict.items()):
        if value is None:
            continue
        if key.lower() in _SECRET_KEYS:
            event_dict[key] = REDACTED
        elif isinstance(value, str) and _INLINE_SECRET.search(value):
            event_dict[key] = _INLINE_SECRET.sub(rf"\1={REDACTED}", value)
    return event_dict


def _renderer(json_output: bool) -> structlog.types.Processor:
    if json_output:
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer()


def setup_logging(level: str = "INFO", json_output: bool = False) -> None:
    """Route structlog through a single stderr handler on the root logger."""
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            redact_secrets,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            _renderer(json_output),
        ],
    )
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(numeric_level)

    # One access line per webhook is noise next to hook_request_* events
    logging.getLogger("aiohttp.access").setLevel(max(numeric_level, logging.WARNING))


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
