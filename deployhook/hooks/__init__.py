"""Webhook filtering, normalization and command dispatch."""

from deployhook.hooks.handler import Hook, create_hook_handler
from deployhook.hooks.models import EventKind, HookRequest, ResolvedCommand, WebhookEvent
from deployhook.hooks.normalizer import normalize

__all__ = [
    "EventKind",
    "Hook",
    "HookRequest",
    "ResolvedCommand",
    "WebhookEvent",
    "create_hook_handler",
    "normalize",
]
