"""Webhook event and request models."""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from enum import Enum
from functools import cached_property
from typing import Any, Mapping


class EventKind(str, Enum):
    PUSH = "push"
    ISSUE = "issue"
    MERGE_REQUEST = "merge_request"
    UNKNOWN = "unknown"


class PushAction(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class PushEntity(str, Enum):
    TAG = "tag"
    BRANCH = "branch"
    UNKNOWN = "unknown"


@dataclass
class WebhookEvent:
    """Unified view over push, issue and merge-request payloads.

    ``payload`` always holds the raw body so that templates can reach
    fields the normalized shape does not carry.
    """

    kind: EventKind
    payload: Any = None
    object: Any = None
    object_kind: str | None = None
    state: str | None = None
    user_id: Any = None

    # push only
    action: PushAction | None = None
    entity: PushEntity | None = None
    event: str | None = None
    branch: str | None = None
    tag: str | None = None
    ref: str | None = None
    treeish: str | None = None

    def namespace(self) -> dict[str, Any]:
        """Normalized fields that apply to this event, enums flattened.

        Fields left unset (None) are omitted so template lookups fall
        through to the raw payload.
        """
        result: dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if f.name == "payload" or value is None:
                continue
            result[f.name] = value.value if isinstance(value, Enum) else value
        return result


@dataclass(frozen=True)
class ResolvedCommand:
    executable: str
    args: list[str] = field(default_factory=list)

    @property
    def argv(self) -> list[str]:
        return [self.executable, *self.args]

    def __str__(self) -> str:
        return " ".join(self.argv)


@dataclass
class HookRequest:
    """What the HTTP boundary hands to a hook for one inbound call."""

    body: Any
    remote: str | None = None
    params: Mapping[str, Any] = field(default_factory=dict)
    headers: Mapping[str, str] = field(default_factory=dict)

    def param(self, name: str) -> Any:
        return self.params.get(name)

    @cached_property
    def event(self) -> WebhookEvent:
        from deployhook.hooks.normalizer import normalize

        return normalize(self.body)
