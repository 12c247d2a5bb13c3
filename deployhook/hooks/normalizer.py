"""Normalize push, issue and merge-request payloads into a WebhookEvent."""

from __future__ import annotations

from typing import Any, Mapping

from deployhook.hooks.models import EventKind, PushAction, PushEntity, WebhookEvent

_OBJECT_KINDS = {"issue": EventKind.ISSUE, "merge_request": EventKind.MERGE_REQUEST}


def is_empty_commit(value: Any) -> bool:
    """True for the all-zero commit id that marks "no commit" on a ref."""
    if isinstance(value, bool) or value is None:
        return False
    if isinstance(value, (int, float)):
        return value == 0
    if isinstance(value, str):
        try:
            return int(value, 16) == 0
        except ValueError:
            return False
    return False


def split_ref(ref: str) -> tuple[str | None, str | None]:
    """Split ``refs/heads/x`` / ``refs/tags/y`` into (branch, tag)."""
    parts = ref.split("/")
    name = "/".join(parts[2:])
    namespace = parts[1] if len(parts) > 1 else ""
    branch = name if namespace == "heads" and name else None
    tag = name if namespace == "tags" and name else None
    return branch, tag


def normalize(body: Any) -> WebhookEvent:
    """Build the unified event for a raw webhook body. Never raises."""
    if not isinstance(body, Mapping):
        return WebhookEvent(kind=EventKind.UNKNOWN, payload=body, object=body)

    object_kind = body.get("object_kind")
    kind = _OBJECT_KINDS.get(object_kind) if isinstance(object_kind, str) else None
    if kind is not None:
        return _normalize_object(kind, body)

    if body.get("ref") and body.get("repository"):
        return _normalize_push(body)

    return WebhookEvent(kind=EventKind.UNKNOWN, payload=body, object=body)


def _normalize_object(kind: EventKind, body: Mapping[str, Any]) -> WebhookEvent:
    obj = body.get("object_attributes")
    if not isinstance(obj, Mapping):
        obj = {}
    return WebhookEvent(
        kind=kind,
        payload=body,
        object=obj,
        object_kind=kind.value,
        state=obj.get("state"),
        user_id=obj.get("author_id"),
    )


def _normalize_push(body: Mapping[str, Any]) -> WebhookEvent:
    branch, tag = split_ref(str(body["ref"]))
    no_before = is_empty_commit(body.get("before"))
    no_after = is_empty_commit(body.get("after"))

    # Both sentinels at once is ambiguous; it is reported as a delete.
    if no_after:
        action = PushAction.DELETE
    elif no_before:
        action = PushAction.CREATE
    else:
        action = PushAction.UPDATE

    if tag is not None:
        entity = PushEntity.TAG
    elif branch is not None:
        entity = PushEntity.BRANCH
    else:
        entity = PushEntity.UNKNOWN

    after = body.get("after")
    return WebhookEvent(
        kind=EventKind.PUSH,
        payload=body,
        object=body,
        user_id=body.get("user_id"),
        action=action,
        entity=entity,
        event=f"{action.value}-{entity.value}",
        branch=branch,
        tag=tag,
        ref=branch or tag or None,
        treeish=None if no_after else (str(after) if after is not None else None),
    )
