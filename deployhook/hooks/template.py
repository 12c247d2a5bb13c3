"""Command templates with ``{{dotted.path}}`` placeholders.

Placeholders are looked up in the normalized event first and then in the raw
payload, so ``{{branch}}`` and ``{{repository.name}}`` both work. A
placeholder that resolves nowhere is an error, never an empty string.
"""

from __future__ import annotations

import json
import re
from enum import Enum
from pathlib import Path
from typing import Any, Mapping, Sequence

from deployhook.errors import TemplateResolutionError
from deployhook.hooks.models import ResolvedCommand, WebhookEvent
from deployhook.utils.platform import normalize_path

_PLACEHOLDER = re.compile(r"\{\{\s*([^{}]+?)\s*\}\}")


class _Missing:
    def __repr__(self) -> str:
        return "MISSING"


MISSING: Any = _Missing()


def placeholders(template: str) -> list[str]:
    """Distinct placeholder keys in order of first appearance."""
    return list(dict.fromkeys(_PLACEHOLDER.findall(template)))


def lookup(tree: Any, path: Sequence[str]) -> Any:
    """Walk ``path`` through nested mappings and sequences.

    Integer segments index into sequences. Returns :data:`MISSING` when a
    segment is absent or the node in hand cannot be descended into.
    """
    if not path:
        return tree
    head, rest = path[0], path[1:]
    if isinstance(tree, Mapping):
        if head not in tree:
            return MISSING
        return lookup(tree[head], rest)
    if isinstance(tree, Sequence) and not isinstance(tree, (str, bytes)):
        try:
            index = int(head)
        except ValueError:
            return MISSING
        if not -len(tree) <= index < len(tree):
            return MISSING
        return lookup(tree[index], rest)
    return MISSING


def resolve_key(key: str, event: WebhookEvent) -> Any:
    path = key.split(".")
    value = lookup(event.namespace(), path)
    if value is MISSING:
        value = lookup(event.payload, path)
    return value


def stringify(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, Enum):
        return str(value.value)
    if isinstance(value, (Mapping, list, tuple)):
        return json.dumps(value, separators=(",", ":"), default=str)
    return str(value)


def render(template: str, event: WebhookEvent) -> str:
    """Substitute every placeholder in ``template``; returns a new string."""
    values: dict[str, str] = {}
    for key in placeholders(template):
        value = resolve_key(key, event)
        if value is MISSING:
            raise TemplateResolutionError(key, template)
        values[key] = stringify(value)
    if not values:
        return template
    return _PLACEHOLDER.sub(lambda m: values[m.group(1)], template)


def resolve(template: str, event: WebhookEvent) -> ResolvedCommand:
    """Render ``template`` and split it on whitespace into executable + args.

    There is no quoting: a value containing spaces becomes several args.
    """
    tokens = render(template, event).split()
    if not tokens:
        return ResolvedCommand(executable="")
    return ResolvedCommand(executable=tokens[0], args=tokens[1:])


def render_path(template: str, event: WebhookEvent) -> Path:
    return normalize_path(render(template, event).strip())
