"""Exception hierarchy for hook setup and dispatch."""

from __future__ import annotations


class HookError(Exception):
    """Base class for every error raised by deployhook."""


class ConfigurationError(HookError):
    """A hook configuration cannot be turned into a working handler."""


class TemplateResolutionError(HookError):
    def __init__(self, key: str, template: str) -> None:
        super().__init__(f"Placeholder '{{{{{key}}}}}' does not resolve against the event")
        self.key = key
        self.template = template


class InvalidCommandError(HookError):
    """The resolved command has no executable."""


class SinkOpenError(HookError):
    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"Cannot open output log {path}: {reason}")
        self.path = path


class SpawnError(HookError):
    def __init__(self, executable: str, reason: str) -> None:
        super().__init__(f"Cannot launch {executable}: {reason}")
        self.executable = executable
