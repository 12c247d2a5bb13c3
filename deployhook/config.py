"""Configuration management with Pydantic Settings + optional YAML."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Callable, Union

import yaml
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from deployhook.utils.platform import get_config_dir

# A literal value, a list of values, or a predicate over the extracted value.
# None, "", [] and False all mean "filter disabled". Numbers (a bare YAML
# token such as 12345) are compared as their string form.
AllowListSpec = Union[str, int, list[str | int], Callable[[str], bool], bool, None]

# Classic single-route behavior: every ref allowed, `git pull` of the pushed
# ref, output appended to one log file, explicit 403/404 answers.
LEGACY_DEFAULTS: dict[str, Any] = {
    "branches": ["*"],
    "exec": "git pull {{object.ref}}",
    "exec_log": "./logs/deploy.log",
    "strict": True,
}


class HookConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    route: str = "/gitlab-hook"
    ips: AllowListSpec = Field(default_factory=lambda: ["127.0.0.1"])
    token: AllowListSpec = None
    token_key: str = "token"
    token_header: str = "X-Gitlab-Token"
    branches: AllowListSpec = None
    exec: str | None = None
    exec_log: str | None = Field(default=None, validation_alias=AliasChoices("exec_log", "log"))
    strict: bool = False
    sink_timeout: float = 10.0
    # Branches are matched on the raw `ref` (refs/heads/main) in legacy mode
    legacy: bool = False

    @model_validator(mode="before")
    @classmethod
    def _apply_legacy_defaults(cls, data: Any) -> Any:
        if not isinstance(data, dict) or not data.get("legacy"):
            return data
        data = dict(data)
        for key, value in LEGACY_DEFAULTS.items():
            if key == "exec_log" and "log" in data:
                continue
            data.setdefault(key, value)
        return data

    @property
    def path(self) -> str:
        return self.route if self.route.startswith("/") else f"/{self.route}"


class ServerConfig(BaseModel):
    bind: str = "0.0.0.0"
    port: int = 8420
    # Honor X-Forwarded-For when running behind a reverse proxy
    trust_proxy: bool = False


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="DEPLOYHOOK_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    server: ServerConfig = Field(default_factory=ServerConfig)
    hooks: list[HookConfig] = Field(default_factory=list)
    log_level: str = "INFO"
    log_json: bool = False


def load_settings(config_path: str | Path | None = None) -> Settings:
    """Load settings from env vars, optionally overlaying a YAML config."""
    yaml_data: dict[str, Any] = {}

    # Determine config file path
    if config_path is None:
        config_path = os.environ.get("DEPLOYHOOK_CONFIG")
    if config_path is None:
        default = get_config_dir() / "config.yaml"
        if default.exists():
            config_path = default

    # Load YAML if found
    if config_path is not None:
        path = Path(config_path)
        if path.exists():
            with open(path) as f:
                yaml_data = yaml.safe_load(f) or {}

    # Build settings: YAML values as defaults, env vars override
    return Settings(**yaml_data)
