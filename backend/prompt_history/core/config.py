"""Application configuration handling."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Mapping

import yaml
from pydantic import BaseModel, Field, field_validator

ENV_PREFIX = "PHIST_"
DEFAULT_CONFIG_PATH = Path("~/.config/prompt-history/config.yaml")

DEFAULT_SERVER_PORT = 3000
DEFAULT_DEBOUNCE_SEC = 2.0

_YAML_KEY_MAP: Mapping[tuple[str, ...], str] = {
    ("storage", "base_dir"): "base_dir",
    ("history", "max_entries"): "history_max_entries",
    ("history", "server_port"): "history_server_port",
    ("history", "port_search"): "history_port_search",
    ("history", "confirm_delete"): "history_confirm_delete",
    ("history", "max_image_bytes"): "max_image_bytes",
    ("app", "copy_debounce_sec"): "copy_debounce_sec",
}


class Settings(BaseModel):
    """Runtime configuration loaded from YAML file and environment variables."""

    base_dir: Path = Field(default=Path.home() / ".prompt-history")
    history_max_entries: int = 300
    history_server_port: int = DEFAULT_SERVER_PORT
    history_port_search: int = 200
    history_confirm_delete: bool = True
    copy_debounce_sec: float = DEFAULT_DEBOUNCE_SEC
    max_image_bytes: int = 20 * 1024 * 1024

    model_config = {
        "validate_assignment": True,
        "extra": "ignore",
    }

    @field_validator("base_dir", mode="before")
    @classmethod
    def _expand_base_dir(cls, value: Any) -> Path:
        if isinstance(value, Path):
            return value.expanduser()
        if isinstance(value, str):
            return Path(value).expanduser()
        raise TypeError("base_dir must be a path or string")

    @field_validator("history_server_port", mode="after")
    @classmethod
    def _clamp_port(cls, value: int) -> int:
        if 1 <= value <= 65535:
            return value
        return DEFAULT_SERVER_PORT

    @field_validator("history_port_search", mode="after")
    @classmethod
    def _at_least_one_port(cls, value: int) -> int:
        return max(1, value)

    @field_validator("copy_debounce_sec", mode="after")
    @classmethod
    def _non_negative_debounce(cls, value: float) -> float:
        return value if value >= 0 else DEFAULT_DEBOUNCE_SEC

    @classmethod
    def from_yaml(cls, path: Path | None = None) -> "Settings":
        """Load YAML config and overlay env vars; fall back to defaults."""
        config_path = cls._resolve_config_path(path)
        data: dict[str, Any] = {}
        if config_path and config_path.exists():
            with config_path.open("r", encoding="utf-8") as fh:
                raw = yaml.safe_load(fh) or {}
            data.update(_flatten_yaml(raw))
        data.update(_load_env_overrides())
        return cls(**data)

    @staticmethod
    def _resolve_config_path(path: Path | None) -> Path | None:
        if path is not None:
            return path.expanduser()
        env_path = os.environ.get(f"{ENV_PREFIX}CONFIG")
        if env_path:
            return Path(env_path).expanduser()
        resolved_default = DEFAULT_CONFIG_PATH.expanduser()
        return resolved_default if resolved_default.exists() else None


def _flatten_yaml(raw: Mapping[str, Any], prefix: tuple[str, ...] = ()) -> dict[str, Any]:
    """Flatten nested YAML configuration to Settings field names."""
    flat: dict[str, Any] = {}
    for key, value in raw.items():
        next_prefix = prefix + (key,)
        if isinstance(value, Mapping):
            flat.update(_flatten_yaml(value, prefix=next_prefix))
        else:
            mapped_key = _YAML_KEY_MAP.get(next_prefix)
            if mapped_key:
                flat[mapped_key] = value
            elif key in Settings.model_fields:
                flat[key] = value
    return flat


def _load_env_overrides() -> dict[str, Any]:
    """Map environment variables with PHIST_ prefix into Settings fields."""
    overrides: dict[str, Any] = {}
    for key, value in os.environ.items():
        if not key.startswith(ENV_PREFIX):
            continue
        field_name = key[len(ENV_PREFIX) :].lower()
        if field_name in Settings.model_fields:
            overrides[field_name] = value
    return overrides


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Cached settings accessor for dependency injection."""
    return Settings.from_yaml()


__all__ = ["Settings", "get_settings"]
