"""Environment-driven runtime settings."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

DEFAULT_API_BASE_URL = "http://localhost:8000"
DEFAULT_HISTORY_MAX = 30
DEFAULT_DEBOUNCE_MS = 300
DEFAULT_AUTOSAVE_MAX_AGE_H = 24.0
DEFAULT_HTTP_TIMEOUT_S = 30.0


def _env_truthy(name: str) -> bool:
    value = os.environ.get(name, "")
    if not isinstance(value, str):
        return False
    return value.strip().lower() not in {"", "0", "false", "off", "no", "none"}


def _env_int(name: str, default: int, minimum: int = 0) -> int:
    raw = os.environ.get(name, "")
    try:
        value = int(str(raw).strip())
    except (TypeError, ValueError):
        return int(default)
    return max(minimum, value)


def _env_float(name: str, default: float, minimum: float = 0.0) -> float:
    raw = os.environ.get(name, "")
    try:
        value = float(str(raw).strip())
    except (TypeError, ValueError):
        return float(default)
    if value != value:
        return float(default)
    return max(minimum, value)


def _env_str(name: str, default: str) -> str:
    value = os.environ.get(name, "")
    if isinstance(value, str) and value.strip():
        return value.strip()
    return default


@dataclass(frozen=True)
class Settings:
    api_base_url: str = DEFAULT_API_BASE_URL
    history_max: int = DEFAULT_HISTORY_MAX
    debounce_ms: int = DEFAULT_DEBOUNCE_MS
    autosave_dir: str = ""
    autosave_max_age_h: float = DEFAULT_AUTOSAVE_MAX_AGE_H
    http_timeout_s: float = DEFAULT_HTTP_TIMEOUT_S
    autosave_enabled: bool = True

    @property
    def debounce_s(self) -> float:
        return self.debounce_ms / 1000.0

    @property
    def autosave_max_age_s(self) -> float:
        return self.autosave_max_age_h * 3600.0

    @classmethod
    def from_env(cls) -> Settings:
        """Read settings from CFG_* environment variables, tolerating bad values."""
        autosave_dir = _env_str("CFG_AUTOSAVE_DIR", str(Path.home() / ".carcass-configurator" / "autosave"))
        return cls(
            api_base_url=_env_str("CFG_API_BASE_URL", DEFAULT_API_BASE_URL).rstrip("/"),
            history_max=_env_int("CFG_HISTORY_MAX", DEFAULT_HISTORY_MAX, minimum=1),
            debounce_ms=_env_int("CFG_DEBOUNCE_MS", DEFAULT_DEBOUNCE_MS),
            autosave_dir=autosave_dir,
            autosave_max_age_h=_env_float("CFG_AUTOSAVE_MAX_AGE_H", DEFAULT_AUTOSAVE_MAX_AGE_H),
            http_timeout_s=_env_float("CFG_HTTP_TIMEOUT_S", DEFAULT_HTTP_TIMEOUT_S, minimum=0.1),
            autosave_enabled=not _env_truthy("CFG_AUTOSAVE_DISABLED"),
        )
