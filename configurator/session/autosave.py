"""Last-write-wins JSON snapshots of in-progress edits, keyed by template."""

from __future__ import annotations

import json
import os
import re
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, Optional

from pydantic import ValidationError

from configurator.config import DEFAULT_AUTOSAVE_MAX_AGE_H
from configurator.diagnostics import DiagnosticsSink, NoopDiagnosticsSink, Severity, emit_simple
from configurator.schema import GlobalConfig, SavedConfiguration, Zone
from configurator.zones.tree import normalize_split_ratios


def save_json(path: str | os.PathLike[str], payload: Mapping[str, Any]) -> str:
    """Save JSON payload to path, creating parent directories."""
    output_path = Path(path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")
    return str(output_path)


def load_json(path: str | os.PathLike[str]) -> dict[str, Any]:
    """Load JSON object from path."""
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise ValueError(f"Expected JSON object in {path}, got {type(data).__name__}")
    return data


@dataclass(frozen=True)
class AutosaveSnapshot:
    template_id: str
    saved_at: float
    config: GlobalConfig
    root: Zone

    def age_s(self, now: float) -> float:
        return max(0.0, now - self.saved_at)


class AutosaveStore:
    def __init__(
        self,
        directory: str | os.PathLike[str],
        max_age_s: float = DEFAULT_AUTOSAVE_MAX_AGE_H * 3600.0,
        diag: Optional[DiagnosticsSink] = None,
    ) -> None:
        self._directory = Path(directory)
        self._max_age_s = float(max_age_s)
        self._diag = diag or NoopDiagnosticsSink()

    def path_for(self, template_id: str) -> Path:
        safe = re.sub(r"[^A-Za-z0-9_.-]", "_", str(template_id)) or "default"
        return self._directory / f"{safe}.json"

    def save(self, template_id: str, config: GlobalConfig, root: Zone, now: Optional[float] = None) -> str:
        payload = {
            "template_id": str(template_id),
            "timestamp": time.time() if now is None else float(now),
            "config": config.model_dump(mode="json", by_alias=True),
            "zones": root.model_dump(mode="json", by_alias=True, exclude_none=True),
        }
        return save_json(self.path_for(template_id), payload)

    def load(self, template_id: str, now: Optional[float] = None) -> Optional[AutosaveSnapshot]:
        """Fresh snapshot for template, or None when missing, stale or unreadable."""
        path = self.path_for(template_id)
        if not path.exists():
            return None
        try:
            data = load_json(path)
            saved_at = float(data["timestamp"])
            snapshot = AutosaveSnapshot(
                template_id=str(template_id),
                saved_at=saved_at,
                config=GlobalConfig.model_validate(data.get("config") or {}),
                root=normalize_split_ratios(Zone.model_validate(data["zones"])),
            )
        except (OSError, KeyError, TypeError, ValueError, ValidationError) as exc:
            emit_simple(
                self._diag,
                code="AUTOSAVE_UNREADABLE",
                stage="session",
                component="autosave",
                source="autosave",
                severity=Severity.WARN,
                path=str(path),
                reason=str(exc),
            )
            return None
        current = time.time() if now is None else float(now)
        if snapshot.age_s(current) > self._max_age_s:
            emit_simple(
                self._diag,
                code="AUTOSAVE_STALE",
                stage="session",
                component="autosave",
                source="autosave",
                path=str(path),
                input_value=snapshot.saved_at,
                reason=f"snapshot older than {self._max_age_s:.0f}s",
            )
            return None
        return snapshot

    def clear(self, template_id: str) -> None:
        path = self.path_for(template_id)
        if path.exists():
            path.unlink()


class LocalConfigurationStore:
    """Saved configurations cached on disk by id, consulted before the remote store."""

    def __init__(self, directory: str | os.PathLike[str]) -> None:
        self._directory = Path(directory)

    def path_for(self, configuration_id: Any) -> Path:
        safe = re.sub(r"[^A-Za-z0-9_.-]", "_", str(configuration_id)) or "default"
        return self._directory / f"configuration_{safe}.json"

    def put(self, configuration: SavedConfiguration) -> str:
        if configuration.id is None:
            raise ValueError("configuration needs an id to be cached locally")
        return save_json(self.path_for(configuration.id), configuration.to_record())

    def get(self, configuration_id: Any) -> Optional[SavedConfiguration]:
        path = self.path_for(configuration_id)
        if not path.exists():
            return None
        try:
            return SavedConfiguration.from_record(load_json(path))
        except (OSError, ValueError):
            # Corrupt cache entries fall through to the remote store.
            return None
