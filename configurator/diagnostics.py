"""Diagnostics contracts and sink implementations."""

from __future__ import annotations

import json
import os
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import IntEnum
from pathlib import Path
from typing import Any, Protocol


class Severity(IntEnum):
    INFO = 0
    WARN = 1
    ERROR = 2
    FATAL = 3


SEVERITY_LABELS: dict[int, str] = {
    int(Severity.INFO): "info",
    int(Severity.WARN): "warn",
    int(Severity.ERROR): "error",
    int(Severity.FATAL): "fatal",
}
SEVERITY_MIN = int(Severity.INFO)
SEVERITY_MAX = int(Severity.FATAL)
VALID_SEVERITIES = frozenset(SEVERITY_LABELS.keys())

VALID_STAGES = frozenset({"decode", "encode", "edit", "price", "session", "service"})
VALID_SOURCES = frozenset(
    {"table", "fallback", "sample", "computed", "prompt", "saved", "catalog", "autosave", "template", "default"}
)
VALID_COMPONENTS = frozenset(
    {"codec", "zones", "pricing", "history", "controller", "restore", "autosave", "client"}
)
DEFAULT_STAGE = "session"
DEFAULT_SOURCE = "computed"
DEFAULT_COMPONENT = "controller"

DIAG_JSONL_ENV = "CFG_DIAG_JSONL"


def utc_now_iso() -> str:
    """Return UTC timestamp in stable ISO-8601 format."""
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def make_run_id(short_len: int = 8) -> str:
    """Return run id as run_YYYYmmdd_HHMMSS_<shortid>."""
    timestamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")
    short_id = uuid.uuid4().hex[: max(4, int(short_len))]
    return f"run_{timestamp}_{short_id}"


@dataclass(frozen=True)
class Event:
    """Unified diagnostics event schema."""

    ts: str
    run_id: str
    stage: str
    component: str
    code: str
    severity: int
    path: str
    source: str
    input_value: Any
    resolved_value: Any
    reason: str
    meta: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _vocabulary(value: Any, allowed: frozenset[str], default: str) -> tuple[str, str]:
    candidate = str(value).strip().lower() if isinstance(value, str) else ""
    return (candidate if candidate in allowed else default), candidate


def make_event(
    *,
    run_id: str = "",
    stage: str,
    component: str,
    code: str,
    severity: int = 0,
    path: str = "",
    source: str = "",
    input_value: Any = None,
    resolved_value: Any = None,
    reason: str = "",
    meta: dict[str, Any] | None = None,
    ts: str = "",
) -> Event:
    if not ts:
        ts = utc_now_iso()
    stage_value, stage_candidate = _vocabulary(stage, VALID_STAGES, DEFAULT_STAGE)
    component_value, component_candidate = _vocabulary(component, VALID_COMPONENTS, DEFAULT_COMPONENT)
    source_value, source_candidate = _vocabulary(source, VALID_SOURCES, DEFAULT_SOURCE)
    try:
        severity_value = int(severity)
    except (TypeError, ValueError):
        severity_value = int(Severity.INFO)
    meta_value = dict(meta) if isinstance(meta, dict) else {}
    normalized_from: dict[str, Any] = {}
    if stage_value != stage_candidate:
        normalized_from["stage"] = stage
    if component_value != component_candidate:
        normalized_from["component"] = component
    if source_value != source_candidate:
        normalized_from["source"] = source
    if normalized_from:
        existing_normalized = meta_value.get("normalized_from")
        if isinstance(existing_normalized, dict):
            merged_normalized = dict(normalized_from)
            merged_normalized.update(existing_normalized)
            meta_value["normalized_from"] = merged_normalized
        else:
            meta_value["normalized_from"] = normalized_from
        if not reason:
            reason = "normalized diagnostics vocabulary"
    return Event(
        ts=ts,
        run_id=run_id,
        stage=stage_value,
        component=component_value,
        code=code,
        severity=max(SEVERITY_MIN, min(SEVERITY_MAX, severity_value)),
        path=path,
        source=source_value,
        input_value=input_value,
        resolved_value=resolved_value,
        reason=reason,
        meta=meta_value,
    )


def emit_simple(
    sink: DiagnosticsSink,
    *,
    code: str,
    path: str = "",
    payload: Any = None,
    severity: int = Severity.INFO,
    component: str = DEFAULT_COMPONENT,
    stage: str = DEFAULT_STAGE,
    source: str = DEFAULT_SOURCE,
    reason: str = "",
    run_id: str = "",
    input_value: Any = None,
    resolved_value: Any = None,
    meta: dict[str, Any] | None = None,
    ts: str = "",
    **extra_meta: Any,
) -> Event:
    merged_meta = dict(meta) if isinstance(meta, dict) else {}
    if extra_meta:
        merged_meta.update(extra_meta)
    if payload is not None and "payload" not in merged_meta:
        merged_meta["payload"] = payload
    event = make_event(
        ts=ts,
        run_id=run_id,
        stage=stage,
        component=component,
        code=code,
        severity=severity,
        path=path,
        source=source,
        input_value=input_value,
        resolved_value=resolved_value,
        reason=reason,
        meta=merged_meta,
    )
    sink.emit(event)
    return event


class DiagnosticsSink(Protocol):
    """Sink interface for structured diagnostics events."""

    def emit(self, event: Event) -> None:
        """Publish one diagnostics event."""


def _normalize_event(event: Event) -> Event:
    if event.ts:
        return event
    return make_event(
        ts=utc_now_iso(),
        run_id=event.run_id or "",
        stage=event.stage,
        component=event.component,
        code=event.code,
        severity=event.severity,
        path=event.path,
        source=event.source,
        input_value=event.input_value,
        resolved_value=event.resolved_value,
        reason=event.reason,
        meta=event.meta,
    )


class NoopDiagnosticsSink:
    """Default diagnostics sink that drops all events."""

    def emit(self, event: Event) -> None:
        del event


class JsonlDiagnosticsSink:
    """Append diagnostics events to a JSONL file."""

    def __init__(self, path: str) -> None:
        self._path = Path(path)

    def emit(self, event: Event) -> None:
        normalized = _normalize_event(event)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        line = json.dumps(normalized.to_dict(), ensure_ascii=False, sort_keys=True, default=str)
        with self._path.open("a", encoding="utf-8") as handle:
            handle.write(f"{line}\n")


def diag_sink_from_env() -> DiagnosticsSink:
    # Diagnostics are opt-in: JSONL sink only when CFG_DIAG_JSONL is set.
    path = os.environ.get(DIAG_JSONL_ENV, "")
    if isinstance(path, str) and path.strip():
        return JsonlDiagnosticsSink(path.strip())
    return NoopDiagnosticsSink()
