"""Initial state on open: saved record > catalog config > autosave offer > template prompt > default."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional, Sequence, Union

from pydantic import ValidationError
from typing_extensions import Literal

from configurator.codec.parser import decode_prompt
from configurator.diagnostics import DiagnosticsSink, NoopDiagnosticsSink, Severity, emit_simple
from configurator.schema import ConfigData, GlobalConfig, SavedConfiguration, Zone
from configurator.services.clients import ServiceError
from configurator.session.autosave import AutosaveSnapshot, AutosaveStore
from configurator.zones.tree import default_root, duplicate_ids, normalize_split_ratios

SavedLoader = Callable[[Any], Optional[SavedConfiguration]]
RestoreSource = Literal["saved", "catalog", "template", "default"]


@dataclass(frozen=True)
class RestoreResult:
    """Restored state plus, optionally, an autosave the user may accept or discard."""

    source: RestoreSource
    config: GlobalConfig
    root: Zone
    pending: Optional[AutosaveSnapshot] = None
    saved: Optional[SavedConfiguration] = None


def state_from_saved(
    prompt: str,
    config_data: Optional[ConfigData],
    base: GlobalConfig,
    diag: Optional[DiagnosticsSink] = None,
) -> tuple[GlobalConfig, Zone]:
    """Prompt gives the baseline; the rich payload overrides it field by field."""
    config, root = base, None
    if prompt:
        decoded = decode_prompt(prompt, diag)
        config = decoded.fragment.apply_to(config)
        root = decoded.root
    if config_data is not None:
        config = config_data.apply_to(config)
        if config_data.advanced_zones is not None:
            root = normalize_split_ratios(config_data.advanced_zones)
    return config, root if root is not None else default_root()


def _emit(sink: DiagnosticsSink, code: str, source: str, reason: str, severity: int = Severity.INFO, **meta: Any) -> None:
    emit_simple(
        sink,
        code=code,
        stage="session",
        component="restore",
        source=source,
        severity=severity,
        reason=reason,
        **meta,
    )


def _from_saved_sources(
    saved_id: Any,
    sources: Sequence[SavedLoader],
    base: GlobalConfig,
    sink: DiagnosticsSink,
) -> Optional[RestoreResult]:
    for index, source in enumerate(sources):
        try:
            record = source(saved_id)
        except ServiceError as exc:
            _emit(sink, "RESTORE_SOURCE_FAILED", "saved", str(exc), Severity.WARN, source_index=index)
            continue
        if record is None:
            continue
        config, root = state_from_saved(record.prompt, record.config_data, base, sink)
        return RestoreResult(source="saved", config=config, root=root, saved=record)
    return None


def restore_configuration(
    template_id: str,
    *,
    saved_id: Any = None,
    saved_sources: Sequence[SavedLoader] = (),
    catalog_config: Union[ConfigData, Mapping[str, Any], None] = None,
    catalog_prompt: str = "",
    template_prompt: str = "",
    autosave: Optional[AutosaveStore] = None,
    base: Optional[GlobalConfig] = None,
    now: Optional[float] = None,
    diag: Optional[DiagnosticsSink] = None,
) -> RestoreResult:
    sink = diag or NoopDiagnosticsSink()
    base_config = base or GlobalConfig()
    result: Optional[RestoreResult] = None

    # 1) explicit saved configuration (local store first, then remote)
    if saved_id is not None and saved_sources:
        result = _from_saved_sources(saved_id, saved_sources, base_config, sink)

    # 2) catalog model rich configuration
    if result is None and catalog_config is not None:
        try:
            data = catalog_config if isinstance(catalog_config, ConfigData) else ConfigData.model_validate(catalog_config)
        except ValidationError as exc:
            _emit(sink, "RESTORE_CATALOG_INVALID", "catalog", str(exc), Severity.WARN)
        else:
            config, root = state_from_saved(catalog_prompt, data, base_config, sink)
            result = RestoreResult(source="catalog", config=config, root=root)

    if result is None:
        # 3) + 4) template prompt (or default) with a fresh autosave offered on top
        if template_prompt:
            decoded = decode_prompt(template_prompt, sink)
            config, root, source = decoded.fragment.apply_to(base_config), decoded.root, "template"
        else:
            # 5) hardcoded default
            config, root, source = base_config, default_root(), "default"
        pending = autosave.load(template_id, now=now) if autosave is not None else None
        result = RestoreResult(source=source, config=config, root=root, pending=pending)

    duplicates = duplicate_ids(result.root)
    if duplicates:
        _emit(sink, "RESTORE_DUPLICATE_IDS", result.source, "zone ids are not unique", Severity.WARN, ids=duplicates)
    _emit(
        sink,
        "RESTORE_SELECTED",
        result.source,
        f"restored from {result.source}",
        template_id=str(template_id),
        pending_autosave=result.pending is not None,
    )
    return result
