"""Configuration session: live state, edits, history and the re-derivation pipeline.

Every committed edit runs the same pipeline:
1) re-encode the prompt
2) re-price synchronously
3) autosave the snapshot (last write wins; a failed write is diagnosed, not raised)
4) mark geometry dirty with a debounce deadline

Geometry requests are issued by `tick()` once the deadline has passed. Each
request carries a sequence number and the session token; only a response to
the latest request of the current token is accepted.
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Optional, Sequence, Union

from configurator.codec.prompt import encode_prompt
from configurator.config import Settings
from configurator.diagnostics import DiagnosticsSink, Severity, diag_sink_from_env, emit_simple, make_run_id
from configurator.pricing.engine import PriceQuote, calculate_price
from configurator.pricing.params import PricingParameterTable
from configurator.pricing.samples import SamplePrices
from configurator.schema import (
    ColorRef,
    ConfigData,
    GlobalConfig,
    SavedConfiguration,
    Zone,
    ZoneContent,
    ZoneType,
)
from configurator.services.clients import (
    GeometryResult,
    GeometryService,
    PricingParamsSource,
    SampleCatalogSource,
    ServiceError,
)
from configurator.session.autosave import AutosaveSnapshot, AutosaveStore
from configurator.session.history import HistoryAction, ZoneHistory, history_action_for_key
from configurator.session.restore import RestoreResult, SavedLoader, restore_configuration
from configurator.session.selection import select_zone
from configurator.zones import edit
from configurator.zones.tree import default_root, find_zone, iter_separator_ids


@dataclass(frozen=True)
class GeometryRequest:
    seq: int
    token: int
    prompt: str
    closed: bool = True
    color: Optional[str] = None
    colors: Optional[dict[str, str]] = None
    deleted_panels: tuple[str, ...] = ()


@dataclass
class ConfigurationSession:
    """Explicit state of one open configurator."""

    template_id: str
    config: GlobalConfig
    history: ZoneHistory
    initial_config: GlobalConfig
    initial_root: Zone
    source: str = "default"
    selection: tuple[str, ...] = ()
    prompt: str = ""
    quote: Optional[PriceQuote] = None
    token: int = 0
    seq: int = 0
    dirty_deadline: Optional[float] = None
    inflight: Optional[GeometryRequest] = None
    asset: Optional[GeometryResult] = None
    last_error: Optional[str] = None
    pending_restore: Optional[AutosaveSnapshot] = None
    run_id: str = field(default_factory=make_run_id)

    @property
    def root(self) -> Zone:
        return self.history.present

    @property
    def price(self) -> int:
        return self.quote.total if self.quote is not None else 0


class ConfigurationController:
    def __init__(
        self,
        template_id: str,
        *,
        settings: Optional[Settings] = None,
        table: Optional[PricingParameterTable] = None,
        sample_prices: Optional[SamplePrices] = None,
        autosave: Optional[AutosaveStore] = None,
        restore: Optional[RestoreResult] = None,
        diag: Optional[DiagnosticsSink] = None,
        clock: Callable[[], float] = time.monotonic,
        render_closed: bool = True,
    ) -> None:
        self.settings = settings or Settings()
        self.table = table or PricingParameterTable.empty()
        self.sample_prices = dict(sample_prices or {})
        self.autosave = autosave
        self.diag = diag or diag_sink_from_env()
        self.clock = clock
        self.render_closed = render_closed

        config = restore.config if restore is not None else GlobalConfig()
        root = restore.root if restore is not None else default_root()
        self.session = ConfigurationSession(
            template_id=str(template_id),
            config=config,
            history=ZoneHistory(root, max_depth=self.settings.history_max),
            initial_config=config,
            initial_root=root,
            source=restore.source if restore is not None else "default",
            pending_restore=restore.pending if restore is not None else None,
        )
        self._rederive(autosave=False)

    # --- Properties ---

    @property
    def config(self) -> GlobalConfig:
        return self.session.config

    @property
    def root(self) -> Zone:
        return self.session.root

    @property
    def prompt(self) -> str:
        return self.session.prompt

    @property
    def price(self) -> int:
        return self.session.price

    # --- Pipeline ---

    def _event(self, code: str, severity: int = Severity.INFO, reason: str = "", **meta: Any) -> None:
        emit_simple(
            self.diag,
            code=code,
            stage="session",
            component="controller",
            severity=severity,
            run_id=self.session.run_id,
            reason=reason,
            **meta,
        )

    def _rederive(self, autosave: bool = True) -> None:
        session = self.session
        session.prompt = encode_prompt(session.config, session.root)
        session.quote = calculate_price(
            session.config,
            session.root,
            self.table,
            self.sample_prices,
            diag=self.diag,
            run_id=session.run_id,
        )
        session.dirty_deadline = self.clock() + self.settings.debounce_s
        if autosave and self.autosave is not None and self.settings.autosave_enabled:
            try:
                self.autosave.save(session.template_id, session.config, session.root)
            except OSError as exc:
                # The edit is already committed; only the recovery snapshot is lost.
                emit_simple(
                    self.diag,
                    code="AUTOSAVE_FAILED",
                    stage="session",
                    component="autosave",
                    source="autosave",
                    severity=Severity.WARN,
                    run_id=session.run_id,
                    path=str(self.autosave.path_for(session.template_id)),
                    reason=str(exc),
                )

    def _commit(self, tree: Zone) -> bool:
        if not self.session.history.commit(tree):
            return False
        self._prune_selection()
        self._rederive()
        return True

    def _prune_selection(self) -> None:
        root = self.session.root
        self.session.selection = tuple(z for z in self.session.selection if find_zone(root, z) is not None)

    def set_pricing_data(
        self,
        table: Optional[PricingParameterTable] = None,
        sample_prices: Optional[SamplePrices] = None,
    ) -> None:
        """Swap in a freshly fetched parameter table or sample catalog and re-price."""
        if table is not None:
            self.table = table
        if sample_prices is not None:
            self.sample_prices = dict(sample_prices)
        session = self.session
        session.quote = calculate_price(
            session.config, session.root, self.table, self.sample_prices, diag=self.diag, run_id=session.run_id
        )

    # --- Tree edits ---

    def split_zone(self, zone_id: str, axis: Union[ZoneType, str], count: int = 2) -> bool:
        committed = self._commit(edit.split(self.root, zone_id, axis, count))
        if committed:
            self.session.selection = (zone_id,)
        return committed

    def set_content(self, zone_id: str, content: Union[ZoneContent, str]) -> bool:
        return self._commit(edit.set_content(self.root, zone_id, content))

    def toggle_light(self, zone_id: str) -> bool:
        return self._commit(edit.toggle_light(self.root, zone_id))

    def toggle_cable_hole(self, zone_id: str) -> bool:
        return self._commit(edit.toggle_cable_hole(self.root, zone_id))

    def toggle_dressing(self, zone_id: str) -> bool:
        return self._commit(edit.toggle_dressing(self.root, zone_id))

    def set_door_content(self, zone_id: str, content: Union[ZoneContent, str, None]) -> bool:
        return self._commit(edit.set_door_content(self.root, zone_id, content))

    def set_handle_type(self, zone_id: str, handle: Any) -> bool:
        return self._commit(edit.set_handle_type(self.root, zone_id, handle))

    def set_zone_color(self, zone_id: str, color: Union[ColorRef, dict, None]) -> bool:
        return self._commit(edit.set_zone_color(self.root, zone_id, color))

    def set_glass_shelf_count(self, zone_id: str, count: int) -> bool:
        return self._commit(edit.set_glass_shelf_count(self.root, zone_id, count))

    def group_zones(
        self,
        zone_ids: Optional[Iterable[str]] = None,
        forced_door_content: Union[ZoneContent, str, None] = None,
    ) -> bool:
        """Group the given ids (default: the current selection); errors are recorded, not raised."""
        ids = tuple(zone_ids) if zone_ids is not None else self.session.selection
        group_id = f"group-{uuid.uuid4().hex[:9]}"
        try:
            tree = edit.group_zones(self.root, ids, forced_door_content, group_id=group_id)
        except edit.GroupingError as exc:
            self.session.last_error = str(exc)
            self._event("GROUPING_REJECTED", Severity.WARN, str(exc), zone_ids=list(ids))
            return False
        committed = self._commit(tree)
        if committed:
            self.session.last_error = None
            self.session.selection = (group_id,)
        return committed

    def select(self, zone_id: str) -> tuple[str, ...]:
        self.session.selection = select_zone(self.root, self.session.selection, zone_id)
        return self.session.selection

    # --- Global config edits (outside undo history) ---

    def update_config(self, **changes: Any) -> GlobalConfig:
        updated = self.session.config.updated(**changes)
        if updated != self.session.config:
            self.session.config = updated
            self._rederive()
        return updated

    def toggle_separator(self, panel_id: str) -> bool:
        """Delete or restore one separator panel; returns True when it is now deleted."""
        if panel_id not in set(iter_separator_ids(self.root)):
            raise edit.ZoneEditError(f"unknown separator: {panel_id}")
        deleted = set(self.session.config.deleted_panel_ids)
        removed = panel_id not in deleted
        if removed:
            deleted.add(panel_id)
        else:
            deleted.discard(panel_id)
        self.update_config(deleted_panel_ids=tuple(deleted))
        return removed

    # --- History ---

    def undo(self) -> bool:
        if self.session.history.undo() is None:
            return False
        self._prune_selection()
        self._rederive()
        return True

    def redo(self) -> bool:
        if self.session.history.redo() is None:
            return False
        self._prune_selection()
        self._rederive()
        return True

    def handle_key(self, key: str, **modifiers: bool) -> Optional[HistoryAction]:
        action = history_action_for_key(key, **modifiers)
        if action == "undo":
            self.undo()
        elif action == "redo":
            self.redo()
        return action

    # --- Geometry pipeline ---

    def _geometry_colors(self) -> tuple[Optional[str], Optional[dict[str, str]]]:
        config = self.session.config
        if config.use_multi_color:
            colors = config.component_colors.hex_map()
            return None, colors or None
        return config.color_hex, None

    def tick(self, now: Optional[float] = None) -> Optional[GeometryRequest]:
        """Issue a geometry request once the debounce deadline has passed."""
        session = self.session
        current = self.clock() if now is None else now
        if session.dirty_deadline is None or current < session.dirty_deadline:
            return None
        session.seq += 1
        color, colors = self._geometry_colors()
        request = GeometryRequest(
            seq=session.seq,
            token=session.token,
            prompt=session.prompt,
            closed=self.render_closed,
            color=color,
            colors=colors,
            deleted_panels=session.config.deleted_panel_ids,
        )
        session.dirty_deadline = None
        session.inflight = request
        return request

    def is_current(self, request: GeometryRequest) -> bool:
        return request.token == self.session.token and request.seq == self.session.seq

    def complete_geometry(
        self,
        request: GeometryRequest,
        result: Optional[GeometryResult] = None,
        error: Optional[str] = None,
    ) -> bool:
        """Apply a geometry response; stale responses are ignored."""
        session = self.session
        if not self.is_current(request):
            self._event("GEOMETRY_STALE", reason="response for superseded request", seq=request.seq, token=request.token)
            return False
        session.inflight = None
        if error is not None or result is None:
            # Keep the last good asset; the configuration itself is untouched.
            session.last_error = error or "geometry service returned no asset"
            self._event("GEOMETRY_FAILED", Severity.ERROR, session.last_error, seq=request.seq)
            return False
        session.asset = result
        session.last_error = None
        return True

    def dispatch(self, service: GeometryService, now: Optional[float] = None) -> bool:
        """Synchronous tick + generate + complete round trip."""
        request = self.tick(now)
        if request is None:
            return False
        try:
            result = service.generate(
                request.prompt,
                closed=request.closed,
                color=request.color,
                colors=request.colors,
                deleted_panels=request.deleted_panels,
            )
        except ServiceError as exc:
            return self.complete_geometry(request, error=str(exc))
        return self.complete_geometry(request, result)

    # --- Lifecycle ---

    def accept_pending_restore(self) -> bool:
        snapshot = self.session.pending_restore
        if snapshot is None:
            return False
        self.session.pending_restore = None
        self.session.config = snapshot.config
        self.session.history.reset(snapshot.root)
        self.session.selection = ()
        self.session.source = "autosave"
        self._rederive(autosave=False)
        return True

    def discard_pending_restore(self) -> None:
        if self.session.pending_restore is None:
            return
        self.session.pending_restore = None
        if self.autosave is not None:
            self.autosave.clear(self.session.template_id)

    def reset(self) -> None:
        """Back to the initial configuration; in-flight geometry becomes stale."""
        session = self.session
        session.token += 1
        session.inflight = None
        session.config = session.initial_config
        session.history.reset(session.initial_root)
        session.selection = ()
        session.last_error = None
        if self.autosave is not None:
            self.autosave.clear(session.template_id)
        self._rederive(autosave=False)

    def close(self) -> None:
        self.session.token += 1
        self.session.inflight = None
        self.session.dirty_deadline = None

    def to_saved_configuration(self, name: str = "", configuration_id: Any = None) -> SavedConfiguration:
        session = self.session
        asset = session.asset
        return SavedConfiguration(
            id=configuration_id,
            name=name,
            model_id=session.template_id,
            prompt=session.prompt,
            price=float(session.price),
            glb_url=asset.glb_url if asset is not None else None,
            dxf_url=asset.dxf_url if asset is not None else None,
            config_data=ConfigData.from_state(session.config, session.root),
        )


def open_configurator(
    template_id: str,
    *,
    settings: Optional[Settings] = None,
    saved_id: Any = None,
    saved_sources: Sequence[SavedLoader] = (),
    catalog_config: Any = None,
    catalog_prompt: str = "",
    template_prompt: str = "",
    pricing_source: Optional[PricingParamsSource] = None,
    sample_source: Optional[SampleCatalogSource] = None,
    diag: Optional[DiagnosticsSink] = None,
    now: Optional[float] = None,
    clock: Callable[[], float] = time.monotonic,
) -> ConfigurationController:
    """Fetch pricing data, restore the initial state and build a controller.

    Pricing data that cannot be fetched degrades to the fallback constants.
    """
    settings = settings or Settings.from_env()
    sink = diag or diag_sink_from_env()
    autosave = None
    if settings.autosave_enabled and settings.autosave_dir:
        autosave = AutosaveStore(settings.autosave_dir, settings.autosave_max_age_s, diag=sink)

    table: Optional[PricingParameterTable] = None
    sample_prices: Optional[SamplePrices] = None
    if pricing_source is not None:
        try:
            table = pricing_source.fetch_table()
        except ServiceError as exc:
            emit_simple(
                sink,
                code="PRICING_TABLE_UNAVAILABLE",
                stage="service",
                component="client",
                severity=Severity.WARN,
                reason=str(exc),
            )
    if sample_source is not None:
        try:
            sample_prices = sample_source.fetch_sample_prices()
        except ServiceError as exc:
            emit_simple(
                sink,
                code="SAMPLE_CATALOG_UNAVAILABLE",
                stage="service",
                component="client",
                severity=Severity.WARN,
                reason=str(exc),
            )

    restored = restore_configuration(
        template_id,
        saved_id=saved_id,
        saved_sources=saved_sources,
        catalog_config=catalog_config,
        catalog_prompt=catalog_prompt,
        template_prompt=template_prompt,
        autosave=autosave,
        now=now,
        diag=sink,
    )
    return ConfigurationController(
        template_id,
        settings=settings,
        table=table,
        sample_prices=sample_prices,
        autosave=autosave,
        restore=restored,
        diag=sink,
        clock=clock,
    )
