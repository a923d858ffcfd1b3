"""Deterministic price of a configured carcass.

Pipeline (all terms additive):
1) casing (carcass panels) or volumetric estimate
2) material supplement
3) plinth
4) zone tree traversal: doors, handles, contents, flags, separators
5) global door (only without zone doors)
6) sum, clamp NaN/negative to 0, round half up

Every missing category or parameter degrades to a documented constant and
emits a PRICE_FALLBACK diagnostics event; pricing never raises for missing
parameters.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Optional

from configurator.diagnostics import DiagnosticsSink, NoopDiagnosticsSink, Severity, emit_simple
from configurator.pricing.defaults import flat_fallback
from configurator.pricing.params import PricingParameterTable
from configurator.pricing.samples import SamplePrices, SampleSurcharges, resolve_sample_surcharges
from configurator.schema import (
    DOOR_CONTENTS,
    DRAWER_CONTENTS,
    DoorType,
    GlobalConfig,
    PlinthType,
    Zone,
    ZoneContent,
    ZoneType,
)
from configurator.zones.tree import child_panel_path, child_ratios, has_zone_doors, is_drawer_stack, separator_ids

MM2_PER_M2 = 1_000_000.0
MM3_PER_M3 = 1_000_000_000.0

_DOOR_ITEM_BY_CONTENT = {
    ZoneContent.door_double: "double",
    ZoneContent.mirror_door: "glass",
    ZoneContent.push_door: "push",
}


@dataclass(frozen=True)
class PriceLine:
    code: str
    path: str
    amount: float
    source: str


@dataclass(frozen=True)
class PriceQuote:
    total: int
    lines: tuple[PriceLine, ...] = ()
    fallbacks: tuple[str, ...] = ()
    clamped: bool = False

    def subtotal(self, code: str) -> float:
        return sum(line.amount for line in self.lines if line.code == code)


@dataclass
class _PricingContext:
    config: GlobalConfig
    table: PricingParameterTable
    samples: SampleSurcharges
    diag: DiagnosticsSink
    run_id: str = ""
    lines: list[PriceLine] = field(default_factory=list)
    fallbacks: list[str] = field(default_factory=list)

    @property
    def casing_configured(self) -> bool:
        return self.table.has_item("casing", "full")

    def add(self, code: str, path: str, amount: float, source: str = "table") -> float:
        self.lines.append(PriceLine(code=code, path=path, amount=float(amount), source=source))
        return float(amount)

    def fallback(self, key: str, path: str, reason: str) -> float:
        value = flat_fallback(key)
        self.fallbacks.append(key)
        emit_simple(
            self.diag,
            code="PRICE_FALLBACK",
            stage="price",
            component="pricing",
            source="fallback",
            severity=Severity.INFO,
            run_id=self.run_id,
            path=path,
            resolved_value=value,
            reason=reason,
            fallback_key=key,
        )
        return value

    def param(self, category: str, item_type: str, param_name: str, path: str) -> float:
        value, source = self.table.pick(category, item_type, param_name)
        if source == "fallback":
            self.fallbacks.append(f"{category}.{item_type}.{param_name}")
            emit_simple(
                self.diag,
                code="PRICE_FALLBACK",
                stage="price",
                component="pricing",
                source="fallback",
                run_id=self.run_id,
                path=path,
                resolved_value=value,
                reason=f"{category}.{item_type}.{param_name} missing, using default",
            )
        return value

    def material_price(self) -> float:
        return self.table.value("materials", self.config.finish, "price_per_m2") or 0.0

    def casing_coefficient(self) -> float:
        return self.param("casing", "full", "coefficient", "casing")


def _casing(ctx: _PricingContext) -> None:
    cfg = ctx.config
    w = cfg.width_mm / 1000.0
    h = cfg.height_mm / 1000.0
    d = cfg.depth_mm / 1000.0
    if not ctx.casing_configured:
        volume = w * h * d
        ctx.add("casing", "casing", volume * ctx.fallback("casing.volume_m3", "casing", "casing.full not configured"), "fallback")
        return
    coefficient = ctx.casing_coefficient()
    material = ctx.material_price()
    back_surface = w * h
    casing_surface = 2 * d * h + 2 * w * d
    ctx.add("casing", "casing", (material + ctx.samples.structure) * casing_surface * coefficient)
    ctx.add("casing", "casing.back", (material + ctx.samples.back) * back_surface * coefficient)


def _material_supplement(ctx: _PricingContext) -> None:
    supplement = ctx.table.value("materials", ctx.config.finish, "supplement")
    if supplement:
        ctx.add("material_supplement", f"materials.{ctx.config.finish}", supplement)


def _plinth(ctx: _PricingContext) -> None:
    cfg = ctx.config
    kind = cfg.plinth.value
    path = f"bases.{kind}"
    if not ctx.table.has_category("bases"):
        amount = ctx.fallback(path, path, "bases not configured")
        if amount:
            ctx.add("plinth", path, amount, "fallback")
        return

    if cfg.plinth == PlinthType.none:
        amount = ctx.table.value("bases", "none", "fixed_price") or 0.0
        if amount:
            ctx.add("plinth", path, amount)
        return

    if cfg.plinth == PlinthType.metal:
        price_per_foot = ctx.param("bases", "metal", "price_per_foot", path)
        interval = ctx.param("bases", "metal", "foot_interval", path)
        feet = metal_foot_count(cfg.width_mm, interval)
        ctx.add("plinth", path, price_per_foot * feet)
        return

    price_per_m3 = ctx.table.value("bases", "wood", "price_per_m3")
    coefficient = ctx.table.value("bases", "wood", "coefficient")
    if price_per_m3:
        height = ctx.param("bases", "wood", "height", path)
        ctx.add("plinth", path, price_per_m3 * cfg.width_mm * cfg.depth_mm * height / MM3_PER_M3)
        perimeter_surface = 2 * (cfg.width_mm + cfg.depth_mm) * height / MM2_PER_M2
        if ctx.samples.base:
            ctx.add("plinth_sample", path, ctx.samples.base * perimeter_surface, "sample")
    elif coefficient:
        ctx.add("plinth", path, coefficient * cfg.width_mm * cfg.depth_mm)
    else:
        ctx.add("plinth", path, ctx.fallback("bases.wood", path, "bases.wood has no volumetric or coefficient price"), "fallback")


def metal_foot_count(width_mm: float, foot_interval_mm: float) -> int:
    """Feet come in front/back pairs, one pair per started interval."""
    interval = foot_interval_mm if foot_interval_mm > 0 else 2000.0
    return int(math.ceil(width_mm / interval)) * 2


def _door(ctx: _PricingContext, door: ZoneContent, width: float, height: float, path: str, code: str = "door") -> None:
    if not ctx.table.has_category("doors"):
        ctx.add(code, path, ctx.fallback(f"doors.{door.value}", path, "doors not configured"), "fallback")
        return
    item = door.value if ctx.table.has_item("doors", door.value) else _DOOR_ITEM_BY_CONTENT.get(door, "simple")
    if not ctx.table.has_item("doors", item):
        item = "simple"
    coefficient = ctx.param("doors", item, "coefficient", path)
    hinge_count = ctx.param("doors", item, "hinge_count", path)
    hinge_price = ctx.param("hinges", "standard", "price_per_unit", path)
    surface = width * height / MM2_PER_M2
    ctx.add(code, path, coefficient * width * height + hinge_price * hinge_count)
    if ctx.samples.doors:
        ctx.add(f"{code}_sample", path, ctx.samples.doors * surface, "sample")


def _drawer(ctx: _PricingContext, zone: Zone, width: float, height: float) -> None:
    depth = ctx.config.depth_mm
    item = "push" if zone.content == ZoneContent.push_drawer else "standard"
    if not ctx.table.has_item("drawers", item):
        key = f"drawers.{zone.content.value}"
        ctx.add("drawer", zone.id, ctx.fallback(key, zone.id, f"drawers.{item} not configured"), "fallback")
        return
    base_price = ctx.param("drawers", item, "base_price", zone.id)
    coefficient = ctx.param("drawers", item, "coefficient", zone.id)
    ctx.add("drawer", zone.id, base_price + coefficient * width * depth)
    if ctx.samples.drawers:
        ctx.add("drawer_sample", zone.id, ctx.samples.drawers * width * height / MM2_PER_M2, "sample")


def _glass_shelf(ctx: _PricingContext, zone: Zone, width: float) -> None:
    count = zone.glass_shelf_count or 1
    if not ctx.table.has_item("shelves", "glass"):
        each = ctx.fallback("shelves.glass_each", zone.id, "shelves.glass not configured")
        ctx.add("glass_shelf", zone.id, each * count, "fallback")
        return
    price_per_m2 = ctx.param("shelves", "glass", "price_per_m2", zone.id)
    ctx.add("glass_shelf", zone.id, price_per_m2 * (width * ctx.config.depth_mm / MM2_PER_M2) * count)


def _rod(ctx: _PricingContext, zone: Zone, width: float, code: str) -> None:
    if not ctx.table.has_item("wardrobe", "rod"):
        ctx.add(code, zone.id, ctx.fallback("wardrobe.rod", zone.id, "wardrobe.rod not configured"), "fallback")
        return
    per_meter = ctx.param("wardrobe", "rod", "price_per_linear_meter", zone.id)
    ctx.add(code, zone.id, per_meter * width / 1000.0)


def _cable_hole(ctx: _PricingContext, zone: Zone) -> None:
    if not ctx.table.has_item("cables", "pass_cable"):
        ctx.add("cable_hole", zone.id, ctx.fallback("cables.pass_cable", zone.id, "cables.pass_cable not configured"), "fallback")
        return
    ctx.add("cable_hole", zone.id, ctx.param("cables", "pass_cable", "fixed_price", zone.id))


def _light(ctx: _PricingContext, zone: Zone, width: float) -> None:
    width_m = width / 1000.0
    if not ctx.table.has_item("lighting", "led"):
        per_meter = ctx.fallback("lighting.led_per_m", zone.id, "lighting.led not configured")
        ctx.add("light", zone.id, per_meter * width_m, "fallback")
        return
    ctx.add("light", zone.id, ctx.param("lighting", "led", "price_per_linear_meter", zone.id) * width_m)


def _handle(ctx: _PricingContext, zone: Zone) -> None:
    if zone.handle_type is None:
        return
    amount = ctx.param("handles", zone.handle_type.value, "price_per_unit", zone.id)
    if amount:
        ctx.add("handle", zone.id, amount)


def _separators(ctx: _PricingContext, zone: Zone, width: float, height: float, path: str) -> None:
    if is_drawer_stack(zone):
        return
    deleted = ctx.config.deleted_panel_ids
    count = sum(1 for sep in separator_ids(zone, path) if sep not in deleted)
    if count <= 0:
        return
    depth = ctx.config.depth_mm
    span = width if zone.type == ZoneType.horizontal else height
    surface = span * depth / MM2_PER_M2
    if ctx.casing_configured:
        coefficient = ctx.casing_coefficient()
        unit = (ctx.material_price() + ctx.samples.shelves) * coefficient
        ctx.add("separator", zone.id, unit * surface * count)
        return
    if ctx.table.has_item("shelves", "wood"):
        per_m2 = ctx.param("shelves", "wood", "price_per_m2", zone.id)
        ctx.add("separator", zone.id, per_m2 * surface * count)
        return
    per_m2 = ctx.fallback("shelves.separator_per_m2", zone.id, "no casing or shelves.wood parameters")
    ctx.add("separator", zone.id, per_m2 * surface * count, "fallback")


def count_extra_price(ctx: _PricingContext, zone: Zone, width: float, height: float, path: str = "") -> None:
    """Accumulate zone-level extras for `zone` sized width x height (mm) at panel `path`."""
    door = zone.door_content
    if door is None and zone.is_leaf and zone.content in DOOR_CONTENTS:
        door = zone.content
    if door is not None:
        _door(ctx, door, width, height, zone.id)

    if door is not None or (zone.is_leaf and zone.content in DRAWER_CONTENTS):
        _handle(ctx, zone)

    if zone.is_leaf:
        content = zone.content
        if content in DRAWER_CONTENTS:
            _drawer(ctx, zone, width, height)
        elif content == ZoneContent.glass_shelf:
            _glass_shelf(ctx, zone, width)
        elif content == ZoneContent.dressing:
            _rod(ctx, zone, width, "dressing")
        if zone.has_dressing and content != ZoneContent.dressing:
            _rod(ctx, zone, width, "dressing_overlay")
        if zone.has_cable_hole:
            _cable_hole(ctx, zone)
        if zone.has_light:
            _light(ctx, zone, width)
        return

    _separators(ctx, zone, width, height, path)
    for index, (child, ratio) in enumerate(zip(zone.children or (), child_ratios(zone))):
        share = ratio / 100.0
        child_path = child_panel_path(zone, path, index)
        if zone.type == ZoneType.horizontal:
            count_extra_price(ctx, child, width, height * share, child_path)
        else:
            count_extra_price(ctx, child, width * share, height, child_path)


def _global_door(ctx: _PricingContext, root: Zone) -> None:
    cfg = ctx.config
    if cfg.door_type == DoorType.none or has_zone_doors(root):
        return
    double = cfg.door_type == DoorType.double
    if not ctx.table.has_category("doors"):
        key = "global_door.double" if double else "global_door.single"
        ctx.add("global_door", "global_door", ctx.fallback(key, "global_door", "doors not configured"), "fallback")
        return
    door = ZoneContent.door_double if double else ZoneContent.door
    _door(ctx, door, float(cfg.width_mm), float(cfg.height_mm), "global_door", code="global_door")


def round_price(value: float) -> int:
    return int(math.floor(value + 0.5))


def calculate_price(
    config: GlobalConfig,
    root: Zone,
    table: Optional[PricingParameterTable] = None,
    sample_prices: Optional[SamplePrices] = None,
    diag: Optional[DiagnosticsSink] = None,
    run_id: str = "",
) -> PriceQuote:
    """Itemised, rounded, non-negative price quote."""
    ctx = _PricingContext(
        config=config,
        table=table or PricingParameterTable.empty(),
        samples=resolve_sample_surcharges(config, sample_prices),
        diag=diag or NoopDiagnosticsSink(),
        run_id=run_id,
    )
    _casing(ctx)
    _material_supplement(ctx)
    _plinth(ctx)
    count_extra_price(ctx, root, float(config.width_mm), float(config.height_mm))
    _global_door(ctx, root)

    raw_total = math.fsum(line.amount for line in ctx.lines)
    clamped = False
    if math.isnan(raw_total) or math.isinf(raw_total) or raw_total < 0:
        emit_simple(
            ctx.diag,
            code="PRICE_CLAMPED",
            stage="price",
            component="pricing",
            severity=Severity.WARN,
            run_id=run_id,
            input_value=raw_total,
            resolved_value=0,
            reason="price total was not a non-negative number",
        )
        raw_total = 0.0
        clamped = True
    return PriceQuote(
        total=round_price(raw_total),
        lines=tuple(ctx.lines),
        fallbacks=tuple(ctx.fallbacks),
        clamped=clamped,
    )


def price(
    config: GlobalConfig,
    root: Zone,
    table: Optional[PricingParameterTable] = None,
    sample_prices: Optional[SamplePrices] = None,
) -> int:
    return calculate_price(config, root, table, sample_prices).total
