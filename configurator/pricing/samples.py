"""Per-component sample (finish colour) surcharges in currency per m2."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Optional

from configurator.schema import ColorRef, GlobalConfig

SamplePrices = Mapping[str, float]


@dataclass(frozen=True)
class SampleSurcharges:
    structure: float = 0.0
    back: float = 0.0
    doors: float = 0.0
    drawers: float = 0.0
    shelves: float = 0.0
    base: float = 0.0


def _price_of(sample_prices: SamplePrices, color_id: Any) -> Optional[float]:
    if color_id is None:
        return None
    value = sample_prices.get(str(color_id))
    if value is None:
        return None
    try:
        return max(0.0, float(value))
    except (TypeError, ValueError):
        return None


def _ref_price(sample_prices: SamplePrices, ref: Optional[ColorRef]) -> Optional[float]:
    if ref is None:
        return None
    return _price_of(sample_prices, ref.color_id)


def resolve_sample_surcharges(config: GlobalConfig, sample_prices: Optional[SamplePrices]) -> SampleSurcharges:
    """Map the chosen colours onto per-component surcharges.

    Single colour: every component uses the selected sample.
    Multi colour: structure and back use their own colour (or nothing);
    doors, drawers, shelves and base fall back to the structure colour.
    """
    prices = sample_prices or {}
    if not config.use_multi_color:
        single = _price_of(prices, config.selected_color_id) or 0.0
        return SampleSurcharges(single, single, single, single, single, single)

    colors = config.component_colors
    structure = _ref_price(prices, colors.structure) or 0.0

    def _own_or_structure(ref: Optional[ColorRef]) -> float:
        own = _ref_price(prices, ref)
        return structure if own is None else own

    return SampleSurcharges(
        structure=structure,
        back=_ref_price(prices, colors.back) or 0.0,
        doors=_own_or_structure(colors.doors),
        drawers=_own_or_structure(colors.drawers),
        shelves=_own_or_structure(colors.shelves),
        base=_own_or_structure(colors.base),
    )
