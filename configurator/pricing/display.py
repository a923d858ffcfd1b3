"""Exact or range price display."""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum


class DisplayMode(IntEnum):
    EXACT = 0
    RANGE = 1


@dataclass(frozen=True)
class PriceDisplay:
    low: int
    high: int

    @property
    def is_range(self) -> bool:
        return self.low != self.high


def display_price(price: int, mode: int = DisplayMode.EXACT, deviation: int = 0) -> PriceDisplay:
    """Range mode shows [price - deviation, price + deviation], floored at 0."""
    value = max(0, int(price))
    spread = max(0, int(deviation))
    if int(mode) == DisplayMode.RANGE and spread > 0:
        return PriceDisplay(low=max(0, value - spread), high=value + spread)
    return PriceDisplay(low=value, high=value)


def _group_thousands(value: int) -> str:
    return f"{value:,}".replace(",", " ")


def format_price(display: PriceDisplay, currency: str = "€") -> str:
    if display.is_range:
        return f"{_group_thousands(display.low)} - {_group_thousands(display.high)} {currency}"
    return f"{_group_thousands(display.low)} {currency}"
