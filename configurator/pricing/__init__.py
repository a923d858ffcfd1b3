"""Pricing engine, parameter table and display helpers."""

from configurator.pricing.display import DisplayMode, PriceDisplay, display_price, format_price
from configurator.pricing.engine import PriceLine, PriceQuote, calculate_price, metal_foot_count, price
from configurator.pricing.params import PricingParameterTable
from configurator.pricing.samples import SampleSurcharges, resolve_sample_surcharges

__all__ = [
    "DisplayMode",
    "PriceDisplay",
    "PriceLine",
    "PriceQuote",
    "PricingParameterTable",
    "SampleSurcharges",
    "calculate_price",
    "display_price",
    "format_price",
    "metal_foot_count",
    "price",
    "resolve_sample_surcharges",
]
