"""Read-only pricing parameter table (category -> item_type -> param_name -> value)."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Iterable, Mapping, Optional

from configurator.pricing.defaults import param_default
from configurator.schema import material_key

_FALSEY = {"0", "false", "off", "no", "none", ""}


def _as_float(value: Any) -> Optional[float]:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def _is_active(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip().lower() not in _FALSEY
    return bool(value)


def _key(value: Any) -> str:
    return material_key(value)


@dataclass(frozen=True)
class PricingParameterTable:
    """Immutable snapshot of the admin-managed pricing parameters."""

    values: Mapping[str, Mapping[str, Mapping[str, float]]] = field(default_factory=dict)

    @classmethod
    def from_rows(cls, rows: Iterable[Mapping[str, Any]]) -> PricingParameterTable:
        """Build from store rows; inactive or non-numeric rows are dropped."""
        nested: dict[str, dict[str, dict[str, float]]] = {}
        for row in rows:
            if not isinstance(row, Mapping) or not _is_active(row.get("is_active")):
                continue
            category = _key(row.get("category"))
            item_type = _key(row.get("item_type"))
            param_name = _key(row.get("param_name"))
            value = _as_float(row.get("param_value"))
            if not (category and item_type and param_name) or value is None:
                continue
            nested.setdefault(category, {}).setdefault(item_type, {})[param_name] = value
        return cls._freeze(nested)

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any]) -> PricingParameterTable:
        nested: dict[str, dict[str, dict[str, float]]] = {}
        for category, items in (mapping or {}).items():
            if not isinstance(items, Mapping):
                continue
            for item_type, params in items.items():
                if not isinstance(params, Mapping):
                    continue
                for param_name, raw in params.items():
                    value = _as_float(raw)
                    if value is None:
                        continue
                    nested.setdefault(_key(category), {}).setdefault(_key(item_type), {})[_key(param_name)] = value
        return cls._freeze(nested)

    @classmethod
    def empty(cls) -> PricingParameterTable:
        return cls()

    @classmethod
    def _freeze(cls, nested: dict[str, dict[str, dict[str, float]]]) -> PricingParameterTable:
        return cls(
            values=MappingProxyType(
                {
                    category: MappingProxyType({item: MappingProxyType(dict(params)) for item, params in items.items()})
                    for category, items in nested.items()
                }
            )
        )

    def has_category(self, category: str) -> bool:
        return category in self.values

    def item(self, category: str, item_type: str) -> Optional[Mapping[str, float]]:
        return self.values.get(category, {}).get(_key(item_type))

    def has_item(self, category: str, item_type: str) -> bool:
        return self.item(category, item_type) is not None

    def value(self, category: str, item_type: str, param_name: str) -> Optional[float]:
        params = self.item(category, item_type)
        if params is None:
            return None
        return params.get(param_name)

    def pick(self, category: str, item_type: str, param_name: str) -> tuple[float, str]:
        """Return (value, source): the table value, or the documented default.

        A stored 0 counts as unset when the default is non-zero.
        """
        value = self.value(category, item_type, param_name)
        default = param_default(category, item_type, param_name)
        if value is not None and (value != 0 or default == 0):
            return value, "table"
        return default, "fallback"

    def to_mapping(self) -> dict[str, dict[str, dict[str, float]]]:
        return {
            category: {item: dict(params) for item, params in items.items()}
            for category, items in self.values.items()
        }
