"""Fallback pricing constants.

Two layers:
1) parameter defaults, used when a category/item is configured but one of
   its parameters is missing;
2) flat fallbacks, used when the whole category/item is absent from the
   pricing table.

Table values always win over both layers.
"""

from __future__ import annotations

from typing import Any, Mapping

ParamDict = dict[str, dict[str, dict[str, float]]]

_PARAM_DEFAULTS: ParamDict = {
    "casing": {
        "full": {"coefficient": 1.2},
    },
    "bases": {
        "none": {"fixed_price": 0.0},
        "metal": {"price_per_foot": 20.0, "foot_interval": 2000.0},
        "wood": {"height": 80.0},
    },
    "doors": {
        "*": {"coefficient": 0.00004, "hinge_count": 2.0},
    },
    "hinges": {
        "standard": {"price_per_unit": 5.0},
    },
    "drawers": {
        "*": {"base_price": 35.0, "coefficient": 0.0001},
    },
    "shelves": {
        "glass": {"price_per_m2": 250.0},
        "wood": {"price_per_m2": 80.0},
    },
    "wardrobe": {
        "rod": {"price_per_linear_meter": 20.0},
    },
    "cables": {
        "pass_cable": {"fixed_price": 10.0},
    },
    "lighting": {
        "led": {"price_per_linear_meter": 15.0},
    },
    "materials": {
        "*": {"price_per_m2": 0.0, "supplement": 0.0},
    },
    "handles": {
        "*": {"price_per_unit": 0.0},
    },
}

_FLAT_FALLBACKS: dict[str, float] = {
    # Carcass without casing parameters: volume (m3) x constant.
    "casing.volume_m3": 1500.0,
    "bases.none": 0.0,
    "bases.metal": 40.0,
    "bases.wood": 60.0,
    "doors.door": 40.0,
    "doors.door_right": 40.0,
    "doors.push_door": 50.0,
    "doors.door_double": 80.0,
    "doors.mirror_door": 95.0,
    "drawers.drawer": 35.0,
    "drawers.push_drawer": 45.0,
    "shelves.glass_each": 25.0,
    "wardrobe.rod": 20.0,
    "cables.pass_cable": 10.0,
    "lighting.led_per_m": 15.0,
    "shelves.separator_per_m2": 80.0,
    "global_door.single": 40.0,
    "global_door.double": 80.0,
}


def param_default(category: str, item_type: str, param_name: str) -> float:
    """Default for one parameter; "*" entries cover every item of a category."""
    items: Mapping[str, Mapping[str, Any]] = _PARAM_DEFAULTS.get(category, {})
    for key in (item_type, "*"):
        params = items.get(key)
        if params is not None and param_name in params:
            return float(params[param_name])
    return 0.0


def flat_fallback(key: str) -> float:
    if key not in _FLAT_FALLBACKS:
        raise KeyError(f"unknown pricing fallback {key!r}")
    return float(_FLAT_FALLBACKS[key])


def fallback_keys() -> list[str]:
    return sorted(_FLAT_FALLBACKS)
