"""(GlobalConfig, Zone) -> geometry-service prompt string."""

from __future__ import annotations

from typing import AbstractSet

from configurator.schema import (
    DoorSide,
    DoorType,
    GlobalConfig,
    HandleType,
    PlinthType,
    Zone,
    ZoneContent,
    ZoneType,
)
from configurator.zones.tree import (
    child_panel_path,
    child_ratios,
    has_zone_doors,
    is_drawer_stack,
    round_half_up,
    separator_ids,
)

FIXED_FLAGS = "EbF"

HANDLE_CODES: dict[HandleType, str] = {
    HandleType.vertical_bar: "1",
    HandleType.horizontal_bar: "2",
    HandleType.knob: "3",
    HandleType.recessed: "4",
}

DOOR_CODES: dict[ZoneContent, str] = {
    ZoneContent.door: "Pg",
    ZoneContent.door_right: "Pd",
    ZoneContent.door_double: "P2",
    ZoneContent.mirror_door: "Pm",
    ZoneContent.push_door: "Po",
}

PLINTH_CODES: dict[PlinthType, str] = {
    PlinthType.none: "",
    PlinthType.metal: "S",
    PlinthType.wood: "S2",
}


def _handle_code(zone: Zone) -> str:
    if zone.handle_type is None:
        return ""
    return HANDLE_CODES.get(zone.handle_type, "")


def _door_code(zone: Zone, door: ZoneContent) -> str:
    code = DOOR_CODES.get(door, "Pg")
    # Push doors open without a handle.
    if door == ZoneContent.push_door:
        return code
    return code + _handle_code(zone)


def _leaf_code(zone: Zone) -> str:
    content = zone.content or ZoneContent.empty
    if content in DOOR_CODES:
        code = _door_code(zone, content)
    elif content == ZoneContent.drawer:
        code = "T" + _handle_code(zone)
    elif content == ZoneContent.push_drawer:
        code = "To"
    elif content == ZoneContent.dressing:
        code = "D"
    elif content == ZoneContent.glass_shelf:
        count = zone.glass_shelf_count or 1
        code = "v" if count <= 1 else f"v{count}"
    elif content == ZoneContent.pegboard:
        code = "p"
    else:
        code = ""
    if zone.has_cable_hole:
        code += "c"
    if zone.has_dressing and content != ZoneContent.dressing:
        code += "D"
    return code


def _ratio_code(zone: Zone) -> str:
    children = zone.children or ()
    if zone.split_ratio is None and zone.split_ratios is None:
        return str(len(children))
    ratios = [round_half_up(r) for r in child_ratios(zone)]
    if len(ratios) == 2:
        ratios[1] = 100 - ratios[0]
    if zone.type == ZoneType.horizontal:
        ratios.reverse()
    return "[" + ",".join(str(r) for r in ratios) + "]"


def _hidden_separators(zone: Zone, deleted: AbstractSet[str], path: str) -> bool:
    if is_drawer_stack(zone):
        return True
    ids = separator_ids(zone, path)
    # The prompt has no per-separator flag: only a fully deleted run is invisible.
    return bool(ids) and all(sep in deleted for sep in ids)


def encode_zone(zone: Zone, deleted: AbstractSet[str] = frozenset(), path: str = "") -> str:
    """Encode one subtree.

    Horizontal children (and their ratios) are written bottom-up, i.e. in
    reverse of their logical top-to-bottom order. `deleted` holds separator
    ids removed by the customer; `path` is the panel path of `zone`.
    """
    if zone.is_leaf:
        inner = _leaf_code(zone)
    else:
        indexed = list(enumerate(zone.children or ()))
        if zone.type == ZoneType.horizontal:
            indexed.reverse()
        prefix = "H" if zone.type == ZoneType.horizontal else "V"
        if _hidden_separators(zone, deleted, path):
            prefix += "I"
        body = ",".join(encode_zone(child, deleted, child_panel_path(zone, path, i)) for i, child in indexed)
        inner = f"{prefix}{_ratio_code(zone)}({body})"
    if zone.door_content is not None:
        return f"{_door_code(zone, zone.door_content)}({inner})"
    return inner


def encode_header(config: GlobalConfig) -> str:
    dims = [config.width_mm, config.depth_mm, config.height_mm]
    if config.height_right_mm is not None:
        dims.append(config.height_right_mm)
    return f"{config.furniture_tag}({','.join(str(int(d)) for d in dims)})"


def global_door_code(config: GlobalConfig) -> str:
    if config.door_type == DoorType.double:
        return "P2"
    if config.door_type == DoorType.single:
        return "Pd" if config.door_side == DoorSide.right else "Pg"
    return ""


def encode_flags(config: GlobalConfig, root: Zone) -> str:
    flags = FIXED_FLAGS + PLINTH_CODES.get(config.plinth, "")
    if not has_zone_doors(root):
        flags += global_door_code(config)
    return flags


def encode_prompt(config: GlobalConfig, root: Zone) -> str:
    """Build the single-line prompt sent to the geometry service."""
    deleted = frozenset(config.deleted_panel_ids)
    return encode_header(config) + encode_flags(config, root) + encode_zone(root, deleted)
