"""Read-only helpers over the zone tree."""

from __future__ import annotations

from typing import Iterator, Optional

from configurator.schema import ZONE_DOOR_CONTENTS, Zone, ZoneContent, ZoneType

ROOT_ID = "root"
RATIO_TOTAL = 100.0


def default_root() -> Zone:
    return Zone(id=ROOT_ID, type=ZoneType.leaf, content=ZoneContent.empty)


def iter_zones(root: Zone) -> Iterator[Zone]:
    """Depth-first, pre-order walk in logical child order."""
    stack = [root]
    while stack:
        zone = stack.pop()
        yield zone
        if zone.children:
            stack.extend(reversed(zone.children))


def find_zone(root: Zone, zone_id: str) -> Optional[Zone]:
    for zone in iter_zones(root):
        if zone.id == zone_id:
            return zone
    return None


def find_with_parent(root: Zone, zone_id: str) -> tuple[Optional[Zone], Optional[Zone]]:
    """Return (zone, parent); parent is None for the root or when not found."""
    if root.id == zone_id:
        return root, None
    for zone in iter_zones(root):
        for child in zone.children or ():
            if child.id == zone_id:
                return child, zone
    return None, None


def duplicate_ids(root: Zone) -> list[str]:
    seen: set[str] = set()
    duplicates: list[str] = []
    for zone in iter_zones(root):
        if zone.id in seen and zone.id not in duplicates:
            duplicates.append(zone.id)
        seen.add(zone.id)
    return duplicates


def has_zone_doors(root: Zone) -> bool:
    """True when any zone carries its own door, which disables the global door."""
    for zone in iter_zones(root):
        if zone.door_content is not None:
            return True
        if zone.is_leaf and zone.content in ZONE_DOOR_CONTENTS:
            return True
    return False


def child_ratios(zone: Zone) -> list[float]:
    """Percent share of each child along the split axis."""
    count = len(zone.children or ())
    if count == 0:
        return []
    if zone.split_ratios is not None and len(zone.split_ratios) == count:
        return [float(r) for r in zone.split_ratios]
    if count == 2 and zone.split_ratio is not None:
        first = float(zone.split_ratio)
        return [first, RATIO_TOTAL - first]
    return [RATIO_TOTAL / count] * count


def equal_ratios(count: int) -> list[float]:
    """Rounded equal shares with the rounding remainder on the last slot."""
    if count <= 0:
        return []
    share = float(round_half_up(RATIO_TOTAL / count))
    ratios = [share] * count
    ratios[-1] = RATIO_TOTAL - share * (count - 1)
    return ratios


def round_half_up(value: float) -> int:
    # round() is banker's rounding; ratios and prices round half away from zero.
    if value < 0:
        return -round_half_up(-value)
    return int(value + 0.5)


def normalize_split_ratios(zone: Zone) -> Zone:
    """Recursively push the rounding remainder of each ratio list onto its last slot."""
    children = zone.children
    if not children:
        return zone
    normalized_children = tuple(normalize_split_ratios(child) for child in children)
    update: dict = {}
    if any(new is not old for new, old in zip(normalized_children, children)):
        update["children"] = normalized_children
    ratios = zone.split_ratios
    if ratios and len(ratios) == len(children):
        total = sum(ratios)
        if abs(total - RATIO_TOTAL) > 1e-9:
            adjusted = list(ratios)
            adjusted[-1] = adjusted[-1] + (RATIO_TOTAL - total)
            update["split_ratios"] = tuple(adjusted)
    if not update:
        return zone
    return zone.model_copy(update=update)


def is_drawer_stack(zone: Zone) -> bool:
    """Horizontal split whose children are all drawer leaves (separators are hidden)."""
    if zone.type != ZoneType.horizontal or not zone.children:
        return False
    return all(
        child.is_leaf and child.content in (ZoneContent.drawer, ZoneContent.push_drawer)
        for child in zone.children
    )


# Panel paths: each step is "r<i>-" (horizontal, rows counted bottom-up) or
# "c<i>-" (vertical). Separator ids are "separator-<h|v>-<path><h|v><i>-0"
# with <i> the logical index of the child above/left of the separator.

def child_panel_path(zone: Zone, path: str, index: int) -> str:
    if zone.type == ZoneType.horizontal:
        return f"{path}r{len(zone.children or ()) - 1 - index}-"
    return f"{path}c{index}-"


def separator_id(zone: Zone, path: str, index: int) -> str:
    axis = "h" if zone.type == ZoneType.horizontal else "v"
    return f"separator-{axis}-{path}{axis}{index}-0"


def separator_ids(zone: Zone, path: str = "") -> list[str]:
    """Ids of the separators between the children of a split node."""
    if zone.is_leaf:
        return []
    return [separator_id(zone, path, i) for i in range(len(zone.children or ()) - 1)]


def iter_separator_ids(root: Zone) -> Iterator[str]:
    stack = [(root, "")]
    while stack:
        zone, path = stack.pop()
        yield from separator_ids(zone, path)
        for index, child in enumerate(zone.children or ()):
            stack.append((child, child_panel_path(zone, path, index)))
