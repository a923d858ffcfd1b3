"""Pure zone-tree rewrites.

Every operation returns a new tree. Only the path from the root to the
edited node is rebuilt; untouched subtrees are shared with the input tree.
Operations addressed at an unknown id (or at a split node for leaf-only
edits) return the input tree unchanged.
"""

from __future__ import annotations

import uuid
from typing import Any, Callable, Iterable, Optional, Union

from configurator.schema import (
    ColorRef,
    Zone,
    ZoneContent,
    ZoneType,
    canonical_content,
    canonical_handle,
)
from configurator.zones.tree import RATIO_TOTAL, child_ratios, equal_ratios, iter_zones

GLASS_SHELF_MIN = 1
GLASS_SHELF_MAX = 5


class ZoneEditError(ValueError):
    """Rejected tree edit; the tree is left untouched."""


class GroupingError(ZoneEditError):
    """Zones cannot be grouped (different parents or not side by side)."""


def _replace(root: Zone, zone_id: str, fn: Callable[[Zone], Zone]) -> Zone:
    if root.id == zone_id:
        return fn(root)
    if not root.children:
        return root
    new_children = tuple(_replace(child, zone_id, fn) for child in root.children)
    if all(new is old for new, old in zip(new_children, root.children)):
        return root
    return root.model_copy(update={"children": new_children})


def _on_leaf(root: Zone, zone_id: str, fn: Callable[[Zone], Zone]) -> Zone:
    return _replace(root, zone_id, lambda zone: fn(zone) if zone.is_leaf else zone)


def _ratio_fields(ratios: list[float]) -> dict[str, Any]:
    if len(ratios) == 2:
        return {"split_ratio": ratios[0], "split_ratios": None}
    if len(ratios) > 2:
        return {"split_ratio": None, "split_ratios": tuple(ratios)}
    return {"split_ratio": None, "split_ratios": None}


def split(root: Zone, zone_id: str, axis: Union[ZoneType, str], count: int = 2) -> Zone:
    """Turn a leaf into a split with `count` empty children named `<zone_id>-<i>`."""
    zone_type = ZoneType(getattr(axis, "value", axis))
    if zone_type == ZoneType.leaf:
        raise ZoneEditError("split axis must be horizontal or vertical")
    if int(count) < 2:
        raise ZoneEditError(f"split needs at least 2 children, got {count}")
    count = int(count)

    def _split(zone: Zone) -> Zone:
        children = tuple(
            Zone(id=f"{zone.id}-{index}", type=ZoneType.leaf, content=ZoneContent.empty)
            for index in range(count)
        )
        update: dict[str, Any] = {
            "type": zone_type,
            "content": None,
            "children": children,
            "has_light": False,
            "has_cable_hole": False,
            "has_dressing": False,
            "glass_shelf_count": None,
        }
        update.update(_ratio_fields(equal_ratios(count)))
        return zone.model_copy(update=update)

    return _on_leaf(root, zone_id, _split)


def set_content(root: Zone, zone_id: str, content: Union[ZoneContent, str]) -> Zone:
    value = canonical_content(content)

    def _set(zone: Zone) -> Zone:
        update: dict[str, Any] = {"content": value}
        if value != ZoneContent.glass_shelf:
            update["glass_shelf_count"] = None
        return zone.model_copy(update=update)

    return _on_leaf(root, zone_id, _set)


def toggle_light(root: Zone, zone_id: str) -> Zone:
    return _on_leaf(root, zone_id, lambda zone: zone.model_copy(update={"has_light": not zone.has_light}))


def toggle_cable_hole(root: Zone, zone_id: str) -> Zone:
    return _on_leaf(
        root, zone_id, lambda zone: zone.model_copy(update={"has_cable_hole": not zone.has_cable_hole})
    )


def toggle_dressing(root: Zone, zone_id: str) -> Zone:
    return _on_leaf(
        root, zone_id, lambda zone: zone.model_copy(update={"has_dressing": not zone.has_dressing})
    )


def set_door_content(root: Zone, zone_id: str, content: Union[ZoneContent, str, None]) -> Zone:
    value: Optional[ZoneContent] = None
    if content is not None:
        value = canonical_content(content)
        if value == ZoneContent.empty:
            value = None
    return _replace(root, zone_id, lambda zone: zone.model_copy(update={"door_content": value}))


def set_handle_type(root: Zone, zone_id: str, handle: Any) -> Zone:
    value = canonical_handle(handle)
    return _replace(root, zone_id, lambda zone: zone.model_copy(update={"handle_type": value}))


def set_zone_color(root: Zone, zone_id: str, color: Union[ColorRef, dict, None]) -> Zone:
    value: Optional[ColorRef] = None
    if isinstance(color, dict):
        if color.get("hex"):
            value = ColorRef.model_validate(color)
    elif color is not None and color.hex:
        value = color
    return _replace(root, zone_id, lambda zone: zone.model_copy(update={"zone_color": value}))


def set_glass_shelf_count(root: Zone, zone_id: str, count: int) -> Zone:
    clamped = max(GLASS_SHELF_MIN, min(GLASS_SHELF_MAX, int(count)))
    # A single shelf is the implicit default and is not stored.
    value = clamped if clamped > 1 else None
    return _on_leaf(root, zone_id, lambda zone: zone.model_copy(update={"glass_shelf_count": value}))


def _common_parent(root: Zone, zone_ids: set[str]) -> Optional[Zone]:
    for zone in iter_zones(root):
        if not zone.children:
            continue
        child_ids = {child.id for child in zone.children}
        if zone_ids <= child_ids:
            return zone
    return None


def group_zones(
    root: Zone,
    zone_ids: Iterable[str],
    forced_door_content: Union[ZoneContent, str, None] = None,
    group_id: Optional[str] = None,
) -> Zone:
    """Wrap a contiguous run of siblings into one synthetic group node.

    The group takes the parent's axis, its children keep their relative
    proportions (renormalized to 100) and the parent's slot for the group is
    the sum of the grouped ratios. Raises GroupingError without touching the
    tree when the ids do not share a parent or are not side by side.
    """
    ids = list(dict.fromkeys(zone_ids))
    if len(ids) < 2:
        raise GroupingError("select at least two zones to group")
    parent = _common_parent(root, set(ids))
    if parent is None:
        raise GroupingError("zones must be in the same group")

    children = list(parent.children or ())
    indices = sorted(index for index, child in enumerate(children) if child.id in ids)
    if indices != list(range(indices[0], indices[0] + len(indices))):
        raise GroupingError("zones must be side by side")

    ratios = child_ratios(parent)
    start, stop = indices[0], indices[-1] + 1
    grouped_ratios = ratios[start:stop]
    group_total = sum(grouped_ratios)
    if group_total > 0:
        inner = [r * RATIO_TOTAL / group_total for r in grouped_ratios]
    else:
        inner = equal_ratios(len(grouped_ratios))
    inner[-1] = RATIO_TOTAL - sum(inner[:-1])

    door_value = None
    if forced_door_content is not None:
        door_value = canonical_content(forced_door_content)
        if door_value == ZoneContent.empty:
            door_value = None
    group_fields: dict[str, Any] = {
        "id": group_id or f"group-{uuid.uuid4().hex[:9]}",
        "type": parent.type,
        "children": tuple(children[start:stop]),
        "door_content": door_value,
    }
    group_fields.update(_ratio_fields(inner))
    group = Zone.model_validate(group_fields)

    new_children = tuple(children[:start]) + (group,) + tuple(children[stop:])
    parent_ratios = ratios[:start] + [group_total] + ratios[stop:]
    parent_update: dict[str, Any] = {"children": new_children}
    parent_update.update(_ratio_fields(parent_ratios))
    return _replace(root, parent.id, lambda zone: zone.model_copy(update=parent_update))
