"""Click-driven zone selection used to pick sibling ranges for grouping."""

from __future__ import annotations

from typing import Sequence

from configurator.schema import Zone
from configurator.zones.tree import ROOT_ID, find_with_parent


def select_zone(root: Zone, selection: Sequence[str], zone_id: str) -> tuple[str, ...]:
    """Return the selection after clicking `zone_id`.

    - first click selects the zone;
    - clicking a selected zone clears the selection, except the sole-selected root;
    - clicking a sibling of a single selected zone selects the inclusive index range;
    - anything else restarts the selection at the clicked zone.
    """
    current = tuple(selection)
    if not current:
        return (zone_id,)
    if zone_id in current:
        if zone_id == ROOT_ID and current == (ROOT_ID,):
            return current
        return ()
    if len(current) == 1:
        anchor_id = current[0]
        _, anchor_parent = find_with_parent(root, anchor_id)
        _, clicked_parent = find_with_parent(root, zone_id)
        if anchor_parent is not None and clicked_parent is not None and anchor_parent.id == clicked_parent.id:
            child_ids = [child.id for child in anchor_parent.children or ()]
            first, second = child_ids.index(anchor_id), child_ids.index(zone_id)
            low, high = min(first, second), max(first, second)
            return tuple(child_ids[low : high + 1])
    return (zone_id,)
