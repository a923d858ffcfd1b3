from __future__ import annotations

import sys
from pathlib import Path

import pytest
from pydantic import ValidationError

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from configurator.schema import ColorRef, HandleType, ZoneContent, ZoneType
from configurator.session.selection import select_zone
from configurator.zones import edit
from configurator.zones.tree import (
    child_ratios,
    default_root,
    duplicate_ids,
    equal_ratios,
    find_with_parent,
    find_zone,
    has_zone_doors,
    iter_zones,
    normalize_split_ratios,
)


def _four_columns():
    return edit.split(default_root(), "root", "vertical", 4)


def test_split_creates_named_children_with_equal_ratios():
    root = edit.split(default_root(), "root", "horizontal", 3)
    assert root.type == ZoneType.horizontal
    assert root.content is None
    assert [child.id for child in root.children] == ["root-0", "root-1", "root-2"]
    assert all(child.content == ZoneContent.empty for child in root.children)
    assert root.split_ratios == (33.0, 33.0, 34.0)
    assert root.split_ratio is None

    two = edit.split(default_root(), "root", "vertical")
    assert two.split_ratio == 50.0
    assert two.split_ratios is None


def test_split_only_applies_to_leaves():
    root = edit.split(default_root(), "root", "vertical", 2)
    assert edit.split(root, "root", "horizontal", 3) is root
    assert edit.split(root, "missing", "horizontal", 2) is root


def test_split_rejects_bad_arguments():
    with pytest.raises(edit.ZoneEditError):
        edit.split(default_root(), "root", "vertical", 1)
    with pytest.raises(edit.ZoneEditError):
        edit.split(default_root(), "root", "leaf", 2)


def test_edits_share_untouched_subtrees():
    root = edit.split(default_root(), "root", "vertical", 2)
    root = edit.split(root, "root-0", "horizontal", 2)
    updated = edit.set_content(root, "root-1", "drawer")
    assert updated is not root
    assert updated.children[0] is root.children[0]
    assert find_zone(updated, "root-1").content == ZoneContent.drawer
    assert find_zone(root, "root-1").content == ZoneContent.empty


def test_zones_are_immutable():
    root = default_root()
    with pytest.raises(ValidationError):
        root.content = ZoneContent.drawer


def test_set_content_resets_glass_shelf_count():
    root = edit.split(default_root(), "root", "vertical", 2)
    root = edit.set_content(root, "root-0", "glass")
    root = edit.set_glass_shelf_count(root, "root-0", 9)
    assert find_zone(root, "root-0").glass_shelf_count == 5
    root = edit.set_glass_shelf_count(root, "root-0", 1)
    assert find_zone(root, "root-0").glass_shelf_count is None
    root = edit.set_glass_shelf_count(root, "root-0", 3)
    root = edit.set_content(root, "root-0", "drawer")
    assert find_zone(root, "root-0").glass_shelf_count is None


def test_leaf_only_edits_ignore_split_nodes():
    root = edit.split(default_root(), "root", "vertical", 2)
    assert edit.set_content(root, "root", "drawer") is root
    assert edit.toggle_light(root, "root") is root


def test_toggles_flip_flags():
    root = edit.split(default_root(), "root", "vertical", 2)
    root = edit.toggle_light(root, "root-0")
    root = edit.toggle_cable_hole(root, "root-0")
    root = edit.toggle_dressing(root, "root-1")
    first, second = root.children
    assert first.has_light and first.has_cable_hole and not first.has_dressing
    assert second.has_dressing
    assert not edit.toggle_light(root, "root-0").children[0].has_light


def test_door_content_set_and_clear():
    root = edit.split(default_root(), "root", "vertical", 2)
    root = edit.set_door_content(root, "root", "door_double")
    assert root.door_content == ZoneContent.door_double
    assert has_zone_doors(root)
    assert edit.set_door_content(root, "root", "empty").door_content is None
    assert edit.set_door_content(root, "root", None).door_content is None


def test_handle_type_aliases():
    root = edit.set_handle_type(default_root(), "root", "bar")
    assert root.handle_type == HandleType.vertical_bar
    assert edit.set_handle_type(root, "root", None).handle_type is None


def test_zone_color_set_and_remove():
    root = edit.split(default_root(), "root", "vertical", 2)
    root = edit.set_zone_color(root, "root-0", {"colorId": 7, "hex": "#112233"})
    assert find_zone(root, "root-0").zone_color == ColorRef(color_id=7, hex="#112233")
    root = edit.set_zone_color(root, "root-0", {"colorId": 7})
    assert find_zone(root, "root-0").zone_color is None
    root = edit.set_zone_color(root, "root-1", ColorRef(hex="#abcdef"))
    root = edit.set_zone_color(root, "root-1", None)
    assert find_zone(root, "root-1").zone_color is None


def test_group_contiguous_siblings():
    root = _four_columns()
    grouped = edit.group_zones(root, ["root-2", "root-1"], forced_door_content="door_double", group_id="group-a")
    assert [child.id for child in grouped.children] == ["root-0", "group-a", "root-3"]
    assert grouped.split_ratios == (25.0, 50.0, 25.0)

    group = grouped.children[1]
    assert group.type == ZoneType.vertical
    assert group.door_content == ZoneContent.door_double
    assert group.split_ratio == 50.0
    assert [child.id for child in group.children] == ["root-1", "root-2"]
    assert group.children[0] is root.children[1]
    assert duplicate_ids(grouped) == []


def test_group_renormalizes_uneven_ratios():
    root = edit.split(default_root(), "root", "horizontal", 3)
    grouped = edit.group_zones(root, ["root-1", "root-2"], group_id="group-b")
    assert child_ratios(grouped) == [33.0, 67.0]
    group = grouped.children[1]
    assert sum(child_ratios(group)) == pytest.approx(100.0)
    assert group.door_content is None


def test_group_rejects_gaps_and_foreign_parents():
    root = _four_columns()
    with pytest.raises(edit.GroupingError, match="side by side"):
        edit.group_zones(root, ["root-0", "root-2"])

    nested = edit.split(root, "root-3", "horizontal", 2)
    with pytest.raises(edit.GroupingError, match="same group"):
        edit.group_zones(nested, ["root-2", "root-3-0"])
    with pytest.raises(edit.GroupingError, match="at least two"):
        edit.group_zones(nested, ["root-2"])
    assert find_zone(nested, "root-3-0") is not None


def test_tree_helpers():
    root = edit.split(_four_columns(), "root-1", "horizontal", 2)
    assert [zone.id for zone in iter_zones(root)] == [
        "root",
        "root-0",
        "root-1",
        "root-1-0",
        "root-1-1",
        "root-2",
        "root-3",
    ]
    zone, parent = find_with_parent(root, "root-1-1")
    assert zone.id == "root-1-1" and parent.id == "root-1"
    assert find_with_parent(root, "root") == (root, None)
    assert equal_ratios(3) == [33.0, 33.0, 34.0]
    assert equal_ratios(6) == [17.0, 17.0, 17.0, 17.0, 17.0, 15.0]


def test_normalize_split_ratios_pushes_remainder_last():
    root = edit.split(default_root(), "root", "vertical", 3)
    skewed = root.model_copy(update={"split_ratios": (30.0, 30.0, 30.0)})
    assert normalize_split_ratios(skewed).split_ratios == (30.0, 30.0, 40.0)
    assert normalize_split_ratios(root) is root


def test_select_zone_ranges():
    root = _four_columns()
    assert select_zone(root, (), "root-1") == ("root-1",)
    assert select_zone(root, ("root-1",), "root-3") == ("root-1", "root-2", "root-3")
    assert select_zone(root, ("root-3",), "root-0") == ("root-0", "root-1", "root-2", "root-3")
    assert select_zone(root, ("root-1", "root-2"), "root-2") == ()
    assert select_zone(root, ("root-1", "root-2"), "root-0") == ("root-0",)
    assert select_zone(root, ("root",), "root") == ("root",)
    assert select_zone(root, ("root",), "root-1") == ("root-1",)
