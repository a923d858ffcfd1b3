from __future__ import annotations

import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from configurator.codec import decode_prompt, encode_prompt
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
from configurator.session.autosave import load_json
from configurator.zones import edit
from configurator.zones.tree import default_root


def _state(path: str) -> tuple[GlobalConfig, Zone]:
    data = load_json(ROOT / path)
    return GlobalConfig.model_validate(data["config"]), Zone.model_validate(data["zones"])


def _built_tree() -> Zone:
    root = edit.split(default_root(), "root", "vertical", 3)
    root = edit.set_content(root, "root-0", "drawer")
    root = edit.set_handle_type(root, "root-0", "recessed")
    root = edit.split(root, "root-1", "horizontal", 2)
    root = edit.set_content(root, "root-1-0", "glass_shelf")
    root = edit.set_glass_shelf_count(root, "root-1-0", 3)
    root = edit.toggle_cable_hole(root, "root-1-1")
    root = edit.set_content(root, "root-2", "dressing")
    root = edit.set_door_content(root, "root-2", "door_right")
    root = edit.set_handle_type(root, "root-2", "knob")
    return root


def test_encode_fixture_state():
    config, root = _state("data/examples/state_wardrobe.json")
    assert encode_prompt(config, root) == "M1(1500,500,730)EbFSV[40,60](HI3(T3,T3,T3),Pg1c)"


def test_encode_built_tree():
    config = GlobalConfig(width_mm=1200, depth_mm=400, height_mm=2000, plinth="wood")
    prompt = encode_prompt(config, _built_tree())
    assert prompt == "M1(1200,400,2000)EbFS2V[33,33,34](T4,H[50,50](c,v3),Pd3(D))"


def test_roundtrip_built_tree():
    config = GlobalConfig(width_mm=1200, depth_mm=400, height_mm=2000, plinth="wood")
    root = _built_tree()
    decoded = decode_prompt(encode_prompt(config, root))
    assert decoded.issues == ()
    assert decoded.root == root
    restored = decoded.to_config()
    assert (restored.width_mm, restored.depth_mm, restored.height_mm) == (1200, 400, 2000)
    assert restored.plinth == PlinthType.wood
    assert restored.door_type == DoorType.none


def test_roundtrip_global_door_and_height_right():
    config = GlobalConfig(
        furniture_tag="M3",
        width_mm=2400,
        depth_mm=600,
        height_mm=2200,
        height_right_mm=1600,
        plinth="metal",
        door_type="single",
        door_side="right",
    )
    root = edit.split(default_root(), "root", "vertical", 2)
    root = edit.set_content(root, "root-0", "pegboard")
    prompt = encode_prompt(config, root)
    assert prompt == "M3(2400,600,2200,1600)EbFSPdV[50,50](p,)"

    decoded = decode_prompt(prompt)
    restored = decoded.to_config()
    assert decoded.root == root
    assert restored.furniture_tag == "M3"
    assert restored.height_right_mm == 1600
    assert restored.door_type == DoorType.single
    assert restored.door_side == DoorSide.right


def test_zone_doors_suppress_global_door():
    config = GlobalConfig(door_type="double")
    root = edit.split(default_root(), "root", "vertical", 2)
    assert encode_prompt(config, root).endswith("EbFP2V[50,50](,)")

    with_zone_door = edit.set_content(root, "root-1", "door")
    prompt = encode_prompt(config, with_zone_door)
    assert "P2" not in prompt
    assert prompt.endswith("EbFV[50,50](,Pg)")


def test_horizontal_order_inversion():
    root = Zone(
        id="root",
        type="horizontal",
        split_ratios=(20, 30, 50),
        children=(
            Zone(id="root-0", content="drawer"),
            Zone(id="root-1", content="glass_shelf"),
            Zone(id="root-2", content="dressing"),
        ),
    )
    prompt = encode_prompt(GlobalConfig(), root)
    # Bottom-up on the wire: last logical child first, ratios reversed with it.
    assert prompt.endswith("H[50,30,20](D,v,T)")

    decoded = decode_prompt(prompt).root
    assert [child.content for child in decoded.children] == [
        ZoneContent.drawer,
        ZoneContent.glass_shelf,
        ZoneContent.dressing,
    ]
    assert [child.id for child in decoded.children] == ["root-0", "root-1", "root-2"]
    assert decoded.split_ratios == (20.0, 30.0, 50.0)


def test_drawer_stack_marks_invisible_separators():
    root = edit.split(default_root(), "root", "horizontal", 2)
    root = edit.set_content(root, "root-0", "drawer")
    root = edit.set_content(root, "root-1", "push_drawer")
    assert encode_prompt(GlobalConfig(), root).endswith("HI[50,50](To,T)")
    assert decode_prompt(encode_prompt(GlobalConfig(), root)).root == root


def test_door_wrapping_split_node():
    root = edit.split(default_root(), "root", "horizontal", 2)
    root = edit.set_door_content(root, "root", "mirror_door")
    root = edit.set_handle_type(root, "root", "vertical_bar")
    prompt = encode_prompt(GlobalConfig(), root)
    assert prompt.endswith("Pm1(H[50,50](,))")

    decoded = decode_prompt(prompt).root
    assert decoded.type == ZoneType.horizontal
    assert decoded.door_content == ZoneContent.mirror_door
    assert decoded.handle_type == HandleType.vertical_bar
    assert decoded == root


def test_push_door_has_no_handle_digit():
    root = edit.split(default_root(), "root", "vertical", 2)
    root = edit.set_content(root, "root-0", "push_door")
    root = edit.set_handle_type(root, "root-0", "knob")
    assert encode_prompt(GlobalConfig(), root).endswith("V[50,50](Po,)")


def test_leaf_flags_encoding():
    root = edit.split(default_root(), "root", "vertical", 2)
    root = edit.set_content(root, "root-0", "drawer")
    root = edit.toggle_cable_hole(root, "root-0")
    root = edit.toggle_dressing(root, "root-0")
    root = edit.set_content(root, "root-1", "door")
    root = edit.toggle_dressing(root, "root-1")
    prompt = encode_prompt(GlobalConfig(), root)
    assert prompt.endswith("V[50,50](TcD,PgD)")
    assert decode_prompt(prompt).root == root


def _two_columns() -> Zone:
    return Zone.model_validate(
        {"id": "root", "type": "vertical", "children": [{"id": "root-0", "type": "leaf"}, {"id": "root-1", "type": "leaf"}]}
    )


def test_deleted_separators_make_split_invisible():
    root = _two_columns()
    config = GlobalConfig(width_mm=1000, depth_mm=500, height_mm=1000, deleted_panel_ids=("separator-v-v0-0",))
    assert encode_prompt(config, root) == "M1(1000,500,1000)EbFVI2(,)"
    assert encode_prompt(config.updated(deleted_panel_ids=()), root) == "M1(1000,500,1000)EbFV2(,)"

    decoded = decode_prompt("M1(1000,500,1000)EbFVI2(,)")
    assert decoded.root == root
    assert decoded.to_config().deleted_panel_ids == ("separator-v-v0-0",)


def test_partially_deleted_separators_stay_visible():
    root = edit.split(default_root(), "root", "vertical", 3)
    config = GlobalConfig(deleted_panel_ids=("separator-v-v0-0",))
    assert encode_prompt(config, root).endswith("V[33,33,34](,,)")
    config = config.updated(deleted_panel_ids=("separator-v-v0-0", "separator-v-v1-0"))
    assert encode_prompt(config, root).endswith("VI[33,33,34](,,)")


def test_nested_separator_ids_follow_panel_paths():
    root = edit.split(default_root(), "root", "vertical", 2)
    root = edit.split(root, "root-1", "horizontal", 2)
    config = GlobalConfig(deleted_panel_ids=("separator-h-c1-h0-0",))
    prompt = encode_prompt(config, root)
    assert prompt.endswith("V[50,50](,HI[50,50](,))")
    assert decode_prompt(prompt).to_config().deleted_panel_ids == ("separator-h-c1-h0-0",)


def test_drawer_stack_does_not_report_deleted_separators():
    decoded = decode_prompt("M1(1000,500,1000)EbFHI2(T,T)")
    assert decoded.to_config().deleted_panel_ids == ()
