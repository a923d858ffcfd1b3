from __future__ import annotations

import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from configurator.diagnostics import Event
from configurator.schema import ConfigData, GlobalConfig, PlinthType, SavedConfiguration, ZoneContent, ZoneType
from configurator.services.clients import ServiceError
from configurator.session.autosave import AutosaveStore, LocalConfigurationStore, load_json
from configurator.session.restore import restore_configuration, state_from_saved
from configurator.zones import edit
from configurator.zones.tree import default_root

TEMPLATE_PROMPT = "M2(1000,400,700)EbFV2(T,D)"


class ListDiagnosticsSink:
    def __init__(self) -> None:
        self.events: list[Event] = []

    def emit(self, event: Event) -> None:
        self.events.append(event)

    def codes(self) -> list[str]:
        return [event.code for event in self.events]


class RecordingLoader:
    def __init__(self, record=None, error: str = "") -> None:
        self.record = record
        self.error = error
        self.calls: list = []

    def __call__(self, configuration_id):
        self.calls.append(configuration_id)
        if self.error:
            raise ServiceError(self.error)
        return self.record


def _saved() -> SavedConfiguration:
    return SavedConfiguration.from_record(load_json(ROOT / "data/examples/saved_configuration.json"))


def test_state_from_saved_prompt_is_baseline():
    data = ConfigData.model_validate({"dimensions": {"width": 1200}})
    config, root = state_from_saved("M1(1000,400,700)EbFSV2(T,D)", data, GlobalConfig())
    assert (config.width_mm, config.depth_mm, config.height_mm) == (1200, 400, 700)
    assert config.plinth == PlinthType.metal
    assert root.type == ZoneType.vertical

    zones = edit.split(default_root(), "root", "horizontal", 3)
    data = ConfigData(advanced_zones=zones)
    _, root = state_from_saved("M1(1000,400,700)EbFV2(T,D)", data, GlobalConfig())
    assert root == zones


def test_state_from_saved_without_anything_is_default():
    config, root = state_from_saved("", None, GlobalConfig(width_mm=800))
    assert config.width_mm == 800
    assert root == default_root()


def test_local_store_is_consulted_before_remote(tmp_path):
    local = LocalConfigurationStore(tmp_path)
    local.put(_saved())
    remote = RecordingLoader(record=None)
    sink = ListDiagnosticsSink()
    result = restore_configuration(
        "tpl", saved_id=42, saved_sources=[local.get, remote], template_prompt=TEMPLATE_PROMPT, diag=sink
    )
    assert result.source == "saved"
    assert result.saved.id == 42
    assert remote.calls == []
    assert result.config.width_mm == 1800
    assert result.config.finish == "mdf_melamine"
    assert result.config.plinth == PlinthType.wood
    door_zone = result.root.children[1]
    assert door_zone.door_content == ZoneContent.door_right
    assert sink.codes()[-1] == "RESTORE_SELECTED"


def test_failing_remote_falls_through_to_next_source(tmp_path):
    sink = ListDiagnosticsSink()
    broken = RecordingLoader(error="HTTP 502")
    backup = RecordingLoader(record=_saved())
    result = restore_configuration(
        "tpl",
        saved_id="42",
        saved_sources=[LocalConfigurationStore(tmp_path).get, broken, backup],
        diag=sink,
    )
    assert result.source == "saved"
    assert broken.calls == ["42"] and backup.calls == ["42"]
    assert "RESTORE_SOURCE_FAILED" in sink.codes()


def test_missing_saved_record_uses_catalog_config():
    catalog = {
        "dimensions": {"width": 900, "height": 1800},
        "styling": {"socle": "metal"},
        "advancedZones": {"id": "root", "type": "vertical", "children": [{"id": "root-0"}, {"id": "root-1"}]},
    }
    result = restore_configuration(
        "tpl",
        saved_id=7,
        saved_sources=[RecordingLoader(record=None)],
        catalog_config=catalog,
        template_prompt=TEMPLATE_PROMPT,
    )
    assert result.source == "catalog"
    assert (result.config.width_mm, result.config.height_mm) == (900, 1800)
    assert result.config.plinth == PlinthType.metal
    assert [child.id for child in result.root.children] == ["root-0", "root-1"]


def test_invalid_catalog_config_falls_back_to_template():
    sink = ListDiagnosticsSink()
    result = restore_configuration(
        "tpl",
        catalog_config={"dimensions": {"width": "wide"}},
        template_prompt=TEMPLATE_PROMPT,
        diag=sink,
    )
    assert result.source == "template"
    assert result.config.furniture_tag == "M2"
    assert result.config.width_mm == 1000
    assert "RESTORE_CATALOG_INVALID" in sink.codes()


def test_default_when_nothing_is_available():
    result = restore_configuration("tpl")
    assert result.source == "default"
    assert result.root == default_root()
    assert result.config == GlobalConfig()
    assert result.pending is None


def test_fresh_autosave_is_offered_not_applied(tmp_path):
    store = AutosaveStore(tmp_path, max_age_s=3600)
    edited = edit.set_content(default_root(), "root", "dressing")
    store.save("tpl", GlobalConfig(width_mm=600), edited, now=1000.0)
    sink = ListDiagnosticsSink()
    result = restore_configuration("tpl", template_prompt=TEMPLATE_PROMPT, autosave=store, now=1500.0, diag=sink)
    assert result.source == "template"
    assert result.pending is not None
    assert result.pending.root == edited
    assert result.pending.config.width_mm == 600
    selected = [event for event in sink.events if event.code == "RESTORE_SELECTED"][0]
    assert selected.meta["pending_autosave"] is True


def test_stale_autosave_is_not_offered(tmp_path):
    store_sink = ListDiagnosticsSink()
    store = AutosaveStore(tmp_path, max_age_s=60, diag=store_sink)
    store.save("tpl", GlobalConfig(), default_root(), now=1000.0)
    result = restore_configuration("tpl", autosave=store, now=2000.0)
    assert result.pending is None
    assert store_sink.codes() == ["AUTOSAVE_STALE"]


def test_saved_record_wins_over_autosave(tmp_path):
    store = AutosaveStore(tmp_path)
    store.save("tpl", GlobalConfig(), default_root())
    result = restore_configuration("tpl", saved_id=42, saved_sources=[RecordingLoader(record=_saved())], autosave=store)
    assert result.source == "saved"
    assert result.pending is None


def test_duplicate_ids_are_reported():
    sink = ListDiagnosticsSink()
    catalog = {"advancedZones": {"id": "root", "type": "vertical", "children": [{"id": "a"}, {"id": "a"}]}}
    restore_configuration("tpl", catalog_config=catalog, diag=sink)
    duplicate = [event for event in sink.events if event.code == "RESTORE_DUPLICATE_IDS"]
    assert duplicate and duplicate[0].meta["ids"] == ["a"]


def test_state_from_saved_keeps_deleted_separators():
    zones = edit.split(default_root(), "root", "vertical", 3)
    data = ConfigData.model_validate(
        {
            "advancedZones": zones.model_dump(mode="json", by_alias=True, exclude_none=True),
            "deletedPanelIds": ["separator-v-v1-0"],
        }
    )
    config, root = state_from_saved("M1(1000,400,700)EbFV3(,,)", data, GlobalConfig())
    assert root == zones
    assert config.deleted_panel_ids == ("separator-v-v1-0",)

    # a prompt that hides every separator still wins when the payload has none
    config, _ = state_from_saved("M1(1000,400,700)EbFVI2(,)", ConfigData(), GlobalConfig())
    assert config.deleted_panel_ids == ("separator-v-v0-0",)
