from __future__ import annotations

import io
import json
import sys
from collections import Counter
from contextlib import redirect_stdout
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from configurator.codec import decode_prompt
from configurator.diagnostics import (
    Event,
    JsonlDiagnosticsSink,
    NoopDiagnosticsSink,
    Severity,
    VALID_COMPONENTS,
    VALID_SEVERITIES,
    VALID_SOURCES,
    VALID_STAGES,
    diag_sink_from_env,
    emit_simple,
    make_event,
    make_run_id,
)
from configurator.pricing import PricingParameterTable, calculate_price
from configurator.schema import GlobalConfig, Zone
from configurator.session.autosave import load_json


class ListDiagnosticsSink:
    def __init__(self) -> None:
        self.events: list[Event] = []

    def emit(self, event: Event) -> None:
        self.events.append(event)


def _state() -> tuple[GlobalConfig, Zone]:
    data = load_json(ROOT / "data/examples/state_wardrobe.json")
    return GlobalConfig.model_validate(data["config"]), Zone.model_validate(data["zones"])


def test_pricing_and_decoding_are_stdout_silent():
    sink = ListDiagnosticsSink()
    config, root = _state()
    buf = io.StringIO()
    with redirect_stdout(buf):
        calculate_price(config, root, PricingParameterTable.empty(), diag=sink)
        decode_prompt("M1(1500,500,730)EbFV3(T,X?,D", diag=sink)
    assert sink.events
    assert buf.getvalue() == ""


def test_diagnostics_event_contract_and_stability():
    sink = ListDiagnosticsSink()
    config, root = _state()
    run_id = make_run_id()
    calculate_price(config, root, PricingParameterTable.empty(), diag=sink, run_id=run_id)
    decode_prompt("V2(T,", diag=sink)

    required_keys = {
        "ts",
        "run_id",
        "stage",
        "component",
        "code",
        "severity",
        "path",
        "source",
        "input_value",
        "resolved_value",
        "reason",
        "meta",
    }
    signatures: list[tuple[str, str, str, int]] = []
    for event in sink.events:
        payload = event.to_dict()
        assert set(payload.keys()) == required_keys
        assert isinstance(payload["run_id"], str)
        assert payload["severity"] in VALID_SEVERITIES
        assert payload["stage"] in VALID_STAGES
        assert payload["source"] in VALID_SOURCES
        assert payload["component"] in VALID_COMPONENTS
        assert isinstance(payload["code"], str) and payload["code"]
        assert payload["reason"]
        if payload["code"] == "PRICE_FALLBACK":
            assert payload["run_id"] == run_id
        signatures.append(
            (
                payload["stage"],
                payload["component"],
                payload["code"],
                int(payload["severity"]),
            )
        )

    counts = Counter(signatures)
    assert counts[("price", "pricing", "PRICE_FALLBACK", int(Severity.INFO))] >= 5
    assert counts[("decode", "codec", "PROMPT_DEGRADED", int(Severity.WARN))] >= 2


def test_emit_simple_contract_and_normalization() -> None:
    sink = ListDiagnosticsSink()
    event = emit_simple(
        sink,
        run_id="run-1",
        stage="price",
        component="pricing",
        code="UNIT_EVENT",
        path="root-0",
        payload={"min": 0, "max": 120},
        severity=Severity.WARN,
        zone_depth=2,
        source="table",
        reason="unit test",
        input_value=-10,
        resolved_value=0.0,
        meta={"hint": "clamp"},
    )
    assert sink.events and sink.events[-1] is event
    event_payload = event.to_dict()
    assert event_payload["stage"] == "price"
    assert event_payload["component"] == "pricing"
    assert event_payload["source"] == "table"
    assert event_payload["meta"]["zone_depth"] == 2
    assert event_payload["meta"]["payload"] == {"min": 0, "max": 120}
    assert event_payload["meta"]["hint"] == "clamp"

    normalized = emit_simple(
        sink,
        code="UNIT_EVENT_NORMALIZE",
        stage="unknown_stage",
        component="unknown_component",
        source="unknown_source",
    )
    assert normalized.stage == "session"
    assert normalized.component == "controller"
    assert normalized.source == "computed"
    assert normalized.meta["normalized_from"] == {
        "stage": "unknown_stage",
        "component": "unknown_component",
        "source": "unknown_source",
    }
    assert normalized.reason == "normalized diagnostics vocabulary"


def test_make_event_clamps_severity_and_keeps_case_insensitive_vocabulary():
    event = make_event(stage="PRICE", component="Pricing", code="X", severity=99, source="Fallback")
    assert event.stage == "price"
    assert event.component == "pricing"
    assert event.source == "fallback"
    assert event.severity == int(Severity.FATAL)
    assert "normalized_from" not in event.meta
    assert event.ts.endswith("Z")


def test_run_id_format():
    run_id = make_run_id(short_len=6)
    prefix, date, clock, short = run_id.split("_")
    assert prefix == "run"
    assert len(date) == 8 and len(clock) == 6
    assert len(short) == 6


def test_jsonl_sink_appends_lines(tmp_path):
    target = tmp_path / "diag" / "events.jsonl"
    sink = JsonlDiagnosticsSink(str(target))
    emit_simple(sink, code="A", stage="price", component="pricing")
    emit_simple(sink, code="B", stage="decode", component="codec", input_value=object())
    lines = target.read_text(encoding="utf-8").splitlines()
    assert [json.loads(line)["code"] for line in lines] == ["A", "B"]


def test_diag_sink_from_env(monkeypatch, tmp_path):
    monkeypatch.delenv("CFG_DIAG_JSONL", raising=False)
    assert isinstance(diag_sink_from_env(), NoopDiagnosticsSink)
    monkeypatch.setenv("CFG_DIAG_JSONL", "  ")
    assert isinstance(diag_sink_from_env(), NoopDiagnosticsSink)
    monkeypatch.setenv("CFG_DIAG_JSONL", str(tmp_path / "out.jsonl"))
    assert isinstance(diag_sink_from_env(), JsonlDiagnosticsSink)
