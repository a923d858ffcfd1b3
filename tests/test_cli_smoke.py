from __future__ import annotations

import json
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from tools.configurator_cli import load_table, main

STATE = str(ROOT / "data/examples/state_wardrobe.json")
PARAMS = str(ROOT / "data/examples/pricing_params.json")


def test_encode_command(capsys):
    assert main(["encode", STATE]) == 0
    assert capsys.readouterr().out.strip() == "M1(1500,500,730)EbFSV[40,60](HI3(T3,T3,T3),Pg1c)"


def test_decode_command(capsys):
    assert main(["decode", "M1(1000,400,700)EbFS2V2(T1,Pd(D))"]) == 0
    payload = json.loads(capsys.readouterr().out)
    assert payload["issues"] == []
    assert payload["config"]["widthMm"] == 1000
    assert payload["config"]["plinth"] == "wood"
    assert payload["zones"]["type"] == "vertical"
    assert payload["zones"]["children"][1]["doorContent"] == "door_right"


def test_decode_strict_fails_on_degraded_prompt(capsys):
    assert main(["decode", "V2(T,", "--strict"]) == 1
    assert json.loads(capsys.readouterr().out)["issues"]


@pytest.mark.parametrize(
    "extra,expected",
    [
        ([], "672 €"),
        (["--display-mode", "1", "--deviation", "50"], "622 - 722 €"),
    ],
)
def test_price_command(capsys, extra, expected):
    assert main(["price", STATE, "--params", PARAMS, *extra]) == 0
    assert capsys.readouterr().out.strip().splitlines()[-1] == expected


def test_price_command_without_params_uses_fallbacks(capsys):
    assert main(["price", STATE, "--lines"]) == 0
    out = capsys.readouterr().out
    assert "[fallback]" in out
    assert out.strip().splitlines()[-1] == "1 059 €"


def test_load_table_accepts_row_list_and_mapping(tmp_path):
    rows = tmp_path / "rows.json"
    rows.write_text(json.dumps(json.loads(Path(PARAMS).read_text(encoding="utf-8"))["data"]), encoding="utf-8")
    assert load_table(str(rows)).value("handles", "knob", "price_per_unit") == 5.0

    mapping = tmp_path / "mapping.json"
    mapping.write_text(json.dumps({"casing": {"full": {"coefficient": 1.5}}}), encoding="utf-8")
    assert load_table(str(mapping)).value("casing", "full", "coefficient") == 1.5
