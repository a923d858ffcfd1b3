"""Command-line access to the prompt codec and the pricing engine.

Usage:
  python tools/configurator_cli.py encode data/examples/state_wardrobe.json
  python tools/configurator_cli.py decode "M1(1500,500,730)EbFSV2(T1,Pg1)"
  python tools/configurator_cli.py price data/examples/state_wardrobe.json --params data/examples/pricing_params.json
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from configurator.codec import decode_prompt, encode_prompt  # noqa: E402
from configurator.diagnostics import diag_sink_from_env  # noqa: E402
from configurator.pricing import PricingParameterTable, calculate_price, display_price, format_price  # noqa: E402
from configurator.schema import GlobalConfig, Zone  # noqa: E402
from configurator.session.autosave import load_json  # noqa: E402
from configurator.zones.tree import default_root  # noqa: E402


def load_state(path: str) -> tuple[GlobalConfig, Zone]:
    """State file: {"config": GlobalConfig, "zones": Zone}, camelCase or snake_case keys."""
    data = load_json(path)
    config = GlobalConfig.model_validate(data.get("config") or {})
    zones = data.get("zones")
    root = Zone.model_validate(zones) if zones else default_root()
    return config, root


def load_table(path: str) -> PricingParameterTable:
    """Pricing file: the store payload {"data": [rows]}, a bare row list, or a nested mapping."""
    data: Any = json.loads(Path(path).read_text(encoding="utf-8"))
    if isinstance(data, dict) and isinstance(data.get("data"), list):
        data = data["data"]
    if isinstance(data, list):
        return PricingParameterTable.from_rows(data)
    return PricingParameterTable.from_mapping(data)


def _cmd_encode(args: argparse.Namespace) -> int:
    config, root = load_state(args.state)
    print(encode_prompt(config, root))
    return 0


def _cmd_decode(args: argparse.Namespace) -> int:
    decoded = decode_prompt(args.prompt, diag=diag_sink_from_env())
    payload = {
        "config": decoded.to_config().model_dump(mode="json", by_alias=True),
        "zones": decoded.root.model_dump(mode="json", by_alias=True, exclude_none=True),
        "issues": list(decoded.issues),
    }
    print(json.dumps(payload, ensure_ascii=False, indent=2))
    return 0 if not decoded.issues or not args.strict else 1


def _cmd_price(args: argparse.Namespace) -> int:
    config, root = load_state(args.state)
    table = load_table(args.params) if args.params else PricingParameterTable.empty()
    samples = json.loads(Path(args.samples).read_text(encoding="utf-8")) if args.samples else None
    quote = calculate_price(config, root, table, samples, diag=diag_sink_from_env())
    if args.lines:
        for line in quote.lines:
            print(f"{line.code:<20} {line.path:<20} {line.amount:>10.2f}  [{line.source}]")
    print(format_price(display_price(quote.total, args.display_mode, args.deviation)))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Carcass configurator codec and pricing tools")
    sub = parser.add_subparsers(dest="command", required=True)

    encode = sub.add_parser("encode", help="encode a state file into a prompt")
    encode.add_argument("state")
    encode.set_defaults(func=_cmd_encode)

    decode = sub.add_parser("decode", help="decode a prompt into a state JSON")
    decode.add_argument("prompt")
    decode.add_argument("--strict", action="store_true", help="exit 1 when the prompt had to be degraded")
    decode.set_defaults(func=_cmd_decode)

    price = sub.add_parser("price", help="price a state file")
    price.add_argument("state")
    price.add_argument("--params", type=str, default="", help="pricing parameter JSON")
    price.add_argument("--samples", type=str, default="", help="colour id -> price per m2 JSON")
    price.add_argument("--display-mode", type=int, default=0, help="0 exact, 1 range")
    price.add_argument("--deviation", type=int, default=0)
    price.add_argument("--lines", action="store_true", help="print itemised lines")
    price.set_defaults(func=_cmd_price)
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    return int(args.func(args))


if __name__ == "__main__":
    sys.exit(main())
