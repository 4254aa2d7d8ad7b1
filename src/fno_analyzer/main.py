"""
F&O Analyzer - command line entry point.

  fno-analyzer analyze snapshot.json [--json] [--no-ai] [--timeout S]
  fno-analyzer greeks --spot 24500 --strike 24500 --days 7 --iv 14 --type call

The analyze input is one JSON document:
  {
    "symbol": "NIFTY",
    "spotPrice": 24512.3,            optional, else chain spot, else last close
    "availability": "live",          live | stale-cache | unavailable
    "expiry": "30-Jan-2025",         optional
    "optionChain": {...},            NSE payload, or
    "optionRows": [{...}],           flat per-strike rows
    "timeframes": {"1m": [candles], "5m": [...], "15m": [...]},
    "ivHistory": [13.2, 14.8, ...]   optional, ATM IV history in percent
  }
"""

import argparse
import asyncio
import json
import logging
import os
import sys
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv

from fno_analyzer.analysis.greeks import (
    black_scholes_price,
    calculate_greeks,
    days_to_years,
    probability_of_profit,
    solve_implied_volatility,
)
from fno_analyzer.analysis.market_analyzer import MarketAnalyzer
from fno_analyzer.config import DEFAULT_CONFIG_PATH, load_config
from fno_analyzer.market_data.models import DataAvailability, OptionChainSnapshot
from fno_analyzer.market_data.normalize import bars_from_records, snapshot_from_nse, snapshot_from_rows
from fno_analyzer.report import print_analysis_report, print_greeks_report
from fno_analyzer.scheduler import AnalysisScheduler
from fno_analyzer.serializer import to_json_response


logger = logging.getLogger(__name__)


def _load_config(path: Optional[str]) -> Dict[str, Any]:
    if path:
        return load_config(path)
    if os.path.exists(DEFAULT_CONFIG_PATH):
        return load_config(DEFAULT_CONFIG_PATH)
    return load_config(None)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="fno-analyzer",
        description="Probabilistic F&O market analysis from price bars and an option chain",
    )
    parser.add_argument("--config", help=f"YAML config (default: {DEFAULT_CONFIG_PATH} if present)")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    analyze = sub.add_parser("analyze", help="Analyse a market snapshot JSON file ('-' for stdin)")
    analyze.add_argument("input", help="Snapshot JSON path or '-'")
    analyze.add_argument("--json", action="store_true", help="Print JSON instead of the report")
    analyze.add_argument("--no-ai", action="store_true", help="Skip the AI narrative (rule-based only)")
    analyze.add_argument("--timeout", type=float, help="Narrative classifier timeout in seconds")

    greeks = sub.add_parser("greeks", help="Black-Scholes Greeks for one option")
    greeks.add_argument("--spot", type=float, required=True)
    greeks.add_argument("--strike", type=float, required=True)
    greeks.add_argument("--days", type=float, required=True, help="Calendar days to expiry")
    greeks.add_argument("--iv", type=float, required=True, help="Implied volatility in percent (e.g. 14.5)")
    greeks.add_argument("--type", default="call", choices=["call", "put"])
    greeks.add_argument("--rate", type=float, help="Risk-free rate as decimal (default from config)")
    greeks.add_argument("--premium", type=float, help="Market premium; also solve implied volatility")
    return parser


def _read_input(path: str) -> Dict[str, Any]:
    if path == "-":
        return json.load(sys.stdin)
    with open(path, "r") as f:
        return json.load(f)


def _snapshot_from_input(data: Dict[str, Any], config: Dict[str, Any]) -> OptionChainSnapshot:
    rate = config.get("greeks", {}).get("risk_free_rate", 0.065)
    symbol = data.get("symbol")
    if data.get("optionChain") is not None:
        return snapshot_from_nse(data["optionChain"], expiry=data.get("expiry"), symbol=symbol, risk_free_rate=rate)
    return snapshot_from_rows(
        data.get("optionRows") or [],
        spot_price=data.get("spotPrice") or 0,
        expiry=data.get("expiry"),
        symbol=symbol,
    )


def run_analyze(args: argparse.Namespace, config: Dict[str, Any]) -> int:
    data = _read_input(args.input)
    if args.no_ai:
        config.setdefault("ai", {})["enabled"] = False

    snapshot = _snapshot_from_input(data, config)
    bars_by_tf = {tf: bars_from_records(records) for tf, records in (data.get("timeframes") or {}).items()}
    if not bars_by_tf:
        print("No timeframes in input; expected {\"timeframes\": {\"1m\": [...], ...}}", file=sys.stderr)
        return 1

    spot = data.get("spotPrice") or snapshot.spot_price
    if not spot:
        last_bars = next((b for b in bars_by_tf.values() if b), [])
        spot = last_bars[-1].close if last_bars else 0.0
    try:
        availability = DataAvailability(data.get("availability", DataAvailability.LIVE.value))
    except ValueError:
        choices = ", ".join(a.value for a in DataAvailability)
        print(f"Unknown availability {data.get('availability')!r}; expected one of: {choices}", file=sys.stderr)
        return 1
    iv_history: List[float] = data.get("ivHistory") or []

    analyzer = MarketAnalyzer(config=config)
    scheduler = AnalysisScheduler.from_config(analyzer, config)
    inputs = {
        tf: {
            "bars": bars,
            "snapshot": snapshot,
            "spot_price": spot,
            "availability": availability,
            "timeout": args.timeout,
            "iv_history": iv_history,
        }
        for tf, bars in bars_by_tf.items()
    }
    logger.debug("Analysing %s for %d timeframes, %d strikes", data.get("symbol"), len(inputs), len(snapshot))
    results = asyncio.run(scheduler.run_all(inputs, force=True))

    if args.json:
        print(json.dumps(to_json_response(results, symbol=data.get("symbol"), spot_price=spot), indent=2))
    else:
        print_analysis_report(results, symbol=data.get("symbol"), spot_price=spot)
    return 0


def run_greeks(args: argparse.Namespace, config: Dict[str, Any]) -> int:
    rate = args.rate if args.rate is not None else config.get("greeks", {}).get("risk_free_rate", 0.065)
    vol = args.iv / 100
    greeks = calculate_greeks(args.spot, args.strike, args.days, rate, vol, args.type)
    t = days_to_years(args.days)
    price = black_scholes_price(args.spot, args.strike, t, rate, vol, args.type)
    pop = probability_of_profit(args.spot, args.strike, t, rate, vol, args.type)
    implied = None
    if args.premium is not None:
        implied = solve_implied_volatility(args.spot, args.strike, t, rate, args.type, args.premium)
        if implied is None:
            print("  Could not solve implied volatility for that premium.", file=sys.stderr)
    print_greeks_report(greeks, args.type, price=price, pop=pop, implied_vol=implied)
    return 0


def main(argv: Optional[List[str]] = None) -> None:
    load_dotenv()
    args = _build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    config = _load_config(args.config)

    if args.command == "analyze":
        code = run_analyze(args, config)
    else:
        code = run_greeks(args, config)
    sys.exit(code)


if __name__ == "__main__":
    main()
