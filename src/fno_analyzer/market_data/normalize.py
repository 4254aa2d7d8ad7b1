"""
Payload normalization.
Maps exchange/broker JSON (NSE option chain, flat per-strike rows, candle
records) into PriceBar / OptionChainSnapshot. Malformed input degrades to empty
results with a logged warning rather than an exception.
"""

import logging
import math
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

import pandas as pd

from fno_analyzer.analysis.greeks import (
    calculate_greeks,
    days_to_expiry,
    days_to_years,
    solve_implied_volatility,
)
from fno_analyzer.market_data.models import (
    OptionChainSnapshot,
    OptionLeg,
    OptionQuote,
    PriceBar,
)


logger = logging.getLogger(__name__)


def _num(value: Any, default: float = 0.0) -> float:
    """Lenient float: None, '', '-' and NaN become default."""
    if value is None or value == "" or value == "-":
        return default
    try:
        result = float(value)
    except (TypeError, ValueError):
        return default
    return default if math.isnan(result) else result


def _timestamp_key(ts: Any) -> float:
    """Epoch milliseconds for sorting; numbers are taken as epoch ms already."""
    if isinstance(ts, (int, float)):
        return float(ts)
    return pd.Timestamp(ts).value / 1e6


def bars_from_records(records: Iterable[Any]) -> List[PriceBar]:
    """
    Candle records -> PriceBar list in ascending time order.

    Accepts dicts with open/high/low/close[/volume/timestamp] keys (any case) or
    positional rows [timestamp, open, high, low, close, volume]. Rows without a
    positive close are skipped.
    """
    bars = []
    for record in records or []:
        if isinstance(record, dict):
            row = {str(k).lower(): v for k, v in record.items()}
            ts = row.get("timestamp", row.get("time", row.get("date")))
            o, h, l, c = (row.get(k) for k in ("open", "high", "low", "close"))
            volume = row.get("volume")
        elif isinstance(record, (list, tuple)) and len(record) >= 5:
            ts, o, h, l, c = record[:5]
            volume = record[5] if len(record) > 5 else None
        else:
            logger.debug("Skipping candle record of type %s", type(record).__name__)
            continue

        close = _num(c)
        if close <= 0:
            continue
        bars.append(PriceBar(
            open=_num(o, close),
            high=_num(h, close),
            low=_num(l, close),
            close=close,
            volume=_num(volume) if volume is not None else None,
            timestamp=ts,
        ))

    if bars and all(b.timestamp is not None for b in bars):
        try:
            bars.sort(key=lambda b: _timestamp_key(b.timestamp))
        except (TypeError, ValueError) as e:
            logger.warning("Candle timestamps not sortable, keeping feed order: %s", e)
    return bars


def _leg(
    raw: Optional[Dict[str, Any]],
    spot: float,
    strike: float,
    expiry: Any,
    option_type: str,
    risk_free_rate: float,
    now: Optional[datetime],
) -> OptionLeg:
    """
    One NSE leg. Greeks are filled from IV when the feed does not send them; a
    leg quoted with a traded price but no IV gets IV from a Black-Scholes solve.
    """
    if not raw:
        return OptionLeg()

    iv = _num(raw.get("impliedVolatility", raw.get("iv")))
    ltp = _num(raw.get("lastPrice", raw.get("ltp")))
    days = 0
    if expiry:
        try:
            days = days_to_expiry(expiry, now)
        except ValueError:
            logger.warning("Unparseable expiry %r for strike %s, leaving greeks at zero", expiry, strike)

    if iv <= 0 and ltp > 0 and days > 0:
        solved = solve_implied_volatility(
            spot, strike, days_to_years(days), risk_free_rate, option_type, ltp
        )
        if solved:
            iv = round(solved * 100, 2)

    if any(k in raw for k in ("delta", "gamma", "theta", "vega")):
        delta, gamma = _num(raw.get("delta")), _num(raw.get("gamma"))
        theta, vega = _num(raw.get("theta")), _num(raw.get("vega"))
    elif days > 0 and iv > 0:
        g = calculate_greeks(spot, strike, days, risk_free_rate, iv / 100, option_type)
        delta, gamma, theta, vega = g.delta, g.gamma, g.theta, g.vega
    else:
        delta = gamma = theta = vega = 0.0

    return OptionLeg(
        oi=_num(raw.get("openInterest", raw.get("oi"))),
        oi_change=_num(raw.get("changeinOpenInterest", raw.get("oiChange"))),
        volume=_num(raw.get("totalTradedVolume", raw.get("volume"))),
        iv=iv,
        ltp=ltp,
        delta=delta,
        gamma=gamma,
        theta=theta,
        vega=vega,
    )


def _dedupe(quotes: List[OptionQuote]) -> List[OptionQuote]:
    seen = set()
    unique = []
    for q in quotes:
        if q.strike in seen:
            logger.warning("Duplicate strike %s in option chain, keeping first row", q.strike)
            continue
        seen.add(q.strike)
        unique.append(q)
    return unique


def snapshot_from_nse(
    payload: Any,
    expiry: Optional[str] = None,
    symbol: Optional[str] = None,
    risk_free_rate: float = 0.065,
    now: Optional[datetime] = None,
) -> OptionChainSnapshot:
    """
    NSE option-chain JSON -> OptionChainSnapshot for one expiry.

    Understands the raw exchange shape ({records: {data, expiryDates,
    underlyingValue}, filtered: {...}}) and the proxy shape ({spotPrice,
    selectedExpiry, expiryDates, data: [{strikePrice, expiryDate, CE, PE}]}).
    Without an explicit expiry the selected/nearest one is used.
    """
    if not isinstance(payload, dict):
        logger.warning("Option chain payload is %s, expected an object", type(payload).__name__)
        return OptionChainSnapshot(spot_price=0.0, symbol=symbol)
    if payload.get("success") is False:
        logger.warning("Option chain fetch failed: %s", payload.get("error", "unknown error"))
        return OptionChainSnapshot(spot_price=_num(payload.get("spotPrice")), symbol=symbol)

    records = payload.get("records") or {}
    filtered = payload.get("filtered") or {}
    items = records.get("data") or filtered.get("data") or payload.get("data") or []
    expiry_dates = records.get("expiryDates") or payload.get("expiryDates") or []
    spot = _num(
        records.get("underlyingValue")
        or filtered.get("underlyingValue")
        or payload.get("spotPrice")
    )
    selected = expiry or payload.get("selectedExpiry") or (expiry_dates[0] if expiry_dates else None)
    if selected:
        items = [i for i in items if isinstance(i, dict) and i.get("expiryDate", selected) == selected]

    quotes = []
    for item in items:
        if not isinstance(item, dict):
            continue
        strike = _num(item.get("strikePrice"))
        if strike <= 0:
            continue
        leg_expiry = item.get("expiryDate") or selected
        quotes.append(OptionQuote(
            strike=strike,
            call=_leg(item.get("CE"), spot, strike, leg_expiry, "call", risk_free_rate, now),
            put=_leg(item.get("PE"), spot, strike, leg_expiry, "put", risk_free_rate, now),
        ))

    if not quotes:
        logger.warning("Option chain for %s has no strikes", selected or "nearest expiry")

    return OptionChainSnapshot(
        spot_price=spot,
        quotes=tuple(_dedupe(quotes)),
        timestamp=records.get("timestamp") or payload.get("timestamp"),
        expiry=selected,
        symbol=symbol or payload.get("symbol"),
    )


def snapshot_from_rows(
    rows: Iterable[Dict[str, Any]],
    spot_price: float,
    expiry: Optional[str] = None,
    symbol: Optional[str] = None,
    timestamp: Any = None,
) -> OptionChainSnapshot:
    """Flat per-strike rows (strike, callOI, callDelta, ..., putVega) -> snapshot."""

    def leg(row: Dict[str, Any], side: str) -> OptionLeg:
        return OptionLeg(
            oi=_num(row.get(f"{side}OI")),
            oi_change=_num(row.get(f"{side}OIChange")),
            volume=_num(row.get(f"{side}Volume")),
            iv=_num(row.get(f"{side}IV")),
            ltp=_num(row.get(f"{side}LTP")),
            delta=_num(row.get(f"{side}Delta")),
            gamma=_num(row.get(f"{side}Gamma")),
            theta=_num(row.get(f"{side}Theta")),
            vega=_num(row.get(f"{side}Vega")),
        )

    quotes = [
        OptionQuote(strike=_num(row.get("strike")), call=leg(row, "call"), put=leg(row, "put"))
        for row in rows or []
        if isinstance(row, dict) and _num(row.get("strike")) > 0
    ]
    return OptionChainSnapshot(
        spot_price=_num(spot_price),
        quotes=tuple(_dedupe(quotes)),
        timestamp=timestamp,
        expiry=expiry,
        symbol=symbol,
    )
