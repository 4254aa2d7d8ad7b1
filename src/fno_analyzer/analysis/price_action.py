"""
Price Action Analysis Module
Market structure from swing highs/lows, VWAP positioning, and range breakouts.
"""

from dataclasses import dataclass
from typing import List, Optional, Tuple

import pandas as pd

from fno_analyzer.analysis.indicators import calculate_vwap
from fno_analyzer.market_data.models import BarsLike, to_ohlc_frame


@dataclass(frozen=True)
class MarketStructure:
    trend: str  # uptrend/downtrend/range
    structure: str  # HH_HL/LH_LL/MIXED/NEUTRAL
    higher_highs: bool = False
    higher_lows: bool = False
    lower_highs: bool = False
    lower_lows: bool = False

    @property
    def trend_type(self) -> str:
        """trending when the swings agree, range_bound otherwise"""
        return "trending" if self.structure in ("HH_HL", "LH_LL") else "range_bound"


@dataclass(frozen=True)
class VWAPAnalysis:
    price_vs_vwap: str  # above/below/at
    distance: float  # percent distance of the close from VWAP
    strength: str  # strong/moderate/weak
    vwap: Optional[float] = None


@dataclass(frozen=True)
class BreakoutAnalysis:
    is_breakout: bool
    direction: Optional[str]  # up/down/None
    strength: str  # strong/moderate/weak
    resistance: Optional[float] = None
    support: Optional[float] = None


NEUTRAL_STRUCTURE = MarketStructure(trend="range", structure="NEUTRAL")


def find_swing_points(df: pd.DataFrame) -> Tuple[List[float], List[float]]:
    """
    Interior swing highs and lows.

    A swing high is a bar whose high is strictly above both neighbours; a swing
    low is a bar whose low is strictly below both neighbours. The first and last
    bars are never swing points.

    Returns:
        (swing_highs, swing_lows) as price lists in chronological order
    """
    highs = df["high"].tolist()
    lows = df["low"].tolist()
    swing_highs = []
    swing_lows = []
    for i in range(1, len(df) - 1):
        if highs[i] > highs[i - 1] and highs[i] > highs[i + 1]:
            swing_highs.append(float(highs[i]))
        if lows[i] < lows[i - 1] and lows[i] < lows[i + 1]:
            swing_lows.append(float(lows[i]))
    return swing_highs, swing_lows


def analyze_market_structure(bars: BarsLike, lookback: int = 20) -> MarketStructure:
    """
    Classify structure as HH_HL, LH_LL, MIXED or NEUTRAL from the two most
    recent swing highs and swing lows inside the lookback window.

    Fewer than `lookback` bars -> NEUTRAL / range.
    """
    if lookback <= 0:
        raise ValueError(f"lookback must be positive, got {lookback!r}")
    df = to_ohlc_frame(bars)
    if len(df) < lookback:
        return NEUTRAL_STRUCTURE

    swing_highs, swing_lows = find_swing_points(df.iloc[-lookback:])

    higher_highs = lower_highs = higher_lows = lower_lows = False
    if len(swing_highs) >= 2:
        higher_highs = swing_highs[-1] > swing_highs[-2]
        lower_highs = swing_highs[-1] < swing_highs[-2]
    if len(swing_lows) >= 2:
        higher_lows = swing_lows[-1] > swing_lows[-2]
        lower_lows = swing_lows[-1] < swing_lows[-2]

    if higher_highs and higher_lows:
        structure, trend = "HH_HL", "uptrend"
    elif lower_highs and lower_lows:
        structure, trend = "LH_LL", "downtrend"
    elif (higher_highs and lower_lows) or (lower_highs and higher_lows):
        structure, trend = "MIXED", "range"
    else:
        structure, trend = "NEUTRAL", "range"

    return MarketStructure(
        trend=trend,
        structure=structure,
        higher_highs=higher_highs,
        higher_lows=higher_lows,
        lower_highs=lower_highs,
        lower_lows=lower_lows,
    )


def analyze_vwap_position(bars: BarsLike) -> VWAPAnalysis:
    """
    Latest close against the latest cumulative VWAP.

    above/below when the close is more than 0.1% away, otherwise at.
    Strength: > 1% strong, > 0.5% moderate, else weak.
    """
    df = to_ohlc_frame(bars)
    if len(df) == 0:
        return VWAPAnalysis(price_vs_vwap="at", distance=0.0, strength="weak")

    vwap = calculate_vwap(df)[-1]
    price = float(df["close"].iloc[-1])
    distance = (price - vwap) / vwap * 100 if vwap else 0.0

    if distance > 0.1:
        position = "above"
    elif distance < -0.1:
        position = "below"
    else:
        position = "at"

    abs_distance = abs(distance)
    if abs_distance > 1:
        strength = "strong"
    elif abs_distance > 0.5:
        strength = "moderate"
    else:
        strength = "weak"

    return VWAPAnalysis(price_vs_vwap=position, distance=distance, strength=strength, vwap=vwap)


def analyze_breakout(bars: BarsLike, lookback: int = 20) -> BreakoutAnalysis:
    """
    Range breakout of the latest close.

    Resistance/support are the highest high / lowest low of the `lookback` bars
    before the current one. A breakout needs the close beyond the level by more
    than 2% of that range. Needs lookback + 1 bars.
    """
    if lookback <= 0:
        raise ValueError(f"lookback must be positive, got {lookback!r}")
    df = to_ohlc_frame(bars)
    if len(df) < lookback + 1:
        return BreakoutAnalysis(is_breakout=False, direction=None, strength="weak")

    window = df.iloc[-lookback - 1:-1]
    price = float(df["close"].iloc[-1])
    resistance = float(window["high"].max())
    support = float(window["low"].min())
    price_range = resistance - support

    if price_range <= 0:
        return BreakoutAnalysis(is_breakout=False, direction=None, strength="weak")

    threshold = price_range * 0.02
    if price > resistance + threshold:
        direction = "up"
        beyond_pct = (price - resistance) / price_range * 100
    elif price < support - threshold:
        direction = "down"
        beyond_pct = (support - price) / price_range * 100
    else:
        return BreakoutAnalysis(
            is_breakout=False, direction=None, strength="weak",
            resistance=resistance, support=support,
        )

    if beyond_pct > 3:
        strength = "strong"
    elif beyond_pct > 1.5:
        strength = "moderate"
    else:
        strength = "weak"

    return BreakoutAnalysis(
        is_breakout=True,
        direction=direction,
        strength=strength,
        resistance=resistance,
        support=support,
    )
