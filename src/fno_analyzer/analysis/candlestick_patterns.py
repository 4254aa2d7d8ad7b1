"""
Candlestick Pattern Recognition Module
Classifies the latest bar (against the one before it) into a single named
reversal or continuation pattern.
"""

from dataclasses import dataclass
from typing import Callable, List, Optional

import pandas as pd

from fno_analyzer.market_data.models import BarsLike, to_ohlc_frame


PATTERNS = (
    "bullish_engulfing",
    "bearish_engulfing",
    "hammer",
    "shooting_star",
    "doji",
    "inside_bar",
    "bullish_marubozu",
    "bearish_marubozu",
)


@dataclass(frozen=True)
class PatternDetection:
    """Pattern found on the latest bar"""
    pattern: str  # one of PATTERNS
    strength: str  # weak/moderate/strong
    description: str
    direction: str = "neutral"  # bullish/bearish/neutral


def _body(candle: pd.Series) -> float:
    return abs(candle["close"] - candle["open"])


def _range(candle: pd.Series) -> float:
    return candle["high"] - candle["low"]


def _is_bullish(candle: pd.Series) -> bool:
    return candle["close"] > candle["open"]


def _is_bearish(candle: pd.Series) -> bool:
    return candle["close"] < candle["open"]


def _shadows(candle: pd.Series):
    """(upper shadow, lower shadow)"""
    upper = candle["high"] - max(candle["open"], candle["close"])
    lower = min(candle["open"], candle["close"]) - candle["low"]
    return upper, lower


def _engulfing_strength(curr: pd.Series, prev: pd.Series) -> str:
    """Current body measured against the previous candle's full range."""
    body = _body(curr)
    prev_range = _range(prev)
    if body > prev_range * 0.7:
        return "strong"
    if body > prev_range * 0.5:
        return "moderate"
    return "weak"


def _detect_bullish_engulfing(curr: pd.Series, prev: pd.Series) -> Optional[PatternDetection]:
    """
    Down candle followed by a larger up candle whose body strictly covers it.
    """
    if not (_is_bearish(prev) and _is_bullish(curr)):
        return None
    if curr["open"] < prev["close"] and curr["close"] > prev["open"] and _body(curr) > _body(prev):
        strength = _engulfing_strength(curr, prev)
        return PatternDetection(
            pattern="bullish_engulfing",
            strength=strength,
            description=f"Bullish Engulfing ({strength}) - Potential reversal to upside",
            direction="bullish",
        )
    return None


def _detect_bearish_engulfing(curr: pd.Series, prev: pd.Series) -> Optional[PatternDetection]:
    """Up candle followed by a larger down candle whose body strictly covers it."""
    if not (_is_bullish(prev) and _is_bearish(curr)):
        return None
    if curr["open"] > prev["close"] and curr["close"] < prev["open"] and _body(curr) > _body(prev):
        strength = _engulfing_strength(curr, prev)
        return PatternDetection(
            pattern="bearish_engulfing",
            strength=strength,
            description=f"Bearish Engulfing ({strength}) - Potential reversal to downside",
            direction="bearish",
        )
    return None


def _detect_hammer(curr: pd.Series, prev: pd.Series) -> Optional[PatternDetection]:
    """
    Small body (<= 30% of range), long lower wick (>= 60%), little upper wick (< 20%).
    """
    full_range = _range(curr)
    if full_range <= 0:
        return None
    upper, lower = _shadows(curr)
    body_pct = _body(curr) / full_range
    lower_pct = lower / full_range
    upper_pct = upper / full_range

    if body_pct <= 0.3 and lower_pct >= 0.6 and upper_pct < 0.2:
        strength = "strong" if lower_pct > 0.75 else "moderate"
        return PatternDetection(
            pattern="hammer",
            strength=strength,
            description=f"Hammer ({strength}) - Potential bullish reversal",
            direction="bullish",
        )
    return None


def _detect_shooting_star(curr: pd.Series, prev: pd.Series) -> Optional[PatternDetection]:
    """Mirror of the hammer: long upper wick, little lower wick."""
    full_range = _range(curr)
    if full_range <= 0:
        return None
    upper, lower = _shadows(curr)
    body_pct = _body(curr) / full_range
    upper_pct = upper / full_range
    lower_pct = lower / full_range

    if body_pct <= 0.3 and upper_pct >= 0.6 and lower_pct < 0.2:
        strength = "strong" if upper_pct > 0.75 else "moderate"
        return PatternDetection(
            pattern="shooting_star",
            strength=strength,
            description=f"Shooting Star ({strength}) - Potential bearish reversal",
            direction="bearish",
        )
    return None


def _detect_doji(curr: pd.Series, prev: pd.Series) -> Optional[PatternDetection]:
    """Body < 10% of range: indecision."""
    full_range = _range(curr)
    if full_range <= 0:
        return None
    body_pct = _body(curr) / full_range
    if body_pct < 0.1:
        strength = "strong" if body_pct < 0.05 else "moderate"
        return PatternDetection(
            pattern="doji",
            strength=strength,
            description=f"Doji ({strength}) - Indecision, potential reversal",
        )
    return None


def _detect_inside_bar(curr: pd.Series, prev: pd.Series) -> Optional[PatternDetection]:
    """Current high and low strictly inside the previous candle's range."""
    if curr["high"] < prev["high"] and curr["low"] > prev["low"]:
        strength = "strong" if _range(curr) < _range(prev) * 0.5 else "moderate"
        return PatternDetection(
            pattern="inside_bar",
            strength=strength,
            description=f"Inside Bar ({strength}) - Consolidation, watch for breakout",
        )
    return None


def _detect_marubozu(curr: pd.Series, prev: pd.Series) -> Optional[PatternDetection]:
    """Body > 95% of range: one-sided pressure."""
    full_range = _range(curr)
    if full_range <= 0:
        return None
    body_pct = _body(curr) / full_range
    if body_pct > 0.95:
        bullish = _is_bullish(curr)
        strength = "strong" if body_pct > 0.98 else "moderate"
        side = "Bullish" if bullish else "Bearish"
        pressure = "buying" if bullish else "selling"
        return PatternDetection(
            pattern="bullish_marubozu" if bullish else "bearish_marubozu",
            strength=strength,
            description=f"{side} Marubozu ({strength}) - Strong {pressure} pressure",
            direction="bullish" if bullish else "bearish",
        )
    return None


# Evaluation order is the tie-break: the first detector that matches wins.
DETECTORS: List[Callable[[pd.Series, pd.Series], Optional[PatternDetection]]] = [
    _detect_bullish_engulfing,
    _detect_bearish_engulfing,
    _detect_hammer,
    _detect_shooting_star,
    _detect_doji,
    _detect_inside_bar,
    _detect_marubozu,
]


def detect_pattern(bars: BarsLike) -> Optional[PatternDetection]:
    """
    Classify the latest bar.

    Args:
        bars: PriceBar sequence or OHLC DataFrame (at least 2 bars)

    Returns:
        PatternDetection, or None when nothing matches or fewer than 2 bars
    """
    df = to_ohlc_frame(bars)
    if len(df) < 2:
        return None

    curr = df.iloc[-1]
    prev = df.iloc[-2]
    for detector in DETECTORS:
        detection = detector(curr, prev)
        if detection is not None:
            return detection
    return None
