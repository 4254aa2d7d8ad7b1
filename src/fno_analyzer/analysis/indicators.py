"""
Technical Indicators Module
EMA, RSI, MACD, Bollinger Bands, Supertrend and VWAP over ordered price bars.

Every function returns one value per input element. Inputs shorter than an
indicator's warm-up period produce neutral placeholders instead of errors, so
callers can index result[i] for every bar unconditionally.
"""

from dataclasses import dataclass
from typing import Any, List, Sequence

import numpy as np
import pandas as pd

from fno_analyzer.market_data.models import BarsLike, to_ohlc_frame


@dataclass(frozen=True)
class EMAResult:
    """EMA triple used by the dashboard"""
    ema9: float
    ema21: float
    ema50: float


@dataclass(frozen=True)
class RSIResult:
    rsi: float
    is_overbought: bool  # rsi > 70
    is_oversold: bool  # rsi < 30


@dataclass(frozen=True)
class MACDResult:
    macd: float
    signal: float
    histogram: float


@dataclass(frozen=True)
class BollingerBandsResult:
    upper: float
    middle: float  # SMA
    lower: float
    bandwidth: float  # (upper - lower) / middle * 100


@dataclass(frozen=True)
class SupertrendResult:
    value: float
    trend: str  # up/down


@dataclass(frozen=True)
class IndicatorFrame:
    """All indicator values for one bar index."""
    ema: EMAResult
    rsi: RSIResult
    macd: MACDResult
    bollinger: BollingerBandsResult
    supertrend: SupertrendResult
    vwap: float


NEUTRAL_RSI = RSIResult(rsi=50.0, is_overbought=False, is_oversold=False)
ZERO_MACD = MACDResult(macd=0.0, signal=0.0, histogram=0.0)
ZERO_BANDS = BollingerBandsResult(upper=0.0, middle=0.0, lower=0.0, bandwidth=0.0)
SUPERTREND_PLACEHOLDER = SupertrendResult(value=0.0, trend="up")


def _as_floats(values: Any) -> np.ndarray:
    if isinstance(values, (pd.Series, np.ndarray)):
        return np.asarray(values, dtype=float)
    return np.asarray(list(values), dtype=float)


def _check_period(name: str, period: int) -> None:
    if period is None or period <= 0:
        raise ValueError(f"{name} must be a positive integer, got {period!r}")


def calculate_ema(prices: Sequence[float], period: int) -> List[float]:
    """
    Exponential Moving Average.

    Seeded with the simple mean of the first `period` prices, then smoothed with
    multiplier 2 / (period + 1). Indices before the seed repeat the seed value.
    With fewer than `period` prices every value equals prices[0].
    """
    _check_period("period", period)
    values = _as_floats(prices)
    n = len(values)
    if n == 0:
        return []
    if n < period:
        return [float(values[0])] * n

    multiplier = 2 / (period + 1)
    ema = np.empty(n)
    ema[period - 1] = values[:period].mean()
    for i in range(period, n):
        ema[i] = (values[i] - ema[i - 1]) * multiplier + ema[i - 1]
    ema[: period - 1] = ema[period - 1]
    return ema.tolist()


def calculate_emas(bars: BarsLike, periods: Sequence[int] = (9, 21, 50)) -> List[EMAResult]:
    """EMA 9/21/50 (or the three configured periods) per bar."""
    if len(periods) != 3:
        raise ValueError("calculate_emas expects exactly three periods")
    closes = to_ohlc_frame(bars)["close"]
    fast, mid, slow = (calculate_ema(closes, p) for p in periods)
    return [EMAResult(ema9=a, ema21=b, ema50=c) for a, b, c in zip(fast, mid, slow)]


def _rsi_point(avg_gain: float, avg_loss: float) -> RSIResult:
    if avg_loss == 0:
        rsi = 100.0
    else:
        rs = avg_gain / avg_loss
        rsi = 100 - (100 / (1 + rs))
    rsi = float(rsi)
    return RSIResult(rsi=rsi, is_overbought=rsi > 70, is_oversold=rsi < 30)


def calculate_rsi(prices: Sequence[float], period: int = 14) -> List[RSIResult]:
    """
    Relative Strength Index with Wilder smoothing.

    Average gain/loss are seeded over the first `period` price changes. The first
    `period` entries are neutral (50). A zero average loss yields RSI 100.
    """
    _check_period("period", period)
    values = _as_floats(prices)
    n = len(values)
    if n < period + 1:
        return [NEUTRAL_RSI] * n

    changes = np.diff(values)
    gains = np.where(changes > 0, changes, 0.0)
    losses = np.where(changes < 0, -changes, 0.0)

    avg_gain = gains[:period].mean()
    avg_loss = losses[:period].mean()

    result = [NEUTRAL_RSI] * period
    result.append(_rsi_point(avg_gain, avg_loss))
    for i in range(period, len(changes)):
        avg_gain = (avg_gain * (period - 1) + gains[i]) / period
        avg_loss = (avg_loss * (period - 1) + losses[i]) / period
        result.append(_rsi_point(avg_gain, avg_loss))
    return result


def calculate_macd(
    prices: Sequence[float],
    fast: int = 12,
    slow: int = 26,
    signal: int = 9,
) -> List[MACDResult]:
    """MACD line, signal line, histogram. Zero-filled when fewer than `slow` prices."""
    _check_period("fast", fast)
    _check_period("slow", slow)
    _check_period("signal", signal)
    values = _as_floats(prices)
    if len(values) < slow:
        return [ZERO_MACD] * len(values)

    ema_fast = np.asarray(calculate_ema(values, fast))
    ema_slow = np.asarray(calculate_ema(values, slow))
    macd_line = ema_fast - ema_slow
    signal_line = np.asarray(calculate_ema(macd_line, signal))
    hist = macd_line - signal_line
    return [
        MACDResult(macd=float(m), signal=float(s), histogram=float(h))
        for m, s, h in zip(macd_line, signal_line, hist)
    ]


def calculate_bollinger_bands(
    prices: Sequence[float],
    period: int = 20,
    std_dev: float = 2,
) -> List[BollingerBandsResult]:
    """
    Bollinger Bands over a trailing window (population standard deviation).

    Indices before the first full window repeat the first computed band rather
    than reporting a zero-width band. Fewer than `period` prices -> zero bands.
    """
    _check_period("period", period)
    close = pd.Series(_as_floats(prices))
    n = len(close)
    if n < period:
        return [ZERO_BANDS] * n

    middle = close.rolling(period).mean()
    std = close.rolling(period).std(ddof=0)
    upper = middle + std_dev * std
    lower = middle - std_dev * std

    bands = []
    for i in range(period - 1, n):
        mid = float(middle.iloc[i])
        up = float(upper.iloc[i])
        low = float(lower.iloc[i])
        bandwidth = (up - low) / mid * 100 if mid != 0 else 0.0
        bands.append(BollingerBandsResult(upper=up, middle=mid, lower=low, bandwidth=bandwidth))
    return [bands[0]] * (period - 1) + bands


def calculate_atr(bars: BarsLike, period: int = 14) -> pd.Series:
    """
    Average True Range: rolling mean of max(high-low, |high-prev close|, |low-prev close|).
    The first bar's true range is its high-low span.
    """
    _check_period("period", period)
    df = to_ohlc_frame(bars)
    high_low = df["high"] - df["low"]
    high_close = (df["high"] - df["close"].shift()).abs()
    low_close = (df["low"] - df["close"].shift()).abs()
    true_range = pd.concat([high_low, high_close, low_close], axis=1).max(axis=1)
    return true_range.rolling(period).mean()


def calculate_supertrend(
    bars: BarsLike,
    period: int = 10,
    multiplier: float = 3,
) -> List[SupertrendResult]:
    """
    Supertrend band built on ATR(period).

    The first `period` entries are {value: 0, trend: 'up'} placeholders and carry
    no signal. Afterwards the band trails price and flips direction only when the
    close crosses the previous band value.
    """
    _check_period("period", period)
    df = to_ohlc_frame(bars)
    n = len(df)
    if n <= period:
        return [SUPERTREND_PLACEHOLDER] * n

    atr = calculate_atr(df, period)
    hl2 = (df["high"] + df["low"]) / 2
    close = df["close"]

    result: List[SupertrendResult] = [SUPERTREND_PLACEHOLDER] * period
    for i in range(period, n):
        upper_band = float(hl2.iloc[i] + multiplier * atr.iloc[i])
        lower_band = float(hl2.iloc[i] - multiplier * atr.iloc[i])
        price = float(close.iloc[i])

        if i == period:
            value = upper_band
            trend = "up" if price > value else "down"
        else:
            prev = result[-1]
            if prev.trend == "up":
                value = max(lower_band, prev.value)
                if price < value:
                    trend, value = "down", upper_band
                else:
                    trend = "up"
            else:
                value = min(upper_band, prev.value)
                if price > value:
                    trend, value = "up", lower_band
                else:
                    trend = "down"
        result.append(SupertrendResult(value=value, trend=trend))
    return result


def calculate_vwap(bars: BarsLike) -> List[float]:
    """
    Cumulative Volume-Weighted Average Price.

    VWAP = Sum(typical price * volume) / Sum(volume), typical = (H + L + C) / 3.
    Bars without volume count as volume 1, so a feed with no volume at all yields
    a cumulative average of typical prices rather than a true VWAP.
    """
    df = to_ohlc_frame(bars)
    if len(df) == 0:
        return []

    typical_price = (df["high"] + df["low"] + df["close"]) / 3
    volume = df["volume"].astype(float).fillna(1.0)
    cum_pv = (typical_price * volume).cumsum()
    cum_volume = volume.cumsum()
    vwap = (cum_pv / cum_volume.where(cum_volume > 0)).fillna(typical_price)
    return [float(v) for v in vwap]


def compute_indicators(bars: BarsLike, config: Any = None) -> List[IndicatorFrame]:
    """
    Compute every indicator and bundle them per bar.

    Args:
        bars: PriceBar sequence or OHLC DataFrame, ascending by time
        config: optional 'indicators' config section (dict)
    """
    cfg = config or {}
    df = to_ohlc_frame(bars)
    closes = df["close"]

    emas = calculate_emas(df, cfg.get("ema_periods", (9, 21, 50)))
    rsi = calculate_rsi(closes, cfg.get("rsi_period", 14))
    macd = calculate_macd(
        closes,
        cfg.get("macd_fast", 12),
        cfg.get("macd_slow", 26),
        cfg.get("macd_signal", 9),
    )
    bands = calculate_bollinger_bands(
        closes, cfg.get("bollinger_period", 20), cfg.get("bollinger_std", 2)
    )
    supertrend = calculate_supertrend(
        df, cfg.get("supertrend_period", 10), cfg.get("supertrend_multiplier", 3)
    )
    vwap = calculate_vwap(df)

    return [
        IndicatorFrame(
            ema=emas[i],
            rsi=rsi[i],
            macd=macd[i],
            bollinger=bands[i],
            supertrend=supertrend[i],
            vwap=vwap[i],
        )
        for i in range(len(df))
    ]
