"""Indicator engine: EMA, RSI, MACD, Bollinger Bands, Supertrend, VWAP."""

import math

import pandas as pd
import pytest

from conftest import zigzag_bars
from fno_analyzer.analysis.indicators import (
    NEUTRAL_RSI,
    SUPERTREND_PLACEHOLDER,
    ZERO_BANDS,
    ZERO_MACD,
    calculate_atr,
    calculate_bollinger_bands,
    calculate_ema,
    calculate_emas,
    calculate_macd,
    calculate_rsi,
    calculate_supertrend,
    calculate_vwap,
    compute_indicators,
)
from fno_analyzer.market_data.models import PriceBar


def _trending_bars(n: int, start: float = 100.0, step: float = 0.5):
    """Noise-free rising bars: open at prior close, no wicks."""
    bars = []
    prev = start
    for i in range(n):
        close = start + step * (i + 1)
        bars.append(PriceBar(open=prev, high=close, low=prev, close=close, volume=100.0))
        prev = close
    return bars


class TestEMA:
    def test_same_length_as_input(self):
        prices = [float(p) for p in range(1, 31)]
        for period in (1, 5, 9, 21, 50):
            assert len(calculate_ema(prices, period)) == len(prices)

    def test_short_series_repeats_first_value(self):
        prices = [10.0, 11.0, 12.0]
        assert calculate_ema(prices, 9) == [10.0, 10.0, 10.0]

    def test_seed_is_simple_mean_and_backfilled(self):
        prices = [1.0, 2.0, 3.0, 4.0, 5.0]
        ema = calculate_ema(prices, 3)
        assert ema[0] == ema[1] == ema[2] == pytest.approx(2.0)
        # 2/(3+1) = 0.5 multiplier
        assert ema[3] == pytest.approx(3.0)
        assert ema[4] == pytest.approx(4.0)

    def test_empty_input(self):
        assert calculate_ema([], 9) == []

    def test_non_positive_period_is_contract_violation(self):
        with pytest.raises(ValueError):
            calculate_ema([1.0, 2.0], 0)

    def test_ema_triple_per_bar(self):
        bars = _trending_bars(60)
        emas = calculate_emas(bars)
        assert len(emas) == 60
        last = emas[-1]
        assert last.ema9 > last.ema21 > last.ema50


class TestRSI:
    def test_length_and_neutral_warmup(self):
        prices = [100 + (i % 3) for i in range(30)]
        rsi = calculate_rsi(prices, 14)
        assert len(rsi) == 30
        assert all(r == NEUTRAL_RSI for r in rsi[:14])

    def test_flat_series_is_100_after_warmup(self):
        """Zero average loss is defined as RSI 100, even with zero gain."""
        rsi = calculate_rsi([100.0] * 15, 14)
        assert rsi[-1].rsi == 100
        assert rsi[-1].is_overbought is True
        assert rsi[-1].is_oversold is False

    def test_short_series_all_neutral(self):
        rsi = calculate_rsi([1.0, 2.0, 3.0], 14)
        assert [r.rsi for r in rsi] == [50.0, 50.0, 50.0]

    def test_bounded_0_100(self):
        prices = [100 + 5 * math.sin(i / 2) + (i % 4) for i in range(80)]
        for r in calculate_rsi(prices):
            assert 0 <= r.rsi <= 100

    def test_falling_series_is_oversold(self):
        rsi = calculate_rsi([100 - i for i in range(20)], 14)
        assert rsi[-1].rsi == pytest.approx(0.0)
        assert rsi[-1].is_oversold is True


class TestMACD:
    def test_zero_filled_when_shorter_than_slow(self):
        macd = calculate_macd([float(i) for i in range(25)])
        assert macd == [ZERO_MACD] * 25

    def test_histogram_is_line_minus_signal(self):
        prices = [100 + i * 0.3 + (i % 5) for i in range(60)]
        for m in calculate_macd(prices):
            assert m.histogram == pytest.approx(m.macd - m.signal)

    def test_uptrend_macd_positive(self):
        macd = calculate_macd([100 + i for i in range(60)])
        assert macd[-1].macd > 0


class TestBollinger:
    def test_zero_bands_when_short(self):
        assert calculate_bollinger_bands([1.0] * 5, 20) == [ZERO_BANDS] * 5

    def test_pre_period_repeats_first_band(self):
        prices = [100 + (i % 7) for i in range(30)]
        bands = calculate_bollinger_bands(prices, 20, 2)
        assert len(bands) == 30
        assert all(b == bands[19] for b in bands[:19])
        assert bands[0].upper > bands[0].lower

    def test_band_values(self):
        prices = [float(p) for p in range(1, 21)]
        band = calculate_bollinger_bands(prices, 20, 2)[-1]
        std = pd.Series(prices).std(ddof=0)
        assert band.middle == pytest.approx(10.5)
        assert band.upper == pytest.approx(10.5 + 2 * std)
        assert band.lower == pytest.approx(10.5 - 2 * std)
        assert band.bandwidth == pytest.approx((band.upper - band.lower) / band.middle * 100)


class TestSupertrend:
    def test_placeholders_during_warmup(self):
        st = calculate_supertrend(_trending_bars(30), 10, 3)
        assert len(st) == 30
        assert st[:10] == [SUPERTREND_PLACEHOLDER] * 10

    def test_short_input_all_placeholders(self):
        assert calculate_supertrend(_trending_bars(10), 10, 3) == [SUPERTREND_PLACEHOLDER] * 10

    def test_rising_series_settles_up_and_never_flips_back(self):
        st = calculate_supertrend(_trending_bars(80), 10, 3)
        trends = [s.trend for s in st[10:]]
        assert trends[-1] == "up"
        first_up = trends.index("up")
        assert all(t == "up" for t in trends[first_up:])

    def test_accepts_dataframe(self):
        bars = _trending_bars(30)
        df = pd.DataFrame([{"Open": b.open, "High": b.high, "Low": b.low, "Close": b.close} for b in bars])
        assert calculate_supertrend(df) == calculate_supertrend(bars)


class TestATR:
    def test_constant_range(self):
        bars = [PriceBar(open=100, high=101, low=99, close=100) for _ in range(20)]
        atr = calculate_atr(bars, 14)
        assert atr.iloc[-1] == pytest.approx(2.0)


class TestVWAP:
    def test_cumulative_volume_weighting(self):
        bars = [
            PriceBar(open=10, high=10, low=10, close=10, volume=1),
            PriceBar(open=20, high=20, low=20, close=20, volume=3),
        ]
        assert calculate_vwap(bars) == pytest.approx([10.0, 17.5])

    def test_missing_volume_counts_as_one(self):
        bars = [
            PriceBar(open=10, high=10, low=10, close=10),
            PriceBar(open=20, high=20, low=20, close=20),
        ]
        assert calculate_vwap(bars) == pytest.approx([10.0, 15.0])

    def test_empty(self):
        assert calculate_vwap([]) == []


class TestComputeIndicators:
    def test_one_frame_per_bar(self, rising_bars):
        frames = compute_indicators(rising_bars)
        assert len(frames) == len(rising_bars)
        last = frames[-1]
        assert last.rsi.rsi == 100
        assert last.macd == ZERO_MACD
        assert last.supertrend.trend == "up"
        assert last.vwap < rising_bars[-1].close

    def test_config_periods(self):
        bars = zigzag_bars(40)
        frames = compute_indicators(bars, {"rsi_period": 5, "macd_slow": 20, "macd_fast": 8})
        assert frames[5].rsi != NEUTRAL_RSI
        assert frames[-1].macd != ZERO_MACD

    def test_empty_bars(self):
        assert compute_indicators([]) == []
