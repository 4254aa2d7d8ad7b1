"""Market structure, VWAP position and range breakouts."""

import pytest

from fno_analyzer.analysis.price_action import (
    analyze_breakout,
    analyze_market_structure,
    analyze_vwap_position,
    find_swing_points,
)
from fno_analyzer.market_data.models import PriceBar, to_ohlc_frame


def _flat(n, high=101.0, low=99.0, close=100.0):
    return [PriceBar(open=close, high=high, low=low, close=close, volume=100.0) for _ in range(n)]


def _with_last_close(bars, close):
    last = PriceBar(open=close, high=max(close, 100.0), low=min(close, 100.0), close=close, volume=100.0)
    return bars + [last]


class TestMarketStructure:
    def test_rising_zigzag_is_uptrend(self, rising_bars):
        structure = analyze_market_structure(rising_bars)
        assert structure.structure == "HH_HL"
        assert structure.trend == "uptrend"
        assert structure.higher_highs and structure.higher_lows
        assert structure.trend_type == "trending"

    def test_falling_zigzag_is_downtrend(self, falling_bars):
        structure = analyze_market_structure(falling_bars)
        assert structure.structure == "LH_LL"
        assert structure.trend == "downtrend"

    def test_expanding_range_is_mixed(self):
        highs = [101.0] * 20
        lows = [99.0] * 20
        highs[5], highs[10] = 102.0, 103.0
        lows[7], lows[12] = 98.0, 97.0
        bars = [PriceBar(open=100, high=h, low=l, close=100) for h, l in zip(highs, lows)]
        structure = analyze_market_structure(bars, 20)
        assert structure.structure == "MIXED"
        assert structure.trend == "range"
        assert structure.trend_type == "range_bound"

    def test_no_swings_is_neutral(self):
        structure = analyze_market_structure(_flat(25))
        assert structure.structure == "NEUTRAL"
        assert structure.trend == "range"

    def test_fewer_bars_than_lookback(self, rising_bars):
        structure = analyze_market_structure(rising_bars[:10], 20)
        assert structure.structure == "NEUTRAL"
        assert structure.trend == "range"

    def test_swing_points_skip_edges(self):
        bars = [
            PriceBar(open=1, high=5, low=1, close=1),
            PriceBar(open=1, high=3, low=2, close=1),
            PriceBar(open=1, high=4, low=0.5, close=1),
        ]
        highs, lows = find_swing_points(to_ohlc_frame(bars))
        assert highs == [] and lows == []


class TestVWAPPosition:
    def test_rising_close_above_vwap(self, rising_bars):
        vwap = analyze_vwap_position(rising_bars)
        assert vwap.price_vs_vwap == "above"
        assert vwap.strength == "strong"
        assert vwap.distance > 1

    def test_at_vwap(self):
        vwap = analyze_vwap_position(_flat(5))
        assert vwap.price_vs_vwap == "at"
        assert vwap.distance == pytest.approx(0.0)
        assert vwap.strength == "weak"

    def test_below_vwap_moderate(self):
        bars = _flat(9) + [PriceBar(open=100, high=100, low=99.0, close=99.3, volume=100.0)]
        vwap = analyze_vwap_position(bars)
        assert vwap.price_vs_vwap == "below"
        assert vwap.strength == "moderate"

    def test_empty(self):
        vwap = analyze_vwap_position([])
        assert (vwap.price_vs_vwap, vwap.distance, vwap.strength) == ("at", 0.0, "weak")


class TestBreakout:
    def test_upside_breakout_strong(self):
        breakout = analyze_breakout(_with_last_close(_flat(20), 105.0))
        assert breakout.is_breakout
        assert breakout.direction == "up"
        assert breakout.strength == "strong"
        assert breakout.resistance == 101.0
        assert breakout.support == 99.0

    def test_downside_breakout(self):
        breakout = analyze_breakout(_with_last_close(_flat(20), 98.9))
        assert breakout.is_breakout
        assert breakout.direction == "down"
        assert breakout.strength == "strong"

    def test_moderate_just_beyond_threshold(self):
        breakout = analyze_breakout(_with_last_close(_flat(20), 101.05))
        assert breakout.is_breakout
        assert breakout.strength == "moderate"

    def test_inside_threshold_is_not_breakout(self):
        breakout = analyze_breakout(_with_last_close(_flat(20), 101.03))
        assert not breakout.is_breakout
        assert breakout.direction is None

    def test_needs_lookback_plus_one_bars(self):
        breakout = analyze_breakout(_flat(20), 20)
        assert not breakout.is_breakout
        assert breakout.strength == "weak"

    def test_zero_range(self):
        bars = _flat(20, high=100.0, low=100.0) + [PriceBar(open=100, high=110, low=100, close=110)]
        assert not analyze_breakout(bars).is_breakout
