"""Candlestick detector: per-pattern shapes, strength tiers and priority order."""

from fno_analyzer.analysis.candlestick_patterns import detect_pattern
from fno_analyzer.market_data.models import PriceBar


def _bar(o, h, l, c):
    return PriceBar(open=o, high=h, low=l, close=c)


class TestPriority:
    def test_engulfing_beats_marubozu(self):
        """Current bar is both a bullish engulfing and a marubozu; engulfing is checked first."""
        prev = _bar(100.0, 100.2, 98.8, 99.0)
        curr = _bar(98.9, 101.12, 98.88, 101.1)
        detection = detect_pattern([prev, curr])
        assert detection.pattern == "bullish_engulfing"
        assert detection.strength == "strong"
        assert detection.direction == "bullish"

    def test_fewer_than_two_bars(self):
        assert detect_pattern([]) is None
        assert detect_pattern([_bar(100, 101, 99, 100.5)]) is None

    def test_no_match(self):
        prev = _bar(100.0, 101.5, 99.5, 101.0)
        curr = _bar(101.0, 102.5, 100.5, 101.8)
        assert detect_pattern([prev, curr]) is None


class TestPatterns:
    def test_bearish_engulfing(self):
        prev = _bar(100.0, 101.2, 99.8, 101.0)
        curr = _bar(101.2, 101.3, 99.5, 99.6)
        detection = detect_pattern([prev, curr])
        assert detection.pattern == "bearish_engulfing"
        assert detection.strength == "strong"
        assert detection.direction == "bearish"

    def test_hammer(self):
        prev = _bar(100.0, 100.6, 99.9, 100.5)
        curr = _bar(100.0, 100.25, 99.0, 100.2)
        detection = detect_pattern([prev, curr])
        assert detection.pattern == "hammer"
        assert detection.strength == "strong"

    def test_shooting_star(self):
        prev = _bar(99.5, 100.2, 99.4, 100.1)
        curr = _bar(100.2, 101.25, 99.95, 100.0)
        detection = detect_pattern([prev, curr])
        assert detection.pattern == "shooting_star"
        assert detection.direction == "bearish"

    def test_doji(self):
        prev = _bar(99.0, 100.0, 98.9, 99.8)
        curr = _bar(100.0, 100.5, 99.5, 100.02)
        detection = detect_pattern([prev, curr])
        assert detection.pattern == "doji"
        assert detection.strength == "strong"

    def test_inside_bar(self):
        prev = _bar(100.0, 103.0, 99.0, 102.0)
        curr = _bar(101.0, 102.2, 100.6, 101.8)
        detection = detect_pattern([prev, curr])
        assert detection.pattern == "inside_bar"
        assert detection.strength == "strong"

    def test_inside_bar_needs_strict_containment(self):
        prev = _bar(100.0, 103.0, 99.0, 102.0)
        curr = _bar(101.0, 103.0, 100.6, 101.8)
        detection = detect_pattern([prev, curr])
        assert detection is None or detection.pattern != "inside_bar"

    def test_bearish_marubozu(self):
        prev = _bar(101.0, 101.1, 100.4, 100.5)
        curr = _bar(100.4, 100.41, 98.99, 99.0)
        detection = detect_pattern([prev, curr])
        assert detection.pattern == "bearish_marubozu"
        assert detection.strength == "strong"
        assert "Marubozu" in detection.description

    def test_zero_range_bar_has_no_shape_pattern(self):
        prev = _bar(100.0, 101.0, 99.0, 100.5)
        curr = _bar(100.0, 100.0, 100.0, 100.0)
        detection = detect_pattern([prev, curr])
        assert detection.pattern == "inside_bar"
