"""Shared fixtures: synthetic bar series and option chains."""

import pytest

from fno_analyzer.market_data.models import OptionChainSnapshot, OptionLeg, OptionQuote, PriceBar


def zigzag_bars(n: int = 25, base: float = 100.0, step: float = 0.005, wick: float = 0.008, rising: bool = True):
    """
    Close moves `step` per bar (up or down) with each bar opening at the prior close.
    Alternate bars carry a wick on the trend side and the counter-trend side, so
    the series has clean alternating swing highs and swing lows.
    """
    factor = (1 + step) if rising else 1 / (1 + step)
    bars = []
    for i in range(n):
        close = base * factor ** i
        open_ = close / factor
        top, bottom = max(open_, close), min(open_, close)
        if rising:
            high = top * (1 + wick) if i % 2 == 0 else top
            low = bottom * (1 - wick) if i % 2 == 1 else bottom
        else:
            low = bottom * (1 - wick) if i % 2 == 0 else bottom
            high = top * (1 + wick) if i % 2 == 1 else top
        bars.append(PriceBar(open=open_, high=high, low=low, close=close, volume=1000.0, timestamp=i))
    return bars


def single_strike_chain(spot: float, iv: float = 15.0, oi: float = 50_000) -> OptionChainSnapshot:
    """One ATM strike with balanced call/put OI and mirrored deltas."""
    call = OptionLeg(oi=oi, iv=iv, ltp=50.0, delta=0.5, gamma=0.0005, theta=-5.0, vega=10.0)
    put = OptionLeg(oi=oi, iv=iv, ltp=50.0, delta=-0.5, gamma=0.0005, theta=-5.0, vega=10.0)
    return OptionChainSnapshot(spot_price=spot, quotes=(OptionQuote(strike=spot, call=call, put=put),))


@pytest.fixture
def rising_bars():
    return zigzag_bars(25, rising=True)


@pytest.fixture
def falling_bars():
    return zigzag_bars(25, rising=False)


@pytest.fixture
def balanced_chain(rising_bars):
    return single_strike_chain(rising_bars[-1].close)


@pytest.fixture
def ai_disabled_config():
    return {"ai": {"enabled": False}}
