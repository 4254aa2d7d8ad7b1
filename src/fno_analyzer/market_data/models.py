"""
Normalized market data types.
Everything in fno_analyzer.analysis operates on these types only; raw broker and
exchange payloads are mapped into them by fno_analyzer.market_data.normalize.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Optional, Sequence, Tuple, Union

import pandas as pd


OHLC_COLUMNS = ["open", "high", "low", "close", "volume"]


class DataAvailability(str, Enum):
    """How fresh the inputs of an analysis cycle are."""
    LIVE = "live"
    STALE_CACHE = "stale-cache"
    UNAVAILABLE = "unavailable"


@dataclass(frozen=True)
class PriceBar:
    """One OHLCV observation for a fixed timeframe."""
    open: float
    high: float
    low: float
    close: float
    volume: Optional[float] = None
    timestamp: Any = None  # epoch ms, ISO string or datetime


@dataclass(frozen=True)
class OptionLeg:
    """One side (call or put) of a strike."""
    oi: float = 0.0
    oi_change: float = 0.0
    volume: float = 0.0
    iv: float = 0.0  # percent, e.g. 14.5
    ltp: float = 0.0
    delta: float = 0.0
    gamma: float = 0.0
    theta: float = 0.0
    vega: float = 0.0


@dataclass(frozen=True)
class OptionQuote:
    """Per-strike snapshot row."""
    strike: float
    call: OptionLeg = field(default_factory=OptionLeg)
    put: OptionLeg = field(default_factory=OptionLeg)


@dataclass(frozen=True)
class OptionChainSnapshot:
    """
    Point-in-time option chain: strike-ordered quotes plus the spot price at capture.
    Strikes must be unique; quotes are sorted ascending on construction.
    """
    spot_price: float
    quotes: Tuple[OptionQuote, ...] = ()
    timestamp: Any = None
    expiry: Optional[str] = None
    symbol: Optional[str] = None

    def __post_init__(self):
        ordered = tuple(sorted(self.quotes, key=lambda q: q.strike))
        strikes = [q.strike for q in ordered]
        if len(set(strikes)) != len(strikes):
            raise ValueError("OptionChainSnapshot strikes must be unique")
        object.__setattr__(self, "quotes", ordered)

    @property
    def is_empty(self) -> bool:
        return len(self.quotes) == 0

    @property
    def strikes(self) -> List[float]:
        return [q.strike for q in self.quotes]

    def __len__(self) -> int:
        return len(self.quotes)


BarsLike = Union[Sequence[PriceBar], pd.DataFrame]


def to_ohlc_frame(bars: BarsLike) -> pd.DataFrame:
    """
    Build a DataFrame with lowercase open/high/low/close/volume columns.

    Accepts a sequence of PriceBar or an existing OHLC DataFrame (column names are
    lower-cased; a missing volume column becomes NaN). Row order is preserved.
    """
    if isinstance(bars, pd.DataFrame):
        df = bars.copy()
        df.columns = [str(col).lower() for col in df.columns]
        if "volume" not in df.columns:
            df["volume"] = float("nan")
        return df.reset_index(drop=True)

    rows = [
        {
            "open": float(b.open),
            "high": float(b.high),
            "low": float(b.low),
            "close": float(b.close),
            "volume": float(b.volume) if b.volume is not None else float("nan"),
            "timestamp": b.timestamp,
        }
        for b in bars
    ]
    if not rows:
        return pd.DataFrame(columns=OHLC_COLUMNS + ["timestamp"], dtype=float)
    return pd.DataFrame(rows)
