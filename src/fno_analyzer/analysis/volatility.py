"""
Volatility helpers: IV Rank / IV Percentile of the current ATM IV against a
caller-supplied IV history.
"""

import math
from dataclasses import dataclass
from typing import List, Optional, Sequence


@dataclass(frozen=True)
class IVRankSummary:
    current_iv: float
    rank: float  # 0-100
    percentile: float  # 0-100
    label: str  # Low IV / Normal IV / High IV
    high_52w: float
    low_52w: float


def get_iv_rank(
    current_iv: float,
    historical_ivs: Sequence[float],
) -> Optional[float]:
    """
    IV Rank = (current_IV - min_IV) / (max_IV - min_IV) * 100.
    Returns 0-100, 50 for a flat history, or None if historical_ivs is empty.
    """
    if not historical_ivs:
        return None
    min_iv = min(historical_ivs)
    max_iv = max(historical_ivs)
    if max_iv <= min_iv:
        return 50.0  # flat history
    rank = (current_iv - min_iv) / (max_iv - min_iv) * 100.0
    return max(0.0, min(100.0, rank))


def get_iv_percentile(
    current_iv: float,
    historical_ivs: Sequence[float],
) -> Optional[float]:
    """Share of historical observations strictly below current_iv, in percent."""
    if not historical_ivs:
        return None
    below = sum(1 for iv in historical_ivs if iv < current_iv)
    return below / len(historical_ivs) * 100.0


def iv_rank_label(rank: float) -> str:
    if rank < 30:
        return "Low IV"
    if rank > 70:
        return "High IV"
    return "Normal IV"


def summarize_iv(current_iv: float, historical_ivs: Sequence[float]) -> Optional[IVRankSummary]:
    """IV rank card values; None without history."""
    if not historical_ivs:
        return None
    rank = get_iv_rank(current_iv, historical_ivs)
    percentile = get_iv_percentile(current_iv, historical_ivs)
    return IVRankSummary(
        current_iv=current_iv,
        rank=round(rank, 1),
        percentile=round(percentile, 1),
        label=iv_rank_label(rank),
        high_52w=float(max(historical_ivs)),
        low_52w=float(min(historical_ivs)),
    )


def clean_iv_history(values: Sequence[float]) -> List[float]:
    """Drop non-positive and NaN IV samples."""
    return [float(v) for v in values if v is not None and not math.isnan(v) and v > 0]
