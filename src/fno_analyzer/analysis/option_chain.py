"""
Option Chain Analytics Module
Delta buildup, near-ATM gamma exposure, theta decay, IV regime, PCR and max pain
from one normalized OptionChainSnapshot.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional, Sequence, Union

from fno_analyzer.market_data.models import OptionChainSnapshot, OptionQuote


@dataclass(frozen=True)
class OptionChainThresholds:
    """
    Tier thresholds for chain aggregates. These depend on contract size and
    index liquidity, so they come from the 'option_chain' config section.
    """
    atm_window_pct: float = 0.02
    delta_buildup_ratio: float = 1.2
    gamma_high: float = 1_000_000
    gamma_moderate: float = 500_000
    theta_high: float = 500_000
    theta_moderate: float = 200_000
    iv_expanding: float = 20
    iv_contracting: float = 12
    pcr_put_heavy: float = 1.2
    pcr_call_heavy: float = 0.8

    @classmethod
    def from_config(cls, config: Optional[Dict[str, Any]] = None) -> "OptionChainThresholds":
        cfg = config or {}
        defaults = cls()
        return cls(**{
            name: float(cfg.get(name, getattr(defaults, name)))
            for name in defaults.__dataclass_fields__
        })


@dataclass(frozen=True)
class OptionChainAnalysis:
    delta_buildup: str  # call/put/balanced
    gamma_exposure: str  # high/moderate/low
    theta_decay: str  # high/moderate/low
    iv_regime: str  # expanding/contracting/stable
    pcr: float
    max_pain: float
    atm_strike: float
    total_call_oi: float = 0.0
    total_put_oi: float = 0.0
    call_delta_exposure: float = 0.0
    put_delta_exposure: float = 0.0
    gamma_value: float = 0.0
    theta_value: float = 0.0
    avg_iv: float = 0.0
    atm_iv: float = 0.0


ChainLike = Union[OptionChainSnapshot, Sequence[OptionQuote]]


def _tier(value: float, high: float, moderate: float) -> str:
    if value > high:
        return "high"
    if value > moderate:
        return "moderate"
    return "low"


def neutral_chain_analysis(spot_price: float) -> OptionChainAnalysis:
    """Defaults reported for an empty chain."""
    return OptionChainAnalysis(
        delta_buildup="balanced",
        gamma_exposure="low",
        theta_decay="low",
        iv_regime="stable",
        pcr=1.0,
        max_pain=spot_price,
        atm_strike=spot_price,
    )


def find_atm_quote(quotes: Sequence[OptionQuote], spot_price: float) -> Optional[OptionQuote]:
    """Strike closest to spot; the lower strike wins a tie."""
    atm = None
    best = float("inf")
    for quote in quotes:
        distance = abs(quote.strike - spot_price)
        if distance < best:
            best = distance
            atm = quote
    return atm


def analyze_option_chain(
    chain: ChainLike,
    spot_price: float,
    thresholds: Optional[OptionChainThresholds] = None,
) -> OptionChainAnalysis:
    """
    Aggregate a chain into positioning tiers.

    Args:
        chain: OptionChainSnapshot or strike-ordered OptionQuote sequence
        spot_price: underlying price used for ATM selection
        thresholds: tier thresholds (defaults when None)

    Returns:
        OptionChainAnalysis; neutral defaults for an empty chain
    """
    t = thresholds or OptionChainThresholds()
    quotes = list(chain.quotes if isinstance(chain, OptionChainSnapshot) else chain)
    if not quotes:
        return neutral_chain_analysis(spot_price)
    quotes.sort(key=lambda q: q.strike)

    atm = find_atm_quote(quotes, spot_price)
    atm_strike = atm.strike

    call_delta_exposure = sum(q.call.delta * q.call.oi for q in quotes)
    put_delta_exposure = sum(abs(q.put.delta) * q.put.oi for q in quotes)
    if call_delta_exposure > put_delta_exposure * t.delta_buildup_ratio:
        delta_buildup = "call"
    elif put_delta_exposure > call_delta_exposure * t.delta_buildup_ratio:
        delta_buildup = "put"
    else:
        delta_buildup = "balanced"

    window = spot_price * t.atm_window_pct
    gamma_value = sum(
        (q.call.gamma + q.put.gamma) * (q.call.oi + q.put.oi)
        for q in quotes
        if abs(q.strike - atm_strike) < window
    )
    gamma_exposure = _tier(gamma_value, t.gamma_high, t.gamma_moderate)

    theta_value = sum(abs(q.call.theta) * q.call.oi + abs(q.put.theta) * q.put.oi for q in quotes)
    theta_decay = _tier(theta_value, t.theta_high, t.theta_moderate)

    avg_iv = sum(q.call.iv + q.put.iv for q in quotes) / (len(quotes) * 2)
    if avg_iv > t.iv_expanding:
        iv_regime = "expanding"
    elif avg_iv < t.iv_contracting:
        iv_regime = "contracting"
    else:
        iv_regime = "stable"

    total_call_oi = sum(q.call.oi for q in quotes)
    total_put_oi = sum(q.put.oi for q in quotes)
    pcr = total_put_oi / total_call_oi if total_call_oi > 0 else 1.0

    max_pain = quotes[0].strike
    max_oi = -1.0
    for q in quotes:
        combined = q.call.oi + q.put.oi
        if combined > max_oi:
            max_oi = combined
            max_pain = q.strike

    atm_ivs = [iv for iv in (atm.call.iv, atm.put.iv) if iv > 0]
    atm_iv = sum(atm_ivs) / len(atm_ivs) if atm_ivs else 0.0

    return OptionChainAnalysis(
        delta_buildup=delta_buildup,
        gamma_exposure=gamma_exposure,
        theta_decay=theta_decay,
        iv_regime=iv_regime,
        pcr=pcr,
        max_pain=max_pain,
        atm_strike=atm_strike,
        total_call_oi=total_call_oi,
        total_put_oi=total_put_oi,
        call_delta_exposure=call_delta_exposure,
        put_delta_exposure=put_delta_exposure,
        gamma_value=gamma_value,
        theta_value=theta_value,
        avg_iv=avg_iv,
        atm_iv=atm_iv,
    )


def option_writer_pressure(pcr: float, thresholds: Optional[OptionChainThresholds] = None) -> str:
    """
    Which side option writers are leaning on.
    PCR above the put-heavy level -> 'PE' (put writing), below the call-heavy
    level -> 'CE' (call writing), otherwise 'balanced'.
    """
    t = thresholds or OptionChainThresholds()
    if pcr > t.pcr_put_heavy:
        return "PE"
    if pcr < t.pcr_call_heavy:
        return "CE"
    return "balanced"
