"""
Greeks and probability helpers for option analysis.
Black-Scholes Greeks (per-day theta, per-IV-point vega), option pricing,
implied-volatility solving and Probability of Profit (PoP).
"""

import math
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Optional

from scipy.optimize import brentq
from scipy.stats import norm


OPTION_TYPES = ("call", "put")

# Abramowitz & Stegun 7.1.26 coefficients (max abs error ~1.5e-7)
_A1 = 0.254829592
_A2 = -0.284496736
_A3 = 1.421413741
_A4 = -1.453152027
_A5 = 1.061405429
_P = 0.3275911


@dataclass(frozen=True)
class Greeks:
    delta: float
    gamma: float
    theta: float  # per calendar day
    vega: float  # per 1 point of IV
    rho: float  # per 1 point of rate


def norm_cdf(x: float) -> float:
    """Standard normal CDF via the Abramowitz-Stegun erf approximation."""
    sign = -1.0 if x < 0 else 1.0
    x = abs(x) / math.sqrt(2.0)
    t = 1.0 / (1.0 + _P * x)
    y = 1.0 - (((((_A5 * t + _A4) * t) + _A3) * t + _A2) * t + _A1) * t * math.exp(-x * x)
    return 0.5 * (1.0 + sign * y)


def norm_pdf(x: float) -> float:
    return math.exp(-0.5 * x * x) / math.sqrt(2 * math.pi)


def _option_type(option_type: str) -> str:
    opt = (option_type or "").strip().lower()
    if opt not in OPTION_TYPES:
        raise ValueError(f"option_type must be 'call' or 'put', got {option_type!r}")
    return opt


def calculate_greeks(
    spot: float,
    strike: float,
    days_to_expiry: float,
    risk_free_rate: float,
    volatility: float,
    option_type: str,
) -> Greeks:
    """
    Black-Scholes Greeks.

    Args:
        spot: underlying price
        strike: strike price
        days_to_expiry: calendar days left
        risk_free_rate: annual rate as decimal (0.065 for 6.5%)
        volatility: annualized IV as decimal (0.15 for 15%)
        option_type: 'call' or 'put'

    Non-positive time, volatility, spot or strike returns delta +/-0.5 and zero
    for everything else instead of computing.
    """
    opt = _option_type(option_type)
    T = days_to_expiry / 365
    if T <= 0 or volatility <= 0 or spot <= 0 or strike <= 0:
        return Greeks(delta=0.5 if opt == "call" else -0.5, gamma=0.0, theta=0.0, vega=0.0, rho=0.0)

    S, K, r, sigma = spot, strike, risk_free_rate, volatility
    sqrt_t = math.sqrt(T)
    d1 = (math.log(S / K) + (r + 0.5 * sigma * sigma) * T) / (sigma * sqrt_t)
    d2 = d1 - sigma * sqrt_t
    n_d1 = norm_pdf(d1)
    discount = math.exp(-r * T)

    if opt == "call":
        delta = norm_cdf(d1)
        theta = (-(S * n_d1 * sigma) / (2 * sqrt_t) - r * K * discount * norm_cdf(d2)) / 365
        rho = K * T * discount * norm_cdf(d2) / 100
    else:
        delta = norm_cdf(d1) - 1
        theta = (-(S * n_d1 * sigma) / (2 * sqrt_t) + r * K * discount * norm_cdf(-d2)) / 365
        rho = -K * T * discount * norm_cdf(-d2) / 100

    gamma = n_d1 / (S * sigma * sqrt_t)
    vega = S * n_d1 * sqrt_t / 100

    return Greeks(
        delta=max(-1.0, min(1.0, delta)),
        gamma=max(0.0, gamma),
        theta=theta,
        vega=max(0.0, vega),
        rho=rho,
    )


def _parse_expiry(expiry: Any) -> datetime:
    if isinstance(expiry, datetime):
        return expiry
    if isinstance(expiry, date):
        return datetime(expiry.year, expiry.month, expiry.day)
    text = str(expiry).strip()
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        pass
    # NSE style: 30-Jan-2025
    return datetime.strptime(text, "%d-%b-%Y")


def days_to_expiry(expiry: Any, now: Optional[datetime] = None) -> int:
    """
    Whole calendar days until expiry: ceil((expiry - now) / 1 day), floored at 0.
    Accepts a datetime, a date, an ISO string or an NSE 'DD-Mon-YYYY' string.
    """
    expiry_dt = _parse_expiry(expiry)
    if now is None:
        now = datetime.now(expiry_dt.tzinfo) if expiry_dt.tzinfo else datetime.now()
    elif (now.tzinfo is None) != (expiry_dt.tzinfo is None):
        # Compare wall-clock values when only one side carries a zone
        now = now.replace(tzinfo=expiry_dt.tzinfo)
    diff_days = (expiry_dt - now).total_seconds() / 86400
    return max(0, math.ceil(diff_days))


def compute_greeks(
    spot: float,
    strike: float,
    expiry_date: Any,
    iv_percent: float,
    option_type: str,
    risk_free_rate: float = 0.065,
    now: Optional[datetime] = None,
) -> Greeks:
    """Greeks for a chain row: IV given in percent, expiry as a date."""
    return calculate_greeks(
        spot=spot,
        strike=strike,
        days_to_expiry=days_to_expiry(expiry_date, now),
        risk_free_rate=risk_free_rate,
        volatility=iv_percent / 100,
        option_type=option_type,
    )


def probability_of_profit(
    spot: float,
    strike: float,
    time_years: float,
    risk_free_rate: float,
    implied_vol: float,
    option_type: str = "call",
) -> Optional[float]:
    """
    Black-Scholes risk-neutral probability that option expires ITM (PoP).
    implied_vol: annualized (e.g. 0.25 for 25%). Returns [0, 1] or None if inputs invalid.
    """
    if time_years <= 0 or implied_vol <= 0 or spot <= 0 or strike <= 0:
        return None
    d1 = (
        (math.log(spot / strike) + (risk_free_rate + 0.5 * implied_vol ** 2) * time_years)
        / (implied_vol * math.sqrt(time_years))
    )
    d2 = d1 - implied_vol * math.sqrt(time_years)
    if _option_type(option_type) == "put":
        return float(norm.cdf(-d2))
    return float(norm.cdf(d2))


def black_scholes_call_price(
    spot: float,
    strike: float,
    time_years: float,
    risk_free_rate: float,
    implied_vol: float,
) -> float:
    """Black-Scholes call price. Returns intrinsic at expiry (T=0)."""
    if spot <= 0 or strike <= 0 or implied_vol <= 0:
        return 0.0
    if time_years <= 0:
        return max(spot - strike, 0.0)
    d1 = (
        math.log(spot / strike)
        + (risk_free_rate + 0.5 * implied_vol ** 2) * time_years
    ) / (implied_vol * math.sqrt(time_years))
    d2 = d1 - implied_vol * math.sqrt(time_years)
    return float(spot * norm.cdf(d1) - strike * math.exp(-risk_free_rate * time_years) * norm.cdf(d2))


def black_scholes_put_price(
    spot: float,
    strike: float,
    time_years: float,
    risk_free_rate: float,
    implied_vol: float,
) -> float:
    """Black-Scholes put price. Returns intrinsic at expiry (T=0)."""
    if spot <= 0 or strike <= 0 or implied_vol <= 0:
        return 0.0
    if time_years <= 0:
        return max(strike - spot, 0.0)
    d1 = (
        math.log(spot / strike)
        + (risk_free_rate + 0.5 * implied_vol ** 2) * time_years
    ) / (implied_vol * math.sqrt(time_years))
    d2 = d1 - implied_vol * math.sqrt(time_years)
    return float(strike * math.exp(-risk_free_rate * time_years) * norm.cdf(-d2) - spot * norm.cdf(-d1))


def black_scholes_price(
    spot: float,
    strike: float,
    time_years: float,
    risk_free_rate: float,
    implied_vol: float,
    option_type: str,
) -> float:
    if _option_type(option_type) == "put":
        return black_scholes_put_price(spot, strike, time_years, risk_free_rate, implied_vol)
    return black_scholes_call_price(spot, strike, time_years, risk_free_rate, implied_vol)


def solve_implied_volatility(
    spot: float,
    strike: float,
    time_years: float,
    risk_free_rate: float,
    option_type: str,
    market_price: float,
    sigma_low: float = 0.001,
    sigma_high: float = 5.0,
) -> Optional[float]:
    """
    Solve for implied volatility (sigma) such that Black-Scholes price equals market_price.
    Uses scipy.optimize.brentq. Returns annualized IV as decimal (e.g. 0.25 for 25%) or None.
    """
    if spot <= 0 or strike <= 0 or market_price <= 0 or time_years <= 0:
        return None
    opt = _option_type(option_type)
    if opt == "put":
        intrinsic = max(strike - spot, 0.0)
    else:
        intrinsic = max(spot - strike, 0.0)
    if market_price <= intrinsic:
        return None

    def objective(sigma: float) -> float:
        return black_scholes_price(spot, strike, time_years, risk_free_rate, sigma, opt) - market_price

    try:
        sigma = brentq(objective, sigma_low, sigma_high, xtol=1e-6, maxiter=100)
    except (ValueError, RuntimeError):
        # no sign change inside the bracket, or no convergence
        return None
    return round(float(sigma), 6)


def days_to_years(days: Optional[float]) -> Optional[float]:
    """Convert DTE to time in years for Black-Scholes."""
    if days is None or days < 0:
        return None
    return days / 365.0
