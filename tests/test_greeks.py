"""Black-Scholes Greeks, pricing, IV solver and expiry handling."""

import math
from datetime import date, datetime, timedelta

import pytest
from scipy.stats import norm

from fno_analyzer.analysis.greeks import (
    black_scholes_call_price,
    black_scholes_put_price,
    calculate_greeks,
    compute_greeks,
    days_to_expiry,
    norm_cdf,
    norm_pdf,
    probability_of_profit,
    solve_implied_volatility,
)


class TestNormal:
    @pytest.mark.parametrize("x", [-3.0, -1.5, -0.2, 0.0, 0.7, 1.96, 4.0])
    def test_cdf_close_to_exact(self, x):
        assert norm_cdf(x) == pytest.approx(norm.cdf(x), abs=2e-7)

    def test_pdf(self):
        assert norm_pdf(0.0) == pytest.approx(1 / math.sqrt(2 * math.pi))


class TestCalculateGreeks:
    def test_reference_call(self):
        g = calculate_greeks(100, 100, 30, 0.065, 0.20, "call")
        assert 0.54 <= g.delta <= 0.60
        assert g.gamma > 0
        assert g.vega > 0
        assert g.theta < 0
        assert g.rho > 0

    def test_put_delta_range_and_shared_gamma_vega(self):
        call = calculate_greeks(100, 105, 20, 0.065, 0.25, "call")
        put = calculate_greeks(100, 105, 20, 0.065, 0.25, "put")
        assert -1 <= put.delta <= 0
        assert 0 <= call.delta <= 1
        assert put.gamma == pytest.approx(call.gamma)
        assert put.vega == pytest.approx(call.vega)
        assert put.delta == pytest.approx(call.delta - 1)
        assert put.rho < 0

    def test_theta_is_per_day_and_vega_per_point(self):
        g = calculate_greeks(100, 100, 30, 0.065, 0.20, "call")
        t = 30 / 365
        step = 1e-4
        price = black_scholes_call_price(100, 100, t, 0.065, 0.20)
        bumped_vol = black_scholes_call_price(100, 100, t, 0.065, 0.20 + step)
        assert g.vega == pytest.approx((bumped_vol - price) / step / 100, rel=1e-2)
        one_day_less = black_scholes_call_price(100, 100, t - 1 / 365, 0.065, 0.20)
        assert g.theta == pytest.approx(one_day_less - price, rel=5e-2)

    @pytest.mark.parametrize("kwargs", [
        {"days_to_expiry": 0},
        {"days_to_expiry": -3},
        {"volatility": 0},
        {"spot": 0},
        {"strike": -1},
    ])
    def test_degenerate_inputs(self, kwargs):
        base = {"spot": 100, "strike": 100, "days_to_expiry": 30, "risk_free_rate": 0.065, "volatility": 0.2}
        base.update(kwargs)
        call = calculate_greeks(option_type="call", **base)
        put = calculate_greeks(option_type="put", **base)
        assert call.delta == 0.5 and put.delta == -0.5
        for g in (call, put):
            assert (g.gamma, g.theta, g.vega, g.rho) == (0, 0, 0, 0)

    def test_unknown_option_type(self):
        with pytest.raises(ValueError):
            calculate_greeks(100, 100, 30, 0.065, 0.2, "straddle")

    def test_deep_itm_call_delta_clamped(self):
        g = calculate_greeks(200, 100, 30, 0.065, 0.2, "call")
        assert g.delta <= 1.0
        assert g.delta == pytest.approx(1.0, abs=1e-6)


class TestDaysToExpiry:
    def setup_method(self):
        self.now = datetime(2025, 1, 1, 10, 0)

    def test_iso_date_rounds_up(self):
        assert days_to_expiry("2025-01-30", self.now) == 29

    def test_nse_format(self):
        assert days_to_expiry("30-Jan-2025", self.now) == 29

    def test_partial_day_counts_as_one(self):
        assert days_to_expiry(datetime(2025, 1, 1, 15, 30), self.now) == 1

    def test_past_expiry_floors_at_zero(self):
        assert days_to_expiry(date(2024, 12, 1), self.now) == 0

    def test_compute_greeks_uses_percent_iv(self):
        expiry = self.now + timedelta(days=30)
        expected = calculate_greeks(100, 100, 30, 0.065, 0.20, "call")
        assert compute_greeks(100, 100, expiry, 20, "call", now=self.now) == expected


class TestPricing:
    def test_put_call_parity(self):
        t = 45 / 365
        call = black_scholes_call_price(100, 95, t, 0.065, 0.3)
        put = black_scholes_put_price(100, 95, t, 0.065, 0.3)
        assert call - put == pytest.approx(100 - 95 * math.exp(-0.065 * t))

    def test_intrinsic_at_expiry(self):
        assert black_scholes_call_price(110, 100, 0, 0.065, 0.2) == 10
        assert black_scholes_put_price(110, 100, 0, 0.065, 0.2) == 0

    def test_implied_volatility_round_trip(self):
        t = 30 / 365
        price = black_scholes_put_price(100, 102, t, 0.065, 0.27)
        iv = solve_implied_volatility(100, 102, t, 0.065, "put", price)
        assert iv == pytest.approx(0.27, abs=1e-4)

    def test_implied_volatility_below_intrinsic(self):
        assert solve_implied_volatility(110, 100, 0.1, 0.065, "call", 5.0) is None

    def test_probability_of_profit(self):
        call = probability_of_profit(100, 100, 30 / 365, 0.065, 0.2, "call")
        put = probability_of_profit(100, 100, 30 / 365, 0.065, 0.2, "put")
        assert 0 < call < 1
        assert call + put == pytest.approx(1.0)
        assert probability_of_profit(100, 100, 0, 0.065, 0.2) is None
