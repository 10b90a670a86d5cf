"""
Unit tests for the sigmoid buyback controller
"""

import math

import pytest
from hypothesis import assume, given, strategies as st

from buyback import buyback_budget, buyback_fraction
from config import BuybackConfig

DEFAULT = BuybackConfig()


def expected_rate(wealth: float, cfg: BuybackConfig) -> float:
    return cfg.min_rate + (cfg.max_rate - cfg.min_rate) / (1 + math.exp(-cfg.steepness * (wealth - cfg.midpoint)))


class TestBuybackFraction:
    """Test suite for buyback_fraction"""

    def test_matches_logistic_formula(self):
        for wealth in (0.0, 100_000.0, 500_000.0, 1_250_000.0):
            assert abs(buyback_fraction(wealth, DEFAULT) - expected_rate(wealth, DEFAULT)) < 1e-15

    def test_no_wealth_is_near_min_rate(self):
        """With default constants zero wealth sits in the bottom tenth of the range"""
        rate = buyback_fraction(0.0, DEFAULT)
        assert DEFAULT.min_rate < rate < DEFAULT.min_rate + 0.1 * (DEFAULT.max_rate - DEFAULT.min_rate)

    def test_sharp_curve_reaches_min_rate(self):
        cfg = BuybackConfig(midpoint=1000.0, steepness=0.01)
        assert buyback_fraction(0.0, cfg) == pytest.approx(0.02, abs=1e-5)

    def test_midpoint_is_halfway(self):
        assert buyback_fraction(DEFAULT.midpoint, DEFAULT) == pytest.approx(0.05, abs=1e-12)

    def test_huge_wealth_approaches_max_rate(self):
        assert buyback_fraction(1e12, DEFAULT) == pytest.approx(0.08, abs=1e-12)

    def test_extreme_negative_input_does_not_overflow(self):
        assert buyback_fraction(-1e15, DEFAULT) == DEFAULT.min_rate

    @given(a=st.floats(min_value=0.0, max_value=2_000_000.0), b=st.floats(min_value=0.0, max_value=2_000_000.0))
    def test_strictly_increasing(self, a, b):
        assume(abs(a - b) >= 1.0)
        low, high = sorted((a, b))
        assert buyback_fraction(low, DEFAULT) < buyback_fraction(high, DEFAULT)

    def test_constants_are_tunable(self):
        cfg = BuybackConfig(min_rate=0.1, max_rate=0.3, midpoint=10.0, steepness=1.0)
        assert buyback_fraction(10.0, cfg) == pytest.approx(0.2)


class TestBuybackBudget:
    """Test suite for buyback_budget"""

    def test_budget_is_rate_times_treasury(self):
        assert buyback_budget(10_000.0, 0.0, DEFAULT) == pytest.approx(10_000.0 * buyback_fraction(0.0, DEFAULT))

    def test_empty_treasury_spends_nothing(self):
        assert buyback_budget(0.0, 1e9, DEFAULT) == 0.0

    def test_budget_capped_at_treasury(self):
        cfg = BuybackConfig(min_rate=0.5, max_rate=1.0)
        assert buyback_budget(250.0, 1e12, cfg) <= 250.0
