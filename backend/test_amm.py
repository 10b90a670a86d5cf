"""
Unit tests for the constant-product market maker

Tests cover:
- Exact quote formula
- No-op swaps
- k preservation and quote monotonicity (property-based)
- Price movement direction
"""

import pytest
from hypothesis import given, strategies as st

from amm import AMMPool, quote_out
from config import AMMConfig, SimulationConfig

reserves = st.floats(min_value=1.0, max_value=1e9, allow_nan=False, allow_infinity=False)
input_fractions = st.floats(min_value=1e-6, max_value=100.0, allow_nan=False, allow_infinity=False)


class TestQuoteOut:
    """Test suite for the zero-fee swap quote"""

    def test_exact_formula(self):
        """1000 in against 1M/1M reserves should return 1000 * 1e6 / 1.001e6"""
        out = quote_out(1000, 1_000_000, 1_000_000)
        assert abs(out - 999.000999000999) < 1e-9

    @pytest.mark.parametrize("amount_in, reserve_in, reserve_out", [
        (0, 1000, 1000),
        (-5, 1000, 1000),
        (10, 0, 1000),
        (10, 1000, 0),
        (10, -1, 1000),
    ])
    def test_nothing_to_trade_returns_zero(self, amount_in, reserve_in, reserve_out):
        """Non-positive input or reserves quote zero instead of raising"""
        assert quote_out(amount_in, reserve_in, reserve_out) == 0.0

    @given(reserve_in=reserves, reserve_out=reserves, a=input_fractions, b=input_fractions)
    def test_monotonic_and_bounded(self, reserve_in, reserve_out, a, b):
        """Bigger input never returns less, and never drains the output reserve"""
        small, large = sorted((a * reserve_in, b * reserve_in))
        q_small = quote_out(small, reserve_in, reserve_out)
        q_large = quote_out(large, reserve_in, reserve_out)
        assert q_small <= q_large
        assert q_large < reserve_out


class TestAMMPool:
    """Test suite for AMMPool swaps"""

    @given(reserve_token=reserves, reserve_base=reserves, fraction=input_fractions,
           token_to_base=st.booleans())
    def test_swap_preserves_k(self, reserve_token, reserve_base, fraction, token_to_base):
        """reserve_token * reserve_base is unchanged by a zero-fee swap"""
        pool = AMMPool(reserve_token=reserve_token, reserve_base=reserve_base)
        k_before = pool.k
        reserve_in = reserve_token if token_to_base else reserve_base
        pool.apply_swap(fraction * reserve_in, token_to_base)
        assert pool.k == pytest.approx(k_before, rel=1e-9)

    def test_selling_token_lowers_price(self):
        pool = AMMPool(reserve_token=1_000_000, reserve_base=1_000_000)
        out = pool.apply_swap(1000, token_to_base=True)

        assert abs(out - 999.000999000999) < 1e-9
        assert pool.reserve_token == 1_001_000
        assert abs(pool.reserve_base - (1_000_000 - out)) < 1e-9
        assert pool.price < 1.0

    def test_buying_token_raises_price(self):
        pool = AMMPool(reserve_token=1_000_000, reserve_base=1_000_000)
        pool.apply_swap(1000, token_to_base=False)
        assert pool.price > 1.0

    def test_zero_swap_leaves_reserves_untouched(self):
        pool = AMMPool(reserve_token=500.0, reserve_base=250.0)
        assert pool.apply_swap(0, token_to_base=True) == 0.0
        assert pool.reserve_token == 500.0
        assert pool.reserve_base == 250.0

    def test_from_config_uses_initial_reserves(self):
        config = SimulationConfig(amm=AMMConfig(initial_reserve_token=4000.0, initial_reserve_base=1000.0))
        pool = AMMPool.from_config(config)
        assert pool.price == 0.25
        assert pool.liquidity_ratio == 0.8

    def test_copy_is_independent(self):
        pool = AMMPool(reserve_token=100.0, reserve_base=100.0)
        staged = pool.copy()
        staged.apply_swap(10, token_to_base=True)
        assert pool.reserve_token == 100.0

    def test_negative_reserves_rejected(self):
        with pytest.raises(ValueError):
            AMMPool(reserve_token=-1.0, reserve_base=10.0)
