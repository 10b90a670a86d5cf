"""
Constant-product market maker (x * y = k, zero fee).

Holds the token and base-currency reserves. Swaps move the input-side
reserve up by the full input and the output-side reserve down by the
quoted amount, so k is preserved up to floating-point rounding.
"""

from dataclasses import dataclass, replace
from typing import Dict, Optional

from config import CONFIG, SimulationConfig


def quote_out(amount_in: float, reserve_in: float, reserve_out: float) -> float:
    """Amount received for `amount_in` against the given reserves (0 if nothing can trade)."""
    if amount_in <= 0 or reserve_in <= 0 or reserve_out <= 0:
        return 0.0
    return amount_in * reserve_out / (reserve_in + amount_in)


@dataclass
class AMMPool:
    """Token/base pool. Price is quoted in base currency per token."""

    reserve_token: float
    reserve_base: float

    def __post_init__(self):
        if self.reserve_token < 0 or self.reserve_base < 0:
            raise ValueError(
                f"reserves cannot be negative, got token={self.reserve_token}, base={self.reserve_base}"
            )

    @classmethod
    def from_config(cls, config: Optional[SimulationConfig] = None) -> "AMMPool":
        cfg = config or CONFIG
        return cls(
            reserve_token=cfg.amm.initial_reserve_token,
            reserve_base=cfg.amm.initial_reserve_base,
        )

    @property
    def price(self) -> float:
        if self.reserve_token <= 0:
            return 0.0
        return self.reserve_base / self.reserve_token

    @property
    def k(self) -> float:
        return self.reserve_token * self.reserve_base

    @property
    def liquidity_ratio(self) -> float:
        """Token share of the raw reserve sum, used as a liquidity-health hint."""
        total = self.reserve_token + self.reserve_base
        return self.reserve_token / total if total > 0 else 0.0

    def quote(self, amount_in: float, token_to_base: bool) -> float:
        if token_to_base:
            return quote_out(amount_in, self.reserve_token, self.reserve_base)
        return quote_out(amount_in, self.reserve_base, self.reserve_token)

    def apply_swap(self, amount_in: float, token_to_base: bool) -> float:
        """
        Execute a swap against the pool.

        Args:
            amount_in: Amount of the input asset
            token_to_base: True to sell token for base, False to buy token with base

        Returns:
            Amount of the output asset paid out (0.0 for a no-op swap)
        """
        amount_out = self.quote(amount_in, token_to_base)
        if amount_out <= 0:
            return 0.0

        if token_to_base:
            self.reserve_token += amount_in
            self.reserve_base -= amount_out
        else:
            self.reserve_base += amount_in
            self.reserve_token -= amount_out
        return amount_out

    def copy(self) -> "AMMPool":
        return replace(self)

    def to_dict(self) -> Dict[str, float]:
        return {
            "reserve_token": self.reserve_token,
            "reserve_base": self.reserve_base,
            "price": self.price,
            "k": self.k,
        }
