"""
Buyback controller.

Maps the day's wealth creation to the fraction of the treasury spent on
buying back the token, along a logistic curve between min_rate and max_rate.
"""

import math
from typing import Optional

from config import CONFIG, BuybackConfig


def buyback_fraction(daily_new_wealth: float, config: Optional[BuybackConfig] = None) -> float:
    """
    Treasury spend fraction for a day that created `daily_new_wealth`.

    rate = min + (max - min) / (1 + exp(-steepness * (wealth - midpoint)))
    """
    cfg = config or CONFIG.buyback
    exponent = -cfg.steepness * (daily_new_wealth - cfg.midpoint)
    # exp overflows past ~709; the curve is flat at min_rate there anyway
    if exponent > 700.0:
        sigmoid = 0.0
    else:
        sigmoid = 1.0 / (1.0 + math.exp(exponent))
    return cfg.min_rate + (cfg.max_rate - cfg.min_rate) * sigmoid


def buyback_budget(treasury: float, daily_new_wealth: float,
                   config: Optional[BuybackConfig] = None) -> float:
    """Base currency to spend today, never more than the treasury holds."""
    if treasury <= 0:
        return 0.0
    budget = treasury * buyback_fraction(daily_new_wealth, config)
    return min(budget, treasury)
