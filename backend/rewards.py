"""
Reward & tax engine.

Settles the medal pool (payouts plus the redistribution tax on non-human
payouts) and splits the staking dividend bought back by the treasury.
Both operate on a Ledger in place and report what they credited so the
settlement engine can account for minted and burned token.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Optional

import numpy as np

from config import CONFIG, RewardConfig
from ledger import Ledger

logger = logging.getLogger(__name__)


@dataclass
class PoolSettlement:
    pool_size: float = 0.0
    payouts: Dict[int, float] = field(default_factory=dict)  # Gross payout per agent
    tax_pool: float = 0.0
    redistribution: float = 0.0  # Paid to the human agent
    tax_retained: float = 0.0  # Taxed but paid to nobody

    @property
    def minted(self) -> float:
        """Token credited to claimable buckets by this settlement."""
        return sum(self.payouts.values()) - self.tax_pool + self.redistribution


@dataclass
class DividendResult:
    dividend: float = 0.0
    distributed: float = 0.0
    undistributed: float = 0.0
    apy: float = 0.0
    shares: Dict[int, float] = field(default_factory=dict)


def staking_apy(dividend: float, total_staked: float, days_per_year: float = 365.0) -> float:
    """Annualised dividend yield as a fraction (0.12 == 12%)."""
    if total_staked <= 0:
        return 0.0
    return dividend * days_per_year / total_staked


def redistribution_share(ledger: Ledger, payouts: Dict[int, float],
                         config: Optional[RewardConfig] = None) -> float:
    """
    Fraction of the tax pool owed to the human agent.

    "unclaimed": human's unclaimed pool reward (including today's payout)
                 over that plus every non-human payout of the day.
    "wealth":    human's wealth over total wealth.
    """
    cfg = config or CONFIG.rewards
    human = ledger.human
    if human is None:
        return 0.0

    if cfg.redistribution_basis == "wealth":
        total = ledger.state.total_wealth
        return human.wealth / total if total > 0 else 0.0

    human_unclaimed = human.unclaimed_pool_reward + payouts.get(human.agent_id, 0.0)
    others = sum(amount for agent_id, amount in payouts.items() if agent_id != human.agent_id)
    total = human_unclaimed + others
    return human_unclaimed / total if total > 0 else 0.0


def settle_pool_rewards(ledger: Ledger, config: Optional[RewardConfig] = None) -> PoolSettlement:
    """
    Pay out the medal pool committed before this settlement.

    Each agent receives daily_token_reward * invested / pool. Non-human
    payouts are taxed; part of the tax returns to the human agent and the
    rest is not paid. Invested medals are cleared afterwards.
    """
    cfg = config or CONFIG.rewards
    agents = sorted(ledger.agents.values(), key=lambda a: a.agent_id)
    result = PoolSettlement()
    if not agents:
        return result

    invested = np.array([a.invested_medals for a in agents], dtype=np.float64)
    is_human = np.array([a.is_human for a in agents], dtype=bool)

    # Never pay out more than the daily reward, even if the recorded pool lags
    pool = max(float(ledger.state.medals_in_pool), float(invested.sum()))
    result.pool_size = pool

    if pool > 0 and cfg.daily_token_reward > 0:
        payouts = cfg.daily_token_reward * invested / pool
        taxes = np.where(is_human, 0.0, payouts * cfg.redistribution_tax_rate)

        result.payouts = {a.agent_id: float(p) for a, p in zip(agents, payouts) if p > 0}
        result.tax_pool = float(taxes.sum())

        share = redistribution_share(ledger, result.payouts, cfg)
        result.redistribution = result.tax_pool * share
        result.tax_retained = result.tax_pool - result.redistribution

        for agent, payout, tax in zip(agents, payouts, taxes):
            agent.unclaimed_pool_reward += float(payout - tax)
        human = ledger.human
        if human is not None and result.redistribution > 0:
            human.unclaimed_redistribution += result.redistribution

        logger.debug("Pool of %.0f medals settled: %.2f paid, %.2f taxed, %.2f redistributed",
                     pool, float(payouts.sum()), result.tax_pool, result.redistribution)

    for agent in agents:
        agent.invested_medals = 0
    return result


def distribute_staking_dividend(ledger: Ledger, token_bought: float,
                                config: Optional[RewardConfig] = None) -> DividendResult:
    """Split the dividend share of today's buyback across stakers by stake weight."""
    cfg = config or CONFIG.rewards
    dividend = max(0.0, token_bought) * cfg.staking_dividend_share
    total_staked = ledger.state.total_staked
    result = DividendResult(dividend=dividend)

    if total_staked <= 0:
        result.undistributed = dividend
        if dividend > 0:
            logger.info("No stake outstanding; %.2f dividend left undistributed (APY 0)", dividend)
        return result

    agents = sorted(ledger.agents.values(), key=lambda a: a.agent_id)
    staked = np.array([a.staked_token for a in agents], dtype=np.float64)
    shares = dividend * staked / total_staked

    for agent, share in zip(agents, shares):
        if share > 0:
            agent.unclaimed_staking_reward += float(share)
            result.shares[agent.agent_id] = float(share)

    result.distributed = float(shares.sum())
    result.undistributed = dividend - result.distributed
    result.apy = staking_apy(dividend, total_staked, cfg.days_per_year)
    return result
