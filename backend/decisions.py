"""
Decision providers.

A provider turns the market context and agent snapshots into one batch of
per-agent intents for the day. The settlement engine only consumes the
batch; it never knows whether the intents came from a script or a remote
oracle, and it clamps every value itself.
"""

import logging
import math
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Dict, List, Optional

import numpy as np
from pydantic import BaseModel, ConfigDict, Field

from agents import DEGEN, DIAMOND_HAND, FARMER, PAPER_HAND, WHALE
from config import CONFIG, SimulationConfig

logger = logging.getLogger(__name__)


class ProviderStatus(str, Enum):
    SUCCESS = "Success"
    RATE_LIMITED = "RateLimited"
    QUOTA_EXCEEDED = "QuotaExceeded"
    ERROR = "Error"


# ---------- Models ----------

class AgentActionIntent(BaseModel):
    """One agent's plan for the day. Values are not range-checked here."""
    model_config = ConfigDict(populate_by_name=True)

    agent_id: int = Field(..., alias="botId")
    craft_count: int = Field(0, alias="craftCount")
    open_chests: int = Field(0, alias="openChests")
    invest_medals: bool = Field(True, alias="investMedals")
    claim_rewards: bool = Field(False, alias="claimRewards")
    stake_ratio: float = Field(0.0, alias="stakeMemePercent")
    unstake_ratio: float = Field(0.0, alias="unstakeMemePercent")
    sell_ratio: float = Field(0.0, alias="sellMemePercent")
    rationale: str = ""


class MarketContext(BaseModel):
    day: int
    price: float
    previous_price: float
    apy: float = 0.0
    medals_in_pool: float = 0.0
    total_wealth: float = 0.0
    treasury: float = 0.0
    price_trend: str = "Stable"  # Up / Down / Stable
    consecutive_up_days: int = 0
    liquidity_ratio: float = 0.0


class DecisionBatch(BaseModel):
    intents: List[AgentActionIntent] = Field(default_factory=list)
    narrative: str = ""
    status: ProviderStatus = ProviderStatus.SUCCESS

    @classmethod
    def empty(cls, status: ProviderStatus, narrative: str = "") -> "DecisionBatch":
        return cls(intents=[], narrative=narrative, status=status)


# ---------- Providers ----------

class DecisionProvider(ABC):
    """Source of the day's intents."""

    @abstractmethod
    async def get_intents(self, context: MarketContext,
                          agents: List[Dict[str, Any]]) -> DecisionBatch:
        """Return the intent batch for the agents described by `agents` snapshots."""


class NullDecisionProvider(DecisionProvider):
    """Agents do nothing on their own."""

    async def get_intents(self, context: MarketContext,
                          agents: List[Dict[str, Any]]) -> DecisionBatch:
        return DecisionBatch(narrative="No autonomous activity.")


class HeuristicDecisionProvider(DecisionProvider):
    """
    Scripted personality strategies.

    Crafting appetite follows a rough ROI estimate of the medal pool at the
    current price; token handling follows each personality's temperament.
    """

    # Share of base currency a personality is willing to put into crafting
    CRAFT_BUDGET = {
        WHALE: 0.15,
        DEGEN: 0.6,
        FARMER: 0.4,
        PAPER_HAND: 0.3,
        DIAMOND_HAND: 0.3,
    }

    def __init__(self, config: Optional[SimulationConfig] = None, seed: Optional[int] = None):
        self.config = config or CONFIG
        self.rng = np.random.default_rng(seed)

    def estimate_roi(self, context: MarketContext) -> float:
        """Expected return per unit of base currency spent crafting and opening chests."""
        cfg = self.config
        pool = context.medals_in_pool if context.medals_in_pool > 0 else max(100.0, context.total_wealth / 10)
        reward_per_medal = cfg.rewards.daily_token_reward / pool
        avg_medals = (cfg.chests.medal_min + cfg.chests.medal_max) / 2
        chest_value = avg_medals * reward_per_medal * context.price * (1 - cfg.rewards.redistribution_tax_rate)

        chests_per_item = cfg.crafting.wealth_per_item / cfg.crafting.chest_wealth_divisor
        salvage_value = cfg.crafting.wealth_per_item * cfg.crafting.salvage_rate
        item_value = chests_per_item * (chest_value - cfg.chests.chest_open_cost) + salvage_value
        return item_value / cfg.crafting.craft_cost - 1.0

    def activity_multiplier(self, roi: float) -> float:
        if roi > 0.05:
            base = 2.0
        elif roi < 0:
            base = 0.2
        else:
            base = 1.0
        return base * float(self.rng.uniform(0.9, 1.1))

    def plan_agent(self, agent: Dict[str, Any], context: MarketContext, roi: float) -> AgentActionIntent:
        cfg = self.config
        personality = agent.get("personality", FARMER)
        activity = self.activity_multiplier(roi)
        base = float(agent.get("base_currency", 0.0))

        budget_share = min(1.0, self.CRAFT_BUDGET.get(personality, 0.3) * activity)
        if personality == FARMER and roi <= 0:
            budget_share = 0.0
        craft_count = int(math.floor(base * budget_share / cfg.crafting.craft_cost))
        remaining = base - craft_count * cfg.crafting.craft_cost

        bonus_chests = int(math.floor(craft_count * cfg.crafting.wealth_per_item / cfg.crafting.chest_wealth_divisor))
        chests = int(agent.get("chests", 0)) + bonus_chests
        if cfg.chests.chest_open_cost > 0:
            chests = min(chests, int(remaining // cfg.chests.chest_open_cost))
        if personality == FARMER and roi <= 0:
            chests = 0

        stake = unstake = sell = 0.0
        falling = context.price_trend == "Down"
        if personality == WHALE:
            stake, sell = 0.5, (0.3 if context.price_trend == "Up" else 0.1)
        elif personality == DEGEN:
            if context.apy > 0.5:
                stake = 1.0
            else:
                sell = 1.0
        elif personality == FARMER:
            sell, stake = 0.8, 0.2
        elif personality == PAPER_HAND:
            if falling:
                unstake, sell = 1.0, 1.0
            else:
                sell, stake = 0.5, 0.5
        elif personality == DIAMOND_HAND:
            stake = 1.0

        return AgentActionIntent(
            agent_id=int(agent["agent_id"]),
            craft_count=craft_count,
            open_chests=max(0, chests),
            invest_medals=not (personality == FARMER and roi <= 0),
            claim_rewards=True,
            stake_ratio=stake,
            unstake_ratio=unstake,
            sell_ratio=sell,
            rationale=f"{personality}: roi {roi:+.2f}, activity {activity:.2f}, trend {context.price_trend}",
        )

    async def get_intents(self, context: MarketContext,
                          agents: List[Dict[str, Any]]) -> DecisionBatch:
        roi = self.estimate_roi(context)
        intents = [
            self.plan_agent(agent, context, roi)
            for agent in agents
            if not agent.get("is_human")
        ]
        mood = "bullish" if roi > 0.05 else ("bearish" if roi < 0 else "neutral")
        narrative = f"Scripted market mood is {mood} (estimated ROI {roi:+.1%}, trend {context.price_trend})."
        return DecisionBatch(intents=intents, narrative=narrative)
