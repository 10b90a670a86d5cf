"""
Ledger / agent store.

Owns every agent balance plus the global aggregates (treasury, total
wealth, medal pool, total staked) and implements the single-agent
primitive actions. Primitives never raise on an unaffordable request:
they leave state untouched and return an ActionResult naming the failure.
"""

import copy
import math
from dataclasses import dataclass, asdict
from enum import Enum
from typing import Dict, Iterable, List, Optional

import numpy as np

from agents import Agent
from amm import AMMPool
from config import CONFIG, SimulationConfig


class Failure(str, Enum):
    INSUFFICIENT_FUNDS = "InsufficientFunds"
    INSUFFICIENT_INVENTORY = "InsufficientInventory"
    INVALID_INTENT = "InvalidIntent"
    PROVIDER_UNAVAILABLE = "ProviderUnavailable"
    BUSY = "Busy"
    UNKNOWN_AGENT = "UnknownAgent"


@dataclass
class ActionResult:
    """Outcome of one primitive action."""
    action: str
    agent_id: int
    ok: bool = True
    failure: Optional[Failure] = None
    message: str = ""
    amount: float = 0.0  # Primary realised quantity (items, tokens, currency out)
    medals: int = 0  # Medals produced by chest openings

    @classmethod
    def fail(cls, action: str, agent_id: int, failure: Failure, message: str) -> "ActionResult":
        return cls(action=action, agent_id=agent_id, ok=False, failure=failure, message=message)

    def to_dict(self) -> Dict[str, object]:
        data = asdict(self)
        data["failure"] = self.failure.value if self.failure else None
        return data


@dataclass
class GlobalLedger:
    """Process-wide aggregates."""
    day: int = 1
    treasury: float = 0.0
    total_wealth: float = 0.0
    daily_new_wealth: float = 0.0
    medals_in_pool: int = 0
    total_staked: float = 0.0

    def __post_init__(self):
        if self.day < 1:
            raise ValueError(f"day starts at 1, got {self.day}")
        if self.treasury < 0:
            raise ValueError(f"treasury cannot be negative, got {self.treasury}")


class Ledger:
    """
    Agent balances and global aggregates.

    The human agent and the bots live in one lookup keyed by agent id.
    """

    def __init__(
        self,
        agents: Iterable[Agent],
        global_state: Optional[GlobalLedger] = None,
        config: Optional[SimulationConfig] = None,
        rng: Optional[np.random.Generator] = None,
    ):
        self.config = config or CONFIG
        self.agents: Dict[int, Agent] = {}
        for agent in agents:
            if agent.agent_id in self.agents:
                raise ValueError(f"duplicate agent id {agent.agent_id}")
            self.agents[agent.agent_id] = agent
        if sum(1 for a in self.agents.values() if a.is_human) > 1:
            raise ValueError("at most one human agent is allowed")

        if global_state is None:
            global_state = GlobalLedger(
                total_wealth=sum(a.wealth for a in self.agents.values()),
                medals_in_pool=sum(a.invested_medals for a in self.agents.values()),
                total_staked=sum(a.staked_token for a in self.agents.values()),
            )
        self.state = global_state
        # Direct (between-day) chest openings draw from here; day-steps pass their own rng
        self.rng = rng if rng is not None else np.random.default_rng()

    # ------------------------------------------------------------------
    # Lookups and snapshots
    # ------------------------------------------------------------------

    @property
    def human(self) -> Optional[Agent]:
        for agent in self.agents.values():
            if agent.is_human:
                return agent
        return None

    @property
    def bots(self) -> List[Agent]:
        return [a for a in self.agents.values() if not a.is_human]

    def get(self, agent_id: int) -> Optional[Agent]:
        return self.agents.get(agent_id)

    def copy(self) -> "Ledger":
        """Deep copy used as the staging area of a day-step."""
        return copy.deepcopy(self)

    def total_token_supply(self, amm: Optional[AMMPool] = None) -> float:
        """Token held by agents in every form, plus the AMM reserve if given."""
        supply = sum(a.token_holdings for a in self.agents.values())
        if amm is not None:
            supply += amm.reserve_token
        return supply

    def snapshot(self) -> Dict[str, object]:
        return {
            "global": asdict(self.state),
            "agents": [a.to_dict() for a in sorted(self.agents.values(), key=lambda a: a.agent_id)],
        }

    def _lookup(self, action: str, agent_id: int):
        agent = self.agents.get(agent_id)
        if agent is None:
            return None, ActionResult.fail(action, agent_id, Failure.UNKNOWN_AGENT,
                                           f"no agent with id {agent_id}")
        return agent, None

    # ------------------------------------------------------------------
    # Production
    # ------------------------------------------------------------------

    def craft(self, agent_id: int, count: int) -> ActionResult:
        """Spend base currency on `count` items; credit wealth and bonus chests."""
        agent, err = self._lookup("craft", agent_id)
        if err:
            return err
        if count < 0:
            return ActionResult.fail("craft", agent_id, Failure.INVALID_INTENT,
                                     f"craft count cannot be negative ({count})")
        if count == 0:
            return ActionResult("craft", agent_id)

        cfg = self.config.crafting
        # Compare counts first: an unbounded int count cannot be turned into a float cost
        if count > agent.base_currency // cfg.craft_cost:
            return ActionResult.fail(
                "craft", agent_id, Failure.INSUFFICIENT_FUNDS,
                f"crafting {count} at {cfg.craft_cost:.2f} each, only {agent.base_currency:.2f} available",
            )

        cost = cfg.craft_cost * count
        wealth_gain = cfg.wealth_per_item * count
        bonus_chests = int(math.floor(wealth_gain / cfg.chest_wealth_divisor))

        agent.base_currency -= cost
        agent.wealth += wealth_gain
        agent.equipment_count += count
        agent.chests += bonus_chests

        self.state.treasury += cost * cfg.treasury_share_of_craft
        self.state.total_wealth += wealth_gain
        self.state.daily_new_wealth += wealth_gain
        return ActionResult("craft", agent_id, amount=count,
                            message=f"+{wealth_gain:.0f} wealth, +{bonus_chests} chests")

    def salvage(self, agent_id: int, count: int) -> ActionResult:
        """Destroy `count` items for a partial currency refund. No treasury effect."""
        agent, err = self._lookup("salvage", agent_id)
        if err:
            return err
        if count < 0:
            return ActionResult.fail("salvage", agent_id, Failure.INVALID_INTENT,
                                     f"salvage count cannot be negative ({count})")
        if count == 0:
            return ActionResult("salvage", agent_id)
        if agent.equipment_count < count:
            return ActionResult.fail(
                "salvage", agent_id, Failure.INSUFFICIENT_INVENTORY,
                f"cannot salvage {count} items, only {agent.equipment_count} owned",
            )

        cfg = self.config.crafting
        wealth_burned = count * cfg.wealth_per_item
        refund = wealth_burned * cfg.salvage_rate

        agent.equipment_count -= count
        agent.wealth = max(0.0, agent.wealth - wealth_burned)
        agent.base_currency += refund
        self.state.total_wealth = max(0.0, self.state.total_wealth - wealth_burned)
        return ActionResult("salvage", agent_id, amount=refund)

    def open_chests(self, agent_id: int, count: int,
                    rng: Optional[np.random.Generator] = None) -> ActionResult:
        """Open `count` chests for medals drawn uniformly from the configured range."""
        agent, err = self._lookup("open_chests", agent_id)
        if err:
            return err
        if count < 0:
            return ActionResult.fail("open_chests", agent_id, Failure.INVALID_INTENT,
                                     f"chest count cannot be negative ({count})")
        if count == 0:
            return ActionResult("open_chests", agent_id)
        if agent.chests < count:
            return ActionResult.fail(
                "open_chests", agent_id, Failure.INSUFFICIENT_INVENTORY,
                f"cannot open {count} chests, only {agent.chests} owned",
            )

        cfg = self.config.chests
        cost = cfg.chest_open_cost * count
        if agent.base_currency < cost:
            return ActionResult.fail(
                "open_chests", agent_id, Failure.INSUFFICIENT_FUNDS,
                f"opening {count} chests costs {cost:.2f}, only {agent.base_currency:.2f} available",
            )

        generator = rng if rng is not None else self.rng
        medals = int(generator.integers(cfg.medal_min, cfg.medal_max + 1, size=count).sum())

        agent.chests -= count
        agent.base_currency -= cost
        agent.medals += medals
        self.state.treasury += cost * cfg.treasury_share_of_chest
        return ActionResult("open_chests", agent_id, amount=count, medals=medals)

    def invest_medals(self, agent_id: int) -> ActionResult:
        """Commit every held medal to the current pool."""
        agent, err = self._lookup("invest_medals", agent_id)
        if err:
            return err
        amount = agent.medals
        if amount <= 0:
            return ActionResult("invest_medals", agent_id)

        agent.medals = 0
        agent.invested_medals += amount
        self.state.medals_in_pool += amount
        return ActionResult("invest_medals", agent_id, amount=amount)

    # ------------------------------------------------------------------
    # Token movements
    # ------------------------------------------------------------------

    def stake(self, agent_id: int, amount: float) -> ActionResult:
        agent, err = self._lookup("stake", agent_id)
        if err:
            return err
        if amount <= 0:
            return ActionResult("stake", agent_id)
        if agent.token < amount:
            return ActionResult.fail(
                "stake", agent_id, Failure.INSUFFICIENT_FUNDS,
                f"cannot stake {amount:.2f}, only {agent.token:.2f} token held",
            )

        agent.token -= amount
        agent.staked_token += amount
        self.state.total_staked += amount
        return ActionResult("stake", agent_id, amount=amount)

    def unstake(self, agent_id: int, amount: float) -> ActionResult:
        agent, err = self._lookup("unstake", agent_id)
        if err:
            return err
        if amount <= 0:
            return ActionResult("unstake", agent_id)
        if agent.staked_token < amount:
            return ActionResult.fail(
                "unstake", agent_id, Failure.INSUFFICIENT_FUNDS,
                f"cannot unstake {amount:.2f}, only {agent.staked_token:.2f} staked",
            )

        agent.staked_token -= amount
        agent.token += amount
        self.state.total_staked = max(0.0, self.state.total_staked - amount)
        return ActionResult("unstake", agent_id, amount=amount)

    def sell(self, agent_id: int, amount: float, amm: AMMPool) -> ActionResult:
        """Swap `amount` token for base currency at the pool's current state."""
        agent, err = self._lookup("sell", agent_id)
        if err:
            return err
        if amount <= 0:
            return ActionResult("sell", agent_id)
        if agent.token < amount:
            return ActionResult.fail(
                "sell", agent_id, Failure.INSUFFICIENT_FUNDS,
                f"cannot sell {amount:.2f}, only {agent.token:.2f} token held",
            )

        base_out = amm.apply_swap(amount, token_to_base=True)
        if base_out <= 0:
            return ActionResult("sell", agent_id, message="pool returned nothing")

        agent.token -= amount
        agent.base_currency += base_out
        return ActionResult("sell", agent_id, amount=base_out)

    def sell_ratio(self, agent_id: int, ratio: float, amm: AMMPool) -> ActionResult:
        """Sell a fraction of the liquid token balance, rounded down to whole tokens."""
        agent, err = self._lookup("sell", agent_id)
        if err:
            return err
        if not (0.0 <= ratio <= 1.0):
            return ActionResult.fail("sell", agent_id, Failure.INVALID_INTENT,
                                     f"sell ratio must be in [0, 1], got {ratio}")
        return self.sell(agent_id, math.floor(agent.token * ratio), amm)

    # ------------------------------------------------------------------
    # Claims
    # ------------------------------------------------------------------

    def claim_pool_reward(self, agent_id: int) -> ActionResult:
        """Pay out the pool bucket; the withheld share is not paid to anyone."""
        agent, err = self._lookup("claim_pool_reward", agent_id)
        if err:
            return err
        bucket = agent.unclaimed_pool_reward
        if bucket <= 0:
            return ActionResult("claim_pool_reward", agent_id)

        paid = bucket * self.config.rewards.pool_claim_payout
        agent.unclaimed_pool_reward = 0.0
        agent.token += paid
        return ActionResult("claim_pool_reward", agent_id, amount=paid)

    def claim_redistribution(self, agent_id: int) -> ActionResult:
        agent, err = self._lookup("claim_redistribution", agent_id)
        if err:
            return err
        paid = agent.unclaimed_redistribution
        if paid <= 0:
            return ActionResult("claim_redistribution", agent_id)

        agent.unclaimed_redistribution = 0.0
        agent.token += paid
        return ActionResult("claim_redistribution", agent_id, amount=paid)

    def claim_staking_reward(self, agent_id: int) -> ActionResult:
        agent, err = self._lookup("claim_staking_reward", agent_id)
        if err:
            return err
        paid = agent.unclaimed_staking_reward
        if paid <= 0:
            return ActionResult("claim_staking_reward", agent_id)

        agent.unclaimed_staking_reward = 0.0
        agent.token += paid
        return ActionResult("claim_staking_reward", agent_id, amount=paid)
