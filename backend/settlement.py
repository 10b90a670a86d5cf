"""
Day Settlement Engine

Orchestrates one day-step of the economy against a single shared ledger
and market:

1. Collect intents from the decision provider (the only suspension point)
2. Settle the previous day's medal pool and redistribution tax
3. Execute every agent's intent, one agent at a time, in a seeded random order
4. Spend part of the treasury on a token buyback
5. Pay the staking dividend out of the bought tokens
6. Roll up daily aggregates and advance the day
7. Commit staged state and append an immutable DayLog

Steps 2-7 run on staged copies of the ledger and pool; nothing is visible
to readers until the commit. Only one day-step may be in flight at a time.
"""

import asyncio
import logging
import math
from collections import defaultdict
from dataclasses import asdict, dataclass, field, fields, replace
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple

import numpy as np

from amm import AMMPool
from buyback import buyback_budget, buyback_fraction
from config import CONFIG, SimulationConfig
from decisions import (
    AgentActionIntent,
    DecisionBatch,
    DecisionProvider,
    HeuristicDecisionProvider,
    MarketContext,
    NullDecisionProvider,
    ProviderStatus,
)
from ledger import ActionResult, Failure, Ledger
from rewards import distribute_staking_dividend, settle_pool_rewards

logger = logging.getLogger(__name__)

PLAYER_ACTIONS = (
    "craft",
    "salvage",
    "open_chests",
    "invest_medals",
    "stake",
    "unstake",
    "sell_ratio",
    "claim_pool_reward",
    "claim_redistribution",
    "claim_staking_reward",
)


class SettlementState(str, Enum):
    IDLE = "Idle"
    COLLECTING_INTENTS = "CollectingIntents"
    SETTLING_REWARDS = "SettlingRewards"
    EXECUTING_ACTIONS = "ExecutingActions"
    APPLYING_BUYBACK = "ApplyingBuyback"
    DISTRIBUTING_DIVIDENDS = "DistributingDividends"
    COMMITTING = "Committing"


@dataclass(frozen=True)
class DayLog:
    """Record of one settled day. Never mutated after creation."""
    day: int
    price: float
    treasury: float
    buyback_spend: float
    buyback_token: float
    buyback_rate: float
    total_wealth: float
    new_wealth: float
    staking_apy: float
    staking_dividend: float
    undistributed_dividend: float
    activity_multiplier: float
    medals_in_pool: float  # Pool settled this day
    next_medals_in_pool: float  # Pool carried into the next day
    pool_reward: float
    redistribution: float
    token_minted: float
    token_burned: float
    provider_status: str = ProviderStatus.SUCCESS.value
    narrative: str = ""
    seed: Optional[int] = None
    rationales: Tuple[Tuple[int, str], ...] = ()

    def to_dict(self) -> Dict[str, object]:
        data = asdict(self)
        data["rationales"] = [list(item) for item in self.rationales]
        return data


@dataclass
class DayResult:
    """Outcome of an advance_day call."""
    ok: bool
    failure: Optional[Failure] = None
    log: Optional[DayLog] = None
    provider_status: Optional[ProviderStatus] = None
    notes: Dict[int, List[str]] = field(default_factory=dict)
    results: List[ActionResult] = field(default_factory=list)


def _clamp_ratio(value: float, name: str, notes: List[str]) -> float:
    """Clamp to [0, 1]; out-of-range or NaN input is noted as an invalid intent."""
    if value is None or math.isnan(value):
        notes.append(f"{name}: {Failure.INVALID_INTENT.value} (not a number, treated as 0)")
        return 0.0
    if value < 0.0 or value > 1.0:
        clamped = min(1.0, max(0.0, value))
        notes.append(f"{name}: {Failure.INVALID_INTENT.value} ({value} clamped to {clamped})")
        return clamped
    return value


def _restore(target, snapshot) -> None:
    """Copy every dataclass field of `snapshot` back onto `target` in place."""
    for f in fields(target):
        setattr(target, f.name, getattr(snapshot, f.name))


def _clamp_count(value: int, name: str, notes: List[str]) -> int:
    if value < 0:
        notes.append(f"{name}: {Failure.INVALID_INTENT.value} ({value} clamped to 0)")
        return 0
    return int(value)


class SettlementEngine:
    """
    Single writer for the ledger and the AMM pool.

    Holds the committed ledger/pool pair, the DayLog history and the busy
    flag that rejects overlapping day-steps and player actions mid-step.
    """

    def __init__(
        self,
        ledger: Ledger,
        amm: AMMPool,
        provider: Optional[DecisionProvider] = None,
        config: Optional[SimulationConfig] = None,
        fallback_provider: Optional[DecisionProvider] = None,
        sinks: Optional[List[Callable[[DayLog], None]]] = None,
    ):
        self.config = config or CONFIG
        self.ledger = ledger
        self.amm = amm
        self.provider = provider or NullDecisionProvider()
        if fallback_provider is None and self.config.settlement.fallback_to_heuristic:
            fallback_provider = HeuristicDecisionProvider(self.config, seed=self.config.settlement.seed)
        self.fallback_provider = fallback_provider
        self.sinks: List[Callable[[DayLog], None]] = list(sinks or [])

        self.busy = False
        self.state = SettlementState.IDLE
        self.history: List[DayLog] = [self._genesis_log()]

    # ------------------------------------------------------------------
    # Context
    # ------------------------------------------------------------------

    def _genesis_log(self) -> DayLog:
        """Opening record so the first day has a previous price to compare with."""
        state = self.ledger.state
        return DayLog(
            day=state.day - 1,
            price=self.amm.price,
            treasury=state.treasury,
            buyback_spend=0.0,
            buyback_token=0.0,
            buyback_rate=self.config.buyback.min_rate,
            total_wealth=state.total_wealth,
            new_wealth=0.0,
            staking_apy=0.0,
            staking_dividend=0.0,
            undistributed_dividend=0.0,
            activity_multiplier=1.0,
            medals_in_pool=state.medals_in_pool,
            next_medals_in_pool=state.medals_in_pool,
            pool_reward=0.0,
            redistribution=0.0,
            token_minted=0.0,
            token_burned=0.0,
            narrative="Genesis",
        )

    @property
    def last_log(self) -> DayLog:
        return self.history[-1]

    def _price_path(self) -> List[float]:
        """Logged prices, plus the live price if trades moved it since the last commit."""
        prices = [log.price for log in self.history]
        if self.amm.price != prices[-1]:
            prices.append(self.amm.price)
        return prices

    def market_trend(self) -> Tuple[str, int]:
        """Direction of the latest price move and the run of consecutive up moves."""
        prices = self._price_path()
        if len(prices) < 2:
            return "Stable", 0
        latest, previous = prices[-1], prices[-2]
        trend = "Up" if latest > previous else ("Down" if latest < previous else "Stable")

        up_days = 0
        for newer, older in zip(reversed(prices), reversed(prices[:-1])):
            if newer > older:
                up_days += 1
            else:
                break
        return trend, up_days

    def build_market_context(self) -> MarketContext:
        trend, up_days = self.market_trend()
        prices = self._price_path()
        state = self.ledger.state
        return MarketContext(
            day=state.day,
            price=self.amm.price,
            previous_price=prices[-2] if len(prices) > 1 else prices[-1],
            apy=self.last_log.staking_apy,
            medals_in_pool=state.medals_in_pool,
            total_wealth=state.total_wealth,
            treasury=state.treasury,
            price_trend=trend,
            consecutive_up_days=up_days,
            liquidity_ratio=self.amm.liquidity_ratio,
        )

    # ------------------------------------------------------------------
    # Player actions
    # ------------------------------------------------------------------

    def act(self, action: str, agent_id: Optional[int] = None, *args) -> ActionResult:
        """
        Run one primitive on the committed ledger on behalf of an agent
        (the human agent by default). Rejected with BUSY while a day-step runs.
        """
        if agent_id is None:
            human = self.ledger.human
            agent_id = human.agent_id if human is not None else -1
        if action not in PLAYER_ACTIONS:
            return ActionResult.fail(action, agent_id, Failure.INVALID_INTENT, f"unknown action {action!r}")
        if self.busy:
            return ActionResult.fail(action, agent_id, Failure.BUSY, "a day-step is in progress")

        method = getattr(self.ledger, action)
        if action == "sell_ratio":
            return method(agent_id, *args, self.amm)
        return method(agent_id, *args)

    # ------------------------------------------------------------------
    # Day-step
    # ------------------------------------------------------------------

    def _day_seed(self, seed: Optional[int]) -> int:
        if seed is not None:
            return int(seed)
        base = self.config.settlement.seed
        if base is not None:
            return int(np.random.SeedSequence([base, self.ledger.state.day]).generate_state(1)[0])
        return int(np.random.SeedSequence().generate_state(1)[0])

    async def _ask(self, provider: DecisionProvider, context: MarketContext,
                   snapshots: List[Dict[str, object]]) -> DecisionBatch:
        timeout = self.config.provider.intent_timeout_seconds
        try:
            return await asyncio.wait_for(provider.get_intents(context, snapshots), timeout)
        except asyncio.TimeoutError:
            logger.warning("Decision provider timed out after %.1fs", timeout)
            return DecisionBatch.empty(ProviderStatus.ERROR, "Decision provider timed out")
        except Exception as exc:
            logger.warning("Decision provider failed: %s", exc)
            return DecisionBatch.empty(ProviderStatus.ERROR, f"Decision provider failed: {exc}")

    async def _collect_intents(self, context: MarketContext) -> DecisionBatch:
        snapshots = [a.to_dict() for a in sorted(self.ledger.agents.values(), key=lambda a: a.agent_id)]
        batch = await self._ask(self.provider, context, snapshots)
        if batch.status == ProviderStatus.SUCCESS:
            return batch

        logger.warning("%s: decision provider returned %s, continuing without its intents",
                       Failure.PROVIDER_UNAVAILABLE.value, batch.status.value)
        intents: List[AgentActionIntent] = []
        if self.fallback_provider is not None:
            fallback = await self._ask(self.fallback_provider, context, snapshots)
            if fallback.status == ProviderStatus.SUCCESS:
                intents = fallback.intents
        return DecisionBatch(intents=intents, narrative=batch.narrative, status=batch.status)

    async def advance_day(self, seed: Optional[int] = None) -> DayResult:
        """
        Run one full day-step.

        Args:
            seed: Seed for the execution order and chest draws. When omitted the
                  configured base seed is used, or fresh entropy if none is set.

        Returns:
            DayResult; failure is BUSY if another day-step is already in flight
        """
        if self.busy:
            logger.info("advance_day rejected: day-step already in progress")
            return DayResult(ok=False, failure=Failure.BUSY)

        self.busy = True
        try:
            self.state = SettlementState.COLLECTING_INTENTS
            context = self.build_market_context()
            batch = await self._collect_intents(context)
            return self._settle(batch, self._day_seed(seed))
        finally:
            self.busy = False
            self.state = SettlementState.IDLE

    def _settle(self, batch: DecisionBatch, day_seed: int) -> DayResult:
        """Synchronous part of the day-step, applied to staged copies."""
        cfg = self.config
        ledger = self.ledger.copy()
        amm = self.amm.copy()
        rng = np.random.default_rng(day_seed)
        state = ledger.state
        day = state.day

        self.state = SettlementState.SETTLING_REWARDS
        pool = settle_pool_rewards(ledger, cfg.rewards)

        self.state = SettlementState.EXECUTING_ACTIONS
        notes, results, medals_generated, withheld, rationales = self._execute_intents(
            ledger, amm, batch.intents, rng)

        self.state = SettlementState.APPLYING_BUYBACK
        new_wealth = state.daily_new_wealth
        rate = buyback_fraction(new_wealth, cfg.buyback)
        spend = buyback_budget(state.treasury, new_wealth, cfg.buyback)
        token_bought = amm.apply_swap(spend, token_to_base=False)
        if token_bought <= 0:
            spend = 0.0
        state.treasury = max(0.0, state.treasury - spend)

        self.state = SettlementState.DISTRIBUTING_DIVIDENDS
        dividend = distribute_staking_dividend(ledger, token_bought, cfg.rewards)

        self.state = SettlementState.COMMITTING
        total_wealth = state.total_wealth
        state.medals_in_pool = medals_generated
        state.daily_new_wealth = 0.0
        divisor = cfg.crafting.daily_chest_wealth_divisor
        if divisor > 0:
            for agent in ledger.agents.values():
                agent.chests += int(math.floor(agent.wealth / divisor))
        state.day += 1

        population = max(1, len(ledger.agents))
        baseline = population * cfg.population.baseline_daily_wealth_per_agent
        log = DayLog(
            day=day,
            price=amm.price,
            treasury=state.treasury,
            buyback_spend=spend,
            buyback_token=token_bought,
            buyback_rate=rate,
            total_wealth=total_wealth,
            new_wealth=new_wealth,
            staking_apy=dividend.apy,
            staking_dividend=dividend.distributed,
            undistributed_dividend=dividend.undistributed,
            activity_multiplier=new_wealth / baseline if baseline > 0 else 0.0,
            medals_in_pool=pool.pool_size,
            next_medals_in_pool=medals_generated,
            pool_reward=sum(pool.payouts.values()),
            redistribution=pool.redistribution,
            token_minted=pool.minted,
            token_burned=token_bought - dividend.distributed + withheld,
            provider_status=batch.status.value,
            narrative=batch.narrative,
            seed=day_seed,
            rationales=tuple(rationales[:cfg.settlement.narrative_rationale_limit]),
        )

        self.ledger = ledger
        self.amm = amm
        self.history.append(log)
        logger.info("Day %d settled: price %.6f, buyback %.2f -> %.2f token, treasury %.2f",
                    day, log.price, spend, token_bought, log.treasury)

        # Already committed: sink failures are logged, not raised
        for sink in self.sinks:
            try:
                sink(log)
            except Exception:
                logger.exception("DayLog sink %r failed for day %d", sink, day)

        return DayResult(ok=True, log=log, provider_status=batch.status,
                         notes=dict(notes), results=results)

    def _execute_intents(self, ledger: Ledger, amm: AMMPool, intents: List[AgentActionIntent],
                         rng: np.random.Generator):
        """Apply intents strictly one agent at a time in a random order drawn from `rng`."""
        notes: Dict[int, List[str]] = defaultdict(list)
        accepted: Dict[int, AgentActionIntent] = {}
        for intent in intents:
            if intent.agent_id not in ledger.agents:
                notes[intent.agent_id].append(f"{Failure.UNKNOWN_AGENT.value}: intent ignored")
                continue
            if intent.agent_id in accepted:
                notes[intent.agent_id].append("duplicate intent ignored")
                continue
            accepted[intent.agent_id] = intent

        batch = list(accepted.values())
        results: List[ActionResult] = []
        rationales: List[Tuple[int, str]] = []
        medals_generated = 0
        withheld = 0.0

        for index in rng.permutation(len(batch)):
            intent = batch[int(index)]
            agent_notes = notes[intent.agent_id]
            saved = [(target, replace(target)) for target in
                     (ledger.agents[intent.agent_id], ledger.state, amm)]
            try:
                agent_results, medals, agent_withheld = self._execute_intent(
                    ledger, amm, intent, rng, agent_notes)
            except Exception as exc:
                logger.exception("Intent for agent %d failed; its actions were rolled back", intent.agent_id)
                for target, snapshot in saved:
                    _restore(target, snapshot)
                agent_notes.append(f"{Failure.INVALID_INTENT.value}: intent aborted ({exc})")
                continue
            results.extend(agent_results)
            medals_generated += medals
            withheld += agent_withheld
            if intent.rationale:
                rationales.append((intent.agent_id, intent.rationale))

        return notes, results, medals_generated, withheld, rationales

    def _execute_intent(self, ledger: Ledger, amm: AMMPool, intent: AgentActionIntent,
                        rng: np.random.Generator, notes: List[str]):
        """
        claim -> craft -> open chests -> invest -> unstake -> sell -> stake.

        Each step no-ops on its own failure; later steps still run.
        """
        agent_id = intent.agent_id
        agent = ledger.agents[agent_id]
        craft_count = _clamp_count(intent.craft_count, "craft_count", notes)
        chest_count = _clamp_count(intent.open_chests, "open_chests", notes)
        unstake_ratio = _clamp_ratio(intent.unstake_ratio, "unstake_ratio", notes)
        sell_ratio = _clamp_ratio(intent.sell_ratio, "sell_ratio", notes)
        stake_ratio = _clamp_ratio(intent.stake_ratio, "stake_ratio", notes)

        results: List[ActionResult] = []
        withheld = 0.0
        if intent.claim_rewards:
            pending_pool = agent.unclaimed_pool_reward
            claim = ledger.claim_pool_reward(agent_id)
            withheld = pending_pool - claim.amount
            results.append(claim)
            results.append(ledger.claim_redistribution(agent_id))
            results.append(ledger.claim_staking_reward(agent_id))

        results.append(ledger.craft(agent_id, craft_count))
        opened = ledger.open_chests(agent_id, chest_count, rng=rng)
        results.append(opened)
        if intent.invest_medals:
            results.append(ledger.invest_medals(agent_id))
        results.append(ledger.unstake(agent_id, agent.staked_token * unstake_ratio))
        results.append(ledger.sell(agent_id, agent.token * sell_ratio, amm))
        results.append(ledger.stake(agent_id, agent.token * stake_ratio))

        for result in results:
            if not result.ok:
                notes.append(f"{result.action}: {result.failure.value} ({result.message})")
        return results, opened.medals, withheld
