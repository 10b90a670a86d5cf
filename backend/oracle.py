"""
Remote strategy oracle.

Asks an LLM to play every autonomous agent for one day and parses its JSON
reply into intents. Rate limiting, quota exhaustion and malformed replies
come back as a non-success status with an empty batch.
"""

import json
import logging
import time
from typing import Any, Callable, Dict, List, Optional, Tuple

import httpx
from pydantic import ValidationError

import ai
from agents import DEGEN, DIAMOND_HAND, FARMER, PAPER_HAND, WHALE
from config import CONFIG, SimulationConfig
from decisions import AgentActionIntent, DecisionBatch, DecisionProvider, MarketContext, ProviderStatus

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = "You are a selfish, profit-driven economic simulator. Return JSON only."

PERSONALITY_GUIDE = {
    WHALE: "deep pockets, stakes to steer the market, sells in tranches when the price is high",
    DEGEN: "gambler, opens every chest and mines the pool, dumps or fully stakes any token",
    FARMER: "careful, only crafts and opens chests when pool income beats the cost, otherwise just sells",
    PAPER_HAND: "panics and sells everything as soon as the price falls",
    DIAMOND_HAND: "holds and stakes everything whatever the price does",
}


# ---------- Helpers ----------

def _split_rationale_actions(text: str) -> Tuple[str, Dict[str, Any]]:
    try:
        start = text.index("{")
        end = text.rindex("}") + 1
        actions = json.loads(text[start:end])
        rationale = text[:start].strip()
        return rationale, actions
    except ValueError:
        return text.strip(), {}


def build_user_prompt(context: MarketContext, agents: List[Dict[str, Any]], config: SimulationConfig) -> str:
    summary = "\n".join(
        f"ID:{a['agent_id']} Type:{a['personality']} Base:{int(a['base_currency'])} "
        f"Token:{int(a['token'])} Staked:{int(a['staked_token'])} Chests:{a['chests']} "
        f"Unclaimed:{int(a['unclaimed_pool_reward'] + a['unclaimed_staking_reward'])}"
        for a in agents
    )
    personalities = "\n".join(f"- {name}: {text}" for name, text in PERSONALITY_GUIDE.items())
    return (
        f"You control {len(agents)} players of an MMORPG economy. Each is selfish and wants to end "
        "with as much base currency as possible.\n\n"
        "Economy:\n"
        f"1. Craft: pay {config.crafting.craft_cost:g} base -> equipment, wealth and a few chests.\n"
        f"2. Open chest: pay {config.chests.chest_open_cost:g} base -> "
        f"{config.chests.medal_min}-{config.chests.medal_max} medals.\n"
        f"3. Invest medals: share a daily pool of {config.rewards.daily_token_reward:,.0f} token "
        "(my medals / all medals). Too many medals dilute the pool.\n"
        f"4. Stake token: earn buyback dividends (APY {context.apy:.1%}).\n"
        "5. Sell token for base currency to lock in profit.\n\n"
        "Market:\n"
        f"- Day: {context.day}\n"
        f"- Token price: {context.price:.6f} base (trend {context.price_trend}, "
        f"{context.consecutive_up_days} up days)\n"
        f"- Medals in pool: {context.medals_in_pool:,.0f}\n"
        f"- Liquidity ratio: {context.liquidity_ratio:.3f}\n\n"
        f"Players:\n{summary}\n\n"
        f"Personalities:\n{personalities}\n\n"
        'Reply with JSON {"marketAnalysis": str, "actions": [{"botId": int, "craftCount": int, '
        '"openChests": int, "investMedals": bool, "claimRewards": bool, "stakeMemePercent": 0-1, '
        '"unstakeMemePercent": 0-1, "sellMemePercent": 0-1, "rationale": str}]}'
    )


def parse_intents(payload: Dict[str, Any]) -> List[AgentActionIntent]:
    """Validate each action item; malformed items are dropped."""
    intents = []
    for item in payload.get("actions") or []:
        try:
            intents.append(AgentActionIntent.model_validate(item))
        except ValidationError as exc:
            logger.warning("Dropping malformed intent %r: %s", item, exc.errors()[0].get("msg"))
    return intents


# ---------- Provider ----------

class LLMDecisionProvider(DecisionProvider):
    """Decision provider backed by an OpenRouter chat model."""

    def __init__(
        self,
        config: Optional[SimulationConfig] = None,
        llm: Optional[Callable] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config or CONFIG
        self.llm = llm or ai.call_llm
        self.clock = clock
        self.last_call_time: Optional[float] = None
        self.api_call_count = 0

    def check_rate_limit(self) -> Tuple[bool, float]:
        if self.last_call_time is None:
            return True, 0.0
        elapsed = self.clock() - self.last_call_time
        interval = self.config.provider.min_call_interval_seconds
        if elapsed < interval:
            return False, interval - elapsed
        return True, 0.0

    async def get_intents(self, context: MarketContext,
                          agents: List[Dict[str, Any]]) -> DecisionBatch:
        allowed, wait_time = self.check_rate_limit()
        if not allowed:
            return DecisionBatch.empty(ProviderStatus.RATE_LIMITED, f"Oracle cooling down ({wait_time:.1f}s).")

        bots = [a for a in agents if not a.get("is_human")]
        if not bots:
            return DecisionBatch(narrative="No autonomous agents.")

        self.last_call_time = self.clock()
        self.api_call_count += 1
        try:
            text = await self.llm(SYSTEM_PROMPT, build_user_prompt(context, bots, self.config),
                                  self.config.provider.temperature)
        except httpx.HTTPStatusError as exc:
            if exc.response.status_code == 429:
                logger.warning("Oracle quota exhausted: %s", exc)
                return DecisionBatch.empty(ProviderStatus.QUOTA_EXCEEDED, "Quota Exceeded")
            logger.warning("Oracle HTTP error: %s", exc)
            return DecisionBatch.empty(ProviderStatus.ERROR, "Error")
        except (httpx.HTTPError, ValueError, KeyError, IndexError) as exc:
            logger.warning("Oracle call failed: %s", exc)
            return DecisionBatch.empty(ProviderStatus.ERROR, "Error")

        rationale, payload = _split_rationale_actions(text)
        if not payload:
            logger.warning("Oracle reply contained no JSON object")
            return DecisionBatch.empty(ProviderStatus.ERROR, rationale or "Error")

        narrative = payload.get("marketAnalysis") or rationale or "No analysis"
        return DecisionBatch(intents=parse_intents(payload), narrative=str(narrative))
