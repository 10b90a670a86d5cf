"""
Population factory.

Builds the starting ledger (one human player plus personality-driven bots)
and wires it to a fresh pool and settlement engine.
"""

import logging
from typing import Optional

import numpy as np

from agents import BOT_PERSONALITIES, HUMAN, Agent
from amm import AMMPool
from config import CONFIG, SimulationConfig
from decisions import DecisionProvider, HeuristicDecisionProvider, NullDecisionProvider
from ledger import Ledger
from oracle import LLMDecisionProvider
from settlement import SettlementEngine

logger = logging.getLogger(__name__)

HUMAN_AGENT_ID = 0


def create_population(config: Optional[SimulationConfig] = None, seed: Optional[int] = None,
                      num_bots: Optional[int] = None) -> Ledger:
    """
    Create the human agent and `num_bots` bots cycling through the personalities.

    Bots start with a random base-currency balance from their personality's
    range and no token.

    Args:
        config: Simulation configuration (defaults to CONFIG)
        seed: Seed for starting balances; the ledger's direct-action RNG derives from it too
        num_bots: Overrides config.population.num_bots

    Returns:
        Ledger holding the population
    """
    cfg = config or CONFIG
    rng = np.random.default_rng(seed)
    count = cfg.population.num_bots if num_bots is None else num_bots

    agents = [
        Agent(
            agent_id=HUMAN_AGENT_ID,
            personality=HUMAN,
            is_human=True,
            base_currency=cfg.population.human_initial_base,
            token=cfg.population.human_initial_token,
        )
    ]
    for i in range(count):
        personality = BOT_PERSONALITIES[i % len(BOT_PERSONALITIES)]
        low, high = cfg.population.bot_initial_base[personality]
        agents.append(Agent(
            agent_id=HUMAN_AGENT_ID + 1 + i,
            personality=personality,
            base_currency=float(np.floor(rng.uniform(low, high))),
        ))

    logger.info("Created population: 1 human, %d bots", count)
    return Ledger(agents, config=cfg, rng=np.random.default_rng(rng.integers(0, 2**32)))


def create_engine(provider: Optional[DecisionProvider] = None,
                  config: Optional[SimulationConfig] = None,
                  seed: Optional[int] = None,
                  num_bots: Optional[int] = None) -> SettlementEngine:
    """Population + initial pool + settlement engine in one call."""
    cfg = config or CONFIG
    ledger = create_population(cfg, seed=seed, num_bots=num_bots)
    return SettlementEngine(ledger, AMMPool.from_config(cfg), provider=provider, config=cfg)


def build_provider(name: str, config: Optional[SimulationConfig] = None,
                   seed: Optional[int] = None) -> DecisionProvider:
    """Decision provider by name: "none", "heuristic" or "llm"."""
    cfg = config or CONFIG
    if name == "llm":
        return LLMDecisionProvider(cfg)
    if name == "heuristic":
        return HeuristicDecisionProvider(cfg, seed=seed)
    if name == "none":
        return NullDecisionProvider()
    raise ValueError(f"unknown provider {name!r}")
