"""
Simulation Configuration

Centralizes all tunable parameters for the day-settlement simulation.
Formulas elsewhere read these values; nothing economic is hard-coded in them.
"""

from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple


@dataclass
class CraftingConfig:
    """Crafting and salvage parameters."""
    craft_cost: float = 300.0  # Base currency per item
    wealth_per_item: float = 286.0
    treasury_share_of_craft: float = 0.5  # 50% of craft spend feeds the treasury
    chest_wealth_divisor: float = 100.0  # One bonus chest per 100 wealth crafted
    salvage_rate: float = 0.5  # Currency returned per unit of destroyed wealth
    daily_chest_wealth_divisor: float = 100.0  # One chest per 100 wealth held, granted at rollup (0 = off)


@dataclass
class ChestConfig:
    """Chest opening and medal drops."""
    chest_open_cost: float = 10.0
    medal_min: int = 5
    medal_max: int = 15  # Inclusive
    treasury_share_of_chest: float = 1.0


@dataclass
class RewardConfig:
    """Medal pool, redistribution tax and staking dividend."""
    daily_token_reward: float = 1_000_000.0
    redistribution_tax_rate: float = 0.10  # Taxed from non-human pool payouts
    redistribution_basis: str = "unclaimed"  # "unclaimed" or "wealth"
    pool_claim_payout: float = 0.90  # 10% withheld when a pool reward is claimed
    staking_dividend_share: float = 0.10  # Share of buyback tokens paid to stakers
    days_per_year: float = 365.0


@dataclass
class AMMConfig:
    """Initial pool reserves."""
    initial_reserve_token: float = 10_000_000.0
    initial_reserve_base: float = 1_000_000.0


@dataclass
class BuybackConfig:
    """Sigmoid buyback curve constants."""
    min_rate: float = 0.02
    max_rate: float = 0.08
    midpoint: float = 500_000.0  # Daily new wealth at which the rate is halfway
    steepness: float = 0.000005


@dataclass
class PopulationConfig:
    """Agent population and starting balances."""
    num_bots: int = 10
    human_initial_base: float = 5000.0
    human_initial_token: float = 0.0
    # Personality -> (min, max) starting base currency
    bot_initial_base: Dict[str, Tuple[float, float]] = field(default_factory=lambda: {
        "Whale": (80_000.0, 150_000.0),
        "Degen": (1_000.0, 8_000.0),
        "Farmer": (15_000.0, 30_000.0),
        "PaperHand": (5_000.0, 20_000.0),
        "DiamondHand": (5_000.0, 20_000.0),
    })
    baseline_daily_wealth_per_agent: float = 5000.0  # Activity multiplier reference


@dataclass
class ProviderConfig:
    """Decision provider (strategy oracle) settings."""
    intent_timeout_seconds: float = 30.0
    min_call_interval_seconds: float = 5.0
    base_url: str = "https://openrouter.ai/api/v1/chat/completions"
    model: str = "nvidia/nemotron-nano-9b-v2:free"
    temperature: float = 0.2
    request_timeout_seconds: float = 60.0


@dataclass
class SettlementConfig:
    """Day-step orchestration settings."""
    seed: Optional[int] = None  # None draws fresh entropy every day
    fallback_to_heuristic: bool = False
    narrative_rationale_limit: int = 10  # Rationales kept in each DayLog


@dataclass
class SimulationConfig:
    """Master configuration for the entire simulation."""

    crafting: CraftingConfig = field(default_factory=CraftingConfig)
    chests: ChestConfig = field(default_factory=ChestConfig)
    rewards: RewardConfig = field(default_factory=RewardConfig)
    amm: AMMConfig = field(default_factory=AMMConfig)
    buyback: BuybackConfig = field(default_factory=BuybackConfig)
    population: PopulationConfig = field(default_factory=PopulationConfig)
    provider: ProviderConfig = field(default_factory=ProviderConfig)
    settlement: SettlementConfig = field(default_factory=SettlementConfig)

    def __post_init__(self):
        """Validation of bounds."""
        if self.crafting.craft_cost <= 0:
            raise ValueError("craft_cost must be positive")
        if self.crafting.wealth_per_item <= 0:
            raise ValueError("wealth_per_item must be positive")
        if self.crafting.chest_wealth_divisor <= 0:
            raise ValueError("chest_wealth_divisor must be positive")
        if self.crafting.daily_chest_wealth_divisor < 0:
            raise ValueError("daily_chest_wealth_divisor cannot be negative")
        if self.chests.chest_open_cost < 0:
            raise ValueError("chest_open_cost cannot be negative")
        if not (0 <= self.chests.medal_min <= self.chests.medal_max):
            raise ValueError("medal range must satisfy 0 <= medal_min <= medal_max")

        for name, value in (
            ("treasury_share_of_craft", self.crafting.treasury_share_of_craft),
            ("treasury_share_of_chest", self.chests.treasury_share_of_chest),
            ("salvage_rate", self.crafting.salvage_rate),
            ("redistribution_tax_rate", self.rewards.redistribution_tax_rate),
            ("pool_claim_payout", self.rewards.pool_claim_payout),
            ("staking_dividend_share", self.rewards.staking_dividend_share),
        ):
            if not (0.0 <= value <= 1.0):
                raise ValueError(f"{name} must be in [0, 1], got {value}")

        if self.rewards.redistribution_basis not in ("unclaimed", "wealth"):
            raise ValueError(
                f"redistribution_basis must be 'unclaimed' or 'wealth', got {self.rewards.redistribution_basis!r}"
            )
        if self.rewards.daily_token_reward < 0:
            raise ValueError("daily_token_reward cannot be negative")

        if self.amm.initial_reserve_token <= 0 or self.amm.initial_reserve_base <= 0:
            raise ValueError("initial AMM reserves must be positive")

        if not (0.0 <= self.buyback.min_rate < self.buyback.max_rate <= 1.0):
            raise ValueError("buyback rates must satisfy 0 <= min_rate < max_rate <= 1")
        if self.buyback.steepness <= 0:
            raise ValueError("buyback steepness must be positive")

        if self.population.num_bots < 0:
            raise ValueError("num_bots cannot be negative")
        if self.provider.intent_timeout_seconds <= 0:
            raise ValueError("intent_timeout_seconds must be positive")


# Global configuration instance
CONFIG = SimulationConfig()
