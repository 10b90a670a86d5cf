"""
Agent state for the day-settlement simulation.

Every participant, whether the human-controlled player or an autonomous
bot, has the same shape and is settled by the same rules. Personality only
matters to decision providers.
"""

from dataclasses import dataclass, fields
from typing import Dict


HUMAN = "Human"
WHALE = "Whale"
DEGEN = "Degen"
FARMER = "Farmer"
PAPER_HAND = "PaperHand"
DIAMOND_HAND = "DiamondHand"

BOT_PERSONALITIES = (WHALE, DEGEN, FARMER, PAPER_HAND, DIAMOND_HAND)

_NON_NEGATIVE_FIELDS = (
    "base_currency",
    "token",
    "staked_token",
    "wealth",
    "chests",
    "equipment_count",
    "medals",
    "invested_medals",
    "unclaimed_pool_reward",
    "unclaimed_redistribution",
    "unclaimed_staking_reward",
)


@dataclass(slots=True)
class Agent:
    """
    One economic participant.

    Balances are plain floats; chests, equipment and medals are counts.
    """

    # Identification
    agent_id: int
    name: str = ""
    personality: str = HUMAN
    is_human: bool = False

    # Liquid and staked holdings
    base_currency: float = 0.0
    token: float = 0.0
    staked_token: float = 0.0

    # Non-transferable score and inventory
    wealth: float = 0.0
    chests: int = 0
    equipment_count: int = 0

    # Medals: held after opening chests, invested once committed to the pool
    medals: int = 0
    invested_medals: int = 0

    # Claimable buckets, paid out in token on claim
    unclaimed_pool_reward: float = 0.0
    unclaimed_redistribution: float = 0.0
    unclaimed_staking_reward: float = 0.0

    def __post_init__(self):
        """Validate invariants after initialization."""
        if not self.name:
            self.name = "Player" if self.is_human else f"Bot-{self.agent_id + 1} [{self.personality}]"
        for attr in _NON_NEGATIVE_FIELDS:
            value = getattr(self, attr)
            if value < 0:
                raise ValueError(f"{attr} cannot be negative, got {value}")

    @property
    def total_unclaimed(self) -> float:
        return self.unclaimed_pool_reward + self.unclaimed_redistribution + self.unclaimed_staking_reward

    @property
    def token_holdings(self) -> float:
        """Liquid + staked + claimable token."""
        return self.token + self.staked_token + self.total_unclaimed

    def to_dict(self) -> Dict[str, object]:
        """
        Serialize all fields to basic Python types.

        Returns:
            Dictionary representation of the agent state
        """
        return {f.name: getattr(self, f.name) for f in fields(self)}

    def apply_overrides(self, overrides: Dict[str, object]) -> None:
        """
        Apply external overrides to agent state.

        Useful for UI or script-driven state modifications.

        Args:
            overrides: Dictionary of attribute names to new values
        """
        for key, value in overrides.items():
            if hasattr(self, key):
                setattr(self, key, value)
