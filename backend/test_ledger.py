"""
Unit tests for the Ledger primitives

Tests cover:
- Crafting and salvage bookkeeping
- Chest openings and medal investment
- Staking, unstaking and selling through the pool
- Claim payouts
- Failure reporting without side effects
"""

import numpy as np
import pytest

from agents import Agent
from amm import AMMPool
from config import CraftingConfig, SimulationConfig
from ledger import Failure, GlobalLedger, Ledger


def make_ledger(config=None, global_state=None, **human_fields):
    human = Agent(agent_id=0, is_human=True, **human_fields)
    bot = Agent(agent_id=1, personality="Farmer", base_currency=1000.0)
    return Ledger([human, bot], global_state=global_state, config=config or SimulationConfig(),
                  rng=np.random.default_rng(7))


class TestCrafting:
    """Test suite for craft and salvage"""

    def test_craft_then_unaffordable_craft(self):
        """Currency 100, cost 100, wealth 50: first craft succeeds, second changes nothing"""
        config = SimulationConfig(crafting=CraftingConfig(craft_cost=100.0, wealth_per_item=50.0))
        ledger = make_ledger(config, base_currency=100.0)

        result = ledger.craft(0, 1)
        human = ledger.human
        assert result.ok
        assert human.base_currency == 0.0
        assert human.wealth == 50.0
        assert human.equipment_count == 1
        assert ledger.state.treasury == 50.0
        assert ledger.state.total_wealth == 50.0
        assert ledger.state.daily_new_wealth == 50.0

        before = ledger.snapshot()
        second = ledger.craft(0, 1)
        assert not second.ok
        assert second.failure == Failure.INSUFFICIENT_FUNDS
        assert ledger.snapshot() == before

    def test_craft_grants_bonus_chests(self):
        """Two items of 286 wealth give floor(572 / 100) = 5 chests"""
        ledger = make_ledger(base_currency=1000.0)
        ledger.craft(0, 2)
        assert ledger.human.chests == 5
        assert ledger.human.base_currency == 400.0
        assert ledger.state.treasury == 300.0

    def test_huge_craft_count_is_insufficient_funds(self):
        """Counts too large for a float cost are rejected, not raised"""
        ledger = make_ledger(base_currency=1000.0)
        result = ledger.craft(0, 10**400)
        assert result.failure == Failure.INSUFFICIENT_FUNDS
        assert ledger.human.base_currency == 1000.0
        assert ledger.state.treasury == 0.0

    def test_exactly_affordable_craft(self):
        ledger = make_ledger(base_currency=900.0)
        assert ledger.craft(0, 3).ok
        assert ledger.human.base_currency == 0.0

    def test_zero_and_negative_counts(self):
        ledger = make_ledger(base_currency=1000.0)
        assert ledger.craft(0, 0).ok
        assert ledger.human.base_currency == 1000.0

        result = ledger.craft(0, -1)
        assert result.failure == Failure.INVALID_INTENT
        assert ledger.human.base_currency == 1000.0

    def test_salvage_refunds_half_the_wealth(self):
        ledger = make_ledger(base_currency=600.0)
        ledger.craft(0, 2)
        result = ledger.salvage(0, 1)

        assert result.ok
        assert result.amount == 143.0
        assert ledger.human.equipment_count == 1
        assert ledger.human.wealth == 286.0
        assert ledger.human.base_currency == 143.0
        assert ledger.state.total_wealth == 286.0
        assert ledger.state.treasury == 300.0  # Salvage does not touch the treasury

    def test_salvage_without_items_fails(self):
        ledger = make_ledger(base_currency=600.0)
        result = ledger.salvage(0, 1)
        assert result.failure == Failure.INSUFFICIENT_INVENTORY
        assert ledger.human.base_currency == 600.0

    def test_salvage_floors_wealth_at_zero(self):
        ledger = make_ledger(global_state=GlobalLedger(total_wealth=10.0), equipment_count=1, wealth=10.0)
        ledger.salvage(0, 1)
        assert ledger.human.wealth == 0.0
        assert ledger.state.total_wealth == 0.0

    def test_unknown_agent(self):
        ledger = make_ledger()
        assert ledger.craft(99, 1).failure == Failure.UNKNOWN_AGENT


class TestChestsAndMedals:
    """Test suite for chest openings and medal investment"""

    def test_open_chests_draws_medals_in_range(self):
        ledger = make_ledger(base_currency=100.0, chests=4)
        result = ledger.open_chests(0, 4)

        assert result.ok
        assert 4 * 5 <= result.medals <= 4 * 15
        assert ledger.human.medals == result.medals
        assert ledger.human.chests == 0
        assert ledger.human.base_currency == 60.0
        assert ledger.state.treasury == 40.0

    def test_open_chests_is_deterministic_for_a_seeded_rng(self):
        first = make_ledger(base_currency=1000.0, chests=20)
        second = make_ledger(base_currency=1000.0, chests=20)
        a = first.open_chests(0, 20, rng=np.random.default_rng(42))
        b = second.open_chests(0, 20, rng=np.random.default_rng(42))
        assert a.medals == b.medals

    def test_open_chests_without_chests(self):
        ledger = make_ledger(base_currency=100.0, chests=1)
        result = ledger.open_chests(0, 2)
        assert result.failure == Failure.INSUFFICIENT_INVENTORY
        assert ledger.human.chests == 1

    def test_open_chests_without_currency(self):
        ledger = make_ledger(base_currency=5.0, chests=3)
        result = ledger.open_chests(0, 1)
        assert result.failure == Failure.INSUFFICIENT_FUNDS
        assert ledger.human.chests == 3
        assert ledger.state.treasury == 0.0

    def test_invest_moves_every_medal_into_the_pool(self):
        ledger = make_ledger(medals=40)
        result = ledger.invest_medals(0)

        assert result.amount == 40
        assert ledger.human.medals == 0
        assert ledger.human.invested_medals == 40
        assert ledger.state.medals_in_pool == 40

    def test_invest_with_no_medals_is_a_no_op(self):
        ledger = make_ledger()
        result = ledger.invest_medals(0)
        assert result.ok
        assert result.amount == 0
        assert ledger.state.medals_in_pool == 0


class TestTokenMovements:
    """Test suite for stake, unstake and sell"""

    def test_stake_and_unstake_mirror_total_staked(self):
        ledger = make_ledger(token=1000.0)
        ledger.stake(0, 600.0)
        assert ledger.human.token == 400.0
        assert ledger.human.staked_token == 600.0
        assert ledger.state.total_staked == 600.0

        ledger.unstake(0, 200.0)
        assert ledger.human.token == 600.0
        assert ledger.human.staked_token == 400.0
        assert ledger.state.total_staked == 400.0

    def test_stake_more_than_held_fails(self):
        ledger = make_ledger(token=10.0)
        assert ledger.stake(0, 11.0).failure == Failure.INSUFFICIENT_FUNDS
        assert ledger.state.total_staked == 0.0

    def test_unstake_floors_total_staked(self):
        ledger = make_ledger(global_state=GlobalLedger(total_staked=50.0), staked_token=100.0)
        ledger.unstake(0, 100.0)
        assert ledger.state.total_staked == 0.0
        assert ledger.human.token == 100.0

    def test_sell_swaps_through_the_pool(self):
        ledger = make_ledger(token=1000.0)
        amm = AMMPool(reserve_token=1_000_000.0, reserve_base=1_000_000.0)
        result = ledger.sell(0, 1000.0, amm)

        assert result.ok
        assert abs(result.amount - 999.000999000999) < 1e-9
        assert ledger.human.token == 0.0
        assert ledger.human.base_currency == result.amount
        assert amm.reserve_token == 1_001_000.0

    def test_sell_more_than_held_leaves_pool_alone(self):
        ledger = make_ledger(token=10.0)
        amm = AMMPool(reserve_token=1000.0, reserve_base=1000.0)
        result = ledger.sell(0, 20.0, amm)
        assert result.failure == Failure.INSUFFICIENT_FUNDS
        assert amm.reserve_token == 1000.0

    def test_sell_ratio_rounds_down(self):
        ledger = make_ledger(token=15.0)
        amm = AMMPool(reserve_token=1000.0, reserve_base=1000.0)
        ledger.sell_ratio(0, 0.5, amm)
        assert ledger.human.token == 8.0  # floor(7.5) = 7 sold

    def test_sell_ratio_out_of_range(self):
        ledger = make_ledger(token=15.0)
        amm = AMMPool(reserve_token=1000.0, reserve_base=1000.0)
        assert ledger.sell_ratio(0, 1.5, amm).failure == Failure.INVALID_INTENT
        assert ledger.human.token == 15.0


class TestClaims:
    """Test suite for claim payouts"""

    def test_pool_claim_withholds_ten_percent(self):
        ledger = make_ledger(unclaimed_pool_reward=1000.0)
        result = ledger.claim_pool_reward(0)
        assert result.amount == pytest.approx(900.0)
        assert ledger.human.token == pytest.approx(900.0)
        assert ledger.human.unclaimed_pool_reward == 0.0

    def test_redistribution_and_staking_claims_pay_in_full(self):
        ledger = make_ledger(unclaimed_redistribution=30.0, unclaimed_staking_reward=12.5)
        ledger.claim_redistribution(0)
        ledger.claim_staking_reward(0)
        assert ledger.human.token == 42.5
        assert ledger.human.total_unclaimed == 0.0

    def test_second_claim_pays_nothing(self):
        ledger = make_ledger(unclaimed_staking_reward=12.5)
        ledger.claim_staking_reward(0)
        again = ledger.claim_staking_reward(0)
        assert again.ok
        assert again.amount == 0.0
        assert ledger.human.token == 12.5


class TestLedgerConstruction:
    """Test suite for ledger setup and validation"""

    def test_aggregates_derived_from_agents(self):
        agents = [
            Agent(agent_id=0, is_human=True, wealth=100.0, staked_token=10.0, invested_medals=3),
            Agent(agent_id=1, personality="Whale", wealth=50.0, staked_token=5.0, invested_medals=2),
        ]
        ledger = Ledger(agents)
        assert ledger.state.total_wealth == 150.0
        assert ledger.state.total_staked == 15.0
        assert ledger.state.medals_in_pool == 5
        assert ledger.state.day == 1

    def test_duplicate_ids_rejected(self):
        with pytest.raises(ValueError):
            Ledger([Agent(agent_id=1), Agent(agent_id=1)])

    def test_negative_balance_rejected(self):
        with pytest.raises(ValueError):
            Agent(agent_id=3, base_currency=-1.0)

    def test_copy_is_deep(self):
        ledger = make_ledger(base_currency=1000.0)
        staged = ledger.copy()
        staged.craft(0, 1)
        assert ledger.human.base_currency == 1000.0
        assert ledger.state.treasury == 0.0

    def test_token_supply_includes_unclaimed_and_reserve(self):
        ledger = make_ledger(token=10.0, staked_token=5.0, unclaimed_pool_reward=2.0)
        amm = AMMPool(reserve_token=100.0, reserve_base=1.0)
        assert ledger.total_token_supply() == 17.0
        assert ledger.total_token_supply(amm) == 117.0
