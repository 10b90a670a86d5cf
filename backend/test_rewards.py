"""
Unit tests for pool settlement, redistribution and staking dividends
"""

import pytest

from agents import Agent
from config import RewardConfig
from ledger import GlobalLedger, Ledger
from rewards import distribute_staking_dividend, redistribution_share, settle_pool_rewards, staking_apy


def two_agent_ledger(human_invested=0, bot_invested=0, medals_in_pool=None,
                     human_wealth=0.0, bot_wealth=0.0, human_staked=0.0, bot_staked=0.0):
    human = Agent(agent_id=0, is_human=True, invested_medals=human_invested,
                  wealth=human_wealth, staked_token=human_staked)
    bot = Agent(agent_id=1, personality="Degen", invested_medals=bot_invested,
                wealth=bot_wealth, staked_token=bot_staked)
    pool = human_invested + bot_invested if medals_in_pool is None else medals_in_pool
    state = GlobalLedger(medals_in_pool=pool, total_wealth=human_wealth + bot_wealth,
                         total_staked=human_staked + bot_staked)
    return Ledger([human, bot], global_state=state)


class TestPoolSettlement:
    """Test suite for settle_pool_rewards"""

    def test_empty_pool_pays_nothing(self):
        ledger = two_agent_ledger()
        result = settle_pool_rewards(ledger, RewardConfig())

        assert result.payouts == {}
        assert result.tax_pool == 0.0
        assert result.minted == 0.0
        assert ledger.human.total_unclaimed == 0.0

    def test_human_only_pool_is_untaxed(self):
        ledger = two_agent_ledger(human_invested=50)
        result = settle_pool_rewards(ledger, RewardConfig())

        assert ledger.human.unclaimed_pool_reward == pytest.approx(1_000_000.0)
        assert result.tax_pool == 0.0
        assert ledger.human.invested_medals == 0

    def test_bot_payout_taxed_and_redistributed(self):
        """Human 100 medals, bot 300: payouts 250k / 750k, tax 75k, human share 25%"""
        ledger = two_agent_ledger(human_invested=100, bot_invested=300)
        result = settle_pool_rewards(ledger, RewardConfig())

        assert result.payouts[0] == pytest.approx(250_000.0)
        assert result.payouts[1] == pytest.approx(750_000.0)
        assert result.tax_pool == pytest.approx(75_000.0)
        assert result.redistribution == pytest.approx(18_750.0)
        assert result.tax_retained == pytest.approx(56_250.0)
        assert result.minted == pytest.approx(943_750.0)

        assert ledger.human.unclaimed_pool_reward == pytest.approx(250_000.0)
        assert ledger.human.unclaimed_redistribution == pytest.approx(18_750.0)
        assert ledger.agents[1].unclaimed_pool_reward == pytest.approx(675_000.0)
        assert ledger.agents[1].unclaimed_redistribution == 0.0
        assert ledger.human.invested_medals == 0
        assert ledger.agents[1].invested_medals == 0

    def test_wealth_basis(self):
        ledger = two_agent_ledger(human_invested=100, bot_invested=300, human_wealth=300.0, bot_wealth=100.0)
        result = settle_pool_rewards(ledger, RewardConfig(redistribution_basis="wealth"))
        assert result.redistribution == pytest.approx(75_000.0 * 0.75)

    def test_lagging_pool_never_overpays(self):
        """A recorded pool smaller than the invested sum still pays out at most the daily reward"""
        ledger = two_agent_ledger(human_invested=100, bot_invested=300, medals_in_pool=100)
        result = settle_pool_rewards(ledger, RewardConfig())
        assert result.pool_size == 400
        assert sum(result.payouts.values()) == pytest.approx(1_000_000.0)

    def test_larger_pool_leaves_reward_unpaid(self):
        """Medals counted in the pool without an invested owner dilute everyone"""
        ledger = two_agent_ledger(bot_invested=100, medals_in_pool=200)
        result = settle_pool_rewards(ledger, RewardConfig())
        assert result.payouts[1] == pytest.approx(500_000.0)


class TestRedistributionShare:
    """Test suite for redistribution_share"""

    def test_unclaimed_basis_counts_existing_bucket(self):
        human = Agent(agent_id=0, is_human=True, unclaimed_pool_reward=100.0)
        ledger = Ledger([human, Agent(agent_id=1)])
        share = redistribution_share(ledger, {1: 300.0}, RewardConfig())
        assert share == pytest.approx(0.25)

    def test_no_human_means_no_share(self):
        ledger = Ledger([Agent(agent_id=1)])
        assert redistribution_share(ledger, {1: 300.0}, RewardConfig()) == 0.0

    def test_zero_denominator(self):
        ledger = two_agent_ledger()
        assert redistribution_share(ledger, {}, RewardConfig()) == 0.0
        assert redistribution_share(ledger, {}, RewardConfig(redistribution_basis="wealth")) == 0.0


class TestStakingDividend:
    """Test suite for distribute_staking_dividend"""

    def test_dividend_split_by_stake(self):
        ledger = two_agent_ledger(human_staked=100.0, bot_staked=300.0)
        result = distribute_staking_dividend(ledger, 1000.0, RewardConfig())

        assert result.dividend == pytest.approx(100.0)
        assert ledger.human.unclaimed_staking_reward == pytest.approx(25.0)
        assert ledger.agents[1].unclaimed_staking_reward == pytest.approx(75.0)
        assert result.undistributed == pytest.approx(0.0)
        assert result.apy == pytest.approx(100.0 * 365 / 400)

    def test_no_stake_leaves_dividend_undistributed(self):
        ledger = two_agent_ledger()
        result = distribute_staking_dividend(ledger, 1000.0, RewardConfig())

        assert result.distributed == 0.0
        assert result.undistributed == pytest.approx(100.0)
        assert result.apy == 0.0
        assert ledger.human.unclaimed_staking_reward == 0.0

    def test_staking_apy(self):
        assert staking_apy(10.0, 3650.0) == pytest.approx(1.0)
        assert staking_apy(10.0, 0.0) == 0.0
