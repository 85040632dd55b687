"""
Tests for the share-based reward ledger.

Covers:
- Accumulator increments and the no-staker case
- Reward debt on first deposits and top-ups
- Withdraw and checkpoint bookkeeping
- Negative reward detection
"""
import pytest

from lockstake.core.defi.reward_ledger import SCALE, RewardLedger
from lockstake.core.pool_exceptions import InvariantViolation, NoDepositError, ZeroAmountError

E = 10**18


class TestAccumulator:
    def test_distribute_splits_pro_rata(self):
        ledger = RewardLedger()
        ledger.add_stake("0xAlice", 100 * E)
        ledger.add_stake("0xBob", 300 * E)

        increment = ledger.distribute(40 * E)

        assert increment == 40 * E * SCALE // (400 * E)
        assert ledger.pending_reward("0xalice") == 10 * E
        assert ledger.pending_reward("0xbob") == 30 * E
        assert ledger.total_rewards_earned == 40 * E

    def test_distribute_records_gross_earned(self):
        ledger = RewardLedger()
        ledger.add_stake("0xAlice", 100 * E)

        ledger.distribute(96 * E, gross=100 * E)

        assert ledger.total_rewards_earned == 100 * E
        assert ledger.pending_reward("0xalice") == 96 * E

    def test_distribute_without_stakers_is_noop(self):
        ledger = RewardLedger()

        assert ledger.distribute(50 * E) == 0
        assert ledger.acc_rewards_per_share == 0
        assert ledger.total_rewards_earned == 0

    def test_negative_distribution_rejected(self):
        ledger = RewardLedger()
        ledger.add_stake("0xAlice", E)

        with pytest.raises(InvariantViolation):
            ledger.distribute(-1)


class TestPrincipal:
    def test_new_stake_does_not_claim_past_yield(self):
        ledger = RewardLedger()
        ledger.add_stake("0xAlice", 100 * E)
        ledger.distribute(100 * E)

        ledger.add_stake("0xBob", 100 * E)

        assert ledger.pending_reward("0xbob") == 0
        assert ledger.pending_reward("0xalice") == 100 * E

    def test_top_up_preserves_accrued_reward(self):
        ledger = RewardLedger()
        ledger.add_stake("0xAlice", 100 * E)
        ledger.distribute(50 * E)

        ledger.add_stake("0xAlice", 100 * E)
        ledger.distribute(20 * E)

        assert ledger.stake_of("0xalice") == 200 * E
        assert ledger.pending_reward("0xalice") == 70 * E

    def test_zero_stake_rejected(self):
        with pytest.raises(ZeroAmountError):
            RewardLedger().add_stake("0xAlice", 0)

    def test_remove_stake_returns_principal_and_reward(self):
        ledger = RewardLedger()
        ledger.add_stake("0xAlice", 100 * E)
        ledger.add_stake("0xBob", 100 * E)
        ledger.distribute(10 * E)

        principal, reward = ledger.remove_stake("0xAlice")

        assert principal == 100 * E
        assert reward == 5 * E
        assert ledger.total_staked == 100 * E
        assert ledger.account("0xalice").reward_debt == 0
        assert ledger.pending_reward("0xalice") == 0

    def test_remove_without_stake_raises(self):
        ledger = RewardLedger()

        with pytest.raises(NoDepositError):
            ledger.remove_stake("0xAlice")

    def test_account_can_be_recreated_after_withdraw(self):
        ledger = RewardLedger()
        ledger.add_stake("0xAlice", 100 * E)
        ledger.distribute(10 * E)
        ledger.remove_stake("0xAlice")

        ledger.add_stake("0xAlice", 50 * E)

        assert ledger.pending_reward("0xalice") == 0
        assert ledger.stake_of("0xalice") == 50 * E

    def test_checkpoint_marks_reward_paid(self):
        ledger = RewardLedger()
        ledger.add_stake("0xAlice", 100 * E)
        ledger.distribute(10 * E)

        assert ledger.checkpoint("0xAlice") == 10 * E
        assert ledger.pending_reward("0xalice") == 0
        assert ledger.stake_of("0xalice") == 100 * E


class TestInvariants:
    def test_negative_pending_reward_raises(self):
        ledger = RewardLedger()
        ledger.add_stake("0xAlice", 100 * E)
        ledger.accounts["0xalice"].reward_debt = 1

        with pytest.raises(InvariantViolation):
            ledger.pending_reward("0xalice")

    def test_principal_sum_mismatch_detected(self):
        ledger = RewardLedger()
        ledger.add_stake("0xAlice", 100 * E)
        ledger.total_staked += 1

        with pytest.raises(InvariantViolation):
            ledger.check_invariants()

    def test_to_dict(self):
        ledger = RewardLedger()
        ledger.add_stake("0xAlice", 100 * E)

        state = ledger.to_dict()

        assert state["total_staked"] == 100 * E
        assert state["accounts"] == 1
