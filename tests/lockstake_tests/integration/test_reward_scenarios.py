"""
End-to-end reward distribution scenarios.

Each scenario runs a timeline of deposits, withdrawals and claims against a
fresh simulation, settles every staker once all locks have expired, and
compares realised rewards with each user's time-weighted share of the
emission program.
"""
import pytest

from lockstake.core.clock import ONE_DAY_SEC
from lockstake.core.defi.staking_pool import PoolEventKind
from lockstake.core.scenario import (
    ROUNDED_PRECISION,
    Action,
    ActionInfo,
    expected_reward,
    run_scenario,
    settle_all,
    within_tolerance,
)
from lockstake.core.simulation import TOTAL_REWARDS, ether

pytestmark = pytest.mark.integration

BASE = ether(100)


def _at(sim, fraction):
    return sim.start + int((sim.end - sim.start) * fraction)


def _deposit(user, amount):
    return ActionInfo(user=user, action="deposit", amount=amount)


def _withdraw(user):
    return ActionInfo(user=user, action="withdraw")


def _claim(user):
    return ActionInfo(user=user, action="claim")


def _assert_shares(sim, rewards, shares):
    for user, share in shares.items():
        target = expected_reward(sim, share, TOTAL_REWARDS)
        assert within_tolerance(rewards.get(user, 0), target, ROUNDED_PRECISION), (
            f"{user}: got {rewards.get(user, 0)}, expected about {target}"
        )


class TestTwoStakers:
    def test_equal_deposits_split_evenly(self, make_sim):
        sim = make_sim(balance=50_000)
        sim.roll_to(sim.start - ONE_DAY_SEC - 100)
        sim.deposit("alice", ether(20_000))
        sim.deposit("bob", ether(20_000))
        sim.roll_to(sim.start - 100)
        assert sim.commit() == ether(40_000)
        sim.roll(1_300_000)

        alice_principal, alice_reward = sim.withdraw("alice")
        bob_principal, bob_reward = sim.withdraw("bob")

        assert alice_principal == bob_principal == ether(20_000)
        assert alice_reward == bob_reward == ether(64_995)
        assert len(sim.pool.queue) == 0
        sim.pool.check_invariants()

    def test_late_deposit_earns_quarter(self, make_sim):
        sim = make_sim(balance=50_000)
        sim.roll_to(sim.start - ONE_DAY_SEC - 100)
        sim.deposit("alice", ether(20_000))
        sim.roll_to(sim.start - 100)
        sim.commit()

        sim.roll_to_fraction(0.5)
        sim.deposit("bob", ether(20_000))
        sim.roll(ONE_DAY_SEC)
        sim.commit()
        sim.roll_to(sim.end)

        alice = sim.address_of("alice")
        bob = sim.address_of("bob")
        assert sim.pool.pending_reward(alice) == ether(129_600)
        assert sim.pool.pending_reward(bob) == ether(43_200)

        assert sim.claim("alice") == ether(129_600)
        assert sim.claim("bob") == ether(43_200)


class TestAdvancedScenarios:
    def test_staggered_deposits(self, sim):
        actions = [
            Action(sim.start - ONE_DAY_SEC - 100, [_deposit("alice", BASE)]),
            Action(_at(sim, 0.25), [_deposit("bob", BASE // 3)]),
            Action(_at(sim, 0.5), [_deposit("carol", BASE // 3 * 2)]),
            Action(_at(sim, 0.75), [_deposit("dave", BASE * 2)]),
        ]

        rewards = settle_all(sim, run_scenario(sim, actions))

        _assert_shares(sim, rewards, {"alice": 62.5, "bob": 12.5, "carol": 12.5, "dave": 12.5})
        assert list(sim.stakers()) == []

    def _prestake_actions(self, sim, with_claims=False):
        half = [_deposit("alice", BASE * 2)]
        three_quarters = [_deposit("bob", BASE * 3)]
        if with_claims:
            half.append(_claim("dave"))
            three_quarters.append(_claim("alice"))
        return [
            Action(sim.start - ONE_DAY_SEC - 5_000_000, [_deposit("alice", BASE)]),
            Action(sim.start - ONE_DAY_SEC - 100_000, [_withdraw("alice")]),
            Action(
                sim.start - ONE_DAY_SEC - 100,
                [_deposit("bob", BASE * 3), _deposit("carol", BASE)],
            ),
            Action(_at(sim, 0.25), [_deposit("dave", BASE * 9), _withdraw("bob")]),
            Action(_at(sim, 0.5), half),
            Action(_at(sim, 0.75), three_quarters),
        ]

    def test_prestaking_and_unstaking(self, sim):
        rewards = settle_all(sim, run_scenario(sim, self._prestake_actions(sim)))

        _assert_shares(sim, rewards, {"alice": 7.5, "bob": 23.75, "carol": 12.5, "dave": 56.25})

    def test_midstream_claims_do_not_change_shares(self, sim):
        rewards = settle_all(sim, run_scenario(sim, self._prestake_actions(sim, with_claims=True)))

        _assert_shares(sim, rewards, {"alice": 7.5, "bob": 23.75, "carol": 12.5, "dave": 56.25})
        claims = [e for e in sim.pool.events if e.kind is PoolEventKind.CLAIM_COMPLETED]
        assert len(claims) == 2
        assert all(event.reward > 0 for event in claims)

    def test_repeat_deposits_with_fee(self, make_sim):
        sim = make_sim(fee_bps=400)
        actions = [
            Action(
                sim.start - ONE_DAY_SEC - 100,
                [_deposit("alice", BASE), _deposit("bob", BASE * 2)],
            ),
            Action(_at(sim, 0.25), [_deposit("alice", BASE)]),
            Action(
                _at(sim, 0.5),
                [_withdraw("bob"), _deposit("carol", BASE * 2), _deposit("alice", BASE)],
            ),
            Action(_at(sim, 0.75), [_claim("alice"), _deposit("dave", BASE * 3)]),
        ]

        rewards = settle_all(sim, run_scenario(sim, actions))

        _assert_shares(sim, rewards, {"alice": 45.21, "bob": 29.17, "carol": 16.25, "dave": 9.38})
        fee = TOTAL_REWARDS * 400 // 10_000
        assert within_tolerance(sim.pool.fees.fee_reserve, fee, ROUNDED_PRECISION)
        assert sim.pool.withdraw_fees(sim.admin) == sim.token.balance_of(sim.pool.hoard)

    def test_all_rewards_paid_out(self, sim):
        actions = [
            Action(sim.start - ONE_DAY_SEC - 100, [_deposit("alice", BASE)]),
            Action(_at(sim, 0.5), [_deposit("bob", BASE)]),
        ]

        rewards = settle_all(sim, run_scenario(sim, actions))

        paid = sum(rewards.values())
        assert paid <= TOTAL_REWARDS
        assert within_tolerance(paid, TOTAL_REWARDS, 10_000)
        # Whatever the pool received but did not pay out is accumulator rounding dust
        received = TOTAL_REWARDS - sim.token.balance_of(sim.vault.address)
        assert sim.token.balance_of(sim.pool.address) == received - paid
