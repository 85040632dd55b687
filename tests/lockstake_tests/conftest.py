"""
Shared fixtures for lockstake tests.

Times are expressed relative to the emission program start; the program
emits 0.1 token per second for 20 days (172,800 tokens).
"""

import pytest

from lockstake.core.clock import ONE_DAY_SEC
from lockstake.core.config import PoolConfig
from lockstake.core.simulation import build_simulation, ether

ADMIN = "0x" + "a" * 40
HOARD = "0x" + "f" * 40


def _make_sim(fee_bps=0, vesting_period=0, users=("alice", "bob", "carol", "dave"), balance=100_000):
    config = PoolConfig(fee_bps=fee_bps, admin=ADMIN, hoard=HOARD, vesting_period=vesting_period)
    return build_simulation(config, users={name: ether(balance) for name in users})


@pytest.fixture
def make_sim():
    """Factory for simulations with each named user funded with balance whole tokens."""
    return _make_sim


@pytest.fixture
def sim():
    return _make_sim()


@pytest.fixture
def fee_sim():
    return _make_sim(fee_bps=400)


@pytest.fixture
def staked_sim(sim):
    """alice and bob each hold 100 tokens in one batch committed at start - 100s."""
    sim.roll_to(sim.start - ONE_DAY_SEC - 100)
    sim.deposit("alice", ether(100))
    sim.deposit("bob", ether(100))
    sim.roll_to(sim.start - 100)
    assert sim.commit() == ether(200)
    return sim
