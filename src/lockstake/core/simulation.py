"""
In-process wiring of a token, a vault and a pool on one shared clock.

A Simulation plays the part of a local test chain: named users hold minted
balances and an unlimited allowance to the pool, the vault is funded with an
emission program running from ``start`` to ``end``, and time only moves when
the caller rolls the clock.
"""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, Iterable, Optional

from .clock import ONE_DAY_SEC, ChainClock
from .config import PoolConfig
from .contracts.erc20 import ERC20Token
from .defi.staking_pool import LockStakingPool
from .defi.vault import SimulatedVault

logger = logging.getLogger(__name__)

WEI = 10**18
TOTAL_REWARDS = 172_800 * WEI
PROGRAM_DURATION = 20 * ONE_DAY_SEC
DEFAULT_START = 1_700_000_000
DEFAULT_LEAD_TIME = 120 * ONE_DAY_SEC


def ether(value) -> int:
    """Whole tokens (int, str or Decimal) to base units."""
    return int(Decimal(str(value)) * WEI)


def address_for(name: str) -> str:
    """Deterministic address for a named account."""
    digest = hashlib.sha3_256(f"lockstake-user:{name}".encode()).digest()
    return f"0x{digest[-20:].hex()}"


@dataclass
class Simulation:
    """Token, vault and pool sharing one clock, plus named users."""

    token: ERC20Token
    clock: ChainClock
    vault: SimulatedVault
    pool: LockStakingPool
    admin: str
    start: int
    end: int
    users: Dict[str, str] = field(default_factory=dict)

    def address_of(self, user: str) -> str:
        """Address of a named user (an address passes through unchanged)."""
        if user.startswith("0x") and len(user) == 42:
            return user.lower()
        if user not in self.users:
            raise KeyError(f"Unknown user '{user}'")
        return self.users[user]

    def add_user(self, name: str, balance: int = 0) -> str:
        address = address_for(name)
        self.users[name] = address
        if balance:
            self.token.mint(self.admin, address, balance)
        self.token.approve(address, self.pool.address, self.token.UINT256_MAX)
        return address

    def balance_of(self, user: str) -> int:
        return self.token.balance_of(self.address_of(user))

    # ==================== Time ====================

    def roll_to(self, timestamp: int) -> int:
        return self.clock.set(timestamp)

    def roll(self, seconds: int) -> int:
        return self.clock.advance(seconds)

    def roll_to_fraction(self, ratio: float) -> int:
        """Roll to start + ratio of the emission window."""
        return self.roll_to(self.start + int((self.end - self.start) * ratio))

    def roll_past_locks(self) -> int:
        """Roll until every committed batch has unlocked."""
        last_unlock = max((batch.unlock_at for batch in self.pool.queue), default=0)
        target = max(last_unlock, self.clock.now())
        return self.roll_to(target)

    # ==================== Pool Shortcuts ====================

    def deposit(self, user: str, amount: int) -> int:
        return self.pool.deposit(self.address_of(user), amount)

    def withdraw(self, user: str) -> tuple[int, int]:
        return self.pool.withdraw(self.address_of(user))

    def claim(self, user: str) -> int:
        return self.pool.claim(self.address_of(user))

    def commit(self) -> int:
        return self.pool.commit_scheduled()

    def stakers(self) -> Iterable[str]:
        """Names of users that still hold principal."""
        return [name for name, address in self.users.items() if self.pool.ledger.stake_of(address) > 0]


def build_simulation(
    config: Optional[PoolConfig] = None,
    users: Optional[Dict[str, int]] = None,
    start: int = DEFAULT_START,
    duration: int = PROGRAM_DURATION,
    total_rewards: int = TOTAL_REWARDS,
    lead_time: int = DEFAULT_LEAD_TIME,
) -> Simulation:
    """
    Create a funded simulation.

    Args:
        config: Pool settings (fee, lock tier, admin, hoard, vesting)
        users: Name -> initial token balance in base units
        start: Emission program start timestamp
        duration: Emission program length in seconds
        total_rewards: Tokens emitted over the program, in base units
        lead_time: How long before start the clock begins

    Returns:
        Simulation with the clock at ``start - lead_time``
    """
    config = config or PoolConfig()
    if duration <= 0:
        raise ValueError("Program duration must be positive")

    clock = ChainClock(timestamp=start - lead_time)
    admin = config.admin.lower()
    token = ERC20Token(name="Magic", symbol="MAGIC", owner=admin, clock=clock)
    vault = SimulatedVault(
        token=token,
        clock=clock,
        reward_rate=total_rewards // duration,
        start=start,
        end=start + duration,
        vesting_period=config.vesting_period,
    )
    token.mint(admin, vault.address, vault.reward_rate * duration)

    pool = LockStakingPool(
        token=token,
        vault=vault,
        clock=clock,
        lock_tier=config.tier,
        fee_bps=config.fee_bps,
        admin=admin,
        hoard=config.fee_recipient,
    )

    sim = Simulation(
        token=token,
        clock=clock,
        vault=vault,
        pool=pool,
        admin=admin,
        start=start,
        end=start + duration,
    )
    for name, balance in (users or {}).items():
        sim.add_user(name, balance)

    logger.info(
        "Simulation built",
        extra={
            "event": "simulation.built",
            "pool": pool.address[:10],
            "start": start,
            "end": start + duration,
            "reward_rate": vault.reward_rate,
            "users": len(sim.users),
        },
    )
    return sim
