"""
External yield vault.

Defines the capability surface the pool consumes (``ExternalVault``) and an
in-process implementation (``SimulatedVault``) that behaves like a
time-locked emission mine:
- A constant reward rate streams between a program start and end and is
  split across depositors pro-rata to their remaining principal
- Each deposit is locked for the duration of its lock tier, then vests
  linearly over ``vesting_period`` seconds (0 = fully liquid at unlock)
- Withdrawing principal also harvests the owner's pending yield
"""

from __future__ import annotations

import copy
import hashlib
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Protocol, runtime_checkable

from ..clock import ONE_DAY_SEC, ChainClock
from ..contracts.erc20 import ERC20Token
from ..pool_exceptions import AuthorizationError, BatchLockedError, StateError, ZeroAmountError

logger = logging.getLogger(__name__)

SCALE = 10**18


class LockTier(Enum):
    """Lock durations offered by the vault, in seconds."""

    TWO_WEEKS = 14 * ONE_DAY_SEC
    ONE_MONTH = 30 * ONE_DAY_SEC
    THREE_MONTHS = 90 * ONE_DAY_SEC
    SIX_MONTHS = 180 * ONE_DAY_SEC
    TWELVE_MONTHS = 365 * ONE_DAY_SEC

    @classmethod
    def from_name(cls, name: str) -> "LockTier":
        try:
            return cls[name.strip().upper()]
        except KeyError:
            valid = ", ".join(t.name.lower() for t in cls)
            raise ValueError(f"Unknown lock tier '{name}' (expected one of: {valid})") from None


@runtime_checkable
class ExternalVault(Protocol):
    """
    Capability surface of the yield vault.

    All token movements are real transfers on the shared token; callers
    measure what they received by balance differencing.
    """

    address: str

    def deposit(self, depositor: str, amount: int, lock_tier: LockTier) -> int:
        """Pull amount from depositor (needs an allowance); return a deposit handle."""
        ...

    def withdraw_and_harvest(self, owner: str, handle: int, amount: int) -> tuple[int, int]:
        """
        Withdraw up to amount of principal from handle and harvest pending yield.

        Returns:
            (principal_returned, yield_harvested). principal_returned may be
            less than amount when the vault's vesting holds some back.
        """
        ...

    def harvest_all(self, owner: str) -> int:
        """Transfer all of owner's pending yield to owner."""
        ...

    def current_principal(self, handle: int) -> int:
        """Authoritative principal still held under handle."""
        ...

    def withdrawable_principal(self, handle: int) -> int:
        """Principal under handle that could be withdrawn right now."""
        ...

    def lock_duration_for(self, lock_tier: LockTier) -> int:
        ...

    def pending_yield(self, owner: str) -> int:
        ...


@dataclass
class VaultDeposit:
    """One locked position inside the vault."""

    handle: int
    owner: str
    amount: int
    lock_tier: LockTier
    deposited_at: int
    unlock_at: int
    withdrawn: int = 0

    @property
    def remaining(self) -> int:
        return self.amount - self.withdrawn


@dataclass
class SimulatedVault:
    """
    Emission-stream vault with lock and linear vesting.

    Rewards for the window [start, end] total ``reward_rate * (end - start)``
    and must be funded by minting them to ``address`` beforehand. Emissions
    that elapse while nothing is deposited are not distributed.
    """

    token: ERC20Token
    clock: ChainClock
    reward_rate: int = 0
    start: int = 0
    end: int = 0
    vesting_period: int = 0

    address: str = ""

    # Positions
    deposits: dict[int, VaultDeposit] = field(default_factory=dict)
    next_handle: int = 1

    # Reward accounting per owner
    acc_reward_per_share: int = 0
    last_update: int = 0
    total_deposits: int = 0
    owner_staked: dict[str, int] = field(default_factory=dict)
    owner_reward_debt: dict[str, int] = field(default_factory=dict)
    owner_unpaid: dict[str, int] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.address:
            addr_hash = hashlib.sha3_256(f"vault:{time.time()}:{id(self)}".encode()).digest()
            self.address = f"0x{addr_hash[-20:].hex()}"
        self.address = self.address.lower()
        if not self.last_update:
            self.last_update = self.clock.now()

    # ==================== Capability Surface ====================

    def deposit(self, depositor: str, amount: int, lock_tier: LockTier) -> int:
        if amount <= 0:
            raise ZeroAmountError("Vault: deposit amount must be positive")
        owner = depositor.lower()
        self._update()
        self._settle(owner)

        self.token.transfer_from(self.address, owner, self.address, amount)

        now = self.clock.now()
        handle = self.next_handle
        self.next_handle += 1
        self.deposits[handle] = VaultDeposit(
            handle=handle,
            owner=owner,
            amount=amount,
            lock_tier=lock_tier,
            deposited_at=now,
            unlock_at=now + self.lock_duration_for(lock_tier),
        )
        self.owner_staked[owner] = self.owner_staked.get(owner, 0) + amount
        self.total_deposits += amount
        self.owner_reward_debt[owner] = self.owner_staked[owner] * self.acc_reward_per_share // SCALE

        logger.debug(
            "Vault deposit",
            extra={
                "event": "vault.deposit",
                "owner": owner[:10],
                "handle": handle,
                "amount": amount,
                "unlock_at": now + self.lock_duration_for(lock_tier),
            }
        )
        return handle

    def withdraw_and_harvest(self, owner: str, handle: int, amount: int) -> tuple[int, int]:
        owner = owner.lower()
        position = self._position(owner, handle)
        if self.clock.now() < position.unlock_at:
            raise BatchLockedError(
                f"Vault: deposit {handle} is locked until {position.unlock_at}"
            )

        self._update()
        self._settle(owner)

        principal = min(amount, self.withdrawable_principal(handle))
        position.withdrawn += principal
        self.owner_staked[owner] -= principal
        self.total_deposits -= principal
        self.owner_reward_debt[owner] = self.owner_staked[owner] * self.acc_reward_per_share // SCALE

        harvested = self.owner_unpaid.pop(owner, 0)
        payout = principal + harvested
        if payout:
            self.token.transfer(self.address, owner, payout)

        logger.debug(
            "Vault withdraw",
            extra={
                "event": "vault.withdraw",
                "owner": owner[:10],
                "handle": handle,
                "requested": amount,
                "principal": principal,
                "harvested": harvested,
            }
        )
        return principal, harvested

    def harvest_all(self, owner: str) -> int:
        owner = owner.lower()
        self._update()
        self._settle(owner)
        harvested = self.owner_unpaid.pop(owner, 0)
        if harvested:
            self.token.transfer(self.address, owner, harvested)
        return harvested

    def current_principal(self, handle: int) -> int:
        position = self.deposits.get(handle)
        return position.remaining if position else 0

    def withdrawable_principal(self, handle: int) -> int:
        position = self.deposits.get(handle)
        if position is None:
            return 0
        now = self.clock.now()
        if now < position.unlock_at:
            return 0
        if self.vesting_period <= 0:
            vested = position.amount
        else:
            elapsed = min(now - position.unlock_at, self.vesting_period)
            vested = position.amount * elapsed // self.vesting_period
        return max(vested - position.withdrawn, 0)

    def lock_duration_for(self, lock_tier: LockTier) -> int:
        return lock_tier.value

    def pending_yield(self, owner: str) -> int:
        owner = owner.lower()
        acc = self.acc_reward_per_share + self._accrued_per_share(self.clock.now())
        staked = self.owner_staked.get(owner, 0)
        accrued = staked * acc // SCALE - self.owner_reward_debt.get(owner, 0)
        return self.owner_unpaid.get(owner, 0) + accrued

    # ==================== Accounting ====================

    def _accrued_per_share(self, now: int) -> int:
        if self.total_deposits == 0 or self.reward_rate == 0:
            return 0
        window_end = min(now, self.end)
        window_start = max(self.last_update, self.start)
        if window_end <= window_start:
            return 0
        emitted = self.reward_rate * (window_end - window_start)
        return emitted * SCALE // self.total_deposits

    def _update(self) -> None:
        now = self.clock.now()
        if now <= self.last_update:
            return
        self.acc_reward_per_share += self._accrued_per_share(now)
        self.last_update = now

    def _settle(self, owner: str) -> None:
        staked = self.owner_staked.get(owner, 0)
        accumulated = staked * self.acc_reward_per_share // SCALE
        pending = accumulated - self.owner_reward_debt.get(owner, 0)
        if pending > 0:
            self.owner_unpaid[owner] = self.owner_unpaid.get(owner, 0) + pending
        self.owner_reward_debt[owner] = accumulated

    def _position(self, owner: str, handle: int) -> VaultDeposit:
        position = self.deposits.get(handle)
        if position is None:
            raise StateError(f"Vault: unknown deposit {handle}")
        if position.owner != owner:
            raise AuthorizationError(f"Vault: deposit {handle} is not owned by {owner[:10]}")
        return position

    # ==================== Snapshots ====================

    def snapshot(self) -> Dict[str, Any]:
        """Deep copy of vault accounting (the shared token snapshots itself)."""
        return {
            "deposits": copy.deepcopy(self.deposits),
            "next_handle": self.next_handle,
            "acc_reward_per_share": self.acc_reward_per_share,
            "last_update": self.last_update,
            "total_deposits": self.total_deposits,
            "owner_staked": dict(self.owner_staked),
            "owner_reward_debt": dict(self.owner_reward_debt),
            "owner_unpaid": dict(self.owner_unpaid),
        }

    def restore(self, snapshot: Dict[str, Any]) -> None:
        self.deposits = copy.deepcopy(snapshot["deposits"])
        self.next_handle = snapshot["next_handle"]
        self.acc_reward_per_share = snapshot["acc_reward_per_share"]
        self.last_update = snapshot["last_update"]
        self.total_deposits = snapshot["total_deposits"]
        self.owner_staked = dict(snapshot["owner_staked"])
        self.owner_reward_debt = dict(snapshot["owner_reward_debt"])
        self.owner_unpaid = dict(snapshot["owner_unpaid"])
