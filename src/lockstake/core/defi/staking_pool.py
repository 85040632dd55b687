"""
Lock-staking pool.

Pools many depositors' tokens, forwards them in daily batches into an
external vault under one fixed lock tier, and shares the vault's harvested
yield pro-rata to stake-weighted time, minus an operator fee.

Flow:
- deposit -> today's pending bucket
- commit_scheduled (next day or later) -> one new locked batch in the vault
- withdraw / claim -> harvest and update the accumulator, unwind unlocked
  batches if usable balance is short (withdraw only), then pay out

Every public mutator is guarded: a second entry while one is running raises
ReentrancyError, and if any exception escapes, the pool, the token and the
vault are restored to their state on entry before it propagates. Accounting
effects are written before the external transfer or vault call that follows
them.
"""

from __future__ import annotations

import copy
import functools
import hashlib
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict

from .. import pool_metrics
from ..clock import ChainClock
from ..contracts.erc20 import ERC20Token
from ..pool_exceptions import (
    DepositTooSmallError,
    InsufficientBalanceError,
    InsufficientRewardLiquidityError,
    InvariantViolation,
    NoDepositError,
    ReentrancyError,
    ValidationError,
    ZeroAmountError,
)
from .access_control import Role, RoleBasedAccessControl, requires_role
from .deposit_scheduler import DepositScheduler
from .fee_accrual import FeeAccrual, calculate_fee_amount
from .liquidity import LiquidityManager
from .reward_ledger import SCALE, RewardLedger
from .stake_queue import StakeBatch, StakeQueue
from .vault import ExternalVault, LockTier

logger = logging.getLogger(__name__)


class PoolEventKind(Enum):
    """Observable side effects of pool operations."""
    DEPOSIT_ACCEPTED = "deposit_accepted"
    WITHDRAWAL_COMPLETED = "withdrawal_completed"
    CLAIM_COMPLETED = "claim_completed"
    BATCH_COMMITTED = "batch_committed"
    BATCH_UNSTAKED = "batch_unstaked"
    YIELD_HARVESTED = "yield_harvested"
    FEES_WITHDRAWN = "fees_withdrawn"


@dataclass
class PoolEvent:
    """Record of one pool event."""

    kind: PoolEventKind
    user: str = ""
    amount: int = 0
    reward: int = 0
    fee: int = 0
    unlock_at: int = 0
    timestamp: int = 0


def guarded(func):
    """Reentrancy guard plus all-or-nothing rollback for a pool operation."""

    @functools.wraps(func)
    def wrapper(self: "LockStakingPool", *args, **kwargs):
        if self._entered:
            logger.warning(
                "Reentrant call rejected",
                extra={"event": "pool.reentrancy_blocked", "operation": func.__name__},
            )
            raise ReentrancyError(f"Reentrant call to {func.__name__}")

        self._entered = True
        snapshot = self.snapshot()
        try:
            result = func(self, *args, **kwargs)
        except Exception as exc:
            self.restore(snapshot)
            logger.warning(
                "Pool operation reverted: %s",
                exc,
                extra={
                    "event": "pool.reverted",
                    "operation": func.__name__,
                    "error_type": type(exc).__name__,
                },
            )
            raise
        finally:
            self._entered = False

        pool_metrics.update_pool_gauges(self)
        return result

    return wrapper


@dataclass
class LockStakingPool:
    """
    Staking pool over one token, one vault and one lock tier.

    Addresses are plain strings and the caller of each operation is passed
    explicitly (msg.sender).
    """

    token: ERC20Token
    vault: ExternalVault
    clock: ChainClock
    lock_tier: LockTier = LockTier.TWO_WEEKS
    fee_bps: int = 0
    admin: str = ""
    hoard: str = ""
    address: str = ""

    # Components
    ledger: RewardLedger = field(default_factory=RewardLedger)
    scheduler: DepositScheduler = field(default_factory=DepositScheduler)
    queue: StakeQueue = field(default_factory=StakeQueue)
    fees: FeeAccrual = field(init=False)
    access: RoleBasedAccessControl = field(init=False)
    liquidity: LiquidityManager = field(init=False)

    schedule_paused: bool = False
    events: list[PoolEvent] = field(default_factory=list)
    _entered: bool = field(default=False, repr=False)

    def __post_init__(self) -> None:
        if not self.address:
            addr_hash = hashlib.sha3_256(f"lockstake:{time.time()}:{id(self)}".encode()).digest()
            self.address = f"0x{addr_hash[-20:].hex()}"
        self.address = self.address.lower()
        self.admin = self.admin.lower()
        self.hoard = (self.hoard or self.admin).lower()

        self.fees = FeeAccrual(fee_bps=self.fee_bps)
        self.access = RoleBasedAccessControl(admin_address=self.admin)
        self.liquidity = LiquidityManager(
            pool_address=self.address,
            token=self.token,
            vault=self.vault,
            queue=self.queue,
            fees=self.fees,
            clock=self.clock,
            on_yield=self._distribute_yield,
            on_release=self._record_release,
        )

    # ==================== Depositor Operations ====================

    @guarded
    def deposit(self, caller: str, amount: int) -> int:
        """
        Stake amount of caller's tokens (requires an allowance to the pool).

        The deposit waits in today's bucket and is locked in the vault by the
        first commit on a later day.

        Returns:
            Caller's principal after the deposit

        Raises:
            ZeroAmountError: If amount is not positive
            DepositTooSmallError: If amount would be worth less than one
                share unit at the current exchange rate
        """
        caller = caller.lower()
        if amount <= 0:
            raise ZeroAmountError("Deposit amount must be positive")

        controlled = self.total_controlled()
        if controlled > 0 and amount * SCALE // controlled < 1:
            raise DepositTooSmallError(
                f"Deposit of {amount} is too small for a pool controlling {controlled}",
                details={"amount": amount, "controlled": controlled},
            )

        # Checkpoint existing stakers before the new principal joins
        self._accrue()

        now = self.clock.now()
        account = self.ledger.add_stake(caller, amount)
        self.scheduler.schedule(amount, now, caller)

        received = self._pull(caller, amount)
        if received != amount:
            raise InsufficientBalanceError(
                f"Token delivered {received} of {amount}",
                details={"requested": amount, "received": received},
            )

        self._emit(PoolEventKind.DEPOSIT_ACCEPTED, user=caller, amount=amount)
        return account.stake_principal

    @guarded
    def withdraw(self, caller: str) -> tuple[int, int]:
        """
        Withdraw caller's whole principal plus outstanding reward.

        Unlocked batches are unwound if the usable balance cannot cover the
        payout.

        Returns:
            (principal, reward)

        Raises:
            NoDepositError: If caller has no principal
            InsufficientUnlockableLiquidityError: If too much principal is
                still locked to fund the payout
        """
        caller = caller.lower()
        if self.ledger.stake_of(caller) == 0:
            raise NoDepositError(f"No deposit for {caller[:10]}", details={"user": caller})

        self._accrue()
        principal, reward = self.ledger.remove_stake(caller)
        # Principal not yet committed leaves the pending buckets with its owner
        self.scheduler.cancel(caller, principal)
        payout = principal + reward

        self.liquidity.ensure_usable(payout)
        self._push(caller, payout)

        self._emit(
            PoolEventKind.WITHDRAWAL_COMPLETED, user=caller, amount=principal, reward=reward
        )
        return principal, reward

    @guarded
    def claim(self, caller: str) -> int:
        """
        Pay caller's outstanding reward, leaving principal staked.

        A claim never unstakes locked principal.

        Raises:
            NoDepositError: If caller has no principal
            InsufficientRewardLiquidityError: If the reward exceeds the
                usable balance
        """
        caller = caller.lower()
        if self.ledger.stake_of(caller) == 0:
            raise NoDepositError(f"No deposit for {caller[:10]}", details={"user": caller})

        self._accrue()
        reward = self.ledger.pending_reward(caller)
        usable = self.liquidity.usable_balance()
        if reward > usable:
            raise InsufficientRewardLiquidityError(
                f"Reward {reward} exceeds usable balance {usable}",
                details={"reward": reward, "usable": usable},
            )

        self.ledger.checkpoint(caller)
        if reward:
            self._push(caller, reward)

        self._emit(PoolEventKind.CLAIM_COMPLETED, user=caller, reward=reward)
        return reward

    @guarded
    def commit_scheduled(self) -> int:
        """
        Lock every pending bucket from before today in one new vault batch.

        Callable by anyone; a second call on the same day is a no-op. While
        the schedule is paused the swept amount is not staked and stays in
        the usable balance.

        Returns:
            Amount placed in the vault
        """
        now = self.clock.now()
        amount = self.scheduler.take_due(now)
        if amount == 0:
            return 0

        if self.schedule_paused:
            logger.info(
                "Schedule paused, swept deposits left unstaked",
                extra={"event": "pool.commit_paused", "amount": amount},
            )
            return 0

        usable = self.liquidity.usable_balance()
        stake = min(amount, usable)
        if stake < amount:
            logger.warning(
                "Swept deposits exceed usable balance, staking what is held",
                extra={"event": "pool.commit_short", "swept": amount, "usable": usable},
            )
        if stake == 0:
            return 0

        self.token.approve(self.address, self.vault.address, stake)
        handle = self.vault.deposit(self.address, stake, self.lock_tier)

        unlock_at = now + self.vault.lock_duration_for(self.lock_tier)
        self.queue.append(
            StakeBatch(
                amount=self.vault.current_principal(handle),
                unlock_at=unlock_at,
                vault_handle=handle,
            )
        )

        self._emit(PoolEventKind.BATCH_COMMITTED, amount=stake, unlock_at=unlock_at)
        return stake

    # ==================== Liquidity Recovery ====================

    @guarded
    @requires_role(Role.OPERATOR)
    def unstake_to_target(self, caller: str, target: int) -> int:
        """Release at least target of unlocked principal into usable balance."""
        return self.liquidity.unstake_to_target(target)

    @guarded
    @requires_role(Role.OPERATOR)
    def unstake_one(self, caller: str, index: int, amount: int) -> int:
        """Withdraw up to amount from the batch at index (must be unlocked)."""
        return self.liquidity.unstake_one(index, amount)

    @guarded
    @requires_role(Role.OPERATOR)
    def sweep_unlockable(self, caller: str) -> int:
        """Withdraw all releasable principal from every unlocked batch."""
        return self.liquidity.sweep_unlockable()

    # ==================== Operator Surface ====================

    @guarded
    @requires_role(Role.OPERATOR)
    def set_fee(self, caller: str, fee_bps: int) -> None:
        # Yield earned so far is charged at the old rate
        self._accrue()
        self.fees.set_rate(fee_bps)
        self.fee_bps = fee_bps

    @guarded
    @requires_role(Role.OPERATOR)
    def set_schedule_paused(self, caller: str, paused: bool) -> None:
        self.schedule_paused = bool(paused)
        logger.info(
            "Schedule %s",
            "paused" if paused else "resumed",
            extra={"event": "pool.schedule_paused", "paused": bool(paused)},
        )

    @guarded
    @requires_role(Role.ADMIN)
    def set_hoard(self, caller: str, hoard: str) -> None:
        if not hoard:
            raise ValidationError("Hoard address cannot be empty")
        self.hoard = hoard.lower()

    @guarded
    @requires_role(Role.OPERATOR)
    def withdraw_fees(self, caller: str) -> int:
        """Pay the whole fee reserve to the hoard address."""
        amount = self.fees.drain()
        if amount:
            self._push(self.hoard, amount)
        self._emit(PoolEventKind.FEES_WITHDRAWN, user=self.hoard, amount=amount)
        return amount

    # ==================== Views ====================

    def usable_balance(self) -> int:
        return self.liquidity.usable_balance()

    def total_controlled(self) -> int:
        """Usable balance plus all principal still in the vault."""
        return self.liquidity.usable_balance() + self.queue.total()

    def total_pending_uncommitted(self) -> int:
        return self.scheduler.total_pending()

    def total_withdrawable(self) -> int:
        """
        Projection of what could be paid out right now.

        Usable balance, plus unharvested vault yield net of the fee, plus
        principal the vault would release from unlocked batches.
        """
        pending_yield = self.vault.pending_yield(self.address)
        net_yield = pending_yield - calculate_fee_amount(pending_yield, self.fees.fee_bps)
        releasable = sum(
            self.vault.withdrawable_principal(batch.vault_handle)
            for _, batch in self.queue.unlockable(self.clock.now())
        )
        return self.liquidity.usable_balance() + net_yield + releasable

    def pending_reward(self, user: str, include_unharvested: bool = True) -> int:
        """Reward user would receive now; optionally counts yield not yet harvested."""
        reward = self.ledger.pending_reward(user)
        account = self.ledger.account(user)
        if not include_unharvested or self.ledger.total_staked == 0:
            return reward
        pending_yield = self.vault.pending_yield(self.address)
        net_yield = pending_yield - calculate_fee_amount(pending_yield, self.fees.fee_bps)
        acc = self.ledger.acc_rewards_per_share + net_yield * SCALE // self.ledger.total_staked
        return account.stake_principal * acc // SCALE - account.reward_debt

    def get_pool_state(self) -> Dict[str, Any]:
        """Get current pool state."""
        return {
            "address": self.address,
            "token": self.token.symbol,
            "lock_tier": self.lock_tier.name.lower(),
            "fee_bps": self.fees.fee_bps,
            "fee_reserve": self.fees.fee_reserve,
            "schedule_paused": self.schedule_paused,
            "usable_balance": self.usable_balance(),
            "total_controlled": self.total_controlled(),
            "total_pending_uncommitted": self.total_pending_uncommitted(),
            "committable": self.scheduler.due(self.clock.now()),
            "unlockable_principal": self.queue.unlockable_total(self.clock.now()),
            "batches": [
                {"amount": b.amount, "unlock_at": b.unlock_at, "handle": b.vault_handle}
                for b in self.queue
            ],
            **self.ledger.to_dict(),
        }

    def check_invariants(self) -> None:
        """Raise InvariantViolation if any accounting invariant is broken."""
        self.ledger.check_invariants()
        if not self.queue.is_sorted():
            raise InvariantViolation("Stake queue is not sorted by unlock time")
        self.liquidity.usable_balance()

    # ==================== Internals ====================

    def _accrue(self) -> int:
        """Harvest vault yield and fold it into the accumulator."""
        if self.ledger.total_staked == 0:
            return 0
        balance_before = self.token.balance_of(self.address)
        self.vault.harvest_all(self.address)
        earned = self.token.balance_of(self.address) - balance_before
        return self._distribute_yield(earned)

    def _distribute_yield(self, earned: int) -> int:
        if earned < 0:
            raise InvariantViolation(f"Harvest reduced the pool balance by {-earned}")
        if earned == 0:
            return 0
        if self.ledger.total_staked == 0:
            logger.warning(
                "Yield harvested with no stakers stays in usable balance",
                extra={"event": "pool.unattributed_yield", "amount": earned},
            )
            return 0

        acc_before = self.ledger.acc_rewards_per_share
        net, fee = self.fees.skim(earned)
        self.ledger.distribute(net, gross=earned)
        if self.ledger.acc_rewards_per_share < acc_before:
            raise InvariantViolation("Reward accumulator decreased")

        pool_metrics.record_harvest(self.address, net, fee)
        self._emit(PoolEventKind.YIELD_HARVESTED, amount=net, fee=fee)
        return net

    def _record_release(self, batch: StakeBatch, released: int) -> None:
        self._emit(
            PoolEventKind.BATCH_UNSTAKED, amount=released, unlock_at=batch.unlock_at
        )

    def _pull(self, sender: str, amount: int) -> int:
        before = self.token.balance_of(self.address)
        self.token.transfer_from(self.address, sender, self.address, amount)
        return self.token.balance_of(self.address) - before

    def _push(self, recipient: str, amount: int) -> None:
        self.token.transfer(self.address, recipient, amount)

    def _emit(self, kind: PoolEventKind, **fields: Any) -> None:
        event = PoolEvent(kind=kind, timestamp=self.clock.now(), **fields)
        self.events.append(event)
        pool_metrics.record_event(self.address, kind.value)
        logger.info(
            "Pool event %s",
            kind.value,
            extra={
                "event": f"pool.{kind.value}",
                "user": event.user[:10],
                "amount": event.amount,
                "reward": event.reward,
                "fee": event.fee,
                "unlock_at": event.unlock_at,
            },
        )

    # ==================== Snapshots ====================

    def snapshot(self) -> Dict[str, Any]:
        """Capture pool, token and vault state for rollback."""
        vault_snapshot = getattr(self.vault, "snapshot", None)
        return {
            "ledger": copy.deepcopy(self.ledger),
            "scheduler": copy.deepcopy(self.scheduler),
            "batches": copy.deepcopy(self.queue.batches),
            "fee_bps": self.fees.fee_bps,
            "fee_reserve": self.fees.fee_reserve,
            "schedule_paused": self.schedule_paused,
            "hoard": self.hoard,
            "roles": copy.deepcopy(self.access.roles),
            "event_count": len(self.events),
            "token": self.token.snapshot(),
            "vault": vault_snapshot() if vault_snapshot else None,
        }

    def restore(self, snapshot: Dict[str, Any]) -> None:
        """
        Restore state from a snapshot.

        Components are updated in place because the liquidity manager holds
        references to the queue and fee objects.
        """
        vars(self.ledger).update(vars(copy.deepcopy(snapshot["ledger"])))
        vars(self.scheduler).update(vars(copy.deepcopy(snapshot["scheduler"])))
        self.queue.batches = copy.deepcopy(snapshot["batches"])
        self.fees.fee_bps = snapshot["fee_bps"]
        self.fee_bps = snapshot["fee_bps"]
        self.fees.fee_reserve = snapshot["fee_reserve"]
        self.schedule_paused = snapshot["schedule_paused"]
        self.hoard = snapshot["hoard"]
        self.access.roles = copy.deepcopy(snapshot["roles"])
        del self.events[snapshot["event_count"]:]
        self.token.restore(snapshot["token"])
        if snapshot["vault"] is not None:
            self.vault.restore(snapshot["vault"])
