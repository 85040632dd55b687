"""
Usable-balance tracking and principal unwinding.

The pool's usable balance is what it holds right now minus the fee reserve.
When a payout needs more than that, locked batches are unwound from the
front of the queue until exactly enough principal has been released:

1. Scan batches from the earliest unlock time and stop at the first batch
   that is still locked (every later one is locked too).
2. Withdraw ``min(remaining_target, batch.amount)`` from the vault. The
   vault harvests yield as a side effect; that yield is handed to the
   reward path and never counted toward the target.
3. Resynchronize ``batch.amount`` to the vault's own principal figure.
4. Stop once the cumulative release covers the target.
5. After the scan, drop batches that reached zero.
6. If every unlockable batch was used and the target is still not covered,
   raise InsufficientUnlockableLiquidityError.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from ..clock import ChainClock
from ..contracts.erc20 import ERC20Token
from ..pool_exceptions import (
    BatchLockedError,
    InsufficientUnlockableLiquidityError,
    InvariantViolation,
    ZeroAmountError,
)
from .fee_accrual import FeeAccrual
from .stake_queue import StakeBatch, StakeQueue
from .vault import ExternalVault

logger = logging.getLogger(__name__)


@dataclass
class LiquidityManager:
    """Unwinds locked principal into usable balance."""

    pool_address: str
    token: ERC20Token
    vault: ExternalVault
    queue: StakeQueue
    fees: FeeAccrual
    clock: ChainClock

    # Receives yield harvested while withdrawing principal
    on_yield: Optional[Callable[[int], None]] = None

    # Called with (batch, released) after each batch withdrawal
    on_release: Optional[Callable[[StakeBatch, int], None]] = None

    def usable_balance(self) -> int:
        held = self.token.balance_of(self.pool_address)
        usable = held - self.fees.fee_reserve
        if usable < 0:
            raise InvariantViolation(
                f"Fee reserve {self.fees.fee_reserve} exceeds held balance {held}",
                details={"held": held, "fee_reserve": self.fees.fee_reserve},
            )
        return usable

    def ensure_usable(self, amount: int) -> int:
        """Unwind just enough principal for usable balance to reach amount."""
        usable = self.usable_balance()
        if amount <= usable:
            return 0
        return self.unstake_to_target(amount - usable)

    def unstake_to_target(self, target: int) -> int:
        """
        Release at least target of principal from unlockable batches.

        Args:
            target: Additional usable liquidity required

        Returns:
            Principal released (>= target)

        Raises:
            InsufficientUnlockableLiquidityError: If unlockable principal
                across all batches cannot cover target
        """
        if target <= 0:
            return 0

        now = self.clock.now()
        released = 0
        for _, batch in self.queue.unlockable(now):
            if batch.amount == 0:
                continue
            request = min(target - released, batch.amount)
            released += self._withdraw(batch, request)
            if released >= target:
                break

        self.queue.compact()

        if released < target:
            logger.warning(
                "Not enough unlockable principal for target",
                extra={
                    "event": "liquidity.insufficient_unlockable",
                    "target": target,
                    "released": released,
                    "locked_batches": len(self.queue),
                },
            )
            raise InsufficientUnlockableLiquidityError(
                f"Only {released} of {target} could be unstaked",
                target=target,
                released=released,
            )

        logger.info(
            "Unstaked to target",
            extra={"event": "liquidity.unstaked_to_target", "target": target, "released": released},
        )
        return released

    def unstake_one(self, index: int, amount: int) -> int:
        """Withdraw up to amount from the batch at index."""
        if amount <= 0:
            raise ZeroAmountError("Unstake amount must be positive")
        batch = self.queue[index]
        now = self.clock.now()
        if not batch.is_unlocked(now):
            raise BatchLockedError(
                f"Batch {index} is locked until {batch.unlock_at}",
                details={"index": index, "unlock_at": batch.unlock_at, "now": now},
                recoverable=True,
            )
        released = self._withdraw(batch, min(amount, batch.amount))
        self.queue.compact()
        return released

    def sweep_unlockable(self) -> int:
        """Withdraw everything the vault will release from every unlocked batch."""
        now = self.clock.now()
        released = 0
        for _, batch in self.queue.unlockable(now):
            if batch.amount:
                released += self._withdraw(batch, batch.amount)
        self.queue.compact()
        logger.info(
            "Unlockable batches swept",
            extra={"event": "liquidity.swept", "released": released, "remaining_batches": len(self.queue)},
        )
        return released

    def _withdraw(self, batch: StakeBatch, amount: int) -> int:
        principal_before = batch.amount
        balance_before = self.token.balance_of(self.pool_address)

        self.vault.withdraw_and_harvest(self.pool_address, batch.vault_handle, amount)

        received = self.token.balance_of(self.pool_address) - balance_before
        batch.amount = self.vault.current_principal(batch.vault_handle)
        released = principal_before - batch.amount
        harvested = received - released
        if released < 0 or harvested < 0:
            raise InvariantViolation(
                "Vault withdrawal does not reconcile with balances",
                details={
                    "handle": batch.vault_handle,
                    "received": received,
                    "released": released,
                    "principal_before": principal_before,
                    "principal_after": batch.amount,
                },
            )

        if harvested and self.on_yield is not None:
            self.on_yield(harvested)
        if self.on_release is not None:
            self.on_release(batch, released)
        return released
