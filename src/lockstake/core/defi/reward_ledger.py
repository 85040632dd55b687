"""
Share-based reward ledger.

Harvested yield is folded into a per-share accumulator (``acc_rewards_per_share``,
fixed point with SCALE = 1e18) so each account's outstanding reward is
computed in O(1):

    pending = stake_principal * acc_rewards_per_share // SCALE - reward_debt

``reward_debt`` is a signed integer marker of rewards that were already
accounted for when principal entered (or was last claimed against).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict

from ..pool_exceptions import InvariantViolation, NoDepositError, ZeroAmountError

logger = logging.getLogger(__name__)

SCALE = 10**18


@dataclass
class Account:
    """One depositor's position."""

    stake_principal: int = 0
    reward_debt: int = 0


@dataclass
class RewardLedger:
    """Accounts, stake total and the reward accumulator."""

    accounts: dict[str, Account] = field(default_factory=dict)
    total_staked: int = 0
    acc_rewards_per_share: int = 0
    total_rewards_earned: int = 0

    # ==================== Views ====================

    def account(self, user: str) -> Account:
        return self.accounts.get(user.lower(), Account())

    def stake_of(self, user: str) -> int:
        return self.account(user).stake_principal

    def pending_reward(self, user: str) -> int:
        """
        Outstanding reward of user at the current accumulator.

        Raises:
            InvariantViolation: If the computed reward is negative
        """
        account = self.account(user)
        reward = account.stake_principal * self.acc_rewards_per_share // SCALE - account.reward_debt
        if reward < 0:
            raise InvariantViolation(
                f"Negative pending reward for {user[:10]}",
                details={
                    "user": user,
                    "stake_principal": account.stake_principal,
                    "reward_debt": account.reward_debt,
                    "acc_rewards_per_share": self.acc_rewards_per_share,
                },
            )
        return reward

    # ==================== Accumulator ====================

    def distribute(self, net: int, gross: int | None = None) -> int:
        """
        Fold net yield into the accumulator.

        Args:
            net: Yield left after the operator fee
            gross: Yield before the fee, recorded in total_rewards_earned

        Returns:
            Accumulator increment (0 when nothing is staked; the yield then
            stays in the pool unattributed)
        """
        if net < 0:
            raise InvariantViolation(f"Cannot distribute negative yield ({net})")
        if self.total_staked == 0:
            if net:
                logger.warning(
                    "Yield harvested with no stakers left unattributed",
                    extra={"event": "ledger.unattributed_yield", "amount": net},
                )
            return 0

        increment = net * SCALE // self.total_staked
        self.acc_rewards_per_share += increment
        self.total_rewards_earned += net if gross is None else gross
        return increment

    # ==================== Principal ====================

    def add_stake(self, user: str, amount: int) -> Account:
        """Credit principal, pre-paying the rewards it did not earn."""
        if amount <= 0:
            raise ZeroAmountError("Deposit amount must be positive")
        key = user.lower()
        account = self.accounts.setdefault(key, Account())
        account.stake_principal += amount
        account.reward_debt += amount * self.acc_rewards_per_share // SCALE
        self.total_staked += amount
        return account

    def remove_stake(self, user: str) -> tuple[int, int]:
        """
        Zero user's principal.

        Returns:
            (principal, reward) owed to the user
        """
        key = user.lower()
        account = self.accounts.get(key)
        if account is None or account.stake_principal == 0:
            raise NoDepositError(f"No deposit for {user[:10]}", details={"user": user})

        reward = self.pending_reward(key)
        principal = account.stake_principal
        account.stake_principal = 0
        account.reward_debt = 0
        self.total_staked -= principal
        if self.total_staked < 0:
            raise InvariantViolation("Total staked went negative", details={"user": user})
        return principal, reward

    def checkpoint(self, user: str) -> int:
        """Mark user's pending reward as paid and return it."""
        key = user.lower()
        account = self.accounts.get(key)
        if account is None or account.stake_principal == 0:
            raise NoDepositError(f"No deposit for {user[:10]}", details={"user": user})
        reward = self.pending_reward(key)
        account.reward_debt = account.stake_principal * self.acc_rewards_per_share // SCALE
        return reward

    # ==================== Invariants ====================

    def check_invariants(self) -> None:
        """Raise InvariantViolation if principal totals or rewards are inconsistent."""
        principal_sum = sum(a.stake_principal for a in self.accounts.values())
        if principal_sum != self.total_staked:
            raise InvariantViolation(
                f"Sum of principal {principal_sum} != total staked {self.total_staked}"
            )
        for user in self.accounts:
            self.pending_reward(user)

    def to_dict(self) -> Dict:
        return {
            "total_staked": self.total_staked,
            "acc_rewards_per_share": self.acc_rewards_per_share,
            "total_rewards_earned": self.total_rewards_earned,
            "accounts": len(self.accounts),
        }
