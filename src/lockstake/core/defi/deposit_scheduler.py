"""
Daily deposit buckets.

Deposits wait in a bucket keyed by calendar day. A commit sweeps every
bucket strictly before today into one amount to be locked in the vault;
today's bucket is never included, so a deposit is not placed at risk (nor
credited with vault yield) in the same day it arrives.

Each depositor's share of every bucket is tracked as well, so principal
withdrawn before its commit leaves the buckets and is never staked.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from ..clock import day_index
from ..pool_exceptions import InvariantViolation, ZeroAmountError

logger = logging.getLogger(__name__)


@dataclass
class DepositScheduler:
    """Pending (uncommitted) deposits by day index, in total and per user."""

    buckets: dict[int, int] = field(default_factory=dict)
    user_buckets: dict[str, dict[int, int]] = field(default_factory=dict)

    def schedule(self, amount: int, timestamp: int, user: str = "") -> int:
        """Add amount to the bucket of timestamp's day and return that day."""
        if amount <= 0:
            raise ZeroAmountError("Scheduled amount must be positive")
        day = day_index(timestamp)
        self.buckets[day] = self.buckets.get(day, 0) + amount
        if user:
            days = self.user_buckets.setdefault(user.lower(), {})
            days[day] = days.get(day, 0) + amount
        return day

    def total_pending(self) -> int:
        return sum(self.buckets.values())

    def pending_of(self, user: str) -> int:
        return sum(self.user_buckets.get(user.lower(), {}).values())

    def due(self, timestamp: int) -> int:
        """Amount a commit at timestamp would sweep."""
        today = day_index(timestamp)
        return sum(amount for day, amount in self.buckets.items() if day < today)

    def cancel(self, user: str, amount: int) -> int:
        """
        Remove up to amount of user's uncommitted deposits, newest day first.

        Returns:
            Amount removed from the buckets
        """
        key = user.lower()
        days = self.user_buckets.get(key)
        if not days or amount <= 0:
            return 0

        remaining = amount
        for day in sorted(days, reverse=True):
            take = min(remaining, days[day])
            days[day] -= take
            self.buckets[day] -= take
            if self.buckets[day] < 0:
                raise InvariantViolation(
                    f"Bucket for day {day} went negative",
                    details={"day": day, "user": key},
                )
            if days[day] == 0:
                del days[day]
            if self.buckets[day] == 0:
                del self.buckets[day]
            remaining -= take
            if remaining == 0:
                break

        if not days:
            del self.user_buckets[key]
        cancelled = amount - remaining
        logger.debug(
            "Uncommitted deposits cancelled",
            extra={"event": "scheduler.cancelled", "user": key[:10], "amount": cancelled},
        )
        return cancelled

    def take_due(self, timestamp: int) -> int:
        """
        Remove every bucket older than timestamp's day.

        Returns:
            The summed amount of the removed buckets (0 when called again
            on the same day)
        """
        today = day_index(timestamp)
        due_days = sorted(day for day in self.buckets if day < today)
        amount = sum(self.buckets.pop(day) for day in due_days)
        for user in list(self.user_buckets):
            days = self.user_buckets[user]
            for day in due_days:
                days.pop(day, None)
            if not days:
                del self.user_buckets[user]
        if due_days:
            logger.debug(
                "Pending buckets swept",
                extra={
                    "event": "scheduler.swept",
                    "days": due_days,
                    "amount": amount,
                },
            )
        return amount
