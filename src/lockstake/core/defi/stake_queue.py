"""
Queue of locked principal batches.

Batches are appended by daily commits in non-decreasing time order and all
share one lock duration, so the queue is always sorted by ``unlock_at``:
scanning from the front, the first still-locked batch means every later
batch is locked too.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterator

from ..pool_exceptions import BatchIndexError, InvariantViolation

logger = logging.getLogger(__name__)


@dataclass
class StakeBatch:
    """One cohort of committed principal sharing one unlock time."""

    amount: int
    unlock_at: int
    vault_handle: int

    def is_unlocked(self, now: int) -> bool:
        return now >= self.unlock_at


@dataclass
class StakeQueue:
    """Insertion-ordered (and therefore unlock-ordered) batches."""

    batches: list[StakeBatch] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.batches)

    def __iter__(self) -> Iterator[StakeBatch]:
        return iter(self.batches)

    def __getitem__(self, index: int) -> StakeBatch:
        if index < 0 or index >= len(self.batches):
            raise BatchIndexError(
                f"Batch index {index} out of range (0..{len(self.batches) - 1})",
                details={"index": index, "batches": len(self.batches)},
            )
        return self.batches[index]

    def append(self, batch: StakeBatch) -> None:
        if self.batches and batch.unlock_at < self.batches[-1].unlock_at:
            raise InvariantViolation(
                "Stake batches must be appended in unlock order",
                details={
                    "unlock_at": batch.unlock_at,
                    "last_unlock_at": self.batches[-1].unlock_at,
                },
            )
        self.batches.append(batch)

    def total(self) -> int:
        return sum(batch.amount for batch in self.batches)

    def unlockable(self, now: int) -> Iterator[tuple[int, StakeBatch]]:
        """Yield (index, batch) from the front until the first locked batch."""
        for index, batch in enumerate(self.batches):
            if not batch.is_unlocked(now):
                break
            yield index, batch

    def unlockable_total(self, now: int) -> int:
        return sum(batch.amount for _, batch in self.unlockable(now))

    def compact(self) -> int:
        """
        Drop batches whose amount is zero, keeping the others in order.

        Returns:
            Number of batches removed (0 is a no-op)
        """
        kept = [batch for batch in self.batches if batch.amount > 0]
        removed = len(self.batches) - len(kept)
        if removed:
            self.batches = kept
            logger.debug(
                "Empty stake batches removed",
                extra={"event": "queue.compacted", "removed": removed, "remaining": len(kept)},
            )
        return removed

    def is_sorted(self) -> bool:
        return all(
            earlier.unlock_at <= later.unlock_at
            for earlier, later in zip(self.batches, self.batches[1:])
        )
