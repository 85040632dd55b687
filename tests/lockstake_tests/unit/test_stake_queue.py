"""Tests for the locked batch queue."""
import pytest

from lockstake.core.defi.stake_queue import StakeBatch, StakeQueue
from lockstake.core.pool_exceptions import BatchIndexError, InvariantViolation


def _queue(*specs):
    queue = StakeQueue()
    for handle, (amount, unlock_at) in enumerate(specs, start=1):
        queue.append(StakeBatch(amount=amount, unlock_at=unlock_at, vault_handle=handle))
    return queue


class TestStakeQueue:
    def test_append_keeps_unlock_order(self):
        queue = _queue((10, 100), (20, 100), (30, 200))

        assert queue.is_sorted()
        assert queue.total() == 60
        assert len(queue) == 3

    def test_out_of_order_append_rejected(self):
        queue = _queue((10, 200))

        with pytest.raises(InvariantViolation):
            queue.append(StakeBatch(amount=5, unlock_at=100, vault_handle=9))

    def test_unlockable_stops_at_first_locked_batch(self):
        queue = _queue((10, 100), (20, 150), (30, 300))

        unlockable = [index for index, _ in queue.unlockable(200)]

        assert unlockable == [0, 1]
        assert queue.unlockable_total(200) == 30
        assert queue.unlockable_total(99) == 0

    def test_compact_preserves_order_of_remaining(self):
        queue = _queue((10, 100), (0, 110), (30, 120), (0, 130), (50, 140))

        removed = queue.compact()

        assert removed == 2
        assert [(b.amount, b.vault_handle) for b in queue] == [(10, 1), (30, 3), (50, 5)]
        assert queue.is_sorted()

    def test_compact_without_empty_batches_is_noop(self):
        queue = _queue((10, 100), (20, 200))
        before = list(queue.batches)

        assert queue.compact() == 0
        assert queue.batches == before

    def test_index_out_of_range(self):
        queue = _queue((10, 100))

        assert queue[0].amount == 10
        with pytest.raises(BatchIndexError):
            queue[1]
        with pytest.raises(BatchIndexError):
            queue[-1]
