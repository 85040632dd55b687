"""
Block-timestamp source for the pool and the vault.

Both collaborators read time through a shared ChainClock so a simulation can
move time forward the way a test chain sets the next block timestamp.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field

from .pool_exceptions import ValidationError

logger = logging.getLogger(__name__)

ONE_DAY_SEC = 86_400


def day_index(timestamp: int) -> int:
    """Calendar day number of a unix timestamp."""
    return timestamp // ONE_DAY_SEC


@dataclass
class ChainClock:
    """
    Monotonic integer clock.

    With ``frozen=False`` the clock follows wall time but never goes backwards;
    a frozen clock only moves through set() and advance().
    """

    timestamp: int = field(default_factory=lambda: int(time.time()))
    frozen: bool = True

    def now(self) -> int:
        if not self.frozen:
            self.timestamp = max(self.timestamp, int(time.time()))
        return self.timestamp

    def today(self) -> int:
        return day_index(self.now())

    def set(self, timestamp: int) -> int:
        """Move the clock to timestamp, which may not be in the past."""
        timestamp = int(timestamp)
        if timestamp < self.timestamp:
            raise ValidationError(
                f"Clock cannot move backwards ({timestamp} < {self.timestamp})"
            )
        self.timestamp = timestamp
        logger.debug(
            "Clock moved",
            extra={"event": "clock.set", "timestamp": timestamp},
        )
        return timestamp

    def advance(self, seconds: int) -> int:
        return self.set(self.timestamp + int(seconds))
