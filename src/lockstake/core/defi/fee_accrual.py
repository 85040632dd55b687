"""
Operator fee skimmed from harvested yield.

Every harvest is split into an operator fee, rounded down, and the net
amount fed to the reward accumulator. The fee reserve is earmarked: it is
excluded from the usable balance and only the operator surface withdraws it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from ..pool_exceptions import FeeTooHighError, InvariantViolation, ValidationError

logger = logging.getLogger(__name__)

FEE_DENOMINATOR = 10_000
MAX_FEE_BPS = 1_000  # 10%


def calculate_fee_amount(amount: int, fee_bps: int) -> int:
    """Fee on amount at fee_bps basis points, rounded down."""
    return amount * fee_bps // FEE_DENOMINATOR


@dataclass
class FeeAccrual:
    """Fee rate plus the operator-only reserve it fills."""

    fee_bps: int = 0
    fee_reserve: int = 0
    max_fee_bps: int = MAX_FEE_BPS

    def __post_init__(self) -> None:
        self._validate_rate(self.fee_bps)

    def skim(self, earned: int) -> tuple[int, int]:
        """
        Split a harvest.

        Args:
            earned: Tokens newly received from the vault

        Returns:
            (net, fee) where fee = floor(earned * fee_bps / 10000)
        """
        if earned < 0:
            raise InvariantViolation(
                f"Harvest produced a negative amount ({earned})",
                details={"earned": earned},
            )
        fee = calculate_fee_amount(earned, self.fee_bps)
        self.fee_reserve += fee
        return earned - fee, fee

    def set_rate(self, fee_bps: int) -> None:
        self._validate_rate(fee_bps)
        previous = self.fee_bps
        self.fee_bps = fee_bps
        logger.info(
            "Fee rate updated",
            extra={"event": "fee.rate_updated", "previous": previous, "fee_bps": fee_bps},
        )

    def drain(self) -> int:
        """Empty the reserve and return what it held."""
        amount = self.fee_reserve
        self.fee_reserve = 0
        return amount

    def _validate_rate(self, fee_bps: int) -> None:
        if not isinstance(fee_bps, int) or isinstance(fee_bps, bool):
            raise ValidationError(
                f"Fee rate must be an integer number of basis points, got {fee_bps!r}",
                details={"fee_bps": repr(fee_bps)},
            )
        if fee_bps < 0:
            raise ValidationError(f"Fee rate cannot be negative ({fee_bps})")
        if fee_bps > self.max_fee_bps:
            raise FeeTooHighError(
                f"Fee rate {fee_bps} bps exceeds maximum {self.max_fee_bps} bps",
                details={"fee_bps": fee_bps, "max_fee_bps": self.max_fee_bps},
            )
