"""
Staking-pool exception hierarchy for lockstake.

Provides typed exceptions for pool operations so callers can tell an
expected rejection (bad input, not enough unlocked principal) apart from a
modelling bug (a negative reward).
"""

from __future__ import annotations
from typing import Optional, Any, Dict


class PoolError(Exception):
    """Base exception for all staking-pool errors.

    Attributes:
        message: Human-readable error description
        details: Additional context about the error
        recoverable: Whether resubmitting the same request later may succeed
    """

    recoverable: bool = False

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        recoverable: Optional[bool] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}
        if recoverable is not None:
            self.recoverable = recoverable


# ==================== Validation Errors ====================


class ValidationError(PoolError):
    """Raised when a request fails input validation."""
    pass


class ZeroAmountError(ValidationError):
    """Raised when an amount that must be positive is zero or negative."""
    pass


class DepositTooSmallError(ValidationError):
    """Raised when a deposit would mint less than one share unit.

    Such a deposit could never earn a reward because of rounding.
    """
    pass


class FeeTooHighError(ValidationError):
    """Raised when a fee rate exceeds the configured maximum."""
    pass


# ==================== State Errors ====================


class StateError(PoolError):
    """Raised when the pool's current state cannot service a request."""
    pass


class NoDepositError(StateError):
    """Raised when withdrawing or claiming without any principal."""
    pass


class InsufficientRewardLiquidityError(StateError):
    """Raised when a claim exceeds the usable balance.

    Claims never unstake locked principal, so the caller must retry later.
    """
    recoverable = True


class InsufficientUnlockableLiquidityError(StateError):
    """Raised when all unlockable batches together cannot cover a target."""
    recoverable = False

    def __init__(
        self,
        message: str,
        target: int = 0,
        released: int = 0,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, **kwargs)
        self.target = target
        self.released = released


class BatchIndexError(StateError):
    """Raised when a batch index is out of range."""
    pass


class BatchLockedError(StateError):
    """Raised when unstaking from a batch whose lock has not expired."""
    pass


class InsufficientBalanceError(StateError):
    """Raised when a token holder lacks the balance or allowance for a transfer."""
    pass


class ReentrancyError(StateError):
    """Raised when a guarded pool operation is re-entered."""
    pass


# ==================== Authorization Errors ====================


class AuthorizationError(PoolError):
    """Raised when the caller lacks the capability for a restricted operation."""
    pass


# ==================== Invariant Violations ====================


class InvariantViolation(PoolError):
    """Raised when accounting reaches an impossible state.

    Signals a modelling bug. Nothing in lockstake catches it; the enclosing
    operation is rolled back and the error surfaces to the caller.
    """
    recoverable = False


class ConfigurationError(PoolError):
    """Raised when required configuration is missing or invalid."""
    pass
