"""
Lockstake Pool Configuration

Values come from environment variables, optionally overlaid by a YAML file:

    LOCKSTAKE_FEE_BPS          operator fee in basis points (0..1000)
    LOCKSTAKE_LOCK_TIER        two_weeks | one_month | three_months | six_months | twelve_months
    LOCKSTAKE_ADMIN            admin / operator address
    LOCKSTAKE_HOARD            fee beneficiary (defaults to the admin)
    LOCKSTAKE_VESTING_PERIOD   simulated vault vesting after unlock, seconds
    LOCKSTAKE_LOG_LEVEL        DEBUG | INFO | WARNING | ERROR | CRITICAL
    LOCKSTAKE_LOG_FILE         optional JSON log file
    LOCKSTAKE_ENVIRONMENT      environment tag attached to every log record
"""

from __future__ import annotations

import logging
import os
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml
from pydantic import ValidationError as PydanticValidationError

from .defi.fee_accrual import MAX_FEE_BPS
from .defi.vault import LockTier
from .input_validation_schemas import PoolConfigInput, describe_errors
from .pool_exceptions import ConfigurationError

logger = logging.getLogger(__name__)

ENV_PREFIX = "LOCKSTAKE_"
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

DEFAULT_ADMIN = "0x" + "a" * 40


def _get_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(ENV_PREFIX + name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(
            f"{ENV_PREFIX}{name} must be an integer, got '{raw}'",
            details={"env_var": ENV_PREFIX + name, "value": raw},
        ) from None


@dataclass
class PoolConfig:
    """Effective pool settings."""

    fee_bps: int = 0
    lock_tier: str = "two_weeks"
    admin: str = DEFAULT_ADMIN
    hoard: str = ""
    vesting_period: int = 0
    log_level: str = "INFO"
    log_file: Optional[str] = None
    environment: str = "development"

    def __post_init__(self) -> None:
        self.validate()

    @property
    def tier(self) -> LockTier:
        return LockTier.from_name(self.lock_tier)

    @property
    def fee_recipient(self) -> str:
        return self.hoard or self.admin

    def validate(self) -> None:
        """
        Check every field.

        Raises:
            ConfigurationError: On the first invalid value
        """
        for name in ("fee_bps", "vesting_period"):
            value = getattr(self, name)
            if not isinstance(value, int) or isinstance(value, bool):
                raise ConfigurationError(
                    f"{name} must be an integer, got {value!r}",
                    details={name: repr(value)},
                )
        for name in ("lock_tier", "admin", "hoard", "log_level", "environment"):
            if not isinstance(getattr(self, name), str):
                raise ConfigurationError(
                    f"{name} must be a string, got {getattr(self, name)!r}",
                    details={name: repr(getattr(self, name))},
                )
        if not 0 <= self.fee_bps <= MAX_FEE_BPS:
            raise ConfigurationError(
                f"fee_bps must be between 0 and {MAX_FEE_BPS}, got {self.fee_bps}",
                details={"fee_bps": self.fee_bps},
            )
        try:
            LockTier.from_name(self.lock_tier)
        except ValueError as exc:
            raise ConfigurationError(str(exc), details={"lock_tier": self.lock_tier}) from None
        if not self.admin:
            raise ConfigurationError("admin address is required")
        if self.vesting_period < 0:
            raise ConfigurationError(
                f"vesting_period cannot be negative, got {self.vesting_period}"
            )
        self.log_level = self.log_level.upper()
        if self.log_level not in LOG_LEVELS:
            raise ConfigurationError(
                f"log_level must be one of {', '.join(LOG_LEVELS)}, got '{self.log_level}'"
            )

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "PoolConfig":
        """Build a config from LOCKSTAKE_* environment variables."""
        env = os.environ if env is None else env
        return cls(
            fee_bps=_get_int(env, "FEE_BPS", 0),
            lock_tier=env.get(ENV_PREFIX + "LOCK_TIER", "two_weeks").strip() or "two_weeks",
            admin=env.get(ENV_PREFIX + "ADMIN", DEFAULT_ADMIN).strip().lower() or DEFAULT_ADMIN,
            hoard=env.get(ENV_PREFIX + "HOARD", "").strip().lower(),
            vesting_period=_get_int(env, "VESTING_PERIOD", 0),
            log_level=env.get(ENV_PREFIX + "LOG_LEVEL", "INFO").strip() or "INFO",
            log_file=env.get(ENV_PREFIX + "LOG_FILE", "").strip() or None,
            environment=env.get(ENV_PREFIX + "ENVIRONMENT", "development").strip() or "development",
        )

    def overlay(self, values: Mapping[str, Any]) -> "PoolConfig":
        """
        Return a copy with the keys given in values replaced.

        Raises:
            ConfigurationError: On unknown keys or values of the wrong type
        """
        try:
            checked = PoolConfigInput.model_validate(dict(values))
        except PydanticValidationError as exc:
            logger.warning(
                "PydanticValidationError in config overlay",
                extra={
                    "event": "config.invalid",
                    "error_type": "PydanticValidationError",
                    "error": str(exc),
                },
            )
            raise ConfigurationError(
                f"Invalid configuration: {describe_errors(exc)}",
                details={"errors": exc.error_count()},
            ) from None
        merged = asdict(self)
        merged.update(checked.model_dump(exclude_unset=True))
        return PoolConfig(**merged)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _read_yaml_config(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise ConfigurationError(f"Config file not found: {path}", details={"path": str(path)})
    with path.open("r", encoding="utf-8") as handle:
        try:
            data = yaml.safe_load(handle) or {}
        except yaml.YAMLError as exc:
            raise ConfigurationError(f"Invalid YAML in {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file {path} must contain a mapping")
    # Allow the settings to live under a top-level "pool" key
    return data.get("pool", data) if isinstance(data.get("pool"), dict) else data


def load_config(
    path: Optional[str | Path] = None,
    env: Optional[Mapping[str, str]] = None,
) -> PoolConfig:
    """
    Environment settings, overlaid by the YAML file at path when given.

    Raises:
        ConfigurationError: If any value is invalid or the file is unreadable
    """
    config = PoolConfig.from_env(env)
    if path is not None:
        config = config.overlay(_read_yaml_config(Path(path)))
        logger.debug(
            "Configuration overlaid from file",
            extra={"event": "config.loaded", "path": str(path)},
        )
    return config


__all__ = ["PoolConfig", "load_config", "ENV_PREFIX", "LOG_LEVELS"]
