from __future__ import annotations

from typing import Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, confloat, conint, constr, model_validator

from .defi.fee_accrual import MAX_FEE_BPS

# Whole-token amounts: YAML ints or floats, never strings or booleans
TokenAmount = Union[conint(strict=True, ge=0), confloat(strict=True, ge=0)]
PositiveTokenAmount = Union[conint(strict=True, gt=0), confloat(strict=True, gt=0)]
Percent = Union[conint(strict=True, ge=0, le=100), confloat(strict=True, ge=0, le=100)]
Fraction = Union[conint(strict=True, ge=0), confloat(strict=True, ge=0)]


class PoolConfigInput(BaseModel):
    model_config = ConfigDict(extra="forbid")

    fee_bps: conint(strict=True, ge=0, le=MAX_FEE_BPS) = None
    lock_tier: constr(strict=True, min_length=1) = None
    admin: constr(strict=True, min_length=1) = None
    hoard: constr(strict=True) = None
    vesting_period: conint(strict=True, ge=0) = None
    log_level: constr(strict=True, min_length=1) = None
    log_file: Optional[constr(strict=True)] = None
    environment: constr(strict=True) = None


class ScenarioProgramInput(PoolConfigInput):
    duration: conint(strict=True, gt=0) = None
    total_rewards: PositiveTokenAmount = None
    start: conint(strict=True, ge=0) = None


class ScenarioOpInput(BaseModel):
    model_config = ConfigDict(extra="forbid")

    user: constr(strict=True, min_length=1)
    action: Literal["deposit", "withdraw", "claim"]
    amount: TokenAmount = 0


class ScenarioActionInput(BaseModel):
    model_config = ConfigDict(extra="forbid")

    timestamp: Optional[conint(strict=True)] = None
    offset: Optional[conint(strict=True)] = None
    fraction: Optional[Fraction] = None
    do: list[ScenarioOpInput] = Field(default_factory=list)

    @model_validator(mode="after")
    def one_time_key(self) -> "ScenarioActionInput":
        given = [k for k in ("timestamp", "offset", "fraction") if getattr(self, k) is not None]
        if len(given) != 1:
            raise ValueError("needs exactly one of: timestamp, offset, fraction")
        return self


class ScenarioInput(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: Optional[constr(strict=True)] = None
    program: ScenarioProgramInput = Field(default_factory=ScenarioProgramInput)
    users: dict[str, TokenAmount] = Field(default_factory=dict)
    actions: list[ScenarioActionInput] = Field(default_factory=list)
    expected: dict[str, Percent] = Field(default_factory=dict)


def describe_errors(exc: ValidationError) -> str:
    """One line per failing field, e.g. ``fee_bps: Input should be a valid integer``."""
    return "; ".join(
        f"{'.'.join(str(part) for part in error['loc']) or 'input'}: {error['msg']}"
        for error in exc.errors()
    )
