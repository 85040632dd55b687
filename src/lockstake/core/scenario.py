"""
Timestamped deposit / withdraw / claim scenarios.

A scenario is a list of Actions, each a timestamp plus the user operations
executed at that time. Running one follows the usual staking test flow:

1. Roll the clock to the action's timestamp and execute its operations.
2. If any of them was a deposit, roll one more day and commit the
   scheduled deposits.
3. After the last action, roll to the end of the emission program.

Rewards realised through withdraw and claim are summed per user.

Scenarios can also be written in YAML:

    program:
      duration: 1728000        # seconds
      total_rewards: 172800    # whole tokens
      fee_bps: 400
      lock_tier: two_weeks
    users:
      alice: 1000              # initial balance, whole tokens
    actions:
      - offset: -86500         # seconds relative to program start
        do:
          - {user: alice, action: deposit, amount: 100}
      - fraction: 0.5          # or a fraction of the program window
        do:
          - {user: alice, action: claim}
    expected:                  # optional reward shares, percent of the pool's
      alice: 100               # net rewards
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import ValidationError as PydanticValidationError

from .clock import ONE_DAY_SEC
from .config import PoolConfig
from .defi.fee_accrual import FEE_DENOMINATOR
from .input_validation_schemas import ScenarioActionInput, ScenarioInput, describe_errors
from .pool_exceptions import ConfigurationError
from .simulation import PROGRAM_DURATION, TOTAL_REWARDS, Simulation, build_simulation, ether

logger = logging.getLogger(__name__)

ACTIONS = ("deposit", "withdraw", "claim")

# Program keys that shape the emission rather than the pool
PROGRAM_KEYS = ("duration", "total_rewards", "start")

# Tolerance denominators: 50 -> within 2%, 100 -> within 1%
ROUNDED_PRECISION = 50
ROUGH_PRECISION = 100


@dataclass
class ActionInfo:
    """One user operation."""

    user: str
    action: str
    amount: int = 0

    def __post_init__(self) -> None:
        if self.action not in ACTIONS:
            raise ConfigurationError(
                f"Unknown action '{self.action}' (expected one of: {', '.join(ACTIONS)})"
            )


@dataclass
class Action:
    """Operations executed at one timestamp."""

    timestamp: int
    actions: List[ActionInfo] = field(default_factory=list)


@dataclass
class ScenarioFile:
    """A scenario loaded from YAML, ready to run."""

    name: str
    simulation: Simulation
    actions: List[Action]
    expected: Dict[str, Any] = field(default_factory=dict)


def within_tolerance(value: int, target: int, precision: int = ROUNDED_PRECISION) -> bool:
    """
    True if value is within 1/precision of target.

    A zero target accepts any value below precision base units.
    """
    if target == 0:
        return value < precision
    lower = target // precision * (precision - 1)
    upper = target // precision * (precision + 1)
    return lower < value < upper


def run_scenario(sim: Simulation, actions: List[Action]) -> Dict[str, int]:
    """
    Execute actions in order and return the rewards each user realised.

    Raises whatever the pool raises; the failing operation is rolled back
    but earlier ones are kept.
    """
    rewards: Dict[str, int] = {}

    for batch in actions:
        sim.roll_to(batch.timestamp)

        for info in batch.actions:
            if info.action == "deposit":
                sim.deposit(info.user, info.amount)
            elif info.action == "claim":
                reward = sim.claim(info.user)
                rewards[info.user] = rewards.get(info.user, 0) + reward
            elif info.action == "withdraw":
                _, reward = sim.withdraw(info.user)
                rewards[info.user] = rewards.get(info.user, 0) + reward

        if any(info.action == "deposit" for info in batch.actions):
            sim.roll_to(batch.timestamp + ONE_DAY_SEC)
            sim.commit()

        logger.debug(
            "Scenario step done",
            extra={"event": "scenario.step", "timestamp": batch.timestamp, "actions": len(batch.actions)},
        )

    if sim.clock.now() < sim.end:
        sim.roll_to(sim.end)
    return rewards


def settle_all(sim: Simulation, rewards: Optional[Dict[str, int]] = None) -> Dict[str, int]:
    """
    Roll past every lock and withdraw every remaining staker.

    Returns:
        rewards (updated in place when given) including the final payouts
    """
    rewards = {} if rewards is None else rewards
    sim.roll_past_locks()
    sim.commit()
    sim.roll_past_locks()
    for user in sim.stakers():
        _, reward = sim.withdraw(user)
        rewards[user] = rewards.get(user, 0) + reward
    return rewards


def expected_reward(sim: Simulation, share_percent: float, total_rewards: int) -> int:
    """Reward worth share_percent of total_rewards after the pool fee."""
    fee_bps = sim.pool.fees.fee_bps
    gross = int(Decimal(total_rewards) * Decimal(str(share_percent)) / 100)
    return gross * (FEE_DENOMINATOR - fee_bps) // FEE_DENOMINATOR


# ==================== YAML Loading ====================


def _timestamp(entry: ScenarioActionInput, start: int, end: int) -> int:
    if entry.timestamp is not None:
        return entry.timestamp
    if entry.offset is not None:
        return start + entry.offset
    return start + int((end - start) * entry.fraction)


def load_scenario(path: str | Path, config: Optional[PoolConfig] = None) -> ScenarioFile:
    """
    Build a simulation and its actions from a YAML scenario file.

    Program settings in the file override the matching fields of config.

    Raises:
        ConfigurationError: If the file is missing or malformed
    """
    path = Path(path)
    if not path.exists():
        raise ConfigurationError(f"Scenario file not found: {path}", details={"path": str(path)})
    with path.open("r", encoding="utf-8") as handle:
        try:
            data = yaml.safe_load(handle) or {}
        except yaml.YAMLError as exc:
            raise ConfigurationError(f"Invalid YAML in {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigurationError(f"Scenario file {path} must contain a mapping")

    try:
        scenario = ScenarioInput.model_validate({k: v for k, v in data.items() if v is not None})
    except PydanticValidationError as exc:
        logger.warning(
            "PydanticValidationError in load_scenario",
            extra={
                "event": "scenario.invalid",
                "error_type": "PydanticValidationError",
                "error": str(exc),
                "path": str(path),
            },
        )
        raise ConfigurationError(
            f"Invalid scenario {path.name}: {describe_errors(exc)}",
            details={"path": str(path), "errors": exc.error_count()},
        ) from None

    program = scenario.program
    settings = program.model_dump(exclude_unset=True, exclude=set(PROGRAM_KEYS))
    config = config or PoolConfig()
    if settings:
        config = config.overlay(settings)

    kwargs: Dict[str, Any] = {
        "duration": program.duration or PROGRAM_DURATION,
        "total_rewards": ether(program.total_rewards) if program.total_rewards else TOTAL_REWARDS,
    }
    if program.start is not None:
        kwargs["start"] = program.start
    users = {name: ether(balance) for name, balance in scenario.users.items()}
    sim = build_simulation(config, users=users, **kwargs)

    actions = [
        Action(
            timestamp=_timestamp(entry, sim.start, sim.end),
            actions=[
                ActionInfo(user=op.user, action=op.action, amount=ether(op.amount))
                for op in entry.do
            ],
        )
        for entry in scenario.actions
    ]

    unknown = {info.user for a in actions for info in a.actions} - set(sim.users)
    if unknown:
        raise ConfigurationError(
            f"Scenario references undeclared users: {', '.join(sorted(unknown))}"
        )

    return ScenarioFile(
        name=scenario.name or path.stem,
        simulation=sim,
        actions=actions,
        expected=dict(scenario.expected),
    )
