#!/usr/bin/env python3
"""
Lockstake - pool simulation CLI
Runs staking scenarios against an in-process pool with rich terminal output
"""

from __future__ import annotations

import json
import logging
import sys
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, Optional

import click
from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from lockstake.core.config import LOG_LEVELS, PoolConfig, load_config
from lockstake.core.logging_config import setup_logging
from lockstake.core.pool_exceptions import PoolError
from lockstake.core.scenario import (
    ROUNDED_PRECISION,
    ScenarioFile,
    expected_reward,
    load_scenario,
    run_scenario,
    settle_all,
    within_tolerance,
)
from lockstake.core.simulation import WEI

# Configure module logger
logger = logging.getLogger(__name__)

console = Console()


def _cli_fail(exc: Exception, exit_code: int = 1) -> None:
    """Centralized CLI error handler for consistent messaging."""
    logger.error("CLI error: %s", exc, exc_info=True)
    console.print(f"[bold red]Error:[/] {exc}")
    sys.exit(exit_code)


def _tokens(amount: int) -> str:
    return f"{Decimal(amount) / WEI:,.4f}"


# ============================================================================
# CLI Group
# ============================================================================

@click.group()
@click.option(
    '--config',
    'config_path',
    type=click.Path(dir_okay=False, path_type=Path),
    envvar='LOCKSTAKE_CONFIG',
    help='YAML file overlaid on LOCKSTAKE_* environment settings',
)
@click.option(
    '--log-level',
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    default=None,
    help='Override the configured log level',
)
@click.option('--json-output', is_flag=True, help='Output raw JSON')
@click.pass_context
def cli(ctx: click.Context, config_path: Optional[Path], log_level: Optional[str], json_output: bool):
    """
    Lockstake - lock-staking pool simulator

    Pools deposits into daily batches locked in a yield vault and shares
    the harvested yield pro-rata to stake-weighted time.
    """
    ctx.ensure_object(dict)
    try:
        config = load_config(config_path)
        if log_level:
            config = config.overlay({"log_level": log_level})
    except PoolError as exc:
        _cli_fail(exc)

    setup_logging(
        name="lockstake",
        log_file=config.log_file,
        level=config.log_level,
        environment=config.environment,
    )

    ctx.obj['config'] = config
    ctx.obj['json_output'] = json_output


# ============================================================================
# Simulation
# ============================================================================

@cli.command('simulate')
@click.argument('scenario', type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option('--settle/--no-settle', default=True, show_default=True,
              help='After the program ends, unlock everything and withdraw all stakers')
@click.option('--events', 'show_events', is_flag=True, help='Print the pool event log')
@click.pass_context
def simulate(ctx: click.Context, scenario: Path, settle: bool, show_events: bool):
    """Run a YAML scenario and report the rewards each user realised"""
    config: PoolConfig = ctx.obj['config']

    try:
        loaded = load_scenario(scenario, config)
        with console.status(f"[bold cyan]Running {loaded.name}..."):
            rewards = run_scenario(loaded.simulation, loaded.actions)
            if settle:
                settle_all(loaded.simulation, rewards)
    except PoolError as exc:
        _cli_fail(exc)

    report = _build_report(loaded, rewards)

    if ctx.obj['json_output']:
        click.echo(json.dumps(report, indent=2, default=str))
        return

    table = Table(title=f"Rewards - {loaded.name}", box=box.ROUNDED)
    table.add_column("User", style="cyan")
    table.add_column("Reward", justify="right", style="green")
    table.add_column("Share %", justify="right")
    table.add_column("Expected", justify="right")
    table.add_column("Match", justify="center")

    for row in report["users"]:
        expected = row.get("expected")
        match = row.get("within_tolerance")
        table.add_row(
            row["user"],
            _tokens(row["reward"]),
            f"{row['share_percent']:.2f}",
            _tokens(expected) if expected is not None else "-",
            "-" if match is None else ("[green]yes[/]" if match else "[red]no[/]"),
        )
    console.print(table)

    pool = loaded.simulation.pool
    summary = Table(show_header=False, box=box.ROUNDED)
    summary.add_row("[bold cyan]Fee reserve", _tokens(pool.fees.fee_reserve))
    summary.add_row("[bold cyan]Usable balance", _tokens(pool.usable_balance()))
    summary.add_row("[bold cyan]Total controlled", _tokens(pool.total_controlled()))
    summary.add_row("[bold cyan]Batches", str(len(pool.queue)))
    console.print(Panel(summary, title="[bold green]Pool State", border_style="green"))

    if show_events:
        events = Table(title="Pool Events", box=box.SIMPLE)
        events.add_column("Time", justify="right")
        events.add_column("Kind")
        events.add_column("User")
        events.add_column("Amount", justify="right")
        events.add_column("Reward", justify="right")
        names = {address: name for name, address in loaded.simulation.users.items()}
        for event in pool.events:
            events.add_row(
                str(event.timestamp - loaded.simulation.start),
                event.kind.value,
                names.get(event.user, event.user[:10]),
                _tokens(event.amount),
                _tokens(event.reward),
            )
        console.print(events)


def _build_report(loaded: ScenarioFile, rewards: Dict[str, int]) -> Dict[str, Any]:
    sim = loaded.simulation
    total = sum(rewards.values())
    emitted = sim.vault.reward_rate * (sim.end - sim.start)

    users = []
    for name in sim.users:
        reward = rewards.get(name, 0)
        row: Dict[str, Any] = {
            "user": name,
            "reward": reward,
            "share_percent": float(Decimal(reward) * 100 / total) if total else 0.0,
        }
        if name in loaded.expected:
            target = expected_reward(sim, loaded.expected[name], emitted)
            row["expected"] = target
            row["within_tolerance"] = within_tolerance(reward, target, ROUNDED_PRECISION)
        users.append(row)

    return {
        "scenario": loaded.name,
        "total_rewards": total,
        "fee_reserve": sim.pool.fees.fee_reserve,
        "users": users,
    }


# ============================================================================
# Configuration
# ============================================================================

@cli.group()
def config():
    """Configuration management"""
    pass


@config.command('show')
@click.pass_context
def config_show(ctx: click.Context):
    """Display the effective configuration"""
    cfg: PoolConfig = ctx.obj['config']
    data = cfg.to_dict()

    if ctx.obj['json_output']:
        click.echo(json.dumps(data, indent=2))
        return

    table = Table(show_header=False, box=box.ROUNDED)
    for key, value in data.items():
        table.add_row(f"[bold cyan]{key}", "-" if value in (None, "") else str(value))
    console.print(Panel(table, title="[bold green]Lockstake Configuration", border_style="green"))


def main():
    """Main CLI entry point"""
    try:
        cli(obj={})
    except KeyboardInterrupt:
        console.print("\n[yellow]Operation cancelled by user[/]")
        sys.exit(130)
    except (PoolError, ValueError, KeyError) as exc:
        _cli_fail(exc)


if __name__ == '__main__':
    main()
