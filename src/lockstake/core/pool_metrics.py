"""
Staking-pool instrumentation.

Provides Prometheus metrics that track harvested yield, operator fees and
pool balances, with helper functions that are safe to call from the
settlement path.
"""

from __future__ import annotations

from typing import Any
from prometheus_client import Counter, Gauge

yield_harvested_counter = Counter(
    "lockstake_yield_harvested_total", "Total net yield folded into the reward accumulator", ["pool"]
)

fee_collection_counter = Counter(
    "lockstake_fee_collected_total", "Total operator fee skimmed from harvested yield", ["pool"]
)

pool_events_counter = Counter(
    "lockstake_pool_events_total",
    "Total number of pool events emitted",
    ["pool", "kind"],
)

fee_reserve_gauge = Gauge(
    "lockstake_fee_reserve", "Current operator fee reserve", ["pool"]
)

total_staked_gauge = Gauge(
    "lockstake_total_staked", "Sum of depositor principal", ["pool"]
)

queued_batches_gauge = Gauge(
    "lockstake_queued_batches", "Locked principal batches in the stake queue", ["pool"]
)


def record_harvest(pool_address: str, net_amount: int, fee_amount: int) -> None:
    """Increment the yield and fee counters for a harvest event."""
    if net_amount > 0:
        yield_harvested_counter.labels(pool=pool_address).inc(net_amount)
    if fee_amount > 0:
        fee_collection_counter.labels(pool=pool_address).inc(fee_amount)


def record_event(pool_address: str, kind: str) -> None:
    pool_events_counter.labels(pool=pool_address, kind=kind).inc()


def update_pool_gauges(pool: Any) -> None:
    """Refresh the balance gauges from pool state."""
    if pool is None:
        return

    fee_reserve_gauge.labels(pool=pool.address).set(pool.fees.fee_reserve)
    total_staked_gauge.labels(pool=pool.address).set(pool.ledger.total_staked)
    queued_batches_gauge.labels(pool=pool.address).set(len(pool.queue))
