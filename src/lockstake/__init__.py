"""
Lockstake - lock-staking pool

Pools many depositors' tokens into daily batches locked in an external
yield vault and shares the harvested yield pro-rata to stake-weighted time.

Main Components:
- Pool: deposit, withdraw, claim and daily commit (core.defi.staking_pool)
- Accounting: reward accumulator, fee skim, deposit buckets, stake queue
- Simulation: token, vault and clock for running scenarios offline
- CLI: ``lockstake simulate`` and ``lockstake config show``
"""

__version__ = "0.1.0"
__author__ = "Lockstake Development Team"

__all__ = []
