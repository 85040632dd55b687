"""
Lockstake DeFi components.

This module provides the pool and the parts it is assembled from:
- Staking Pool: deposit / withdraw / claim / daily commit with rollback
- Reward Ledger: per-share reward accumulator and signed reward debt
- Fee Accrual: operator fee skimmed from each harvest
- Deposit Scheduler: per-day buckets of uncommitted deposits
- Stake Queue: locked batches ordered by unlock time
- Liquidity: usable balance and unstake-to-target unwinding
- Vault: external vault protocol and an emission-stream simulation
- Access Control: operator and admin roles
"""

from .access_control import Role, RoleBasedAccessControl, requires_role
from .deposit_scheduler import DepositScheduler
from .fee_accrual import FEE_DENOMINATOR, MAX_FEE_BPS, FeeAccrual
from .liquidity import LiquidityManager
from .reward_ledger import SCALE, Account, RewardLedger
from .stake_queue import StakeBatch, StakeQueue
from .staking_pool import LockStakingPool, PoolEvent, PoolEventKind
from .vault import ExternalVault, LockTier, SimulatedVault, VaultDeposit

__all__ = [
    # Pool
    "LockStakingPool",
    "PoolEvent",
    "PoolEventKind",
    # Accounting
    "Account",
    "RewardLedger",
    "SCALE",
    "FeeAccrual",
    "FEE_DENOMINATOR",
    "MAX_FEE_BPS",
    "DepositScheduler",
    "StakeBatch",
    "StakeQueue",
    "LiquidityManager",
    # Vault
    "ExternalVault",
    "LockTier",
    "SimulatedVault",
    "VaultDeposit",
    # Access control
    "Role",
    "RoleBasedAccessControl",
    "requires_role",
]
