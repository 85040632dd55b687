"""
Lockstake Core Module

Core functionality for the lockstake pool including:
- Pool contracts and accounting (defi)
- The in-process ERC20 token (contracts)
- Configuration, logging, metrics and errors
- Simulation and scenario harness
"""

__all__ = []
