"""
stakepool Core Module

Core functionality for the staking ledger including:
- Configuration and logging setup
- Typed staking exceptions
- Prometheus metrics helpers
- Asset ledger contracts and DeFi staking cores
"""

__all__ = []
