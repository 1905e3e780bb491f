"""
stakepool Asset Contracts.

This module provides the custody side of the staking ledger:
- ERC20Token: in-memory fungible token
- AssetLedger: protocol the staking cores delegate transfers to
- TokenLedger: AssetLedger implementation over ERC20Token instances
"""

from .erc20 import AssetLedger, ERC20Token, TokenLedger

__all__ = [
    "AssetLedger",
    "ERC20Token",
    "TokenLedger",
]
