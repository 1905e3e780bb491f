"""
stakepool Staking Cores.

This module provides the pooled staking ledger and its companions:
- Reward Schedule: per-pool reward intervals with fixed-point rates
- Accrual Accumulator: lazy reward-per-staked-unit accounting
- Positions: per-stakeholder settlement against the accumulator
- Withdrawal Policies: immediate, cooldown and sanction strategies
- StakingPool: the facade wiring them together atomically
- Share Vault: yield-bearing share tokens over one staked asset
- Fixed APY Staking: single-token staking with an early-withdrawal fee
- APR: annual rate view over a reward stream
"""

from .access_control import AccessGate, Role, RoleBasedAccessControl, require_operator
from .accumulator import AccrualAccumulator
from .apr import calculate_apr
from .fixed_apy_staking import FixedApyStaking
from .positions import PositionStore
from .reward_schedule import RewardScheduleManager
from .share_vault import ShareVault
from .staking import StakingPool
from .store import (
    CooldownLock,
    Pool,
    Position,
    RewardInterval,
    SanctionTerms,
    StakingStore,
)
from .withdrawal_policy import (
    CooldownWithdrawal,
    ImmediateWithdrawal,
    SanctionWithdrawal,
    WithdrawalOutcome,
    WithdrawalPolicy,
    create_policy,
)

__all__ = [
    # Access control
    "AccessGate",
    "Role",
    "RoleBasedAccessControl",
    "require_operator",
    # Accounting core
    "AccrualAccumulator",
    "PositionStore",
    "RewardScheduleManager",
    "StakingStore",
    "Pool",
    "Position",
    "RewardInterval",
    "CooldownLock",
    "SanctionTerms",
    # Withdrawal policies
    "WithdrawalPolicy",
    "WithdrawalOutcome",
    "ImmediateWithdrawal",
    "CooldownWithdrawal",
    "SanctionWithdrawal",
    "create_policy",
    # Facades
    "StakingPool",
    "ShareVault",
    "FixedApyStaking",
    "calculate_apr",
]
