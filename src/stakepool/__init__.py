"""
stakepool - Pooled Staking Ledger

Accounting core for pooled staking with time-proportional rewards.

Main Components:
- Reward schedules: per-pool queues of reward intervals
- Accrual accumulator: lazy reward-per-staked-unit checkpoints
- Position store: per-stakeholder entitlements
- Withdrawal policies: immediate, cooldown, sanction
- Share vault: principal and yield as a single share balance
"""

__version__ = "0.1.0"
__author__ = "stakepool Development Team"

__all__ = []
