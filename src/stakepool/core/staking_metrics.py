"""
Staking ledger instrumentation.

Provides Prometheus metrics that track how much of the staked asset moves
in and out of pools, how much reward is paid, and which operations are
rejected, with helper functions that are safe to call from the settlement
path.

Per-pool series carry a ``ledger`` label naming the core instance, so
several ledgers in one process keep separate series for the same pool id.
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge

staked_amount_counter = Counter(
    "stakepool_staked_amount_total",
    "Total staked asset deposited into pools",
    ["ledger", "pool"],
)

withdrawn_amount_counter = Counter(
    "stakepool_withdrawn_amount_total",
    "Total staked asset released from pools",
    ["ledger", "pool", "policy"],
)

claimed_rewards_counter = Counter(
    "stakepool_claimed_rewards_total",
    "Total reward asset paid to stakeholders",
    ["ledger", "pool"],
)

retained_fees_counter = Counter(
    "stakepool_retained_fees_total",
    "Reward forfeited to the protocol by sanctions",
    ["ledger", "pool"],
)

rejected_operations_counter = Counter(
    "stakepool_rejected_operations_total",
    "Operations rejected before taking effect",
    ["operation", "kind"],
)

total_staked_gauge = Gauge(
    "stakepool_total_staked", "Current staked amount of a pool", ["ledger", "pool"]
)

vault_underlying_gauge = Gauge(
    "stakepool_vault_total_underlying",
    "Underlying staked asset represented by vault shares",
    ["ledger"],
)


def record_stake(ledger: str, pool_id: int, amount: int, total_staked: int) -> None:
    """Count a deposit and refresh the pool total."""
    if amount <= 0:
        return
    staked_amount_counter.labels(ledger=ledger, pool=str(pool_id)).inc(amount)
    total_staked_gauge.labels(ledger=ledger, pool=str(pool_id)).set(total_staked)


def record_withdrawal(
    ledger: str, pool_id: int, amount: int, total_staked: int, policy: str
) -> None:
    """Count a withdrawal and refresh the pool total."""
    if amount > 0:
        withdrawn_amount_counter.labels(ledger=ledger, pool=str(pool_id), policy=policy).inc(amount)
    total_staked_gauge.labels(ledger=ledger, pool=str(pool_id)).set(total_staked)


def record_claim(ledger: str, pool_id: int, amount: int) -> None:
    if amount > 0:
        claimed_rewards_counter.labels(ledger=ledger, pool=str(pool_id)).inc(amount)


def record_retained_fee(ledger: str, pool_id: int, amount: int) -> None:
    if amount > 0:
        retained_fees_counter.labels(ledger=ledger, pool=str(pool_id)).inc(amount)


def record_rejection(operation: str, kind: str) -> None:
    rejected_operations_counter.labels(operation=operation, kind=kind).inc()


def update_vault_underlying(ledger: str, total_underlying: int) -> None:
    vault_underlying_gauge.labels(ledger=ledger).set(total_underlying)
