"""
Withdrawal Policies.

A deployment runs exactly one policy, chosen by ``PolicyKind``:

- ImmediateWithdrawal: principal is released as soon as it is withdrawn
- CooldownWithdrawal: principal enters a per-position time lock and is
  released later by ``collect``
- SanctionWithdrawal: principal is released at once, but withdrawing
  before the penalty-free time forfeits a share of the unclaimed reward

All policies keep their state in the shared ``StakingStore`` and reach
it through its accessors, so the facade can roll their changes back.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass

from ..config import (
    MAX_COOLDOWN_LOCKS,
    MAX_COOLDOWN_PERIOD,
    MIN_COOLDOWN_PERIOD,
    SANCTION_FEE_PRECISION,
    PolicyKind,
)
from ..staking_exceptions import (
    EarlyWithdrawError,
    InvalidAmountError,
    InvalidPolicyParameterError,
    PolicyNotSatisfiedError,
)
from .safe_math import fee_amount
from .store import CooldownLock, Position, SanctionTerms, StakingStore

logger = logging.getLogger(__name__)


@dataclass
class WithdrawalOutcome:
    """What a withdraw releases now and what it forfeits."""
    released: int = 0  # principal to transfer out immediately
    retained_fee: int = 0  # reward moved to the protocol


class WithdrawalPolicy(ABC):
    """Strategy deciding how withdrawn principal leaves custody."""

    kind: PolicyKind

    def __init__(self, store: StakingStore):
        self.store = store

    def on_stake(self, position: Position, now: int) -> None:
        """Hook run after a stake has been booked."""

    @abstractmethod
    def on_withdraw(
        self, position: Position, amount: int, settled_reward: int, now: int
    ) -> WithdrawalOutcome:
        """
        Route a withdrawal that has already been deducted from the position.

        Args:
            position: The settled position
            amount: Principal withdrawn
            settled_reward: Reward credited by the withdraw's own settle
            now: Current time
        """

    def collect(self, pool_id: int, account: str, now: int) -> int:
        """Release principal held back by the policy."""
        raise PolicyNotSatisfiedError(
            f"{self.kind.value} policy holds no collectable principal",
            details={"pool_id": pool_id, "policy": self.kind.value},
        )


class ImmediateWithdrawal(WithdrawalPolicy):
    kind = PolicyKind.IMMEDIATE

    def on_withdraw(
        self, position: Position, amount: int, settled_reward: int, now: int
    ) -> WithdrawalOutcome:
        return WithdrawalOutcome(released=amount)


class CooldownWithdrawal(WithdrawalPolicy):
    """
    Time-locked withdrawals.

    Each (pool, account) has at most one open lock. Withdrawals made while
    it is still running are merged into it, moving the unlock time to the
    amount-weighted average of the old unlock time and ``now + period``.
    A lock counts at most MAX_COOLDOWN_LOCKS merged withdrawals.

    The open lock is folded into ``unlock_amount`` and a new lock started
    when a withdrawal arrives after the lock matured, or when the lock is
    full and its oldest withdrawal has matured. A full lock whose oldest
    withdrawal is still cooling down absorbs the new amount without
    raising the count.
    """

    kind = PolicyKind.COOLDOWN

    def set_period(self, pool_id: int, period: int) -> None:
        """
        Raises:
            InvalidIdentifierError: Unknown pool
            InvalidPolicyParameterError: Period outside [1 second, 30 days]
        """
        self.store.get_pool(pool_id)
        if not MIN_COOLDOWN_PERIOD <= period <= MAX_COOLDOWN_PERIOD:
            raise InvalidPolicyParameterError(
                f"Cooldown period must be between {MIN_COOLDOWN_PERIOD} and "
                f"{MAX_COOLDOWN_PERIOD} seconds",
                details={"pool_id": pool_id, "period": period},
            )
        self.store.set_cooldown_period(pool_id, period)

    def period(self, pool_id: int) -> int:
        return self.store.cooldown_period(pool_id)

    def on_withdraw(
        self, position: Position, amount: int, settled_reward: int, now: int
    ) -> WithdrawalOutcome:
        lock = self.store.cooldown_lock(position.pool_id, position.account)
        unlock_at = now + self.period(position.pool_id)
        full = lock.locked_period_count >= MAX_COOLDOWN_LOCKS

        if not lock.is_open:
            self._open(lock, amount, unlock_at)
        elif now >= lock.unlock_time or (full and now >= lock.oldest_unlock_time):
            lock.unlock_amount += lock.locked_amount
            self._open(lock, amount, unlock_at)
        else:
            merged = lock.locked_amount + amount
            lock.unlock_time = (
                lock.locked_amount * lock.unlock_time + amount * unlock_at
            ) // merged
            lock.locked_amount = merged
            if not full:
                lock.locked_period_count += 1

        logger.info(
            "Withdrawal locked",
            extra={
                "event": "cooldown.locked",
                "pool_id": position.pool_id,
                "account": position.account[:10],
                "amount": amount,
                "locked_amount": lock.locked_amount,
                "unlock_amount": lock.unlock_amount,
                "unlock_time": lock.unlock_time,
                "locked_period_count": lock.locked_period_count,
            }
        )
        return WithdrawalOutcome(released=0)

    def collect(self, pool_id: int, account: str, now: int) -> int:
        """
        Release everything held in a matured lock and reset it.

        Raises:
            InvalidAmountError: Nothing is locked or collectable
            EarlyWithdrawError: The lock has not matured yet
        """
        self.store.get_pool(pool_id)
        lock = self.store.find_cooldown_lock(pool_id, account)
        if lock is None or lock.is_empty:
            raise InvalidAmountError(
                "Nothing to collect", details={"pool_id": pool_id, "account": account}
            )
        if now < lock.unlock_time:
            raise EarlyWithdrawError(
                "Cooldown period is not finished",
                unlock_time=lock.unlock_time,
                details={"pool_id": pool_id, "unlock_time": lock.unlock_time, "now": now},
            )

        amount = lock.locked_amount + lock.unlock_amount
        self.store.reset_cooldown_lock(pool_id, account)
        return amount

    @staticmethod
    def _open(lock: CooldownLock, amount: int, unlock_at: int) -> None:
        lock.locked_amount = amount
        lock.locked_period_count = 1
        lock.unlock_time = unlock_at
        lock.oldest_unlock_time = unlock_at


class SanctionWithdrawal(WithdrawalPolicy):
    """
    Early-exit penalty on unclaimed reward.

    A withdraw before the position's penalty-free time forfeits
    ``fee_percentage`` of everything unclaimed once the withdraw has
    settled, whichever operation settled it. Reward already paid out by
    ``claim_rewards`` is not clawed back.
    """

    kind = PolicyKind.SANCTION

    def set_terms(self, pool_id: int, fee_percentage: int, period: int) -> None:
        """
        Raises:
            InvalidIdentifierError: Unknown pool
            InvalidPolicyParameterError: Fee outside (0, 100%) or zero period
        """
        self.store.get_pool(pool_id)
        if not 0 < fee_percentage < SANCTION_FEE_PRECISION:
            raise InvalidPolicyParameterError(
                "Sanction fee must be above 0% and below 100%",
                details={"pool_id": pool_id, "fee_percentage": fee_percentage},
            )
        if period <= 0:
            raise InvalidPolicyParameterError(
                "Sanction period must be positive",
                details={"pool_id": pool_id, "period": period},
            )
        self.store.set_sanction_terms(
            pool_id, SanctionTerms(fee_percentage=fee_percentage, period=period)
        )

    def on_stake(self, position: Position, now: int) -> None:
        terms = self.store.sanction_terms(position.pool_id)
        position.penalty_free_after = now + (terms.period if terms else 0)

    def on_withdraw(
        self, position: Position, amount: int, settled_reward: int, now: int
    ) -> WithdrawalOutcome:
        terms = self.store.sanction_terms(position.pool_id)
        unclaimed = position.unclaimed_rewards
        if terms is None or now >= position.penalty_free_after or unclaimed == 0:
            return WithdrawalOutcome(released=amount)

        fee = min(fee_amount(unclaimed, terms.fee_percentage, SANCTION_FEE_PRECISION), unclaimed)
        position.unclaimed_rewards -= fee
        self.store.get_pool(position.pool_id).protocol_retained += fee

        logger.info(
            "Early withdrawal sanctioned",
            extra={
                "event": "sanction.applied",
                "pool_id": position.pool_id,
                "account": position.account[:10],
                "fee": fee,
                "settled_reward": settled_reward,
                "penalty_free_after": position.penalty_free_after,
            }
        )
        return WithdrawalOutcome(released=amount, retained_fee=fee)


_POLICIES = {
    PolicyKind.IMMEDIATE: ImmediateWithdrawal,
    PolicyKind.COOLDOWN: CooldownWithdrawal,
    PolicyKind.SANCTION: SanctionWithdrawal,
}


def create_policy(kind: PolicyKind, store: StakingStore) -> WithdrawalPolicy:
    """Instantiate the policy strategy for a deployment."""
    return _POLICIES[PolicyKind(kind)](store)
