"""
Pooled Staking Ledger.

``StakingPool`` is the caller-facing surface of the pooled staking core.
It wires the reward schedule, the accrual accumulator, the position
store and the configured withdrawal policy around one ``StakingStore``,
and moves assets through an injected ``AssetLedger``.

Every state-changing call:
- runs under the instance lock, rejecting nested entry
- journals the store records it touches and rolls them back if anything
  raises
- queues asset transfers and flushes them only after all bookkeeping
  succeeded

Supported flows:
- operators configure reward intervals (set_rewards) and policy
  parameters (cooldown period, sanction terms)
- stakeholders stake, stake for others, claim rewards, withdraw, exit and
  collect cooled-down principal
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any, Callable, Dict

from ..config import PRECISION, PolicyKind, StakingConfig
from ..contracts.erc20 import AssetLedger
from ..staking_exceptions import (
    InvalidAmountError,
    InvalidPolicyParameterError,
    NotStakeholderError,
    StakingWindowClosedError,
)
from .. import staking_metrics
from .access_control import AccessGate, require_operator
from .accumulator import AccrualAccumulator
from .apr import calculate_apr
from .atomic import AtomicOperations
from .positions import PositionStore
from .reward_schedule import RewardScheduleManager
from .store import CooldownLock, Position, StakingStore
from .withdrawal_policy import (
    CooldownWithdrawal,
    SanctionWithdrawal,
    WithdrawalPolicy,
    create_policy,
)

logger = logging.getLogger(__name__)


class StakingPool(AtomicOperations):
    """
    Multi-pool staking ledger with a pluggable withdrawal policy.

    Usage:
        pool = StakingPool(
            staked_asset=stk.address,
            reward_asset=rwd.address,
            ledger=TokenLedger("0xstaking", [stk, rwd]),
            access=RoleBasedAccessControl(admin_address="0xowner"),
            policy=PolicyKind.COOLDOWN,
        )
        pool_id = pool.set_rewards("0xowner", start, 30 * ONE_DAY, 1000 * 10**18)
        pool.stake("0xalice", pool_id, 500 * 10**18)
    """

    def __init__(
        self,
        staked_asset: str,
        reward_asset: str,
        ledger: AssetLedger,
        access: AccessGate,
        policy: PolicyKind = PolicyKind.IMMEDIATE,
        time_provider: Callable[[], int] | None = None,
        store: StakingStore | None = None,
        metrics_enabled: bool = True,
        label: str | None = None,
    ):
        self.staked_asset = self._require_address(staked_asset, "staked asset")
        self.reward_asset = self._require_address(reward_asset, "reward asset")
        self.ledger = ledger
        self.access = access
        self.metrics_enabled = metrics_enabled

        self.store = store if store is not None else StakingStore()
        self.schedule = RewardScheduleManager(self.store)
        self.accumulator = AccrualAccumulator(self.store, self.schedule)
        self.positions = PositionStore(self.store, self.accumulator)
        self.policy: WithdrawalPolicy = create_policy(policy, self.store)

        self._init_atomic(time_provider, label)

        logger.info(
            "StakingPool initialized",
            extra={
                "event": "staking.initialized",
                "label": self.label,
                "policy": self.policy.kind.value,
                "staked_asset": self.staked_asset[:10],
                "reward_asset": self.reward_asset[:10],
            }
        )

    @classmethod
    def from_config(
        cls,
        config: StakingConfig,
        staked_asset: str,
        reward_asset: str,
        ledger: AssetLedger,
        access: AccessGate,
        **kwargs: Any,
    ) -> "StakingPool":
        """Build a pool using the policy and metrics settings of a StakingConfig."""
        return cls(
            staked_asset=staked_asset,
            reward_asset=reward_asset,
            ledger=ledger,
            access=access,
            policy=config.policy,
            metrics_enabled=config.metrics_enabled,
            **kwargs,
        )

    # ==================== Operator Functions ====================

    def set_rewards(
        self,
        caller: str,
        start_time: int,
        duration: int,
        total_amount: int,
        pool_id: int | None = None,
    ) -> int:
        """
        Fund a reward interval.

        Without pool_id a new pool is opened; with an existing pool_id the
        interval runs concurrently with the pool's other intervals.

        Returns:
            Pool id of the interval

        Raises:
            UnauthorizedError: Caller is not an operator
            InvalidScheduleError: Past start, zero duration or zero amount
            InvalidIdentifierError: Unknown pool_id
        """
        with self._atomic("set_rewards"):
            require_operator(self.access, caller, "set_rewards")
            now = self._now()
            if pool_id is not None:
                self.accumulator.checkpoint(pool_id, now)
            pool_id = self.schedule.configure(start_time, duration, total_amount, now, pool_id=pool_id)
            self._transfer_in(self.reward_asset, caller, total_amount)
        return pool_id

    def set_cooldown_period(self, caller: str, pool_id: int, period: int) -> None:
        with self._atomic("set_cooldown_period"):
            require_operator(self.access, caller, "set_cooldown_period")
            policy = self._require_policy(CooldownWithdrawal, "set_cooldown_period")
            policy.set_period(pool_id, period)

        logger.info(
            "Cooldown period set",
            extra={"event": "staking.cooldown_period_set", "pool_id": pool_id, "period": period},
        )

    def set_sanctions_fee(self, caller: str, pool_id: int, fee_percentage: int, period: int) -> None:
        with self._atomic("set_sanctions_fee"):
            require_operator(self.access, caller, "set_sanctions_fee")
            policy = self._require_policy(SanctionWithdrawal, "set_sanctions_fee")
            policy.set_terms(pool_id, fee_percentage, period)

        logger.info(
            "Sanction terms set",
            extra={
                "event": "staking.sanctions_set",
                "pool_id": pool_id,
                "fee_percentage": fee_percentage,
                "period": period,
            }
        )

    def withdraw_retained(self, caller: str, pool_id: int, recipient: str) -> int:
        """
        Pay out the sanction fees a pool has retained.

        Raises:
            UnauthorizedError: Caller is not an operator
            InvalidAddressError: Zero recipient
            InvalidAmountError: Nothing retained
        """
        with self._atomic("withdraw_retained"):
            require_operator(self.access, caller, "withdraw_retained")
            recipient = self._require_address(recipient, "recipient")
            pool = self.store.get_pool(pool_id)
            amount = pool.protocol_retained
            if amount == 0:
                raise InvalidAmountError("No retained fees", details={"pool_id": pool_id})
            pool.protocol_retained = 0
            self._transfer_out(self.reward_asset, recipient, amount)

        logger.info(
            "Retained fees withdrawn",
            extra={
                "event": "staking.retained_withdrawn",
                "pool_id": pool_id,
                "recipient": recipient[:10],
                "amount": amount,
            }
        )
        return amount

    # ==================== Stakeholder Functions ====================

    def stake(self, caller: str, pool_id: int, amount: int) -> None:
        """
        Stake into a pool.

        Raises:
            InvalidIdentifierError: Unknown pool
            InvalidAmountError: Zero amount
            StakingWindowClosedError: The pool's reward schedule has ended
        """
        with self._atomic("stake"):
            self._stake(caller, caller, pool_id, amount)

    def stake_for(self, caller: str, beneficiary: str, pool_id: int, amount: int) -> None:
        """Stake caller's funds into beneficiary's position."""
        with self._atomic("stake_for"):
            beneficiary = self._require_address(beneficiary, "beneficiary")
            self._stake(caller, beneficiary, pool_id, amount)

    def claim_rewards(self, caller: str, pool_id: int) -> int:
        """
        Pay out all reward owed to caller in a pool.

        Raises:
            InvalidIdentifierError: Unknown pool
            InvalidAmountError: Nothing to claim
        """
        with self._atomic("claim_rewards"):
            amount = self._claim(caller, pool_id)
        return amount

    def withdraw(self, caller: str, pool_id: int, amount: int) -> int:
        """
        Withdraw staked principal through the withdrawal policy.

        Returns:
            Principal released immediately (0 while a cooldown holds it)

        Raises:
            InvalidIdentifierError: Unknown pool
            InvalidAmountError: Zero amount or more than staked
            NotStakeholderError: Caller never staked in the pool
            PolicyNotSatisfiedError: The policy refuses the withdrawal
        """
        with self._atomic("withdraw"):
            released = self._withdraw(caller, pool_id, amount)
        return released

    def exit(self, caller: str, pool_id: int) -> tuple[int, int]:
        """
        Withdraw everything and claim all reward in one step.

        Returns:
            (principal released, reward claimed)
        """
        with self._atomic("exit"):
            position = self._require_position(pool_id, caller)
            released = self._withdraw(caller, pool_id, position.staked_amount)
            claimed = self._claim(caller, pool_id)
        return released, claimed

    def collect_staked_tokens(self, caller: str, pool_id: int) -> int:
        """
        Collect principal whose cooldown has finished.

        Raises:
            PolicyNotSatisfiedError: The policy holds nothing back, or the
                lock has not matured (EarlyWithdrawError)
            InvalidAmountError: Nothing is locked
        """
        with self._atomic("collect_staked_tokens"):
            pool = self.store.get_pool(pool_id)
            account = caller.lower()
            amount = self.policy.collect(pool_id, account, self._now())
            self._transfer_out(self.staked_asset, account, amount)
            self._record_metric(
                staking_metrics.record_withdrawal,
                self.label, pool_id, amount, pool.total_staked, self.policy.kind.value,
            )

        logger.info(
            "Staked tokens collected",
            extra={
                "event": "staking.collected",
                "pool_id": pool_id,
                "account": account[:10],
                "amount": amount,
            }
        )
        return amount

    # ==================== View Functions ====================

    def pending_rewards(self, pool_id: int, account: str) -> int:
        with self._lock:
            return self.positions.pending_rewards(pool_id, account, self._now())

    def staked_amount(self, pool_id: int, account: str) -> int:
        with self._lock:
            self.store.get_pool(pool_id)
            return self.positions.staked_amount(pool_id, account)

    def get_position(self, pool_id: int, account: str) -> Dict[str, Any] | None:
        with self._lock:
            self.store.get_pool(pool_id)
            position = self.store.find_position(pool_id, account)
            if position is None:
                return None
            return {
                "pool_id": pool_id,
                "account": position.account,
                "staked_amount": position.staked_amount,
                "unclaimed_rewards": position.unclaimed_rewards,
                "pending_rewards": self.positions.pending_rewards(pool_id, account, self._now()),
                "penalty_free_after": position.penalty_free_after,
                "last_staked_at": position.last_staked_at,
            }

    def get_cooldown(self, pool_id: int, account: str) -> CooldownLock:
        """Copy of an account's cooldown lock (empty if none)."""
        with self._lock:
            self.store.get_pool(pool_id)
            lock = self.store.find_cooldown_lock(pool_id, account)
            return replace(lock) if lock is not None else CooldownLock()

    def rewards_per_second(self, pool_id: int) -> int:
        with self._lock:
            return self.schedule.rewards_per_second(pool_id, self._now())

    def pool_apr(self, pool_id: int) -> int:
        """Current APR of a pool, scaled so that APR_PRECISION == 100%."""
        with self._lock:
            pool = self.store.get_pool(pool_id)
            rate = self.schedule.effective_rate(pool_id, self._now())
            return calculate_apr(rate, pool.total_staked, scale=PRECISION)

    def get_pool_state(self, pool_id: int) -> Dict[str, Any]:
        with self._lock:
            pool = self.store.get_pool(pool_id)
            now = self._now()
            return {
                "pool_id": pool.pool_id,
                "total_staked": pool.total_staked,
                "accumulator": self.accumulator.preview(pool_id, now),
                "rewards_per_second": self.schedule.rewards_per_second(pool_id, now),
                "schedule_start": pool.schedule_start,
                "schedule_end": pool.schedule_end,
                "total_funded": pool.total_funded,
                "unallocated_rewards": pool.unallocated_rewards,
                "protocol_retained": pool.protocol_retained,
                "policy": self.policy.kind.value,
            }

    # ==================== Internal Functions ====================

    def _stake(self, funder: str, beneficiary: str, pool_id: int, amount: int) -> None:
        pool = self.store.get_pool(pool_id)
        self._require_positive(amount, pool_id)
        now = self._now()
        if now >= pool.schedule_end:
            raise StakingWindowClosedError(
                "Staking time is over for this pool",
                details={"pool_id": pool_id, "schedule_end": pool.schedule_end, "now": now},
            )

        self.positions.settle(pool_id, beneficiary, now)
        position = self.store.position(pool_id, beneficiary)
        position.staked_amount += amount
        position.last_staked_at = now
        pool.total_staked += amount
        self.policy.on_stake(position, now)

        self._transfer_in(self.staked_asset, funder, amount)
        self._record_metric(
            staking_metrics.record_stake, self.label, pool_id, amount, pool.total_staked
        )

        logger.info(
            "Staked",
            extra={
                "event": "staking.staked",
                "pool_id": pool_id,
                "account": position.account[:10],
                "funder": funder.lower()[:10],
                "amount": amount,
                "total_staked": pool.total_staked,
            }
        )

    def _claim(self, caller: str, pool_id: int) -> int:
        self.store.get_pool(pool_id)
        account = caller.lower()
        if self.store.find_position(pool_id, account) is None:
            raise InvalidAmountError("No rewards to claim", details={"pool_id": pool_id})

        self.positions.settle(pool_id, account, self._now())
        position = self.store.position(pool_id, account)
        amount = position.unclaimed_rewards
        if amount == 0:
            raise InvalidAmountError("No rewards to claim", details={"pool_id": pool_id})

        position.unclaimed_rewards = 0
        self._transfer_out(self.reward_asset, account, amount)
        self._record_metric(staking_metrics.record_claim, self.label, pool_id, amount)

        logger.info(
            "Rewards claimed",
            extra={
                "event": "staking.claimed",
                "pool_id": pool_id,
                "account": account[:10],
                "amount": amount,
            }
        )
        return amount

    def _withdraw(self, caller: str, pool_id: int, amount: int) -> int:
        pool = self.store.get_pool(pool_id)
        self._require_positive(amount, pool_id)
        position = self._require_position(pool_id, caller)
        if amount > position.staked_amount:
            raise InvalidAmountError(
                "Withdraw amount exceeds staked amount",
                details={"pool_id": pool_id, "amount": amount, "staked": position.staked_amount},
            )

        now = self._now()
        settled = self.positions.settle(pool_id, position.account, now)
        position.staked_amount -= amount
        pool.total_staked -= amount
        outcome = self.policy.on_withdraw(position, amount, settled, now)

        if outcome.released:
            self._transfer_out(self.staked_asset, position.account, outcome.released)
        self._record_metric(
            staking_metrics.record_withdrawal,
            self.label, pool_id, outcome.released, pool.total_staked, self.policy.kind.value,
        )
        self._record_metric(
            staking_metrics.record_retained_fee, self.label, pool_id, outcome.retained_fee
        )

        logger.info(
            "Withdrawn",
            extra={
                "event": "staking.withdrawn",
                "pool_id": pool_id,
                "account": position.account[:10],
                "amount": amount,
                "released": outcome.released,
                "retained_fee": outcome.retained_fee,
                "total_staked": pool.total_staked,
            }
        )
        return outcome.released

    def _require_position(self, pool_id: int, account: str) -> Position:
        self.store.get_pool(pool_id)
        position = self.store.find_position(pool_id, account)
        if position is None:
            raise NotStakeholderError(
                "Only stakeholders can call this",
                details={"pool_id": pool_id, "account": account},
            )
        return position

    def _require_policy(self, policy_type: type, operation: str) -> Any:
        if not isinstance(self.policy, policy_type):
            raise InvalidPolicyParameterError(
                f"{operation} is not available under the {self.policy.kind.value} policy",
                details={"policy": self.policy.kind.value},
            )
        return self.policy

    @staticmethod
    def _require_positive(amount: int, pool_id: int) -> None:
        if not isinstance(amount, int) or amount <= 0:
            raise InvalidAmountError("Amount must be positive", details={"pool_id": pool_id, "amount": amount})

    def _begin(self) -> None:
        self.store.begin()

    def _commit(self) -> None:
        self.store.commit()

    def _rollback(self) -> None:
        self.store.rollback()
