"""
Fixed-APY Staking.

Single-token staking where the staked token also pays the interest.
Interest accrues linearly at the current APY and is paid from a reward
reserve the operator funds. Withdrawing principal before the minimum
staking period has elapsed costs an early-withdrawal fee, which is kept
in the reward reserve.

APY changes take effect from the moment they are set: the APY history
is kept as segments, and each position integrates over them from its own
checkpoint, so no position has to be touched when the APY changes.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Any, Callable, Dict, List

from ..config import BPS, SECONDS_PER_YEAR
from ..contracts.erc20 import AssetLedger
from ..staking_exceptions import (
    InsufficientCustodyError,
    InvalidAmountError,
    InvalidPolicyParameterError,
    NotStakeholderError,
)
from .. import staking_metrics
from .access_control import AccessGate, require_operator
from .atomic import AtomicOperations
from .safe_math import fee_amount

logger = logging.getLogger(__name__)

FIXED_APY_POOL = 0

_MISSING = object()


@dataclass
class ApySegment:
    since: int
    apy_bps: int


@dataclass
class FixedApyPosition:
    staked_amount: int = 0
    staked_at: int = 0
    accrued_interest: int = 0
    last_accrual: int = 0


class FixedApyStaking(AtomicOperations):
    """
    Staking with a fixed annual yield, a minimum staking period and an
    early-withdrawal fee (both in basis points).
    """

    def __init__(
        self,
        token: str,
        ledger: AssetLedger,
        access: AccessGate,
        min_staking_period: int,
        early_fee_bps: int,
        apy_bps: int,
        time_provider: Callable[[], int] | None = None,
        metrics_enabled: bool = True,
        label: str | None = None,
    ):
        self.token = self._require_address(token, "token")
        if min_staking_period <= 0:
            raise InvalidPolicyParameterError(
                "Minimum staking period must be positive",
                details={"min_staking_period": min_staking_period},
            )
        if not 0 < early_fee_bps < BPS:
            raise InvalidPolicyParameterError(
                "Early withdrawal fee must be between 0 and 100%",
                details={"early_fee_bps": early_fee_bps},
            )
        self._validate_apy(apy_bps)

        self.ledger = ledger
        self.access = access
        self.min_staking_period = min_staking_period
        self.early_fee_bps = early_fee_bps
        self.metrics_enabled = metrics_enabled
        self._init_atomic(time_provider, label)

        self.positions: Dict[str, FixedApyPosition] = {}
        self.apy_history: List[ApySegment] = [ApySegment(since=self._now(), apy_bps=apy_bps)]
        self.total_staked = 0
        self.reward_reserve = 0

        self._saved: Dict[str, Any] | None = None
        self._saved_positions: Dict[str, Any] = {}

    @property
    def apy_bps(self) -> int:
        return self.apy_history[-1].apy_bps

    # ==================== Operator Functions ====================

    def fund_rewards(self, caller: str, amount: int) -> None:
        with self._atomic("fund_rewards"):
            require_operator(self.access, caller, "fund_rewards")
            self._require_positive(amount)
            self.reward_reserve += amount
            self._transfer_in(self.token, caller, amount)

        logger.info(
            "Reward reserve funded",
            extra={"event": "fixed_apy.funded", "amount": amount, "reserve": self.reward_reserve},
        )

    def set_apy(self, caller: str, apy_bps: int) -> None:
        """
        Change the APY from now on. Interest earned so far is unaffected.

        Raises:
            UnauthorizedError: Caller is not an operator
            InvalidPolicyParameterError: Negative APY
        """
        with self._atomic("set_apy"):
            require_operator(self.access, caller, "set_apy")
            self._validate_apy(apy_bps)
            now = self._now()
            if self.apy_history[-1].since == now:
                self.apy_history[-1].apy_bps = apy_bps
            else:
                self.apy_history.append(ApySegment(since=now, apy_bps=apy_bps))

        logger.info("APY updated", extra={"event": "fixed_apy.apy_set", "apy_bps": apy_bps})

    # ==================== Stakeholder Functions ====================

    def stake(self, caller: str, amount: int) -> None:
        """Stake; restarts the minimum staking period of the position."""
        with self._atomic("fixed_apy_stake"):
            self._require_positive(amount)
            account = caller.lower()
            now = self._now()
            self._touch(account)
            position = self.positions.setdefault(account, FixedApyPosition(last_accrual=now))
            self._accrue(position, now)
            position.staked_amount += amount
            position.staked_at = now
            self.total_staked += amount
            self._transfer_in(self.token, account, amount)
            self._record_metric(
                staking_metrics.record_stake, self.label, FIXED_APY_POOL, amount, self.total_staked
            )

        logger.info(
            "Fixed APY stake",
            extra={"event": "fixed_apy.staked", "account": account[:10], "amount": amount},
        )

    def withdraw(self, caller: str, amount: int) -> int:
        """
        Withdraw principal, minus the early fee inside the minimum period.

        Returns:
            Principal paid out

        Raises:
            InvalidAmountError: Zero amount or more than staked
            NotStakeholderError: Caller never staked
        """
        with self._atomic("fixed_apy_withdraw"):
            self._require_positive(amount)
            account = caller.lower()
            position = self._require_position(account)
            if amount > position.staked_amount:
                raise InvalidAmountError(
                    "Withdraw amount exceeds staked amount",
                    details={"amount": amount, "staked": position.staked_amount},
                )

            now = self._now()
            self._accrue(position, now)
            fee = 0
            if now < position.staked_at + self.min_staking_period:
                fee = fee_amount(amount, self.early_fee_bps, BPS)

            position.staked_amount -= amount
            self.total_staked -= amount
            self.reward_reserve += fee
            paid = amount - fee
            self._transfer_out(self.token, account, paid)
            self._record_metric(
                staking_metrics.record_withdrawal,
                self.label, FIXED_APY_POOL, paid, self.total_staked, "fixed_apy",
            )
            self._record_metric(
                staking_metrics.record_retained_fee, self.label, FIXED_APY_POOL, fee
            )

        logger.info(
            "Fixed APY withdrawal",
            extra={
                "event": "fixed_apy.withdrawn",
                "account": account[:10],
                "amount": amount,
                "early_fee": fee,
            }
        )
        return paid

    def claim_rewards(self, caller: str) -> int:
        """
        Pay out accrued interest from the reward reserve.

        Raises:
            InvalidAmountError: Nothing to claim
            InsufficientCustodyError: Reserve cannot cover the interest
        """
        with self._atomic("fixed_apy_claim"):
            account = caller.lower()
            self._touch(account)
            position = self.positions.get(account)
            if position is not None:
                self._accrue(position, self._now())
            amount = position.accrued_interest if position else 0
            if amount == 0:
                raise InvalidAmountError("No rewards to claim")
            if amount > self.reward_reserve:
                raise InsufficientCustodyError(
                    "Reward reserve cannot cover the claim",
                    details={"amount": amount, "reserve": self.reward_reserve},
                )

            position.accrued_interest = 0
            self.reward_reserve -= amount
            self._transfer_out(self.token, account, amount)
            self._record_metric(staking_metrics.record_claim, self.label, FIXED_APY_POOL, amount)

        logger.info(
            "Fixed APY rewards claimed",
            extra={"event": "fixed_apy.claimed", "account": account[:10], "amount": amount},
        )
        return amount

    # ==================== View Functions ====================

    def pending_rewards(self, account: str) -> int:
        with self._lock:
            position = self.positions.get(account.lower())
            if position is None:
                return 0
            return position.accrued_interest + self._interest(
                position.staked_amount, position.last_accrual, self._now()
            )

    def staked_amount(self, account: str) -> int:
        position = self.positions.get(account.lower())
        return position.staked_amount if position else 0

    def penalty_free_at(self, account: str) -> int:
        position = self._require_position(account.lower())
        return position.staked_at + self.min_staking_period

    # ==================== Internal Functions ====================

    def _interest(self, staked: int, t0: int, t1: int) -> int:
        if staked == 0 or t1 <= t0:
            return 0
        total = 0
        for index, segment in enumerate(self.apy_history):
            seg_end = (
                self.apy_history[index + 1].since
                if index + 1 < len(self.apy_history) else t1
            )
            overlap = min(t1, seg_end) - max(t0, segment.since)
            if overlap > 0:
                total += staked * segment.apy_bps * overlap
        return total // (BPS * SECONDS_PER_YEAR)

    def _accrue(self, position: FixedApyPosition, now: int) -> None:
        position.accrued_interest += self._interest(
            position.staked_amount, position.last_accrual, now
        )
        position.last_accrual = max(position.last_accrual, now)

    def _require_position(self, account: str) -> FixedApyPosition:
        self._touch(account)
        position = self.positions.get(account)
        if position is None:
            raise NotStakeholderError("Only stakeholders can call this", details={"account": account})
        return position

    @staticmethod
    def _require_positive(amount: int) -> None:
        if not isinstance(amount, int) or amount <= 0:
            raise InvalidAmountError("Amount must be positive", details={"amount": amount})

    @staticmethod
    def _validate_apy(apy_bps: int) -> None:
        if not isinstance(apy_bps, int) or apy_bps < 0:
            raise InvalidPolicyParameterError("APY must be non-negative", details={"apy_bps": apy_bps})

    def _touch(self, account: str) -> None:
        if self._saved is None or account in self._saved_positions:
            return
        position = self.positions.get(account)
        self._saved_positions[account] = replace(position) if position is not None else _MISSING

    def _begin(self) -> None:
        self._saved = {
            "total_staked": self.total_staked,
            "reward_reserve": self.reward_reserve,
            "apy_segments": len(self.apy_history),
            "apy_current": replace(self.apy_history[-1]),
        }
        self._saved_positions = {}

    def _commit(self) -> None:
        self._saved = None
        self._saved_positions = {}

    def _rollback(self) -> None:
        saved = self._saved
        if saved is not None:
            self.total_staked = saved["total_staked"]
            self.reward_reserve = saved["reward_reserve"]
            del self.apy_history[saved["apy_segments"]:]
            self.apy_history[-1] = saved["apy_current"]
        for account, position in self._saved_positions.items():
            if position is _MISSING:
                self.positions.pop(account, None)
            else:
                self.positions[account] = position
        self._commit()
