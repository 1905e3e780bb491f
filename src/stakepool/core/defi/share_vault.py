"""
Share Vault.

Represents staked principal and accrued yield as one fungible share
balance. Rewards accrue into ``total_underlying`` at a fixed rate until
``period_finish``, so the value of every share grows over time while
share balances stay constant.

Rounding always favours the vault: shares minted on stake and underlying
paid on withdraw are rounded down.

Rewards emitted while no shares exist are not added to the underlying;
they are counted in ``unallocated_rewards`` so the next depositor does
not receive them.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict

from ..config import PRECISION
from ..contracts.erc20 import AssetLedger
from ..staking_exceptions import (
    InsufficientCustodyError,
    InvalidAmountError,
    InvalidScheduleError,
)
from .. import staking_metrics
from .access_control import AccessGate, require_operator
from .atomic import AtomicOperations
from .safe_math import from_scaled, mul_div, to_rate

logger = logging.getLogger(__name__)

_MISSING = object()

_SCALAR_FIELDS = (
    "total_shares",
    "total_underlying",
    "rate",
    "period_finish",
    "last_accrual",
    "unallocated_rewards",
)


class ShareVault(AtomicOperations):
    """
    Single-asset staking vault issuing yield-bearing shares.

    Usage:
        vault = ShareVault(staked_asset=stk.address, ledger=ledger, access=rbac)
        vault.set_rewards("0xowner", 40 * ONE_DAY, 1000 * 10**18)
        shares = vault.stake("0xalice", 500 * 10**18)
        vault.withdraw("0xalice", shares)
    """

    def __init__(
        self,
        staked_asset: str,
        ledger: AssetLedger,
        access: AccessGate,
        name: str = "Staked Share",
        symbol: str = "STK",
        time_provider: Callable[[], int] | None = None,
        metrics_enabled: bool = True,
        label: str | None = None,
    ):
        self.staked_asset = self._require_address(staked_asset, "staked asset")
        self.ledger = ledger
        self.access = access
        self.name = name
        self.symbol = symbol
        self.metrics_enabled = metrics_enabled
        self._init_atomic(time_provider, label)

        # Share balances and net deposits per account
        self.balances: Dict[str, int] = {}
        self.deposits: Dict[str, int] = {}

        self.total_shares = 0
        self.total_underlying = 0
        self.unallocated_rewards = 0  # emitted while no shares existed

        # Reward stream, rate scaled by PRECISION
        self.rate = 0
        self.period_finish = 0
        self.last_accrual = self._now()

        self._saved_scalars: Dict[str, int] | None = None
        self._saved_accounts: Dict[str, tuple] = {}

    # ==================== Operator Functions ====================

    def set_rewards(self, caller: str, interval: int, total_amount: int) -> int:
        """
        Start a new reward stream, replacing the current one from now on.

        Returns:
            Rewards per second (unscaled)

        Raises:
            UnauthorizedError: Caller is not an operator
            InvalidScheduleError: Zero interval or zero amount
        """
        with self._atomic("vault_set_rewards"):
            require_operator(self.access, caller, "set_rewards")
            if interval <= 0:
                raise InvalidScheduleError("Invalid rewards interval", details={"interval": interval})
            if total_amount <= 0:
                raise InvalidScheduleError("Zero rewards amount", details={"total_amount": total_amount})

            now = self._now()
            self.accrue(now)
            self.rate = to_rate(total_amount, interval)
            self.period_finish = now + interval
            self.last_accrual = now
            self._transfer_in(self.staked_asset, caller, total_amount)

        logger.info(
            "Vault rewards set",
            extra={
                "event": "vault.rewards_set",
                "interval": interval,
                "total_amount": total_amount,
                "rewards_per_second": self.rewards_per_second,
                "period_finish": self.period_finish,
            }
        )
        return self.rewards_per_second

    # ==================== Accrual ====================

    def accrue(self, at_time: int) -> int:
        """
        Add rewards emitted since the last accrual to the underlying total.

        With no shares outstanding the emission goes to
        ``unallocated_rewards`` instead.

        Returns:
            Underlying added
        """
        elapsed = min(at_time, self.period_finish) - self.last_accrual
        added = 0
        if elapsed > 0 and self.rate:
            emitted = from_scaled(elapsed * self.rate)
            if self.total_shares == 0:
                self.unallocated_rewards += emitted
            else:
                added = emitted
                self.total_underlying += added
        if at_time > self.last_accrual:
            self.last_accrual = at_time
        return added

    def _accrued_underlying(self, at_time: int) -> int:
        elapsed = min(at_time, self.period_finish) - self.last_accrual
        if elapsed <= 0 or self.total_shares == 0:
            return self.total_underlying
        return self.total_underlying + from_scaled(elapsed * self.rate)

    # ==================== Stakeholder Functions ====================

    def stake(self, caller: str, amount: int) -> int:
        """
        Deposit the staked asset and receive shares.

        Returns:
            Shares minted

        Raises:
            InvalidAmountError: Zero amount, or too small to mint one share
        """
        with self._atomic("vault_stake"):
            shares = self._stake(caller, caller.lower(), amount)
        return shares

    def stake_for(self, caller: str, beneficiary: str, amount: int) -> int:
        """Deposit caller's funds and credit the shares to beneficiary."""
        with self._atomic("vault_stake_for"):
            beneficiary = self._require_address(beneficiary, "beneficiary")
            shares = self._stake(caller, beneficiary, amount)
        return shares

    def withdraw(self, caller: str, shares: int) -> int:
        """
        Burn shares and receive their underlying value.

        Returns:
            Underlying paid out

        Raises:
            InvalidAmountError: Zero shares or more than the balance
            InsufficientCustodyError: Custody cannot back the remaining shares
        """
        with self._atomic("vault_withdraw"):
            account = caller.lower()
            if not isinstance(shares, int) or shares <= 0:
                raise InvalidAmountError("Zero amount", details={"shares": shares})
            balance = self.balances.get(account, 0)
            if shares > balance:
                raise InvalidAmountError(
                    "Invalid amount to withdraw",
                    details={"shares": shares, "balance": balance},
                )

            self.accrue(self._now())
            underlying = mul_div(shares, self.total_underlying, self.total_shares)

            custody = self.ledger.balance_of(self.staked_asset, self.ledger.custodian)
            if custody - underlying < self.total_underlying - underlying:
                raise InsufficientCustodyError(
                    "Invalid balance of staked tokens",
                    details={"custody": custody, "total_underlying": self.total_underlying},
                )

            self._touch(account)
            deposit = self.deposits.get(account, 0)
            self.deposits[account] = deposit - mul_div(deposit, shares, balance)
            self.balances[account] = balance - shares
            self.total_shares -= shares
            self.total_underlying -= underlying
            self._transfer_out(self.staked_asset, account, underlying)
            self._record_metric(
                staking_metrics.update_vault_underlying, self.label, self.total_underlying
            )

        logger.info(
            "Vault withdrawal",
            extra={
                "event": "vault.withdrawn",
                "account": account[:10],
                "shares": shares,
                "underlying": underlying,
            }
        )
        return underlying

    # ==================== View Functions ====================

    @property
    def rewards_per_second(self) -> int:
        return from_scaled(self.rate)

    def balance_of(self, account: str) -> int:
        return self.balances.get(account.lower(), 0)

    def convert_to_shares(self, amount: int) -> int:
        """Shares a stake of amount would mint now."""
        with self._lock:
            underlying = self._accrued_underlying(self._now())
            if self.total_shares == 0:
                return amount
            return mul_div(amount, self.total_shares, underlying)

    def convert_to_staked_tokens(self, shares: int) -> int:
        """Underlying a withdrawal of shares would pay now."""
        with self._lock:
            underlying = self._accrued_underlying(self._now())
            if self.total_shares == 0:
                return shares
            return mul_div(shares, underlying, self.total_shares)

    def staked_tokens_of(self, account: str) -> int:
        return self.convert_to_staked_tokens(self.balance_of(account))

    def rewards_of(self, account: str) -> int:
        """Value of an account's shares above what it deposited."""
        value = self.staked_tokens_of(account)
        return max(0, value - self.deposits.get(account.lower(), 0))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "symbol": self.symbol,
            "staked_asset": self.staked_asset,
            "balances": dict(self.balances),
            "deposits": dict(self.deposits),
            "total_shares": self.total_shares,
            "total_underlying": self.total_underlying,
            "rate": self.rate,
            "period_finish": self.period_finish,
            "last_accrual": self.last_accrual,
            "unallocated_rewards": self.unallocated_rewards,
        }

    # ==================== Internal Functions ====================

    def _stake(self, funder: str, beneficiary: str, amount: int) -> int:
        if not isinstance(amount, int) or amount <= 0:
            raise InvalidAmountError("Zero amount", details={"amount": amount})

        self.accrue(self._now())
        if self.total_shares == 0:
            shares = amount
        else:
            shares = mul_div(amount, self.total_shares, self.total_underlying)
        if shares == 0:
            raise InvalidAmountError(
                "Amount too small to mint shares", details={"amount": amount}
            )

        self._touch(beneficiary)
        self.balances[beneficiary] = self.balances.get(beneficiary, 0) + shares
        self.deposits[beneficiary] = self.deposits.get(beneficiary, 0) + amount
        self.total_shares += shares
        self.total_underlying += amount
        self._transfer_in(self.staked_asset, funder, amount)
        self._record_metric(
            staking_metrics.update_vault_underlying, self.label, self.total_underlying
        )

        logger.info(
            "Vault stake",
            extra={
                "event": "vault.staked",
                "account": beneficiary[:10],
                "funder": funder.lower()[:10],
                "amount": amount,
                "shares": shares,
            }
        )
        return shares

    def _touch(self, account: str) -> None:
        if self._saved_scalars is None or account in self._saved_accounts:
            return
        self._saved_accounts[account] = (
            self.balances.get(account, _MISSING),
            self.deposits.get(account, _MISSING),
        )

    def _begin(self) -> None:
        self._saved_scalars = {name: getattr(self, name) for name in _SCALAR_FIELDS}
        self._saved_accounts = {}

    def _commit(self) -> None:
        self._saved_scalars = None
        self._saved_accounts = {}

    def _rollback(self) -> None:
        if self._saved_scalars is not None:
            for name, value in self._saved_scalars.items():
                setattr(self, name, value)
        for account, saved in self._saved_accounts.items():
            for records, value in zip((self.balances, self.deposits), saved):
                if value is _MISSING:
                    records.pop(account, None)
                else:
                    records[account] = value
        self._commit()
