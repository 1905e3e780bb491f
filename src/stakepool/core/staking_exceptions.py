"""
Staking-specific exception hierarchy for stakepool.

Provides typed exceptions for every rejected precondition so callers can
tell apart a bad pool id, a bad amount, a bad schedule, a policy that is
not yet satisfied, and so on. Every exception carries a human-readable
message plus a ``details`` dict with the offending values.
"""

from __future__ import annotations
from typing import Optional, Any, Dict


class StakingError(Exception):
    """Base exception for all staking ledger errors.

    Attributes:
        message: Human-readable error description
        details: Additional context about the error
    """

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    @property
    def kind(self) -> str:
        """Short error kind used for metrics labels."""
        return type(self).__name__


# ==================== Input Errors ====================


class InvalidIdentifierError(StakingError):
    """Raised for a zero or unknown pool id."""
    pass


class InvalidAmountError(StakingError):
    """Raised for a zero amount or an amount above the available balance."""
    pass


class NotStakeholderError(InvalidAmountError):
    """Raised when the caller has no position in the pool."""
    pass


class InsufficientCustodyError(InvalidAmountError):
    """Raised when the custody balance cannot cover a payout."""
    pass


class InvalidAddressError(StakingError):
    """Raised when a zero-valued account reference is given."""
    pass


# ==================== Schedule Errors ====================


class InvalidScheduleError(StakingError):
    """Raised for a bad start time, zero duration or zero reward amount."""
    pass


class StakingWindowClosedError(InvalidScheduleError):
    """Raised when staking into a pool whose last reward interval has ended."""
    pass


# ==================== Policy Errors ====================


class InvalidPolicyParameterError(StakingError):
    """Raised for a cooldown period or sanction fee outside its allowed range."""
    pass


class PolicyNotSatisfiedError(StakingError):
    """Raised when the withdrawal policy does not allow the operation yet."""
    pass


class EarlyWithdrawError(PolicyNotSatisfiedError):
    """Raised when collecting a cooldown lock before it has matured."""

    def __init__(
        self,
        message: str,
        unlock_time: Optional[int] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, **kwargs)
        self.unlock_time = unlock_time


class UnauthorizedError(StakingError):
    """Raised when a non-privileged caller invokes a privileged operation."""
    pass


# ==================== Infrastructure Errors ====================


class LedgerError(StakingError):
    """Raised when the external asset ledger rejects a transfer."""
    pass


class ReentrantCallError(StakingError):
    """Raised when an operation is entered while another one is in flight."""
    pass
