"""
ERC20-style fungible assets and the custody ledger used by the staking cores.

The staking cores never hold balances themselves; they instruct an
``AssetLedger`` to move the staked and reward assets in and out of their
custody address. This module provides:
- ERC20Token: in-memory fungible token (balances, mint, transfer)
- AssetLedger: the protocol the cores depend on
- TokenLedger: AssetLedger over a set of ERC20Token instances, bound to
  one custodian address

Security features:
- Zero address checks on all operations
- Balance underflow prevention
- uint256 amount bounds
"""

from __future__ import annotations

import hashlib
import logging
import time
from dataclasses import dataclass, field
from typing import Dict, Protocol, runtime_checkable

from ..config import ZERO_ADDRESS
from ..staking_exceptions import LedgerError

logger = logging.getLogger(__name__)


@dataclass
class ERC20Token:
    """
    In-memory fungible token.

    All balances are stored in-memory; every failed operation raises
    LedgerError before touching any balance.
    """

    # Token metadata
    name: str
    symbol: str
    decimals: int = 18
    total_supply: int = 0

    # Contract address
    address: str = ""

    # Owner (for minting permissions)
    owner: str = ""

    # State
    balances: dict[str, int] = field(default_factory=dict)

    # Constants
    UINT256_MAX: int = 2**256 - 1

    def __post_init__(self) -> None:
        """Initialize token after dataclass creation."""
        if not self.address:
            addr_input = f"{self.name}{self.symbol}{time.time()}".encode()
            addr_hash = hashlib.sha3_256(addr_input).digest()
            self.address = f"0x{addr_hash[-20:].hex()}"
        self.address = self._normalize(self.address)

    # ==================== View Functions ====================

    def balance_of(self, account: str) -> int:
        """
        Get the token balance of an account.

        Args:
            account: Address to check

        Returns:
            Token balance
        """
        return self.balances.get(self._normalize(account), 0)

    # ==================== State-Changing Functions ====================

    def transfer(self, sender: str, recipient: str, amount: int) -> bool:
        """
        Transfer tokens from sender to recipient.

        Args:
            sender: Address sending tokens
            recipient: Address receiving tokens
            amount: Amount to transfer

        Returns:
            True if successful

        Raises:
            LedgerError: If transfer fails
        """
        sender_norm = self._normalize(sender)
        recipient_norm = self._normalize(recipient)

        self._validate_address(sender_norm, "sender")
        self._validate_address(recipient_norm, "recipient")
        self._validate_amount(amount)

        sender_balance = self.balances.get(sender_norm, 0)
        if sender_balance < amount:
            raise LedgerError(
                f"{self.symbol}: transfer amount exceeds balance "
                f"({amount} > {sender_balance})",
                details={"token": self.symbol, "from": sender_norm, "amount": amount},
            )

        self.balances[sender_norm] = sender_balance - amount
        self.balances[recipient_norm] = self.balances.get(recipient_norm, 0) + amount

        logger.debug(
            "ERC20 transfer",
            extra={
                "event": "erc20.transfer",
                "token": self.symbol,
                "from": sender_norm[:10],
                "to": recipient_norm[:10],
                "amount": amount,
            }
        )

        return True

    # ==================== Minting ====================

    def mint(self, minter: str, to: str, amount: int) -> bool:
        """
        Mint new tokens (owner only).

        Raises:
            LedgerError: If minting fails
        """
        self._require_owner(minter)

        to_norm = self._normalize(to)
        self._validate_address(to_norm, "recipient")
        self._validate_amount(amount)

        self.total_supply += amount
        self.balances[to_norm] = self.balances.get(to_norm, 0) + amount

        logger.info(
            "ERC20 mint",
            extra={
                "event": "erc20.mint",
                "token": self.symbol,
                "to": to_norm[:10],
                "amount": amount,
                "new_supply": self.total_supply,
            }
        )

        return True

    # ==================== Helpers ====================

    def _normalize(self, address: str) -> str:
        """Normalize address to lowercase."""
        return address.lower()

    def _validate_address(self, address: str, field: str) -> None:
        """Validate address is not zero."""
        if address == ZERO_ADDRESS or not address:
            raise LedgerError(f"{self.symbol}: {field} is zero address")

    def _validate_amount(self, amount: int) -> None:
        if not isinstance(amount, int) or amount < 0:
            raise LedgerError(f"{self.symbol}: amount must be a non-negative integer")
        if amount > self.UINT256_MAX:
            raise LedgerError(f"{self.symbol}: amount exceeds uint256")

    def _require_owner(self, caller: str) -> None:
        if self._normalize(caller) != self._normalize(self.owner):
            raise LedgerError(f"{self.symbol}: caller is not owner")

    # ==================== Serialization ====================

    def to_dict(self) -> Dict:
        """Serialize token state to dictionary."""
        return {
            "name": self.name,
            "symbol": self.symbol,
            "decimals": self.decimals,
            "total_supply": self.total_supply,
            "address": self.address,
            "owner": self.owner,
            "balances": dict(self.balances),
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "ERC20Token":
        """Deserialize token state from dictionary."""
        token = cls(
            name=data["name"],
            symbol=data["symbol"],
            decimals=data.get("decimals", 18),
            total_supply=data.get("total_supply", 0),
            address=data.get("address", ""),
            owner=data.get("owner", ""),
        )
        token.balances = dict(data.get("balances", {}))
        return token


@runtime_checkable
class AssetLedger(Protocol):
    """Custody operations the staking cores delegate to."""

    custodian: str

    def transfer_in(self, asset: str, sender: str, amount: int) -> None:
        ...

    def transfer_out(self, asset: str, recipient: str, amount: int) -> None:
        ...

    def balance_of(self, asset: str, holder: str) -> int:
        ...


class TokenLedger:
    """
    AssetLedger over ERC20Token instances, bound to a custodian address.

    Assets are referenced by token address. ``transfer_in`` moves funds
    from a holder into the custodian; ``transfer_out`` pays a holder from
    the custodian.

    Usage:
        staked = ERC20Token(name="Staked", symbol="STK", owner="0xowner")
        ledger = TokenLedger(custodian="0xpool", tokens=[staked, reward])
        ledger.transfer_in(staked.address, "0xalice", 100)
    """

    def __init__(self, custodian: str, tokens: list[ERC20Token] | None = None):
        if not custodian or custodian.lower() == ZERO_ADDRESS:
            raise LedgerError("TokenLedger: custodian is zero address")
        self.custodian = custodian.lower()
        self.tokens: dict[str, ERC20Token] = {}
        for token in tokens or []:
            self.register_token(token)

    def register_token(self, token: ERC20Token) -> None:
        self.tokens[token.address] = token

    def token(self, asset: str) -> ERC20Token:
        token = self.tokens.get(asset.lower())
        if token is None:
            raise LedgerError(f"Unknown asset {asset}", details={"asset": asset})
        return token

    def transfer_in(self, asset: str, sender: str, amount: int) -> None:
        self.token(asset).transfer(sender, self.custodian, amount)

    def transfer_out(self, asset: str, recipient: str, amount: int) -> None:
        self.token(asset).transfer(self.custodian, recipient, amount)

    def balance_of(self, asset: str, holder: str) -> int:
        return self.token(asset).balance_of(holder)
