"""
All-or-nothing execution for the staking cores.

A core mixes in ``AtomicOperations`` and implements ``_begin``,
``_commit`` and ``_rollback``. Public operations then run inside
``self._atomic(name)``:

- the instance RLock serializes callers; nested entry from the same
  thread (for example a ledger callback) raises ReentrantCallError
- the core journals the records it touches and rolls them back if
  anything raises
- asset transfers requested through ``_transfer_in``/``_transfer_out``
  are queued and sent to the ledger only once the bookkeeping succeeded;
  the whole batch is checked against ledger balances first, and transfers
  already sent are reversed if a later one still fails
- metric updates are deferred the same way and dropped on failure; their
  series are labelled with the instance ``label``
"""

from __future__ import annotations

import itertools
import logging
import threading
import time
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, Tuple

from .. import staking_metrics
from ..config import ZERO_ADDRESS
from ..contracts.erc20 import AssetLedger
from ..staking_exceptions import (
    InvalidAddressError,
    LedgerError,
    ReentrantCallError,
    StakingError,
)

logger = logging.getLogger(__name__)

Transfer = Tuple[str, str, str, int]

_instance_ids = itertools.count(1)


class AtomicOperations:
    ledger: AssetLedger
    metrics_enabled: bool = True
    label: str
    _time_provider: Callable[[], int]

    def _init_atomic(
        self, time_provider: Callable[[], int] | None = None, label: str | None = None
    ) -> None:
        self.label = label or f"{type(self).__name__.lower()}-{next(_instance_ids)}"
        self._time_provider = time_provider or (lambda: int(time.time()))
        self._lock = threading.RLock()
        self._locked = False
        self._pending_transfers: list[Transfer] = []
        self._pending_metrics: list[tuple[Callable[..., None], tuple]] = []

    def _begin(self) -> None:
        raise NotImplementedError

    def _commit(self) -> None:
        raise NotImplementedError

    def _rollback(self) -> None:
        raise NotImplementedError

    def _now(self) -> int:
        timestamp = self._time_provider()
        try:
            return int(timestamp)
        except (TypeError, ValueError) as exc:
            raise ValueError("time_provider must return an integer timestamp") from exc

    @staticmethod
    def _require_address(address: str, field: str) -> str:
        normalized = (address or "").lower()
        if not normalized or normalized == ZERO_ADDRESS:
            raise InvalidAddressError(f"{field} is zero address", details={"field": field})
        return normalized

    def _transfer_in(self, asset: str, sender: str, amount: int) -> None:
        self._pending_transfers.append(("in", asset, sender.lower(), amount))

    def _transfer_out(self, asset: str, recipient: str, amount: int) -> None:
        self._pending_transfers.append(("out", asset, recipient.lower(), amount))

    def _record_metric(self, recorder: Callable[..., None], *args: Any) -> None:
        self._pending_metrics.append((recorder, args))

    def _check_transfers(self, transfers: list[Transfer]) -> None:
        """
        Replay a batch of transfers against current ledger balances.

        Raises:
            LedgerError: Some transfer in the batch would overdraw its payer
        """
        custodian = self.ledger.custodian
        balances: Dict[Tuple[str, str], int] = {}

        def balance(asset: str, holder: str) -> int:
            key = (asset, holder)
            if key not in balances:
                balances[key] = self.ledger.balance_of(asset, holder)
            return balances[key]

        for direction, asset, account, amount in transfers:
            payer, payee = (account, custodian) if direction == "in" else (custodian, account)
            available = balance(asset, payer)
            if available < amount:
                raise LedgerError(
                    "Insufficient balance for asset transfer",
                    details={
                        "asset": asset,
                        "payer": payer,
                        "amount": amount,
                        "available": available,
                    },
                )
            balances[(asset, payer)] = available - amount
            balances[(asset, payee)] = balance(asset, payee) + amount

    def _send(self, direction: str, asset: str, account: str, amount: int) -> None:
        if direction == "in":
            self.ledger.transfer_in(asset, account, amount)
        else:
            self.ledger.transfer_out(asset, account, amount)

    def _flush_transfers(self) -> None:
        transfers, self._pending_transfers = self._pending_transfers, []
        if not transfers:
            return
        self._check_transfers(transfers)

        sent: list[Transfer] = []
        for transfer in transfers:
            direction, asset, account, amount = transfer
            try:
                self._send(direction, asset, account, amount)
            except Exception as exc:
                self._reverse(sent)
                if isinstance(exc, StakingError):
                    raise
                raise LedgerError(
                    f"Asset transfer failed: {exc}",
                    details={"asset": asset, "account": account, "amount": amount},
                ) from exc
            sent.append(transfer)

    def _reverse(self, sent: list[Transfer]) -> None:
        for direction, asset, account, amount in reversed(sent):
            try:
                self._send("out" if direction == "in" else "in", asset, account, amount)
            except Exception as exc:
                logger.critical(
                    "Could not reverse asset transfer",
                    extra={
                        "event": "staking.transfer_reversal_failed",
                        "asset": asset[:10],
                        "account": account[:10],
                        "amount": amount,
                        "direction": direction,
                    }
                )
                raise LedgerError(
                    f"Could not reverse asset transfer: {exc}",
                    details={"asset": asset, "account": account, "amount": amount},
                ) from exc

    @contextmanager
    def _atomic(self, operation: str) -> Iterator[None]:
        with self._lock:
            if self._locked:
                raise ReentrantCallError(
                    f"Reentrant call to {operation}", details={"operation": operation}
                )
            self._locked = True
            self._begin()
            self._pending_transfers = []
            self._pending_metrics = []
            try:
                yield
                self._flush_transfers()
            except StakingError as exc:
                self._rollback()
                if self.metrics_enabled:
                    staking_metrics.record_rejection(operation, exc.kind)
                logger.warning(
                    "Staking operation rejected: %s",
                    exc.message,
                    extra={
                        "event": "staking.rejected",
                        "operation": operation,
                        "kind": exc.kind,
                    }
                )
                raise
            except Exception:
                self._rollback()
                raise
            else:
                self._commit()
                if self.metrics_enabled:
                    for recorder, args in self._pending_metrics:
                        recorder(*args)
            finally:
                self._pending_transfers = []
                self._pending_metrics = []
                self._locked = False
