"""
Record arena for the pooled staking core.

Every piece of mutable staking state lives in one ``StakingStore``:
pools keyed by id, positions and cooldown locks keyed by
``(pool_id, account)``, and per-pool policy parameters. The store is
injected into the schedule manager, accumulator, position store and
withdrawal policies, so tests can build isolated ledgers.

All-or-nothing operations bracket their work with ``begin`` and
``commit``/``rollback``. While a transaction is open, the accessors
journal the original of every record they hand out, so a rollback only
restores the records that operation touched.
"""

from __future__ import annotations

from copy import deepcopy
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Optional, Tuple

from ..staking_exceptions import InvalidIdentifierError

PositionKey = Tuple[int, str]
JournalKey = Tuple[str, Any]

_MISSING = object()


@dataclass
class RewardInterval:
    """One reward campaign: total_amount emitted uniformly over [start, end)."""
    start: int
    end: int
    total_amount: int
    rate: int  # reward per second, scaled by PRECISION

    def overlap(self, t0: int, t1: int) -> int:
        """Seconds of [t0, t1) that fall inside this interval."""
        return max(0, min(t1, self.end) - max(t0, self.start))

    def is_active(self, at_time: int) -> bool:
        return self.start <= at_time < self.end


@dataclass
class Pool:
    """Reward pool with its accumulator checkpoint."""

    pool_id: int
    accumulator: int = 0  # reward per staked unit, scaled by PRECISION
    last_checkpoint: int = 0
    total_staked: int = 0
    intervals: list[RewardInterval] = field(default_factory=list)

    # Custody accounting
    total_funded: int = 0
    unallocated_rewards: int = 0  # emitted while nothing was staked
    protocol_retained: int = 0  # sanction fees

    @property
    def schedule_end(self) -> int:
        return max((interval.end for interval in self.intervals), default=0)

    @property
    def schedule_start(self) -> int:
        return min((interval.start for interval in self.intervals), default=0)


@dataclass
class Position:
    """Stakeholder position in one pool."""

    pool_id: int
    account: str
    staked_amount: int = 0
    reward_debt: int = 0  # pool accumulator at the last settle
    unclaimed_rewards: int = 0
    penalty_free_after: int = 0  # sanction policy only
    last_staked_at: int = 0


@dataclass
class CooldownLock:
    """Time-locked withdrawal queue of one stakeholder in one pool."""

    locked_amount: int = 0
    locked_period_count: int = 0
    unlock_time: int = 0  # amount-weighted over the merged withdrawals
    unlock_amount: int = 0  # matured, collectable without further cooldown
    oldest_unlock_time: int = 0  # unlock time of the first merged withdrawal

    @property
    def is_open(self) -> bool:
        return self.locked_amount > 0

    @property
    def is_empty(self) -> bool:
        return self.locked_amount == 0 and self.unlock_amount == 0


@dataclass
class SanctionTerms:
    """Early-withdrawal reward penalty of a pool."""
    fee_percentage: int
    period: int


@dataclass
class StakingStore:
    """All mutable state of a pooled staking ledger."""

    pools: Dict[int, Pool] = field(default_factory=dict)
    positions: Dict[PositionKey, Position] = field(default_factory=dict)
    cooldown_locks: Dict[PositionKey, CooldownLock] = field(default_factory=dict)
    cooldown_periods: Dict[int, int] = field(default_factory=dict)
    sanctions: Dict[int, SanctionTerms] = field(default_factory=dict)
    next_pool_id: int = 1

    _journal: Optional[Dict[JournalKey, Any]] = field(
        default=None, init=False, repr=False, compare=False
    )

    # ==================== Lookups ====================

    def get_pool(self, pool_id: int) -> Pool:
        """
        Get a configured pool.

        Raises:
            InvalidIdentifierError: For pool id 0 or an unknown id
        """
        pool = self.pools.get(pool_id) if pool_id else None
        if pool is None:
            raise InvalidIdentifierError(
                f"Incorrect pool id {pool_id}", details={"pool_id": pool_id}
            )
        self._touch("pools", pool_id)
        return pool

    def find_position(self, pool_id: int, account: str) -> Position | None:
        key = (pool_id, account.lower())
        if key in self.positions:
            self._touch("positions", key)
        return self.positions.get(key)

    def position(self, pool_id: int, account: str) -> Position:
        """Get a position, creating an empty one on first use."""
        key = (pool_id, account.lower())
        self._touch("positions", key)
        position = self.positions.get(key)
        if position is None:
            position = Position(pool_id=pool_id, account=key[1])
            self.positions[key] = position
        return position

    def find_cooldown_lock(self, pool_id: int, account: str) -> CooldownLock | None:
        key = (pool_id, account.lower())
        if key in self.cooldown_locks:
            self._touch("cooldown_locks", key)
        return self.cooldown_locks.get(key)

    def cooldown_lock(self, pool_id: int, account: str) -> CooldownLock:
        key = (pool_id, account.lower())
        self._touch("cooldown_locks", key)
        lock = self.cooldown_locks.get(key)
        if lock is None:
            lock = CooldownLock()
            self.cooldown_locks[key] = lock
        return lock

    def reset_cooldown_lock(self, pool_id: int, account: str) -> None:
        key = (pool_id, account.lower())
        self._touch("cooldown_locks", key)
        self.cooldown_locks[key] = CooldownLock()

    def cooldown_period(self, pool_id: int) -> int:
        return self.cooldown_periods.get(pool_id, 0)

    def set_cooldown_period(self, pool_id: int, period: int) -> None:
        self._touch("cooldown_periods", pool_id)
        self.cooldown_periods[pool_id] = period

    def sanction_terms(self, pool_id: int) -> SanctionTerms | None:
        return self.sanctions.get(pool_id)

    def set_sanction_terms(self, pool_id: int, terms: SanctionTerms) -> None:
        self._touch("sanctions", pool_id)
        self.sanctions[pool_id] = terms

    def allocate_pool(self) -> Pool:
        pool_id = self.next_pool_id
        if self._journal is not None and ("next_pool_id", None) not in self._journal:
            self._journal[("next_pool_id", None)] = pool_id
        self._touch("pools", pool_id)
        pool = Pool(pool_id=pool_id)
        self.pools[pool_id] = pool
        self.next_pool_id += 1
        return pool

    # ==================== Transactions ====================

    def begin(self) -> None:
        """Start journaling the records handed out by the accessors."""
        self._journal = {}

    def commit(self) -> None:
        self._journal = None

    def rollback(self) -> None:
        """Put back the original of every record touched since begin()."""
        journal, self._journal = self._journal, None
        if not journal:
            return
        for (table, key), original in journal.items():
            if table == "next_pool_id":
                self.next_pool_id = original
                continue
            records = getattr(self, table)
            if original is _MISSING:
                records.pop(key, None)
            else:
                records[key] = original

    def _touch(self, table: str, key: Any) -> None:
        if self._journal is None or (table, key) in self._journal:
            return
        record = getattr(self, table).get(key, _MISSING)
        self._journal[(table, key)] = record if record is _MISSING else deepcopy(record)

    # ==================== Serialization ====================

    def to_dict(self) -> Dict[str, Any]:
        """JSON-safe view of the persisted state layout."""
        return {
            "next_pool_id": self.next_pool_id,
            "pools": [asdict(pool) for pool in self.pools.values()],
            "positions": [asdict(position) for position in self.positions.values()],
            "cooldown_locks": [
                {"pool_id": pool_id, "account": account, **asdict(lock)}
                for (pool_id, account), lock in self.cooldown_locks.items()
            ],
            "cooldown_periods": {str(k): v for k, v in self.cooldown_periods.items()},
            "sanctions": {str(k): asdict(v) for k, v in self.sanctions.items()},
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StakingStore":
        store = cls(next_pool_id=int(data.get("next_pool_id", 1)))
        for raw in data.get("pools", []):
            raw = dict(raw)
            intervals = [RewardInterval(**interval) for interval in raw.pop("intervals", [])]
            pool = Pool(intervals=intervals, **raw)
            store.pools[pool.pool_id] = pool
        for raw in data.get("positions", []):
            position = Position(**raw)
            store.positions[(position.pool_id, position.account)] = position
        for raw in data.get("cooldown_locks", []):
            raw = dict(raw)
            key = (int(raw.pop("pool_id")), raw.pop("account"))
            store.cooldown_locks[key] = CooldownLock(**raw)
        store.cooldown_periods = {int(k): int(v) for k, v in data.get("cooldown_periods", {}).items()}
        store.sanctions = {
            int(k): SanctionTerms(**v) for k, v in data.get("sanctions", {}).items()
        }
        return store
