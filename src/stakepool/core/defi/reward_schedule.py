"""
Reward Schedule Manager.

Owns the reward intervals of every pool. Each interval emits its
``total_amount`` uniformly over ``[start, end)``; intervals of one pool may
overlap, in which case their rates add up. Rates are stored scaled by
``PRECISION`` so that integrating them over any sub-range loses at most
one unit per interval.
"""

from __future__ import annotations

import logging

from ..config import PRECISION
from ..staking_exceptions import InvalidScheduleError
from .safe_math import from_scaled, to_rate
from .store import Pool, RewardInterval, StakingStore

logger = logging.getLogger(__name__)


class RewardScheduleManager:
    """Creates pools and answers rate queries over their reward intervals."""

    def __init__(self, store: StakingStore):
        self.store = store

    def configure(
        self,
        start_time: int,
        duration: int,
        total_amount: int,
        now: int,
        pool_id: int | None = None,
    ) -> int:
        """
        Register a reward interval.

        Args:
            start_time: First second of emission, must not be in the past
            duration: Length of the interval in seconds
            total_amount: Reward emitted over the whole interval
            now: Current time
            pool_id: Existing pool to add a concurrent interval to, or None
                to open a new pool

        Returns:
            The pool id the interval belongs to

        Raises:
            InvalidScheduleError: Past start, zero duration or zero amount
            InvalidIdentifierError: Unknown pool_id
        """
        if start_time < now:
            raise InvalidScheduleError(
                "Start time is in the past",
                details={"start_time": start_time, "now": now},
            )
        if duration <= 0:
            raise InvalidScheduleError("Duration must be positive", details={"duration": duration})
        if total_amount <= 0:
            raise InvalidScheduleError(
                "Reward amount must be positive", details={"total_amount": total_amount}
            )

        pool = self.store.get_pool(pool_id) if pool_id is not None else self.store.allocate_pool()

        if not pool.intervals:
            pool.last_checkpoint = now

        interval = RewardInterval(
            start=start_time,
            end=start_time + duration,
            total_amount=total_amount,
            rate=to_rate(total_amount, duration),
        )
        pool.intervals.append(interval)
        pool.total_funded += total_amount

        logger.info(
            "Reward interval configured",
            extra={
                "event": "schedule.configured",
                "pool_id": pool.pool_id,
                "start": interval.start,
                "end": interval.end,
                "total_amount": total_amount,
                "rate": interval.rate,
            }
        )
        return pool.pool_id

    def effective_rate(self, pool_id: int, at_time: int) -> int:
        """Scaled reward rate of a pool at an instant (0 outside every interval)."""
        pool = self.store.get_pool(pool_id)
        return sum(i.rate for i in pool.intervals if i.is_active(at_time))

    def emitted_between(self, pool_id: int, t0: int, t1: int) -> int:
        """Scaled reward emitted by a pool over [t0, t1)."""
        if t1 <= t0:
            return 0
        return self._emitted(self.store.get_pool(pool_id), t0, t1)

    def schedule_end(self, pool_id: int) -> int:
        return self.store.get_pool(pool_id).schedule_end

    def rewards_per_second(self, pool_id: int, at_time: int) -> int:
        """Unscaled view of effective_rate."""
        return from_scaled(self.effective_rate(pool_id, at_time))

    def total_emission(self, pool_id: int) -> int:
        """Reward a pool emits over its whole schedule, in reward units."""
        pool = self.store.get_pool(pool_id)
        return sum(i.rate * (i.end - i.start) for i in pool.intervals) // PRECISION

    @staticmethod
    def _emitted(pool: Pool, t0: int, t1: int) -> int:
        return sum(i.rate * i.overlap(t0, t1) for i in pool.intervals)
