"""
Accrual Accumulator.

Keeps one monotone reward-per-staked-unit value per pool, in the same
spirit as fee growth accounting in concentrated liquidity pools: the
accumulator is advanced lazily on every state change, and each position
only remembers the value it last settled at.
"""

from __future__ import annotations

import logging

from ..config import PRECISION
from .reward_schedule import RewardScheduleManager
from .store import Pool, StakingStore

logger = logging.getLogger(__name__)


class AccrualAccumulator:
    def __init__(self, store: StakingStore, schedule: RewardScheduleManager):
        self.store = store
        self.schedule = schedule

    def checkpoint(self, pool_id: int, at_time: int) -> int:
        """
        Advance a pool's accumulator to at_time.

        Emission over [last_checkpoint, at_time) is spread over the current
        total stake. With nothing staked the emission cannot be attributed
        to anyone and is booked as unallocated. Calling again at the same
        (or an earlier) time changes nothing.

        Returns:
            The accumulator value after the checkpoint
        """
        pool = self.store.get_pool(pool_id)
        if at_time <= pool.last_checkpoint:
            return pool.accumulator

        emitted = self.schedule.emitted_between(pool_id, pool.last_checkpoint, at_time)
        if emitted:
            if pool.total_staked > 0:
                pool.accumulator += emitted // pool.total_staked
            else:
                pool.unallocated_rewards += emitted // PRECISION
                logger.debug(
                    "Emission with empty pool left unallocated",
                    extra={
                        "event": "accumulator.unallocated",
                        "pool_id": pool_id,
                        "from": pool.last_checkpoint,
                        "to": at_time,
                        "amount": emitted // PRECISION,
                    }
                )
        pool.last_checkpoint = at_time
        return pool.accumulator

    def preview(self, pool_id: int, at_time: int) -> int:
        """Accumulator value a checkpoint at at_time would produce."""
        pool = self.store.get_pool(pool_id)
        return self._projected(pool, at_time)

    def _projected(self, pool: Pool, at_time: int) -> int:
        if at_time <= pool.last_checkpoint or pool.total_staked == 0:
            return pool.accumulator
        emitted = self.schedule.emitted_between(pool.pool_id, pool.last_checkpoint, at_time)
        return pool.accumulator + emitted // pool.total_staked
