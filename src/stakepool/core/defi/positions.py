"""Stakeholder Position Store: settles positions against the pool accumulator."""

from __future__ import annotations

import logging

from ..config import PRECISION
from .accumulator import AccrualAccumulator
from .safe_math import mul_div
from .store import Position, StakingStore

logger = logging.getLogger(__name__)


class PositionStore:
    def __init__(self, store: StakingStore, accumulator: AccrualAccumulator):
        self.store = store
        self.accumulator = accumulator

    def settle(self, pool_id: int, account: str, at_time: int) -> int:
        """
        Bring a position up to date with its pool.

        Checkpoints the pool, credits the reward earned since the last
        settle to ``unclaimed_rewards`` and moves the position's debt to the
        current accumulator.

        Returns:
            Reward newly credited by this settle
        """
        acc = self.accumulator.checkpoint(pool_id, at_time)
        position = self.store.position(pool_id, account)
        owed = self._owed(position, acc)
        if owed:
            position.unclaimed_rewards += owed
        position.reward_debt = acc
        return owed

    def pending_rewards(self, pool_id: int, account: str, at_time: int) -> int:
        """Claimable reward of a position as of at_time, without settling."""
        position = self.store.find_position(pool_id, account)
        if position is None:
            self.store.get_pool(pool_id)
            return 0
        acc = self.accumulator.preview(pool_id, at_time)
        return position.unclaimed_rewards + self._owed(position, acc)

    def staked_amount(self, pool_id: int, account: str) -> int:
        position = self.store.find_position(pool_id, account)
        return position.staked_amount if position else 0

    @staticmethod
    def _owed(position: Position, acc: int) -> int:
        if position.staked_amount == 0:
            return 0
        return mul_div(position.staked_amount, acc - position.reward_debt, PRECISION)
