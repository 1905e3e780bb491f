"""
Tests for the early-withdrawal sanction policy.
"""
import pytest

from stakepool.core.config import SANCTION_FEE_PRECISION, ZERO_ADDRESS, PolicyKind
from stakepool.core.defi.safe_math import fee_amount
from stakepool.core.staking_exceptions import (
    InvalidAddressError,
    InvalidAmountError,
    InvalidIdentifierError,
    InvalidPolicyParameterError,
    PolicyNotSatisfiedError,
    UnauthorizedError,
)

from stakepool_tests.helpers import ALICE, BOB, CAROL, E18, ONE_DAY, OWNER, START_TIME

SANCTIONS_FEE = 20_000  # 20%
SANCTIONS_PERIOD = 5 * ONE_DAY


@pytest.fixture
def sanction_pool(make_pool):
    pool = make_pool(PolicyKind.SANCTION)
    pool_id = pool.set_rewards(OWNER, START_TIME, 30 * ONE_DAY, 1000 * E18)
    return pool, pool_id


class TestSetSanctionsFee:
    def test_only_operator(self, sanction_pool):
        pool, pool_id = sanction_pool
        with pytest.raises(UnauthorizedError):
            pool.set_sanctions_fee(ALICE, pool_id, SANCTIONS_FEE, SANCTIONS_PERIOD)

    def test_pool_id_zero(self, sanction_pool):
        pool, _ = sanction_pool
        with pytest.raises(InvalidIdentifierError):
            pool.set_sanctions_fee(OWNER, 0, SANCTIONS_FEE, SANCTIONS_PERIOD)

    @pytest.mark.parametrize(
        "fee,period",
        [
            (0, SANCTIONS_PERIOD),
            (SANCTION_FEE_PRECISION, SANCTIONS_PERIOD),
            (SANCTIONS_FEE, 0),
        ],
    )
    def test_invalid_terms(self, sanction_pool, fee, period):
        pool, pool_id = sanction_pool
        with pytest.raises(InvalidPolicyParameterError):
            pool.set_sanctions_fee(OWNER, pool_id, fee, period)
        assert pool_id not in pool.store.sanctions

    def test_terms_stored(self, sanction_pool):
        pool, pool_id = sanction_pool
        pool.set_sanctions_fee(OWNER, pool_id, SANCTIONS_FEE, SANCTIONS_PERIOD)

        terms = pool.store.sanctions[pool_id]
        assert terms.fee_percentage == SANCTIONS_FEE
        assert terms.period == SANCTIONS_PERIOD

    def test_not_available_under_other_policy(self, make_pool):
        pool = make_pool(PolicyKind.COOLDOWN)
        pool_id = pool.set_rewards(OWNER, START_TIME, 30 * ONE_DAY, 1000 * E18)
        with pytest.raises(InvalidPolicyParameterError):
            pool.set_sanctions_fee(OWNER, pool_id, SANCTIONS_FEE, SANCTIONS_PERIOD)


class TestSanctionedWithdraw:
    def test_stake_sets_penalty_free_time(self, sanction_pool, clock):
        pool, pool_id = sanction_pool
        pool.set_sanctions_fee(OWNER, pool_id, SANCTIONS_FEE, SANCTIONS_PERIOD)

        pool.stake(ALICE, pool_id, 100_000 * E18)
        assert pool.get_position(pool_id, ALICE)["penalty_free_after"] == START_TIME + SANCTIONS_PERIOD

        clock.advance(ONE_DAY)
        pool.stake(ALICE, pool_id, E18)
        assert pool.get_position(pool_id, ALICE)["penalty_free_after"] == clock.now() + SANCTIONS_PERIOD

    def test_early_withdraw_forfeits_fee_of_settled_reward(self, sanction_pool, clock, staked_token):
        pool, pool_id = sanction_pool
        pool.set_sanctions_fee(OWNER, pool_id, SANCTIONS_FEE, SANCTIONS_PERIOD)
        pool.stake(ALICE, pool_id, 100_000 * E18)
        clock.advance(3 * ONE_DAY)
        settled = pool.pending_rewards(pool_id, ALICE)

        released = pool.withdraw(ALICE, pool_id, 100_000 * E18)

        fee = fee_amount(settled, SANCTIONS_FEE, SANCTION_FEE_PRECISION)
        position = pool.get_position(pool_id, ALICE)
        state = pool.get_pool_state(pool_id)
        assert released == 100_000 * E18
        assert staked_token.balance_of(ALICE) == 1_000_000 * E18
        assert state["protocol_retained"] == fee
        assert position["unclaimed_rewards"] == settled - fee
        assert position["unclaimed_rewards"] != 0

    def test_withdraw_after_period_is_free(self, sanction_pool, clock):
        pool, pool_id = sanction_pool
        pool.set_sanctions_fee(OWNER, pool_id, SANCTIONS_FEE, SANCTIONS_PERIOD)
        pool.stake(ALICE, pool_id, 100_000 * E18)
        clock.advance(40 * ONE_DAY)
        settled = pool.pending_rewards(pool_id, ALICE)

        pool.withdraw(ALICE, pool_id, 100_000 * E18)

        assert pool.get_pool_state(pool_id)["protocol_retained"] == 0
        assert pool.get_position(pool_id, ALICE)["unclaimed_rewards"] == settled

    def test_reward_claimed_before_withdraw_is_not_clawed_back(self, sanction_pool, clock, reward_token):
        pool, pool_id = sanction_pool
        pool.set_sanctions_fee(OWNER, pool_id, SANCTIONS_FEE, SANCTIONS_PERIOD)
        pool.stake(ALICE, pool_id, 100 * E18)
        clock.advance(2 * ONE_DAY)
        claimed = pool.claim_rewards(ALICE, pool_id)

        pool.withdraw(ALICE, pool_id, 100 * E18)

        assert pool.get_pool_state(pool_id)["protocol_retained"] == 0
        assert reward_token.balance_of(ALICE) == claimed

    def test_fee_covers_reward_settled_before_the_withdraw(self, sanction_pool, clock):
        pool, pool_id = sanction_pool
        pool.set_sanctions_fee(OWNER, pool_id, SANCTIONS_FEE, SANCTIONS_PERIOD)
        pool.stake(ALICE, pool_id, 100 * E18)
        clock.advance(2 * ONE_DAY)
        # A top-up settles the first two days into unclaimed_rewards
        pool.stake(ALICE, pool_id, E18)
        unclaimed = pool.get_position(pool_id, ALICE)["unclaimed_rewards"]
        assert unclaimed > 0

        pool.withdraw(ALICE, pool_id, 50 * E18)

        fee = fee_amount(unclaimed, SANCTIONS_FEE, SANCTION_FEE_PRECISION)
        assert pool.get_pool_state(pool_id)["protocol_retained"] == fee
        assert pool.get_position(pool_id, ALICE)["unclaimed_rewards"] == unclaimed - fee

    def test_no_terms_means_no_sanction(self, sanction_pool, clock):
        pool, pool_id = sanction_pool
        pool.stake(ALICE, pool_id, 100 * E18)
        clock.advance(ONE_DAY)

        pool.withdraw(ALICE, pool_id, 100 * E18)

        assert pool.get_pool_state(pool_id)["protocol_retained"] == 0

    def test_other_stakers_unaffected(self, sanction_pool, clock):
        pool, pool_id = sanction_pool
        pool.set_sanctions_fee(OWNER, pool_id, SANCTIONS_FEE, SANCTIONS_PERIOD)
        pool.stake(ALICE, pool_id, 100 * E18)
        pool.stake(BOB, pool_id, 100 * E18)
        clock.advance(ONE_DAY)
        bob_before = pool.pending_rewards(pool_id, BOB)

        pool.withdraw(ALICE, pool_id, 100 * E18)

        assert pool.pending_rewards(pool_id, BOB) == bob_before

    def test_collect_not_available(self, sanction_pool):
        pool, pool_id = sanction_pool
        pool.stake(ALICE, pool_id, 100 * E18)
        with pytest.raises(PolicyNotSatisfiedError):
            pool.collect_staked_tokens(ALICE, pool_id)


class TestWithdrawRetained:
    def _sanctioned(self, pool, pool_id, clock):
        pool.set_sanctions_fee(OWNER, pool_id, SANCTIONS_FEE, SANCTIONS_PERIOD)
        pool.stake(ALICE, pool_id, 100 * E18)
        clock.advance(ONE_DAY)
        pool.withdraw(ALICE, pool_id, 100 * E18)
        return pool.get_pool_state(pool_id)["protocol_retained"]

    def test_operator_withdraws_retained_fees(self, sanction_pool, clock, reward_token):
        pool, pool_id = sanction_pool
        retained = self._sanctioned(pool, pool_id, clock)
        assert retained > 0

        paid = pool.withdraw_retained(OWNER, pool_id, CAROL)

        assert paid == retained
        assert reward_token.balance_of(CAROL) == retained
        assert pool.get_pool_state(pool_id)["protocol_retained"] == 0
        with pytest.raises(InvalidAmountError):
            pool.withdraw_retained(OWNER, pool_id, CAROL)

    def test_requires_operator_and_recipient(self, sanction_pool, clock):
        pool, pool_id = sanction_pool
        self._sanctioned(pool, pool_id, clock)

        with pytest.raises(UnauthorizedError):
            pool.withdraw_retained(ALICE, pool_id, ALICE)
        with pytest.raises(InvalidAddressError):
            pool.withdraw_retained(OWNER, pool_id, ZERO_ADDRESS)

    def test_stakers_can_still_claim_after_retained_withdrawal(self, sanction_pool, clock):
        pool, pool_id = sanction_pool
        self._sanctioned(pool, pool_id, clock)
        pool.withdraw_retained(OWNER, pool_id, CAROL)

        assert pool.claim_rewards(ALICE, pool_id) > 0
