"""
Tests for fixed-APY single-token staking.
"""
import pytest

from stakepool.core.config import ZERO_ADDRESS
from stakepool.core.defi.fixed_apy_staking import FixedApyStaking
from stakepool.core.staking_exceptions import (
    InsufficientCustodyError,
    InvalidAddressError,
    InvalidAmountError,
    InvalidPolicyParameterError,
    LedgerError,
    NotStakeholderError,
    UnauthorizedError,
)

from stakepool_tests.helpers import ALICE, BOB, CUSTODIAN, E18, ONE_DAY, OUTSIDER, OWNER, START_TIME

MIN_STAKING_PERIOD = 365 * ONE_DAY
EARLY_FEE = 1000  # 10%
APY = 1000  # 10%


@pytest.fixture
def fixed(staked_token, ledger, rbac, clock):
    return FixedApyStaking(
        token=staked_token.address,
        ledger=ledger,
        access=rbac,
        min_staking_period=MIN_STAKING_PERIOD,
        early_fee_bps=EARLY_FEE,
        apy_bps=APY,
        time_provider=clock.now,
    )


class TestDeployment:
    def test_zero_token_address(self, ledger, rbac):
        with pytest.raises(InvalidAddressError):
            FixedApyStaking(ZERO_ADDRESS, ledger, rbac, MIN_STAKING_PERIOD, EARLY_FEE, APY)

    @pytest.mark.parametrize("period,fee", [(0, EARLY_FEE), (MIN_STAKING_PERIOD, 0)])
    def test_zero_period_or_fee(self, staked_token, ledger, rbac, period, fee):
        with pytest.raises(InvalidPolicyParameterError):
            FixedApyStaking(staked_token.address, ledger, rbac, period, fee, APY)

    def test_initial_apy(self, fixed):
        assert fixed.apy_bps == APY
        assert fixed.apy_history[0].since == START_TIME


class TestInterest:
    def test_one_year_at_ten_percent(self, fixed, clock):
        fixed.stake(ALICE, 1000 * E18)
        clock.advance(365 * ONE_DAY)
        assert fixed.pending_rewards(ALICE) == 100 * E18

    def test_claim_requires_funded_reserve(self, fixed, clock, staked_token):
        fixed.stake(ALICE, 1000 * E18)
        clock.advance(365 * ONE_DAY)

        with pytest.raises(InsufficientCustodyError):
            fixed.claim_rewards(ALICE)

        fixed.fund_rewards(OWNER, 1000 * E18)
        balance_before = staked_token.balance_of(ALICE)
        assert fixed.claim_rewards(ALICE) == 100 * E18
        assert staked_token.balance_of(ALICE) == balance_before + 100 * E18
        assert fixed.reward_reserve == 900 * E18

    def test_claim_without_interest(self, fixed):
        with pytest.raises(InvalidAmountError):
            fixed.claim_rewards(BOB)

    def test_apy_change_applies_from_now_on(self, fixed, clock):
        fixed.stake(ALICE, 1000 * E18)
        clock.advance(73 * ONE_DAY)  # a fifth of a year

        fixed.set_apy(OWNER, 2000)
        clock.advance(73 * ONE_DAY)

        # 10% for 1/5 year plus 20% for 1/5 year
        assert fixed.pending_rewards(ALICE) == 60 * E18
        assert fixed.apy_bps == 2000

    def test_set_apy_requires_operator(self, fixed):
        with pytest.raises(UnauthorizedError):
            fixed.set_apy(ALICE, 2000)

    def test_negative_apy_rejected(self, fixed):
        with pytest.raises(InvalidPolicyParameterError):
            fixed.set_apy(OWNER, -1)
        assert fixed.apy_bps == APY


class TestWithdraw:
    def test_early_withdraw_pays_fee_into_reserve(self, fixed, clock, staked_token):
        fixed.stake(ALICE, 1000 * E18)
        clock.advance(100 * ONE_DAY)

        paid = fixed.withdraw(ALICE, 1000 * E18)

        assert paid == 900 * E18
        assert fixed.reward_reserve == 100 * E18
        assert fixed.total_staked == 0
        assert staked_token.balance_of(ALICE) == 1_000_000 * E18 - 100 * E18
        assert staked_token.balance_of(CUSTODIAN) == 100 * E18

    def test_withdraw_after_min_period_is_free(self, fixed, clock):
        fixed.stake(ALICE, 1000 * E18)
        clock.advance(MIN_STAKING_PERIOD)

        assert fixed.withdraw(ALICE, 400 * E18) == 400 * E18
        assert fixed.staked_amount(ALICE) == 600 * E18
        # Interest earned before the withdrawal is kept
        assert fixed.pending_rewards(ALICE) == 100 * E18

    def test_restake_restarts_min_period(self, fixed, clock):
        fixed.stake(ALICE, 1000 * E18)
        clock.advance(MIN_STAKING_PERIOD)
        fixed.stake(ALICE, E18)

        assert fixed.penalty_free_at(ALICE) == clock.now() + MIN_STAKING_PERIOD

    def test_withdraw_errors(self, fixed):
        with pytest.raises(InvalidAmountError):
            fixed.withdraw(ALICE, 0)
        with pytest.raises(NotStakeholderError):
            fixed.withdraw(ALICE, E18)

        fixed.stake(ALICE, E18)
        with pytest.raises(InvalidAmountError):
            fixed.withdraw(ALICE, 2 * E18)

    def test_fund_rewards_requires_operator(self, fixed):
        with pytest.raises(UnauthorizedError):
            fixed.fund_rewards(ALICE, E18)
        with pytest.raises(InvalidAmountError):
            fixed.fund_rewards(OWNER, 0)


class TestRollback:
    def test_rejected_claim_keeps_accrual_checkpoint(self, fixed, clock):
        fixed.stake(ALICE, 1000 * E18)
        clock.advance(365 * ONE_DAY)

        with pytest.raises(InsufficientCustodyError):
            fixed.claim_rewards(ALICE)

        position = fixed.positions[ALICE]
        assert position.last_accrual == START_TIME
        assert position.accrued_interest == 0
        assert fixed.pending_rewards(ALICE) == 100 * E18

    def test_failed_stake_leaves_no_position(self, fixed):
        with pytest.raises(LedgerError):
            fixed.stake(OUTSIDER, E18)

        assert OUTSIDER not in fixed.positions
        assert fixed.total_staked == 0
        assert fixed.apy_history[-1].apy_bps == APY
