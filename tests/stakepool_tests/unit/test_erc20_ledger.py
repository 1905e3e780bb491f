"""
Tests for the in-memory ERC20 token and the custody ledger.
"""
import pytest

from stakepool.core.config import ZERO_ADDRESS
from stakepool.core.contracts.erc20 import AssetLedger, ERC20Token, TokenLedger
from stakepool.core.staking_exceptions import LedgerError

from stakepool_tests.helpers import ALICE, BOB, CUSTODIAN, E18, OWNER


class TestERC20Token:
    def test_mint_and_transfer(self, staked_token):
        staked_token.transfer(ALICE, BOB, 10 * E18)

        assert staked_token.balance_of(ALICE) == 1_000_000 * E18 - 10 * E18
        assert staked_token.balance_of(BOB) == 1_000_000 * E18 + 10 * E18

    def test_transfer_exceeding_balance(self, staked_token):
        with pytest.raises(LedgerError):
            staked_token.transfer(ALICE, BOB, 2_000_000 * E18)
        assert staked_token.balance_of(ALICE) == 1_000_000 * E18

    def test_zero_address_and_negative_amount(self, staked_token):
        with pytest.raises(LedgerError):
            staked_token.transfer(ALICE, ZERO_ADDRESS, E18)
        with pytest.raises(LedgerError):
            staked_token.transfer(ALICE, BOB, -1)

    def test_only_owner_mints(self, staked_token):
        supply = staked_token.total_supply
        with pytest.raises(LedgerError):
            staked_token.mint(ALICE, ALICE, E18)
        staked_token.mint(OWNER, ALICE, E18)
        assert staked_token.total_supply == supply + E18

    def test_supply_only_changes_through_mint(self, staked_token):
        supply = staked_token.total_supply
        staked_token.transfer(ALICE, BOB, 3 * E18)

        assert staked_token.total_supply == supply
        assert sum(staked_token.balances.values()) == supply
        assert not hasattr(staked_token, "burn")
        assert "events" not in staked_token.to_dict()

    def test_serialization(self, staked_token):
        restored = ERC20Token.from_dict(staked_token.to_dict())

        assert restored.address == staked_token.address
        assert restored.balance_of(ALICE) == staked_token.balance_of(ALICE)
        assert restored.total_supply == staked_token.total_supply

    def test_generated_address(self):
        token = ERC20Token(name="Generated", symbol="GEN", owner=OWNER)
        assert token.address.startswith("0x")
        assert len(token.address) == 42


class TestTokenLedger:
    def test_satisfies_asset_ledger_protocol(self, ledger):
        assert isinstance(ledger, AssetLedger)
        assert ledger.custodian == CUSTODIAN

    def test_transfer_in_and_out(self, ledger, staked_token):
        ledger.transfer_in(staked_token.address, ALICE, 5 * E18)
        assert ledger.balance_of(staked_token.address, CUSTODIAN) == 5 * E18

        ledger.transfer_out(staked_token.address, BOB, 2 * E18)
        assert ledger.balance_of(staked_token.address, CUSTODIAN) == 3 * E18
        assert staked_token.balance_of(BOB) == 1_000_000 * E18 + 2 * E18

    def test_unknown_asset(self, ledger):
        with pytest.raises(LedgerError):
            ledger.transfer_in("0x" + "9" * 40, ALICE, E18)

    def test_asset_lookup_is_case_insensitive(self, ledger, staked_token):
        assert ledger.token(staked_token.address.upper().replace("0X", "0x")) is staked_token

    def test_zero_custodian(self):
        with pytest.raises(LedgerError):
            TokenLedger(ZERO_ADDRESS)
