"""
Test configuration and fixtures
"""
import sys
from pathlib import Path

# Add project root and src to Python path
project_root = Path(__file__).parent.parent
src_path = project_root / "src"

sys.path.insert(0, str(project_root))
sys.path.insert(0, str(src_path))
sys.path.insert(0, str(Path(__file__).parent))

import pytest

from stakepool.core.config import PolicyKind
from stakepool.core.contracts.erc20 import ERC20Token, TokenLedger
from stakepool.core.defi.access_control import RoleBasedAccessControl
from stakepool.core.defi.share_vault import ShareVault
from stakepool.core.defi.staking import StakingPool

from stakepool_tests.helpers import (
    ALICE,
    BOB,
    CAROL,
    CUSTODIAN,
    E18,
    OWNER,
    START_TIME,
    ManualClock,
)


@pytest.fixture
def clock():
    return ManualClock(start_time=START_TIME)


@pytest.fixture
def staked_token():
    token = ERC20Token(name="Staked Token", symbol="ST", owner=OWNER, address="0x" + "1" * 40)
    for holder in (OWNER, ALICE, BOB, CAROL):
        token.mint(OWNER, holder, 1_000_000 * E18)
    return token


@pytest.fixture
def reward_token():
    token = ERC20Token(name="Reward Token", symbol="RT", owner=OWNER, address="0x" + "2" * 40)
    token.mint(OWNER, OWNER, 10_000_000 * E18)
    return token


@pytest.fixture
def ledger(staked_token, reward_token):
    return TokenLedger(CUSTODIAN, [staked_token, reward_token])


@pytest.fixture
def rbac():
    return RoleBasedAccessControl(admin_address=OWNER)


@pytest.fixture
def make_pool(staked_token, reward_token, ledger, rbac, clock):
    """Factory for StakingPool instances sharing the test ledger and clock."""

    def _make(policy: PolicyKind = PolicyKind.IMMEDIATE, **kwargs) -> StakingPool:
        return StakingPool(
            staked_asset=staked_token.address,
            reward_asset=reward_token.address,
            ledger=ledger,
            access=rbac,
            policy=policy,
            time_provider=clock.now,
            **kwargs,
        )

    return _make


@pytest.fixture
def vault(staked_token, ledger, rbac, clock):
    return ShareVault(
        staked_asset=staked_token.address,
        ledger=ledger,
        access=rbac,
        time_provider=clock.now,
    )
