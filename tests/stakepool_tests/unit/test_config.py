import pytest

from stakepool.core.config import ConfigurationError, PolicyKind, StakingConfig
from stakepool.core.defi.staking import StakingPool

ENV_VARS = (
    "STAKEPOOL_POLICY",
    "STAKEPOOL_LOG_LEVEL",
    "STAKEPOOL_LOG_FILE",
    "STAKEPOOL_ENVIRONMENT",
    "STAKEPOOL_METRICS_ENABLED",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def test_defaults():
    config = StakingConfig.from_env()

    assert config.policy is PolicyKind.IMMEDIATE
    assert config.log_level == "INFO"
    assert config.log_file == ""
    assert config.environment == "production"
    assert config.metrics_enabled is True


def test_reads_environment(monkeypatch):
    monkeypatch.setenv("STAKEPOOL_POLICY", "Cooldown")
    monkeypatch.setenv("STAKEPOOL_LOG_LEVEL", "debug")
    monkeypatch.setenv("STAKEPOOL_ENVIRONMENT", "staging")
    monkeypatch.setenv("STAKEPOOL_METRICS_ENABLED", "off")

    config = StakingConfig.from_env()

    assert config.policy is PolicyKind.COOLDOWN
    assert config.log_level == "DEBUG"
    assert config.environment == "staging"
    assert config.metrics_enabled is False


@pytest.mark.parametrize(
    "name,value",
    [
        ("STAKEPOOL_POLICY", "vesting"),
        ("STAKEPOOL_LOG_LEVEL", "chatty"),
        ("STAKEPOOL_METRICS_ENABLED", "maybe"),
    ],
)
def test_invalid_values(monkeypatch, name, value):
    monkeypatch.setenv(name, value)
    with pytest.raises(ConfigurationError):
        StakingConfig.from_env()


def test_pool_from_config(monkeypatch, staked_token, reward_token, ledger, rbac, clock):
    monkeypatch.setenv("STAKEPOOL_POLICY", "sanction")
    monkeypatch.setenv("STAKEPOOL_METRICS_ENABLED", "0")

    pool = StakingPool.from_config(
        StakingConfig.from_env(),
        staked_token.address,
        reward_token.address,
        ledger,
        rbac,
        time_provider=clock.now,
    )

    assert pool.policy.kind is PolicyKind.SANCTION
    assert pool.metrics_enabled is False
