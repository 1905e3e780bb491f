"""
stakepool Configuration

Protocol constants shared by every staking core, plus the deployment
settings that are read from ``STAKEPOOL_*`` environment variables.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from enum import Enum

logger = logging.getLogger(__name__)


class PolicyKind(Enum):
    """Withdrawal policy selected for a deployment."""
    IMMEDIATE = "immediate"
    COOLDOWN = "cooldown"
    SANCTION = "sanction"


class ConfigurationError(Exception):
    """Raised when required configuration is missing or invalid."""
    pass


# Fixed-point scale for reward rates, accumulators and vault rates
PRECISION = 10**18

ONE_DAY = 24 * 60 * 60
SECONDS_PER_YEAR = 365 * ONE_DAY

# Cooldown policy bounds
MIN_COOLDOWN_PERIOD = 1
MAX_COOLDOWN_PERIOD = 30 * ONE_DAY
MAX_COOLDOWN_LOCKS = 3

# Sanction fee is expressed with 100_000 == 100%
SANCTION_FEE_PRECISION = 100_000

# Basis points (10_000 == 100%) for the fixed-APY core
BPS = 10_000

# APR views are scaled so that 10**7 == 100%
APR_PRECISION = 10**7

ZERO_ADDRESS = "0x" + "0" * 40

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def _get_bool(env_var: str, default: str) -> bool:
    value = os.getenv(env_var, default).strip().lower()
    if value in ("1", "true", "yes", "on"):
        return True
    if value in ("0", "false", "no", "off", ""):
        return False
    raise ConfigurationError(f"{env_var} must be a boolean flag, got {value!r}")


@dataclass(frozen=True)
class StakingConfig:
    """Deployment settings for a staking ledger instance."""

    policy: PolicyKind = PolicyKind.IMMEDIATE
    log_level: str = "INFO"
    log_file: str = ""
    environment: str = "production"
    metrics_enabled: bool = True

    @classmethod
    def from_env(cls) -> "StakingConfig":
        """Build the configuration from ``STAKEPOOL_*`` environment variables."""
        raw_policy = os.getenv("STAKEPOOL_POLICY", PolicyKind.IMMEDIATE.value).strip().lower()
        try:
            policy = PolicyKind(raw_policy)
        except ValueError as exc:
            allowed = ", ".join(kind.value for kind in PolicyKind)
            raise ConfigurationError(
                f"STAKEPOOL_POLICY must be one of {allowed}, got {raw_policy!r}"
            ) from exc

        log_level = os.getenv("STAKEPOOL_LOG_LEVEL", "INFO").strip().upper()
        if log_level not in LOG_LEVELS:
            raise ConfigurationError(f"STAKEPOOL_LOG_LEVEL is invalid: {log_level!r}")

        config = cls(
            policy=policy,
            log_level=log_level,
            log_file=os.getenv("STAKEPOOL_LOG_FILE", "").strip(),
            environment=os.getenv("STAKEPOOL_ENVIRONMENT", "production").strip() or "production",
            metrics_enabled=_get_bool("STAKEPOOL_METRICS_ENABLED", "1"),
        )
        logger.debug(
            "Staking configuration loaded",
            extra={"event": "config.loaded", "policy": config.policy.value},
        )
        return config
