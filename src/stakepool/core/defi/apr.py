"""APR view over a reward emission rate."""

from __future__ import annotations

from ..config import APR_PRECISION, SECONDS_PER_YEAR


def calculate_apr(distribution_per_second: int, staked_total_supply: int, scale: int = 1) -> int:
    """
    Annual percentage rate of a reward stream, scaled so APR_PRECISION == 100%.

    Both arguments are in the assets' smallest units and the reward and
    staked assets are assumed to be of equal value. A fixed-point rate is
    passed with its ``scale``; it is only divided out after annualizing,
    so rates below one unit per second still yield a nonzero APR.

    Example:
        calculate_apr(6 * 10**12, 2_000_000 * 10**18) == 946  # 0.00946%
    """
    if distribution_per_second < 0 or staked_total_supply < 0:
        raise ValueError("APR inputs must be non-negative")
    if scale <= 0:
        raise ValueError("APR scale must be positive")
    if staked_total_supply == 0:
        return 0
    return (
        distribution_per_second * SECONDS_PER_YEAR * APR_PRECISION
        // (staked_total_supply * scale)
    )
