"""
Fixed-point helpers shared by the staking cores.

All amounts are integers in the asset's smallest unit. Values that need
fractional precision (reward rates, accumulators, vault rates) are scaled
by ``PRECISION``. Amounts paid to users always round down; fees charged to
users always round up, so custody is never short because of rounding.
"""

from __future__ import annotations

from ..config import PRECISION

MAX_UINT256 = 2**256 - 1


class SafeMath:
    """uint256-bounded integer arithmetic."""

    @staticmethod
    def safe_mul(a: int, b: int) -> int:
        if a < 0 or b < 0:
            raise ValueError("Negative operand")
        result = a * b
        if result > MAX_UINT256:
            raise OverflowError("Multiplication overflow")
        return result


safe_mul = SafeMath.safe_mul


def mul_div(a: int, b: int, denominator: int, round_up: bool = False) -> int:
    """
    Calculate (a * b) / denominator with full precision and controlled rounding.

    Args:
        a: First multiplicand
        b: Second multiplicand
        denominator: Divisor
        round_up: If True, round up (for charging users)
                  If False, round down (for paying users)

    Raises:
        ValueError: If denominator is zero
        OverflowError: If the product exceeds uint256
    """
    if denominator == 0:
        raise ValueError("Division by zero")

    result = safe_mul(a, b)

    if round_up:
        return (result + denominator - 1) // denominator
    return result // denominator


def to_rate(total_amount: int, duration: int) -> int:
    """Per-second emission of total_amount over duration, scaled by PRECISION."""
    return mul_div(total_amount, PRECISION, duration)


def from_scaled(value: int) -> int:
    """Drop the PRECISION scale, rounding down."""
    return value // PRECISION


def fee_amount(amount: int, fee: int, fee_precision: int) -> int:
    """Fee share of amount, always rounded UP so the protocol never loses fees."""
    return mul_div(amount, fee, fee_precision, round_up=True)
