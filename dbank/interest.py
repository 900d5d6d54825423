"""
Interest Math Module

Growth formulas shared by the account ledger, staking and loans. Amounts are
integer token units; rates and periods are Decimal. Results are floored to
whole tokens. NEVER uses float for monetary values.
"""

from decimal import Decimal, ROUND_FLOOR, getcontext

from .clock import NANOS_PER_SECOND

# Set global decimal context for financial precision
getcontext().prec = 28


def elapsed_periods(start_ns: int, now_ns: int, seconds_per_period: int) -> Decimal:
    """
    Real-valued number of periods between two timestamps.

    Fractional periods are kept, so growth accrues continuously rather than
    in whole-day ticks. Returns 0 when now is not after start.
    """
    elapsed_ns = now_ns - start_ns
    if elapsed_ns <= 0:
        return Decimal('0')
    return Decimal(elapsed_ns) / Decimal(seconds_per_period * NANOS_PER_SECOND)


def whole_periods(start_ns: int, now_ns: int, seconds_per_period: int) -> int:
    """Number of complete periods between two timestamps (floored)"""
    elapsed_ns = now_ns - start_ns
    if elapsed_ns <= 0:
        return 0
    return elapsed_ns // (seconds_per_period * NANOS_PER_SECOND)


def floor_amount(value: Decimal) -> int:
    """Floor a Decimal to whole token units"""
    return int(value.to_integral_value(rounding=ROUND_FLOOR))


def compound(amount: int, rate: Decimal, periods: Decimal) -> int:
    """
    Compound growth: floor(amount * (1 + rate) ** periods)

    Args:
        amount: Starting amount in token units
        rate: Growth rate per period (e.g. Decimal('0.05'))
        periods: Real-valued period count

    Returns:
        Grown amount, never less than the starting amount for rate >= 0
    """
    if amount <= 0 or periods <= 0:
        return amount
    factor = (Decimal('1') + rate) ** periods
    return floor_amount(Decimal(amount) * factor)


def simple_interest(principal: int, rate: Decimal, periods: int) -> int:
    """Simple interest: floor(principal * rate * periods) for whole periods"""
    if principal <= 0 or periods <= 0:
        return 0
    return floor_amount(Decimal(principal) * rate * Decimal(periods))
