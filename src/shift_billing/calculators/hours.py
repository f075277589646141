"""Billable hours and amount arithmetic."""

from __future__ import annotations

from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal

from shift_billing.calculators.types import RoundingPolicy

MINUTES_PER_HOUR = Decimal(60)
CENTS = Decimal("0.01")


def elapsed_minutes(clock_in: datetime, clock_out: datetime) -> int:
    """Whole minutes between clock-in and clock-out (seconds are dropped).

    Raises:
        ValueError: If clock_out precedes clock_in.
    """
    if clock_out < clock_in:
        raise ValueError("clock_out must not precede clock_in")
    return int((clock_out - clock_in).total_seconds() // 60)


def billed_minutes(raw_minutes: int, rounding: RoundingPolicy) -> int:
    """Round raw minutes up to the next multiple of the policy step.

    Rounding is always upward, never to nearest: a 7 minute shift under
    nearest-15 bills 15 minutes.
    """
    if raw_minutes < 0:
        raise ValueError("raw_minutes must be non-negative")
    step = rounding.step_minutes
    return -(-raw_minutes // step) * step


def compute_hours(
    clock_in: datetime,
    clock_out: datetime,
    rounding: RoundingPolicy = RoundingPolicy.NONE,
) -> Decimal:
    """Billable hours for one attendance interval under a rounding policy."""
    minutes = billed_minutes(elapsed_minutes(clock_in, clock_out), rounding)
    return Decimal(minutes) / MINUTES_PER_HOUR


def compute_amount(hours: Decimal, bill_rate: Decimal) -> Decimal:
    """hours * rate rounded half-up to cents."""
    return (hours * bill_rate).quantize(CENTS, rounding=ROUND_HALF_UP)
