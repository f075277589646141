"""Canonical billing period identifiers.

Formats:
    weekly    YYYY-Www   ISO-8601 week (week 1 holds the year's first Thursday)
    biweekly  YYYY-BWnn  fortnights counted from a fixed Monday anchor
    monthly   YYYY-Mmm   calendar month

Every identifier is derived in UTC from the timestamp of the work itself,
never from the current time.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

from shift_billing.calculators.types import PeriodType

DEFAULT_BIWEEKLY_ANCHOR = date(2024, 1, 1)


def _utc_date(at: datetime) -> date:
    if at.tzinfo is None:
        return at.date()
    return at.astimezone(timezone.utc).date()


def week_start(day: date) -> date:
    """Monday of the ISO week containing day."""
    return day - timedelta(days=day.isoweekday() - 1)


def fortnight_start(day: date, anchor: date = DEFAULT_BIWEEKLY_ANCHOR) -> date:
    """First Monday of the anchor-aligned fortnight containing day."""
    if anchor.isoweekday() != 1:
        raise ValueError("biweekly anchor must be a Monday")
    weeks = (week_start(day) - anchor).days // 7
    return anchor + timedelta(weeks=(weeks // 2) * 2)


def weekly_period_id(day: date) -> str:
    iso_year, iso_week, _ = day.isocalendar()
    return f"{iso_year}-W{iso_week:02d}"


def biweekly_period_id(day: date, anchor: date = DEFAULT_BIWEEKLY_ANCHOR) -> str:
    """Fortnight id named after its first ISO week.

    Fortnights starting within one ISO year all start on weeks of the same
    parity, so (week + 1) // 2 numbers them 1, 2, 3... without gaps.
    """
    iso_year, iso_week, _ = fortnight_start(day, anchor).isocalendar()
    return f"{iso_year}-BW{(iso_week + 1) // 2:02d}"


def monthly_period_id(day: date) -> str:
    return f"{day.year}-M{day.month:02d}"


def derive_period_id(
    at: datetime,
    period: PeriodType,
    biweekly_anchor: date = DEFAULT_BIWEEKLY_ANCHOR,
) -> str:
    """Period identifier for a timestamp under a contract's period type."""
    day = _utc_date(at)
    if period == PeriodType.WEEKLY:
        return weekly_period_id(day)
    if period == PeriodType.BIWEEKLY:
        return biweekly_period_id(day, biweekly_anchor)
    if period == PeriodType.MONTHLY:
        return monthly_period_id(day)
    raise ValueError(f"Unknown period type: {period!r}")
