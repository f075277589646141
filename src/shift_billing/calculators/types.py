"""Type definitions for the billing calculation pipeline."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Mapping


class AttendanceStatus(str, Enum):
    """Attendance record status values."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class RoundingPolicy(str, Enum):
    """How elapsed minutes are rounded before billing."""

    NONE = "none"
    NEAREST_5 = "nearest-5"
    NEAREST_15 = "nearest-15"

    @property
    def step_minutes(self) -> int:
        """Minute multiple billed minutes are rounded up to."""
        return _ROUNDING_STEPS[self]


_ROUNDING_STEPS = {
    RoundingPolicy.NONE: 1,
    RoundingPolicy.NEAREST_5: 5,
    RoundingPolicy.NEAREST_15: 15,
}


class PeriodType(str, Enum):
    """Billing period granularity."""

    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"


class EntryType(str, Enum):
    """Ledger line kinds."""

    BILLABLE = "billable"
    REVERSAL = "reversal"


def parse_timestamp(value: Any) -> datetime | None:
    """Normalise a stored timestamp to an aware UTC datetime.

    Accepts epoch milliseconds, ISO-8601 strings and datetimes. Naive
    datetimes are taken to be UTC. Returns None for missing values and
    raises ValueError for anything unparseable.
    """
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValueError(f"Invalid timestamp: {value!r}")
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, (int, float, Decimal)):
        try:
            dt = datetime.fromtimestamp(float(value) / 1000, tz=timezone.utc)
        except (OverflowError, OSError):
            raise ValueError(f"Timestamp out of range: {value!r}") from None
    elif isinstance(value, str):
        dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    else:
        raise ValueError(f"Invalid timestamp: {value!r}")

    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def to_epoch_millis(value: datetime) -> int:
    """Render a datetime as epoch milliseconds."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return int(value.timestamp() * 1000)


@dataclass(frozen=True)
class AttendanceSnapshot:
    """One side of an attendance change event.

    staff_id and clock_in may be missing on malformed records; the
    orchestrator decides what to do with them.
    """

    attendance_id: str
    status: str | None
    staff_id: str | None = None
    venue_id: str | None = None
    clock_in: datetime | None = None
    clock_out: datetime | None = None
    approved_by: str | None = None
    approved_at: datetime | None = None

    @property
    def is_approved(self) -> bool:
        return self.status == AttendanceStatus.APPROVED.value

    @classmethod
    def from_mapping(cls, attendance_id: str, data: Mapping[str, Any]) -> AttendanceSnapshot:
        """Build a snapshot from a stored document (camelCase keys)."""
        status = data.get("status")
        return cls(
            attendance_id=attendance_id,
            status=status.value if isinstance(status, Enum) else status,
            staff_id=data.get("staffId") or None,
            venue_id=data.get("venueId") or None,
            clock_in=parse_timestamp(data.get("clockIn")),
            clock_out=parse_timestamp(data.get("clockOut")),
            approved_by=data.get("approvedBy") or None,
            approved_at=parse_timestamp(data.get("approvedAt")),
        )


@dataclass(frozen=True)
class Contract:
    """Billing terms between a parent and one sub-organization."""

    parent_id: str
    sub_org_id: str
    bill_rate: Decimal
    rounding: RoundingPolicy
    period: PeriodType

    def __post_init__(self) -> None:
        if self.bill_rate < 0:
            raise ValueError("bill_rate must be non-negative")


@dataclass(frozen=True)
class LedgerLineCandidate:
    """A fully computed ledger line before persistence.

    staff_ref is an opaque reference; names and emails never reach the
    parent ledger.
    """

    parent_id: str
    sub_org_id: str
    staff_ref: str
    venue_id: str | None
    period_id: str
    hours: Decimal
    bill_rate: Decimal
    amount: Decimal
    source_attendance_id: str
    created_at: datetime
    entry_type: EntryType = EntryType.BILLABLE
    reverses_line_id: str | None = None
    reason: str | None = None

    def to_canonical_dict(self) -> dict[str, Any]:
        """Return canonical dict for logging and export (deterministic ordering)."""
        return {
            "parentId": self.parent_id,
            "subOrgId": self.sub_org_id,
            "staffRef": self.staff_ref,
            "venueId": self.venue_id,
            "periodId": self.period_id,
            "hours": str(self.hours),
            "billRate": str(self.bill_rate),
            "amount": str(self.amount),
            "sourceAttendanceId": self.source_attendance_id,
            "entryType": self.entry_type.value,
        }
