"""Pure billing calculations: hours, amounts and period identifiers."""

from shift_billing.calculators.hours import billed_minutes, compute_amount, compute_hours, elapsed_minutes
from shift_billing.calculators.periods import derive_period_id, fortnight_start
from shift_billing.calculators.types import (
    AttendanceSnapshot,
    AttendanceStatus,
    Contract,
    EntryType,
    LedgerLineCandidate,
    PeriodType,
    RoundingPolicy,
)

__all__ = [
    "AttendanceSnapshot",
    "AttendanceStatus",
    "Contract",
    "EntryType",
    "LedgerLineCandidate",
    "PeriodType",
    "RoundingPolicy",
    "billed_minutes",
    "compute_amount",
    "compute_hours",
    "derive_period_id",
    "elapsed_minutes",
    "fortnight_start",
]
