"""ORM models."""

from shift_billing.models.attendance import AttendanceRecord
from shift_billing.models.base import Base, TimestampMixin
from shift_billing.models.ledger import LedgerLine
from shift_billing.models.tenancy import BillingContract, Org, OrgMembership

__all__ = [
    "AttendanceRecord",
    "Base",
    "BillingContract",
    "LedgerLine",
    "Org",
    "OrgMembership",
    "TimestampMixin",
]
