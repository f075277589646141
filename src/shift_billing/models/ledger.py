"""Parent ledger lines (parents/{parentId}/ledgers/{periodId}/lines/{lineId}).

Lines are append-only. The primary key is derived from
(parent_id, period_id, source_attendance_id), so a second write for the same
source collides instead of duplicating. Corrections are reversal lines.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import CheckConstraint, DateTime, Index, Numeric, Text, UniqueConstraint, event
from sqlalchemy.orm import Mapped, mapped_column

from shift_billing.exceptions import ImmutableLedgerError
from shift_billing.models.base import Base


class LedgerLine(Base):
    """One immutable billable (or reversal) entry in a parent's ledger.

    staff_ref is an opaque staff identifier. No names, emails or other
    PII are stored here.

    hours is never negative. A reversal repeats the hours it cancels and
    carries the negated amount, so summing amounts nets the period.
    """

    __tablename__ = "ledger_line"

    parent_id: Mapped[str] = mapped_column(Text, primary_key=True)
    period_id: Mapped[str] = mapped_column(Text, primary_key=True)
    line_id: Mapped[str] = mapped_column(Text, primary_key=True)
    sub_org_id: Mapped[str] = mapped_column(Text, nullable=False)
    staff_ref: Mapped[str] = mapped_column(Text, nullable=False)
    venue_id: Mapped[str | None] = mapped_column(Text, nullable=True)
    hours: Mapped[Decimal] = mapped_column(Numeric(18, 6), nullable=False)
    bill_rate: Mapped[Decimal] = mapped_column(Numeric(12, 4), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    source_attendance_id: Mapped[str] = mapped_column(Text, nullable=False)
    entry_type: Mapped[str] = mapped_column(Text, nullable=False, server_default="billable")
    reverses_line_id: Mapped[str | None] = mapped_column(Text, nullable=True)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        CheckConstraint(
            "entry_type IN ('billable', 'reversal')", name="ledger_line_entry_type_ck"
        ),
        CheckConstraint("hours >= 0", name="ledger_line_hours_ck"),
        CheckConstraint(
            "(entry_type = 'billable' AND amount >= 0) OR (entry_type = 'reversal' AND amount <= 0)",
            name="ledger_line_amount_sign_ck",
        ),
        CheckConstraint(
            "entry_type = 'billable' OR reverses_line_id IS NOT NULL",
            name="ledger_line_reversal_target_ck",
        ),
        UniqueConstraint(
            "parent_id", "period_id", "source_attendance_id", "entry_type",
            name="ledger_line_source_uq",
        ),
        Index("ledger_line_by_sub_org", "parent_id", "sub_org_id"),
    )

    @property
    def document_path(self) -> str:
        return f"parents/{self.parent_id}/ledgers/{self.period_id}/lines/{self.line_id}"


@event.listens_for(LedgerLine, "before_update")
def _reject_ledger_update(mapper, connection, target: LedgerLine) -> None:
    raise ImmutableLedgerError(target.line_id, "update")


@event.listens_for(LedgerLine, "before_delete")
def _reject_ledger_delete(mapper, connection, target: LedgerLine) -> None:
    raise ImmutableLedgerError(target.line_id, "delete")
