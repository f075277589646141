"""Attendance records scoped to a sub-organization."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import CheckConstraint, DateTime, Index, Text
from sqlalchemy.orm import Mapped, mapped_column

from shift_billing.calculators.types import AttendanceSnapshot
from shift_billing.models.base import Base, TimestampMixin


class AttendanceRecord(TimestampMixin, Base):
    """One staff clock-in/clock-out record (orgs/{orgId}/attendance/{id}).

    staff_id never changes after creation; clock_out, once set, is not
    earlier than clock_in.
    """

    __tablename__ = "attendance"

    attendance_id: Mapped[str] = mapped_column(Text, primary_key=True)
    org_id: Mapped[str] = mapped_column(Text, nullable=False)
    staff_id: Mapped[str] = mapped_column(Text, nullable=False)
    venue_id: Mapped[str | None] = mapped_column(Text, nullable=True)
    clock_in: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    clock_out: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    status: Mapped[str] = mapped_column(Text, nullable=False, server_default="pending")
    approved_by: Mapped[str | None] = mapped_column(Text, nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'approved', 'rejected')", name="attendance_status_ck"
        ),
        CheckConstraint(
            "clock_out IS NULL OR clock_out >= clock_in", name="attendance_clock_order_ck"
        ),
        Index("attendance_by_org_status", "org_id", "status"),
    )

    @property
    def document_path(self) -> str:
        return f"orgs/{self.org_id}/attendance/{self.attendance_id}"

    def to_document(self) -> dict[str, Any]:
        """Record in the shape delivered by change events."""
        return {
            "status": self.status,
            "staffId": self.staff_id,
            "venueId": self.venue_id,
            "clockIn": self.clock_in,
            "clockOut": self.clock_out,
            "approvedBy": self.approved_by,
            "approvedAt": self.approved_at,
        }

    def to_snapshot(self) -> AttendanceSnapshot:
        return AttendanceSnapshot.from_mapping(self.attendance_id, self.to_document())
