"""Pydantic schemas for API request/response models."""

from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class AttendanceChangeEvent(BaseModel):
    """An attendance document change delivered by the event trigger."""

    model_config = ConfigDict(populate_by_name=True)

    tenant_id: str = Field(alias="tenantId", min_length=1)
    attendance_id: str = Field(alias="attendanceId", min_length=1)
    event_id: str | None = Field(default=None, alias="eventId")
    before: dict[str, Any] | None = None
    after: dict[str, Any] | None = None


class ReplicationResponse(BaseModel):
    """Outcome of processing one change event."""

    outcome: str
    reason: str | None = None
    line_id: str | None = None
    period_id: str | None = None


class LedgerLineResponse(BaseModel):
    """Schema for a ledger line as seen by a parent admin."""

    model_config = ConfigDict(from_attributes=True)

    parent_id: str
    sub_org_id: str
    period_id: str
    line_id: str
    staff_ref: str
    venue_id: str | None = None
    hours: Decimal
    bill_rate: Decimal
    amount: Decimal
    source_attendance_id: str
    entry_type: str
    reverses_line_id: str | None = None
    created_at: datetime


class LedgerPeriodResponse(BaseModel):
    items: list[LedgerLineResponse]
    total_amount: Decimal


class ErrorResponse(BaseModel):
    """Schema for error responses."""

    detail: str
    code: str | None = None
