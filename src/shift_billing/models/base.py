"""Declarative base shared by the tenancy, attendance and ledger tables."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import DateTime, Numeric, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Every row maps to one stored document; see each model's document_path."""

    type_annotation_map = {
        datetime: DateTime(timezone=True),
        Decimal: Numeric(18, 6),
    }


class TimestampMixin:
    """Server-side creation time for documents written by clients or operators.

    Ledger lines carry their own created_at, set by the writer's clock.
    """

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
