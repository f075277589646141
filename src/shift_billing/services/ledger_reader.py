"""Read access to parent ledgers."""

from __future__ import annotations

from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from shift_billing.models import LedgerLine


class LedgerReader:
    """Queries over parents/{parentId}/ledgers/{periodId}/lines.

    Callers outside the server must pass the isolation enforcer first; this
    class does not check principals.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def lines_for_period(self, parent_id: str, period_id: str) -> list[LedgerLine]:
        result = await self.session.execute(
            select(LedgerLine)
            .where(LedgerLine.parent_id == parent_id, LedgerLine.period_id == period_id)
            .order_by(LedgerLine.created_at, LedgerLine.line_id)
        )
        return list(result.scalars().all())

    async def lines_for_source(self, parent_id: str, source_attendance_id: str) -> list[LedgerLine]:
        """All lines (billable and reversal) derived from one attendance record."""
        result = await self.session.execute(
            select(LedgerLine)
            .where(
                LedgerLine.parent_id == parent_id,
                LedgerLine.source_attendance_id == source_attendance_id,
            )
            .order_by(LedgerLine.created_at, LedgerLine.line_id)
        )
        return list(result.scalars().all())

    async def period_total(self, parent_id: str, period_id: str) -> Decimal:
        """Net billed amount for a period (reversals included)."""
        result = await self.session.execute(
            select(func.coalesce(func.sum(LedgerLine.amount), 0)).where(
                LedgerLine.parent_id == parent_id, LedgerLine.period_id == period_id
            )
        )
        return Decimal(str(result.scalar())).quantize(Decimal("0.01"))
