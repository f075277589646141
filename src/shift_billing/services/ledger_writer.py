"""Append-only, idempotent ledger line writer.

Idempotency comes from the storage key, not from a lookup: every line id is
a hash of (parent_id, period_id, entry_type, source_attendance_id), and the
insert is a single INSERT ... ON CONFLICT DO NOTHING. Two concurrent
deliveries of the same approval race on that statement and exactly one wins.

There is no update or delete path.
"""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable

from sqlalchemy import Table
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from shift_billing.calculators.types import EntryType, LedgerLineCandidate
from shift_billing.exceptions import LedgerLineNotFoundError
from shift_billing.models import LedgerLine

logger = logging.getLogger(__name__)


class WriteOutcome(str, Enum):
    CREATED = "created"
    ALREADY_EXISTS = "already_exists"


@dataclass(frozen=True)
class WriteResult:
    """Result of a ledger write.

    ALREADY_EXISTS is a success: the line for this source was written by an
    earlier (or concurrent) delivery and has been left untouched.
    """

    line_id: str
    parent_id: str
    period_id: str
    outcome: WriteOutcome

    @property
    def is_new(self) -> bool:
        return self.outcome == WriteOutcome.CREATED

    @property
    def path(self) -> str:
        return f"parents/{self.parent_id}/ledgers/{self.period_id}/lines/{self.line_id}"


def ledger_line_id(
    parent_id: str,
    period_id: str,
    source_attendance_id: str,
    entry_type: EntryType = EntryType.BILLABLE,
) -> str:
    """Deterministic line id for a source record within a parent's period."""
    key = f"{parent_id}/{period_id}/{entry_type.value}/{source_attendance_id}"
    return hashlib.sha256(key.encode()).hexdigest()[:32]


def _insert_for(session: AsyncSession) -> Callable[[Table], Any]:
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        return pg_insert
    if dialect == "sqlite":
        return sqlite_insert
    raise NotImplementedError(f"No conditional insert for dialect {dialect!r}")


class LedgerWriter:
    """Creates ledger lines under parents/{parentId}/ledgers/{periodId}/lines."""

    def __init__(self, session: AsyncSession, clock: Callable[[], datetime] | None = None):
        self.session = session
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    async def write(self, candidate: LedgerLineCandidate) -> WriteResult:
        """Create the line if absent; an existing line is never overwritten."""
        line_id = ledger_line_id(
            candidate.parent_id,
            candidate.period_id,
            candidate.source_attendance_id,
            candidate.entry_type,
        )
        table = LedgerLine.__table__
        stmt = (
            _insert_for(self.session)(table)
            .values(
                parent_id=candidate.parent_id,
                period_id=candidate.period_id,
                line_id=line_id,
                sub_org_id=candidate.sub_org_id,
                staff_ref=candidate.staff_ref,
                venue_id=candidate.venue_id,
                hours=candidate.hours,
                bill_rate=candidate.bill_rate,
                amount=candidate.amount,
                source_attendance_id=candidate.source_attendance_id,
                entry_type=candidate.entry_type.value,
                reverses_line_id=candidate.reverses_line_id,
                reason=candidate.reason,
                created_at=candidate.created_at,
            )
            .on_conflict_do_nothing()
            .returning(table.c.line_id)
        )

        result = await self.session.execute(stmt)
        inserted = result.scalar_one_or_none()
        outcome = WriteOutcome.CREATED if inserted else WriteOutcome.ALREADY_EXISTS

        logger.info(
            "Ledger line %s",
            "created" if inserted else "already exists, left unchanged",
            extra={
                "outcome": outcome.value,
                "line_id": line_id,
                "parent_id": candidate.parent_id,
                "period_id": candidate.period_id,
                "source_attendance_id": candidate.source_attendance_id,
                "entry_type": candidate.entry_type.value,
            },
        )
        return WriteResult(
            line_id=line_id,
            parent_id=candidate.parent_id,
            period_id=candidate.period_id,
            outcome=outcome,
        )

    async def reverse(
        self,
        *,
        parent_id: str,
        period_id: str,
        line_id: str,
        reason: str,
    ) -> WriteResult:
        """Append a compensating line that cancels an existing billable line.

        The reversal is keyed on the same source record, so retrying a reversal
        yields ALREADY_EXISTS instead of a second correction.
        """
        original = await self.session.get(LedgerLine, (parent_id, period_id, line_id))
        if original is None:
            raise LedgerLineNotFoundError(parent_id, period_id, line_id)
        if original.entry_type != EntryType.BILLABLE.value:
            raise ValueError(f"Line {line_id} is a {original.entry_type} line and cannot be reversed")
        if not reason:
            raise ValueError("reason is required for a reversal")

        candidate = LedgerLineCandidate(
            parent_id=parent_id,
            sub_org_id=original.sub_org_id,
            staff_ref=original.staff_ref,
            venue_id=original.venue_id,
            period_id=period_id,
            hours=original.hours,
            bill_rate=original.bill_rate,
            amount=-original.amount,
            source_attendance_id=original.source_attendance_id,
            created_at=self.clock(),
            entry_type=EntryType.REVERSAL,
            reverses_line_id=line_id,
            reason=reason,
        )
        return await self.write(candidate)
