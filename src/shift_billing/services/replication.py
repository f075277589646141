"""Attendance approval -> parent billing ledger replication.

Consumes "attendance document changed" events (before/after snapshots plus
the tenant id). Delivery is at-least-once, unordered, and may be
concurrent for the same change, so every invocation must be safe to repeat:

1. Deletions and anything other than a transition into "approved" are
   ignored.
2. Malformed records and missing configuration are terminal skips. They
   are logged once and never retried.
3. The single durable side effect is LedgerWriter.write, a conditional
   create keyed on the source record. Storage errors propagate so the
   trigger redelivers.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Mapping

from sqlalchemy.ext.asyncio import AsyncSession

from shift_billing.calculators.hours import compute_amount, compute_hours
from shift_billing.calculators.periods import derive_period_id
from shift_billing.calculators.types import AttendanceSnapshot, AttendanceStatus, LedgerLineCandidate
from shift_billing.config import BillingConfig
from shift_billing.exceptions import InvalidContractError, SkipReplication
from shift_billing.logging_config import LogContext
from shift_billing.services.contract_resolver import ContractResolver
from shift_billing.services.ledger_writer import LedgerWriter, WriteOutcome

logger = logging.getLogger(__name__)


class ReplicationOutcome(str, Enum):
    IGNORED = "ignored"
    SKIPPED = "skipped"
    WRITTEN = "written"
    DUPLICATE = "duplicate"


@dataclass(frozen=True)
class AttendanceChange:
    """One delivery of an attendance document change.

    before/after are the raw stored documents; None means the document did
    not exist on that side of the change.
    """

    tenant_id: str
    attendance_id: str
    before: Mapping[str, Any] | None
    after: Mapping[str, Any] | None
    event_id: str | None = None


@dataclass(frozen=True)
class ReplicationResult:
    outcome: ReplicationOutcome
    reason: str | None = None
    line_id: str | None = None
    period_id: str | None = None
    detail: dict[str, Any] = field(default_factory=dict)


def _raw_status(document: Mapping[str, Any] | None) -> str | None:
    if document is None:
        return None
    status = document.get("status")
    return status.value if isinstance(status, Enum) else status


def became_approved(before: Mapping[str, Any] | None, after: Mapping[str, Any]) -> bool:
    """True only for the transition into approved.

    Reads nothing but the status field, so edits that are not approvals are
    recognised without parsing the rest of the document.
    """
    approved = AttendanceStatus.APPROVED.value
    return _raw_status(after) == approved and _raw_status(before) != approved


class ReplicationOrchestrator:
    """Drives contract resolution, hour/period calculation and the ledger write."""

    def __init__(
        self,
        resolver: ContractResolver,
        writer: LedgerWriter,
        config: BillingConfig | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.resolver = resolver
        self.writer = writer
        self.config = config or BillingConfig()
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    @classmethod
    def for_session(
        cls,
        session: AsyncSession,
        config: BillingConfig | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> ReplicationOrchestrator:
        config = config or BillingConfig()
        return cls(
            resolver=ContractResolver(session, config),
            writer=LedgerWriter(session, clock),
            config=config,
            clock=clock,
        )

    async def handle(self, change: AttendanceChange) -> ReplicationResult:
        """Process one change delivery.

        Returns a result for every terminal path. Only storage failures
        raise.
        """
        with LogContext.bind(event_id=change.event_id, tenant_id=change.tenant_id):
            if change.after is None:
                logger.debug("Attendance %s deleted, nothing to replicate", change.attendance_id)
                return ReplicationResult(ReplicationOutcome.IGNORED, reason="deleted")

            try:
                return await self._replicate(change)
            except SkipReplication as skip:
                logger.warning(
                    "Skipping ledger replication for attendance %s: %s",
                    change.attendance_id,
                    skip,
                    extra={
                        "outcome": ReplicationOutcome.SKIPPED.value,
                        "reason": skip.reason,
                        "attendance_id": change.attendance_id,
                        **skip.detail,
                    },
                )
                return ReplicationResult(
                    ReplicationOutcome.SKIPPED, reason=skip.reason, detail=dict(skip.detail)
                )

    async def _replicate(self, change: AttendanceChange) -> ReplicationResult:
        if not became_approved(change.before, change.after or {}):
            logger.debug(
                "Attendance %s is not an approval transition (%s -> %s)",
                change.attendance_id,
                _raw_status(change.before),
                _raw_status(change.after),
            )
            return ReplicationResult(ReplicationOutcome.IGNORED, reason="not_an_approval")

        try:
            after = AttendanceSnapshot.from_mapping(change.attendance_id, change.after or {})
        except ValueError as e:
            raise SkipReplication("malformed_record", f"unreadable attendance record ({e})") from None

        if not after.staff_id or after.clock_in is None:
            raise SkipReplication(
                "missing_required_fields",
                "attendance is missing staffId or clockIn",
                has_staff_id=bool(after.staff_id),
                has_clock_in=after.clock_in is not None,
            )
        # Never substitute "now" for a missing clock-out.
        if after.clock_out is None:
            raise SkipReplication("missing_clock_out", "approved attendance has no clockOut")
        if after.clock_out < after.clock_in:
            raise SkipReplication(
                "clock_out_before_clock_in",
                "clockOut precedes clockIn",
                clock_in=after.clock_in,
                clock_out=after.clock_out,
            )

        parent_id = await self.resolver.parent_for_org(change.tenant_id)
        if parent_id is None:
            raise SkipReplication(
                "no_parent_mapping",
                f"org {change.tenant_id} has no parent billing organization",
            )

        try:
            contract = await self.resolver.contract_for(parent_id, change.tenant_id)
        except InvalidContractError as e:
            raise SkipReplication(
                "invalid_contract", str(e), parent_id=parent_id, field=e.field
            ) from None
        if contract is None:
            raise SkipReplication(
                "no_contract",
                f"no contract between parent {parent_id} and org {change.tenant_id}",
                parent_id=parent_id,
            )

        hours = compute_hours(after.clock_in, after.clock_out, contract.rounding)
        period_id = derive_period_id(after.clock_out, contract.period, self.config.biweekly_anchor)

        candidate = LedgerLineCandidate(
            parent_id=parent_id,
            sub_org_id=change.tenant_id,
            staff_ref=after.staff_id,
            venue_id=after.venue_id,
            period_id=period_id,
            hours=hours,
            bill_rate=contract.bill_rate,
            amount=compute_amount(hours, contract.bill_rate),
            source_attendance_id=change.attendance_id,
            created_at=self.clock(),
        )

        with LogContext.bind(parent_id=parent_id):
            result = await self.writer.write(candidate)

        outcome = (
            ReplicationOutcome.WRITTEN
            if result.outcome == WriteOutcome.CREATED
            else ReplicationOutcome.DUPLICATE
        )
        return ReplicationResult(outcome, line_id=result.line_id, period_id=period_id)


def approved_record_change(tenant_id: str, record: Any) -> AttendanceChange:
    """Synthetic pending -> approved change for an already approved record.

    Used to backfill or re-drive replication; safe to repeat because the
    ledger write is idempotent.
    """
    snapshot = dict(record.to_document())
    return AttendanceChange(
        tenant_id=tenant_id,
        attendance_id=record.attendance_id,
        before={**snapshot, "status": AttendanceStatus.PENDING.value},
        after=snapshot,
        event_id=f"backfill:{record.attendance_id}",
    )
