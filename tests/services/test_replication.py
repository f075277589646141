"""Tests for the attendance approval -> ledger replication pipeline.

Tests verify:
1. Exactly one ledger line per approved attendance record
2. Safe re-delivery (sequential and concurrent)
3. Terminal skips write nothing and log once
4. Storage failures propagate for redelivery
"""

import asyncio
import logging
from decimal import Decimal

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from shift_billing.config import BillingConfig
from shift_billing.database import session_scope
from shift_billing.models import AttendanceRecord, BillingContract, LedgerLine
from shift_billing.services.contract_resolver import ContractResolver
from shift_billing.services.replication import (
    AttendanceChange,
    ReplicationOrchestrator,
    ReplicationOutcome,
    ReplicationResult,
    approved_record_change,
)
from tests.conftest import FIXED_NOW, ORG_ID, PARENT_ID, attendance_doc, seed_billing, utc

REPLICATION_LOGGER = "shift_billing.services.replication"


def approval(after=None, before=None, attendance_id="att-1", **overrides) -> AttendanceChange:
    after = after if after is not None else attendance_doc(**overrides)
    before = before if before is not None else {**after, "status": "pending"}
    return AttendanceChange(
        tenant_id=ORG_ID,
        attendance_id=attendance_id,
        before=before,
        after=after,
        event_id=f"evt-{attendance_id}",
    )


async def all_lines(session: AsyncSession) -> list[LedgerLine]:
    return list((await session.execute(select(LedgerLine))).scalars().all())


@pytest.fixture
def orchestrator(session, billing_config, clock) -> ReplicationOrchestrator:
    return ReplicationOrchestrator.for_session(session, billing_config, clock)


class TestApprovalWritesLine:
    async def test_two_and_a_half_hours(self, session, orchestrator):
        await seed_billing(session, bill_rate="22.50", rounding="none", period="weekly")

        result = await orchestrator.handle(approval())
        await session.commit()

        assert result.outcome == ReplicationOutcome.WRITTEN
        assert result.period_id == "2025-W01"

        lines = await all_lines(session)
        assert len(lines) == 1
        line = lines[0]
        assert line.line_id == result.line_id
        assert line.parent_id == PARENT_ID
        assert line.sub_org_id == ORG_ID
        assert line.staff_ref == "staff-1"
        assert line.venue_id == "venue-1"
        assert line.hours == Decimal("2.5")
        assert line.bill_rate == Decimal("22.50")
        assert line.amount == Decimal("56.25")
        assert line.source_attendance_id == "att-1"
        assert line.entry_type == "billable"

    async def test_rounding_applied(self, session, orchestrator):
        await seed_billing(session, bill_rate="20.00", rounding="nearest-15")

        await orchestrator.handle(
            approval(clockIn=utc(2025, 1, 2, 9, 0), clockOut=utc(2025, 1, 2, 9, 10))
        )
        await session.commit()

        [line] = await all_lines(session)
        assert line.hours == Decimal("0.25")
        assert line.amount == Decimal("5.00")

    async def test_default_period_when_contract_omits_it(self, session, orchestrator):
        await seed_billing(session, period=None)

        result = await orchestrator.handle(approval())

        # 2025-01-02 falls in the fortnight starting Monday 2024-12-30
        assert result.period_id == "2025-BW01"

    async def test_period_follows_clock_out(self, session, orchestrator):
        await seed_billing(session, period="monthly")

        result = await orchestrator.handle(
            approval(clockIn=utc(2025, 1, 31, 22, 0), clockOut=utc(2025, 2, 1, 2, 0))
        )

        assert result.period_id == "2025-M02"

    async def test_created_without_prior_document(self, session, orchestrator):
        await seed_billing(session)
        change = AttendanceChange(
            tenant_id=ORG_ID, attendance_id="att-1", before=None, after=attendance_doc()
        )

        result = await orchestrator.handle(change)

        assert result.outcome == ReplicationOutcome.WRITTEN

    async def test_epoch_millis_timestamps(self, session, orchestrator):
        await seed_billing(session)
        doc = attendance_doc(
            clockIn=int(utc(2025, 1, 2, 9, 0).timestamp() * 1000),
            clockOut=int(utc(2025, 1, 2, 11, 30).timestamp() * 1000),
        )

        result = await orchestrator.handle(approval(after=doc))
        await session.commit()

        assert result.outcome == ReplicationOutcome.WRITTEN
        [line] = await all_lines(session)
        assert line.amount == Decimal("56.25")


class TestIdempotence:
    async def test_redelivery_writes_once(self, session, orchestrator):
        await seed_billing(session)

        first = await orchestrator.handle(approval())
        second = await orchestrator.handle(approval())
        await session.commit()

        assert first.outcome == ReplicationOutcome.WRITTEN
        assert second.outcome == ReplicationOutcome.DUPLICATE
        assert second.line_id == first.line_id
        assert len(await all_lines(session)) == 1

    async def test_redelivery_after_contract_change_keeps_original(self, session, orchestrator):
        await seed_billing(session, bill_rate="22.50")
        await orchestrator.handle(approval())
        await session.commit()

        contract = await session.get(BillingContract, (PARENT_ID, ORG_ID))
        contract.bill_rate = Decimal("99.00")
        await session.commit()

        result = await orchestrator.handle(approval())
        await session.commit()

        assert result.outcome == ReplicationOutcome.DUPLICATE
        [line] = await all_lines(session)
        assert line.amount == Decimal("56.25")

    async def test_independent_sessions_write_once(self, session, session_factory, billing_config, clock):
        """Two workers each run the full pipeline in their own unit of work."""
        await seed_billing(session)

        async with session_factory() as first_session, session_factory() as second_session:
            first = ReplicationOrchestrator.for_session(first_session, billing_config, clock)
            second = ReplicationOrchestrator.for_session(second_session, billing_config, clock)

            # Both resolve the contract before either writes
            assert await second.resolver.parent_for_org(ORG_ID) == PARENT_ID
            first_result = await first.handle(approval())
            await first_session.commit()
            second_result = await second.handle(approval())
            await second_session.commit()

        assert first_result.outcome == ReplicationOutcome.WRITTEN
        assert second_result.outcome == ReplicationOutcome.DUPLICATE
        assert first_result.line_id == second_result.line_id
        count = (await session.execute(select(func.count()).select_from(LedgerLine))).scalar()
        assert count == 1

    async def test_concurrent_deliveries_write_once(self, session, session_factory, billing_config, clock):
        """Two overlapping deliveries of one approval race on the same ledger key."""
        await seed_billing(session)
        both_resolved = asyncio.Event()
        resolved = 0

        async def deliver() -> ReplicationResult:
            nonlocal resolved
            async with session_scope(session_factory) as s:
                orchestrator = ReplicationOrchestrator.for_session(s, billing_config, clock)
                assert await orchestrator.resolver.parent_for_org(ORG_ID) == PARENT_ID
                resolved += 1
                if resolved == 2:
                    both_resolved.set()
                await both_resolved.wait()
                return await orchestrator.handle(approval())

        results = await asyncio.gather(deliver(), deliver())

        assert {r.outcome for r in results} == {ReplicationOutcome.WRITTEN, ReplicationOutcome.DUPLICATE}
        assert results[0].line_id == results[1].line_id
        count = (await session.execute(select(func.count()).select_from(LedgerLine))).scalar()
        assert count == 1

    async def test_session_scope_redelivery(self, session, session_factory, billing_config, clock):
        await seed_billing(session)

        outcomes = []
        for _ in range(3):
            async with session_scope(session_factory) as s:
                result = await ReplicationOrchestrator.for_session(s, billing_config, clock).handle(approval())
            outcomes.append(result.outcome)

        assert outcomes == [
            ReplicationOutcome.WRITTEN,
            ReplicationOutcome.DUPLICATE,
            ReplicationOutcome.DUPLICATE,
        ]

    async def test_backfill_change_is_idempotent(self, session, orchestrator):
        await seed_billing(session)
        record = AttendanceRecord(
            attendance_id="att-1",
            org_id=ORG_ID,
            staff_id="staff-1",
            venue_id="venue-1",
            clock_in=utc(2025, 1, 2, 9, 0),
            clock_out=utc(2025, 1, 2, 11, 30),
            status="approved",
        )

        change = approved_record_change(ORG_ID, record)
        first = await orchestrator.handle(change)
        second = await orchestrator.handle(change)

        assert change.event_id == "backfill:att-1"
        assert change.before["status"] == "pending"
        assert first.outcome == ReplicationOutcome.WRITTEN
        assert second.outcome == ReplicationOutcome.DUPLICATE


class TestIgnored:
    async def test_unreadable_edit_that_is_not_an_approval(self, session, orchestrator, caplog):
        await seed_billing(session)
        doc = attendance_doc(status="pending", clockIn="not a time")
        change = approval(after=doc, before=doc)

        with caplog.at_level(logging.WARNING, logger=REPLICATION_LOGGER):
            result = await orchestrator.handle(change)

        assert result.outcome == ReplicationOutcome.IGNORED
        assert result.reason == "not_an_approval"
        assert [r for r in caplog.records if r.name == REPLICATION_LOGGER] == []

    async def test_unreadable_before_does_not_block_approval(self, session, orchestrator):
        await seed_billing(session)
        before = attendance_doc(status="pending", clockOut="not a time")

        result = await orchestrator.handle(approval(before=before))

        assert result.outcome == ReplicationOutcome.WRITTEN

    async def test_deleted_document(self, session, orchestrator):
        await seed_billing(session)
        change = AttendanceChange(
            tenant_id=ORG_ID, attendance_id="att-1", before=attendance_doc(), after=None
        )

        result = await orchestrator.handle(change)

        assert result.outcome == ReplicationOutcome.IGNORED
        assert result.reason == "deleted"
        assert await all_lines(session) == []

    async def test_already_approved_before(self, session, orchestrator):
        await seed_billing(session)

        result = await orchestrator.handle(approval(before=attendance_doc()))

        assert result.outcome == ReplicationOutcome.IGNORED
        assert result.reason == "not_an_approval"
        assert await all_lines(session) == []

    @pytest.mark.parametrize("status", ["pending", "rejected"])
    async def test_not_approved_after(self, session, orchestrator, status):
        await seed_billing(session)

        result = await orchestrator.handle(approval(status=status))

        assert result.outcome == ReplicationOutcome.IGNORED
        assert await all_lines(session) == []


class TestTerminalSkips:
    async def assert_skipped(self, session, orchestrator, change, reason, caplog):
        with caplog.at_level(logging.WARNING, logger=REPLICATION_LOGGER):
            result = await orchestrator.handle(change)

        assert result.outcome == ReplicationOutcome.SKIPPED
        assert result.reason == reason
        assert await all_lines(session) == []

        warnings = [
            r for r in caplog.records
            if r.name == REPLICATION_LOGGER and r.levelno == logging.WARNING
        ]
        assert len(warnings) == 1
        assert warnings[0].reason == reason
        assert warnings[0].outcome == "skipped"
        return result

    async def test_missing_clock_out(self, session, orchestrator, caplog):
        await seed_billing(session)
        await self.assert_skipped(
            session, orchestrator, approval(clockOut=None), "missing_clock_out", caplog
        )

    async def test_missing_staff_id(self, session, orchestrator, caplog):
        await seed_billing(session)
        await self.assert_skipped(
            session, orchestrator, approval(staffId=None), "missing_required_fields", caplog
        )

    async def test_missing_clock_in(self, session, orchestrator, caplog):
        await seed_billing(session)
        await self.assert_skipped(
            session, orchestrator, approval(clockIn=None), "missing_required_fields", caplog
        )

    async def test_clock_out_before_clock_in(self, session, orchestrator, caplog):
        await seed_billing(session)
        await self.assert_skipped(
            session,
            orchestrator,
            approval(clockIn=utc(2025, 1, 2, 12, 0), clockOut=utc(2025, 1, 2, 9, 0)),
            "clock_out_before_clock_in",
            caplog,
        )

    async def test_unmapped_org(self, session, orchestrator, caplog):
        await seed_billing(session, parent_id=None)
        await self.assert_skipped(session, orchestrator, approval(), "no_parent_mapping", caplog)

    async def test_unknown_org(self, session, orchestrator, caplog):
        await self.assert_skipped(session, orchestrator, approval(), "no_parent_mapping", caplog)

    async def test_missing_contract(self, session, orchestrator, caplog):
        await seed_billing(session, with_contract=False)
        await self.assert_skipped(session, orchestrator, approval(), "no_contract", caplog)

    async def test_invalid_contract(self, session, orchestrator, caplog):
        await seed_billing(session, rounding="nearest-7")
        result = await self.assert_skipped(
            session, orchestrator, approval(), "invalid_contract", caplog
        )
        assert result.detail["field"] == "rounding"

    async def test_malformed_timestamp(self, session, orchestrator, caplog):
        await seed_billing(session)
        await self.assert_skipped(
            session, orchestrator, approval(clockIn="not a time"), "malformed_record", caplog
        )

    async def test_out_of_range_epoch_timestamp(self, session, orchestrator, caplog):
        await seed_billing(session)
        await self.assert_skipped(
            session, orchestrator, approval(clockOut=10**22), "malformed_record", caplog
        )

    async def test_skip_is_stable_on_redelivery(self, session, orchestrator):
        await seed_billing(session)

        first = await orchestrator.handle(approval(clockOut=None))
        second = await orchestrator.handle(approval(clockOut=None))

        assert first.reason == second.reason == "missing_clock_out"
        assert await all_lines(session) == []


class FailingWriter:
    async def write(self, candidate):
        raise OperationalError("INSERT INTO ledger_line", {}, Exception("database is locked"))


class TestTransientFailures:
    async def test_storage_error_propagates(self, session, billing_config, clock):
        await seed_billing(session)
        orchestrator = ReplicationOrchestrator(
            resolver=ContractResolver(session, billing_config),
            writer=FailingWriter(),
            config=billing_config,
            clock=clock,
        )

        with pytest.raises(OperationalError):
            await orchestrator.handle(approval())

    async def test_retry_after_failure_writes_once(self, session, billing_config, clock):
        await seed_billing(session)
        failing = ReplicationOrchestrator(
            resolver=ContractResolver(session, billing_config),
            writer=FailingWriter(),
            config=billing_config,
            clock=clock,
        )
        with pytest.raises(OperationalError):
            await failing.handle(approval())

        orchestrator = ReplicationOrchestrator.for_session(session, billing_config, clock)
        result = await orchestrator.handle(approval())
        await session.commit()

        assert result.outcome == ReplicationOutcome.WRITTEN
        [line] = await all_lines(session)
        assert line.created_at.replace(tzinfo=None) == FIXED_NOW.replace(tzinfo=None)


class TestConfig:
    async def test_biweekly_anchor_from_config(self, session, clock):
        await seed_billing(session, period="biweekly")
        config = BillingConfig(biweekly_anchor=utc(2024, 1, 8).date())
        orchestrator = ReplicationOrchestrator.for_session(session, config, clock)

        result = await orchestrator.handle(approval())

        # Fortnight starting 2024-12-23 (ISO week 52 of 2024)
        assert result.period_id == "2024-BW26"
