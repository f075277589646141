"""Operator command line interface.

Usage:
    python -m shift_billing.cli replay --event change.json
    python -m shift_billing.cli backfill --org-id ORG
    python -m shift_billing.cli reverse --parent-id P --period-id 2025-W01 --line-id L --reason "..."
    python -m shift_billing.cli export --parent-id P --period-id 2025-W01 > ledger.csv
    python -m shift_billing.cli init-db

Every command that writes goes through the same idempotent ledger writer
as the event pipeline, so re-running a command never double-bills.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any, Awaitable, Callable

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from shift_billing.calculators.types import AttendanceStatus
from shift_billing.config import Settings, get_settings
from shift_billing.database import create_engine, create_schema, create_session_factory, session_scope
from shift_billing.logging_config import configure_logging
from shift_billing.models import AttendanceRecord
from shift_billing.services.csv_export import render_ledger_csv
from shift_billing.services.ledger_reader import LedgerReader
from shift_billing.services.ledger_writer import LedgerWriter
from shift_billing.services.replication import (
    AttendanceChange,
    ReplicationOrchestrator,
    ReplicationOutcome,
    approved_record_change,
)


def load_change(path: Path) -> AttendanceChange:
    """Read a change event JSON file ({tenantId, attendanceId, before, after})."""
    raw = json.loads(path.read_text())
    return AttendanceChange(
        tenant_id=raw["tenantId"],
        attendance_id=raw["attendanceId"],
        before=raw.get("before"),
        after=raw.get("after"),
        event_id=raw.get("eventId"),
    )


class BillingCli:
    """Operator CLI for the replication pipeline."""

    def __init__(
        self,
        settings: Settings | None = None,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        out: Any = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.session_factory = session_factory
        self.out = out or sys.stdout
        self.parser = self._build_parser()

    def _build_parser(self) -> argparse.ArgumentParser:
        parser = argparse.ArgumentParser(
            prog="python -m shift_billing.cli",
            description="Billing ledger replication tools",
        )
        subparsers = parser.add_subparsers(dest="command", help="Commands")

        replay = subparsers.add_parser("replay", help="Process one change event from a JSON file")
        replay.add_argument("--event", type=Path, required=True, help="Path to the change event JSON")

        backfill = subparsers.add_parser(
            "backfill", help="Re-run replication for every approved attendance record of an org"
        )
        backfill.add_argument("--org-id", required=True, help="Sub-organization id")

        reverse = subparsers.add_parser("reverse", help="Append a reversal for a ledger line")
        reverse.add_argument("--parent-id", required=True)
        reverse.add_argument("--period-id", required=True)
        reverse.add_argument("--line-id", required=True)
        reverse.add_argument("--reason", required=True)

        export = subparsers.add_parser("export", help="Write a period's ledger CSV to stdout")
        export.add_argument("--parent-id", required=True)
        export.add_argument("--period-id", required=True)

        subparsers.add_parser("init-db", help="Create database tables")

        return parser

    def run(self, args: list[str] | None = None) -> int:
        """Parse arguments and run the selected command."""
        parsed = self.parser.parse_args(args)
        if not parsed.command:
            self.parser.print_help()
            return 1

        commands: dict[str, Callable[[argparse.Namespace], Awaitable[int]]] = {
            "replay": self._cmd_replay,
            "backfill": self._cmd_backfill,
            "reverse": self._cmd_reverse,
            "export": self._cmd_export,
            "init-db": self._cmd_init_db,
        }
        return asyncio.run(self._with_database(commands[parsed.command], parsed))

    async def _with_database(
        self,
        command: Callable[[argparse.Namespace], Awaitable[int]],
        args: argparse.Namespace,
    ) -> int:
        if self.session_factory is not None:
            return await command(args)

        engine = create_engine(self.settings.database_url)
        self.session_factory = create_session_factory(engine)
        try:
            return await command(args)
        finally:
            await engine.dispose()

    def _print_json(self, payload: dict[str, Any]) -> None:
        print(json.dumps(payload, default=str), file=self.out)

    async def _cmd_replay(self, args: argparse.Namespace) -> int:
        change = load_change(args.event)
        async with session_scope(self.session_factory) as session:
            result = await ReplicationOrchestrator.for_session(session, self.settings.billing).handle(change)

        self._print_json(
            {
                "attendanceId": change.attendance_id,
                "outcome": result.outcome.value,
                "reason": result.reason,
                "lineId": result.line_id,
                "periodId": result.period_id,
            }
        )
        return 0

    async def _cmd_backfill(self, args: argparse.Namespace) -> int:
        async with self.session_factory() as session:
            records = (
                await session.execute(
                    select(AttendanceRecord)
                    .where(
                        AttendanceRecord.org_id == args.org_id,
                        AttendanceRecord.status == AttendanceStatus.APPROVED.value,
                    )
                    .order_by(AttendanceRecord.attendance_id)
                )
            ).scalars().all()

        counts = {outcome.value: 0 for outcome in ReplicationOutcome}
        for record in records:
            async with session_scope(self.session_factory) as session:
                result = await ReplicationOrchestrator.for_session(
                    session, self.settings.billing
                ).handle(approved_record_change(args.org_id, record))
            counts[result.outcome.value] += 1

        self._print_json({"orgId": args.org_id, "records": len(records), **counts})
        return 0

    async def _cmd_reverse(self, args: argparse.Namespace) -> int:
        async with session_scope(self.session_factory) as session:
            result = await LedgerWriter(session).reverse(
                parent_id=args.parent_id,
                period_id=args.period_id,
                line_id=args.line_id,
                reason=args.reason,
            )
        self._print_json({"lineId": result.line_id, "outcome": result.outcome.value, "path": result.path})
        return 0

    async def _cmd_export(self, args: argparse.Namespace) -> int:
        async with self.session_factory() as session:
            lines = await LedgerReader(session).lines_for_period(args.parent_id, args.period_id)
        self.out.write(render_ledger_csv(lines))
        return 0

    async def _cmd_init_db(self, args: argparse.Namespace) -> int:
        engine = self.session_factory.kw["bind"]
        await create_schema(engine)
        self._print_json({"status": "ok"})
        return 0


def main() -> int:
    """CLI entry point."""
    settings = get_settings()
    configure_logging(level=settings.log_level, fmt=settings.log_format)
    return BillingCli(settings).run()


if __name__ == "__main__":
    sys.exit(main())
