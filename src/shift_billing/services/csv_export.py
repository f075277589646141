"""CSV rendering of ledger lines for parent billing exports."""

from __future__ import annotations

import csv
import io
from decimal import Decimal
from typing import Any, Iterable

from shift_billing.calculators.hours import CENTS
from shift_billing.calculators.types import to_epoch_millis
from shift_billing.models import LedgerLine

LEDGER_CSV_COLUMNS = (
    "parentId",
    "subOrgId",
    "staffRef",
    "venueId",
    "periodId",
    "hours",
    "billRate",
    "amount",
    "sourceAttendanceId",
    "createdAt",
)


def _plain(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, Decimal):
        return format(value.normalize(), "f")
    return str(value)


def _money(value: Decimal | None) -> str:
    if value is None:
        return ""
    return format(Decimal(value).quantize(CENTS), "f")


def ledger_row(line: LedgerLine) -> list[str]:
    """One CSV row in LEDGER_CSV_COLUMNS order."""
    return [
        _plain(line.parent_id),
        _plain(line.sub_org_id),
        _plain(line.staff_ref),
        _plain(line.venue_id),
        _plain(line.period_id),
        _plain(line.hours),
        _plain(line.bill_rate),
        _money(line.amount),
        _plain(line.source_attendance_id),
        str(to_epoch_millis(line.created_at)) if line.created_at else "",
    ]


def render_ledger_csv(lines: Iterable[LedgerLine]) -> str:
    """Header plus one row per line.

    Fields containing a comma, quote or newline are quoted and inner quotes
    doubled. Rows end with a bare newline.
    """
    buf = io.StringIO()
    writer = csv.writer(buf, quoting=csv.QUOTE_MINIMAL, lineterminator="\n")
    writer.writerow(LEDGER_CSV_COLUMNS)
    for line in lines:
        writer.writerow(ledger_row(line))
    return buf.getvalue()


def export_filename(parent_id: str, period_id: str) -> str:
    return f"ledger_{parent_id}_{period_id}.csv"
