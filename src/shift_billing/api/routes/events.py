"""Attendance change event intake."""

import logging

from fastapi import APIRouter, HTTPException, status
from sqlalchemy.exc import DBAPIError, OperationalError

from shift_billing.api.dependencies import Billing, DbSession
from shift_billing.api.schemas import AttendanceChangeEvent, ErrorResponse, ReplicationResponse
from shift_billing.services.replication import AttendanceChange, ReplicationOrchestrator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/events", tags=["events"])


@router.post(
    "/attendance",
    response_model=ReplicationResponse,
    status_code=status.HTTP_200_OK,
    responses={503: {"model": ErrorResponse}},
)
async def attendance_changed(
    db: DbSession,
    billing: Billing,
    payload: AttendanceChangeEvent,
) -> ReplicationResponse:
    """Replicate an approval into the parent ledger.

    Skips and duplicate deliveries answer 200. Storage failures answer 503
    so the trigger redelivers; redelivery is safe because the ledger write
    is idempotent.
    """
    orchestrator = ReplicationOrchestrator.for_session(db, billing)
    change = AttendanceChange(
        tenant_id=payload.tenant_id,
        attendance_id=payload.attendance_id,
        before=payload.before,
        after=payload.after,
        event_id=payload.event_id,
    )
    try:
        result = await orchestrator.handle(change)
        await db.commit()
    except (OperationalError, DBAPIError, TimeoutError):
        await db.rollback()
        logger.exception(
            "Ledger replication failed for attendance %s, requesting redelivery",
            payload.attendance_id,
            extra={"outcome": "retry", "attendance_id": payload.attendance_id},
        )
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Transient storage failure, retry delivery",
        )

    return ReplicationResponse(
        outcome=result.outcome.value,
        reason=result.reason,
        line_id=result.line_id,
        period_id=result.period_id,
    )
