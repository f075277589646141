"""Liveness, readiness and storage health probes."""

from datetime import datetime, timezone

from fastapi import APIRouter, Response, status
from pydantic import BaseModel
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from shift_billing import __version__
from shift_billing.api.dependencies import DbSession
from shift_billing.models import LedgerLine

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    status: str
    version: str
    timestamp: datetime
    ledger_store: str


async def _ledger_store_reachable(db: AsyncSession) -> bool:
    # Touches the ledger table itself so a missing schema reports unhealthy.
    try:
        await db.execute(select(func.count()).select_from(LedgerLine).limit(1))
    except SQLAlchemyError:
        return False
    return True


@router.get("/health", response_model=HealthResponse)
async def health_check(db: DbSession) -> HealthResponse:
    """Report whether the ledger store answers queries."""
    reachable = await _ledger_store_reachable(db)
    return HealthResponse(
        status="healthy" if reachable else "degraded",
        version=__version__,
        timestamp=datetime.now(timezone.utc),
        ledger_store="reachable" if reachable else "unreachable",
    )


@router.get("/ready")
async def readiness_check(db: DbSession, response: Response) -> dict[str, str]:
    """Accept events only while the ledger store is reachable."""
    if not await _ledger_store_reachable(db):
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return {"status": "not_ready"}
    return {"status": "ready"}


@router.get("/live")
async def liveness_check() -> dict[str, str]:
    return {"status": "alive"}
