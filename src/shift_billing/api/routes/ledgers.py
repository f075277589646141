"""Parent ledger read and export endpoints."""

from fastapi import APIRouter, HTTPException, Response, status

from shift_billing.api.dependencies import CurrentPrincipal, DbSession, Enforcer
from shift_billing.api.schemas import ErrorResponse, LedgerLineResponse, LedgerPeriodResponse
from shift_billing.exceptions import AccessDenied
from shift_billing.services.csv_export import export_filename, render_ledger_csv
from shift_billing.services.isolation import Operation
from shift_billing.services.ledger_reader import LedgerReader

router = APIRouter(prefix="/parents", tags=["ledgers"])


async def _require_read(enforcer: Enforcer, principal: CurrentPrincipal, path: str) -> None:
    try:
        await enforcer.enforce(principal, path, Operation.READ)
    except AccessDenied as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=e.decision.reason)


@router.get(
    "/{parent_id}/ledgers/{period_id}/lines",
    response_model=LedgerPeriodResponse,
    responses={401: {"model": ErrorResponse}, 403: {"model": ErrorResponse}},
)
async def list_ledger_lines(
    parent_id: str,
    period_id: str,
    db: DbSession,
    principal: CurrentPrincipal,
    enforcer: Enforcer,
) -> LedgerPeriodResponse:
    """List a period's ledger lines for the parent admin."""
    await _require_read(enforcer, principal, f"parents/{parent_id}/ledgers/{period_id}/lines")

    reader = LedgerReader(db)
    lines = await reader.lines_for_period(parent_id, period_id)
    return LedgerPeriodResponse(
        items=[LedgerLineResponse.model_validate(line) for line in lines],
        total_amount=await reader.period_total(parent_id, period_id),
    )


@router.get(
    "/{parent_id}/ledgers/{period_id}/export",
    response_class=Response,
    responses={401: {"model": ErrorResponse}, 403: {"model": ErrorResponse}},
)
async def export_ledger_csv(
    parent_id: str,
    period_id: str,
    db: DbSession,
    principal: CurrentPrincipal,
    enforcer: Enforcer,
) -> Response:
    """Download a period's ledger as CSV."""
    await _require_read(enforcer, principal, f"parents/{parent_id}/ledgers/{period_id}/lines")

    lines = await LedgerReader(db).lines_for_period(parent_id, period_id)
    return Response(
        content=render_ledger_csv(lines),
        media_type="text/csv; charset=utf-8",
        headers={
            "content-disposition": f'attachment; filename="{export_filename(parent_id, period_id)}"'
        },
    )
