"""API routes."""

from shift_billing.api.routes.events import router as events_router
from shift_billing.api.routes.health import router as health_router
from shift_billing.api.routes.ledgers import router as ledgers_router

__all__ = ["events_router", "health_router", "ledgers_router"]
