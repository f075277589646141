"""FastAPI application factory."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from shift_billing import __version__
from shift_billing.api.routes import events_router, health_router, ledgers_router
from shift_billing.config import Settings, get_settings
from shift_billing.database import create_engine, create_session_factory

logger = logging.getLogger(__name__)


def create_app(
    settings: Settings | None = None,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    A session factory may be injected (tests); otherwise one is built from
    settings.database_url at startup and disposed at shutdown.
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Application lifespan handler."""
        engine = None
        if getattr(app.state, "session_factory", None) is None:
            engine = create_engine(settings.database_url)
            app.state.session_factory = create_session_factory(engine)
        yield
        if engine is not None:
            await engine.dispose()

    app = FastAPI(
        title="Shift Billing API",
        description="Attendance approval to parent billing ledger replication",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.session_factory = session_factory
    app.state.billing_config = settings.billing

    @app.exception_handler(Exception)
    async def general_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        """Handle unexpected exceptions."""
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "detail": "An unexpected error occurred",
                "code": "INTERNAL_ERROR",
            },
        )

    app.include_router(health_router)
    app.include_router(events_router, prefix="/api/v1")
    app.include_router(ledgers_router, prefix="/api/v1")

    return app
