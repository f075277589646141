"""FastAPI dependencies for dependency injection."""

import json
from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from shift_billing.config import BillingConfig
from shift_billing.services.isolation import (
    IsolationEnforcer,
    Principal,
    SqlMembershipLookup,
    principal_from_claims,
)


async def get_db_session(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """Get database session dependency."""
    async with request.app.state.session_factory() as session:
        try:
            yield session
        finally:
            await session.close()


def get_billing_config(request: Request) -> BillingConfig:
    return request.app.state.billing_config


async def get_principal(
    x_auth_claims: Annotated[str | None, Header()] = None,
) -> Principal:
    """Principal from claims verified upstream by the identity layer."""
    if not x_auth_claims:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="X-Auth-Claims header is required",
        )
    try:
        claims = json.loads(x_auth_claims)
        if not isinstance(claims, dict):
            raise ValueError("claims must be a JSON object")
        return principal_from_claims(claims)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid X-Auth-Claims",
        )


def get_enforcer(db: Annotated[AsyncSession, Depends(get_db_session)]) -> IsolationEnforcer:
    return IsolationEnforcer(SqlMembershipLookup(db))


# Type aliases for cleaner dependency injection
DbSession = Annotated[AsyncSession, Depends(get_db_session)]
Billing = Annotated[BillingConfig, Depends(get_billing_config)]
CurrentPrincipal = Annotated[Principal, Depends(get_principal)]
Enforcer = Annotated[IsolationEnforcer, Depends(get_enforcer)]
