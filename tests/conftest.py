"""Pytest fixtures for billing replication tests."""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from shift_billing.config import BillingConfig
from shift_billing.database import create_engine, create_schema, create_session_factory
from shift_billing.models import BillingContract, Org, OrgMembership

PARENT_ID = "parent-1"
ORG_ID = "org-1"
FIXED_NOW = datetime(2025, 1, 20, 12, 0, tzinfo=timezone.utc)


def utc(*args: int) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


def attendance_doc(**overrides: Any) -> dict[str, Any]:
    """An approved, closed attendance document (camelCase, as stored)."""
    doc: dict[str, Any] = {
        "staffId": "staff-1",
        "venueId": "venue-1",
        "clockIn": utc(2025, 1, 2, 9, 0),
        "clockOut": utc(2025, 1, 2, 11, 30),
        "status": "approved",
        "approvedBy": "admin-1",
        "approvedAt": utc(2025, 1, 2, 12, 0),
    }
    doc.update(overrides)
    return doc


@pytest.fixture
def database_url(tmp_path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'billing.db'}"


@pytest_asyncio.fixture
async def engine(database_url: str) -> AsyncGenerator[AsyncEngine, None]:
    """Create test database engine with all tables."""
    engine = create_engine(database_url)
    await create_schema(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return create_session_factory(engine)


@pytest_asyncio.fixture
async def session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for each test."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def billing_config() -> BillingConfig:
    return BillingConfig()


@pytest.fixture
def clock():
    return lambda: FIXED_NOW


async def seed_billing(
    session: AsyncSession,
    *,
    org_id: str = ORG_ID,
    parent_id: str | None = PARENT_ID,
    bill_rate: str = "22.50",
    rounding: str | None = "none",
    period: str | None = "weekly",
    with_contract: bool = True,
) -> None:
    """Org -> parent mapping plus the contract between them."""
    session.add(Org(org_id=org_id, name=f"Org {org_id}", parent_id=parent_id))
    if parent_id is not None and with_contract:
        session.add(
            BillingContract(
                parent_id=parent_id,
                sub_org_id=org_id,
                bill_rate=Decimal(bill_rate),
                rounding=rounding,
                period=period,
            )
        )
    await session.commit()


async def seed_member(session: AsyncSession, org_id: str, uid: str, role: str = "staff") -> None:
    session.add(OrgMembership(org_id=org_id, uid=uid, role=role))
    await session.commit()
