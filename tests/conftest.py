from __future__ import annotations

from collections.abc import AsyncIterator

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from firmwatch.api.deps import get_db_session_factory
from firmwatch.api.main import app
from firmwatch.infrastructure.db.base import Base
from firmwatch.infrastructure.db.models import Firm, UserModel, UserRole, UserStatus
from tests.utils import SeedData, password_hash


@pytest.fixture()
async def engine() -> AsyncIterator[AsyncEngine]:
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        future=True,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture()
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest.fixture()
async def seed(session_factory: async_sessionmaker[AsyncSession]) -> SeedData:
    """Two firms and one user per role; managers and the viewer are pinned to one firm."""
    data = SeedData()
    users = [
        (data.admin_id, "admin", UserRole.ADMIN, "all"),
        (data.manager_f1_id, "manager-f1", UserRole.MANAGER, data.firm_1),
        (data.manager_f2_id, "manager-f2", UserRole.MANAGER, data.firm_2),
        (data.user_id, "staff", UserRole.USER, ""),
        (data.viewer_id, "viewer-f1", UserRole.VIEWER, data.firm_1),
    ]
    async with session_factory() as session:
        session.add_all(
            [
                Firm(id=data.firm_1, name="Alpha Builders"),
                Firm(id=data.firm_2, name="Beta Traders"),
            ]
        )
        for user_id, username, role, firm_access in users:
            session.add(
                UserModel(
                    id=user_id,
                    username=username,
                    hashed_password=password_hash(),
                    full_name=username.replace("-", " ").title(),
                    role=role,
                    firm_access=firm_access,
                    status=UserStatus.ACTIVE,
                )
            )
        await session.commit()
    return data


@pytest.fixture()
async def db(session_factory: async_sessionmaker[AsyncSession]) -> AsyncIterator[AsyncSession]:
    """Provide a database session for tests that need direct DB access."""
    async with session_factory() as session:
        yield session


@pytest.fixture()
async def async_client(
    session_factory: async_sessionmaker[AsyncSession], seed: SeedData
) -> AsyncIterator[AsyncClient]:
    """Async HTTP client bound to the in-memory database."""
    app.dependency_overrides[get_db_session_factory] = lambda: session_factory
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.pop(get_db_session_factory, None)
