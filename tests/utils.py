from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from functools import lru_cache
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from firmwatch.api.deps import issue_smoke_token
from firmwatch.core.auth import Role
from firmwatch.domain.models import AlertStatus
from firmwatch.domain.rules import local_today
from firmwatch.domain.services.auth_service import hash_password
from firmwatch.infrastructure.db.models import Alert, TrackedEntityMixin

PASSWORD = "correct-horse-42"


@lru_cache
def password_hash() -> str:
    # bcrypt is slow; hash once per test session
    return hash_password(PASSWORD)


@dataclass
class SeedData:
    firm_1: str = "firm-1"
    firm_2: str = "firm-2"
    admin_id: str = "user-admin"
    manager_f1_id: str = "user-manager-f1"
    manager_f2_id: str = "user-manager-f2"
    user_id: str = "user-staff"
    viewer_id: str = "user-viewer-f1"
    password: str = PASSWORD


def auth_headers(user_id: str, role: Role) -> dict[str, str]:
    token = issue_smoke_token(user_id, role=role)
    return {"Authorization": f"Bearer {token}"}


def today() -> date:
    return local_today("UTC")


def days_from(base: date, days: int) -> date:
    return base + timedelta(days=days)


async def add_entity(
    session_factory: async_sessionmaker[AsyncSession],
    model: type[TrackedEntityMixin],
    **fields: Any,
) -> TrackedEntityMixin:
    async with session_factory() as session:
        entity = model(**fields)
        session.add(entity)
        await session.commit()
        return entity


async def alerts_for(
    session_factory: async_sessionmaker[AsyncSession],
    entity_id: str,
    *,
    status: AlertStatus | None = None,
) -> list[Alert]:
    async with session_factory() as session:
        stmt = select(Alert).where(Alert.entity_id == entity_id).order_by(Alert.created_at)
        if status is not None:
            stmt = stmt.where(Alert.status == status)
        return list((await session.execute(stmt)).scalars().all())
