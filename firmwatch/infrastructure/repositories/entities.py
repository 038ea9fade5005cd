from __future__ import annotations

from datetime import date
from typing import TYPE_CHECKING, Any

import structlog
from sqlalchemy import false, select
from sqlalchemy.ext.asyncio import AsyncSession

from firmwatch.core.errors import NotFoundError, ValidationError
from firmwatch.domain.models import (
    ALL_FIRMS,
    EntityStatus,
    EntityType,
    FirmFilter,
    TrackedEntitySnapshot,
    User,
    parse_firm_access,
)
from firmwatch.infrastructure.db.models import (
    ENTITY_MODELS,
    Firm,
    TrackedEntityMixin,
    UserModel,
)

if TYPE_CHECKING:
    from sqlalchemy import Select

logger = structlog.get_logger()

UNSET: Any = object()


def to_snapshot(entity: TrackedEntityMixin, firm_name: str | None = None) -> TrackedEntitySnapshot:
    return TrackedEntitySnapshot(
        entity_type=entity.entity_type,
        entity_id=entity.id,
        firm_id=entity.firm_id,
        status=EntityStatus(entity.status),
        deadline_field=entity.deadline_field,
        deadline_value=entity.deadline_value,
        label=entity.display_label(),
        firm_name=firm_name,
    )


def model_for(entity_type: EntityType | str) -> type[TrackedEntityMixin]:
    parsed = EntityType.parse(entity_type) if isinstance(entity_type, str) else entity_type
    try:
        return ENTITY_MODELS[parsed]
    except KeyError as exc:  # pragma: no cover - every EntityType has a table
        raise ValidationError(f"Entity type {parsed.value} is not stored") from exc


def scope_statement(stmt: Select, firm_column: Any, firm_filter: FirmFilter) -> Select:
    """Restrict ``stmt`` to ``firm_filter``; an empty set matches nothing."""
    if firm_filter == ALL_FIRMS:
        return stmt
    if not firm_filter:
        return stmt.where(false())
    return stmt.where(firm_column.in_(sorted(firm_filter)))


class EntityRepository:
    """Reads tracked entities and users for the alert engine and the API."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def list_entities(
        self,
        entity_type: EntityType,
        firm_filter: FirmFilter = ALL_FIRMS,
    ) -> list[TrackedEntitySnapshot]:
        """Active entities with a deadline, ordered by deadline then id."""
        model = model_for(entity_type)
        deadline_column = getattr(model, model.deadline_field)
        stmt = (
            select(model, Firm.name)
            .join(Firm, Firm.id == model.firm_id)
            .where(model.status == EntityStatus.ACTIVE, deadline_column.is_not(None))
            .order_by(deadline_column, model.id)
        )
        stmt = scope_statement(stmt, model.firm_id, firm_filter)
        rows = (await self.session.execute(stmt)).all()
        return [to_snapshot(entity, firm_name) for entity, firm_name in rows]

    async def list_records(
        self,
        entity_type: EntityType,
        firm_filter: FirmFilter,
        *,
        status: EntityStatus | None = None,
    ) -> list[TrackedEntitySnapshot]:
        """Every entity of a type visible through ``firm_filter``."""
        model = model_for(entity_type)
        deadline_column = getattr(model, model.deadline_field)
        stmt = (
            select(model, Firm.name)
            .join(Firm, Firm.id == model.firm_id)
            .order_by(deadline_column.is_(None), deadline_column, model.id)
        )
        if status is not None:
            stmt = stmt.where(model.status == status)
        stmt = scope_statement(stmt, model.firm_id, firm_filter)
        rows = (await self.session.execute(stmt)).all()
        return [to_snapshot(entity, firm_name) for entity, firm_name in rows]

    async def get_entity_row(self, entity_type: EntityType, entity_id: str) -> TrackedEntityMixin:
        model = model_for(entity_type)
        entity = await self.session.get(model, entity_id)
        if entity is None:
            raise NotFoundError(f"{entity_type.value} {entity_id} not found")
        return entity

    async def get_entity(self, entity_type: EntityType, entity_id: str) -> TrackedEntitySnapshot:
        entity = await self.get_entity_row(entity_type, entity_id)
        firm_name = await self.session.scalar(select(Firm.name).where(Firm.id == entity.firm_id))
        return to_snapshot(entity, firm_name)

    async def update_entity(
        self,
        entity_type: EntityType,
        entity_id: str,
        *,
        deadline_date: date | None = UNSET,
        status: EntityStatus | None = None,
    ) -> tuple[TrackedEntitySnapshot, TrackedEntitySnapshot]:
        """Change the deadline and/or status; returns (before, after) snapshots.

        The caller owns the transaction and commits.
        """
        entity = await self.get_entity_row(entity_type, entity_id)
        firm_name = await self.session.scalar(select(Firm.name).where(Firm.id == entity.firm_id))
        before = to_snapshot(entity, firm_name)

        if deadline_date is not UNSET:
            setattr(entity, entity.deadline_field, deadline_date)
        if status is not None:
            entity.status = status
        await self.session.flush()

        after = to_snapshot(entity, firm_name)
        logger.info(
            "entity_updated",
            entity_type=entity_type.value,
            entity_id=entity_id,
            deadline_field=entity.deadline_field,
        )
        return before, after

    async def get_user(self, user_id: str) -> User:
        """Load the current user row; never cached between requests."""
        row = await self.session.get(UserModel, user_id, populate_existing=True)
        if row is None:
            raise NotFoundError(f"User {user_id} not found")
        return User(
            user_id=row.id,
            role=row.role.value,
            firm_access=parse_firm_access(row.firm_access),
            username=row.username,
            full_name=row.full_name,
            status=row.status.value,
        )
