from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from firmwatch.core.errors import AuthorizationError, ValidationError
from firmwatch.domain.models import (
    Action,
    EntityStatus,
    EntityType,
    Scope,
    TrackedEntitySnapshot,
)
from firmwatch.domain.services import scope as scope_service
from firmwatch.domain.services.audit import AuditRecorder
from firmwatch.domain.services.scan import ScanService, TypeSummary
from firmwatch.infrastructure.repositories.entities import UNSET, EntityRepository


@dataclass(slots=True)
class EntityUpdateResult:
    entity: TrackedEntitySnapshot
    reevaluation: TypeSummary


def snapshot_state(snapshot: TrackedEntitySnapshot) -> dict[str, Any]:
    deadline = snapshot.deadline_date()
    return {
        "status": snapshot.status.value,
        snapshot.deadline_field: deadline.isoformat() if deadline else None,
    }


class EntityService:
    """Scoped reads of tracked entities and deadline/status changes."""

    def __init__(
        self,
        session: AsyncSession,
        *,
        audit: AuditRecorder | None = None,
        scanner: ScanService | None = None,
    ) -> None:
        self.session = session
        self.repository = EntityRepository(session)
        self.audit = audit
        self.scanner = scanner

    async def list_entities(
        self,
        scope: Scope,
        entity_type: EntityType,
        *,
        firm_ids: list[str] | None = None,
        status: EntityStatus | None = None,
    ) -> list[TrackedEntitySnapshot]:
        scope_service.authorize(scope, Action.READ)
        effective = scope_service.apply(scope, firm_ids)
        return await self.repository.list_records(entity_type, effective, status=status)

    async def update_entity(
        self,
        scope: Scope,
        entity_type: EntityType,
        entity_id: str,
        *,
        changes: dict[str, Any],
        today: date | None = None,
    ) -> EntityUpdateResult:
        """Apply ``changes`` (``deadline_date`` and/or ``status``) and re-evaluate alerts."""
        if not changes.keys() & {"deadline_date", "status"}:
            raise ValidationError("Nothing to update: provide deadline_date and/or status")

        current = await self.repository.get_entity_row(entity_type, entity_id)
        try:
            scope_service.authorize(scope, Action.UPDATE, current.firm_id)
        except AuthorizationError:
            if self.audit is not None:
                await self.audit.record(
                    scope.user_id,
                    "unauthorized_access",
                    entity_type.value,
                    entity_id,
                    after={"attempted": Action.UPDATE.value},
                )
            raise

        before, after = await self.repository.update_entity(
            entity_type,
            entity_id,
            deadline_date=changes.get("deadline_date", UNSET),
            status=changes.get("status"),
        )
        await self.session.commit()

        if self.audit is not None:
            await self.audit.record(
                scope.user_id,
                "entity_updated",
                entity_type.value,
                entity_id,
                before=snapshot_state(before),
                after=snapshot_state(after),
            )

        reevaluation = TypeSummary()
        if self.scanner is not None:
            reevaluation = await self.scanner.evaluate_entity(entity_type, entity_id, today=today)
        return EntityUpdateResult(entity=after, reevaluation=reevaluation)
