from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from firmwatch.api.deps import (
    get_audit_recorder,
    get_db_session,
    get_scan_service,
    get_scope,
    http_error,
)
from firmwatch.api.schemas.entities import (
    EntityOut,
    EntityUpdate,
    EntityUpdateResponse,
    ReevaluationOut,
)
from firmwatch.core.errors import FirmwatchError
from firmwatch.domain.models import EntityStatus, EntityType, Scope, TrackedEntitySnapshot
from firmwatch.domain.services.audit import AuditRecorder
from firmwatch.domain.services.entities import EntityService
from firmwatch.domain.services.scan import ScanService

router = APIRouter(prefix="/entities", tags=["entities"])


def _entity_out(snapshot: TrackedEntitySnapshot) -> EntityOut:
    return EntityOut(
        entity_type=snapshot.entity_type.value,
        entity_id=snapshot.entity_id,
        firm_id=snapshot.firm_id,
        firm_name=snapshot.firm_name,
        status=snapshot.status,
        label=snapshot.label,
        deadline_field=snapshot.deadline_field,
        deadline_date=snapshot.deadline_date(),
    )


@router.get("/{entity_type}", response_model=list[EntityOut], summary="List tracked entities")
async def list_entities(
    entity_type: str,
    firm_id: list[str] | None = Query(None),  # noqa: B008
    status: EntityStatus | None = None,
    scope: Scope = Depends(get_scope),
    session: AsyncSession = Depends(get_db_session),
) -> list[EntityOut]:
    service = EntityService(session)
    try:
        parsed = EntityType.parse(entity_type)
        snapshots = await service.list_entities(scope, parsed, firm_ids=firm_id, status=status)
    except FirmwatchError as exc:
        raise http_error(exc) from exc

    return [_entity_out(snapshot) for snapshot in snapshots]


@router.patch(
    "/{entity_type}/{entity_id}",
    response_model=EntityUpdateResponse,
    summary="Change an entity's deadline or status",
    description="Applies the change and immediately re-evaluates the entity's alerts.",
)
async def update_entity(
    entity_type: str,
    entity_id: str,
    payload: EntityUpdate,
    scope: Scope = Depends(get_scope),
    session: AsyncSession = Depends(get_db_session),
    audit: AuditRecorder = Depends(get_audit_recorder),
    scanner: ScanService = Depends(get_scan_service),
) -> EntityUpdateResponse:
    service = EntityService(session, audit=audit, scanner=scanner)
    try:
        parsed = EntityType.parse(entity_type)
        result = await service.update_entity(scope, parsed, entity_id, changes=payload.changes())
    except FirmwatchError as exc:
        raise http_error(exc) from exc

    reevaluation = result.reevaluation
    return EntityUpdateResponse(
        entity=_entity_out(result.entity),
        reevaluation=ReevaluationOut(
            evaluated=reevaluation.evaluated,
            created=reevaluation.created,
            updated=reevaluation.updated,
            resolved=reevaluation.resolved,
            failed=reevaluation.failed,
        ),
    )
