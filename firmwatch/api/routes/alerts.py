"""Alert ledger routes: scoped listing, stats and acknowledgement."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from firmwatch.api.deps import get_audit_recorder, get_db_session, get_scope, http_error
from firmwatch.api.schemas.alerts import (
    AlertAcknowledgeRequest,
    AlertOut,
    AlertStatsResponse,
)
from firmwatch.core.errors import FirmwatchError
from firmwatch.domain.models import AlertStatus, EntityType, Scope, Severity
from firmwatch.domain.services.alerts import AlertService
from firmwatch.domain.services.audit import AuditRecorder

router = APIRouter(prefix="/alerts", tags=["alerts"])


@router.get("", response_model=list[AlertOut], summary="List alerts visible to the caller")
async def list_alerts(
    status: AlertStatus = Query(AlertStatus.ACTIVE),  # noqa: B008
    firm_id: list[str] | None = Query(None),  # noqa: B008
    severity: Severity | None = None,
    entity_type: EntityType | None = None,
    limit: int | None = Query(None, ge=1, le=1000),
    scope: Scope = Depends(get_scope),
    session: AsyncSession = Depends(get_db_session),
) -> list[AlertOut]:
    service = AlertService(session)
    try:
        alerts = await service.list_alerts(
            scope,
            status=status,
            firm_ids=firm_id,
            severity=severity,
            entity_type=entity_type,
            limit=limit,
        )
    except FirmwatchError as exc:
        raise http_error(exc) from exc

    return [AlertOut.model_validate(alert) for alert in alerts]


@router.get("/stats", response_model=AlertStatsResponse, summary="Active alert counts")
async def alert_stats(
    scope: Scope = Depends(get_scope),
    session: AsyncSession = Depends(get_db_session),
) -> AlertStatsResponse:
    service = AlertService(session)
    try:
        stats = await service.alert_stats(scope)
    except FirmwatchError as exc:
        raise http_error(exc) from exc
    return AlertStatsResponse(**stats)


@router.get("/{alert_id}", response_model=AlertOut, summary="Get one alert")
async def get_alert(
    alert_id: str,
    scope: Scope = Depends(get_scope),
    session: AsyncSession = Depends(get_db_session),
) -> AlertOut:
    service = AlertService(session)
    try:
        alert = await service.get_alert(alert_id, scope)
    except FirmwatchError as exc:
        raise http_error(exc) from exc
    return AlertOut.model_validate(alert)


@router.patch("/{alert_id}", response_model=AlertOut, summary="Acknowledge an alert")
async def acknowledge_alert(
    alert_id: str,
    payload: AlertAcknowledgeRequest,
    scope: Scope = Depends(get_scope),
    session: AsyncSession = Depends(get_db_session),
    audit: AuditRecorder = Depends(get_audit_recorder),
) -> AlertOut:
    service = AlertService(session, audit=audit)
    try:
        alert = await service.acknowledge(alert_id, scope)
    except FirmwatchError as exc:
        raise http_error(exc) from exc
    return AlertOut.model_validate(alert)
