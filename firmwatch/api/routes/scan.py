from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends

from firmwatch.api.deps import get_scan_service, get_scope, http_error
from firmwatch.api.schemas.scan import ScanRequest, ScanResponse
from firmwatch.core.errors import FirmwatchError
from firmwatch.domain.models import Action, Scope
from firmwatch.domain.services import scope as scope_service
from firmwatch.domain.services.scan import ScanService

logger = structlog.get_logger()
router = APIRouter(tags=["scan"])


@router.post("/scan", response_model=ScanResponse, summary="Run a deadline scan now")
async def trigger_scan(
    payload: ScanRequest | None = None,
    scope: Scope = Depends(get_scope),
    scanner: ScanService = Depends(get_scan_service),
) -> ScanResponse:
    """Run a full scan synchronously and return the per-type summary."""
    try:
        scope_service.authorize(scope, Action.SCAN)
    except FirmwatchError as exc:
        raise http_error(exc) from exc

    logger.info("scan_requested", user_id=scope.user_id)
    as_of = payload.as_of if payload is not None else None
    summary = await scanner.run(as_of, triggered_by=scope.user_id)
    return ScanResponse(summary.to_dict())
