"""Domain services."""

from firmwatch.domain.services.alerts import AlertService, ReconcileOutcome
from firmwatch.domain.services.audit import AuditRecorder
from firmwatch.domain.services.entities import EntityService, EntityUpdateResult
from firmwatch.domain.services.scan import ScanService, ScanSummary, TypeSummary

__all__ = [
    "AlertService",
    "AuditRecorder",
    "EntityService",
    "EntityUpdateResult",
    "ReconcileOutcome",
    "ScanService",
    "ScanSummary",
    "TypeSummary",
]
