from firmwatch.domain.models import (
    ALL_FIRMS,
    Action,
    AlertKey,
    AlertStatus,
    EntityStatus,
    EntityType,
    FirmFilter,
    RuleMatch,
    Scope,
    Severity,
    TrackedEntitySnapshot,
    User,
)

__all__ = [
    "ALL_FIRMS",
    "Action",
    "AlertKey",
    "AlertStatus",
    "EntityStatus",
    "EntityType",
    "FirmFilter",
    "RuleMatch",
    "Scope",
    "Severity",
    "TrackedEntitySnapshot",
    "User",
]
