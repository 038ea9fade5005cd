from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Literal, TypeAlias

from firmwatch.core.errors import ValidationError

ALL_FIRMS: Literal["all"] = "all"

FirmFilter: TypeAlias = Literal["all"] | frozenset[str]


class EntityType(str, enum.Enum):
    LICENSE = "license"
    ENLISTMENT = "enlistment"
    TAX_OBLIGATION = "tax_obligation"
    BANK_GUARANTEE = "bank_guarantee"
    LOAN = "loan"
    TENDER = "tender"
    TASK = "task"

    @classmethod
    def parse(cls, value: str) -> EntityType:
        try:
            return cls(value)
        except ValueError as exc:
            raise ValidationError(f"Unknown entity type: {value}") from exc


class EntityStatus(str, enum.Enum):
    ACTIVE = "active"
    CLOSED = "closed"
    CANCELLED = "cancelled"


class Severity(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    OVERDUE = "overdue"

    @property
    def rank(self) -> int:
        """Higher is more urgent."""
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {
    Severity.LOW: 1,
    Severity.MEDIUM: 2,
    Severity.HIGH: 3,
    Severity.OVERDUE: 4,
}


class AlertStatus(str, enum.Enum):
    ACTIVE = "active"
    ACKNOWLEDGED = "acknowledged"
    RESOLVED = "resolved"

    @classmethod
    def live_statuses(cls) -> tuple[AlertStatus, ...]:
        return (cls.ACTIVE, cls.ACKNOWLEDGED)


class Action(str, enum.Enum):
    READ = "read"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    ACKNOWLEDGE = "acknowledge"
    SCAN = "scan"


@dataclass(slots=True)
class User:
    """Represents an authenticated actor within the system."""

    user_id: str
    role: str
    firm_access: FirmFilter = frozenset()
    username: str = ""
    full_name: str | None = None
    status: str = "active"


def parse_firm_access(raw: str | None) -> FirmFilter:
    """Parse the stored ``firm_access`` text: ``all`` or comma-separated ids."""
    if raw is None:
        return frozenset()
    value = raw.strip()
    if value.lower() == ALL_FIRMS:
        return ALL_FIRMS
    return frozenset(part.strip() for part in value.split(",") if part.strip())


def format_firm_access(firm_access: FirmFilter) -> str:
    if firm_access == ALL_FIRMS:
        return ALL_FIRMS
    return ",".join(sorted(firm_access))


@dataclass(frozen=True, slots=True)
class Scope:
    """Firms and actions available to one actor for one request."""

    user_id: str
    role: str
    firm_filter: FirmFilter
    capabilities: dict[Action, bool] = field(default_factory=dict)

    @property
    def is_global(self) -> bool:
        return self.firm_filter == ALL_FIRMS

    def covers(self, firm_id: str | None) -> bool:
        if self.firm_filter == ALL_FIRMS:
            return True
        return firm_id is not None and firm_id in self.firm_filter


@dataclass(frozen=True, slots=True)
class TrackedEntitySnapshot:
    """Read-only view of a tracked entity with a uniform deadline capability."""

    entity_type: EntityType
    entity_id: str
    firm_id: str
    status: EntityStatus
    deadline_field: str
    deadline_value: date | datetime | str | None
    label: str = ""
    firm_name: str | None = None

    def deadline_date(self) -> date | None:
        return normalize_date(self.deadline_value, field_name=self.deadline_field)

    @property
    def is_evaluable(self) -> bool:
        return self.status == EntityStatus.ACTIVE and self.deadline_value not in (None, "")


def normalize_date(value: date | datetime | str | None, *, field_name: str = "deadline") -> date | None:
    """Reduce a deadline value to a calendar date, dropping any time of day."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        try:
            if len(text) > 10:
                return datetime.fromisoformat(text).date()
            return date.fromisoformat(text)
        except ValueError as exc:
            raise ValidationError(f"Malformed {field_name}: {value!r}") from exc
    raise ValidationError(f"Malformed {field_name}: {value!r}")


@dataclass(frozen=True, slots=True)
class RuleMatch:
    severity: Severity
    rule_code: str
    message: str
    deadline_date: date
    delta_days: int


@dataclass(frozen=True, slots=True)
class AlertKey:
    """Dedup key of the alert ledger."""

    entity_type: str
    entity_id: str
    rule_code: str
