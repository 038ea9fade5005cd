from __future__ import annotations

import enum
import uuid
from datetime import date, datetime
from typing import Any, ClassVar

from sqlalchemy import (
    JSON,
    Date,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    String,
    Text,
    func,
    text,
)
from sqlalchemy.orm import Mapped, declared_attr, mapped_column

from firmwatch.domain.models import AlertStatus, EntityStatus, EntityType, Severity
from firmwatch.domain.rules import format_license_type

from .base import Base


def _new_id() -> str:
    return str(uuid.uuid4())


def _values_enum(enum_cls: type[enum.Enum], name: str) -> Enum:
    return Enum(enum_cls, name=name, values_callable=lambda e: [x.value for x in e])


class UserRole(str, enum.Enum):
    """User role enum matching auth.Role."""

    ADMIN = "admin"
    MANAGER = "manager"
    USER = "user"
    VIEWER = "viewer"


class UserStatus(str, enum.Enum):
    """User account status."""

    ACTIVE = "active"
    INACTIVE = "inactive"
    SUSPENDED = "suspended"


class Firm(Base):
    __tablename__ = "firms"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )


class UserModel(Base):
    """SQLAlchemy model for users table."""

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    username: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, index=True)
    hashed_password: Mapped[str] = mapped_column(String(255), nullable=False)
    full_name: Mapped[str | None] = mapped_column(String(128), nullable=True)
    role: Mapped[UserRole] = mapped_column(
        _values_enum(UserRole, "user_role"),
        default=UserRole.USER,
        nullable=False,
    )
    # "all" or comma-separated firm ids
    firm_access: Mapped[str] = mapped_column(Text, default="", nullable=False)
    status: Mapped[UserStatus] = mapped_column(
        _values_enum(UserStatus, "user_status"),
        default=UserStatus.ACTIVE,
        nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )
    last_login_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<UserModel(id={self.id}, username={self.username}, role={self.role.value})>"


class TrackedEntityMixin:
    """Columns and deadline capability shared by every tracked entity table."""

    entity_type: ClassVar[EntityType]
    deadline_field: ClassVar[str]

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)

    @declared_attr
    def firm_id(cls) -> Mapped[str]:
        return mapped_column(
            ForeignKey("firms.id", ondelete="CASCADE"), nullable=False, index=True
        )

    status: Mapped[EntityStatus] = mapped_column(
        _values_enum(EntityStatus, "entity_status"),
        default=EntityStatus.ACTIVE,
        nullable=False,
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    @property
    def deadline_value(self) -> date | None:
        return getattr(self, self.deadline_field)

    def display_label(self) -> str:
        return self.entity_type.value.replace("_", " ").capitalize()


class License(TrackedEntityMixin, Base):
    __tablename__ = "licenses"
    entity_type = EntityType.LICENSE
    deadline_field = "expiry_date"

    license_type: Mapped[str] = mapped_column(String(64), nullable=False)
    license_number: Mapped[str | None] = mapped_column(String(64))
    expiry_date: Mapped[date | None] = mapped_column(Date, index=True)

    def display_label(self) -> str:
        return format_license_type(self.license_type)


class Enlistment(TrackedEntityMixin, Base):
    __tablename__ = "enlistments"
    entity_type = EntityType.ENLISTMENT
    deadline_field = "expiry_date"

    authority: Mapped[str] = mapped_column(String(128), nullable=False)
    category: Mapped[str | None] = mapped_column(String(64))
    expiry_date: Mapped[date | None] = mapped_column(Date, index=True)

    def display_label(self) -> str:
        if self.category:
            return f"{self.authority} enlistment ({self.category})"
        return f"{self.authority} enlistment"


class TaxObligation(TrackedEntityMixin, Base):
    __tablename__ = "tax_obligations"
    entity_type = EntityType.TAX_OBLIGATION
    deadline_field = "due_date"

    compliance_type: Mapped[str] = mapped_column(String(64), nullable=False)
    fiscal_year: Mapped[str | None] = mapped_column(String(16))
    due_date: Mapped[date | None] = mapped_column(Date, index=True)

    def display_label(self) -> str:
        label = self.compliance_type.replace("_", " ").upper()
        return f"{label} ({self.fiscal_year})" if self.fiscal_year else label


class BankGuarantee(TrackedEntityMixin, Base):
    __tablename__ = "bank_guarantees"
    entity_type = EntityType.BANK_GUARANTEE
    deadline_field = "expiry_date"

    bg_type: Mapped[str] = mapped_column(String(64), nullable=False)
    bg_number: Mapped[str] = mapped_column(String(64), nullable=False)
    amount: Mapped[float | None] = mapped_column(Float)
    expiry_date: Mapped[date | None] = mapped_column(Date, index=True)

    def display_label(self) -> str:
        return f"{self.bg_type} ({self.bg_number})"


class Loan(TrackedEntityMixin, Base):
    __tablename__ = "loans"
    entity_type = EntityType.LOAN
    deadline_field = "maturity_date"

    loan_type: Mapped[str] = mapped_column(String(64), nullable=False)
    bank_name: Mapped[str] = mapped_column(String(128), nullable=False)
    outstanding_amount: Mapped[float | None] = mapped_column(Float)
    maturity_date: Mapped[date | None] = mapped_column(Date, index=True)

    def display_label(self) -> str:
        return f"{self.loan_type} ({self.bank_name})"


class Tender(TrackedEntityMixin, Base):
    __tablename__ = "tenders"
    entity_type = EntityType.TENDER
    deadline_field = "submission_date"

    reference_no: Mapped[str] = mapped_column(String(64), nullable=False)
    procuring_entity: Mapped[str | None] = mapped_column(String(255))
    submission_date: Mapped[date | None] = mapped_column(Date, index=True)

    def display_label(self) -> str:
        if self.procuring_entity:
            return f"Tender {self.reference_no} - {self.procuring_entity}"
        return f"Tender {self.reference_no}"


class Task(TrackedEntityMixin, Base):
    __tablename__ = "tasks"
    entity_type = EntityType.TASK
    deadline_field = "due_date"

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    due_date: Mapped[date | None] = mapped_column(Date, index=True)

    def display_label(self) -> str:
        return f"Task '{self.title}'"


ENTITY_MODELS: dict[EntityType, type[TrackedEntityMixin]] = {
    model.entity_type: model
    for model in (License, Enlistment, TaxObligation, BankGuarantee, Loan, Tender, Task)
}


class Alert(Base):
    """Alert ledger row. Written only by the alert lifecycle service."""

    __tablename__ = "alerts"
    __table_args__ = (
        # At most one live alert per dedup key; resolved rows are history
        Index(
            "uq_alerts_live_dedup_key",
            "entity_type",
            "entity_id",
            "rule_code",
            unique=True,
            postgresql_where=text("status IN ('active', 'acknowledged')"),
            sqlite_where=text("status IN ('active', 'acknowledged')"),
        ),
        Index("ix_alerts_firm_status", "firm_id", "status"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    entity_type: Mapped[str] = mapped_column(String(32), nullable=False)
    entity_id: Mapped[str] = mapped_column(String(36), nullable=False)
    firm_id: Mapped[str] = mapped_column(
        ForeignKey("firms.id", ondelete="CASCADE"), nullable=False
    )
    rule_code: Mapped[str] = mapped_column(String(64), nullable=False)
    severity: Mapped[Severity] = mapped_column(
        _values_enum(Severity, "alert_severity"), nullable=False
    )
    message: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[AlertStatus] = mapped_column(
        _values_enum(AlertStatus, "alert_status"),
        default=AlertStatus.ACTIVE,
        nullable=False,
        index=True,
    )
    deadline_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    acknowledged_by: Mapped[str | None] = mapped_column(String(36), nullable=True)
    acknowledged_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    def state(self) -> dict[str, Any]:
        """Snapshot used for audit before/after payloads."""
        return {
            "status": self.status.value,
            "severity": self.severity.value,
            "message": self.message,
            "deadline_date": self.deadline_date.isoformat() if self.deadline_date else None,
        }

    def __repr__(self) -> str:
        return (
            f"<Alert(id={self.id}, key=({self.entity_type}, {self.entity_id}, "
            f"{self.rule_code}), status={self.status.value})>"
        )


class AuditLog(Base):
    __tablename__ = "audit_log"
    __table_args__ = (Index("ix_audit_log_entity", "entity_type", "entity_id"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    actor_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)
    action: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    entity_type: Mapped[str] = mapped_column(String(32), nullable=False)
    entity_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    before_state: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    after_state: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
