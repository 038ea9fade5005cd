"""Initial schema for firms, users, tracked entities, alerts and audit log

Revision ID: 202610190001
Revises:
Create Date: 2026-10-19 00:01:00
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision = "202610190001"
down_revision = None
branch_labels = None
depends_on = None

LIVE_ALERT_PREDICATE = "status IN ('active', 'acknowledged')"

user_role_enum = sa.Enum("admin", "manager", "user", "viewer", name="user_role")
user_status_enum = sa.Enum("active", "inactive", "suspended", name="user_status")
entity_status_enum = sa.Enum("active", "closed", "cancelled", name="entity_status")
alert_severity_enum = sa.Enum("low", "medium", "high", "overdue", name="alert_severity")
alert_status_enum = sa.Enum("active", "acknowledged", "resolved", name="alert_status")


# table name -> (deadline column, extra columns)
def _entity_tables() -> dict[str, tuple[str, list[sa.Column]]]:
    return {
        "licenses": (
            "expiry_date",
            [
                sa.Column("license_type", sa.String(length=64), nullable=False),
                sa.Column("license_number", sa.String(length=64), nullable=True),
            ],
        ),
        "enlistments": (
            "expiry_date",
            [
                sa.Column("authority", sa.String(length=128), nullable=False),
                sa.Column("category", sa.String(length=64), nullable=True),
            ],
        ),
        "tax_obligations": (
            "due_date",
            [
                sa.Column("compliance_type", sa.String(length=64), nullable=False),
                sa.Column("fiscal_year", sa.String(length=16), nullable=True),
            ],
        ),
        "bank_guarantees": (
            "expiry_date",
            [
                sa.Column("bg_type", sa.String(length=64), nullable=False),
                sa.Column("bg_number", sa.String(length=64), nullable=False),
                sa.Column("amount", sa.Float(), nullable=True),
            ],
        ),
        "loans": (
            "maturity_date",
            [
                sa.Column("loan_type", sa.String(length=64), nullable=False),
                sa.Column("bank_name", sa.String(length=128), nullable=False),
                sa.Column("outstanding_amount", sa.Float(), nullable=True),
            ],
        ),
        "tenders": (
            "submission_date",
            [
                sa.Column("reference_no", sa.String(length=64), nullable=False),
                sa.Column("procuring_entity", sa.String(length=255), nullable=True),
            ],
        ),
        "tasks": (
            "due_date",
            [
                sa.Column("title", sa.String(length=255), nullable=False),
                sa.Column("description", sa.Text(), nullable=True),
            ],
        ),
    }


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    ]


def upgrade() -> None:
    op.create_table(
        "firms",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    )

    op.create_table(
        "users",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("username", sa.String(length=64), nullable=False),
        sa.Column("hashed_password", sa.String(length=255), nullable=False),
        sa.Column("full_name", sa.String(length=128), nullable=True),
        sa.Column("role", user_role_enum, nullable=False, server_default="user"),
        sa.Column("firm_access", sa.Text(), nullable=False, server_default=""),
        sa.Column("status", user_status_enum, nullable=False, server_default="active"),
        *_timestamps(),
        sa.Column("last_login_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_users_username", "users", ["username"], unique=True)

    # One enum type shared by every entity table
    entity_status_enum.create(op.get_bind(), checkfirst=True)
    shared_entity_status = sa.Enum(
        "active", "closed", "cancelled", name="entity_status"
    ).with_variant(
        postgresql.ENUM("active", "closed", "cancelled", name="entity_status", create_type=False),
        "postgresql",
    )

    for table_name, (deadline_column, columns) in _entity_tables().items():
        op.create_table(
            table_name,
            sa.Column("id", sa.String(length=36), primary_key=True),
            sa.Column(
                "firm_id",
                sa.String(length=36),
                sa.ForeignKey("firms.id", ondelete="CASCADE"),
                nullable=False,
            ),
            sa.Column(
                "status",
                shared_entity_status,
                nullable=False,
                server_default="active",
            ),
            *columns,
            sa.Column(deadline_column, sa.Date(), nullable=True),
            sa.Column("notes", sa.Text(), nullable=True),
            *_timestamps(),
        )
        op.create_index(f"ix_{table_name}_firm_id", table_name, ["firm_id"])
        op.create_index(f"ix_{table_name}_{deadline_column}", table_name, [deadline_column])

    op.create_table(
        "alerts",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("entity_type", sa.String(length=32), nullable=False),
        sa.Column("entity_id", sa.String(length=36), nullable=False),
        sa.Column(
            "firm_id",
            sa.String(length=36),
            sa.ForeignKey("firms.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("rule_code", sa.String(length=64), nullable=False),
        sa.Column("severity", alert_severity_enum, nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("status", alert_status_enum, nullable=False, server_default="active"),
        sa.Column("deadline_date", sa.Date(), nullable=True),
        sa.Column("acknowledged_by", sa.String(length=36), nullable=True),
        sa.Column("acknowledged_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index(
        "uq_alerts_live_dedup_key",
        "alerts",
        ["entity_type", "entity_id", "rule_code"],
        unique=True,
        postgresql_where=sa.text(LIVE_ALERT_PREDICATE),
        sqlite_where=sa.text(LIVE_ALERT_PREDICATE),
    )
    op.create_index("ix_alerts_firm_status", "alerts", ["firm_id", "status"])
    op.create_index("ix_alerts_status", "alerts", ["status"])

    op.create_table(
        "audit_log",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("actor_id", sa.String(length=36), nullable=True),
        sa.Column("action", sa.String(length=64), nullable=False),
        sa.Column("entity_type", sa.String(length=32), nullable=False),
        sa.Column("entity_id", sa.String(length=36), nullable=True),
        sa.Column("before_state", sa.JSON(), nullable=True),
        sa.Column("after_state", sa.JSON(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    )
    op.create_index("ix_audit_log_actor_id", "audit_log", ["actor_id"])
    op.create_index("ix_audit_log_action", "audit_log", ["action"])
    op.create_index("ix_audit_log_entity", "audit_log", ["entity_type", "entity_id"])


def downgrade() -> None:
    op.drop_index("ix_audit_log_entity", table_name="audit_log")
    op.drop_index("ix_audit_log_action", table_name="audit_log")
    op.drop_index("ix_audit_log_actor_id", table_name="audit_log")
    op.drop_table("audit_log")

    op.drop_index("ix_alerts_status", table_name="alerts")
    op.drop_index("ix_alerts_firm_status", table_name="alerts")
    op.drop_index("uq_alerts_live_dedup_key", table_name="alerts")
    op.drop_table("alerts")

    for table_name, (deadline_column, _) in reversed(list(_entity_tables().items())):
        op.drop_index(f"ix_{table_name}_{deadline_column}", table_name=table_name)
        op.drop_index(f"ix_{table_name}_firm_id", table_name=table_name)
        op.drop_table(table_name)

    op.drop_index("ix_users_username", table_name="users")
    op.drop_table("users")
    op.drop_table("firms")

    bind = op.get_bind()
    for enum_type in (
        alert_status_enum,
        alert_severity_enum,
        entity_status_enum,
        user_status_enum,
        user_role_enum,
    ):
        enum_type.drop(bind, checkfirst=True)
