from __future__ import annotations

from datetime import date, datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from firmwatch.domain.models import AlertStatus, Severity


class AlertOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    entity_type: str
    entity_id: str
    firm_id: str
    rule_code: str
    severity: Severity
    message: str
    status: AlertStatus
    deadline_date: date | None = None
    acknowledged_by: str | None = None
    acknowledged_at: datetime | None = None
    created_at: datetime
    updated_at: datetime
    resolved_at: datetime | None = None


class AlertAcknowledgeRequest(BaseModel):
    """Only ``active -> acknowledged`` can be requested by a user."""

    status: Literal["acknowledged"] = Field(..., description="Target status")


class AlertStatsResponse(BaseModel):
    by_severity: dict[str, int]
    by_rule: dict[str, int]
    total: int
