from __future__ import annotations

from datetime import date

from pydantic import BaseModel, Field, model_validator

from firmwatch.domain.models import EntityStatus


class EntityOut(BaseModel):
    entity_type: str
    entity_id: str
    firm_id: str
    firm_name: str | None = None
    status: EntityStatus
    label: str
    deadline_field: str
    deadline_date: date | None = None


class EntityUpdate(BaseModel):
    """Deadline and/or status change; ``deadline_date: null`` clears the deadline."""

    deadline_date: date | None = Field(None, description="New deadline for the entity's deadline field")
    status: EntityStatus | None = None

    @model_validator(mode="after")
    def _require_change(self) -> EntityUpdate:
        if "deadline_date" not in self.model_fields_set and self.status is None:
            raise ValueError("Provide deadline_date and/or status")
        return self

    def changes(self) -> dict:
        changes: dict = {}
        if "deadline_date" in self.model_fields_set:
            changes["deadline_date"] = self.deadline_date
        if self.status is not None:
            changes["status"] = self.status
        return changes


class ReevaluationOut(BaseModel):
    evaluated: int
    created: int
    updated: int
    resolved: int
    failed: int


class EntityUpdateResponse(BaseModel):
    entity: EntityOut
    reevaluation: ReevaluationOut
