from __future__ import annotations

from datetime import date

from pydantic import BaseModel, RootModel


class TypeSummaryOut(BaseModel):
    evaluated: int
    created: int
    updated: int
    resolved: int
    failed: int
    error: str | None = None


class ScanResponse(RootModel[dict[str, TypeSummaryOut]]):
    """Per entity type counts keyed by entity type."""


class ScanRequest(BaseModel):
    as_of: date | None = None
