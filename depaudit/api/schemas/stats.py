"""Fleet statistics response schemas."""

from __future__ import annotations

from pydantic import BaseModel, Field


class IndexResponse(BaseModel):
    """A percentage index; -1 when there is nothing to measure."""

    value: float


class MonthlyCount(BaseModel):
    month: str  # YYYY-MM
    count: int


class BadgeResponse(BaseModel):
    """shields.io endpoint badge JSON."""

    schema_version: int = Field(1, serialization_alias="schemaVersion")
    label: str
    message: str
    color: str
