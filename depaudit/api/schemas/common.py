"""Shared response schemas."""

from __future__ import annotations

from typing import Generic, TypeVar

from pydantic import BaseModel

T = TypeVar("T")


class PageMeta(BaseModel):
    """Offset pagination metadata; ``page`` is zero-based."""

    count: int
    total: int
    page: int
    page_count: int


class PaginatedResponse(BaseModel, Generic[T]):
    """Generic paginated list response."""

    data: list[T]
    meta: PageMeta


class CountItem(BaseModel):
    """One ``(value, count)`` pair of a distinct-by or top-N listing."""

    key: str
    count: int


def count_items(pairs: list[tuple[str, int]]) -> list[CountItem]:
    return [CountItem(key=str(key), count=count) for key, count in pairs]
