"""Generic base DAO — CRUD (ORM) + offset pagination (Core)."""

import math
import uuid
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from sqlalchemy import Select, func, select
from sqlalchemy import exists as sa_exists
from sqlalchemy.ext.asyncio import AsyncSession

from depaudit.core.database import Base

ModelT = TypeVar("ModelT", bound=Base)
T = TypeVar("T")

PAGE_SIZE_MIN = 1
PAGE_SIZE_MAX = 500
PAGE_SIZE_DEFAULT = 50


@dataclass
class OffsetPage(Generic[T]):
    """One page of an ordered result set.

    ``count`` is the number of rows on this page, ``total`` the number of
    rows across all pages. ``page`` is zero-based.
    """

    data: list[T] = field(default_factory=list)
    count: int = 0
    total: int = 0
    page: int = 0
    page_count: int = 0

    @classmethod
    def empty(cls, page: int = 0) -> "OffsetPage[T]":
        return cls(data=[], count=0, total=0, page=max(page, 0), page_count=0)


def _clamp_page_size(page_size: int) -> int:
    return max(PAGE_SIZE_MIN, min(page_size, PAGE_SIZE_MAX))


class BaseDAO(Generic[ModelT]):
    """Base data-access object. Subclasses set ``model`` class attribute."""

    model: type[ModelT]

    # ── ORM methods ──────────────────────────────────────────────────────

    @staticmethod
    def _require_pk(pk: uuid.UUID) -> None:
        """Raise ValueError if *pk* is None."""
        if pk is None:
            raise ValueError("pk must not be None")

    async def get_by_id(self, session: AsyncSession, pk: uuid.UUID) -> ModelT | None:
        self._require_pk(pk)
        return await session.get(self.model, pk)

    async def create(self, session: AsyncSession, **values: Any) -> ModelT:
        obj = self.model(**values)
        session.add(obj)
        await session.flush()
        await session.refresh(obj)
        return obj

    async def bulk_create(self, session: AsyncSession, items: list[dict[str, Any]]) -> list[ModelT]:
        """Insert multiple rows in a single flush.

        Primary keys are generated client-side, so ``id`` is usable right
        away. ``server_default`` columns are not loaded until refreshed.
        """
        objs = [self.model(**vals) for vals in items]
        session.add_all(objs)
        await session.flush()
        return objs

    async def update(self, session: AsyncSession, pk: uuid.UUID, **values: Any) -> ModelT | None:
        self._require_pk(pk)
        obj = await session.get(self.model, pk)
        if obj is None:
            return None
        immutable = {"id", "created_at", "updated_at"}
        column_keys = set(self.model.__mapper__.column_attrs.keys())
        for key in values:
            if key in immutable:
                raise AttributeError(f"'{key}' is immutable and cannot be updated")
            if key not in column_keys:
                raise AttributeError(f"{self.model.__name__} has no column '{key}'")
        for key, val in values.items():
            setattr(obj, key, val)
        await session.flush()
        await session.refresh(obj)
        return obj

    async def exists(self, session: AsyncSession, pk: uuid.UUID) -> bool:
        """Check existence without loading the full ORM object."""
        self._require_pk(pk)
        table = self.model.__table__
        stmt = select(sa_exists().where(table.c.id == pk))
        result = await session.execute(stmt)
        return result.scalar_one()

    # ── Core methods ─────────────────────────────────────────────────────

    async def paginate_offset(
        self,
        session: AsyncSession,
        query: Select,
        page: int = 0,
        page_size: int = PAGE_SIZE_DEFAULT,
    ) -> OffsetPage:
        """Apply zero-based offset pagination to an already ORDERED *query*.

        The caller is responsible for a total, deterministic ORDER BY; pages
        are only stable if the ordering is.
        """
        page = max(page, 0)
        page_size = _clamp_page_size(page_size)

        total = await self.count(session, query.order_by(None))
        if total == 0:
            return OffsetPage.empty(page)

        result = await session.execute(query.offset(page * page_size).limit(page_size))
        rows = list(result.all())
        return OffsetPage(
            data=rows,
            count=len(rows),
            total=total,
            page=page,
            page_count=math.ceil(total / page_size),
        )

    async def count(self, session: AsyncSession, query: Select | None = None) -> int:
        """Return the row count for *query*, or total rows if query is None."""
        if query is None:
            query = select(func.count()).select_from(self.model.__table__)
        else:
            query = select(func.count()).select_from(query.subquery())

        result = await session.execute(query)
        return result.scalar_one()
