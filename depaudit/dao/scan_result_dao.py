"""License / security scan result DAOs — persistence and per-scan aggregation.

Both dimensions share one implementation, parameterised by the result
header model, the item model and the dimension's ranked status type.
Statuses are compared in SQL through a ``CASE`` that maps each label to its
rank, never through string ordering.
"""

from __future__ import annotations

import uuid
from typing import Any, ClassVar, Generic, TypeVar

from sqlalchemy import Select, case, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql.elements import ColumnElement

from depaudit.core.status import Dimension, RankedStatus, Severity
from depaudit.dao.base import PAGE_SIZE_DEFAULT, BaseDAO, OffsetPage
from depaudit.models.license_scan_result import LicenseScanResult, LicenseScanResultItem
from depaudit.models.security_scan_result import SecurityScanResult, SecurityScanResultItem

ItemT = TypeVar("ItemT", LicenseScanResultItem, SecurityScanResultItem)


class UnknownGroupingKeyError(ValueError):
    """Raised when distinct_by() is asked for a column it does not group on."""


def rank_of(column: ColumnElement, status_type: type[RankedStatus]) -> ColumnElement:
    """SQL expression: the integer rank of a status label column (0 if unknown)."""
    return case(
        {member.value: member.rank for member in status_type},
        value=column,
        else_=0,
    )


class _ResultItemDAO(BaseDAO[ItemT], Generic[ItemT]):
    """Shared queries for one dimension's result items."""

    dimension: ClassVar[Dimension]
    result_model: ClassVar[type]
    # item column -> FK to the result header
    result_fk: ClassVar[str]
    status_column: ClassVar[str]
    # grouping keys accepted by distinct_by()
    grouping_keys: ClassVar[frozenset[str]]
    # columns that identify one BOM row (deduplication key)
    bom_columns: ClassVar[tuple[str, ...]]
    # columns searched by the BOM text filter
    filter_columns: ClassVar[tuple[str, ...]]

    @property
    def status_type(self) -> type[RankedStatus]:
        return self.dimension.status_type

    def _col(self, name: str) -> ColumnElement:
        return getattr(self.model, name)

    def _items_for_scan(self, stmt: Select, scan_id: uuid.UUID) -> Select:
        header = self.result_model
        return stmt.join(header, header.id == self._col(self.result_fk)).where(
            header.scan_id == scan_id
        )

    # ── write ─────────────────────────────────────────────────────────────

    async def persist(
        self,
        session: AsyncSession,
        scan_id: uuid.UUID,
        items: list[dict[str, Any]],
    ) -> Any:
        """Insert the result header for *scan_id* and all of its items.

        Runs inside the caller's transaction; nothing is visible to other
        sessions until the caller commits.
        """
        header = self.result_model(scan_id=scan_id)
        session.add(header)
        await session.flush()
        if items:
            await self.bulk_create(
                session, [{**item, self.result_fk: header.id} for item in items]
            )
        return header

    # ── read ──────────────────────────────────────────────────────────────

    async def item_count(self, session: AsyncSession, scan_id: uuid.UUID) -> int:
        stmt = self._items_for_scan(select(func.count(self.model.id)), scan_id)
        result = await session.execute(stmt)
        return result.scalar_one()

    async def highest_status(self, session: AsyncSession, scan_id: uuid.UUID) -> RankedStatus:
        """Maximum status rank among the scan's items; ``unknown`` when empty."""
        rank = rank_of(self._col(self.status_column), self.status_type)
        stmt = self._items_for_scan(select(func.max(rank)), scan_id)
        result = await session.execute(stmt)
        best = result.scalar_one_or_none()
        if not best:
            return self.status_type.unknown()
        by_rank = {member.rank: member for member in self.status_type}
        return by_rank[int(best)]

    async def distinct_by(
        self,
        session: AsyncSession,
        scan_id: uuid.UUID,
        key: str,
    ) -> list[tuple[str, int]]:
        """Distinct values of *key* with occurrence counts.

        Ordered by count descending, then key ascending. Counts sum to
        :meth:`item_count`. Raises :class:`UnknownGroupingKeyError` for
        unsupported keys.
        """
        if key not in self.grouping_keys:
            raise UnknownGroupingKeyError(
                f"cannot group {self.dimension.value} results by {key!r}"
            )
        col = self._col(key)
        cnt = func.count().label("cnt")
        stmt = self._items_for_scan(select(col.label("key"), cnt), scan_id)
        stmt = stmt.group_by(col).order_by(cnt.desc(), col.asc())
        result = await session.execute(stmt)
        return [(row.key, int(row.cnt)) for row in result]

    def bom_query(self, scan_id: uuid.UUID, filter_text: str = "") -> Select:
        """Deduplicated, filtered, deterministically ordered BOM rows."""
        cols = [self._col(name) for name in self.bom_columns]
        stmt = select(*cols, func.min(self._col("path")).label("path"))
        stmt = self._items_for_scan(stmt, scan_id)

        needle = (filter_text or "").strip().lower()
        if needle:
            stmt = stmt.where(
                or_(*(func.lower(self._col(name)).contains(needle, autoescape=True)
                      for name in self.filter_columns))
            )
        return stmt.group_by(*cols).order_by(*self._bom_order())

    def _bom_order(self) -> list[ColumnElement]:
        return [self._col(name).asc() for name in self.bom_columns]

    async def bill_of_materials(
        self,
        session: AsyncSession,
        scan_id: uuid.UUID,
        filter_text: str = "",
        page: int = 0,
        page_size: int = PAGE_SIZE_DEFAULT,
    ) -> OffsetPage:
        return await self.paginate_offset(
            session, self.bom_query(scan_id, filter_text), page, page_size
        )


class LicenseResultDAO(_ResultItemDAO[LicenseScanResultItem]):
    model = LicenseScanResultItem
    dimension = Dimension.LICENSE
    result_model = LicenseScanResult
    result_fk = "license_scan_id"
    status_column = "status"
    grouping_keys = frozenset({"license_name", "display_identifier", "status"})
    bom_columns = ("display_identifier", "license_name", "status")
    filter_columns = ("display_identifier", "license_name")


class SecurityResultDAO(_ResultItemDAO[SecurityScanResultItem]):
    model = SecurityScanResultItem
    dimension = Dimension.SECURITY
    result_model = SecurityScanResult
    result_fk = "security_scan_id"
    status_column = "severity"
    grouping_keys = frozenset({"severity", "path", "vulnerability_id", "display_identifier"})
    bom_columns = ("display_identifier", "vulnerability_id", "severity", "title")
    filter_columns = ("display_identifier", "vulnerability_id", "title")

    def _bom_order(self) -> list[ColumnElement]:
        # worst first, then by component
        return [
            rank_of(self._col("severity"), Severity).desc(),
            self._col("display_identifier").asc(),
            self._col("vulnerability_id").asc(),
            self._col("title").asc(),
        ]
