"""StatsDAO — fleet-wide aggregates over each project's latest completed scan."""

import uuid
from collections.abc import Sequence
from datetime import datetime

from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from depaudit.core.status import HIGH_SEVERITIES, LicenseStatus
from depaudit.core.types import DevelopmentType, ScanStatus
from depaudit.dao.scan_dao import latest_completed_scans
from depaudit.models.license_scan_result import LicenseScanResult, LicenseScanResultItem
from depaudit.models.project import Project
from depaudit.models.scan import Scan
from depaudit.models.security_scan_result import SecurityScanResult, SecurityScanResultItem

FLEET_DEVELOPMENT_TYPE = DevelopmentType.ORGANIZATION.value


class StatsDAO:
    """Read-only cross-project queries. Stateless; no ORM model of its own."""

    @staticmethod
    def _latest(owner_ids: Sequence[str] | None):
        return latest_completed_scans(
            owner_ids=owner_ids, development_type=FLEET_DEVELOPMENT_TYPE
        ).subquery("latest")

    def _license_items(self, stmt: Select, owner_ids: Sequence[str] | None) -> Select:
        latest = self._latest(owner_ids)
        return (
            stmt.select_from(LicenseScanResultItem)
            .join(LicenseScanResult, LicenseScanResult.id == LicenseScanResultItem.license_scan_id)
            .join(latest, latest.c.scan_id == LicenseScanResult.scan_id)
        )

    def _security_items(self, stmt: Select, owner_ids: Sequence[str] | None) -> Select:
        latest = self._latest(owner_ids)
        return (
            stmt.select_from(SecurityScanResultItem)
            .join(
                SecurityScanResult,
                SecurityScanResult.id == SecurityScanResultItem.security_scan_id,
            )
            .join(latest, latest.c.scan_id == SecurityScanResult.scan_id)
        )

    # ── index inputs ──────────────────────────────────────────────────────

    async def license_item_counts(
        self, session: AsyncSession, owner_ids: Sequence[str] | None = None
    ) -> tuple[int, int]:
        """Return (non-green item count, total item count)."""
        non_green = func.count().filter(
            LicenseScanResultItem.status != LicenseStatus.GREEN.value
        )
        stmt = self._license_items(select(non_green, func.count()), owner_ids)
        row = (await session.execute(stmt)).one()
        return int(row[0] or 0), int(row[1] or 0)

    async def high_severity_count(
        self, session: AsyncSession, owner_ids: Sequence[str] | None = None
    ) -> int:
        stmt = self._security_items(select(func.count()), owner_ids).where(
            SecurityScanResultItem.severity.in_([s.value for s in HIGH_SEVERITIES])
        )
        return int((await session.execute(stmt)).scalar_one() or 0)

    # ── top-N ─────────────────────────────────────────────────────────────

    async def _top(self, session: AsyncSession, stmt: Select, key, limit: int) -> list[tuple[str, int]]:
        cnt = func.count().label("cnt")
        stmt = stmt.add_columns(cnt).group_by(key).order_by(cnt.desc(), key.asc()).limit(limit)
        result = await session.execute(stmt)
        return [(row[0], int(row.cnt)) for row in result]

    async def top_licenses(
        self, session: AsyncSession, owner_ids: Sequence[str] | None = None, limit: int = 10
    ) -> list[tuple[str, int]]:
        """Most used licenses and the number of components using each."""
        key = LicenseScanResultItem.license_name
        return await self._top(session, self._license_items(select(key), owner_ids), key, limit)

    async def top_components(
        self, session: AsyncSession, owner_ids: Sequence[str] | None = None, limit: int = 10
    ) -> list[tuple[str, int]]:
        """Most used components across the fleet."""
        key = LicenseScanResultItem.display_identifier
        return await self._top(session, self._license_items(select(key), owner_ids), key, limit)

    async def top_vulnerabilities(
        self, session: AsyncSession, owner_ids: Sequence[str] | None = None, limit: int = 10
    ) -> list[tuple[str, int]]:
        """Most frequent high/critical vulnerability paths across the fleet."""
        key = SecurityScanResultItem.path
        stmt = self._security_items(select(key), owner_ids).where(
            SecurityScanResultItem.severity.in_([s.value for s in HIGH_SEVERITIES])
        )
        return await self._top(session, stmt, key, limit)

    # ── trends ────────────────────────────────────────────────────────────

    async def project_creation_dates(
        self,
        session: AsyncSession,
        since: datetime,
        owner_ids: Sequence[str] | None = None,
    ) -> list[datetime]:
        stmt = select(Project.created_at).where(
            Project.created_at >= since,
            Project.development_type == FLEET_DEVELOPMENT_TYPE,
        )
        if owner_ids:
            stmt = stmt.where(Project.user_id.in_(list(owner_ids)))
        result = await session.execute(stmt)
        return list(result.scalars().all())

    async def completed_scan_dates(
        self,
        session: AsyncSession,
        since: datetime,
        owner_ids: Sequence[str] | None = None,
    ) -> list[tuple[uuid.UUID, datetime]]:
        """(project_id, completed_at) of every completed scan since *since*.

        Callers bucket these and keep one row per project per bucket.
        """
        stmt = (
            select(Scan.project_id, Scan.completed_at)
            .join(Project, Project.id == Scan.project_id)
            .where(
                Scan.status == ScanStatus.COMPLETED.value,
                Scan.completed_at >= since,
                Project.development_type == FLEET_DEVELOPMENT_TYPE,
            )
        )
        if owner_ids:
            stmt = stmt.where(Project.user_id.in_(list(owner_ids)))
        result = await session.execute(stmt)
        return [(row.project_id, row.completed_at) for row in result]
