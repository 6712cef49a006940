"""AggregationService — per-project status rollups over the latest completed scan.

Every operation resolves the project's latest *completed* scan first. A
project that was never scanned successfully yields the defined empty state
(``unknown``, ``[]``, an empty page), never an error.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from depaudit.core.status import Dimension, LicenseStatus, RankedStatus, Severity
from depaudit.dao.base import PAGE_SIZE_DEFAULT, OffsetPage
from depaudit.dao.scan_dao import ScanDAO
from depaudit.dao.scan_result_dao import LicenseResultDAO, SecurityResultDAO
from depaudit.models.scan import Scan
from depaudit.services import ValidationError


@dataclass
class ProjectScanState:
    project_id: uuid.UUID
    license_status: LicenseStatus
    security_status: Severity
    latest_scan: Scan | None


class AggregationService:
    """Stateless service for rollups, distinct-by summaries and bills of materials."""

    def __init__(
        self,
        scan_dao: ScanDAO,
        license_result_dao: LicenseResultDAO,
        security_result_dao: SecurityResultDAO,
    ) -> None:
        self._scan_dao = scan_dao
        self._daos = {
            Dimension.LICENSE: license_result_dao,
            Dimension.SECURITY: security_result_dao,
        }

    async def _latest_scan_id(
        self, session: AsyncSession, project_id: uuid.UUID
    ) -> uuid.UUID | None:
        scan = await self._scan_dao.get_latest_completed(session, project_id)
        return scan.id if scan is not None else None

    async def highest_status(
        self, session: AsyncSession, project_id: uuid.UUID, dimension: Dimension
    ) -> RankedStatus:
        """Worst status among the latest completed scan's items (``unknown`` if none)."""
        scan_id = await self._latest_scan_id(session, project_id)
        if scan_id is None:
            return dimension.status_type.unknown()
        return await self._daos[dimension].highest_status(session, scan_id)

    async def distinct_by(
        self,
        session: AsyncSession,
        project_id: uuid.UUID,
        dimension: Dimension,
        key: str,
    ) -> list[tuple[str, int]]:
        """``[(value, count)]`` ordered by count desc, value asc.

        Raises :class:`ValidationError` for a key the dimension cannot be
        grouped by.
        """
        dao = self._daos[dimension]
        if key not in dao.grouping_keys:
            raise ValidationError(
                f"cannot group {dimension.value} results by '{key}' "
                f"(expected one of: {', '.join(sorted(dao.grouping_keys))})"
            )
        scan_id = await self._latest_scan_id(session, project_id)
        if scan_id is None:
            return []
        return await dao.distinct_by(session, scan_id, key)

    async def distinct_licenses(
        self, session: AsyncSession, project_id: uuid.UUID
    ) -> list[tuple[str, int]]:
        return await self.distinct_by(session, project_id, Dimension.LICENSE, "license_name")

    async def distinct_severities(
        self, session: AsyncSession, project_id: uuid.UUID
    ) -> list[tuple[str, int]]:
        return await self.distinct_by(session, project_id, Dimension.SECURITY, "severity")

    async def distinct_vulnerabilities(
        self, session: AsyncSession, project_id: uuid.UUID
    ) -> list[tuple[str, int]]:
        return await self.distinct_by(session, project_id, Dimension.SECURITY, "path")

    async def bill_of_materials(
        self,
        session: AsyncSession,
        project_id: uuid.UUID,
        dimension: Dimension,
        filter_text: str = "",
        page: int = 0,
        page_size: int = PAGE_SIZE_DEFAULT,
    ) -> OffsetPage:
        scan_id = await self._latest_scan_id(session, project_id)
        if scan_id is None:
            return OffsetPage.empty(page)
        return await self._daos[dimension].bill_of_materials(
            session, scan_id, filter_text, page, page_size
        )

    async def scan_state(
        self, session: AsyncSession, project_id: uuid.UUID
    ) -> ProjectScanState:
        scan = await self._scan_dao.get_latest_completed(session, project_id)
        if scan is None:
            return ProjectScanState(
                project_id=project_id,
                license_status=LicenseStatus.UNKNOWN,
                security_status=Severity.UNKNOWN,
                latest_scan=None,
            )
        return ProjectScanState(
            project_id=project_id,
            license_status=await self._daos[Dimension.LICENSE].highest_status(session, scan.id),
            security_status=await self._daos[Dimension.SECURITY].highest_status(
                session, scan.id
            ),
            latest_scan=scan,
        )

    async def item_count(
        self, session: AsyncSession, project_id: uuid.UUID, dimension: Dimension
    ) -> int:
        scan_id = await self._latest_scan_id(session, project_id)
        if scan_id is None:
            return 0
        return await self._daos[dimension].item_count(session, scan_id)
