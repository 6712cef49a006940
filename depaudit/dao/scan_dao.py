"""ScanDAO — scans table operations and the latest-completed-scan operator."""

import uuid
from collections.abc import Sequence
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import Select, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from depaudit.core.types import ACTIVE_SCAN_STATUSES, SCAN_TRANSITIONS, ScanStatus
from depaudit.dao.base import BaseDAO
from depaudit.models.project import Project
from depaudit.models.scan import Scan
from depaudit.models.scan_log import ScanLog


def latest_completed_scans(
    *,
    project_ids: Sequence[uuid.UUID] | None = None,
    owner_ids: Sequence[str] | None = None,
    development_type: str | None = None,
) -> Select:
    """One row per project: its latest ``completed`` scan.

    Returns a SELECT of ``(scan_id, project_id, completed_at)``. Only scans in
    the ``completed`` state are eligible; failed, pending and running scans
    never reach any aggregation. Ties on ``completed_at`` are broken by scan
    id so the choice is deterministic.

    Every per-project and fleet-wide aggregation joins against this query
    (as a subquery) instead of selecting scans on its own.
    """
    rank = (
        func.row_number()
        .over(
            partition_by=Scan.project_id,
            order_by=(Scan.completed_at.desc(), Scan.id.desc()),
        )
        .label("rn")
    )
    ranked = select(
        Scan.id.label("scan_id"),
        Scan.project_id.label("project_id"),
        Scan.completed_at.label("completed_at"),
        rank,
    ).where(Scan.status == ScanStatus.COMPLETED.value)

    if owner_ids or development_type is not None:
        ranked = ranked.join(Project, Project.id == Scan.project_id)
        if owner_ids:
            ranked = ranked.where(Project.user_id.in_(list(owner_ids)))
        if development_type is not None:
            ranked = ranked.where(Project.development_type == development_type)
    if project_ids is not None:
        ranked = ranked.where(Scan.project_id.in_(list(project_ids)))

    sub = ranked.subquery("ranked_scans")
    return select(sub.c.scan_id, sub.c.project_id, sub.c.completed_at).where(sub.c.rn == 1)


class ScanDAO(BaseDAO[Scan]):
    model = Scan

    # ── read ──────────────────────────────────────────────────────────────

    async def get_latest_completed(
        self, session: AsyncSession, project_id: uuid.UUID
    ) -> Scan | None:
        """Return the project's latest completed scan, or None if never completed."""
        latest = latest_completed_scans(project_ids=[project_id]).subquery()
        stmt = select(Scan).join(latest, latest.c.scan_id == Scan.id)
        result = await session.execute(stmt)
        return result.scalars().first()

    async def get_active_by_project(
        self, session: AsyncSession, project_id: uuid.UUID
    ) -> Scan | None:
        """Return the pending/running scan for a project, if any."""
        stmt = select(Scan).where(
            Scan.project_id == project_id,
            Scan.status.in_(ACTIVE_SCAN_STATUSES),
        )
        result = await session.execute(stmt)
        return result.scalars().first()

    async def list_by_project(
        self,
        session: AsyncSession,
        project_id: uuid.UUID,
        limit: int = 50,
    ) -> list[Scan]:
        """Scan history for a project, newest first (includes failed scans)."""
        stmt = (
            select(Scan)
            .where(Scan.project_id == project_id)
            .order_by(Scan.created_at.desc(), Scan.id.desc())
            .limit(limit)
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())

    async def list_stale(self, session: AsyncSession, cutoff: datetime) -> list[Scan]:
        """Active scans created before *cutoff* (Reaper polling)."""
        stmt = select(Scan).where(
            Scan.status.in_(ACTIVE_SCAN_STATUSES),
            Scan.created_at < cutoff,
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())

    # ── write ─────────────────────────────────────────────────────────────

    async def transition(
        self,
        session: AsyncSession,
        pk: uuid.UUID,
        *,
        from_status: ScanStatus,
        to_status: ScanStatus,
        **values: Any,
    ) -> bool:
        """Move a scan from *from_status* to *to_status* (compare-and-set).

        The UPDATE only matches while the row is still in *from_status*, so
        two writers can never both win the same transition. Returns True if
        this call performed the transition.

        Raises ``ValueError`` for an edge the lifecycle does not allow.
        """
        self._require_pk(pk)
        if to_status not in SCAN_TRANSITIONS[from_status]:
            raise ValueError(f"illegal scan transition {from_status.value} -> {to_status.value}")

        stmt = (
            update(Scan)
            .where(Scan.id == pk, Scan.status == from_status.value)
            .values(status=to_status.value, updated_at=datetime.now(timezone.utc), **values)
        )
        result = await session.execute(stmt)
        return result.rowcount == 1


class ScanLogDAO(BaseDAO[ScanLog]):
    model = ScanLog

    async def get_by_scan(self, session: AsyncSession, scan_id: uuid.UUID) -> ScanLog | None:
        stmt = (
            select(ScanLog)
            .where(ScanLog.scan_id == scan_id)
            .order_by(ScanLog.created_at.desc())
            .limit(1)
        )
        result = await session.execute(stmt)
        return result.scalars().first()
