"""ScanService — scan lifecycle writes and scan history reads."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from depaudit.core.types import ScanStatus
from depaudit.dao.scan_dao import ScanDAO, ScanLogDAO
from depaudit.dao.scan_result_dao import LicenseResultDAO, SecurityResultDAO
from depaudit.models.scan import Scan
from depaudit.models.scan_log import ScanLog
from depaudit.services import ConflictError, NotFoundError, ScanInProgressError

log = structlog.get_logger("depaudit.service")


class ScanService:
    """Stateless service for scans.

    Methods only flush; the caller owns the transaction and commits.
    """

    def __init__(
        self,
        scan_dao: ScanDAO,
        scan_log_dao: ScanLogDAO,
        license_result_dao: LicenseResultDAO,
        security_result_dao: SecurityResultDAO,
    ) -> None:
        self._scan_dao = scan_dao
        self._log_dao = scan_log_dao
        self._license_dao = license_result_dao
        self._security_dao = security_result_dao

    # ── read ──────────────────────────────────────────────────────────────

    async def get(self, session: AsyncSession, scan_id: uuid.UUID) -> Scan:
        scan = await self._scan_dao.get_by_id(session, scan_id)
        if scan is None:
            raise NotFoundError("scan not found")
        return scan

    async def list_history(
        self, session: AsyncSession, project_id: uuid.UUID, limit: int = 50
    ) -> list[Scan]:
        return await self._scan_dao.list_by_project(session, project_id, limit)

    async def latest_completed(
        self, session: AsyncSession, project_id: uuid.UUID
    ) -> Scan | None:
        return await self._scan_dao.get_latest_completed(session, project_id)

    async def get_log(self, session: AsyncSession, scan_id: uuid.UUID) -> ScanLog:
        scan_log = await self._log_dao.get_by_scan(session, scan_id)
        if scan_log is None:
            raise NotFoundError("scan log not found")
        return scan_log

    # ── lifecycle ─────────────────────────────────────────────────────────

    async def create_pending(
        self, session: AsyncSession, project_id: uuid.UUID, branch: str | None
    ) -> Scan:
        """Insert a ``pending`` scan.

        Raises :class:`ScanInProgressError` if the project already has a
        pending or running scan, whether seen here or rejected by the
        database's one-active-scan index. After the latter the session must be
        rolled back.
        """
        if await self._scan_dao.get_active_by_project(session, project_id) is not None:
            raise ScanInProgressError(project_id)
        try:
            return await self._scan_dao.create(
                session,
                project_id=project_id,
                status=ScanStatus.PENDING.value,
                branch=branch,
            )
        except IntegrityError:
            raise ScanInProgressError(project_id) from None

    async def mark_running(self, session: AsyncSession, scan_id: uuid.UUID) -> bool:
        return await self._scan_dao.transition(
            session,
            scan_id,
            from_status=ScanStatus.PENDING,
            to_status=ScanStatus.RUNNING,
            started_at=datetime.now(timezone.utc),
        )

    async def complete(
        self,
        session: AsyncSession,
        scan_id: uuid.UUID,
        *,
        licenses: list[dict[str, Any]],
        vulnerabilities: list[dict[str, Any]],
        log_text: str,
    ) -> None:
        """Write both result sets and the log, then flip the scan to ``completed``.

        All writes share the caller's transaction, so readers see either
        nothing or a completed scan with its results. Raises
        :class:`ConflictError` if the scan is no longer ``running`` (e.g.
        the stale-scan reaper failed it meanwhile); the caller must roll back.
        """
        await self._license_dao.persist(session, scan_id, licenses)
        await self._security_dao.persist(session, scan_id, vulnerabilities)
        await self._log_dao.create(session, scan_id=scan_id, log=log_text)
        done = await self._scan_dao.transition(
            session,
            scan_id,
            from_status=ScanStatus.RUNNING,
            to_status=ScanStatus.COMPLETED,
            completed_at=datetime.now(timezone.utc),
            error=None,
        )
        if not done:
            raise ConflictError(f"scan {scan_id} is no longer running")

    async def fail(
        self,
        session: AsyncSession,
        scan_id: uuid.UUID,
        error: str,
        log_text: str | None = None,
    ) -> bool:
        """Mark an active scan ``failed``; no-op (False) if it is already terminal."""
        failed = False
        for from_status in (ScanStatus.RUNNING, ScanStatus.PENDING):
            failed = await self._scan_dao.transition(
                session,
                scan_id,
                from_status=from_status,
                to_status=ScanStatus.FAILED,
                error=error,
            )
            if failed:
                break
        if failed and log_text:
            await self._log_dao.create(session, scan_id=scan_id, log=log_text)
        return failed

    async def fail_stale(self, session: AsyncSession, cutoff: datetime, error: str) -> int:
        """Fail every active scan created before *cutoff*. Returns how many."""
        stale = await self._scan_dao.list_stale(session, cutoff)
        count = 0
        for scan in stale:
            if await self.fail(session, scan.id, error):
                count += 1
                log.warning(
                    "reaper.failed_stale",
                    scan_id=str(scan.id),
                    project_id=str(scan.project_id),
                )
        return count
