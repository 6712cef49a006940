"""ScanRunner — drives scan attempts from checkout to persisted results.

Lifecycle of one attempt::

    pending -> running -> completed
          \\          \\-> failed
           \\-> failed

The git / package-manager / OSV phase does not hold a database session;
results are written in a single transaction at the end, together with the
``completed`` flip, so readers never see a completed scan without results.
"""

from __future__ import annotations

import asyncio
import uuid
from pathlib import Path

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

# Ensure fetchers are registered before any scan runs.
import depaudit.engines.scan_runner.fetchers  # noqa: F401
from depaudit.core.config import ScanConfig
from depaudit.core.git import GitRef, redact_url
from depaudit.core.types import PackageManager, ScanStatus
from depaudit.engines.scan_runner import repo
from depaudit.engines.scan_runner.errors import ScanError
from depaudit.engines.scan_runner.fetchers.base import get_fetcher
from depaudit.engines.scan_runner.licenses import LicensePolicy, classify_licenses
from depaudit.engines.scan_runner.models import ScanOutcome
from depaudit.engines.scan_runner.osv_client import VulnerabilitySource
from depaudit.models.scan import Scan
from depaudit.services import ScanInProgressError
from depaudit.services.project_service import ProjectService
from depaudit.services.scan_service import ScanService

log = structlog.get_logger("depaudit.engine")

_GIT_LOG = "git.log"


def read_scan_log(log_dir: Path) -> str:
    """Concatenate the tool logs written for one attempt (already redacted)."""
    if not log_dir.is_dir():
        return ""
    parts = []
    for path in sorted(log_dir.glob("*.log")):
        parts.append(f"== {path.name} ==\n{path.read_text(encoding='utf-8', errors='replace')}")
    return "\n".join(parts)


class ScanRunner:
    """Starts scans in the background and runs each attempt to a terminal state."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        project_service: ProjectService,
        scan_service: ScanService,
        vulnerability_source: VulnerabilitySource,
        config: ScanConfig,
    ) -> None:
        self._session_factory = session_factory
        self._project_service = project_service
        self._scan_service = scan_service
        self._vulns = vulnerability_source
        self._config = config
        self._policy = LicensePolicy.from_config(config)
        # project id -> scan id of its in-process attempt
        self._active: dict[uuid.UUID, uuid.UUID | None] = {}
        self._tasks: dict[uuid.UUID, asyncio.Task[ScanStatus]] = {}

    # ── start ─────────────────────────────────────────────────────────────

    async def start(self, project_id: uuid.UUID, branch: str | None = None) -> Scan:
        """Create a ``pending`` scan and run it as a background task.

        Raises :class:`ScanInProgressError` if the project already has an
        active scan (in this process or according to the database), and
        :class:`~depaudit.services.NotFoundError` for an unknown project.
        """
        if project_id in self._active:
            raise ScanInProgressError(project_id)
        # Claimed before the first await; other projects are not held up.
        self._active[project_id] = None
        try:
            async with self._session_factory() as session:
                try:
                    project = await self._project_service.get(session, project_id)
                    scan = await self._scan_service.create_pending(
                        session, project_id, branch or project.default_branch
                    )
                    await session.commit()
                except Exception:
                    await session.rollback()
                    raise
        except BaseException:
            self._active.pop(project_id, None)
            raise
        self._active[project_id] = scan.id

        log.info("scan.queued", scan_id=str(scan.id), project_id=str(project_id))
        task = asyncio.create_task(self._run_and_release(scan.id, project_id),
                                   name=f"scan-{scan.id}")
        self._tasks[scan.id] = task
        task.add_done_callback(lambda _t, sid=scan.id: self._tasks.pop(sid, None))
        return scan

    async def _run_and_release(self, scan_id: uuid.UUID, project_id: uuid.UUID) -> ScanStatus:
        try:
            return await self.run(scan_id)
        finally:
            self._active.pop(project_id, None)

    # ── run ───────────────────────────────────────────────────────────────

    async def run(self, scan_id: uuid.UUID) -> ScanStatus:
        """Run one attempt to a terminal state and return that state.

        Failures are recorded on the scan (``error`` + captured log) and
        never raised.
        """
        log_dir = self._config.scan_log_dir(scan_id)
        timeout = self._config.scan_timeout_sec
        structlog.contextvars.bind_contextvars(scan_id=str(scan_id))
        try:
            await asyncio.wait_for(self._attempt(scan_id, log_dir), timeout=timeout)
            log.info("scan.completed")
            return ScanStatus.COMPLETED
        except asyncio.TimeoutError:
            error = f"scan exceeded wall-clock budget of {timeout:g}s"
        except ScanError as exc:
            error = str(exc)
            log.warning("scan.error", error=error, retryable=exc.retryable)
        except asyncio.CancelledError:
            await self._mark_failed(scan_id, "scan cancelled", log_dir)
            raise
        except Exception as exc:
            error = f"internal error: {type(exc).__name__}: {redact_url(str(exc))}"
            log.error("scan.crashed", exc_info=True)
        finally:
            structlog.contextvars.unbind_contextvars("scan_id")

        await self._mark_failed(scan_id, error, log_dir)
        return ScanStatus.FAILED

    async def _attempt(self, scan_id: uuid.UUID, log_dir: Path) -> None:
        async with self._session_factory() as session:
            scan = await self._scan_service.get(session, scan_id)
            project = await self._project_service.get(session, scan.project_id)
            if not await self._scan_service.mark_running(session, scan_id):
                raise ScanError(f"scan is {scan.status}, expected pending")
            await session.commit()
            project_id = project.id
            repo_url = project.repo_url
            package_manager = PackageManager(project.package_manager)
            branch = scan.branch or project.default_branch

        log.info(
            "scan.started",
            project_id=str(project_id),
            repo_url=redact_url(repo_url),
            branch=branch,
            package_manager=package_manager.value,
        )
        outcome = await self._resolve(project_id, repo_url, branch, package_manager, log_dir)

        async with self._session_factory() as session:
            try:
                await self._scan_service.complete(
                    session,
                    scan_id,
                    licenses=[f.as_row() for f in outcome.licenses],
                    vulnerabilities=[f.as_row() for f in outcome.vulnerabilities],
                    log_text=read_scan_log(log_dir),
                )
                await session.commit()
            except BaseException:
                await session.rollback()
                raise
        log.info(
            "scan.persisted",
            dependencies=len(outcome.dependencies),
            vulnerabilities=len(outcome.vulnerabilities),
        )

    async def _resolve(
        self,
        project_id: uuid.UUID,
        repo_url: str,
        branch: str,
        package_manager: PackageManager,
        log_dir: Path,
    ) -> ScanOutcome:
        """Checkout, fetch, classify, look up. No database access."""
        log_dir.mkdir(parents=True, exist_ok=True)
        workdir = self._config.project_workdir(project_id) / "src"
        await repo.checkout(
            repo_url,
            branch,
            workdir,
            username=self._config.git_username,
            token=self._config.git_token,
            log_file=log_dir / _GIT_LOG,
        )

        fetcher = get_fetcher(package_manager)
        dependencies = await fetcher.fetch_dependencies(workdir, self._config, log_dir)
        licenses = classify_licenses(dependencies, self._policy)
        vulnerabilities = await self._vulns.lookup(package_manager, dependencies)
        return ScanOutcome(
            dependencies=dependencies,
            licenses=licenses,
            vulnerabilities=vulnerabilities,
        )

    async def _mark_failed(self, scan_id: uuid.UUID, error: str, log_dir: Path) -> None:
        log_text = read_scan_log(log_dir)
        log_text = f"{log_text}\n{error}\n" if log_text else f"{error}\n"
        try:
            async with self._session_factory() as session:
                failed = await self._scan_service.fail(session, scan_id, error, log_text)
                await session.commit()
        except Exception:
            log.error("scan.fail_not_recorded", scan_id=str(scan_id), exc_info=True)
            return
        if failed:
            log.warning("scan.failed", scan_id=str(scan_id), error=error)

    # ── repository queries ────────────────────────────────────────────────

    async def list_refs(self, project_id: uuid.UUID) -> list[GitRef]:
        """Branches and tags of the project's repository.

        Raises :class:`~depaudit.engines.scan_runner.errors.RepositoryAccessError`
        when the remote cannot be listed.
        """
        async with self._session_factory() as session:
            project = await self._project_service.get(session, project_id)
            repo_url = project.repo_url
        return await repo.ls_remote(
            repo_url, username=self._config.git_username, token=self._config.git_token
        )

    async def check_repository(self, repo_url: str) -> bool:
        return await repo.is_reachable(
            repo_url, username=self._config.git_username, token=self._config.git_token
        )

    # ── lifecycle ─────────────────────────────────────────────────────────

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    async def wait_idle(self) -> None:
        """Wait until every started attempt has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks.values()), return_exceptions=True)

    async def shutdown(self) -> None:
        """Cancel in-flight attempts and record each of them as failed.

        A task cancelled before its first step never runs its own failure
        handling, so every cancelled scan is failed here as well; ``fail`` is
        a no-op for a scan that already reached a terminal state.
        """
        tasks = dict(self._tasks)
        for task in tasks.values():
            task.cancel()
        await asyncio.gather(*tasks.values(), return_exceptions=True)
        self._tasks.clear()

        for scan_id, task in tasks.items():
            if task.cancelled():
                log_dir = self._config.scan_log_dir(scan_id)
                await self._mark_failed(scan_id, "scan cancelled", log_dir)
        for project_id, scan_id in list(self._active.items()):
            if scan_id in tasks:
                del self._active[project_id]
        log.info("scan_runner.stopped", cancelled=len(tasks))
