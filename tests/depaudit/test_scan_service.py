"""Tests for ProjectService and ScanService."""

import uuid
from datetime import datetime, timedelta, timezone

import pytest
from helpers import license_item, vuln_item

from depaudit.services import ConflictError, NotFoundError, ScanInProgressError, ValidationError


class TestProjectService:
    async def test_create(self, project_service, session):
        proj = await project_service.create(
            session,
            name=" web ",
            repo_url="https://git.example.com/acme/web.git",
            package_manager="pip",
            user_id="alice",
        )
        assert proj.name == "web"
        assert proj.package_manager == "pip"
        assert proj.default_branch == "main"
        assert proj.development_type == "organization"

    async def test_unknown_package_manager(self, project_service, session):
        with pytest.raises(ValidationError, match="unknown package manager"):
            await project_service.create(
                session, name="x", repo_url="https://h/x.git", package_manager="cargo",
                user_id="alice",
            )

    async def test_blank_owner(self, project_service, session):
        with pytest.raises(ValidationError, match="user_id"):
            await project_service.create(
                session, name="x", repo_url="https://h/x.git", package_manager="npm", user_id=" ",
            )

    async def test_get_missing(self, project_service, session):
        with pytest.raises(NotFoundError):
            await project_service.get(session, uuid.uuid4())

    async def test_override_owner(self, project_service, session, make_project):
        proj = await make_project(session)
        updated = await project_service.override_owner(session, proj.id, "team-7")
        assert updated.user_id == "team-7"

    async def test_list_by_owners(self, project_service, session, make_project):
        await make_project(session, "a", user_id="alice")
        await make_project(session, "b", user_id="bob")
        await make_project(session, "c", user_id="carol")
        projects = await project_service.list_by_owners(session, ["alice", "carol"])
        assert sorted(p.name for p in projects) == ["a", "c"]
        assert len(await project_service.list_by_owners(session)) == 3


class TestCreatePending:
    async def test_create(self, scan_service, session, make_project):
        proj = await make_project(session)
        scan = await scan_service.create_pending(session, proj.id, "main")
        assert scan.status == "pending"
        assert scan.branch == "main"

    async def test_rejects_second_active(self, scan_service, session, make_project):
        proj = await make_project(session)
        await scan_service.create_pending(session, proj.id, "main")
        with pytest.raises(ScanInProgressError):
            await scan_service.create_pending(session, proj.id, "main")

    def test_in_progress_is_conflict(self):
        assert issubclass(ScanInProgressError, ConflictError)

    async def test_allowed_after_terminal(self, scan_service, session, make_project):
        proj = await make_project(session)
        first = await scan_service.create_pending(session, proj.id, "main")
        assert await scan_service.fail(session, first.id, "boom")
        second = await scan_service.create_pending(session, proj.id, "main")
        assert second.id != first.id


class TestLifecycle:
    async def test_complete_persists_everything(
        self, scan_service, session, make_project
    ):
        proj = await make_project(session)
        scan = await scan_service.create_pending(session, proj.id, "main")
        assert await scan_service.mark_running(session, scan.id)

        await scan_service.complete(
            session,
            scan.id,
            licenses=[license_item("a@1", "MIT", "green")],
            vulnerabilities=[vuln_item("a@1", "GHSA-1", "high")],
            log_text="$ npm install\n[exit 0]\n",
        )
        await session.refresh(scan)
        assert scan.status == "completed"
        assert scan.completed_at is not None
        assert scan.started_at is not None
        assert (await scan_service.latest_completed(session, proj.id)).id == scan.id
        assert (await scan_service.get_log(session, scan.id)).log.startswith("$ npm install")

    async def test_complete_requires_running(self, scan_service, session, make_project):
        proj = await make_project(session)
        scan = await scan_service.create_pending(session, proj.id, "main")
        with pytest.raises(ConflictError):
            await scan_service.complete(
                session, scan.id, licenses=[], vulnerabilities=[], log_text=""
            )

    async def test_fail_running(self, scan_service, session, make_project):
        proj = await make_project(session)
        scan = await scan_service.create_pending(session, proj.id, "main")
        await scan_service.mark_running(session, scan.id)
        assert await scan_service.fail(session, scan.id, "npm exited with 1", "log text")
        await session.refresh(scan)
        assert scan.status == "failed"
        assert scan.error == "npm exited with 1"
        assert scan.completed_at is None
        assert (await scan_service.get_log(session, scan.id)).log == "log text"

    async def test_fail_terminal_is_noop(self, scan_service, session, make_project):
        proj = await make_project(session)
        scan = await scan_service.create_pending(session, proj.id, "main")
        assert await scan_service.fail(session, scan.id, "first")
        assert not await scan_service.fail(session, scan.id, "second")
        await session.refresh(scan)
        assert scan.error == "first"

    async def test_mark_running_twice(self, scan_service, session, make_project):
        proj = await make_project(session)
        scan = await scan_service.create_pending(session, proj.id, "main")
        assert await scan_service.mark_running(session, scan.id)
        assert not await scan_service.mark_running(session, scan.id)

    async def test_get_log_missing(self, scan_service, session, make_project):
        proj = await make_project(session)
        scan = await scan_service.create_pending(session, proj.id, "main")
        with pytest.raises(NotFoundError):
            await scan_service.get_log(session, scan.id)


class TestFailStale:
    async def test_fails_only_active(
        self, scan_service, session, make_project, make_completed_scan
    ):
        a = await make_project(session, "a")
        b = await make_project(session, "b")
        stuck = await scan_service.create_pending(session, a.id, "main")
        done = await make_completed_scan(session, b.id)

        cutoff = datetime.now(timezone.utc) + timedelta(minutes=5)
        assert await scan_service.fail_stale(session, cutoff, "timed out") == 1

        await session.refresh(stuck)
        await session.refresh(done)
        assert stuck.status == "failed"
        assert stuck.error == "timed out"
        assert done.status == "completed"

    async def test_recent_scans_untouched(self, scan_service, session, make_project):
        proj = await make_project(session)
        await scan_service.create_pending(session, proj.id, "main")
        cutoff = datetime.now(timezone.utc) - timedelta(hours=1)
        assert await scan_service.fail_stale(session, cutoff, "timed out") == 0
