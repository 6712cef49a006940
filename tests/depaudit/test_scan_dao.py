"""Tests for ScanDAO and the latest-completed-scan query."""

import itertools
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.exc import IntegrityError

from depaudit.core.types import ScanStatus
from depaudit.dao.scan_dao import ScanLogDAO, latest_completed_scans

T0 = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _naive(value: datetime) -> datetime:
    return value.replace(tzinfo=None) if value.tzinfo else value


# ── latest completed ─────────────────────────────────────────────────────


class TestLatestCompleted:
    async def test_never_scanned(self, scan_dao, session, make_project):
        proj = await make_project(session)
        assert await scan_dao.get_latest_completed(session, proj.id) is None

    async def test_failed_after_completed_is_ignored(
        self, scan_dao, session, make_project, make_completed_scan
    ):
        """S1 completed, S2 completed later, S3 failed last -> S2."""
        proj = await make_project(session)
        await make_completed_scan(session, proj.id, completed_at=T0)
        s2 = await make_completed_scan(session, proj.id, completed_at=T0 + timedelta(hours=1))
        await scan_dao.create(
            session, project_id=proj.id, status="failed", error="boom",
        )

        latest = await scan_dao.get_latest_completed(session, proj.id)
        assert latest.id == s2.id

    @pytest.mark.parametrize("order", list(itertools.permutations(["s1", "s2", "s3"])))
    async def test_failed_with_later_timestamp_is_ignored(
        self, order, scan_dao, session, make_project, make_completed_scan
    ):
        """S1 completed, S2 failed with the newest timestamp, S3 completed -> S3."""
        proj = await make_project(session)
        created = {}
        for name in order:
            if name == "s1":
                created[name] = await make_completed_scan(session, proj.id, completed_at=T0)
            elif name == "s2":
                created[name] = await scan_dao.create(
                    session,
                    project_id=proj.id,
                    status="failed",
                    error="boom",
                    completed_at=T0 + timedelta(hours=2),
                )
            else:
                created[name] = await make_completed_scan(
                    session, proj.id, completed_at=T0 + timedelta(hours=1)
                )

        latest = await scan_dao.get_latest_completed(session, proj.id)
        assert latest.id == created["s3"].id

    async def test_only_failed_is_none(self, scan_dao, session, make_project):
        proj = await make_project(session)
        await scan_dao.create(session, project_id=proj.id, status="failed")
        assert await scan_dao.get_latest_completed(session, proj.id) is None

    async def test_running_does_not_count(
        self, scan_dao, session, make_project, make_completed_scan
    ):
        proj = await make_project(session)
        s1 = await make_completed_scan(session, proj.id, completed_at=T0)
        await scan_dao.create(session, project_id=proj.id, status="running")
        assert (await scan_dao.get_latest_completed(session, proj.id)).id == s1.id

    async def test_one_row_per_project(
        self, session, make_project, make_completed_scan
    ):
        a = await make_project(session, "a")
        b = await make_project(session, "b", user_id="bob")
        await make_completed_scan(session, a.id, completed_at=T0)
        a2 = await make_completed_scan(session, a.id, completed_at=T0 + timedelta(days=1))
        b1 = await make_completed_scan(session, b.id, completed_at=T0)

        rows = (await session.execute(latest_completed_scans())).all()
        assert {row.scan_id for row in rows} == {a2.id, b1.id}

        rows = (await session.execute(latest_completed_scans(owner_ids=["bob"]))).all()
        assert [row.scan_id for row in rows] == [b1.id]

    async def test_development_type_filter(
        self, session, make_project, make_completed_scan
    ):
        org = await make_project(session, "org")
        community = await make_project(session, "oss", development_type="community")
        s_org = await make_completed_scan(session, org.id)
        await make_completed_scan(session, community.id)

        stmt = latest_completed_scans(development_type="organization")
        rows = (await session.execute(stmt)).all()
        assert [row.scan_id for row in rows] == [s_org.id]


# ── active / history ─────────────────────────────────────────────────────


class TestActive:
    async def test_get_active(self, scan_dao, session, make_project):
        proj = await make_project(session)
        assert await scan_dao.get_active_by_project(session, proj.id) is None
        scan = await scan_dao.create(session, project_id=proj.id, status="pending")
        assert (await scan_dao.get_active_by_project(session, proj.id)).id == scan.id

    async def test_second_active_rejected_by_index(self, scan_dao, session, make_project):
        proj = await make_project(session)
        await scan_dao.create(session, project_id=proj.id, status="running")
        with pytest.raises(IntegrityError):
            await scan_dao.create(session, project_id=proj.id, status="pending")

    async def test_terminal_scans_not_constrained(self, scan_dao, session, make_project):
        proj = await make_project(session)
        await scan_dao.create(session, project_id=proj.id, status="failed")
        await scan_dao.create(session, project_id=proj.id, status="failed")
        await scan_dao.create(session, project_id=proj.id, status="pending")

    async def test_list_by_project_includes_failed(self, scan_dao, session, make_project):
        proj = await make_project(session)
        await scan_dao.create(session, project_id=proj.id, status="failed")
        await scan_dao.create(session, project_id=proj.id, status="completed", completed_at=T0)
        history = await scan_dao.list_by_project(session, proj.id)
        assert sorted(s.status for s in history) == ["completed", "failed"]

    async def test_list_stale(self, scan_dao, session, make_project):
        proj = await make_project(session)
        scan = await scan_dao.create(session, project_id=proj.id, status="running")
        future = datetime.now(timezone.utc) + timedelta(hours=1)
        past = datetime.now(timezone.utc) - timedelta(hours=1)
        assert [s.id for s in await scan_dao.list_stale(session, future)] == [scan.id]
        assert await scan_dao.list_stale(session, past) == []


# ── transition ───────────────────────────────────────────────────────────


class TestTransition:
    async def test_compare_and_set(self, scan_dao, session, make_project):
        proj = await make_project(session)
        scan = await scan_dao.create(session, project_id=proj.id, status="pending")

        assert await scan_dao.transition(
            session, scan.id, from_status=ScanStatus.PENDING, to_status=ScanStatus.RUNNING
        )
        # second writer loses
        assert not await scan_dao.transition(
            session, scan.id, from_status=ScanStatus.PENDING, to_status=ScanStatus.RUNNING
        )
        await session.refresh(scan)
        assert scan.status == "running"

    async def test_sets_extra_values(self, scan_dao, session, make_project):
        proj = await make_project(session)
        scan = await scan_dao.create(session, project_id=proj.id, status="running")
        assert await scan_dao.transition(
            session,
            scan.id,
            from_status=ScanStatus.RUNNING,
            to_status=ScanStatus.COMPLETED,
            completed_at=T0,
        )
        await session.refresh(scan)
        assert scan.status == "completed"
        assert _naive(scan.completed_at) == _naive(T0)

    async def test_illegal_edge(self, scan_dao, session, make_project):
        proj = await make_project(session)
        scan = await scan_dao.create(session, project_id=proj.id, status="completed")
        with pytest.raises(ValueError, match="illegal scan transition"):
            await scan_dao.transition(
                session, scan.id, from_status=ScanStatus.COMPLETED, to_status=ScanStatus.RUNNING
            )


class TestScanLogDAO:
    async def test_get_by_scan(self, scan_dao, session, make_project):
        dao = ScanLogDAO()
        proj = await make_project(session)
        scan = await scan_dao.create(session, project_id=proj.id, status="failed")
        assert await dao.get_by_scan(session, scan.id) is None
        await dao.create(session, scan_id=scan.id, log="$ git clone\n[exit 128]\n")
        assert (await dao.get_by_scan(session, scan.id)).log.endswith("[exit 128]\n")
