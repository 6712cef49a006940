"""Shared fixtures for depaudit tests.

Each test gets a fresh SQLite database (aiosqlite) in its tmp_path, so
tests that commit across several sessions stay isolated. Point
``TEST_DATABASE_URL`` at a PostgreSQL database to run against asyncpg
instead; tables are created before and dropped after every test.
"""

import os
import uuid
from datetime import datetime, timezone

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

import depaudit.models  # noqa: F401  (register tables on Base.metadata)
from depaudit.core.config import ScanConfig
from depaudit.core.database import Base
from depaudit.dao.project_dao import ProjectDAO
from depaudit.dao.scan_dao import ScanDAO, ScanLogDAO
from depaudit.dao.scan_result_dao import LicenseResultDAO, SecurityResultDAO
from depaudit.dao.stats_dao import StatsDAO
from depaudit.services.aggregation_service import AggregationService
from depaudit.services.metrics_service import MetricsService
from depaudit.services.project_service import ProjectService
from depaudit.services.scan_service import ScanService


@pytest.fixture
def db_url(tmp_path):
    return os.environ.get("TEST_DATABASE_URL") or f"sqlite+aiosqlite:///{tmp_path / 'depaudit.db'}"


@pytest_asyncio.fixture
async def engine(db_url):
    eng = create_async_engine(db_url, echo=False)
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await eng.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def session(session_factory):
    """Provide a transactional session that rolls back after each test."""
    async with session_factory() as sess:
        async with sess.begin():
            yield sess
            await sess.rollback()


# ── wiring ────────────────────────────────────────────────────────────────


@pytest.fixture
def project_dao():
    return ProjectDAO()


@pytest.fixture
def scan_dao():
    return ScanDAO()


@pytest.fixture
def license_dao():
    return LicenseResultDAO()


@pytest.fixture
def security_dao():
    return SecurityResultDAO()


@pytest.fixture
def project_service(project_dao):
    return ProjectService(project_dao)


@pytest.fixture
def scan_service(scan_dao, license_dao, security_dao):
    return ScanService(scan_dao, ScanLogDAO(), license_dao, security_dao)


@pytest.fixture
def aggregation_service(scan_dao, license_dao, security_dao):
    return AggregationService(scan_dao, license_dao, security_dao)


@pytest.fixture
def metrics_service(project_dao, aggregation_service):
    return MetricsService(StatsDAO(), project_dao, aggregation_service)


@pytest.fixture
def scan_config(tmp_path):
    return ScanConfig(workdir_root=tmp_path / "work", scan_timeout_sec=30)


# ── data helpers ──────────────────────────────────────────────────────────


@pytest.fixture
def make_project(project_dao):
    async def _make(session, name: str = "app", **overrides):
        values = {
            "name": name,
            "repo_url": f"https://git.example.com/acme/{name}.git",
            "package_manager": "npm",
            "user_id": "alice",
        }
        values.update(overrides)
        return await project_dao.create(session, **values)

    return _make


@pytest.fixture
def make_completed_scan(scan_dao, license_dao, security_dao):
    """Insert a completed scan with the given license / security items."""

    async def _make(
        session,
        project_id: uuid.UUID,
        *,
        completed_at: datetime | None = None,
        licenses: list[dict] | None = None,
        vulnerabilities: list[dict] | None = None,
    ):
        scan = await scan_dao.create(
            session,
            project_id=project_id,
            status="completed",
            branch="main",
            completed_at=completed_at or datetime.now(timezone.utc),
        )
        await license_dao.persist(session, scan.id, licenses or [])
        await security_dao.persist(session, scan.id, vulnerabilities or [])
        return scan

    return _make

