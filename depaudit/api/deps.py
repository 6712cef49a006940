"""Dependency injection — session, scan configuration and service singletons."""

from __future__ import annotations

import os
from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from depaudit.core.config import ScanConfig
from depaudit.dao.project_dao import ProjectDAO
from depaudit.dao.scan_dao import ScanDAO, ScanLogDAO
from depaudit.dao.scan_result_dao import LicenseResultDAO, SecurityResultDAO
from depaudit.dao.stats_dao import StatsDAO
from depaudit.engines.scan_runner.osv_client import OSVClient
from depaudit.engines.scan_runner.runner import ScanRunner
from depaudit.services.aggregation_service import AggregationService
from depaudit.services.metrics_service import MetricsService
from depaudit.services.project_service import ProjectService
from depaudit.services.scan_service import ScanService

# ---------------------------------------------------------------------------
# DAO singletons
# ---------------------------------------------------------------------------
_project_dao = ProjectDAO()
_scan_dao = ScanDAO()
_scan_log_dao = ScanLogDAO()
_license_result_dao = LicenseResultDAO()
_security_result_dao = SecurityResultDAO()
_stats_dao = StatsDAO()

# ---------------------------------------------------------------------------
# Service singletons
# ---------------------------------------------------------------------------
_project_service = ProjectService(_project_dao)
_scan_service = ScanService(_scan_dao, _scan_log_dao, _license_result_dao, _security_result_dao)
_aggregation_service = AggregationService(_scan_dao, _license_result_dao, _security_result_dao)
_metrics_service = MetricsService(_stats_dao, _project_dao, _aggregation_service)

# ---------------------------------------------------------------------------
# Engine / session factory / scan runner (initialised by app lifespan)
# ---------------------------------------------------------------------------
_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None
_scan_config: ScanConfig | None = None
_osv_client: OSVClient | None = None
_scan_runner: ScanRunner | None = None


def init_session_factory(database_url: str | None = None) -> async_sessionmaker[AsyncSession]:
    """Create the async engine and session factory. Called once at startup."""
    global _engine, _session_factory  # noqa: PLW0603
    url = database_url or os.environ.get(
        "DEPAUDIT_DATABASE_URL", "postgresql+asyncpg://localhost/depaudit"
    )
    _engine = create_async_engine(
        url,
        pool_pre_ping=True,
        pool_size=10,
        max_overflow=20,
        pool_recycle=1800,
    )
    _session_factory = async_sessionmaker(_engine, expire_on_commit=False)
    return _session_factory


async def dispose_engine() -> None:
    """Dispose the async engine, closing all pooled connections."""
    global _engine  # noqa: PLW0603
    if _engine is not None:
        await _engine.dispose()
        _engine = None


def set_session_factory(factory: async_sessionmaker[AsyncSession]) -> None:
    """Override session factory (for testing)."""
    global _session_factory  # noqa: PLW0603
    _session_factory = factory


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    if _session_factory is None:
        raise RuntimeError("call init_session_factory() before handling requests")
    return _session_factory


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield a per-request session with automatic commit/rollback."""
    async with get_session_factory()() as session:
        async with session.begin():
            yield session


# ---------------------------------------------------------------------------
# Scan runner
# ---------------------------------------------------------------------------


def get_scan_config() -> ScanConfig:
    global _scan_config  # noqa: PLW0603
    if _scan_config is None:
        _scan_config = ScanConfig.from_env()
    return _scan_config


def init_scan_runner(
    factory: async_sessionmaker[AsyncSession], config: ScanConfig | None = None
) -> ScanRunner:
    """Build the process-wide ScanRunner and its OSV client. Called once at startup."""
    global _scan_config, _osv_client, _scan_runner  # noqa: PLW0603
    _scan_config = config or get_scan_config()
    _osv_client = OSVClient(base_url=_scan_config.osv_api_url)
    _scan_runner = ScanRunner(
        factory, _project_service, _scan_service, _osv_client, _scan_config
    )
    return _scan_runner


async def shutdown_scan_runner() -> None:
    global _osv_client, _scan_runner  # noqa: PLW0603
    if _scan_runner is not None:
        await _scan_runner.shutdown()
        _scan_runner = None
    if _osv_client is not None:
        await _osv_client.close()
        _osv_client = None


def set_scan_runner(runner: ScanRunner | None) -> None:
    """Override the scan runner (for testing)."""
    global _scan_runner  # noqa: PLW0603
    _scan_runner = runner


def get_scan_runner() -> ScanRunner:
    if _scan_runner is None:
        raise RuntimeError("call init_scan_runner() before handling requests")
    return _scan_runner


# ---------------------------------------------------------------------------
# Service getters (for Depends())
# ---------------------------------------------------------------------------


def get_project_service() -> ProjectService:
    return _project_service


def get_scan_service() -> ScanService:
    return _scan_service


def get_aggregation_service() -> AggregationService:
    return _aggregation_service


def get_metrics_service() -> MetricsService:
    return _metrics_service
