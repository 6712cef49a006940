"""Stats router — fleet indices, top-N listings, monthly trends and badges."""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from depaudit.api.deps import get_metrics_service, get_session
from depaudit.api.schemas.common import CountItem, count_items
from depaudit.api.schemas.stats import BadgeResponse, IndexResponse, MonthlyCount
from depaudit.services.metrics_service import TOP_N_DEFAULT, MetricsService

router = APIRouter()


def owner_filter(
    filter_by_user: str | None = Query(
        None, description="Comma separated owner ids; all owners when omitted"
    ),
) -> list[str] | None:
    if not filter_by_user:
        return None
    owners = [part.strip() for part in filter_by_user.split(",") if part.strip()]
    return owners or None


@router.get("/licensenoncompliance/index", response_model=IndexResponse)
async def license_noncompliance_index(
    owners: list[str] | None = Depends(owner_filter),
    session: AsyncSession = Depends(get_session),
    svc: MetricsService = Depends(get_metrics_service),
) -> IndexResponse:
    return IndexResponse(value=await svc.license_noncompliance_index(session, owners))


@router.get("/highvulnerability/index", response_model=IndexResponse)
async def high_vulnerability_index(
    owners: list[str] | None = Depends(owner_filter),
    session: AsyncSession = Depends(get_session),
    svc: MetricsService = Depends(get_metrics_service),
) -> IndexResponse:
    return IndexResponse(value=await svc.high_vulnerability_index(session, owners))


@router.get("/components", response_model=list[CountItem])
async def top_licenses(
    limit: int = Query(TOP_N_DEFAULT, ge=1, le=100),
    owners: list[str] | None = Depends(owner_filter),
    session: AsyncSession = Depends(get_session),
    svc: MetricsService = Depends(get_metrics_service),
) -> list[CountItem]:
    """Licenses in use and how many components use each."""
    return count_items(await svc.top_licenses(session, owners, limit))


@router.get("/components/scans", response_model=list[CountItem])
async def top_components(
    limit: int = Query(TOP_N_DEFAULT, ge=1, le=100),
    owners: list[str] | None = Depends(owner_filter),
    session: AsyncSession = Depends(get_session),
    svc: MetricsService = Depends(get_metrics_service),
) -> list[CountItem]:
    """Components in use and how often each appears across scanned projects."""
    return count_items(await svc.top_components(session, owners, limit))


@router.get("/vulnerabilities", response_model=list[CountItem])
async def top_vulnerabilities(
    limit: int = Query(TOP_N_DEFAULT, ge=1, le=100),
    owners: list[str] | None = Depends(owner_filter),
    session: AsyncSession = Depends(get_session),
    svc: MetricsService = Depends(get_metrics_service),
) -> list[CountItem]:
    return count_items(await svc.top_vulnerabilities(session, owners, limit))


@router.get("/projects", response_model=list[MonthlyCount])
async def monthly_projects(
    owners: list[str] | None = Depends(owner_filter),
    session: AsyncSession = Depends(get_session),
    svc: MetricsService = Depends(get_metrics_service),
) -> list[MonthlyCount]:
    rows = await svc.monthly_projects(session, owners)
    return [MonthlyCount(month=month, count=count) for month, count in rows]


@router.get("/projects/scans", response_model=list[MonthlyCount])
async def monthly_scans(
    owners: list[str] | None = Depends(owner_filter),
    session: AsyncSession = Depends(get_session),
    svc: MetricsService = Depends(get_metrics_service),
) -> list[MonthlyCount]:
    rows = await svc.monthly_scans(session, owners)
    return [MonthlyCount(month=month, count=count) for month, count in rows]


@router.get("/badges/{project_id}/{kind}", response_model=BadgeResponse)
async def badge(
    project_id: uuid.UUID,
    kind: str,
    session: AsyncSession = Depends(get_session),
    svc: MetricsService = Depends(get_metrics_service),
) -> BadgeResponse:
    result = await svc.badge(session, project_id, kind)
    return BadgeResponse(label=result.label, message=result.message, color=result.color)
