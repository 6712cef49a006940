"""Projects router — registration, refs, scans, per-project stats and BOMs."""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from depaudit.api.deps import (
    get_aggregation_service,
    get_project_service,
    get_scan_runner,
    get_scan_service,
    get_session,
)
from depaudit.api.schemas.common import CountItem, PageMeta, PaginatedResponse, count_items
from depaudit.api.schemas.project import (
    CreateProjectRequest,
    GitRefResponse,
    OverrideOwnerRequest,
    ProjectResponse,
    RepositoryCheckResponse,
)
from depaudit.api.schemas.scan import (
    LicenseBOMItem,
    ScanLogResponse,
    ScanResponse,
    ScanStateResponse,
    StartScanRequest,
    VulnerabilityBOMItem,
)
from depaudit.core.status import Dimension
from depaudit.dao.base import PAGE_SIZE_DEFAULT, PAGE_SIZE_MAX, OffsetPage
from depaudit.engines.scan_runner.runner import ScanRunner
from depaudit.services import NotFoundError
from depaudit.services.aggregation_service import AggregationService
from depaudit.services.project_service import ProjectService
from depaudit.services.scan_service import ScanService

router = APIRouter()


def _page_meta(page: OffsetPage) -> PageMeta:
    return PageMeta(
        count=page.count, total=page.total, page=page.page, page_count=page.page_count
    )


# ── registration ─────────────────────────────────────────────────────────


@router.post("/", response_model=ProjectResponse, status_code=201)
async def create_project(
    body: CreateProjectRequest,
    session: AsyncSession = Depends(get_session),
    svc: ProjectService = Depends(get_project_service),
) -> ProjectResponse:
    project = await svc.create(session, **body.model_dump())
    return ProjectResponse.model_validate(project)


@router.get("/repository-check", response_model=RepositoryCheckResponse)
async def check_repository(
    repo_url: str = Query(..., min_length=1),
    runner: ScanRunner = Depends(get_scan_runner),
) -> RepositoryCheckResponse:
    reachable = await runner.check_repository(repo_url)
    return RepositoryCheckResponse(repo_url=repo_url, reachable=reachable)


@router.get("/{project_id}", response_model=ProjectResponse)
async def get_project(
    project_id: uuid.UUID,
    session: AsyncSession = Depends(get_session),
    svc: ProjectService = Depends(get_project_service),
) -> ProjectResponse:
    return ProjectResponse.model_validate(await svc.get(session, project_id))


@router.patch("/{project_id}/owner", response_model=ProjectResponse)
async def override_owner(
    project_id: uuid.UUID,
    body: OverrideOwnerRequest,
    session: AsyncSession = Depends(get_session),
    svc: ProjectService = Depends(get_project_service),
) -> ProjectResponse:
    project = await svc.override_owner(session, project_id, body.user_id)
    return ProjectResponse.model_validate(project)


@router.get("/{project_id}/refs", response_model=list[GitRefResponse])
async def list_refs(
    project_id: uuid.UUID,
    runner: ScanRunner = Depends(get_scan_runner),
) -> list[GitRefResponse]:
    refs = await runner.list_refs(project_id)
    return [GitRefResponse.model_validate(ref) for ref in refs]


# ── scans ────────────────────────────────────────────────────────────────


@router.get("/{project_id}/scans", response_model=list[ScanResponse])
async def list_scans(
    project_id: uuid.UUID,
    limit: int = Query(50, ge=1, le=500),
    session: AsyncSession = Depends(get_session),
    project_svc: ProjectService = Depends(get_project_service),
    svc: ScanService = Depends(get_scan_service),
) -> list[ScanResponse]:
    await project_svc.get(session, project_id)  # 404 if not exists
    scans = await svc.list_history(session, project_id, limit)
    return [ScanResponse.model_validate(scan) for scan in scans]


@router.post("/{project_id}/scans", response_model=ScanResponse, status_code=202)
async def start_scan(
    project_id: uuid.UUID,
    body: StartScanRequest | None = None,
    runner: ScanRunner = Depends(get_scan_runner),
) -> ScanResponse:
    scan = await runner.start(project_id, body.branch if body else None)
    return ScanResponse.model_validate(scan)


@router.get("/{project_id}/scans/{scan_id}/log", response_model=ScanLogResponse)
async def get_scan_log(
    project_id: uuid.UUID,
    scan_id: uuid.UUID,
    session: AsyncSession = Depends(get_session),
    svc: ScanService = Depends(get_scan_service),
) -> ScanLogResponse:
    scan = await svc.get(session, scan_id)
    if scan.project_id != project_id:
        raise NotFoundError("scan not found")
    return ScanLogResponse.model_validate(await svc.get_log(session, scan_id))


# ── per-project stats ────────────────────────────────────────────────────


@router.get("/{project_id}/stats/scan-status", response_model=ScanStateResponse)
async def scan_status(
    project_id: uuid.UUID,
    session: AsyncSession = Depends(get_session),
    project_svc: ProjectService = Depends(get_project_service),
    svc: AggregationService = Depends(get_aggregation_service),
) -> ScanStateResponse:
    await project_svc.get(session, project_id)
    state = await svc.scan_state(session, project_id)
    return ScanStateResponse(
        project_id=state.project_id,
        license_status=state.license_status.value,
        security_status=state.security_status.value,
        latest_scan=(
            ScanResponse.model_validate(state.latest_scan) if state.latest_scan else None
        ),
    )


@router.get("/{project_id}/stats/licenses", response_model=list[CountItem])
async def distinct_licenses(
    project_id: uuid.UUID,
    session: AsyncSession = Depends(get_session),
    project_svc: ProjectService = Depends(get_project_service),
    svc: AggregationService = Depends(get_aggregation_service),
) -> list[CountItem]:
    await project_svc.get(session, project_id)
    return count_items(await svc.distinct_licenses(session, project_id))


@router.get("/{project_id}/stats/severities", response_model=list[CountItem])
async def distinct_severities(
    project_id: uuid.UUID,
    session: AsyncSession = Depends(get_session),
    project_svc: ProjectService = Depends(get_project_service),
    svc: AggregationService = Depends(get_aggregation_service),
) -> list[CountItem]:
    await project_svc.get(session, project_id)
    return count_items(await svc.distinct_severities(session, project_id))


@router.get("/{project_id}/stats/vulnerabilities", response_model=list[CountItem])
async def distinct_vulnerabilities(
    project_id: uuid.UUID,
    session: AsyncSession = Depends(get_session),
    project_svc: ProjectService = Depends(get_project_service),
    svc: AggregationService = Depends(get_aggregation_service),
) -> list[CountItem]:
    await project_svc.get(session, project_id)
    return count_items(await svc.distinct_vulnerabilities(session, project_id))


# ── bill of materials ────────────────────────────────────────────────────


@router.get(
    "/{project_id}/bill-of-materials/licenses",
    response_model=PaginatedResponse[LicenseBOMItem],
)
async def license_bill_of_materials(
    project_id: uuid.UUID,
    filter_text: str = Query(""),
    page: int = Query(0, ge=0),
    page_size: int = Query(PAGE_SIZE_DEFAULT, ge=1, le=PAGE_SIZE_MAX),
    session: AsyncSession = Depends(get_session),
    project_svc: ProjectService = Depends(get_project_service),
    svc: AggregationService = Depends(get_aggregation_service),
) -> PaginatedResponse[LicenseBOMItem]:
    await project_svc.get(session, project_id)
    result = await svc.bill_of_materials(
        session, project_id, Dimension.LICENSE, filter_text, page, page_size
    )
    return PaginatedResponse(
        data=[LicenseBOMItem.model_validate(row) for row in result.data],
        meta=_page_meta(result),
    )


@router.get(
    "/{project_id}/bill-of-materials/vulnerabilities",
    response_model=PaginatedResponse[VulnerabilityBOMItem],
)
async def vulnerability_bill_of_materials(
    project_id: uuid.UUID,
    filter_text: str = Query(""),
    page: int = Query(0, ge=0),
    page_size: int = Query(PAGE_SIZE_DEFAULT, ge=1, le=PAGE_SIZE_MAX),
    session: AsyncSession = Depends(get_session),
    project_svc: ProjectService = Depends(get_project_service),
    svc: AggregationService = Depends(get_aggregation_service),
) -> PaginatedResponse[VulnerabilityBOMItem]:
    await project_svc.get(session, project_id)
    result = await svc.bill_of_materials(
        session, project_id, Dimension.SECURITY, filter_text, page, page_size
    )
    return PaginatedResponse(
        data=[VulnerabilityBOMItem.model_validate(row) for row in result.data],
        meta=_page_meta(result),
    )
