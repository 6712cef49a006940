"""Scan, scan-state and bill-of-materials schemas."""

from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict


class StartScanRequest(BaseModel):
    branch: str | None = None


class ScanResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    project_id: uuid.UUID
    status: str
    branch: str | None
    started_at: datetime | None
    completed_at: datetime | None
    error: str | None
    created_at: datetime


class ScanLogResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    scan_id: uuid.UUID
    log: str | None
    created_at: datetime


class ScanStateResponse(BaseModel):
    project_id: uuid.UUID
    license_status: str
    security_status: str
    latest_scan: ScanResponse | None


class LicenseBOMItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    display_identifier: str
    license_name: str
    status: str
    path: str | None


class VulnerabilityBOMItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    display_identifier: str
    vulnerability_id: str
    severity: str
    title: str | None
    path: str
