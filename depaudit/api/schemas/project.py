"""Project request/response schemas."""

from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, field_validator


class CreateProjectRequest(BaseModel):
    name: str
    repo_url: str
    package_manager: str
    user_id: str
    default_branch: str = "main"
    output_format: str | None = None
    deployment_type: str | None = None
    development_type: str = "organization"

    @field_validator("name", "repo_url", "user_id", mode="before")
    @classmethod
    def _strip_whitespace(cls, v: str) -> str:
        return v.strip() if isinstance(v, str) else v


class OverrideOwnerRequest(BaseModel):
    user_id: str


class ProjectResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    repo_url: str
    package_manager: str
    default_branch: str
    output_format: str | None
    deployment_type: str | None
    development_type: str
    user_id: str
    created_at: datetime
    updated_at: datetime


class GitRefResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    name: str
    kind: str
    sha: str


class RepositoryCheckResponse(BaseModel):
    repo_url: str
    reachable: bool
