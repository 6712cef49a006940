"""ProjectService — project registration and ownership."""

from __future__ import annotations

import uuid
from collections.abc import Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from depaudit.core.types import DevelopmentType, PackageManager
from depaudit.dao.project_dao import ProjectDAO
from depaudit.models.project import Project
from depaudit.services import NotFoundError, ValidationError


class ProjectService:
    """Stateless service for project records."""

    def __init__(self, project_dao: ProjectDAO) -> None:
        self._project_dao = project_dao

    async def get(self, session: AsyncSession, project_id: uuid.UUID) -> Project:
        """Return the project.

        Raises :class:`NotFoundError` if the project does not exist.
        """
        project = await self._project_dao.get_by_id(session, project_id)
        if project is None:
            raise NotFoundError("project not found")
        return project

    async def list_by_owners(
        self, session: AsyncSession, owner_ids: Sequence[str] | None = None
    ) -> list[Project]:
        return await self._project_dao.list_by_owners(session, owner_ids)

    async def create(
        self,
        session: AsyncSession,
        *,
        name: str,
        repo_url: str,
        package_manager: str,
        user_id: str,
        default_branch: str = "main",
        output_format: str | None = None,
        deployment_type: str | None = None,
        development_type: str = DevelopmentType.ORGANIZATION.value,
    ) -> Project:
        """Register a project with exactly one package manager.

        Raises :class:`ValidationError` for an unknown package manager or
        development type, or a blank name / repository URL / owner.
        """
        try:
            package_manager = PackageManager(package_manager).value
        except ValueError:
            allowed = ", ".join(pm.value for pm in PackageManager)
            raise ValidationError(
                f"unknown package manager '{package_manager}' (expected one of: {allowed})"
            ) from None
        try:
            development_type = DevelopmentType(development_type).value
        except ValueError:
            raise ValidationError(f"unknown development type '{development_type}'") from None

        for field, value in (("name", name), ("repo_url", repo_url), ("user_id", user_id)):
            if not value or not value.strip():
                raise ValidationError(f"{field} must not be empty")

        return await self._project_dao.create(
            session,
            name=name.strip(),
            repo_url=repo_url.strip(),
            package_manager=package_manager,
            user_id=user_id.strip(),
            default_branch=default_branch or "main",
            output_format=output_format,
            deployment_type=deployment_type,
            development_type=development_type,
        )

    async def override_owner(
        self, session: AsyncSession, project_id: uuid.UUID, user_id: str
    ) -> Project:
        """Administrative owner change; the only path that rewrites ``user_id``."""
        if not user_id or not user_id.strip():
            raise ValidationError("user_id must not be empty")
        project = await self._project_dao.update(session, project_id, user_id=user_id.strip())
        if project is None:
            raise NotFoundError("project not found")
        return project
