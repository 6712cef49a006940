"""ProjectDAO — projects table operations."""

from collections.abc import Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from depaudit.dao.base import BaseDAO
from depaudit.models.project import Project


class ProjectDAO(BaseDAO[Project]):
    model = Project

    async def list_by_owners(
        self,
        session: AsyncSession,
        owner_ids: Sequence[str] | None = None,
    ) -> list[Project]:
        """Projects owned by any of *owner_ids* (all projects when None)."""
        stmt = select(Project).order_by(Project.created_at.asc(), Project.id.asc())
        if owner_ids:
            stmt = stmt.where(Project.user_id.in_(list(owner_ids)))
        result = await session.execute(stmt)
        return list(result.scalars().all())
