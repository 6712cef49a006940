"""projects table."""

from typing import Optional

from sqlalchemy import Enum, Index, Text, desc, text
from sqlalchemy.orm import Mapped, mapped_column

from depaudit.core.database import Base, TimestampMixin, UUIDPrimaryKeyMixin

package_manager_enum = Enum(
    "npm", "pip", name="package_manager", native_enum=False, length=16
)
development_type_enum = Enum(
    "organization", "community", name="development_type", native_enum=False, length=16
)


class Project(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "projects"

    name: Mapped[str] = mapped_column(Text, nullable=False)
    repo_url: Mapped[str] = mapped_column(Text, nullable=False)
    package_manager: Mapped[str] = mapped_column(package_manager_enum, nullable=False)
    default_branch: Mapped[str] = mapped_column(
        Text, nullable=False, server_default=text("'main'")
    )
    output_format: Mapped[Optional[str]] = mapped_column(Text)
    deployment_type: Mapped[Optional[str]] = mapped_column(Text)
    development_type: Mapped[str] = mapped_column(
        development_type_enum, nullable=False, server_default=text("'organization'")
    )
    # owning user or group id; see ProjectService.override_owner
    user_id: Mapped[str] = mapped_column(Text, nullable=False)

    __table_args__ = (
        Index("idx_projects_user", "user_id"),
        Index("idx_projects_created", desc("created_at")),
    )
