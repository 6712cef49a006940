"""scans table."""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Enum, ForeignKey, Index, Text, Uuid, desc, text
from sqlalchemy.orm import Mapped, mapped_column

from depaudit.core.database import Base, TimestampMixin, UUIDPrimaryKeyMixin

scan_status_enum = Enum(
    "pending", "running", "completed", "failed",
    name="scan_status", native_enum=False, length=16,
)

# At most one pending/running scan per project.
_ACTIVE_WHERE = text("status IN ('pending', 'running')")


class Scan(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "scans"

    project_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
    )
    status: Mapped[str] = mapped_column(
        scan_status_enum, nullable=False, server_default=text("'pending'")
    )
    branch: Mapped[Optional[str]] = mapped_column(Text)
    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    error: Mapped[Optional[str]] = mapped_column(Text)

    __table_args__ = (
        Index("idx_scans_project_completed", "project_id", "status", desc("completed_at")),
        Index(
            "uq_scans_active_project",
            "project_id",
            unique=True,
            postgresql_where=_ACTIVE_WHERE,
            sqlite_where=_ACTIVE_WHERE,
        ),
    )
