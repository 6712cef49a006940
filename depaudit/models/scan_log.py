"""scan_logs table — captured tool output for a scan attempt."""

import uuid
from typing import Optional

from sqlalchemy import ForeignKey, Index, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from depaudit.core.database import Base, TimestampMixin, UUIDPrimaryKeyMixin


class ScanLog(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "scan_logs"

    scan_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("scans.id", ondelete="CASCADE"),
        nullable=False,
    )
    log: Mapped[Optional[str]] = mapped_column(Text)

    __table_args__ = (Index("idx_scan_logs_scan", "scan_id"),)
