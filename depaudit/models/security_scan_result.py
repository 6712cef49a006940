"""security_scan_results + security_scan_result_items tables."""

import uuid
from typing import Optional

from sqlalchemy import Enum, ForeignKey, Index, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from depaudit.core.database import Base, TimestampMixin, UUIDPrimaryKeyMixin

severity_enum = Enum(
    "unknown", "low", "moderate", "medium", "high", "critical",
    name="severity", native_enum=False, length=16,
)


class SecurityScanResult(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "security_scan_results"

    scan_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("scans.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )


class SecurityScanResultItem(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "security_scan_result_items"

    security_scan_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("security_scan_results.id", ondelete="CASCADE"),
        nullable=False,
    )
    display_identifier: Mapped[str] = mapped_column(Text, nullable=False)
    vulnerability_id: Mapped[str] = mapped_column(Text, nullable=False)
    title: Mapped[Optional[str]] = mapped_column(Text)
    severity: Mapped[str] = mapped_column(severity_enum, nullable=False)
    path: Mapped[str] = mapped_column(Text, nullable=False)

    __table_args__ = (
        Index("idx_ssri_scan", "security_scan_id"),
        Index("idx_ssri_severity", "security_scan_id", "severity"),
    )
