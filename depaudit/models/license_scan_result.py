"""license_scan_results + license_scan_result_items tables."""

import uuid
from typing import Optional

from sqlalchemy import Enum, ForeignKey, Index, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from depaudit.core.database import Base, TimestampMixin, UUIDPrimaryKeyMixin

license_status_enum = Enum(
    "unknown", "green", "yellow", "red",
    name="license_status", native_enum=False, length=16,
)


class LicenseScanResult(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "license_scan_results"

    scan_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("scans.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )


class LicenseScanResultItem(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "license_scan_result_items"

    license_scan_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("license_scan_results.id", ondelete="CASCADE"),
        nullable=False,
    )
    display_identifier: Mapped[str] = mapped_column(Text, nullable=False)
    license_name: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(license_status_enum, nullable=False)
    path: Mapped[Optional[str]] = mapped_column(Text)

    __table_args__ = (
        Index("idx_lsri_scan", "license_scan_id"),
        Index("idx_lsri_license", "license_scan_id", "license_name"),
    )
