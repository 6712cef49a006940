"""SQLAlchemy ORM models — one file per table (result sets share a file with their items)."""

from depaudit.models.license_scan_result import LicenseScanResult, LicenseScanResultItem
from depaudit.models.project import Project
from depaudit.models.scan import Scan
from depaudit.models.scan_log import ScanLog
from depaudit.models.security_scan_result import SecurityScanResult, SecurityScanResultItem

__all__ = [
    "Project",
    "Scan",
    "ScanLog",
    "LicenseScanResult",
    "LicenseScanResultItem",
    "SecurityScanResult",
    "SecurityScanResultItem",
]
