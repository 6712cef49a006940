"""Data models for the scan runner engine."""

from __future__ import annotations

from dataclasses import dataclass

from depaudit.core.status import LicenseStatus, Severity


@dataclass
class FetchedDependency:
    """One resolved dependency reported by a fetcher."""

    name: str
    version: str | None
    license: str | None
    # location inside the resolved tree, e.g. node_modules/a/node_modules/b
    path: str

    @property
    def display_identifier(self) -> str:
        if self.version:
            return f"{self.name}@{self.version}"
        return self.name


@dataclass
class LicenseFinding:
    display_identifier: str
    license_name: str
    status: LicenseStatus
    path: str

    def as_row(self) -> dict:
        return {
            "display_identifier": self.display_identifier,
            "license_name": self.license_name,
            "status": self.status.value,
            "path": self.path,
        }


@dataclass
class VulnerabilityFinding:
    display_identifier: str
    vulnerability_id: str
    title: str | None
    severity: Severity
    path: str

    def as_row(self) -> dict:
        return {
            "display_identifier": self.display_identifier,
            "vulnerability_id": self.vulnerability_id,
            "title": self.title,
            "severity": self.severity.value,
            "path": self.path,
        }


@dataclass
class ScanOutcome:
    """What one successful attempt produced, before persistence."""

    dependencies: list[FetchedDependency]
    licenses: list[LicenseFinding]
    vulnerabilities: list[VulnerabilityFinding]
