"""Closed vocabularies shared across models, engines and services."""

from __future__ import annotations

import enum


class PackageManager(str, enum.Enum):
    """Package-manager ecosystems a project can declare."""

    NPM = "npm"
    PIP = "pip"


class ScanStatus(str, enum.Enum):
    """Scan lifecycle: pending -> running -> completed | failed."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


ACTIVE_SCAN_STATUSES: tuple[str, ...] = (ScanStatus.PENDING.value, ScanStatus.RUNNING.value)

# Allowed lifecycle edges. Anything else is a programming error.
SCAN_TRANSITIONS: dict[ScanStatus, frozenset[ScanStatus]] = {
    ScanStatus.PENDING: frozenset({ScanStatus.RUNNING, ScanStatus.FAILED}),
    ScanStatus.RUNNING: frozenset({ScanStatus.COMPLETED, ScanStatus.FAILED}),
    ScanStatus.COMPLETED: frozenset(),
    ScanStatus.FAILED: frozenset(),
}


class DevelopmentType(str, enum.Enum):
    ORGANIZATION = "organization"
    COMMUNITY = "community"
