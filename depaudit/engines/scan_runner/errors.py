"""Scan-layer exceptions.

Raised inside a scan attempt and caught by
:meth:`~depaudit.engines.scan_runner.runner.ScanRunner.run`, which records
them on the scan. ``retryable`` tells the operator whether re-running the
same scan without any change can succeed.
"""

from __future__ import annotations


class ScanError(Exception):
    """Base class for failures of one scan attempt."""

    retryable: bool = False

    def __init__(self, message: str = "", *, retryable: bool | None = None) -> None:
        super().__init__(message)
        if retryable is not None:
            self.retryable = retryable


class FetchError(ScanError):
    """Dependency resolution failed (registry, toolchain, manifest, lockfile)."""

    retryable = True


class RepositoryAccessError(ScanError):
    """The source repository could not be reached, authenticated or checked out."""


class VulnerabilityLookupError(ScanError):
    """The vulnerability database could not be queried."""

    retryable = True
