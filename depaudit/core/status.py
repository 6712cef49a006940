"""Ordered status enumerations and in-memory rollup helpers.

Both dimensions carry an explicit integer rank. Every "highest" / "worst-of"
comparison goes through :attr:`rank`, never through label ordering, so
renaming a label cannot silently reorder the rollup.
"""

from __future__ import annotations

import enum
from collections import Counter
from collections.abc import Hashable, Iterable
from typing import TypeVar, Union


class RankedStatus(str, enum.Enum):
    """String enum whose members are totally ordered by an explicit rank."""

    @property
    def rank(self) -> int:
        return self._ranks()[self]

    @classmethod
    def _ranks(cls) -> dict:
        raise NotImplementedError

    @classmethod
    def unknown(cls):
        return cls("unknown")

    @classmethod
    def parse(cls, value: str | None):
        """Case-insensitive lookup; ``None`` or unrecognised labels map to unknown."""
        if value is None:
            return cls.unknown()
        try:
            return cls(value.strip().lower())
        except ValueError:
            return cls.unknown()


class LicenseStatus(RankedStatus):
    UNKNOWN = "unknown"
    GREEN = "green"
    YELLOW = "yellow"
    RED = "red"

    @classmethod
    def _ranks(cls) -> dict:
        return _LICENSE_RANKS


class Severity(RankedStatus):
    UNKNOWN = "unknown"
    LOW = "low"
    MODERATE = "moderate"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @classmethod
    def _ranks(cls) -> dict:
        return _SEVERITY_RANKS


_LICENSE_RANKS = {
    LicenseStatus.UNKNOWN: 0,
    LicenseStatus.GREEN: 1,
    LicenseStatus.YELLOW: 2,
    LicenseStatus.RED: 3,
}

_SEVERITY_RANKS = {
    Severity.UNKNOWN: 0,
    Severity.LOW: 1,
    Severity.MODERATE: 2,
    Severity.MEDIUM: 3,
    Severity.HIGH: 4,
    Severity.CRITICAL: 5,
}

# The two highest severity levels, used by the high-vulnerability index.
HIGH_SEVERITIES: tuple[Severity, ...] = (Severity.HIGH, Severity.CRITICAL)


class Dimension(str, enum.Enum):
    """The two independent classification axes."""

    LICENSE = "license"
    SECURITY = "security"

    @property
    def status_type(self) -> type[RankedStatus]:
        return LicenseStatus if self is Dimension.LICENSE else Severity


AnyStatus = Union[LicenseStatus, Severity]
K = TypeVar("K", bound=Hashable)


def highest_status(statuses: Iterable[str | RankedStatus], dimension: Dimension) -> AnyStatus:
    """Return the maximum status under *dimension*'s order.

    An empty iterable yields the dimension's ``unknown`` sentinel. Adding
    items can only raise or hold the result.
    """
    status_type = dimension.status_type
    best = status_type.unknown()
    for raw in statuses:
        status = raw if isinstance(raw, status_type) else status_type.parse(raw)
        if status.rank > best.rank:
            best = status
    return best


def distinct_counts(keys: Iterable[K]) -> list[tuple[K, int]]:
    """Group *keys* and count occurrences.

    Ordered by count descending, then key ascending for stability. The
    returned counts always sum to the number of keys consumed.
    """
    counts = Counter(keys)
    return sorted(counts.items(), key=lambda kv: (-kv[1], str(kv[0])))
