"""MetricsService — fleet indices, top-N listings, monthly trends and badges.

Fleet metrics only look at each project's latest completed scan and only at
``organization`` projects, optionally narrowed to a set of owner ids.
"""

from __future__ import annotations

import enum
import uuid
from collections import Counter
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy.ext.asyncio import AsyncSession

from depaudit.core.status import Dimension, LicenseStatus, RankedStatus, Severity
from depaudit.dao.project_dao import ProjectDAO
from depaudit.dao.stats_dao import StatsDAO
from depaudit.services import NotFoundError, ValidationError
from depaudit.services.aggregation_service import AggregationService

INDEX_UNDEFINED = -1.0
TOP_N_DEFAULT = 10
TREND_MONTHS = 12
COMPONENTS_COLOR = "#edb"

_LICENSE_COLORS = {
    LicenseStatus.GREEN: "green",
    LicenseStatus.YELLOW: "yellow",
    LicenseStatus.RED: "red",
}
_SEVERITY_COLORS = {
    Severity.LOW: "green",
    Severity.MODERATE: "yellow",
    Severity.MEDIUM: "yellow",
    Severity.HIGH: "red",
    Severity.CRITICAL: "red",
}


class BadgeKind(str, enum.Enum):
    LICENSE_STATE = "license-state"
    SECURITY_STATE = "security-state"
    VULNERABILITIES = "vulnerabilities"
    COMPONENTS = "components"


@dataclass(frozen=True)
class Badge:
    label: str
    message: str
    color: str


def ratio_index(numerator: int, denominator: int) -> float:
    """``numerator / denominator * 100`` rounded to 2 places; -1 if undefined."""
    if denominator <= 0:
        return INDEX_UNDEFINED
    return round(numerator / denominator * 100, 2)


def month_labels(now: datetime, months: int = TREND_MONTHS) -> list[str]:
    """``YYYY-MM`` labels for the last *months* months, oldest first, ending at *now*."""
    labels = []
    year, month = now.year, now.month
    for _ in range(months):
        labels.append(f"{year:04d}-{month:02d}")
        month -= 1
        if month == 0:
            year, month = year - 1, 12
    return labels[::-1]


def _month_start(label: str) -> datetime:
    year, month = label.split("-")
    return datetime(int(year), int(month), 1, tzinfo=timezone.utc)


class MetricsService:
    """Stateless service for cross-project metrics."""

    def __init__(
        self,
        stats_dao: StatsDAO,
        project_dao: ProjectDAO,
        aggregation_service: AggregationService,
    ) -> None:
        self._stats_dao = stats_dao
        self._project_dao = project_dao
        self._aggregation = aggregation_service

    # ── indices ───────────────────────────────────────────────────────────

    async def license_noncompliance_index(
        self, session: AsyncSession, owner_ids: Sequence[str] | None = None
    ) -> float:
        """Share of license items that are not green, in percent."""
        non_green, total = await self._stats_dao.license_item_counts(session, owner_ids)
        return ratio_index(non_green, total)

    async def high_vulnerability_index(
        self, session: AsyncSession, owner_ids: Sequence[str] | None = None
    ) -> float:
        """High/critical security items per license item (component), in percent."""
        high = await self._stats_dao.high_severity_count(session, owner_ids)
        _, total = await self._stats_dao.license_item_counts(session, owner_ids)
        return ratio_index(high, total)

    # ── top-N ─────────────────────────────────────────────────────────────

    async def top_licenses(
        self,
        session: AsyncSession,
        owner_ids: Sequence[str] | None = None,
        limit: int = TOP_N_DEFAULT,
    ) -> list[tuple[str, int]]:
        return await self._stats_dao.top_licenses(session, owner_ids, limit)

    async def top_components(
        self,
        session: AsyncSession,
        owner_ids: Sequence[str] | None = None,
        limit: int = TOP_N_DEFAULT,
    ) -> list[tuple[str, int]]:
        return await self._stats_dao.top_components(session, owner_ids, limit)

    async def top_vulnerabilities(
        self,
        session: AsyncSession,
        owner_ids: Sequence[str] | None = None,
        limit: int = TOP_N_DEFAULT,
    ) -> list[tuple[str, int]]:
        return await self._stats_dao.top_vulnerabilities(session, owner_ids, limit)

    # ── trends ────────────────────────────────────────────────────────────

    async def monthly_projects(
        self,
        session: AsyncSession,
        owner_ids: Sequence[str] | None = None,
        now: datetime | None = None,
    ) -> list[tuple[str, int]]:
        """Projects created per month over the last twelve months (zero-filled)."""
        labels = month_labels(now or datetime.now(timezone.utc))
        created = await self._stats_dao.project_creation_dates(
            session, _month_start(labels[0]), owner_ids
        )
        counts = Counter(value.strftime("%Y-%m") for value in created)
        return [(label, counts.get(label, 0)) for label in labels]

    async def monthly_scans(
        self,
        session: AsyncSession,
        owner_ids: Sequence[str] | None = None,
        now: datetime | None = None,
    ) -> list[tuple[str, int]]:
        """Projects with at least one completed scan, per month (zero-filled)."""
        labels = month_labels(now or datetime.now(timezone.utc))
        rows = await self._stats_dao.completed_scan_dates(
            session, _month_start(labels[0]), owner_ids
        )
        scanned = {(project_id, completed.strftime("%Y-%m")) for project_id, completed in rows}
        counts = Counter(month for _, month in scanned)
        return [(label, counts.get(label, 0)) for label in labels]

    # ── badges ────────────────────────────────────────────────────────────

    async def badge(
        self, session: AsyncSession, project_id: uuid.UUID, kind: str
    ) -> Badge:
        """Value of one project badge.

        An ``unknown`` status always renders as message ``unknown`` in
        ``lightgrey``, whatever the badge would otherwise say.
        """
        try:
            kind = BadgeKind(kind)
        except ValueError:
            allowed = ", ".join(k.value for k in BadgeKind)
            raise ValidationError(f"unknown badge '{kind}' (expected one of: {allowed})") from None
        if not await self._project_dao.exists(session, project_id):
            raise NotFoundError("project not found")

        state = await self._aggregation.scan_state(session, project_id)
        scan = state.latest_scan
        scanned_on = scan.completed_at.strftime("%Y-%m-%d") if scan is not None else ""

        if kind is BadgeKind.LICENSE_STATE:
            return _status_badge(
                "license state", scanned_on, state.license_status, _LICENSE_COLORS
            )
        if kind is BadgeKind.SECURITY_STATE:
            return _status_badge(
                "security state", scanned_on, state.security_status, _SEVERITY_COLORS
            )
        if kind is BadgeKind.VULNERABILITIES:
            severities = await self._aggregation.distinct_severities(session, project_id)
            message = " ".join(f"{sev}:{count}" for sev, count in severities) or "none detected"
            return _status_badge(
                "vulnerabilities", message, state.security_status, _SEVERITY_COLORS
            )

        if scan is None:
            return Badge("components", "unknown", "lightgrey")
        count = await self._aggregation.item_count(session, project_id, Dimension.LICENSE)
        return Badge("components", str(count), COMPONENTS_COLOR)


def _status_badge(label: str, message: str, status: RankedStatus, colors: dict) -> Badge:
    if status is status.unknown():
        return Badge(label, "unknown", "lightgrey")
    return Badge(label, message, colors[status])
