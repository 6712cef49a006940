"""Tests for AggregationService — per-project rollups over the latest completed scan."""

from datetime import datetime, timedelta, timezone

import pytest
from helpers import license_item, vuln_item

from depaudit.core.status import Dimension, LicenseStatus, Severity
from depaudit.services import ValidationError

T0 = datetime(2026, 5, 1, tzinfo=timezone.utc)


class TestNeverScanned:
    async def test_empty_state(self, aggregation_service, session, make_project):
        proj = await make_project(session)

        state = await aggregation_service.scan_state(session, proj.id)
        assert state.license_status is LicenseStatus.UNKNOWN
        assert state.security_status is Severity.UNKNOWN
        assert state.latest_scan is None

        assert await aggregation_service.distinct_licenses(session, proj.id) == []
        assert await aggregation_service.distinct_severities(session, proj.id) == []
        page = await aggregation_service.bill_of_materials(
            session, proj.id, Dimension.LICENSE, page=2
        )
        assert page.data == []
        assert page.total == 0
        assert page.page == 2
        assert await aggregation_service.item_count(session, proj.id, Dimension.LICENSE) == 0

    async def test_only_failed_scans(
        self, aggregation_service, scan_dao, session, make_project
    ):
        proj = await make_project(session)
        await scan_dao.create(session, project_id=proj.id, status="failed", error="boom")
        state = await aggregation_service.scan_state(session, proj.id)
        assert state.license_status is LicenseStatus.UNKNOWN
        assert state.latest_scan is None


class TestRollup:
    async def test_license_red_and_counts(
        self, aggregation_service, session, make_project, make_completed_scan
    ):
        proj = await make_project(session)
        await make_completed_scan(
            session,
            proj.id,
            licenses=[
                license_item("a@1.0.0", "MIT", "green"),
                license_item("b@1.0.0", "GPL-3.0", "red"),
                license_item("c@1.0.0", "MIT", "green"),
            ],
        )

        status = await aggregation_service.highest_status(session, proj.id, Dimension.LICENSE)
        assert status is LicenseStatus.RED
        assert await aggregation_service.distinct_licenses(session, proj.id) == [
            ("MIT", 2),
            ("GPL-3.0", 1),
        ]

    async def test_clean_scan_security_unknown(
        self, aggregation_service, session, make_project, make_completed_scan
    ):
        proj = await make_project(session)
        await make_completed_scan(
            session, proj.id, licenses=[license_item("a@1.0.0", "MIT", "green")]
        )
        state = await aggregation_service.scan_state(session, proj.id)
        assert state.license_status is LicenseStatus.GREEN
        assert state.security_status is Severity.UNKNOWN

    async def test_uses_latest_completed_only(
        self, aggregation_service, scan_dao, session, make_project, make_completed_scan
    ):
        proj = await make_project(session)
        await make_completed_scan(
            session,
            proj.id,
            completed_at=T0,
            vulnerabilities=[vuln_item("a@1", "GHSA-old", "critical")],
        )
        latest = await make_completed_scan(
            session,
            proj.id,
            completed_at=T0 + timedelta(days=1),
            vulnerabilities=[vuln_item("a@2", "GHSA-new", "low")],
        )
        await scan_dao.create(session, project_id=proj.id, status="failed")

        state = await aggregation_service.scan_state(session, proj.id)
        assert state.latest_scan.id == latest.id
        assert state.security_status is Severity.LOW
        assert await aggregation_service.distinct_vulnerabilities(session, proj.id) == [
            ("node_modules/a", 1)
        ]

    async def test_bom_pages(
        self, aggregation_service, session, make_project, make_completed_scan
    ):
        proj = await make_project(session)
        await make_completed_scan(
            session,
            proj.id,
            licenses=[license_item(f"pkg{i}@1.0.0", "MIT", "green") for i in range(5)],
        )
        page = await aggregation_service.bill_of_materials(
            session, proj.id, Dimension.LICENSE, page=1, page_size=2
        )
        assert page.total == 5
        assert page.page_count == 3
        assert [row.display_identifier for row in page.data] == ["pkg2@1.0.0", "pkg3@1.0.0"]

    async def test_invalid_grouping_key(self, aggregation_service, session, make_project):
        proj = await make_project(session)
        with pytest.raises(ValidationError, match="cannot group"):
            await aggregation_service.distinct_by(
                session, proj.id, Dimension.LICENSE, "severity"
            )
