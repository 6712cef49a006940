"""Async OSV.dev client — batch vulnerability queries with retries."""

from __future__ import annotations

import asyncio
import math
from typing import Any, Protocol

import httpx
import structlog

from depaudit.core.status import Severity
from depaudit.core.types import PackageManager
from depaudit.engines.scan_runner.errors import VulnerabilityLookupError
from depaudit.engines.scan_runner.models import FetchedDependency, VulnerabilityFinding

log = structlog.get_logger("depaudit.engine")

_MAX_RETRIES = 3
_RETRY_BASE_DELAY = 1.0  # seconds
_BATCH_SIZE = 1000  # OSV querybatch limit
_MAX_CONCURRENCY = 5

OSV_ECOSYSTEMS: dict[PackageManager, str] = {
    PackageManager.NPM: "npm",
    PackageManager.PIP: "PyPI",
}


class VulnerabilitySource(Protocol):
    async def lookup(
        self, package_manager: PackageManager, dependencies: list[FetchedDependency]
    ) -> list[VulnerabilityFinding]: ...


# CVSS v3.x base metric weights.
_CVSS3_WEIGHTS: dict[str, dict[str, float]] = {
    "AV": {"N": 0.85, "A": 0.62, "L": 0.55, "P": 0.2},
    "AC": {"L": 0.77, "H": 0.44},
    "UI": {"N": 0.85, "R": 0.62},
    "C": {"H": 0.56, "L": 0.22, "N": 0.0},
    "I": {"H": 0.56, "L": 0.22, "N": 0.0},
    "A": {"H": 0.56, "L": 0.22, "N": 0.0},
}
_CVSS3_PRIVILEGES = {
    "U": {"N": 0.85, "L": 0.62, "H": 0.27},
    "C": {"N": 0.85, "L": 0.68, "H": 0.5},
}


def _roundup(value: float) -> float:
    scaled = round(value * 100000)
    if scaled % 10000 == 0:
        return scaled / 100000.0
    return (math.floor(scaled / 10000) + 1) / 10.0


def cvss3_base_score(vector: str) -> float | None:
    """Base score of a ``CVSS:3.x/...`` vector, or None if it is not one.

    CVSS v2 and v4 vectors are not scored.
    """
    parts = vector.strip().split("/")
    if not parts or parts[0] not in ("CVSS:3.0", "CVSS:3.1"):
        return None
    metrics = dict(part.split(":", 1) for part in parts[1:] if ":" in part)
    try:
        scope = metrics["S"]
        av, ac, ui = (_CVSS3_WEIGHTS[k][metrics[k]] for k in ("AV", "AC", "UI"))
        c, i, a = (_CVSS3_WEIGHTS[k][metrics[k]] for k in ("C", "I", "A"))
        pr = _CVSS3_PRIVILEGES[scope][metrics["PR"]]
    except KeyError:
        return None

    iss = 1 - (1 - c) * (1 - i) * (1 - a)
    if scope == "U":
        impact = 6.42 * iss
    else:
        impact = 7.52 * (iss - 0.029) - 3.25 * (iss - 0.02) ** 15
    if impact <= 0:
        return 0.0
    exploitability = 8.22 * av * ac * pr * ui
    if scope == "U":
        return _roundup(min(impact + exploitability, 10))
    return _roundup(min(1.08 * (impact + exploitability), 10))


def _score_severity(score: float) -> Severity:
    if score >= 9.0:
        return Severity.CRITICAL
    if score >= 7.0:
        return Severity.HIGH
    if score >= 4.0:
        return Severity.MEDIUM
    if score > 0:
        return Severity.LOW
    return Severity.UNKNOWN


def severity_of(vuln: dict[str, Any]) -> Severity:
    """Severity of an OSV record.

    Prefers the advisory database's own label (GHSA uses LOW / MODERATE /
    HIGH / CRITICAL), then the highest CVSS base score, given either as a
    bare number or as a v3 vector.
    """
    label = (vuln.get("database_specific") or {}).get("severity")
    if isinstance(label, str) and label.strip():
        return Severity.parse(label.strip().lower())

    scores = []
    for entry in vuln.get("severity") or []:
        raw = str(entry.get("score") or "")
        try:
            scores.append(float(raw))
        except ValueError:
            score = cvss3_base_score(raw)
            if score is not None:
                scores.append(score)
    if not scores:
        return Severity.UNKNOWN
    return _score_severity(max(scores))


class OSVClient:
    """Thin async wrapper around the OSV REST API."""

    def __init__(self, base_url: str = "https://api.osv.dev", timeout: float = 30.0) -> None:
        self._client = httpx.AsyncClient(base_url=base_url, timeout=timeout)

    # ── lifecycle ──────────────────────────────────────────────────────────

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> OSVClient:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    # ── public ─────────────────────────────────────────────────────────────

    async def lookup(
        self, package_manager: PackageManager, dependencies: list[FetchedDependency]
    ) -> list[VulnerabilityFinding]:
        """Known vulnerabilities affecting *dependencies*.

        Dependencies without a resolved version are not queried. Raises
        :class:`VulnerabilityLookupError` if OSV cannot be queried.
        """
        ecosystem = OSV_ECOSYSTEMS[PackageManager(package_manager)]
        queryable = [d for d in dependencies if d.version]
        if not queryable:
            return []

        hits: list[tuple[FetchedDependency, str]] = []
        for start in range(0, len(queryable), _BATCH_SIZE):
            chunk = queryable[start : start + _BATCH_SIZE]
            results = await self.query_batch(ecosystem, chunk)
            for dep, result in zip(chunk, results):
                for vuln in result.get("vulns") or []:
                    hits.append((dep, vuln["id"]))

        details = await self._get_details({vuln_id for _, vuln_id in hits})
        findings = []
        for dep, vuln_id in hits:
            vuln = details[vuln_id]
            findings.append(
                VulnerabilityFinding(
                    display_identifier=dep.display_identifier,
                    vulnerability_id=vuln_id,
                    title=vuln.get("summary") or None,
                    severity=severity_of(vuln),
                    path=dep.path,
                )
            )
        log.info("osv.lookup", ecosystem=ecosystem, queried=len(queryable), found=len(findings))
        return findings

    async def query_batch(
        self, ecosystem: str, dependencies: list[FetchedDependency]
    ) -> list[dict[str, Any]]:
        """``POST /v1/querybatch``; one result per dependency, in order.

        Results that OSV truncates with a ``next_page_token`` are re-queried
        until exhausted, so each result carries every matching vuln.
        """
        queries = [
            {"package": {"name": d.name, "ecosystem": ecosystem}, "version": d.version}
            for d in dependencies
        ]
        results = await self._post_batch(queries)
        if len(results) != len(dependencies):
            raise VulnerabilityLookupError(
                f"osv returned {len(results)} results for {len(dependencies)} queries"
            )

        pending = {
            i: r["next_page_token"] for i, r in enumerate(results) if r.get("next_page_token")
        }
        while pending:
            indices = list(pending)
            pages = await self._post_batch(
                [{**queries[i], "page_token": pending[i]} for i in indices]
            )
            if len(pages) != len(indices):
                raise VulnerabilityLookupError(
                    f"osv returned {len(pages)} results for {len(indices)} page queries"
                )
            pending = {}
            for i, page in zip(indices, pages):
                vulns = [*(results[i].get("vulns") or []), *(page.get("vulns") or [])]
                results[i] = {"vulns": vulns}
                if page.get("next_page_token"):
                    pending[i] = page["next_page_token"]
        return results

    async def _post_batch(self, queries: list[dict[str, Any]]) -> list[dict[str, Any]]:
        response = await self._request_with_retry(
            "POST", "/v1/querybatch", json={"queries": queries}
        )
        return response.json().get("results") or []

    async def get_vuln(self, vuln_id: str) -> dict[str, Any]:
        """``GET /v1/vulns/{id}``."""
        response = await self._request_with_retry("GET", f"/v1/vulns/{vuln_id}")
        return response.json()

    # ── internal ───────────────────────────────────────────────────────────

    async def _get_details(self, vuln_ids: set[str]) -> dict[str, dict[str, Any]]:
        sem = asyncio.Semaphore(_MAX_CONCURRENCY)

        async def _one(vuln_id: str) -> tuple[str, dict[str, Any]]:
            async with sem:
                return vuln_id, await self.get_vuln(vuln_id)

        pairs = await asyncio.gather(*(_one(v) for v in sorted(vuln_ids)))
        return dict(pairs)

    async def _request_with_retry(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """Request with exponential backoff on 5xx, timeout and transport errors."""
        last_exc: Exception | None = None
        for attempt in range(_MAX_RETRIES):
            try:
                resp = await self._client.request(method, url, **kwargs)
                if resp.status_code < 500:
                    resp.raise_for_status()
                    return resp

                log.warning(
                    "osv.server_error",
                    url=url,
                    status=resp.status_code,
                    attempt=attempt + 1,
                    max_retries=_MAX_RETRIES,
                )
                last_exc = httpx.HTTPStatusError(
                    f"{resp.status_code}", request=resp.request, response=resp
                )
            except httpx.HTTPStatusError as exc:
                raise VulnerabilityLookupError(
                    f"osv {method} {url} failed: {exc.response.status_code}", retryable=False
                ) from exc
            except httpx.TransportError as exc:
                log.warning(
                    "osv.transport_error",
                    url=url,
                    error=type(exc).__name__,
                    attempt=attempt + 1,
                    max_retries=_MAX_RETRIES,
                )
                last_exc = exc

            if attempt < _MAX_RETRIES - 1:
                delay = _RETRY_BASE_DELAY * (2**attempt)
                await asyncio.sleep(delay)

        raise VulnerabilityLookupError(f"osv {method} {url} failed: {last_exc}") from last_exc
