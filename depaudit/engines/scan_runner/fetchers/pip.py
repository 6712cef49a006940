"""pip fetcher — resolve with ``pip install --dry-run --report``, read the report."""

from __future__ import annotations

import json
from pathlib import Path

import structlog

from depaudit.core.config import ScanConfig
from depaudit.core.types import PackageManager
from depaudit.engines.scan_runner.errors import FetchError
from depaudit.engines.scan_runner.fetchers.base import (
    log_file_for,
    register_fetcher,
    require_file,
    run_tool,
)
from depaudit.engines.scan_runner.models import FetchedDependency

log = structlog.get_logger("depaudit.engine")

_CLASSIFIER_PREFIX = "License ::"
# License fields holding the full license text are not usable as a name.
_MAX_LICENSE_FIELD = 100


def _license_of(metadata: dict) -> str | None:
    """License expression, then License field, then trove classifiers."""
    expression = (metadata.get("license_expression") or "").strip()
    if expression:
        return expression

    field = (metadata.get("license") or "").strip()
    if field and "\n" not in field and len(field) <= _MAX_LICENSE_FIELD:
        return field

    names = []
    for classifier in metadata.get("classifier") or []:
        if classifier.startswith(_CLASSIFIER_PREFIX):
            name = classifier.split("::")[-1].strip()
            if name and name not in names:
                names.append(name)
    return " OR ".join(names) or None


def parse_install_report(content: str) -> list[FetchedDependency]:
    """Parse a ``pip install --report`` JSON document into dependency records."""
    try:
        report = json.loads(content)
    except json.JSONDecodeError as exc:
        raise FetchError(f"malformed pip installation report: {exc.msg}") from exc

    install = report.get("install") if isinstance(report, dict) else None
    if not isinstance(install, list):
        raise FetchError("pip installation report has no 'install' list")

    deps: list[FetchedDependency] = []
    for entry in install:
        metadata = entry.get("metadata") or {}
        name = metadata.get("name")
        if not name:
            continue
        deps.append(
            FetchedDependency(
                name=name,
                version=metadata.get("version"),
                license=_license_of(metadata),
                path=name,
            )
        )
    return deps


class PipFetcher:
    package_manager = PackageManager.PIP

    def command(self, config: ScanConfig, report: Path) -> list[str]:
        cmd = ["pip", "install", "--dry-run", "--ignore-installed", "--quiet",
               "--report", str(report), "-r", "requirements.txt"]
        if config.pip_index_url:
            cmd += ["--index-url", config.pip_index_url]
        cache = config.cache_subdir("pip")
        if cache is not None:
            cmd += ["--cache-dir", str(cache)]
        return cmd

    async def fetch_dependencies(
        self, working_dir: Path, config: ScanConfig, log_dir: Path
    ) -> list[FetchedDependency]:
        require_file(working_dir, "requirements.txt")
        log_file = log_file_for(log_dir, self.package_manager)
        log_dir.mkdir(parents=True, exist_ok=True)
        report = log_dir / "pip-report.json"
        report.unlink(missing_ok=True)

        await run_tool(self.command(config, report.resolve()), working_dir, log_file)

        if not report.is_file():
            raise FetchError("pip did not write an installation report")
        deps = parse_install_report(report.read_text(encoding="utf-8"))
        log.info("fetch.resolved", package_manager="pip", dependencies=len(deps))
        return deps


register_fetcher(PipFetcher())
