"""npm fetcher — resolve with ``npm install --package-lock-only``, read the lockfile."""

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

_NODE_MODULES = "node_modules/"


def _license_of(entry: dict) -> str | None:
    """Lockfile ``license`` as a string; legacy object/list forms are flattened."""
    value = entry.get("license")
    if value is None:
        value = entry.get("licenses")
    if isinstance(value, str):
        return value.strip() or None
    if isinstance(value, dict):
        return _license_of({"license": value.get("type")})
    if isinstance(value, list):
        names = [n for n in (_license_of({"license": v}) for v in value) if n]
        return " OR ".join(names) or None
    return None


def parse_package_lock(content: str) -> list[FetchedDependency]:
    """Parse a v2/v3 ``package-lock.json`` into dependency records.

    Only the ``packages`` map is read. The root entry (``""``), workspace
    links and dev-only packages are skipped.
    """
    try:
        lock = json.loads(content)
    except json.JSONDecodeError as exc:
        raise FetchError(f"malformed package-lock.json: {exc.msg}") from exc

    packages = lock.get("packages") if isinstance(lock, dict) else None
    if not isinstance(packages, dict):
        version = lock.get("lockfileVersion") if isinstance(lock, dict) else None
        raise FetchError(
            f"unsupported package-lock.json (lockfileVersion {version}); "
            "lockfileVersion 2 or 3 is required",
            retryable=False,
        )

    deps: list[FetchedDependency] = []
    for key, entry in packages.items():
        if not key or not isinstance(entry, dict):
            continue
        if entry.get("dev") or entry.get("link"):
            continue
        idx = key.rfind(_NODE_MODULES)
        name = entry.get("name") or (key[idx + len(_NODE_MODULES):] if idx >= 0 else key)
        deps.append(
            FetchedDependency(
                name=name,
                version=entry.get("version"),
                license=_license_of(entry),
                path=key,
            )
        )
    return deps


class NpmFetcher:
    package_manager = PackageManager.NPM

    def command(self, config: ScanConfig) -> list[str]:
        cmd = ["npm", "install", "--package-lock-only", "--ignore-scripts", "--omit=dev",
               "--no-audit", "--no-fund"]
        if config.npm_registry:
            cmd += ["--registry", config.npm_registry]
        cache = config.cache_subdir("npm")
        if cache is not None:
            cmd += ["--cache", str(cache)]
        return cmd

    async def fetch_dependencies(
        self, working_dir: Path, config: ScanConfig, log_dir: Path
    ) -> list[FetchedDependency]:
        require_file(working_dir, "package.json")
        log_file = log_file_for(log_dir, self.package_manager)

        await run_tool(self.command(config), working_dir, log_file)

        lockfile = working_dir / "package-lock.json"
        if not lockfile.is_file():
            raise FetchError("npm did not produce package-lock.json")
        deps = parse_package_lock(lockfile.read_text(encoding="utf-8"))
        log.info("fetch.resolved", package_manager="npm", dependencies=len(deps))
        return deps


register_fetcher(NpmFetcher())
