"""Fetcher registry — one DependencyFetcher per package-manager ecosystem."""

from __future__ import annotations

from pathlib import Path
from typing import Protocol, runtime_checkable

from depaudit.core.config import ScanConfig
from depaudit.core.git import redact_url
from depaudit.core.types import PackageManager
from depaudit.engines.scan_runner.errors import FetchError
from depaudit.engines.scan_runner.models import FetchedDependency
from depaudit.engines.scan_runner.process import CommandResult, run_command


@runtime_checkable
class DependencyFetcher(Protocol):
    """Interface that every package-manager fetcher must satisfy.

    ``fetch_dependencies`` resolves the dependency tree of the project in
    *working_dir*, writes tool output to ``<log_dir>/<package_manager>.log``
    and returns one record per installed package. Any failure raises
    :class:`FetchError`; a partial result is never returned.
    """

    package_manager: PackageManager

    async def fetch_dependencies(
        self, working_dir: Path, config: ScanConfig, log_dir: Path
    ) -> list[FetchedDependency]: ...


FETCHER_REGISTRY: dict[PackageManager, DependencyFetcher] = {}


def register_fetcher(fetcher: DependencyFetcher) -> None:
    """Register a fetcher instance by its package manager."""
    FETCHER_REGISTRY[fetcher.package_manager] = fetcher


def get_fetcher(package_manager: PackageManager | str) -> DependencyFetcher:
    """Return the fetcher for *package_manager*.

    Raises :class:`FetchError` (not retryable) for an unknown code.
    """
    try:
        key = PackageManager(package_manager)
        return FETCHER_REGISTRY[key]
    except (ValueError, KeyError):
        raise FetchError(
            f"no dependency fetcher for package manager {package_manager!r}",
            retryable=False,
        ) from None


def log_file_for(log_dir: Path, package_manager: PackageManager) -> Path:
    return log_dir / f"{package_manager.value}.log"


def require_file(working_dir: Path, name: str) -> Path:
    path = working_dir / name
    if not path.is_file():
        raise FetchError(f"{name} not found in {working_dir.name}", retryable=False)
    return path


async def run_tool(cmd: list[str], working_dir: Path, log_file: Path) -> CommandResult:
    """Run a package-manager command, raising FetchError unless it exits 0."""
    try:
        result = await run_command(cmd, cwd=working_dir, log_file=log_file)
    except FileNotFoundError as exc:
        raise FetchError(f"{cmd[0]} is not installed") from exc
    if not result.ok:
        tail = result.stderr.strip().splitlines()[-1:] or [""]
        raise FetchError(
            f"{cmd[0]} exited with {result.returncode}: {redact_url(tail[0])}"
        )
    return result
