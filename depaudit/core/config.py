"""Scan configuration — explicit value object handed to ScanRunner and fetchers."""

from __future__ import annotations

import os
import tempfile
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

DEFAULT_SCAN_TIMEOUT_SEC = 1800.0
DEFAULT_OSV_API_URL = "https://api.osv.dev"

# SPDX identifiers, compared case-insensitively.
DEFAULT_LICENSE_ALLOW: frozenset[str] = frozenset(
    {
        "0bsd",
        "apache-2.0",
        "bsd-2-clause",
        "bsd-3-clause",
        "blueoak-1.0.0",
        "cc0-1.0",
        "isc",
        "mit",
        "mit-0",
        "python-2.0",
        "psf-2.0",
        "unlicense",
        "zlib",
    }
)
DEFAULT_LICENSE_REVIEW: frozenset[str] = frozenset(
    {
        "cc-by-4.0",
        "cc-by-sa-4.0",
        "epl-1.0",
        "epl-2.0",
        "lgpl-2.1",
        "lgpl-2.1-only",
        "lgpl-2.1-or-later",
        "lgpl-3.0",
        "lgpl-3.0-only",
        "lgpl-3.0-or-later",
        "mpl-2.0",
    }
)
DEFAULT_LICENSE_DENY: frozenset[str] = frozenset(
    {
        "agpl-3.0",
        "agpl-3.0-only",
        "agpl-3.0-or-later",
        "gpl-2.0",
        "gpl-2.0-only",
        "gpl-2.0-or-later",
        "gpl-3.0",
        "gpl-3.0-only",
        "gpl-3.0-or-later",
        "sspl-1.0",
    }
)


def _env_list(env: Mapping[str, str], key: str, default: frozenset[str]) -> frozenset[str]:
    raw = env.get(key)
    if raw is None:
        return default
    return frozenset(item.strip().lower() for item in raw.split(",") if item.strip())


def _env_path(env: Mapping[str, str], key: str) -> Path | None:
    raw = env.get(key)
    return Path(raw) if raw else None


@dataclass(frozen=True)
class ScanConfig:
    """Process-wide scan settings.

    Built once at the composition root (``ScanConfig.from_env()``) and passed
    explicitly to :class:`~depaudit.engines.scan_runner.runner.ScanRunner`
    and every fetcher, so tests can construct one directly.
    """

    workdir_root: Path = field(default_factory=lambda: Path(tempfile.gettempdir()) / "depaudit")
    log_root: Path | None = None
    cache_dir: Path | None = None
    npm_registry: str | None = None
    pip_index_url: str | None = None
    git_username: str | None = None
    git_token: str | None = field(default=None, repr=False)
    scan_timeout_sec: float = DEFAULT_SCAN_TIMEOUT_SEC
    osv_api_url: str = DEFAULT_OSV_API_URL
    license_allow: frozenset[str] = DEFAULT_LICENSE_ALLOW
    license_review: frozenset[str] = DEFAULT_LICENSE_REVIEW
    license_deny: frozenset[str] = DEFAULT_LICENSE_DENY

    @property
    def logs_dir(self) -> Path:
        return self.log_root or self.workdir_root / "logs"

    def project_workdir(self, project_id: object) -> Path:
        """Working directory reserved for one project's checkouts."""
        return self.workdir_root / str(project_id)

    def scan_log_dir(self, scan_id: object) -> Path:
        return self.logs_dir / str(scan_id)

    def cache_subdir(self, name: str) -> Path | None:
        """Per-ecosystem subdirectory of the shared cache, created if absent.

        The cache is additive: fetchers only ever write into it.
        """
        if self.cache_dir is None:
            return None
        path = self.cache_dir / name
        path.mkdir(parents=True, exist_ok=True)
        return path

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> ScanConfig:
        """Read settings from ``DEPAUDIT_*`` environment variables."""
        env = os.environ if env is None else env
        defaults = cls()
        workdir = _env_path(env, "DEPAUDIT_WORKDIR") or defaults.workdir_root
        return cls(
            workdir_root=workdir,
            log_root=_env_path(env, "DEPAUDIT_LOG_DIR"),
            cache_dir=_env_path(env, "DEPAUDIT_CACHE_DIR"),
            npm_registry=env.get("DEPAUDIT_NPM_REGISTRY") or None,
            pip_index_url=env.get("DEPAUDIT_PIP_INDEX_URL") or None,
            git_username=env.get("DEPAUDIT_GIT_USERNAME") or None,
            git_token=env.get("DEPAUDIT_GIT_TOKEN") or None,
            scan_timeout_sec=float(env.get("DEPAUDIT_SCAN_TIMEOUT", DEFAULT_SCAN_TIMEOUT_SEC)),
            osv_api_url=env.get("DEPAUDIT_OSV_API_URL", DEFAULT_OSV_API_URL).rstrip("/"),
            license_allow=_env_list(env, "DEPAUDIT_LICENSE_ALLOW", DEFAULT_LICENSE_ALLOW),
            license_review=_env_list(env, "DEPAUDIT_LICENSE_REVIEW", DEFAULT_LICENSE_REVIEW),
            license_deny=_env_list(env, "DEPAUDIT_LICENSE_DENY", DEFAULT_LICENSE_DENY),
        )
