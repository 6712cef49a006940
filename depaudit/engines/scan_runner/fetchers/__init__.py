"""Dependency fetchers — auto-registered on import."""

from depaudit.engines.scan_runner.fetchers import (
    npm,  # noqa: F401
    pip,  # noqa: F401
)
from depaudit.engines.scan_runner.fetchers.base import (
    FETCHER_REGISTRY,
    DependencyFetcher,
    get_fetcher,
    register_fetcher,
)

__all__ = ["FETCHER_REGISTRY", "DependencyFetcher", "get_fetcher", "register_fetcher"]
