#!/usr/bin/env python3
"""Standalone dependency fetcher — no DB required.

Resolves a local checkout with one package-manager fetcher and prints every
dependency with its license classification. Settings (registry, index URL,
cache, license lists) come from ``DEPAUDIT_*`` environment variables.

Usage:
    python fetch_deps.py /path/to/checkout --package-manager npm
    python fetch_deps.py . --package-manager pip --json
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
import tempfile
from pathlib import Path

from depaudit.core.config import ScanConfig
from depaudit.core.types import PackageManager
from depaudit.engines.scan_runner.errors import ScanError
from depaudit.engines.scan_runner.fetchers import get_fetcher
from depaudit.engines.scan_runner.licenses import LicensePolicy, classify_licenses
from depaudit.engines.scan_runner.models import LicenseFinding


def _print_findings(findings: list[LicenseFinding], as_json: bool) -> None:
    if not findings:
        print("No dependencies found.")
        return

    if as_json:
        print(json.dumps([f.as_row() for f in findings], indent=2))
        return

    by_status: dict[str, int] = {}
    for f in findings:
        by_status[f.status.value] = by_status.get(f.status.value, 0) + 1
    summary = ", ".join(f"{status}: {count}" for status, count in sorted(by_status.items()))
    print(f"Found {len(findings)} dependencies ({summary})\n")

    width = max(len(f.display_identifier) for f in findings)
    for f in sorted(findings, key=lambda f: (-f.status.rank, f.display_identifier)):
        print(f"  {f.display_identifier:<{width}}  {f.status.value:<7}  {f.license_name}")


async def _fetch(working_dir: Path, package_manager: str) -> list[LicenseFinding]:
    config = ScanConfig.from_env()
    fetcher = get_fetcher(package_manager)
    with tempfile.TemporaryDirectory() as log_dir:
        deps = await fetcher.fetch_dependencies(working_dir, config, Path(log_dir))
    return classify_licenses(deps, LicensePolicy.from_config(config))


def main() -> None:
    parser = argparse.ArgumentParser(description="Resolve and classify a checkout's dependencies")
    parser.add_argument("target", help="Local directory to resolve")
    parser.add_argument(
        "--package-manager",
        required=True,
        choices=[pm.value for pm in PackageManager],
        help="Ecosystem of the project",
    )
    parser.add_argument("--json", action="store_true", dest="as_json", help="Output as JSON")
    args = parser.parse_args()

    working_dir = Path(args.target).resolve()
    if not working_dir.is_dir():
        print(f"Error: {working_dir} is not a directory", file=sys.stderr)
        sys.exit(1)

    try:
        findings = asyncio.run(_fetch(working_dir, args.package_manager))
    except ScanError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(2)
    _print_findings(findings, args.as_json)


if __name__ == "__main__":
    main()
