"""License classification — map a declared license to a LicenseStatus.

Declared licenses are SPDX expressions (``MIT``, ``(MIT OR Apache-2.0)``,
``GPL-2.0-only WITH Classpath-exception-2.0``) or, for Python packages,
trove classifier names (``MIT License``). ``OR`` picks the most permissive
alternative, ``AND`` the most restrictive term.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass

from depaudit.core.config import ScanConfig
from depaudit.core.status import LicenseStatus
from depaudit.engines.scan_runner.models import FetchedDependency, LicenseFinding

UNKNOWN_LICENSE = "unknown"

# Common non-SPDX spellings (mostly trove classifiers) -> SPDX id.
_ALIASES: dict[str, str] = {
    "mit license": "mit",
    "the mit license": "mit",
    "apache 2.0": "apache-2.0",
    "apache license 2.0": "apache-2.0",
    "apache license, version 2.0": "apache-2.0",
    "apache software license": "apache-2.0",
    "bsd": "bsd-3-clause",
    "bsd license": "bsd-3-clause",
    "isc license": "isc",
    "isc license (iscl)": "isc",
    "python software foundation license": "psf-2.0",
    "the unlicense (unlicense)": "unlicense",
    "mozilla public license 2.0 (mpl 2.0)": "mpl-2.0",
    "gnu lesser general public license v2 or later (lgplv2+)": "lgpl-2.1-or-later",
    "gnu lesser general public license v3 (lgplv3)": "lgpl-3.0",
    "gnu general public license v2 (gplv2)": "gpl-2.0",
    "gnu general public license v3 (gplv3)": "gpl-3.0",
    "gnu affero general public license v3": "agpl-3.0",
}

_TOKEN_RE = re.compile(r"\(|\)|[^\s()]+")


@dataclass(frozen=True)
class LicensePolicy:
    """allow -> green, review -> yellow, deny -> red, missing -> unknown.

    Anything not on a list is treated as needing review (yellow).
    """

    allow: frozenset[str]
    review: frozenset[str]
    deny: frozenset[str]

    @classmethod
    def from_config(cls, config: ScanConfig) -> LicensePolicy:
        return cls(
            allow=config.license_allow,
            review=config.license_review,
            deny=config.license_deny,
        )

    def classify(self, license_name: str | None) -> LicenseStatus:
        text = (license_name or "").strip()
        if not text or text.lower() in (UNKNOWN_LICENSE, "none", "noassertion"):
            return LicenseStatus.UNKNOWN

        alias = _ALIASES.get(text.lower())
        if alias is not None:
            return self._classify_id(alias)

        status = self._evaluate(_TOKEN_RE.findall(text))
        if status is None:
            return self._classify_id(text)
        return status

    def _classify_id(self, spdx_id: str) -> LicenseStatus:
        key = spdx_id.lower()
        if key.endswith("+"):
            key = f"{key[:-1]}-or-later"
        key = _ALIASES.get(key, key)
        if key in self.deny:
            return LicenseStatus.RED
        if key in self.allow:
            return LicenseStatus.GREEN
        return LicenseStatus.YELLOW

    # ── SPDX expression evaluation ────────────────────────────────────────

    def _evaluate(self, tokens: list[str]) -> LicenseStatus | None:
        pos = 0

        def or_expr() -> LicenseStatus | None:
            nonlocal pos
            best = and_expr()
            while best is not None and pos < len(tokens) and tokens[pos].upper() == "OR":
                pos += 1
                rhs = and_expr()
                if rhs is None:
                    return None
                best = min(best, rhs, key=_permissiveness)
            return best

        def and_expr() -> LicenseStatus | None:
            nonlocal pos
            worst = term()
            while worst is not None and pos < len(tokens) and tokens[pos].upper() == "AND":
                pos += 1
                rhs = term()
                if rhs is None:
                    return None
                worst = max(worst, rhs, key=_permissiveness)
            return worst

        def term() -> LicenseStatus | None:
            nonlocal pos
            if pos >= len(tokens):
                return None
            token = tokens[pos]
            if token == "(":
                pos += 1
                inner = or_expr()
                if inner is None or pos >= len(tokens) or tokens[pos] != ")":
                    return None
                pos += 1
                return inner
            if token == ")" or token.upper() in ("AND", "OR", "WITH"):
                return None
            pos += 1
            if pos < len(tokens) and tokens[pos].upper() == "WITH":
                # license exceptions only relax terms; classify the base license
                pos += 2
            return self._classify_id(token)

        result = or_expr()
        if pos != len(tokens):
            return None
        return result

    def license_label(self, license_name: str | None) -> str:
        """Name stored on the result item."""
        text = (license_name or "").strip()
        return text or UNKNOWN_LICENSE


def _permissiveness(status: LicenseStatus) -> int:
    return status.rank


def classify_licenses(
    dependencies: Iterable[FetchedDependency], policy: LicensePolicy
) -> list[LicenseFinding]:
    """One license finding per dependency."""
    return [
        LicenseFinding(
            display_identifier=dep.display_identifier,
            license_name=policy.license_label(dep.license),
            status=policy.classify(dep.license),
            path=dep.path,
        )
        for dep in dependencies
    ]
