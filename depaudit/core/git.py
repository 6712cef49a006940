"""Git URL utilities — credential injection, redaction, ls-remote parsing."""

from __future__ import annotations

import re
from dataclasses import dataclass
from urllib.parse import quote, urlsplit, urlunsplit

_USERINFO_RE = re.compile(r"([a-zA-Z][a-zA-Z0-9+.-]*://)[^/@\s]+@")

_HEADS_PREFIX = "refs/heads/"
_TAGS_PREFIX = "refs/tags/"
_PEELED_SUFFIX = "^{}"


@dataclass(frozen=True)
class GitRef:
    """A branch or tag advertised by a remote."""

    name: str
    kind: str  # "branch" | "tag"
    sha: str


def authenticated_url(repo_url: str, username: str | None, token: str | None) -> str:
    """Return *repo_url* with credentials injected as URL userinfo.

    Only http(s) URLs are rewritten; SSH-style URLs (``git@host:org/repo``)
    and local paths are returned unchanged. Existing userinfo is replaced.
    With no token configured the URL is returned as-is.

    The result contains secrets: pass it to git, never to a logger.
    """
    if not token:
        return repo_url
    parts = urlsplit(repo_url.strip())
    if parts.scheme not in ("http", "https") or not parts.hostname:
        return repo_url

    user = quote(username or "x-access-token", safe="")
    secret = quote(token, safe="")
    netloc = f"{user}:{secret}@{parts.hostname}"
    if parts.port:
        netloc = f"{netloc}:{parts.port}"
    return urlunsplit((parts.scheme, netloc, parts.path, parts.query, parts.fragment))


def redact_url(text: str) -> str:
    """Replace URL userinfo in *text* with ``***``.

    Works on a bare URL as well as on free text that embeds URLs
    (e.g. git stderr output).
    """
    return _USERINFO_RE.sub(r"\1***@", text)


def parse_ls_remote(output: str) -> list[GitRef]:
    """Parse ``git ls-remote --heads --tags`` output into refs.

    Each line is ``<sha>\\t<ref>``. Lines for other ref namespaces are
    ignored. Annotated tags appear twice (``v1`` and ``v1^{}``); the peeled
    entry wins so ``sha`` points at the commit.
    """
    branches: dict[str, GitRef] = {}
    tags: dict[str, GitRef] = {}

    for raw_line in output.splitlines():
        line = raw_line.strip()
        if not line or "\t" not in line:
            continue
        sha, ref = line.split("\t", 1)
        ref = ref.strip()

        if ref.startswith(_HEADS_PREFIX):
            name = ref[len(_HEADS_PREFIX):]
            if name:
                branches[name] = GitRef(name=name, kind="branch", sha=sha)
        elif ref.startswith(_TAGS_PREFIX):
            name = ref[len(_TAGS_PREFIX):]
            peeled = name.endswith(_PEELED_SUFFIX)
            if peeled:
                name = name[: -len(_PEELED_SUFFIX)]
            if name and (peeled or name not in tags):
                tags[name] = GitRef(name=name, kind="tag", sha=sha)

    return sorted(branches.values(), key=lambda r: r.name) + sorted(
        tags.values(), key=lambda r: r.name
    )
