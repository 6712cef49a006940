"""Git helpers for the scan runner — checkout, ref listing, reachability.

Credentials are injected into the URL handed to git only; they are never
written to ``.git/config`` and never logged (error text is redacted).
"""

from __future__ import annotations

import shutil
from pathlib import Path

import structlog

from depaudit.core.git import GitRef, authenticated_url, parse_ls_remote, redact_url
from depaudit.engines.scan_runner.errors import RepositoryAccessError
from depaudit.engines.scan_runner.process import CommandResult, run_command

log = structlog.get_logger("depaudit.engine")

# fail instead of waiting for a password prompt
_GIT_ENV = {"GIT_TERMINAL_PROMPT": "0"}


async def checkout(
    repo_url: str,
    branch: str,
    target: Path,
    *,
    username: str | None = None,
    token: str | None = None,
    log_file: Path | None = None,
) -> Path:
    """Check out *branch* of *repo_url* into *target* and return *target*.

    A fresh shallow clone is made when *target* holds no repository; an
    existing checkout is fetched and force-updated to the branch tip.

    Raises :class:`RepositoryAccessError` on any git failure.
    """
    remote = authenticated_url(repo_url, username, token)

    if (target / ".git").is_dir():
        await _git(["git", "-C", str(target), "fetch", "--depth", "1", "--", remote, branch],
                   log_file)
        await _git(["git", "-C", str(target), "checkout", "--force", "FETCH_HEAD"], log_file)
        await _git(["git", "-C", str(target), "clean", "-fdx", "--quiet"], log_file)
        log.info("repo.updated", repo_url=redact_url(repo_url), branch=branch)
        return target

    if target.exists():
        shutil.rmtree(target)
    target.parent.mkdir(parents=True, exist_ok=True)
    await _git(
        ["git", "clone", "--depth", "1", "--branch", branch, "--", remote, str(target)],
        log_file,
    )
    # keep the token out of .git/config
    await _git(["git", "-C", str(target), "remote", "set-url", "origin", repo_url], log_file)
    log.info("repo.cloned", repo_url=redact_url(repo_url), branch=branch)
    return target


async def ls_remote(
    repo_url: str,
    *,
    username: str | None = None,
    token: str | None = None,
) -> list[GitRef]:
    """List branches and tags of *repo_url* (branches first, each sorted by name).

    Raises :class:`RepositoryAccessError` when the remote cannot be listed;
    an empty list means the remote really has no branches or tags.
    """
    remote = authenticated_url(repo_url, username, token)
    result = await _git(["git", "ls-remote", "--heads", "--tags", "--", remote], None)
    return parse_ls_remote(result.stdout)


async def is_reachable(
    repo_url: str,
    *,
    username: str | None = None,
    token: str | None = None,
) -> bool:
    """True if *repo_url* answers ``git ls-remote`` with the given credentials."""
    try:
        await ls_remote(repo_url, username=username, token=token)
    except RepositoryAccessError as exc:
        log.info("repo.unreachable", repo_url=redact_url(repo_url), error=str(exc))
        return False
    return True


async def _git(cmd: list[str], log_file: Path | None) -> CommandResult:
    """Run a git command, raising RepositoryAccessError on failure."""
    try:
        result = await run_command(cmd, log_file=log_file, env=_GIT_ENV)
    except FileNotFoundError as exc:
        raise RepositoryAccessError("git executable not found") from exc
    if not result.ok:
        raise RepositoryAccessError(
            f"git {cmd[1] if cmd[1] != '-C' else cmd[3]} failed "
            f"(exit {result.returncode}): {redact_url(result.stderr.strip())}"
        )
    return result
