"""Subprocess helper shared by the repository accessor and the fetchers."""

from __future__ import annotations

import asyncio
import contextlib
import os
from dataclasses import dataclass
from pathlib import Path

import structlog

from depaudit.core.git import redact_url

log = structlog.get_logger("depaudit.engine")


@dataclass
class CommandResult:
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


async def run_command(
    cmd: list[str],
    *,
    cwd: Path | None = None,
    log_file: Path | None = None,
    env: dict[str, str] | None = None,
) -> CommandResult:
    """Run *cmd* to completion and capture its output.

    Never raises on a non-zero exit; callers decide what a failure means.
    Raises ``FileNotFoundError`` when the executable is not installed.

    If the awaiting task is cancelled (e.g. by a scan timeout) the child
    process is killed before the cancellation propagates.

    When *log_file* is given, the command line and its output are appended
    to it with any URL credentials redacted.
    """
    proc_env = None
    if env:
        proc_env = {**os.environ, **env}
    proc = await asyncio.create_subprocess_exec(
        *cmd,
        cwd=str(cwd) if cwd else None,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
        env=proc_env,
    )
    try:
        stdout, stderr = await proc.communicate()
    except asyncio.CancelledError:
        with contextlib.suppress(ProcessLookupError):
            proc.kill()
        await proc.wait()
        log.warning("process.killed", command=redact_url(" ".join(cmd[:2])))
        raise

    result = CommandResult(
        returncode=proc.returncode if proc.returncode is not None else -1,
        stdout=stdout.decode(errors="replace"),
        stderr=stderr.decode(errors="replace"),
    )
    if log_file is not None:
        append_log(log_file, cmd, result)
    return result


def append_log(log_file: Path, cmd: list[str], result: CommandResult) -> None:
    log_file.parent.mkdir(parents=True, exist_ok=True)
    with log_file.open("a", encoding="utf-8") as fh:
        fh.write(f"$ {redact_url(' '.join(cmd))}\n")
        if result.stdout:
            fh.write(redact_url(result.stdout))
            if not result.stdout.endswith("\n"):
                fh.write("\n")
        if result.stderr:
            fh.write(redact_url(result.stderr))
            if not result.stderr.endswith("\n"):
                fh.write("\n")
        fh.write(f"[exit {result.returncode}]\n")
