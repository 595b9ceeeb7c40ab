"""Environment characterization and provenance for benchmark reports.

Captures the runtime, OS and CPU architecture a report was produced on,
and the git commit/branch of the working tree so individual results can
be traced back to a revision.  All lookups are best-effort: failures
produce empty values or None rather than exceptions.
"""

from __future__ import annotations

import logging
import platform
import subprocess
import sys
from pathlib import Path

from perfwatch.bench.results import Environment

log = logging.getLogger("perfwatch")


def capture_environment() -> Environment:
    """Describe the interpreter and machine running this process."""
    return Environment(
        runtime=f"{platform.python_implementation()} {platform.python_version()}",
        platform=sys.platform,
        arch=platform.machine(),
    )


def _git(args: list[str], cwd: Path | None) -> str | None:
    """Run a read-only git command and return its stripped stdout."""
    try:
        proc = subprocess.run(
            ["git", *args],
            capture_output=True,
            text=True,
            cwd=str(cwd) if cwd else None,
            timeout=10,
        )
    except (OSError, subprocess.TimeoutExpired) as exc:
        log.debug("git %s failed: %s", " ".join(args), exc)
        return None
    if proc.returncode != 0:
        log.debug("git %s exited %d: %s", " ".join(args), proc.returncode, proc.stderr.strip())
        return None
    return proc.stdout.strip() or None


def git_commit(cwd: Path | None = None) -> str | None:
    """Short hash of HEAD, or None outside a git checkout."""
    return _git(["rev-parse", "--short", "HEAD"], cwd)


def git_branch(cwd: Path | None = None) -> str | None:
    """Current branch name, or None outside a git checkout."""
    return _git(["rev-parse", "--abbrev-ref", "HEAD"], cwd)
