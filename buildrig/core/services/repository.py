"""
Repository probe — the ambient git state preconditions look at.

Uses the git CLI. A directory that is not a git work tree (or a
machine without git) yields a state with ``available=False``; the
predicates that depend on it then simply evaluate to false.
"""

from __future__ import annotations

import logging
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RepositoryState:
    """Branch and cleanliness of the working tree."""

    available: bool = False
    branch: str = ""
    clean: bool = False
    changes: int = 0


def _git(args: list[str], cwd: Path, timeout: int = 30) -> str:
    """Run a git command and return stdout."""
    result = subprocess.run(
        ["git", *args],
        cwd=str(cwd),
        capture_output=True,
        text=True,
        timeout=timeout,
    )
    if result.returncode != 0:
        raise RuntimeError(result.stderr.strip() or f"git {args[0]} failed")
    return result.stdout


def probe_repository(root: Path) -> RepositoryState:
    """Read branch and dirty state of the repository at *root*."""
    if shutil.which("git") is None:
        logger.debug("git not found on PATH")
        return RepositoryState()

    try:
        branch = _git(["rev-parse", "--abbrev-ref", "HEAD"], root).strip()
        porcelain = _git(["status", "--porcelain"], root)
    except (RuntimeError, OSError, subprocess.TimeoutExpired) as e:
        logger.debug("Not a usable git work tree at %s: %s", root, e)
        return RepositoryState()

    lines = [line for line in porcelain.splitlines() if line.strip()]
    state = RepositoryState(
        available=True,
        branch=branch,
        clean=not lines,
        changes=len(lines),
    )
    logger.debug("Repository: branch=%s clean=%s", state.branch, state.clean)
    return state
