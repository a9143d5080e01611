# git.py
# Small, focused wrapper around the Git CLI.
# This module centralizes all Git knowledge so the rest of the codebase never
# spells out "git ..." argument lists directly.

from __future__ import annotations

import subprocess
from pathlib import Path
from typing import List, Optional


def _git(args: list[str], cwd: Optional[str] = None) -> str:
    """
    Execute a git command and return its stdout as a clean string.

    Args:
        args: List of git arguments (e.g. ["rev-parse", "HEAD"])
        cwd: Optional working directory in which to run the git command.

    Returns:
        Stdout from the git command with surrounding whitespace removed.

    Raises:
        subprocess.CalledProcessError: git exited non-zero.
        FileNotFoundError: git is not installed.
    """
    out = subprocess.check_output(
        ["git", *args],
        cwd=cwd,
        text=True,
        stderr=subprocess.DEVNULL,
    )
    return out.strip()


def current_branch(cwd: Optional[str] = None) -> str:
    """
    Name of the currently checked out branch.

    On a detached HEAD, git prints "HEAD"; we return that as-is so callers can
    decide whether to ask for an explicit branch.
    """
    return _git(["rev-parse", "--abbrev-ref", "HEAD"], cwd=cwd)


# ---------------------------------------------------------------------
# Argument builders used by the checkout action.
# The executor runs these through its CommandRunner so they can be faked.
# ---------------------------------------------------------------------

def verify_worktree_args() -> List[str]:
    # Succeeds only inside a work tree that has at least one commit.
    return ["git", "rev-parse", "--verify", "HEAD"]


def clone_args(repo_url: str, dest: Path) -> List[str]:
    return ["git", "clone", repo_url, str(dest)]


def fetch_args() -> List[str]:
    return ["git", "fetch", "origin"]


def checkout_args(ref: str) -> List[str]:
    return ["git", "checkout", "--force", ref]
