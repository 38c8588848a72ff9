# git.py
# Small, focused wrapper around the Git CLI for reading branch state.
# Registry discovery uses this to learn which branch each checkout is on and
# which branch it should rebase onto. Mutating git operations (fetch, rebase,
# push, clean) are pipeline steps and go through the command runner instead.

from __future__ import annotations

import subprocess
from pathlib import Path
from typing import Optional


def _git(args: list[str], cwd: Optional[str | Path] = None) -> str:
    """
    Execute a git command and return its stdout as a clean string.

    Args:
        args: List of git arguments (e.g. ["rev-parse", "--abbrev-ref", "HEAD"])
        cwd: Directory to run in. Any directory inside the checkout works.

    Returns:
        Stdout from the git command with surrounding whitespace removed.

    Raises:
        subprocess.CalledProcessError: git exited nonzero
        FileNotFoundError: git is not installed
    """
    out = subprocess.check_output(
        ["git", *args],
        cwd=str(cwd) if cwd is not None else None,
        text=True,
        stderr=subprocess.DEVNULL,
    )
    return out.strip()


def current_branch(cwd: str | Path) -> str:
    """
    Return the branch currently checked out at cwd.

    A detached HEAD comes back as the literal "HEAD".
    """
    return _git(["rev-parse", "--abbrev-ref", "HEAD"], cwd=cwd)


def default_branch(cwd: str | Path, remote: str = "origin") -> str:
    """
    Return the remote's default branch name (e.g. "main").

    Git records it as the symbolic ref refs/remotes/<remote>/HEAD, which
    `git clone` sets up. We strip the "<remote>/" prefix so the result can be
    compared against current_branch().
    """
    ref = _git(["symbolic-ref", "--short", f"refs/remotes/{remote}/HEAD"], cwd=cwd)
    prefix = f"{remote}/"
    return ref[len(prefix):] if ref.startswith(prefix) else ref
