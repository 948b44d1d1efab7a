# git.py
# Thin wrapper around the Git CLI. Everything in buildgraph that needs
# repository facts (build id, repo name for the run header) goes through here.

from __future__ import annotations

import subprocess
from pathlib import Path
from typing import Optional


def _git(args: list[str], cwd: str | Path | None = None) -> str:
    """
    Run git and return its stdout, stripped.

    Raises CalledProcessError on a non-zero exit and FileNotFoundError
    when git is not installed; callers decide whether that matters.
    """
    out = subprocess.check_output(
        ["git", *args],
        cwd=str(cwd) if cwd is not None else None,
        text=True,
        stderr=subprocess.DEVNULL,
    )
    return out.strip()


def head_sha(cwd: str | Path | None = None) -> str:
    """
    Full SHA of HEAD.

    Used as the default build id, so artifacts stored by one job can be
    found by the next job of the same commit.
    """
    return _git(["rev-parse", "HEAD"], cwd)


def remote_url(remote: str = "origin", cwd: str | Path | None = None) -> str:
    return _git(["remote", "get-url", remote], cwd)


def repo_name(cwd: str | Path | None = None) -> Optional[str]:
    """Repository name from the origin URL, or None outside a repo / without a remote."""
    try:
        url = remote_url("origin", cwd)
    except (subprocess.CalledProcessError, FileNotFoundError):
        return None
    return url.rstrip("/").split("/")[-1].removesuffix(".git") or None
