# settings.py
from __future__ import annotations

import logging
import os
import subprocess
from datetime import datetime, timezone
from pathlib import Path

from . import git

log = logging.getLogger(__name__)

STATE_DIR = os.environ.get("BUILDGRAPH_STATE_DIR", ".buildgraph")
CONFIG_FILE = os.environ.get("BUILDGRAPH_CONFIG", "buildgraph.json")
BUILD_ID = os.environ.get("BUILDGRAPH_BUILD_ID", "")
SECRET_PREFIX = os.environ.get("BUILDGRAPH_SECRET_PREFIX", "BUILDGRAPH_SECRET_")
# where targets put files to publish / where retrieved artifacts land
PUBLISH_DIR = os.environ.get("BUILDGRAPH_PUBLISH_DIR", os.path.join(STATE_DIR, "publish"))
ARTIFACTS_DIR = os.environ.get("BUILDGRAPH_ARTIFACTS_DIR", os.path.join(STATE_DIR, "artifacts"))
ARTIFACT_STORE = os.environ.get("BUILDGRAPH_ARTIFACT_STORE", os.path.join(STATE_DIR, "store"))


def state_dir(root: str | Path = ".") -> Path:
    return Path(root) / STATE_DIR


def build_id(root: str | Path = ".") -> str:
    """BUILDGRAPH_BUILD_ID, else the HEAD sha, else a UTC timestamp."""
    if BUILD_ID:
        return BUILD_ID
    try:
        return git.head_sha(root)
    except (subprocess.CalledProcessError, FileNotFoundError):
        log.debug("not a git checkout; using a timestamp build id")
        return datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S")
