# process.py
from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional, Sequence

from .model import Step

log = logging.getLogger(__name__)

# tail of captured output kept on failures
OUTPUT_TAIL = 4000

TOOL_HINTS = {
    "npm": "Install Node.js (includes npm) or fix PATH.",
    "node": "Install Node.js or fix PATH.",
    "pytest": "Install pytest (e.g., pip install pytest).",
    "ruff": "Install ruff (e.g., pip install ruff).",
    "docker": "Install Docker and ensure the daemon is running.",
    "python3": "Install Python 3 or fix PATH (python3).",
    "git": "Install Git or fix PATH.",
}


@dataclass
class StepFailure(Exception):
    target: str
    step: str
    cmd: str
    exit_code: int
    stdout: str = ""
    stderr: str = ""

    def __str__(self) -> str:
        return f"[{self.target}] step '{self.step}' failed (exit={self.exit_code}): {self.cmd}"

    @property
    def hint(self) -> Optional[str]:
        # 127: command not found
        if self.exit_code != 127:
            return None
        tool = self.cmd.split()[0] if self.cmd.split() else ""
        return TOOL_HINTS.get(tool)


@dataclass(frozen=True)
class ProcessResult:
    exit_code: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


async def run(
    name: str,
    args: Sequence[str] = (),
    cwd: str | Path | None = None,
    env: Mapping[str, str] | None = None,
) -> ProcessResult:
    """Run an executable and capture its output."""
    log.debug("run %s %s (cwd=%s)", name, " ".join(args), cwd or ".")
    proc = await asyncio.create_subprocess_exec(
        name,
        *args,
        cwd=str(cwd) if cwd is not None else None,
        env=dict(env) if env is not None else None,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    out, err = await proc.communicate()
    return ProcessResult(
        exit_code=proc.returncode if proc.returncode is not None else -1,
        stdout=out.decode(errors="replace"),
        stderr=err.decode(errors="replace"),
    )


async def run_shell(
    target: str,
    step: Step,
    root: str | Path = ".",
    env: Mapping[str, str] | None = None,
) -> ProcessResult:
    """Run a Step through the shell. Raises StepFailure on a non-zero exit code."""
    cwd = (Path(root) / (step.cwd or ".")).resolve()
    if not cwd.exists():
        raise FileNotFoundError(f"[{target}] step '{step.name}' cwd not found: {cwd}")

    full_env = os.environ.copy()
    full_env.update(env or {})

    proc = await asyncio.create_subprocess_shell(
        step.run,
        cwd=str(cwd),
        env=full_env,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    out, err = await proc.communicate()
    result = ProcessResult(
        exit_code=proc.returncode if proc.returncode is not None else -1,
        stdout=out.decode(errors="replace"),
        stderr=err.decode(errors="replace"),
    )

    if not result.ok:
        raise StepFailure(
            target=target,
            step=step.name,
            cmd=step.run,
            exit_code=result.exit_code,
            stdout=result.stdout[-OUTPUT_TAIL:],
            stderr=result.stderr[-OUTPUT_TAIL:],
        )
    return result
