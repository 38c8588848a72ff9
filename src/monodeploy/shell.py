# shell.py
from __future__ import annotations

import os
import subprocess
from pathlib import Path
from typing import Callable, Dict, Optional

from .errors import CommandFailure

# Every side effect of the pipeline (git, npm) goes through a CommandRunner.
# Tests swap in a fake with the same signature.
CommandRunner = Callable[[str, Path], None]

OUTPUT_TAIL = 4000


def run_command(cmd: str, cwd: str | Path, env: Optional[Dict[str, str]] = None) -> None:
    """
    Run a shell command in cwd and wait for it.

    Raises:
      FileNotFoundError: cwd does not exist
      CommandFailure: nonzero exit; carries the tail of stdout/stderr
    """
    cwd_p = Path(cwd).resolve()
    if not cwd_p.exists():
        raise FileNotFoundError(f"working directory not found: {cwd_p}")

    full_env = os.environ.copy()
    full_env.update(env or {})

    proc = subprocess.run(
        cmd,
        shell=True,
        cwd=str(cwd_p),
        env=full_env,
        text=True,
        capture_output=True,
    )

    if proc.returncode != 0:
        raise CommandFailure(
            cmd=cmd,
            cwd=cwd_p,
            exit_code=proc.returncode,
            stdout=(proc.stdout or "")[-OUTPUT_TAIL:],
            stderr=(proc.stderr or "")[-OUTPUT_TAIL:],
        )
