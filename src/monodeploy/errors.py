# errors.py
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path


class MonodeployError(Exception):
    """Base exception for monodeploy."""
    pass


class ConfigurationError(MonodeployError):
    """The workspace, tier data or run inputs are inconsistent. Never retried."""
    pass


@dataclass
class CommandFailure(MonodeployError):
    """A shell command exited nonzero. Steps marked retryable get one more go."""
    cmd: str
    cwd: str | Path
    exit_code: int
    stdout: str = ""
    stderr: str = ""

    def __str__(self) -> str:
        return f"command failed (exit={self.exit_code}) in {self.cwd}: {self.cmd}"


@dataclass
class StepError(MonodeployError):
    """
    Terminal failure of one package pipeline.

    Carries enough context for the end-of-run summary without a traceback.
    """
    kind: str
    package: str
    step: str
    message: str
    details: dict = field(default_factory=dict)

    def __str__(self) -> str:
        lines = [f"{self.kind}: {self.message}", f"package={self.package}", f"step={self.step}"]
        for k, v in self.details.items():
            lines.append(f"{k}={v}")
        return "\n".join(lines)
