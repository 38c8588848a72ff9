# config.py
from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, Optional

from .errors import ConfigurationError

LEDGER_FILE = os.environ.get("MONODEPLOY_LEDGER", "successful-packages.json")
TEST_LEDGER_FILE = os.environ.get("MONODEPLOY_TEST_LEDGER", "successful-package-tests.json")
TIERS_FILE = os.environ.get("MONODEPLOY_TIERS", "tiers.json")
WORKERS = int(os.environ.get("MONODEPLOY_WORKERS", "4"))
DEPLOY_DESCRIPTOR = os.environ.get("MONODEPLOY_DESCRIPTOR", "serverless.ts")
ARTIFACT_PATTERN = os.environ.get("MONODEPLOY_ARTIFACT_PATTERN", "*.tgz")
DEV_TOOL_PACKAGE = os.environ.get("MONODEPLOY_DEV_TOOL_PACKAGE") or None


@dataclass
class RunSettings:
    """Inputs of one deploy/test invocation after CLI options and env are merged."""
    root: Path
    tiers_file: Path
    ledger_file: Path
    workers: int = WORKERS
    targets: list[str] = field(default_factory=list)
    pinned_versions: Dict[str, str] = field(default_factory=dict)
    deploy_descriptor: str = DEPLOY_DESCRIPTOR
    artifact_pattern: str = ARTIFACT_PATTERN
    dev_tool_package: Optional[str] = DEV_TOOL_PACKAGE

    def __post_init__(self) -> None:
        if self.workers < 1:
            raise ConfigurationError(f"workers must be at least 1, got {self.workers}")


def parse_pins(values: Iterable[str]) -> Dict[str, str]:
    """
    Parse NAME=VERSION pairs.

    Scoped names keep their leading "@": "@scope/pkg=^1.2.0".
    """
    pins: Dict[str, str] = {}
    for raw in values:
        name, sep, version = raw.partition("=")
        name, version = name.strip(), version.strip()
        if not sep or not name or not version:
            raise ConfigurationError(f"Pinned version must look like NAME=VERSION, got {raw!r}")
        pins[name] = version
    return pins


def load_pins(path: str | Path) -> Dict[str, str]:
    """Read a JSON object of package name -> version range."""
    p = Path(path)
    try:
        raw = json.loads(p.read_text(encoding="utf-8"))
    except FileNotFoundError:
        raise ConfigurationError(f"Pins file not found: {p}")
    except ValueError as e:
        raise ConfigurationError(f"Pins file is not valid JSON: {p} ({e})")
    if not isinstance(raw, dict) or not all(isinstance(v, str) for v in raw.values()):
        raise ConfigurationError(f"Pins file must map package names to version strings: {p}")
    return {str(k): v for k, v in raw.items()}
