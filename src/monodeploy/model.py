# model.py
from __future__ import annotations

import threading
from concurrent.futures import Future
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

from .errors import ConfigurationError


class Step(str, Enum):
    """Per-package pipeline steps. Values are what the ledger file stores."""
    REBASE = "Rebase"
    PUSH = "Push"
    CLEAN = "Clean"
    WORKSPACE_INSTALL = "Workspace Install"
    INSTALL = "Install"
    INSTALL_DEV = "Install Dev"
    BUILD = "Build"
    DEPLOY = "Deploy"
    PACK = "Pack"


class Suite(str, Enum):
    """Test-suite steps, tracked in their own ledger file."""
    UNIT_TESTS = "Unit Tests"
    INTEGRATION_TESTS = "Integration Tests"


class PackageKind(str, Enum):
    WORKSPACE_ROOT = "workspace-root"
    SERVICE = "service"
    LIBRARY = "library"


# package name -> names of packages that must be built in an earlier tier
Tier = Dict[str, List[str]]


@dataclass
class PackageInfo:
    """A package discovered in the workspace (one package.json)."""
    name: str
    path: Path
    kind: PackageKind
    manifest: Dict[str, Any] = field(default_factory=dict)

    workspace_root: Optional[str] = None
    workspace_members: Optional[List[str]] = None

    # version control state of the checkout the package lives in
    default_branch: Optional[str] = None
    current_branch: Optional[str] = None

    @property
    def dependencies(self) -> Dict[str, str]:
        return dict(self.manifest.get("dependencies") or {})

    @property
    def dev_dependencies(self) -> Dict[str, str]:
        return dict(self.manifest.get("devDependencies") or {})

    @property
    def scripts(self) -> Dict[str, str]:
        return dict(self.manifest.get("scripts") or {})

    @property
    def is_service(self) -> bool:
        return self.kind is PackageKind.SERVICE

    @property
    def is_library(self) -> bool:
        return self.kind is PackageKind.LIBRARY


class ArtifactBoard:
    """
    Packed archive paths, one write per package.

    Pack resolves a package's future once; Install steps of later tiers read
    it. Tier ordering means readers only ever see completed futures.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._futures: Dict[str, Future] = {}

    def _future(self, pkg: str) -> Future:
        with self._lock:
            fut = self._futures.get(pkg)
            if fut is None:
                fut = Future()
                self._futures[pkg] = fut
            return fut

    def publish(self, pkg: str, path: Path) -> None:
        path = Path(path).resolve()
        fut = self._future(pkg)
        with self._lock:
            if fut.done():
                if fut.result() != path:
                    raise ConfigurationError(
                        f"Artifact for {pkg} already published as {fut.result()}, refusing {path}"
                    )
                return
            fut.set_result(path)

    def get(self, pkg: str) -> Optional[Path]:
        fut = self._future(pkg)
        return fut.result() if fut.done() else None

    def wait(self, pkg: str, timeout: float | None = None) -> Path:
        return self._future(pkg).result(timeout=timeout)

    def published(self) -> Dict[str, Path]:
        with self._lock:
            return {pkg: fut.result() for pkg, fut in self._futures.items() if fut.done()}


@dataclass
class RunContext:
    """Everything one invocation works against. Never persisted."""
    packages: Dict[str, PackageInfo]
    tiers: List[Tier]
    artifacts: ArtifactBoard = field(default_factory=ArtifactBoard)
    pinned_versions: Dict[str, str] = field(default_factory=dict)

    deploy_descriptor: str = "serverless.ts"
    artifact_pattern: str = "*.tgz"
    dev_tool_package: Optional[str] = None

    def package(self, name: str) -> PackageInfo:
        info = self.packages.get(name)
        if info is None:
            raise ConfigurationError(f"Package {name} not found")
        return info

    def workspace_root_of(self, info: PackageInfo) -> Optional[PackageInfo]:
        if not info.workspace_root:
            return None
        return self.package(info.workspace_root)
