# steps.py
from __future__ import annotations

import shlex
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from .errors import ConfigurationError
from .ledger import StepName, SuccessLedger
from .model import PackageInfo, PackageKind, RunContext, Step, Suite
from .shell import CommandRunner


@dataclass
class StepContext:
    """What a step body sees: its package, the run, and whether this is a retry."""
    package: PackageInfo
    dependencies: List[str]
    run: RunContext
    ledger: SuccessLedger
    runner: CommandRunner
    first_visit: bool
    retrying: bool = False

    @property
    def name(self) -> str:
        return self.package.name

    @property
    def workspace_root(self) -> Optional[PackageInfo]:
        return self.run.workspace_root_of(self.package)

    @property
    def workspace_key(self) -> Optional[str]:
        """Name shared steps are deduplicated under: the root, for the root and its members."""
        if self.package.workspace_root:
            return self.package.workspace_root
        if self.package.kind is PackageKind.WORKSPACE_ROOT:
            return self.package.name
        return None

    @property
    def workspace_dir(self) -> Path:
        root = self.workspace_root
        return root.path if root is not None else self.package.path

    def cleaned_packages(self) -> List[str]:
        """Packages whose outputs live under workspace_dir: this one, or a whole workspace."""
        root = self.workspace_root
        if root is None and self.package.kind is PackageKind.WORKSPACE_ROOT:
            root = self.package
        if root is None:
            return [self.name]
        return sorted({self.name, root.name, *(root.workspace_members or [])})

    def sh(self, cmd: str, cwd: Path | None = None) -> None:
        self.runner(cmd, cwd or self.package.path)


SOURCE_STEPS = (Step.REBASE, Step.PUSH)


def _always(ctx: StepContext) -> bool:
    return True


@dataclass(frozen=True)
class StepSpec:
    """
    One entry of a package pipeline.

    cached: skip when the ledger already has the step for the package
    shared: run once per workspace root per run, serialized across siblings
    retry:  extra attempts after a CommandFailure
    """
    step: StepName
    run: Callable[[StepContext], None]
    enabled: Callable[[StepContext], bool] = _always
    retry: int = 0
    cached: bool = True
    shared: bool = False

    @property
    def label(self) -> str:
        return self.step.value if isinstance(self.step, (Step, Suite)) else str(self.step)


# ---------------------------------------------------------------------
# Dependency resolution
# ---------------------------------------------------------------------

def local_archives(ctx: StepContext) -> List[str]:
    """Archive paths of every tier dependency; all must have been packed already."""
    out: List[str] = []
    for dep in ctx.dependencies:
        info = ctx.run.packages.get(dep)
        if info is None:
            raise ConfigurationError(f"Dependency {dep} not found")
        if info.is_service:
            raise ConfigurationError(f"Dependency {dep} is a service")
        archive = ctx.run.artifacts.get(dep)
        if archive is None:
            raise ConfigurationError(f"Dependency {dep} does not have a local archive")
        if not archive.exists():
            # a workspace clean after the dependency was packed
            raise ConfigurationError(f"Archive of {dep} was removed ({archive}); re-run to pack it again")
        out.append(str(archive))
    return out


def pinned_specs(declared: Dict[str, str], pinned: Dict[str, str]) -> List[str]:
    return [f"{name}@{pinned[name]}" for name in sorted(declared) if name in pinned]


def _npm_install(args: Iterable[str], *, dev: bool = False) -> str:
    parts = ["npm", "install"]
    if dev:
        parts.append("-D")
    parts.extend(shlex.quote(a) for a in args)
    return " ".join(parts)


def resolve_deploy_dir(run: RunContext, package: PackageInfo) -> Path:
    """The package dir if it holds the descriptor, else its workspace root's."""
    if not package.is_service:
        raise ConfigurationError(f"Unable to resolve deploy directory; {package.name} is not a service")
    if (package.path / run.deploy_descriptor).exists():
        return package.path
    root = run.workspace_root_of(package)
    if root is not None and (root.path / run.deploy_descriptor).exists():
        return root.path
    raise ConfigurationError(
        f"Unable to resolve deploy directory for {package.name}: no {run.deploy_descriptor} "
        "in the package or its workspace root"
    )


def find_archive(package: PackageInfo, pattern: str) -> Optional[Path]:
    matches = [p for p in package.path.glob(pattern) if p.is_file()]
    if not matches:
        return None
    # a stale archive from an older version may sit next to the fresh one
    return max(matches, key=lambda p: (p.stat().st_mtime, p.name)).resolve()


# ---------------------------------------------------------------------
# Step bodies
# ---------------------------------------------------------------------

def rebase(ctx: StepContext) -> None:
    branch = shlex.quote(f"origin/{ctx.package.default_branch}")
    ctx.sh(f"git fetch origin && git rebase {branch}", cwd=ctx.workspace_dir)
    # new sources: nothing recorded before this point still holds
    ctx.ledger.reset_package_success(ctx.name)


def push(ctx: StepContext) -> None:
    ctx.sh(f"git push --force-with-lease origin {shlex.quote(ctx.package.current_branch or '')}")


def clean(ctx: StepContext) -> None:
    ctx.sh("git reset --hard HEAD && git clean -fdX && rm -f *.tsbuildinfo", cwd=ctx.workspace_dir)
    # build outputs of everything under workspace_dir are gone; the rebased
    # and pushed branch is not
    for name in ctx.cleaned_packages():
        ctx.ledger.reset_package_success(name, keep=SOURCE_STEPS)


def workspace_install(ctx: StepContext) -> None:
    command = "clean-install" if ctx.retrying else "install"
    ctx.sh(f"npm {command}", cwd=ctx.workspace_dir)


def install(ctx: StepContext) -> None:
    args = local_archives(ctx) + pinned_specs(ctx.package.dependencies, ctx.run.pinned_versions)
    if ctx.retrying:
        ctx.sh("git clean -fdX && npm clean-install")
    ctx.sh(_npm_install(args))


def install_dev(ctx: StepContext) -> None:
    args = pinned_specs(ctx.package.dev_dependencies, ctx.run.pinned_versions)
    tool = ctx.run.dev_tool_package
    if tool and tool != ctx.name:
        archive = ctx.run.artifacts.get(tool)
        if archive is not None:
            args.append(str(archive))
    if args:
        ctx.sh(_npm_install(args, dev=True))


def build(ctx: StepContext) -> None:
    ctx.sh("npm run build", cwd=ctx.workspace_dir)


def deploy(ctx: StepContext) -> None:
    ctx.sh("npm run deploy --ignore-scripts", cwd=resolve_deploy_dir(ctx.run, ctx.package))


def pack(ctx: StepContext) -> None:
    # on resume the archive is already on disk; still publish it for dependents
    if not ctx.ledger.has_succeeded(ctx.name, Step.PACK):
        ctx.sh("npm pack")
    archive = find_archive(ctx.package, ctx.run.artifact_pattern)
    if archive is None:
        raise ConfigurationError(f"Archive not found for {ctx.name} ({ctx.run.artifact_pattern})")
    ctx.run.artifacts.publish(ctx.name, archive)


def integration_tests(ctx: StepContext) -> None:
    scripts = ctx.package.scripts
    script = "test:integrationlocal" if "test:integrationlocal" in scripts else "test:integration"
    ctx.sh(f"npm run {script}")


def unit_tests(ctx: StepContext) -> None:
    ctx.sh("npm run test:local")


# ---------------------------------------------------------------------
# Enablement
# ---------------------------------------------------------------------

def _rebase_enabled(ctx: StepContext) -> bool:
    return ctx.first_visit and bool(ctx.package.default_branch)


def _push_enabled(ctx: StepContext) -> bool:
    default, current = ctx.package.default_branch, ctx.package.current_branch
    return bool(default and current) and current != "HEAD" and current != default


def _clean_enabled(ctx: StepContext) -> bool:
    if ctx.first_visit:
        return True
    # an earlier run rebased but stopped before cleaning
    return ctx.ledger.has_succeeded(ctx.name, Step.REBASE) and not ctx.ledger.has_succeeded(ctx.name, Step.CLEAN)


def _in_workspace(ctx: StepContext) -> bool:
    return ctx.package.workspace_root is not None


def _is_service(ctx: StepContext) -> bool:
    return ctx.package.is_service


def _is_library(ctx: StepContext) -> bool:
    return ctx.package.is_library


def _has_script(name: str) -> Callable[[StepContext], bool]:
    def enabled(ctx: StepContext) -> bool:
        return name in ctx.package.scripts
    return enabled


PIPELINE: Tuple[StepSpec, ...] = (
    StepSpec(Step.REBASE, rebase, enabled=_rebase_enabled, retry=1, shared=True),
    StepSpec(Step.PUSH, push, enabled=_push_enabled, retry=1),
    StepSpec(Step.CLEAN, clean, enabled=_clean_enabled, shared=True),
    StepSpec(Step.WORKSPACE_INSTALL, workspace_install, enabled=_in_workspace, retry=1),
    StepSpec(Step.INSTALL, install, retry=1),
    StepSpec(Step.INSTALL_DEV, install_dev, retry=1),
    StepSpec(Step.BUILD, build),
    StepSpec(Step.DEPLOY, deploy, enabled=_is_service, retry=1),
    StepSpec(Step.PACK, pack, enabled=_is_library, cached=False),
)

SUITE_STEPS: Tuple[StepSpec, ...] = (
    StepSpec(Suite.INTEGRATION_TESTS, integration_tests, enabled=_has_script("test:integration")),
    StepSpec(Suite.UNIT_TESTS, unit_tests, enabled=_has_script("test:local")),
)
