# registry.py
from __future__ import annotations

import json
import os
import subprocess
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from .errors import ConfigurationError
from .git_facts.git import current_branch, default_branch
from .model import PackageInfo, PackageKind

MANIFEST = "package.json"
IGNORED_DIRS = {"node_modules", ".git"}


def _find_manifests(root: Path) -> List[Path]:
    found: List[Path] = []
    for dirpath, dirnames, filenames in os.walk(root):
        # prune in place so os.walk never descends into dependency caches
        dirnames[:] = sorted(d for d in dirnames if d not in IGNORED_DIRS)
        if MANIFEST in filenames:
            found.append(Path(dirpath) / MANIFEST)
    return found


def _read_manifest(path: Path) -> Dict[str, Any]:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        raise ConfigurationError(f"Manifest not found: {path}")
    except ValueError as e:
        raise ConfigurationError(f"Manifest is not valid JSON: {path} ({e})")
    if not isinstance(data, dict) or not data.get("name"):
        raise ConfigurationError(f"Manifest has no name: {path}")
    return data


def _package_kind(package_dir: Path, manifest: Dict[str, Any], descriptor: str) -> PackageKind:
    if manifest.get("workspaces"):
        return PackageKind.WORKSPACE_ROOT
    scripts = manifest.get("scripts") or {}
    if (package_dir / descriptor).exists() or scripts.get("deploy"):
        return PackageKind.SERVICE
    return PackageKind.LIBRARY


def _branches(package_dir: Path) -> Tuple[Optional[str], Optional[str]]:
    """(default, current); either is None when git cannot tell us."""
    try:
        current: Optional[str] = current_branch(package_dir)
    except (subprocess.CalledProcessError, FileNotFoundError):
        current = None
    try:
        default: Optional[str] = default_branch(package_dir)
    except (subprocess.CalledProcessError, FileNotFoundError):
        default = None
    return default, current


def _workspace_manifests(root_dir: Path, patterns: List[str]) -> List[Path]:
    """Expand workspace entries; literal paths must exist, globs may match nothing."""
    out: List[Path] = []
    for pattern in patterns:
        if any(ch in pattern for ch in "*?["):
            out.extend(sorted(m / MANIFEST for m in root_dir.glob(pattern) if (m / MANIFEST).exists()))
        else:
            out.append(root_dir / pattern / MANIFEST)
    return out


def resolve_registry(
    root: str | Path,
    *,
    descriptor: str = "serverless.ts",
    read_branches: bool = True,
) -> Dict[str, PackageInfo]:
    """
    Discover every package under root.

    Returns:
      package name -> PackageInfo, with workspace members linked to their root.
    """
    root_p = Path(root).resolve()
    by_manifest: Dict[Path, PackageInfo] = {}

    for manifest_path in _find_manifests(root_p):
        manifest = _read_manifest(manifest_path)
        package_dir = manifest_path.parent
        default, current = _branches(package_dir) if read_branches else (None, None)
        by_manifest[manifest_path.resolve()] = PackageInfo(
            name=str(manifest["name"]),
            path=package_dir,
            kind=_package_kind(package_dir, manifest, descriptor),
            manifest=manifest,
            default_branch=default,
            current_branch=current,
        )

    packages: Dict[str, PackageInfo] = {}
    for info in by_manifest.values():
        if info.name in packages:
            raise ConfigurationError(
                f"Duplicate package name {info.name}: {packages[info.name].path} and {info.path}"
            )
        packages[info.name] = info

    # link workspace members to their root
    for info in list(packages.values()):
        if info.kind is not PackageKind.WORKSPACE_ROOT:
            continue
        patterns = info.manifest.get("workspaces") or []
        if isinstance(patterns, dict):
            # yarn-style {"packages": [...]}
            patterns = patterns.get("packages") or []
        members: List[str] = []
        for member_manifest in _workspace_manifests(info.path, list(patterns)):
            member = by_manifest.get(member_manifest.resolve())
            if member is None:
                raise ConfigurationError(
                    f"Workspace {info.name} lists {member_manifest.parent}, which has no {MANIFEST}"
                )
            member.workspace_root = info.name
            members.append(member.name)
        info.workspace_members = members

    return packages


def services(packages: Dict[str, PackageInfo]) -> List[str]:
    return sorted(name for name, info in packages.items() if info.is_service)
