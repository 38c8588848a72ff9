# tiers.py
from __future__ import annotations

import json
from pathlib import Path
from typing import Dict, Iterable, List, Set

from .errors import ConfigurationError
from .model import Tier


def load_tiers(path: str | Path) -> List[Tier]:
    """
    Load the static tier list.

    Expected shape:
      [
        {"@scope/lib-a": []},
        {"@scope/svc-b": ["@scope/lib-a"]}
      ]
    """
    p = Path(path)
    try:
        raw = json.loads(p.read_text(encoding="utf-8"))
    except FileNotFoundError:
        raise ConfigurationError(f"Tiers file not found: {p}")
    except ValueError as e:
        raise ConfigurationError(f"Tiers file is not valid JSON: {p} ({e})")

    if not isinstance(raw, list):
        raise ConfigurationError(f"Tiers file must hold a list of tiers, got {type(raw).__name__}")

    tiers: List[Tier] = []
    for idx, tier in enumerate(raw):
        if not isinstance(tier, dict):
            raise ConfigurationError(f"Tier {idx + 1} must be an object of package -> dependencies")
        parsed: Tier = {}
        for pkg, deps in tier.items():
            if not isinstance(deps, list) or not all(isinstance(d, str) for d in deps):
                raise ConfigurationError(f"Tier {idx + 1}: dependencies of {pkg} must be a list of names")
            parsed[str(pkg)] = list(deps)
        tiers.append(parsed)
    return tiers


def check_tier_order(tiers: List[Tier]) -> None:
    """
    Verify the tier data is already in topological order.

    Every dependency must live in a strictly earlier tier, and a package may
    only appear once. Nothing is reordered here.
    """
    placed: Dict[str, int] = {}
    for idx, tier in enumerate(tiers):
        for pkg in tier:
            if pkg in placed:
                raise ConfigurationError(
                    f"Package '{pkg}' appears in tier {placed[pkg] + 1} and tier {idx + 1}"
                )
            placed[pkg] = idx

    for idx, tier in enumerate(tiers):
        for pkg, deps in tier.items():
            for dep in deps:
                if dep not in placed:
                    raise ConfigurationError(
                        f"Package '{pkg}' in tier {idx + 1} depends on '{dep}', which is in no tier"
                    )
                if placed[dep] >= idx:
                    raise ConfigurationError(
                        f"Package '{pkg}' in tier {idx + 1} depends on '{dep}' from tier {placed[dep] + 1}; "
                        "dependencies must come from an earlier tier"
                    )


def resolve_target_tiers(targets: Iterable[str], tiers: List[Tier]) -> List[Tier]:
    """
    Narrow the tier list to what the targets need.

    Single backward sweep: starting from the last tier, keep the entries that
    are still needed, then swap each kept entry for its dependencies. Tiers
    left empty are dropped. Unknown targets are ignored.
    """
    needed: Set[str] = set(targets)
    if not needed:
        return tiers

    selected: List[Tier] = []
    for tier in reversed(tiers):
        kept: Tier = {pkg: list(deps) for pkg, deps in tier.items() if pkg in needed}
        if not kept:
            continue
        for pkg, deps in kept.items():
            needed.discard(pkg)
            needed.update(deps)
        selected.append(kept)

    selected.reverse()
    return selected


def tier_packages(tiers: List[Tier]) -> List[str]:
    return [pkg for tier in tiers for pkg in tier]
