from .ledger import SuccessLedger
from .model import ArtifactBoard, PackageInfo, PackageKind, RunContext, Step, Suite, Tier
from .pipeline import run_package, run_tiers
from .registry import resolve_registry
from .tiers import check_tier_order, load_tiers, resolve_target_tiers

__all__ = [
    "SuccessLedger",
    "ArtifactBoard",
    "PackageInfo",
    "PackageKind",
    "RunContext",
    "Step",
    "Suite",
    "Tier",
    "run_package",
    "run_tiers",
    "resolve_registry",
    "check_tier_order",
    "load_tiers",
    "resolve_target_tiers",
]
