# ledger.py
from __future__ import annotations

import json
import threading
from pathlib import Path
from typing import Dict, Iterable, List, Set, Union

from .model import Step, Suite

# ---------------------------------------------------------------------
# Success ledger
# ---------------------------------------------------------------------
# File layout (one JSON object, rewritten in full on every change):
#
#   {
#     "@scope/lib-a": ["Build", "Install", "Pack"],
#     "@scope/svc-b": ["Clean", "Rebase"]
#   }
#
# A step listed for a package means it completed for that package and can be
# skipped on the next run. Lists are sets; order carries no meaning.
# ---------------------------------------------------------------------

DEFAULT_LEDGER_FILE = "successful-packages.json"

StepName = Union[Step, Suite, str]


def _key(step: StepName) -> str:
    return step.value if isinstance(step, (Step, Suite)) else str(step)


def _read_ledger(path: Path) -> Dict[str, Set[str]]:
    """Missing or unreadable file means a first run."""
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return {}
    if not isinstance(raw, dict):
        return {}

    out: Dict[str, Set[str]] = {}
    for pkg, steps in raw.items():
        if isinstance(steps, list):
            out[str(pkg)] = {str(s) for s in steps}
    return out


class SuccessLedger:
    """
    Durable record of which steps succeeded for which package.

    Loaded once; every mutation rewrites the file before returning. All
    access goes through one lock so pipelines running side by side in a tier
    never interleave writes.
    """

    def __init__(self, path: str | Path = DEFAULT_LEDGER_FILE):
        self.path = Path(path)
        self._lock = threading.RLock()
        self._successes: Dict[str, Set[str]] = _read_ledger(self.path)

        # per-run only: workspace root -> steps already done for the whole workspace
        self._workspace_done: Dict[str, Set[str]] = {}
        self._workspace_locks: Dict[str, threading.Lock] = {}

    # ---- queries ----

    def has_seen(self, pkg: str) -> bool:
        with self._lock:
            return pkg in self._successes

    def has_succeeded(self, pkg: str, step: StepName) -> bool:
        with self._lock:
            return _key(step) in self._successes.get(pkg, set())

    def snapshot(self) -> Dict[str, List[str]]:
        with self._lock:
            return {pkg: sorted(steps) for pkg, steps in self._successes.items()}

    # ---- mutations (each one persists) ----

    def record_success(self, pkg: str, step: StepName) -> None:
        with self._lock:
            self._successes.setdefault(pkg, set()).add(_key(step))
            self._write()

    def reset_package_success(self, pkg: str, keep: Iterable[StepName] = ()) -> None:
        """Forget everything recorded for pkg, except the steps listed in keep."""
        with self._lock:
            previous = self._successes.pop(pkg, set())
            kept = previous & {_key(s) for s in keep}
            if kept:
                self._successes[pkg] = kept
            self._write()

    def _write(self) -> None:
        payload = json.dumps(self.snapshot(), indent=2, sort_keys=True)
        tmp = self.path.with_name(self.path.name + ".tmp")
        try:
            tmp.write_text(payload, encoding="utf-8")
            tmp.replace(self.path)
        finally:
            if tmp.exists():
                tmp.unlink(missing_ok=True)

    # ---- workspace-wide completion (not persisted) ----

    def workspace_lock(self, root: str) -> threading.Lock:
        with self._lock:
            lock = self._workspace_locks.get(root)
            if lock is None:
                lock = threading.Lock()
                self._workspace_locks[root] = lock
            return lock

    def workspace_done(self, root: str, step: StepName) -> bool:
        with self._lock:
            return _key(step) in self._workspace_done.get(root, set())

    def mark_workspace_done(self, root: str, step: StepName) -> None:
        with self._lock:
            self._workspace_done.setdefault(root, set()).add(_key(step))
