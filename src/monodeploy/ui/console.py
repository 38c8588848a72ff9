"""Console output formatting for monodeploy."""

from __future__ import annotations

import sys
import threading
from typing import Dict, List, Optional


class Console:
    """Centralized console output formatting."""

    def __init__(self, debug: bool = False):
        """
        Initialize console formatter.

        Args:
            debug: If True, show detailed output including stack traces
        """
        self.debug = debug
        # packages in a tier report from worker threads
        self._lock = threading.Lock()

    def _emit(self, *lines: str, err: bool = False) -> None:
        stream = sys.stderr if err else sys.stdout
        with self._lock:
            for line in lines:
                print(line, file=stream)

    def print_run_started(
        self,
        root: str,
        tier_count: int,
        package_count: int,
        targets: List[str],
    ) -> None:
        """Print run start information."""
        self._emit(
            "\nRUN STARTED",
            f"Root: {root}",
            f"Targets: {', '.join(targets) if targets else 'all'}",
            f"Tiers: {tier_count}",
            f"Packages: {package_count}",
            "",
        )

    def print_tier(self, index: int, total: int, packages: List[str]) -> None:
        """Print tier header."""
        self._emit(f"\n=== Tier {index}/{total}: {', '.join(packages)} ===")

    def print_plan(self, tiers: List[Dict[str, List[str]]]) -> None:
        """Print resolved tiers without running them."""
        if not tiers:
            self._emit("Nothing to do: no tier contains a requested package")
            return
        for idx, tier in enumerate(tiers, start=1):
            lines = [f"Tier {idx}"]
            for pkg, deps in tier.items():
                lines.append(f"  {pkg}" + (f" (needs {', '.join(deps)})" if deps else ""))
            self._emit(*lines)

    def print_step(self, package: str, step: str, retrying: bool = False) -> None:
        """Print step start message."""
        suffix = " (retry)" if retrying else ""
        self._emit(f"[{package}] STEP: {step}{suffix}")

    def print_step_skipped(self, package: str, step: str, reason: str) -> None:
        self._emit(f"[{package}] STEP SKIPPED: {step} ({reason})")

    def print_retry(self, package: str, step: str, reason: str) -> None:
        """Print retry notice after a transient failure."""
        self._emit(f"[{package}] RETRY: {step} failed ({reason})")

    def print_package_done(self, package: str) -> None:
        self._emit(f"[{package}] STATUS: success")

    def print_failure(
        self,
        name: str,
        reason: str,
        exit_code: Optional[int] = None,
        stderr: Optional[str] = None,
    ) -> None:
        """
        Print failure message.

        Args:
            name: Package name
            reason: Failure reason/error message
            exit_code: Optional exit code of the failed command
            stderr: Optional command stderr tail, shown in debug mode
        """
        lines = [f"\nPACKAGE FAILED: {name}"]
        if exit_code is not None:
            lines.append(f"Exit code: {exit_code}")
        if self.debug:
            lines.append(f"Error details: {reason}")
            if stderr:
                lines.append(stderr.rstrip())
        else:
            # first line of error for non-debug mode
            lines.append(f"Error: {reason.splitlines()[0] if reason else 'Unknown error'}")
        self._emit(*lines)

    def print_results(self, results: Dict[str, str]) -> None:
        """Print final results summary."""
        lines = ["\n" + "=" * 40, "RESULTS", "=" * 40]
        for pkg, status in results.items():
            status_display = status.upper() if status != "ok" else "SUCCESS"
            lines.append(f"  {pkg}: {status_display}")
        self._emit(*lines)

    def print_error(self, title: str, message: str) -> None:
        """Print structured error message."""
        self._emit(f"\nERROR: {title}", message, err=True)

    def print_exception(self, exc: Exception) -> None:
        """Print exception, with full traceback only in debug mode."""
        if self.debug:
            import traceback
            traceback.print_exc()
        else:
            self._emit(f"Error: {exc}", err=True)

    def print_info(self, message: str) -> None:
        """Print informational message."""
        self._emit(message)

    def print_debug(self, message: str) -> None:
        """Print debug message (only if debug mode enabled)."""
        if self.debug:
            self._emit(f"[DEBUG] {message}", err=True)


# Global console instance (initialized by the CLI)
_console: Optional[Console] = None


def get_console() -> Console:
    """Get the global console instance."""
    global _console
    if _console is None:
        _console = Console()
    return _console


def set_console(console: Console) -> None:
    """Set the global console instance."""
    global _console
    _console = console
