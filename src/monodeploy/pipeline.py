# pipeline.py
from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Dict, Iterable, List, Sequence

from .errors import CommandFailure, ConfigurationError, StepError
from .ledger import SuccessLedger
from .model import RunContext
from .shell import CommandRunner, run_command
from .steps import PIPELINE, StepContext, StepSpec
from .ui.console import Console, get_console

DEFAULT_WORKERS = 4

# package statuses reported by run_tiers
OK = "ok"
FAILED = "failed"
FAILED_ALLOWED = "failed(allowed)"
CANCELLED = "cancelled"
SKIPPED = "skipped"


# ----------------------------------------------------------------------
# One step: retry loop and workspace dedup
# ----------------------------------------------------------------------

def _attempt(spec: StepSpec, ctx: StepContext, console: Console) -> None:
    """Run the step body; a CommandFailure gets spec.retry more tries."""
    for attempt in range(spec.retry + 1):
        ctx.retrying = attempt > 0
        console.print_step(ctx.name, spec.label, retrying=ctx.retrying)
        try:
            spec.run(ctx)
            return
        except CommandFailure as e:
            if attempt >= spec.retry:
                raise
            console.print_retry(ctx.name, spec.label, str(e))
        finally:
            ctx.retrying = False


def _run_step(spec: StepSpec, ctx: StepContext, console: Console) -> None:
    root = ctx.workspace_key if spec.shared else None
    if root is None:
        _attempt(spec, ctx, console)
        ctx.ledger.record_success(ctx.name, spec.step)
        return

    # siblings queue here; the first one does the work for the whole workspace
    with ctx.ledger.workspace_lock(root):
        if ctx.ledger.workspace_done(root, spec.step):
            console.print_step_skipped(ctx.name, spec.label, f"done for workspace {root}")
        else:
            _attempt(spec, ctx, console)
            ctx.ledger.mark_workspace_done(root, spec.step)
        ctx.ledger.record_success(ctx.name, spec.step)


# ----------------------------------------------------------------------
# One package: steps in strict sequence
# ----------------------------------------------------------------------

def run_package(
    name: str,
    dependencies: List[str],
    run_ctx: RunContext,
    ledger: SuccessLedger,
    runner: CommandRunner = run_command,
    steps: Sequence[StepSpec] = PIPELINE,
) -> None:
    """
    Drive one package through its steps.

    Each enabled step is skipped when the ledger already has it, otherwise run
    and recorded before the next one starts.

    Raises:
      StepError: a step failed after its retries, or hit a configuration error
    """
    console = get_console()
    try:
        package = run_ctx.package(name)
    except ConfigurationError as e:
        raise StepError(kind="configuration", package=name, step="-", message=str(e)) from e

    ctx = StepContext(
        package=package,
        dependencies=list(dependencies),
        run=run_ctx,
        ledger=ledger,
        runner=runner,
        first_visit=not ledger.has_seen(name),
    )

    for spec in steps:
        try:
            if not spec.enabled(ctx):
                continue
            if spec.cached and ledger.has_succeeded(name, spec.step):
                console.print_step_skipped(name, spec.label, "already succeeded")
                continue
            _run_step(spec, ctx, console)
        except CommandFailure as e:
            raise StepError(
                kind="command_failed",
                package=name,
                step=spec.label,
                message=str(e),
                details={"exit_code": e.exit_code, "attempts": spec.retry + 1},
            ) from e
        except ConfigurationError as e:
            raise StepError(kind="configuration", package=name, step=spec.label, message=str(e)) from e


# ----------------------------------------------------------------------
# Tiers: sequential; packages within a tier on a bounded pool
# ----------------------------------------------------------------------

def _report_failure(console: Console, name: str, exc: BaseException) -> None:
    cause = exc.__cause__
    if isinstance(cause, CommandFailure):
        console.print_failure(name, str(exc), exit_code=cause.exit_code, stderr=cause.stderr)
    else:
        console.print_failure(name, str(exc))


def run_tiers(
    run_ctx: RunContext,
    ledger: SuccessLedger,
    *,
    runner: CommandRunner = run_command,
    max_workers: int = DEFAULT_WORKERS,
    steps: Sequence[StepSpec] = PIPELINE,
    exclude: Iterable[str] = (),
    allow_failure: Iterable[str] = (),
) -> Dict[str, str]:
    """
    Run every tier of run_ctx in order.

    - packages of one tier run concurrently, at most max_workers at a time
    - the next tier starts only when the current one has fully finished
    - on the first failure (outside allow_failure) queued packages of the
      tier are cancelled, running ones finish, and no later tier runs

    Returns:
      package -> "ok" | "failed" | "failed(allowed)" | "cancelled" | "skipped"
      Packages of tiers that never started are absent.
    """
    console = get_console()
    excluded = set(exclude)
    tolerated = set(allow_failure)
    results: Dict[str, str] = {}
    total = len(run_ctx.tiers)

    for idx, tier in enumerate(run_ctx.tiers, start=1):
        names = [name for name in tier if name not in excluded]
        for name in tier:
            if name in excluded:
                results[name] = SKIPPED
        console.print_tier(idx, total, names)
        if not names:
            continue

        aborted = False
        with ThreadPoolExecutor(max_workers=max_workers) as pool:
            futures = {
                pool.submit(run_package, name, tier[name], run_ctx, ledger, runner, steps): name
                for name in names
            }

            for future in as_completed(futures):
                name = futures[future]
                if future.cancelled():
                    results[name] = CANCELLED
                    continue
                try:
                    future.result()
                except Exception as e:
                    _report_failure(console, name, e)
                    if name in tolerated:
                        results[name] = FAILED_ALLOWED
                        continue
                    results[name] = FAILED
                    if not aborted:
                        aborted = True
                        for other in futures:
                            other.cancel()
                else:
                    results[name] = OK
                    console.print_package_done(name)

        if aborted:
            break

    return results


def has_failures(results: Dict[str, str]) -> bool:
    return any(status == FAILED for status in results.values())
