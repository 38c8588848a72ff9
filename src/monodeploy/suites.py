# suites.py
from __future__ import annotations

from typing import Dict, Iterable

from .ledger import SuccessLedger
from .model import RunContext
from .pipeline import run_tiers
from .shell import CommandRunner, run_command
from .steps import SUITE_STEPS


def run_suites(
    run_ctx: RunContext,
    ledger: SuccessLedger,
    *,
    runner: CommandRunner = run_command,
    exclude: Iterable[str] = (),
    allow_failure: Iterable[str] = (),
    max_workers: int = 1,
) -> Dict[str, str]:
    """
    Run integration and unit test scripts tier by tier.

    Uses its own ledger so passing suites are not re-run after a fix
    elsewhere. Defaults to one package at a time: integration suites tend to
    share local resources (ports, databases).
    """
    return run_tiers(
        run_ctx,
        ledger,
        runner=runner,
        max_workers=max_workers,
        steps=SUITE_STEPS,
        exclude=exclude,
        allow_failure=allow_failure,
    )
