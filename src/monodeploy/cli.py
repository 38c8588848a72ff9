# cli.py
from __future__ import annotations

import sys
from pathlib import Path

import click

from monodeploy import config
from monodeploy.config import RunSettings, load_pins, parse_pins
from monodeploy.errors import ConfigurationError
from monodeploy.ledger import SuccessLedger
from monodeploy.model import RunContext
from monodeploy.pipeline import has_failures, run_tiers
from monodeploy.registry import resolve_registry, services as list_services
from monodeploy.shell import run_command
from monodeploy.suites import run_suites
from monodeploy.tiers import check_tier_order, load_tiers, resolve_target_tiers, tier_packages
from monodeploy.ui.console import Console, get_console, set_console


def _resolve_tiers(tiers_file: Path, targets: list[str]):
    tiers = load_tiers(tiers_file)
    check_tier_order(tiers)
    return resolve_target_tiers(targets, tiers)


def _build_context(settings: RunSettings) -> RunContext:
    packages = resolve_registry(settings.root, descriptor=settings.deploy_descriptor)
    tiers = _resolve_tiers(settings.tiers_file, settings.targets)
    return RunContext(
        packages=packages,
        tiers=tiers,
        pinned_versions=dict(settings.pinned_versions),
        deploy_descriptor=settings.deploy_descriptor,
        artifact_pattern=settings.artifact_pattern,
        dev_tool_package=settings.dev_tool_package,
    )


def _fail(exc: Exception) -> None:
    console = get_console()
    if isinstance(exc, ConfigurationError):
        console.print_error("Configuration error", str(exc))
    else:
        console.print_exception(exc)
    sys.exit(1)


root_option = click.option(
    "--root",
    default=".",
    show_default=True,
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    help="Workspace root to scan for package.json files",
)
tiers_option = click.option(
    "--tiers",
    "tiers_file",
    default=config.TIERS_FILE,
    show_default=True,
    type=click.Path(path_type=Path),
    help="Tier definition JSON file",
)


@click.group()
@click.option(
    "--debug",
    is_flag=True,
    default=False,
    help="Enable debug mode (show stack traces and command output)",
)
@click.pass_context
def cli(ctx, debug):
    """monodeploy: tiered, resumable build and deploy for npm monorepos."""
    console = Console(debug=debug)
    set_console(console)
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug


@cli.command()
@click.argument("targets", nargs=-1)
@root_option
@tiers_option
@click.option("--ledger", "ledger_file", default=config.LEDGER_FILE, show_default=True,
              type=click.Path(dir_okay=False, path_type=Path), help="Success ledger file")
@click.option("--workers", default=config.WORKERS, show_default=True, type=int,
              help="Packages built concurrently within a tier")
@click.option("--pin", "pins", multiple=True, help="Pin an external dependency: NAME=VERSION (repeatable)")
@click.option("--pins-file", default=None, type=click.Path(exists=True, dir_okay=False, path_type=Path),
              help="JSON object of pinned external dependency versions")
@click.pass_context
def deploy(ctx, targets, root, tiers_file, ledger_file, workers, pins, pins_file):
    """Build, deploy and pack TARGETS and everything they depend on (all packages if none given)."""
    console = get_console()

    try:
        pinned = load_pins(pins_file) if pins_file else {}
        pinned.update(parse_pins(pins))
        settings = RunSettings(
            root=root,
            tiers_file=tiers_file,
            ledger_file=ledger_file,
            workers=workers,
            targets=list(targets),
            pinned_versions=pinned,
        )
        run_ctx = _build_context(settings)
        ledger = SuccessLedger(settings.ledger_file)
        console.print_debug(f"Ledger: {settings.ledger_file}, workers: {settings.workers}, pins: {pinned}")

        console.print_run_started(
            root=str(settings.root.resolve()),
            tier_count=len(run_ctx.tiers),
            package_count=len(tier_packages(run_ctx.tiers)),
            targets=settings.targets,
        )
        results = run_tiers(run_ctx, ledger, runner=run_command, max_workers=settings.workers)
        console.print_results(results)

        if has_failures(results):
            console.print_info(f"\nCompleted steps are recorded in {settings.ledger_file}; re-run to resume.")
            sys.exit(1)

    except KeyboardInterrupt:
        console.print_info("\nInterrupted by user")
        sys.exit(130)
    except Exception as e:
        _fail(e)


@cli.command()
@click.argument("targets", nargs=-1)
@tiers_option
@click.pass_context
def plan(ctx, targets, tiers_file):
    """Show the tiers a deploy of TARGETS would run, without running anything."""
    try:
        get_console().print_plan(_resolve_tiers(tiers_file, list(targets)))
    except Exception as e:
        _fail(e)


@cli.command(name="test")
@click.argument("targets", nargs=-1)
@root_option
@tiers_option
@click.option("--ledger", "ledger_file", default=config.TEST_LEDGER_FILE, show_default=True,
              type=click.Path(dir_okay=False, path_type=Path), help="Test success ledger file")
@click.option("--exclude", multiple=True, help="Package to leave out (repeatable)")
@click.option("--allow-failure", multiple=True, help="Package whose failing suites do not stop the run (repeatable)")
@click.pass_context
def test_suites(ctx, targets, root, tiers_file, ledger_file, exclude, allow_failure):
    """Run integration and unit test scripts tier by tier."""
    console = get_console()

    try:
        settings = RunSettings(root=root, tiers_file=tiers_file, ledger_file=ledger_file, targets=list(targets))
        run_ctx = _build_context(settings)
        results = run_suites(
            run_ctx,
            SuccessLedger(settings.ledger_file),
            runner=run_command,
            exclude=exclude,
            allow_failure=allow_failure,
        )
        console.print_results(results)
        if has_failures(results):
            sys.exit(1)

    except KeyboardInterrupt:
        console.print_info("\nInterrupted by user")
        sys.exit(130)
    except Exception as e:
        _fail(e)


@cli.command()
@root_option
@click.pass_context
def services(ctx, root):
    """List the deployable service packages under ROOT."""
    try:
        packages = resolve_registry(root, descriptor=config.DEPLOY_DESCRIPTOR, read_branches=False)
        for name in list_services(packages):
            click.echo(name)
    except Exception as e:
        _fail(e)


if __name__ == "__main__":
    cli()
