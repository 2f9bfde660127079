"""
envforge — CLI entrypoint.

Usage:
    envforge                       converge this machine to the catalog
    envforge --dry-run             show what would be applied
    envforge --only docker,node    run a subset (dependencies included)
    envforge --list                print the resolved task order
    python -m envforge.main --help
"""

from __future__ import annotations

import json
import signal
import sys
from collections.abc import Callable
from pathlib import Path

import click

from envforge import __version__
from envforge.core.engine.confirm import AutoConfirmer, ClickConfirmer, Confirmer
from envforge.core.engine.orchestrator import Orchestrator
from envforge.core.engine.reporter import ExitCode, RunReport
from envforge.core.errors import ConfigurationError
from envforge.core.models.run import RunEvent
from envforge.core.models.task import FailurePolicy, TaskOutcome
from envforge.core.observability.logging_config import resolve_level, setup_logging
from envforge.core.use_cases.provision import Plan, build_plan, provision

# outcome → (marker, color)
_OUTCOME_STYLE: dict[TaskOutcome, tuple[str, str]] = {
    TaskOutcome.APPLIED: ("✓", "green"),
    TaskOutcome.SKIPPED: ("•", "blue"),
    TaskOutcome.PLANNED: ("→", "cyan"),
    TaskOutcome.FAILED: ("✗", "red"),
    TaskOutcome.BLOCKED: ("⊘", "yellow"),
}

_STATUS_COLOR = {"ok": "green", "degraded": "yellow", "aborted": "red", "cancelled": "red"}


def _split_only(values: tuple[str, ...]) -> list[str]:
    """``--only a,b --only c`` → ``[a, b, c]``."""
    names: list[str] = []
    for value in values:
        names.extend(part.strip() for part in value.split(",") if part.strip())
    return names


def _pick_confirmer(yes: bool) -> Confirmer:
    if yes:
        return AutoConfirmer(True)
    if sys.stdin.isatty():
        return ClickConfirmer()
    # No one to ask: tasks that need confirmation fail instead of hanging
    return AutoConfirmer(False)


@click.command(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(version=__version__, prog_name="envforge")
@click.option("--dry-run", is_flag=True, help="Probe only; report what would be applied.")
@click.option(
    "--only",
    multiple=True,
    metavar="TASK[,TASK...]",
    help="Run only these tasks and their dependencies (repeatable).",
)
@click.option(
    "--continue-on-error",
    is_flag=True,
    help="Treat every task as degraded: a failure never aborts the run.",
)
@click.option(
    "--log-path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Run log file (default: $ENVFORGE_RUN_LOG or ~/.local/state/envforge/run.ndjson).",
)
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Catalog YAML (default: $ENVFORGE_CATALOG, ./envforge.yml, or the built-in catalog).",
)
@click.option("--yes", "-y", is_flag=True, help="Answer yes to every confirmation prompt.")
@click.option("--list", "list_only", is_flag=True, help="Print the resolved task order and exit.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
def cli(
    dry_run: bool,
    only: tuple[str, ...],
    continue_on_error: bool,
    log_path: Path | None,
    config_path: Path | None,
    yes: bool,
    list_only: bool,
    as_json: bool,
    verbose: bool,
    quiet: bool,
    debug: bool,
) -> None:
    """envforge — converge this machine to a declared set of tools.

    Every task is probed first; only what is missing is installed.
    Running it again is always safe.

    Exit codes: 0 ok, 1 degraded failures, 2 aborted, 3 configuration error.
    """
    # ── Logging setup (once, at process start) ──────────────────
    if debug:
        level = "DEBUG"
    elif verbose:
        level = "INFO"
    elif quiet:
        level = "ERROR"
    else:
        level = resolve_level()
    setup_logging(level=level)

    names = _split_only(only)

    if list_only:
        _list_plan(config_path, names, as_json)
        return

    show_progress = not (as_json or quiet)
    interrupt = _InterruptHandler()

    try:
        result = provision(
            config_path,
            only=names,
            dry_run=dry_run,
            continue_on_error=continue_on_error,
            log_path=log_path,
            confirmer=_pick_confirmer(yes),
            on_start=interrupt.install,
            on_event=_print_event if show_progress else None,
        )
    except KeyboardInterrupt:
        # Second Ctrl-C: the running command was killed, the run log is closed
        click.secho("\n⛔ Aborted: the current task was interrupted.", fg="red", err=True)
        sys.exit(int(ExitCode.ABORTED))
    finally:
        interrupt.restore()

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(int(result.exit_code))

    report = result.report
    if result.error or report is None:
        click.secho(f"❌ {result.error or 'run produced no report'}", fg="red", err=True)
        sys.exit(int(ExitCode.CONFIG_ERROR))

    _render_report(report, verbose=verbose, quiet=quiet)
    if result.log_path and not quiet:
        click.echo(f"   Run log: {result.log_path}")
        click.echo()

    sys.exit(int(report.exit_code))


# ── --list ──────────────────────────────────────────────────────


def _list_plan(config_path: Path | None, names: list[str], as_json: bool) -> None:
    try:
        plan = build_plan(config_path, only=names)
    except ConfigurationError as e:
        if as_json:
            click.echo(json.dumps({"error": str(e), "exit_code": int(ExitCode.CONFIG_ERROR)}, indent=2))
        else:
            click.secho(f"❌ {e}", fg="red", err=True)
        sys.exit(int(ExitCode.CONFIG_ERROR))

    if as_json:
        click.echo(json.dumps(plan.to_dict(), indent=2))
        return
    _render_plan(plan)


def _render_plan(plan: Plan) -> None:
    platform = plan.platform
    click.secho(f"\n📋 {plan.catalog.name}", fg="cyan", bold=True)
    click.echo(f"   Catalog:  {plan.catalog_path}")
    click.echo(
        f"   Platform: {platform.system or '?'} / {platform.distro or '?'}"
        f" / {platform.package_manager or 'no package manager'}"
    )
    click.echo()
    for index, task in enumerate(plan.order, start=1):
        policy = "" if task.failure_policy is FailurePolicy.FATAL else f" [{task.failure_policy.value}]"
        confirm = " (asks)" if task.confirm else ""
        click.echo(f"   {index:>3}. ", nl=False)
        click.secho(task.name, bold=True, nl=False)
        click.echo(f"{policy}{confirm}")
        if task.depends_on:
            click.echo(f"        after: {', '.join(task.depends_on)}")
    click.echo()


# ── Run output ──────────────────────────────────────────────────


def _print_event(event: RunEvent) -> None:
    if not event.terminal:
        return
    outcome = TaskOutcome(event.outcome)
    marker, color = _OUTCOME_STYLE[outcome]
    click.secho(f"   {marker} {event.task}", fg=color, nl=False)
    click.echo(f"  {outcome.value}")


def _render_report(report: RunReport, *, verbose: bool, quiet: bool) -> None:
    color = _STATUS_COLOR.get(report.status, "white")

    if not quiet:
        mode_label = "[dry-run] " if report.dry_run else ""
        click.echo()
        click.secho(f"⚡ {mode_label}{report.run_id}", fg="cyan", bold=True)
        counts = "  ".join(
            f"{name}: {count}" for name, count in report.counts.items() if count
        )
        click.echo(f"   {counts or 'no tasks'}")

    if report.failures:
        click.echo()
        click.secho("   Failed:", fg="red", bold=True)
        for line in report.failures:
            click.echo(f"     ✗ {line.name}")
            for detail in line.detail.splitlines()[:5]:
                click.echo(f"       │ {detail}")

    if report.blocked and (verbose or not report.failures):
        click.echo()
        click.secho("   Blocked:", fg="yellow", bold=True)
        for line in report.blocked:
            click.echo(f"     ⊘ {line.name}  ({line.detail})")
    elif report.blocked:
        click.echo(f"   Blocked: {len(report.blocked)} task(s) (use -v for details)")

    if report.abort_reason:
        click.echo()
        click.secho(f"   Aborted: {report.abort_reason}", fg="red")

    click.echo()
    click.secho(f"   Result: {report.status}", fg=color, bold=True)


# ── SIGINT ──────────────────────────────────────────────────────


class _InterruptHandler:
    """First Ctrl-C asks the orchestrator to stop after the current task.

    A second Ctrl-C raises KeyboardInterrupt, which kills the running
    command and ends the CLI with exit code 2.
    """

    def __init__(self) -> None:
        self._previous: Callable | int | None = None
        self._installed = False

    def install(self, orchestrator: Orchestrator) -> None:
        def _handler(signum: int, frame: object) -> None:
            if orchestrator.cancel_requested:
                raise KeyboardInterrupt
            orchestrator.cancel()
            click.secho(
                "\n⚠️  Interrupted: finishing the current task, then stopping."
                " Press Ctrl-C again to abort immediately.",
                fg="yellow",
                err=True,
            )

        try:
            self._previous = signal.signal(signal.SIGINT, _handler)
            self._installed = True
        except ValueError:
            # Not the main thread; leave the default handler alone
            self._installed = False

    def restore(self) -> None:
        if self._installed:
            previous = self._previous if self._previous is not None else signal.SIG_DFL
            signal.signal(signal.SIGINT, previous)
            self._installed = False


def main() -> None:
    """Console-script entrypoint."""
    cli()


if __name__ == "__main__":
    main()
