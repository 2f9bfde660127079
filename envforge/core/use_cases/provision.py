"""
Provision use case — converge this machine toward the catalog.

The full vertical slice from CLI intent to a logged, reported run:

    resolve catalog → detect platform → load + filter tasks
        → build graph (restrict to --only) → order
        → open run log → orchestrate → summarize

Everything up to and including ``order`` is pure validation; a
ConfigurationError there is returned as ``error`` before any probe or
command has run.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from pathlib import Path

from envforge.adapters.base import CommandRunner
from envforge.adapters.shell.command import ShellCommandRunner
from envforge.core.config.loader import Catalog, load_catalog, resolve_catalog_path
from envforge.core.engine.confirm import Confirmer
from envforge.core.engine.graph import TaskGraph
from envforge.core.engine.orchestrator import Orchestrator
from envforge.core.engine.reporter import ExitCode, RunReport, summarize
from envforge.core.errors import ConfigurationError
from envforge.core.models.platform import PlatformInfo
from envforge.core.models.run import RunEvent, RunRecord
from envforge.core.models.task import Task
from envforge.core.persistence.run_log import RunLog, default_log_path
from envforge.core.services.platform import detect_platform

logger = logging.getLogger(__name__)


@dataclass
class Plan:
    """A validated, ordered set of tasks for this machine."""

    catalog_path: Path
    catalog: Catalog
    platform: PlatformInfo
    graph: TaskGraph
    order: list[Task]

    def to_dict(self) -> dict:
        return {
            "catalog": str(self.catalog_path),
            "name": self.catalog.name,
            "platform": self.platform.to_dict(),
            "tasks": [
                {
                    "name": t.name,
                    "description": t.description,
                    "depends_on": list(t.depends_on),
                    "failure_policy": t.failure_policy.value,
                    "probe": t.probe.describe(),
                    "confirm": bool(t.confirm),
                }
                for t in self.order
            ],
        }


def build_plan(
    config_path: Path | None = None,
    only: Iterable[str] | None = None,
    platform: PlatformInfo | None = None,
) -> Plan:
    """Load, filter, restrict and order the catalog.

    Args:
        config_path: Explicit catalog file; None follows the lookup order.
        only: Task names to run (their dependencies are added).
        platform: Target identity; detected when None.

    Raises:
        ConfigurationError: Invalid catalog, duplicate or unknown task,
            or a dependency cycle.
    """
    path = resolve_catalog_path(config_path)
    platform = platform or detect_platform()

    catalog = load_catalog(path, platform=platform)
    graph = TaskGraph(catalog.tasks_for(platform))

    requested = [name for name in (only or []) if name]
    if requested:
        graph = graph.restrict(requested)
        logger.debug("Restricted to %s (+deps): %s", requested, graph.names)

    order = graph.order()
    return Plan(
        catalog_path=path,
        catalog=catalog,
        platform=platform,
        graph=graph,
        order=order,
    )


@dataclass
class ProvisionResult:
    """Result of one provisioning invocation."""

    plan: Plan | None = None
    record: RunRecord | None = None
    report: RunReport | None = None
    log_path: Path | None = None
    error: str | None = None

    @property
    def exit_code(self) -> ExitCode:
        if self.error or self.report is None:
            return ExitCode.CONFIG_ERROR
        return self.report.exit_code

    def to_dict(self) -> dict:
        result: dict = {"exit_code": int(self.exit_code)}
        if self.error:
            result["error"] = self.error
            return result

        if self.plan:
            result["catalog"] = str(self.plan.catalog_path)
            result["platform"] = self.plan.platform.to_dict()
        if self.log_path:
            result["run_log"] = str(self.log_path)
        if self.report:
            result["report"] = self.report.to_dict()
        return result


def provision(
    config_path: Path | None = None,
    *,
    only: Iterable[str] | None = None,
    dry_run: bool = False,
    continue_on_error: bool = False,
    log_path: Path | None = None,
    runner: CommandRunner | None = None,
    confirmer: Confirmer | None = None,
    platform: PlatformInfo | None = None,
    on_start: Callable[[Orchestrator], None] | None = None,
    on_event: Callable[[RunEvent], None] | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> ProvisionResult:
    """Run one provisioning pass.

    Args:
        config_path: Explicit catalog file.
        only: Restrict the run to these tasks and their dependencies.
        dry_run: Probe only; report what would be applied.
        continue_on_error: Treat fatal tasks as degraded.
        log_path: Run log file; defaults to ``default_log_path()``.
        runner: Command runner (a ShellCommandRunner when None).
        confirmer: Answers ``confirm`` prompts.
        platform: Target identity; detected when None.
        on_start: Called with the orchestrator before the first task
            (the CLI wires SIGINT to ``cancel()`` here).
        on_event: Called with each recorded event.
        sleep: Sleep function used between retries.

    Returns:
        ProvisionResult; ``error`` is set for configuration problems.
    """
    result = ProvisionResult()

    # ── Validate everything before touching the machine ─────────
    try:
        plan = build_plan(config_path, only=only, platform=platform)
    except ConfigurationError as e:
        result.error = str(e)
        return result
    result.plan = plan

    # ── Open the run log (fail loudly, before any task) ─────────
    log_path = log_path or default_log_path()
    result.log_path = log_path
    run_log = RunLog(log_path)
    try:
        run_log.open()
    except OSError as e:
        result.error = f"Cannot open run log {log_path}: {e}"
        return result

    # ── Execute ─────────────────────────────────────────────────
    with run_log:
        orchestrator = Orchestrator(
            plan.graph,
            runner or ShellCommandRunner(),
            run_log=run_log,
            confirmer=confirmer,
            platform=plan.platform,
            dry_run=dry_run,
            continue_on_error=continue_on_error,
            sleep=sleep,
            on_event=on_event,
        )
        if on_start is not None:
            on_start(orchestrator)
        record = orchestrator.run()

    result.record = record
    result.report = summarize(record)
    logger.info(
        "Run %s finished: %s (exit %d)",
        record.run_id,
        result.report.status,
        int(result.report.exit_code),
    )
    return result
