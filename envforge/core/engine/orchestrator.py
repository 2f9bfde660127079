"""
Orchestrator — drives the task graph to convergence.

For every task, in topological order:

    dependency failed/blocked?  → blocked
    probe satisfied?            → skipped
    dry-run?                    → planned
    confirm → apply (retries) → verify
                                → applied | failed

Task-local errors (ApplyError, VerificationFailed) are caught here and
turned into outcomes; they never unwind past one task. A failure of a
fatal task aborts the run; everything not yet resolved is then recorded
as blocked, so every task gets exactly one outcome.
A run log that can no longer be written also aborts the run: nothing
is applied without an audit trail.

Single-threaded: tasks run one at a time. ``cancel()`` may be called
from a signal handler; the current task finishes its apply/verify
cycle and the run stops before the next one.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from envforge.adapters.base import CommandRunner
from envforge.core.engine.confirm import AutoConfirmer, Confirmer
from envforge.core.engine.graph import TaskGraph
from envforge.core.errors import ApplyError, ApplyErrorKind, VerificationFailed
from envforge.core.models.platform import PlatformInfo
from envforge.core.models.probe import Probe, ProbeContext, ProbeStatus
from envforge.core.models.run import PENDING, RunEvent, RunRecord, RunState
from envforge.core.models.task import FailurePolicy, Phase, Task, TaskOutcome
from envforge.core.persistence.run_log import RunLog
from envforge.core.reliability.retry import RetryPolicy
from envforge.core.services.failure_analysis import classify_failure

logger = logging.getLogger(__name__)

_NOT_RUN = "not-run"
_UNRESOLVED = (TaskOutcome.FAILED, TaskOutcome.BLOCKED)


class Orchestrator:
    """Run one provisioning pass over a task graph.

    Args:
        graph: Validated tasks for this target.
        runner: Executes probe queries and apply commands.
        run_log: Durable event sink; None keeps events in memory only.
        confirmer: Answers ``confirm`` prompts. Defaults to declining.
        platform: Target identity; supplies the default package manager.
        dry_run: Probe only; unsatisfied tasks become ``planned``.
        continue_on_error: Treat every task as degraded.
        env: Extra environment for every command (task env wins).
        sleep: Sleep function used between retries.
        on_event: Called with each event after it is recorded.
    """

    def __init__(
        self,
        graph: TaskGraph,
        runner: CommandRunner,
        *,
        run_log: RunLog | None = None,
        confirmer: Confirmer | None = None,
        platform: PlatformInfo | None = None,
        dry_run: bool = False,
        continue_on_error: bool = False,
        env: dict[str, str] | None = None,
        sleep: Callable[[float], None] = time.sleep,
        on_event: Callable[[RunEvent], None] | None = None,
    ):
        self._graph = graph
        self._runner = runner
        self._run_log = run_log
        self._confirmer = confirmer or AutoConfirmer(False)
        self._platform = platform or PlatformInfo()
        self._dry_run = dry_run
        self._continue_on_error = continue_on_error
        self._env = dict(env or {})
        self._sleep = sleep
        self._on_event = on_event
        self._cancel_requested = False
        self._log_failed = False

    # ── Control ─────────────────────────────────────────────────

    def cancel(self) -> None:
        """Stop before the next task. Safe to call from a signal handler."""
        self._cancel_requested = True

    @property
    def cancel_requested(self) -> bool:
        return self._cancel_requested

    # ── Run ─────────────────────────────────────────────────────

    def run(self) -> RunRecord:
        """Process every task once and return the closed record.

        Raises:
            CyclicDependency: Before any probe or command runs.
        """
        order = self._graph.order()

        record = RunRecord(dry_run=self._dry_run)
        record.state = RunState.EXECUTING
        logger.info(
            "Run %s: %d task(s)%s",
            record.run_id,
            len(order),
            " (dry run)" if self._dry_run else "",
        )

        for task in order:
            if record.state is RunState.ABORTED:
                break
            if self._cancel_requested:
                record.cancelled = True
                record.abort("cancelled by user")
                logger.warning("Run %s cancelled before '%s'", record.run_id, task.name)
                break
            self._process(task, record)

        if record.state is RunState.ABORTED:
            self._block_remaining(order, record)

        record.close()
        logger.info("Run %s %s", record.run_id, record.state.value)
        return record

    def _process(self, task: Task, record: RunRecord) -> None:
        failed_deps = [
            d for d in task.depends_on if record.outcome_of(d) in _UNRESOLVED
        ]
        if failed_deps:
            self._emit(
                record, task.name, Phase.PROBE,
                outcome=TaskOutcome.BLOCKED,
                status=_NOT_RUN,
                detail=f"dependency did not converge: {', '.join(failed_deps)}",
            )
            if self._policy(task) is FailurePolicy.FATAL:
                record.abort(f"fatal task '{task.name}' blocked")
            return

        env = self._task_env(task)
        ctx = ProbeContext(
            runner=self._runner,
            env=env,
            package_manager=self._platform.package_manager,
        )

        # 1. Probe
        status = self._check(task.probe, ctx, task.name)
        detail = task.probe.describe()
        if status is ProbeStatus.SATISFIED:
            self._emit(record, task.name, Phase.PROBE, TaskOutcome.SKIPPED, status, detail)
            return
        if status is ProbeStatus.INDETERMINATE:
            logger.warning("%s: probe indeterminate (%s), treating as unsatisfied", task.name, detail)

        if self._dry_run:
            self._emit(record, task.name, Phase.PROBE, TaskOutcome.PLANNED, status, detail)
            return
        self._emit(record, task.name, Phase.PROBE, PENDING, status, detail)
        if self._log_failed:
            # No audit trail: leave the machine alone
            self._emit(
                record, task.name, Phase.PROBE,
                outcome=TaskOutcome.BLOCKED,
                status=_NOT_RUN,
                detail=f"run aborted: {record.abort_reason}",
            )
            return

        # 2. Confirm + apply
        try:
            self._confirm(task)
            retry = RetryPolicy(
                max_attempts=1 + task.retries,
                base_delay=task.retry_delay,
                sleep=self._sleep,
            )
            retry.call(lambda: self._apply(task, env), label=task.name)
        except ApplyError as e:
            self._fail(record, task, Phase.APPLY, "error", str(e))
            return

        steps = f"{len(task.apply)} step(s) ok"
        verify_probe = task.verify_probe
        if verify_probe is None:
            self._emit(record, task.name, Phase.APPLY, TaskOutcome.APPLIED, "ok", steps)
            return
        self._emit(record, task.name, Phase.APPLY, PENDING, "ok", steps)

        # 3. Verify
        status = self._check(verify_probe, ctx, task.name)
        if status is not ProbeStatus.SATISFIED:
            error = VerificationFailed(task.name, status.value)
            self._fail(record, task, Phase.VERIFY, status, str(error))
            return
        self._emit(
            record, task.name, Phase.VERIFY, TaskOutcome.APPLIED, status,
            verify_probe.describe(),
        )

    # ── Steps ───────────────────────────────────────────────────

    def _check(self, probe: Probe, ctx: ProbeContext, task: str) -> ProbeStatus:
        try:
            return probe.check(ctx)
        except Exception:
            logger.exception("%s: probe raised; treating as indeterminate", task)
            return ProbeStatus.INDETERMINATE

    def _confirm(self, task: Task) -> None:
        if not task.confirm:
            return
        try:
            accepted = self._confirmer.confirm(task.name, task.confirm)
        except Exception as e:
            logger.warning("%s: confirmation prompt failed: %r", task.name, e)
            raise ApplyError(
                ApplyErrorKind.STRUCTURAL, f"confirmation failed: {e!r}",
            ) from e
        if not accepted:
            raise ApplyError(ApplyErrorKind.STRUCTURAL, "confirmation declined")

    def _apply(self, task: Task, env: dict[str, str]) -> None:
        total = len(task.apply)
        for step, command in enumerate(task.apply):
            logger.info("%s: step %d/%d", task.name, step + 1, total)
            logger.debug("%s: $ %s", task.name, command)
            result = self._runner.run(command, timeout=task.timeout, env=env)
            if not result.ok:
                raise classify_failure(result, step=step)

    def _fail(
        self,
        record: RunRecord,
        task: Task,
        phase: Phase,
        status: str,
        reason: str,
    ) -> None:
        self._emit(record, task.name, phase, TaskOutcome.FAILED, status, reason)
        logger.error("%s failed: %s", task.name, reason)
        if self._policy(task) is FailurePolicy.FATAL:
            record.abort(f"fatal task '{task.name}' failed")
        else:
            logger.warning("%s is degraded; continuing with unaffected tasks", task.name)

    def _block_remaining(self, order: list[Task], record: RunRecord) -> None:
        reason = f"run aborted: {record.abort_reason}"
        for task in order:
            if record.outcome_of(task.name) is None:
                self._emit(
                    record, task.name, Phase.PROBE,
                    outcome=TaskOutcome.BLOCKED, status=_NOT_RUN, detail=reason,
                )

    # ── Helpers ─────────────────────────────────────────────────

    def _policy(self, task: Task) -> FailurePolicy:
        if self._continue_on_error:
            return FailurePolicy.DEGRADED
        return task.failure_policy

    def _task_env(self, task: Task) -> dict[str, str]:
        return {**self._env, **task.env}

    def _emit(
        self,
        record: RunRecord,
        task: str,
        phase: Phase,
        outcome: str,
        status: str,
        detail: str = "",
    ) -> None:
        event = RunEvent(
            run_id=record.run_id,
            task=task,
            phase=phase,
            outcome=str(outcome),
            status=str(status),
            detail=detail,
        )
        record.append(event)
        self._persist(event, record)
        if event.terminal:
            logger.info("%s → %s", task, event.outcome)
        if self._on_event is not None:
            self._on_event(event)

    def _persist(self, event: RunEvent, record: RunRecord) -> None:
        """Write ``event`` to the run log; a write failure aborts the run.

        After the first failure the log is no longer written to and the
        remaining events live in the in-memory record only.
        """
        if self._run_log is None or self._log_failed:
            return
        try:
            self._run_log.write(event)
        except OSError as e:
            self._log_failed = True
            logger.error("Run log write failed for %s: %s", event.task, e)
            record.abort(f"run log write failed: {e}")
