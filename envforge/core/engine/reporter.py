"""
Reporter — end-of-run summary and exit-code derivation.

Reads a closed RunRecord; never modifies it.

Exit codes:
    0  every task skipped or applied (or planned, in a dry run)
    1  run completed, but degraded tasks failed or were blocked
    2  run aborted (fatal failure or cancellation)
    3  configuration error (set by the CLI, never derived from a record)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum

from envforge.core.models.run import RunRecord, RunState
from envforge.core.models.task import TaskOutcome


class ExitCode(IntEnum):
    OK = 0
    DEGRADED = 1
    ABORTED = 2
    CONFIG_ERROR = 3


@dataclass
class TaskLine:
    """One task in the report."""

    name: str
    outcome: TaskOutcome
    detail: str = ""

    def to_dict(self) -> dict:
        return {"name": self.name, "outcome": self.outcome.value, "detail": self.detail}


@dataclass
class RunReport:
    """Aggregated view of one run."""

    run_id: str
    state: RunState
    dry_run: bool = False
    cancelled: bool = False
    abort_reason: str = ""
    started_at: str = ""
    ended_at: str | None = None
    tasks: list[TaskLine] = field(default_factory=list)
    counts: dict[str, int] = field(default_factory=dict)

    @property
    def failures(self) -> list[TaskLine]:
        return [t for t in self.tasks if t.outcome is TaskOutcome.FAILED]

    @property
    def blocked(self) -> list[TaskLine]:
        return [t for t in self.tasks if t.outcome is TaskOutcome.BLOCKED]

    @property
    def exit_code(self) -> ExitCode:
        if self.state is RunState.ABORTED:
            return ExitCode.ABORTED
        if self.failures or self.blocked:
            return ExitCode.DEGRADED
        return ExitCode.OK

    @property
    def status(self) -> str:
        if self.exit_code is ExitCode.ABORTED:
            return "cancelled" if self.cancelled else "aborted"
        if self.exit_code is ExitCode.DEGRADED:
            return "degraded"
        return "ok"

    def to_dict(self) -> dict:
        return {
            "run_id": self.run_id,
            "status": self.status,
            "exit_code": int(self.exit_code),
            "state": self.state.value,
            "dry_run": self.dry_run,
            "cancelled": self.cancelled,
            "abort_reason": self.abort_reason,
            "started_at": self.started_at,
            "ended_at": self.ended_at,
            "counts": dict(self.counts),
            "tasks": [t.to_dict() for t in self.tasks],
        }


def summarize(record: RunRecord) -> RunReport:
    """Build the report for a finished run.

    Tasks are listed in the order their outcome was decided, which is
    the execution order.
    """
    lines = [
        TaskLine(name=name, outcome=outcome, detail=record.details.get(name, ""))
        for name, outcome in record.outcomes.items()
    ]
    counts = {o.value: record.count(o) for o in TaskOutcome}
    return RunReport(
        run_id=record.run_id,
        state=record.state,
        dry_run=record.dry_run,
        cancelled=record.cancelled,
        abort_reason=record.abort_reason,
        started_at=record.started_at,
        ended_at=record.ended_at,
        tasks=lines,
        counts=counts,
    )
