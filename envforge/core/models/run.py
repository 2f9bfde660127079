"""
Run models — events and the per-run record.

A RunRecord is created when a run starts, appended to while tasks are
processed, and closed when the run ends. After ``close()`` it is
read-only: the reporter only reads it.

Every task gets exactly one terminal outcome; an outcome, once set,
is never revisited.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel, Field

from envforge.core.models.task import Phase, TaskOutcome

# Event outcome for a phase that does not end the task.
PENDING = "pending"


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


def generate_run_id() -> str:
    """Generate a unique run ID."""
    now = datetime.now(UTC).strftime("%Y%m%d-%H%M%S")
    return f"run-{now}-{uuid.uuid4().hex[:6]}"


class RunState(StrEnum):
    """Global run states."""

    INITIALIZING = "initializing"
    EXECUTING = "executing"
    COMPLETED = "completed"
    ABORTED = "aborted"


class RunEvent(BaseModel):
    """One line of the run log.

    ``outcome`` is the task's terminal outcome when this event decides
    it, otherwise ``pending``. ``status`` carries the raw phase result
    (probe status, ``ok``/``error`` for apply).
    """

    timestamp: str = Field(default_factory=_now_iso)
    run_id: str = ""
    task: str
    phase: Phase
    outcome: str = PENDING
    status: str = ""
    detail: str = ""

    @property
    def terminal(self) -> bool:
        return self.outcome != PENDING


@dataclass
class RunRecord:
    """Append-only record of one invocation."""

    run_id: str = field(default_factory=generate_run_id)
    dry_run: bool = False
    state: RunState = RunState.INITIALIZING
    started_at: str = field(default_factory=_now_iso)
    ended_at: str | None = None

    events: list[RunEvent] = field(default_factory=list)
    outcomes: dict[str, TaskOutcome] = field(default_factory=dict)
    details: dict[str, str] = field(default_factory=dict)

    cancelled: bool = False
    abort_reason: str = ""

    @property
    def closed(self) -> bool:
        return self.ended_at is not None

    def append(self, event: RunEvent) -> None:
        """Append an event; terminal events also fix the task's outcome."""
        if self.closed:
            raise RuntimeError(f"Run {self.run_id} is closed; cannot append events")
        if event.terminal:
            if event.task in self.outcomes:
                raise RuntimeError(
                    f"Task '{event.task}' already resolved as "
                    f"{self.outcomes[event.task].value}"
                )
            self.outcomes[event.task] = TaskOutcome(event.outcome)
            if event.detail:
                self.details[event.task] = event.detail
        self.events.append(event)

    def outcome_of(self, task: str) -> TaskOutcome | None:
        return self.outcomes.get(task)

    def abort(self, reason: str) -> None:
        """Move the run to ABORTED. The first reason wins."""
        if self.state is not RunState.ABORTED:
            self.state = RunState.ABORTED
            self.abort_reason = reason

    def close(self) -> None:
        """End the run. No further events are accepted."""
        if self.state is RunState.EXECUTING:
            self.state = RunState.COMPLETED
        self.ended_at = _now_iso()

    def count(self, outcome: TaskOutcome) -> int:
        return sum(1 for o in self.outcomes.values() if o is outcome)
