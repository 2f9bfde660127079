"""
Error taxonomy for the provisioning engine.

Two families:

    ConfigurationError  → raised while loading the catalog or building the
                          task graph, before any command runs. Aborts the
                          whole invocation (exit code 3).
    ApplyError          → raised while applying a single task. Caught at the
                          orchestrator boundary and turned into a Failed
                          outcome; never unwinds past one task.

An indeterminate probe is not an exception: it is a ProbeStatus value
that the orchestrator treats as "not yet satisfied".
"""

from __future__ import annotations

from enum import StrEnum


# ── Task-local errors ───────────────────────────────────────────


class ApplyErrorKind(StrEnum):
    """Why an apply step failed."""

    NETWORK = "network"
    PERMISSION = "permission"
    STRUCTURAL = "structural"
    TIMEOUT = "timeout"


# Only transient kinds are worth another attempt.
RETRYABLE_KINDS = frozenset({ApplyErrorKind.NETWORK, ApplyErrorKind.TIMEOUT})


class ApplyError(Exception):
    """An apply action did not complete.

    Args:
        kind: Failure category (network, permission, structural, timeout).
        message: Proximate cause, suitable for the run log.
        step: Index of the failing command within the task's apply list.
        exit_code: Process exit code, when a process ran at all.
    """

    def __init__(
        self,
        kind: ApplyErrorKind | str,
        message: str,
        *,
        step: int | None = None,
        exit_code: int | None = None,
    ):
        super().__init__(message)
        self.kind = ApplyErrorKind(kind)
        self.message = message
        self.step = step
        self.exit_code = exit_code

    @property
    def retryable(self) -> bool:
        return self.kind in RETRYABLE_KINDS

    def __str__(self) -> str:
        return f"{self.kind.value} error: {self.message}"


class VerificationFailed(Exception):
    """Apply exited cleanly but the post-apply probe still disagrees."""

    def __init__(self, task: str, status: str):
        super().__init__(
            f"apply reported success but '{task}' did not converge "
            f"(post-verify probe: {status})"
        )
        self.task = task
        self.status = status


# ── Configuration errors ────────────────────────────────────────


class ConfigurationError(Exception):
    """The catalog or task graph is invalid. Raised before any side effect."""


class InvalidCatalog(ConfigurationError):
    """The catalog file is missing, unreadable, or fails validation."""


class DuplicateTask(ConfigurationError):
    """Two tasks applicable to this platform share a name."""

    def __init__(self, name: str):
        super().__init__(f"Duplicate task name: '{name}'")
        self.name = name


class UnknownTaskReference(ConfigurationError):
    """A dependency or ``--only`` entry names a task that does not exist."""

    def __init__(self, name: str, referenced_by: str | None = None):
        if referenced_by:
            msg = f"Task '{referenced_by}' depends on unknown task '{name}'"
        else:
            msg = f"Unknown task: '{name}'"
        super().__init__(msg)
        self.name = name
        self.referenced_by = referenced_by


class CyclicDependency(ConfigurationError):
    """The dependency relation contains a cycle."""

    def __init__(self, tasks: list[str]):
        path = " -> ".join([*tasks, tasks[0]]) if tasks else "?"
        super().__init__(f"Dependency cycle detected: {path}")
        self.tasks = tasks
