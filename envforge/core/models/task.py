"""
Task model — the atomic unit of provisioning.

A task pairs a probe ("is it already there?") with an apply action
("make it so"), declares which tasks must converge first, and says
what a failure means for the rest of the run.
"""

from __future__ import annotations

import re
from enum import StrEnum
from typing import Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from envforge.core.models.platform import PlatformInfo
from envforge.core.models.probe import Probe


class FailurePolicy(StrEnum):
    """What a task failure does to the rest of the run."""

    FATAL = "fatal"          # abort the remaining graph
    DEGRADED = "degraded"    # record and continue with unaffected tasks


class TaskOutcome(StrEnum):
    """Terminal result of one task in one run."""

    SKIPPED = "skipped"      # probe said already satisfied
    APPLIED = "applied"      # ran and converged
    FAILED = "failed"        # apply errored or did not converge
    BLOCKED = "blocked"      # not attempted (dependency failed, or run aborted)
    PLANNED = "planned"      # dry-run only: would be applied

    @property
    def converged(self) -> bool:
        """Whether dependents may run after this outcome."""
        return self in (TaskOutcome.SKIPPED, TaskOutcome.APPLIED)


class Phase(StrEnum):
    """Run log phases."""

    PROBE = "probe"
    APPLY = "apply"
    VERIFY = "verify"


# Task names are referenced from --only (comma-separated) and the run log.
_NAME_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.@+-]*$")


class PlatformCondition(BaseModel):
    """Restrict a task to matching targets.

    Each field accepts one value or a list; a field left unset matches
    anything. Comparison is case-insensitive.
    """

    system: str | list[str] | None = None            # Linux, Darwin
    package_manager: str | list[str] | None = None   # apt, brew, ...
    shell: str | list[str] | None = None             # zsh, bash, ...

    def matches(self, platform: PlatformInfo) -> bool:
        return (
            _field_matches(self.system, platform.system)
            and _field_matches(self.package_manager, platform.package_manager)
            and _field_matches(self.shell, platform.shell)
        )


def _field_matches(expected: str | list[str] | None, actual: str | None) -> bool:
    if expected is None:
        return True
    values = [expected] if isinstance(expected, str) else expected
    return (actual or "").lower() in {v.lower() for v in values}


class Task(BaseModel):
    """A provisioning task.

    Declared in the catalog; immutable once loaded.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    description: str = ""

    # Desired-state check and the commands that establish it
    probe: Probe
    apply: list[str] = Field(default_factory=list)

    # Re-probe after apply: True reuses ``probe``, a probe overrides it.
    verify: Union[bool, Probe] = True

    depends_on: list[str] = Field(default_factory=list)
    failure_policy: FailurePolicy = FailurePolicy.FATAL

    # Execution knobs
    timeout: float | None = Field(default=None, gt=0)
    retries: int = Field(default=0, ge=0)
    retry_delay: float = Field(default=2.0, ge=0)
    confirm: str | None = None
    when: PlatformCondition | None = None
    env: dict[str, str] = Field(default_factory=dict)

    @field_validator("name")
    @classmethod
    def _valid_name(cls, v: str) -> str:
        if not _NAME_RE.match(v):
            raise ValueError(
                f"invalid task name {v!r}: use letters, digits and _ . @ + -"
            )
        return v

    @property
    def verify_probe(self) -> Probe | None:
        """The post-apply probe, or None when verification is disabled."""
        if self.verify is True:
            return self.probe
        if self.verify is False:
            return None
        return self.verify

    def applies_to(self, platform: PlatformInfo) -> bool:
        """Whether this task is relevant on the given target."""
        return self.when is None or self.when.matches(platform)
