"""
CommandResult — the contract between the engine and the command runner.

The engine hands a command to a runner; the runner hands back a
CommandResult. Never an exception: a missing binary, an OS error or a
timeout are all captured here so probes and apply steps can decide
what they mean.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field

# Conventional shell exit status for "command not found".
EXIT_NOT_FOUND = 127


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


class CommandResult(BaseModel):
    """Outcome of one external command.

    ``exit_code`` is None when no process exit status exists (the process
    could not be started, or was killed on timeout). ``error`` carries the
    runner-level reason in that case.
    """

    command: str
    exit_code: int | None = None
    stdout: str = ""
    stderr: str = ""

    started_at: str = Field(default_factory=_now_iso)
    duration_ms: int = 0

    timed_out: bool = False
    error: str | None = None        # runner-level failure (not found, OS error, timeout)

    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def ok(self) -> bool:
        """Whether the command ran and exited 0."""
        return self.exit_code == 0 and not self.timed_out and self.error is None

    @property
    def launched(self) -> bool:
        """Whether the command actually ran to an exit status."""
        return self.exit_code is not None and not self.timed_out and self.error is None

    @property
    def output(self) -> str:
        """stdout and stderr combined."""
        return "\n".join(part for part in (self.stdout, self.stderr) if part)

    @classmethod
    def success(cls, command: str, stdout: str = "", **kwargs: Any) -> CommandResult:
        """Create a zero-exit result."""
        return cls(command=command, exit_code=0, stdout=stdout, **kwargs)

    @classmethod
    def failure(
        cls,
        command: str,
        exit_code: int = 1,
        stderr: str = "",
        **kwargs: Any,
    ) -> CommandResult:
        """Create a non-zero-exit result."""
        return cls(command=command, exit_code=exit_code, stderr=stderr, **kwargs)

    @classmethod
    def not_found(cls, command: str, **kwargs: Any) -> CommandResult:
        """Create a result for an executable that is not on PATH."""
        return cls(
            command=command,
            exit_code=EXIT_NOT_FOUND,
            error=f"Command not found: {command.split()[0] if command else command}",
            **kwargs,
        )

    @classmethod
    def timeout(cls, command: str, seconds: float | None, **kwargs: Any) -> CommandResult:
        """Create a result for a command killed on timeout."""
        return cls(
            command=command,
            timed_out=True,
            error=f"Command timed out after {seconds}s",
            metadata={"timeout": seconds},
            **kwargs,
        )
