"""
Runner base — the protocol contract between the engine and the machine.

Probes and apply steps never call ``subprocess`` themselves; they go
through a CommandRunner. That keeps every external side effect behind
one seam, which the tests replace with a scripted mock.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence

from envforge.core.models.result import CommandResult

# Accepted command shapes: a shell string, or an argv list run without a shell.
Command = str | Sequence[str]


def command_text(command: Command) -> str:
    """Render a command as a single display string."""
    if isinstance(command, str):
        return command
    return " ".join(command)


class CommandRunner(ABC):
    """Abstract base class for command runners.

    Runners execute external commands and return results.
    They NEVER raise exceptions; failures are captured in the
    CommandResult (``error``, ``timed_out``, ``exit_code``).
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """The runner identifier (e.g., 'shell', 'mock')."""

    @abstractmethod
    def run(
        self,
        command: Command,
        *,
        timeout: float | None = None,
        env: Mapping[str, str] | None = None,
        cwd: str | None = None,
    ) -> CommandResult:
        """Run a command and return its result.

        Args:
            command: Shell string, or argv list (no shell).
            timeout: Seconds before the command is killed. None = no limit.
            env: Extra environment variables layered over the process env.
            cwd: Working directory.

        MUST never raise.
        """

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r}>"
