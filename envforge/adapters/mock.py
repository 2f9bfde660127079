"""
Mock runner — universal test double for command execution.

Used by tests and by callers that want to exercise the engine without
touching the machine. By default every command succeeds; specific
commands can be scripted to fail, time out, or be answered by a
callable (so a probe can flip from unsatisfied to satisfied once the
matching install command has run).
"""

from __future__ import annotations

from collections.abc import Callable, Mapping

from envforge.adapters.base import Command, CommandRunner, command_text
from envforge.core.models.result import CommandResult

Response = CommandResult | Callable[[str], CommandResult]


class MockCommandRunner(CommandRunner):
    """Scripted command runner for testing.

    Args:
        runner_name: Name reported by the runner.
        handler: Optional fallback ``(command) -> CommandResult`` used when
            no exact response is registered.
        default_output: stdout of the default success result.
    """

    def __init__(
        self,
        runner_name: str = "mock",
        handler: Callable[[str], CommandResult] | None = None,
        default_output: str = "",
    ):
        self._name = runner_name
        self._handler = handler
        self._default_output = default_output
        self._responses: dict[str, Response] = {}
        self._call_log: list[str] = []
        self._call_kwargs: list[dict] = []

    @property
    def name(self) -> str:
        return self._name

    @property
    def call_log(self) -> list[str]:
        """Every command this mock has received, in order."""
        return self._call_log

    @property
    def call_count(self) -> int:
        """Number of times run has been called."""
        return len(self._call_log)

    @property
    def call_kwargs(self) -> list[dict]:
        """Keyword arguments (timeout, env, cwd) of each call."""
        return self._call_kwargs

    def set_response(self, command: str, response: Response) -> None:
        """Set a custom result (or result factory) for an exact command."""
        self._responses[command] = response

    def set_failure(self, command: str, exit_code: int = 1, stderr: str = "Mock failure") -> None:
        """Configure a command to exit non-zero."""
        self._responses[command] = CommandResult.failure(command, exit_code=exit_code, stderr=stderr)

    def set_timeout(self, command: str, seconds: float = 1.0) -> None:
        """Configure a command to time out."""
        self._responses[command] = CommandResult.timeout(command, seconds)

    def set_not_found(self, command: str) -> None:
        """Configure a command whose executable is missing."""
        self._responses[command] = CommandResult.not_found(command)

    def run(
        self,
        command: Command,
        *,
        timeout: float | None = None,
        env: Mapping[str, str] | None = None,
        cwd: str | None = None,
    ) -> CommandResult:
        text = command_text(command)
        self._call_log.append(text)
        self._call_kwargs.append({"timeout": timeout, "env": dict(env or {}), "cwd": cwd})

        response = self._responses.get(text)
        if response is not None:
            return response(text) if callable(response) else response

        if self._handler is not None:
            return self._handler(text)

        return CommandResult.success(text, stdout=self._default_output, metadata={"mock": True})

    def reset(self) -> None:
        """Clear call log and custom responses."""
        self._call_log.clear()
        self._call_kwargs.clear()
        self._responses.clear()
