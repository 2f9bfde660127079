"""
Shell command runner — execute commands on the local machine.

This is the single place where ``subprocess.run`` is called. Shell
strings run through bash when it is available (install one-liners rely
on pipes and ``$(...)``); argv lists run directly.

Children stay in the terminal's process group, so sudo can still prompt,
but ignore SIGINT: the first Ctrl-C is the CLI's request to stop after
the current task, and must not kill that task halfway. A second Ctrl-C
raises KeyboardInterrupt here, and ``subprocess.run`` kills the child on
its way out.
"""

from __future__ import annotations

import logging
import os
import shutil
import signal
import subprocess
import time
from collections.abc import Mapping

from envforge.adapters.base import Command, CommandRunner, command_text
from envforge.core.environment import build_env
from envforge.core.models.result import CommandResult

logger = logging.getLogger(__name__)

# Keep only the tail of very chatty installers.
_MAX_OUTPUT = 4000


def _ignore_sigint() -> None:
    signal.signal(signal.SIGINT, signal.SIG_IGN)


class ShellCommandRunner(CommandRunner):
    """Execute commands and capture their output.

    Args:
        shell: Shell used for string commands (default: bash, else sh).
        default_timeout: Timeout applied when a call passes none.
        isolate_interrupts: Start children with SIGINT ignored (POSIX).
    """

    def __init__(
        self,
        shell: str | None = None,
        default_timeout: float | None = None,
        isolate_interrupts: bool = True,
    ):
        self._shell = shell or shutil.which("bash") or shutil.which("sh")
        self._default_timeout = default_timeout
        self._isolate_interrupts = isolate_interrupts and os.name == "posix"

    @property
    def name(self) -> str:
        return "shell"

    def run(
        self,
        command: Command,
        *,
        timeout: float | None = None,
        env: Mapping[str, str] | None = None,
        cwd: str | None = None,
    ) -> CommandResult:
        text = command_text(command)
        use_shell = isinstance(command, str)
        timeout = timeout if timeout is not None else self._default_timeout

        logger.debug("Executing: %s (cwd=%s, timeout=%s)", text, cwd, timeout)
        start = time.monotonic()

        try:
            result = subprocess.run(
                command if use_shell else list(command),
                shell=use_shell,
                executable=self._shell if use_shell else None,
                cwd=cwd,
                env=build_env(env),
                capture_output=True,
                text=True,
                errors="replace",
                timeout=timeout,
                preexec_fn=_ignore_sigint if self._isolate_interrupts else None,
            )
        except subprocess.TimeoutExpired:
            return CommandResult.timeout(
                text,
                timeout,
                duration_ms=int((time.monotonic() - start) * 1000),
            )
        except FileNotFoundError:
            return CommandResult.not_found(text)
        except Exception as e:
            logger.exception("Command execution error: %s", text)
            return CommandResult(command=text, error=f"Command execution error: {e}")

        elapsed_ms = int((time.monotonic() - start) * 1000)
        return CommandResult(
            command=text,
            exit_code=result.returncode,
            stdout=(result.stdout or "").strip()[-_MAX_OUTPUT:],
            stderr=(result.stderr or "").strip()[-_MAX_OUTPUT:],
            duration_ms=elapsed_ms,
        )
