"""Adapters — how the engine reaches the machine.

Public re-exports for convenient access.
"""

from envforge.adapters.base import CommandRunner, command_text
from envforge.adapters.mock import MockCommandRunner
from envforge.adapters.shell.command import ShellCommandRunner

__all__ = [
    "CommandRunner",
    "MockCommandRunner",
    "ShellCommandRunner",
    "command_text",
]
