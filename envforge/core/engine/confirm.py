"""
Confirmers — who answers a task's ``confirm`` prompt.

The orchestrator never talks to the terminal itself. It asks the
injected confirmer, which is a click prompt on an interactive terminal
and a fixed answer everywhere else (``--yes``, pipes, CI, tests).
"""

from __future__ import annotations

import logging
from typing import Protocol

import click

logger = logging.getLogger(__name__)


class Confirmer(Protocol):
    """Decides whether a task that asks for confirmation may apply."""

    def confirm(self, task: str, prompt: str) -> bool: ...


class AutoConfirmer:
    """Answer every prompt with the same decision, recording what was asked."""

    def __init__(self, decision: bool = False):
        self.decision = decision
        self.asked: list[str] = []

    def confirm(self, task: str, prompt: str) -> bool:
        self.asked.append(task)
        logger.debug(
            "Auto-%s confirmation for %s: %s",
            "accepting" if self.decision else "declining",
            task,
            prompt,
        )
        return self.decision


class ClickConfirmer:
    """Ask on the terminal with ``click.confirm``."""

    def __init__(self, default: bool = False):
        self.default = default

    def confirm(self, task: str, prompt: str) -> bool:
        try:
            return click.confirm(
                click.style(f"[{task}] ", fg="cyan") + prompt,
                default=self.default,
            )
        except click.Abort:
            # stdin closed (EOF) before an answer
            logger.warning("No answer for %s; declining", task)
            return False
