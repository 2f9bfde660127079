"""
Run log — append-only record of every provisioning decision.

Every probe, apply and verify decision writes one NDJSON line:

    {"timestamp": "...", "run_id": "...", "task": "docker",
     "phase": "apply", "outcome": "failed", "status": "error", "detail": "..."}

Lines are flushed and fsync'd before the orchestrator moves on, so a
crash mid-run leaves a log that is accurate up to the crash point. The
log is never rewritten; successive runs append to the same file.

This is the only persisted state. Probes re-derive the machine's state
on every run, so there is nothing else to cache.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import IO

from envforge.core.models.run import RunEvent

logger = logging.getLogger(__name__)

# Default location (XDG state dir)
DEFAULT_LOG_DIR = "~/.local/state/envforge"
DEFAULT_LOG_FILE = "run.ndjson"


def default_log_path() -> Path:
    """Default run log path: $ENVFORGE_RUN_LOG, else the XDG state dir."""
    override = os.environ.get("ENVFORGE_RUN_LOG")
    if override:
        return Path(override).expanduser()
    state_home = os.environ.get("XDG_STATE_HOME")
    if state_home:
        return Path(state_home) / "envforge" / DEFAULT_LOG_FILE
    return Path(DEFAULT_LOG_DIR).expanduser() / DEFAULT_LOG_FILE


class RunLog:
    """Append-only run log writer.

    Use as a context manager, or call ``open()`` / ``close()``. Opening
    creates the parent directory and fails loudly (OSError) if the path
    is not writable, before any task runs.
    """

    def __init__(self, path: Path):
        self._path = path
        self._fh: IO[str] | None = None
        self._written = 0

    @property
    def path(self) -> Path:
        return self._path

    @property
    def written(self) -> int:
        """Events written through this writer."""
        return self._written

    def open(self) -> RunLog:
        self._ensure_open()
        return self

    def _ensure_open(self) -> IO[str]:
        if self._fh is None:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._fh = self._path.open("a", encoding="utf-8")
            logger.debug("Run log opened: %s", self._path)
        return self._fh

    def close(self) -> None:
        if self._fh is not None:
            self._fh.close()
            self._fh = None

    def __enter__(self) -> RunLog:
        return self.open()

    def __exit__(self, *exc: object) -> None:
        self.close()

    def write(self, event: RunEvent) -> None:
        """Append one event and make it durable.

        Args:
            event: The event to write.

        Raises:
            OSError: The line could not be written or synced. The caller
                decides what a lost audit line means for the run.
        """
        fh = self._ensure_open()
        line = json.dumps(event.model_dump(mode="json"), ensure_ascii=False) + "\n"
        fh.write(line)
        fh.flush()
        os.fsync(fh.fileno())
        self._written += 1

    # ── Reading ─────────────────────────────────────────────────

    def read_all(self) -> list[RunEvent]:
        """Read every event in the log, oldest first."""
        return read_events(self._path)

    def read_run(self, run_id: str) -> list[RunEvent]:
        """Events of a single run."""
        return [e for e in self.read_all() if e.run_id == run_id]


def read_events(path: Path) -> list[RunEvent]:
    """Parse a run log, skipping corrupt lines.

    Returns:
        List of events, oldest first. Empty if the file does not exist.
    """
    if not path.is_file():
        return []

    events: list[RunEvent] = []
    try:
        with path.open("r", encoding="utf-8") as f:
            for line_num, line in enumerate(f, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    events.append(RunEvent.model_validate(json.loads(line)))
                except ValueError as e:
                    # json.JSONDecodeError and pydantic.ValidationError are both ValueErrors
                    logger.warning("Skipping corrupt run log entry at line %d: %s", line_num, e)
    except OSError as e:
        logger.error("Failed to read run log: %s", e)

    return events
