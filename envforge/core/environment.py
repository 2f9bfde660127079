"""
Environment helpers — variable expansion for commands and probe paths.

Catalog entries reference ``$HOME``, ``~`` and task-level env vars
(``PATH: /usr/local/go/bin:$PATH``). Expansion always happens against an
explicit mapping so a task's env never leaks into ``os.environ``.
"""

from __future__ import annotations

import os
import re
from collections.abc import Mapping
from pathlib import Path

_VAR_RE = re.compile(r"\$(?:\{(\w+)\}|(\w+))")


def expand_vars(value: str, env: Mapping[str, str]) -> str:
    """Expand ``$VAR`` / ``${VAR}`` from ``env``; unknown names are left as-is."""

    def _sub(match: re.Match[str]) -> str:
        name = match.group(1) or match.group(2)
        return env.get(name, match.group(0))

    return _VAR_RE.sub(_sub, value)


def build_env(overrides: Mapping[str, str] | None = None) -> dict[str, str]:
    """Process environment with ``overrides`` layered on top.

    Override values are expanded against the environment built so far,
    so ``PATH: /usr/local/go/bin:$PATH`` extends the inherited PATH.
    """
    env = os.environ.copy()
    if overrides:
        for key, value in overrides.items():
            env[key] = expand_vars(value, env)
    return env


def expand_path(raw: str, overrides: Mapping[str, str] | None = None) -> Path:
    """Resolve a catalog path: env vars first, then ``~``."""
    expanded = expand_vars(raw, build_env(overrides))
    return Path(os.path.expanduser(expanded))
