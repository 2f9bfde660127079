"""
Failure analysis — turn a failed command into a typed ApplyError.

Handlers are evaluated top to bottom; the first whose pattern matches
the command's output (and exit code, when one is given) decides the
error kind. Anything unmatched is structural: the action itself is
wrong for this machine and retrying will not help.
"""

from __future__ import annotations

import re

from envforge.core.errors import ApplyError, ApplyErrorKind
from envforge.core.models.result import EXIT_NOT_FOUND, CommandResult

FAILURE_HANDLERS: list[dict] = [

    # ── Network ──

    {
        "failure_id": "network_offline",
        "kind": ApplyErrorKind.NETWORK,
        "pattern": (
            r"Could not resolve|Connection timed out|Failed to fetch|"
            r"Network is unreachable|Temporary failure in name resolution|"
            r"Failed to connect|Connection refused|Connection reset|"
            r"Unable to connect|Could not connect|unable to access '.*':"
        ),
        "label": "Network unreachable",
        "example_stderr": "curl: (6) Could not resolve host: github.com",
    },
    {
        "failure_id": "network_blocked",
        "kind": ApplyErrorKind.NETWORK,
        "pattern": (
            r"HTTP 403|HTTP 407|SSL certificate problem|"
            r"certificate verify failed|CERTIFICATE_VERIFY_FAILED|"
            r"The requested URL returned error: 5\d\d"
        ),
        "label": "Download blocked",
        "example_stderr": "curl: (60) SSL certificate problem: unable to get local issuer certificate",
    },
    {
        "failure_id": "curl_transport",
        "kind": ApplyErrorKind.NETWORK,
        "pattern": r"",
        "exit_code": 6,     # curl: couldn't resolve host
        "label": "Host could not be resolved",
    },
    {
        "failure_id": "curl_connect",
        "kind": ApplyErrorKind.NETWORK,
        "pattern": r"",
        "exit_code": 7,     # curl: failed to connect
        "label": "Connection failed",
    },

    # ── Permissions ──

    {
        "failure_id": "permission_denied",
        "kind": ApplyErrorKind.PERMISSION,
        "pattern": (
            r"Permission denied|EACCES|Operation not permitted|"
            r"are you root\?|must be run as root|"
            r"Could not open lock file|unable to acquire the dpkg frontend lock|"
            r"a terminal is required to read the password|"
            r"sudo: a password is required|is not in the sudoers file"
        ),
        "label": "Permission denied",
        "example_stderr": "E: Could not open lock file /var/lib/dpkg/lock-frontend - open (13: Permission denied)",
    },

    # ── Timeout (reported by the process itself) ──

    {
        "failure_id": "operation_timeout",
        "kind": ApplyErrorKind.TIMEOUT,
        "pattern": r"Operation timed out|timed out after|deadline exceeded",
        "label": "Operation timed out",
    },
]


def _matches(handler: dict, output: str, exit_code: int | None) -> bool:
    """Check if a handler's detection criteria match the failure.

    A handler with an empty pattern matches ONLY by exit_code.
    """
    handler_exit = handler.get("exit_code")
    if handler_exit is not None and handler_exit != exit_code:
        return False

    pattern = handler.get("pattern", "")
    if not pattern:
        return handler_exit is not None

    try:
        return bool(re.search(pattern, output, re.IGNORECASE))
    except re.error:
        return False


def match_failure(result: CommandResult) -> dict | None:
    """Return the first handler matching a failed result, or None."""
    output = result.output
    for handler in FAILURE_HANDLERS:
        if _matches(handler, output, result.exit_code):
            return handler
    return None


def classify_failure(result: CommandResult, *, step: int | None = None) -> ApplyError:
    """Build the ApplyError describing why ``result`` failed.

    Args:
        result: A result for which ``ok`` is False.
        step: Index of the command within the task's apply list.
    """
    if result.timed_out:
        return ApplyError(
            ApplyErrorKind.TIMEOUT,
            f"`{result.command}`: {result.error}",
            step=step,
        )

    if result.exit_code is None or result.exit_code == EXIT_NOT_FOUND:
        reason = result.error or "command not found"
        return ApplyError(
            ApplyErrorKind.STRUCTURAL,
            f"`{result.command}`: {reason}",
            step=step,
            exit_code=result.exit_code,
        )

    handler = match_failure(result)
    kind = handler["kind"] if handler else ApplyErrorKind.STRUCTURAL
    cause = _last_line(result.stderr) or _last_line(result.stdout)
    message = f"`{result.command}` exited {result.exit_code}"
    if handler:
        message += f" ({handler['label']})"
    if cause:
        message += f": {cause}"

    return ApplyError(kind, message, step=step, exit_code=result.exit_code)


def _last_line(text: str) -> str:
    lines = [line.strip() for line in text.strip().splitlines() if line.strip()]
    return lines[-1][:300] if lines else ""
