"""
Retry policy — bounded in-process retries for transient apply failures.

Uses exponential backoff with jitter. Only errors whose kind is
retryable (network, timeout) get another attempt; permission and
structural failures fail immediately.

There is no persistent retry queue: a task that exhausts its attempts
is Failed for this run, and the next run re-probes it from scratch.
"""

from __future__ import annotations

import logging
import random
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TypeVar

from envforge.core.errors import ApplyError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class RetryPolicy:
    """How many times, and how patiently, to retry.

    Args:
        max_attempts: Total attempts including the first one.
        base_delay: Delay before the first retry, in seconds.
        max_delay: Upper bound for a single delay.
        sleep: Sleep function (replaced in tests).
    """

    max_attempts: int = 1
    base_delay: float = 1.0
    max_delay: float = 60.0
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False)

    def delay_for(self, attempt: int) -> float:
        """Backoff + jitter after the ``attempt``-th failure (1-based)."""
        delay = min(self.base_delay * (2 ** (attempt - 1)), self.max_delay)
        jitter = random.uniform(0, delay * 0.3)
        return delay + jitter

    def should_retry(self, error: ApplyError, attempt: int) -> bool:
        return error.retryable and attempt < self.max_attempts

    def call(self, fn: Callable[[], T], *, label: str = "") -> T:
        """Run ``fn``, retrying on retryable ApplyErrors.

        Raises:
            ApplyError: The last error once attempts are exhausted, or the
                first non-retryable one.
        """
        attempt = 1
        while True:
            try:
                return fn()
            except ApplyError as e:
                if not self.should_retry(e, attempt):
                    raise
                delay = self.delay_for(attempt)
                logger.warning(
                    "%s: %s (retry %d/%d in %.1fs)",
                    label or "apply",
                    e,
                    attempt,
                    self.max_attempts - 1,
                    delay,
                )
                self.sleep(delay)
                attempt += 1
