"""Bounded backoff for optimistic-concurrency conflicts.

Every resource mutation in a reconciliation pass is a read-modify-write
cycle. :func:`retry_on_conflict` re-runs the whole cycle when the store
rejects the write with :class:`~trust_reconciler.errors.ConflictError`,
sleeping according to a :class:`RetryPolicy` between attempts.
"""
from __future__ import annotations

import logging
import random
import threading
import time
from dataclasses import dataclass
from typing import Callable, Iterator, TypeVar

from trust_reconciler.errors import ConflictError, ReconcileCancelled, RetryExhaustedError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Exponential backoff parameters for conflict retries.

    Parameters
    ----------
    steps:
        Maximum number of attempts, including the first one.
    duration:
        Delay in seconds before the second attempt.
    factor:
        Multiplier applied to the delay after each attempt.
    jitter:
        Upper bound of the random fraction added to each delay.
    """

    steps: int = 4
    duration: float = 0.01
    factor: float = 5.0
    jitter: float = 0.1

    def __post_init__(self) -> None:
        if self.steps < 1:
            raise ValueError(f"steps must be at least 1, got {self.steps}")
        if self.duration < 0 or self.factor < 0 or self.jitter < 0:
            raise ValueError("duration, factor and jitter must be non-negative")

    def delays(self) -> Iterator[float]:
        """Yield the sleep before each retry (``steps - 1`` values)."""
        delay = self.duration
        for _ in range(self.steps - 1):
            yield delay * (1.0 + random.random() * self.jitter)
            delay *= self.factor


# Used for consumer resources, where conflicts come from installers and
# upgrades racing the reconciler.
DEFAULT_BACKOFF = RetryPolicy(steps=4, duration=0.01, factor=5.0, jitter=0.1)

# Used for fleet members, whose writers are mostly kubelet status updates.
DEFAULT_RETRY = RetryPolicy(steps=5, duration=0.01, factor=1.0, jitter=0.1)


def retry_on_conflict(
    policy: RetryPolicy,
    fn: Callable[[], T],
    cancel: threading.Event | None = None,
) -> T:
    """Run *fn* until it does not raise ConflictError or the budget runs out.

    *fn* must perform the full read-modify-write cycle on every call so
    that a retry works on the latest stored version.

    Parameters
    ----------
    policy:
        Attempt budget and backoff.
    fn:
        The read-modify-write cycle.
    cancel:
        Optional cancellation scope. Checked before every attempt and
        interrupts backoff sleeps.

    Returns
    -------
    T
        Whatever *fn* returned on its first non-conflicting call.

    Raises
    ------
    RetryExhaustedError
        If every attempt conflicted.
    ReconcileCancelled
        If *cancel* was set before an attempt.
    """
    delays = policy.delays()
    attempt = 0
    while True:
        if cancel is not None and cancel.is_set():
            raise ReconcileCancelled("cancelled before update attempt")
        attempt += 1
        try:
            return fn()
        except ConflictError as exc:
            delay = next(delays, None)
            if delay is None:
                raise RetryExhaustedError(attempt, exc) from exc
            logger.debug("Conflict on attempt %d, retrying in %.3fs: %s", attempt, delay, exc)
            if cancel is not None:
                if cancel.wait(delay):
                    raise ReconcileCancelled("cancelled during conflict backoff") from exc
            else:
                time.sleep(delay)
