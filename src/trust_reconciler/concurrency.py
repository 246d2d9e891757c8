"""Run independent tasks concurrently under one cancellation scope.

All tasks submitted to a FanOut share a :class:`threading.Event`. The first
task to fail sets the event, queued tasks are cancelled, running tasks
observe the event at their next retry boundary, and :meth:`FanOut.wait`
raises that first error once every task has settled.
"""
from __future__ import annotations

import logging
import threading
from concurrent.futures import FIRST_EXCEPTION, Future, ThreadPoolExecutor, wait
from typing import Any, Callable

from trust_reconciler.errors import ReconcileCancelled

logger = logging.getLogger(__name__)

_PARENT_POLL_INTERVAL = 0.05


class FanOut:
    """Fail-fast group of concurrent tasks.

    Parameters
    ----------
    max_workers:
        Thread pool size; defaults to the executor's own heuristic.
    parent:
        Optional enclosing cancellation scope (e.g. process shutdown).
        Setting it cancels every task of this group.

    Example
    -------
    ::

        with FanOut() as group:
            group.submit("validating", update_validating, bundle, group.cancel)
            group.submit("mutating", update_mutating, bundle, group.cancel)
            group.wait()
    """

    def __init__(
        self,
        max_workers: int | None = None,
        parent: threading.Event | None = None,
    ) -> None:
        self.cancel = threading.Event()
        self._parent = parent
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers,
            thread_name_prefix="trust-reconcile",
        )
        self._futures: dict[Future[Any], str] = {}

    def __enter__(self) -> "FanOut":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.cancel.set()
        self._executor.shutdown(wait=True, cancel_futures=True)

    # ------------------------------------------------------------------
    # Public interface
    # ------------------------------------------------------------------

    def submit(self, name: str, fn: Callable[..., Any], *args: Any) -> None:
        """Schedule ``fn(*args)`` as a task labelled *name*."""
        future = self._executor.submit(self._run, name, fn, args)
        self._futures[future] = name

    def wait(self) -> None:
        """Block until every task settled; raise the first task error.

        Raises
        ------
        ReconcileCancelled
            If the parent scope was cancelled and no task failed first.
        Exception
            The first error raised by any task.
        """
        first_error: BaseException | None = None
        pending: set[Future[Any]] = set(self._futures)
        timeout = _PARENT_POLL_INTERVAL if self._parent is not None else None

        while pending:
            done, pending = wait(pending, timeout=timeout, return_when=FIRST_EXCEPTION)

            for future in done:
                if future.cancelled():
                    continue
                exc = future.exception()
                if exc is not None and first_error is None:
                    logger.debug("Task %s failed, cancelling the group: %s", self._futures[future], exc)
                    first_error = exc
                    self._cancel_pending(pending)

            if first_error is None and self._parent is not None and self._parent.is_set():
                first_error = ReconcileCancelled("reconciliation pass cancelled")
                self._cancel_pending(pending)

        if first_error is not None:
            raise first_error

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _run(self, name: str, fn: Callable[..., Any], args: tuple[Any, ...]) -> Any:
        if self.cancel.is_set():
            raise ReconcileCancelled(f"task {name} cancelled before start")
        return fn(*args)

    def _cancel_pending(self, pending: set[Future[Any]]) -> None:
        self.cancel.set()
        for future in pending:
            future.cancel()
