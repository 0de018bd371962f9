# scope.py
from __future__ import annotations

import signal
import threading
import time
from contextlib import contextmanager
from typing import Iterator, Optional

from .errors import CancelledError

DEADLINE_EXCEEDED = "deadline exceeded"
INTERRUPTED = "interrupted"


class ExecutionScope:
    """
    Cancellation scope for one axis: expires at a deadline and can be
    cancelled explicitly (e.g. from a signal handler).
    """

    def __init__(self, timeout: Optional[float] = None, clock=time.monotonic):
        self._clock = clock
        self._deadline = clock() + timeout if timeout is not None else None
        self._event = threading.Event()
        self.reason: Optional[str] = None

    def cancel(self, reason: str = "cancelled") -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    @property
    def cancelled(self) -> bool:
        self._check_deadline()
        return self._event.is_set()

    def remaining(self) -> Optional[float]:
        if self._deadline is None:
            return None
        return max(self._deadline - self._clock(), 0.0)

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise CancelledError(self.reason or "cancelled")

    def _check_deadline(self) -> None:
        if self._deadline is not None and self._clock() >= self._deadline:
            self.cancel(DEADLINE_EXCEEDED)


@contextmanager
def interrupt(scope: ExecutionScope) -> Iterator[ExecutionScope]:
    """
    Cancel `scope` on SIGINT/SIGTERM while the block runs; previous
    handlers are restored on exit. Signal handlers can only be installed
    from the main thread, elsewhere the scope is yielded unchanged.
    """
    if threading.current_thread() is not threading.main_thread():
        yield scope
        return

    def _handler(signum, frame):
        scope.cancel(INTERRUPTED)

    previous = {}
    for signum in (signal.SIGINT, signal.SIGTERM):
        previous[signum] = signal.signal(signum, _handler)
    try:
        yield scope
    finally:
        for signum, handler in previous.items():
            signal.signal(signum, handler)
