"""Tests for the execution scope."""

import signal

import pytest

from pipexec.errors import CancelledError
from pipexec.scope import DEADLINE_EXCEEDED, INTERRUPTED, ExecutionScope, interrupt


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def test_scope_without_timeout_never_expires():
    scope = ExecutionScope()
    assert not scope.cancelled
    assert scope.remaining() is None


def test_deadline_cancels_scope():
    clock = FakeClock()
    scope = ExecutionScope(timeout=10, clock=clock)
    assert scope.remaining() == 10
    clock.now = 10
    assert scope.cancelled
    assert scope.reason == DEADLINE_EXCEEDED
    with pytest.raises(CancelledError, match="deadline exceeded"):
        scope.raise_if_cancelled()


def test_first_cancel_reason_wins():
    scope = ExecutionScope()
    scope.cancel("first")
    scope.cancel("second")
    assert scope.reason == "first"


def test_interrupt_handler_cancels_and_restores():
    scope = ExecutionScope()
    before = signal.getsignal(signal.SIGTERM)
    with interrupt(scope):
        handler = signal.getsignal(signal.SIGTERM)
        handler(signal.SIGTERM, None)
    assert scope.reason == INTERRUPTED
    assert signal.getsignal(signal.SIGTERM) is before
