"""Shared test doubles."""

from __future__ import annotations

import io
import threading
from typing import Dict, List, Optional

from pipexec.backend.types import Config, State, Step


class FakeEngine:
    """
    In-memory engine. Records every call, serves canned output per step
    alias and can hold `wait` for `delay` seconds (released by destroy).
    """

    def __init__(
        self,
        outputs: Optional[Dict[str, bytes]] = None,
        exit_codes: Optional[Dict[str, int]] = None,
        oom: Optional[List[str]] = None,
        delay: float = 0.0,
    ):
        self.outputs = outputs or {}
        self.exit_codes = exit_codes or {}
        self.oom = oom or []
        self.delay = delay
        self.calls: List[tuple] = []
        self.executed: List[Step] = []
        self.setups: List[Config] = []
        self.destroyed = threading.Event()
        self._lock = threading.Lock()

    def _record(self, *call) -> None:
        with self._lock:
            self.calls.append(call)

    def setup(self, config: Config) -> None:
        self.setups.append(config)
        self._record("setup")

    def exec(self, step: Step) -> None:
        with self._lock:
            self.executed.append(step)
        self._record("exec", step.alias)

    def tail(self, step: Step):
        return io.BytesIO(self.outputs.get(step.alias, b""))

    def wait(self, step: Step) -> State:
        if self.delay:
            self.destroyed.wait(self.delay)
        self._record("wait", step.alias)
        return State(
            exit_code=self.exit_codes.get(step.alias, 0),
            exited=True,
            oom_killed=step.alias in self.oom,
        )

    def destroy(self, config: Config) -> None:
        self._record("destroy")
        self.destroyed.set()

    @property
    def executed_aliases(self) -> List[str]:
        return [s.alias for s in self.executed]
