# runtime.py
from __future__ import annotations

import threading
import time
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from typing import Callable, List, Optional

from .backend.types import Config, Engine, State, Step
from .errors import CancelledError, ExitError, OomError
from .multipart import new_reader
from .scope import ExecutionScope


class SkipStep(Exception):
    """Raised by a tracer to skip the step it was called for."""


@dataclass
class TraceState:
    started: int
    error: Optional[BaseException]
    step: Step
    process: Optional[State] = None


Logger = Callable[[Step, object], None]
Tracer = Callable[[TraceState], None]


def default_tracer(state: TraceState) -> None:
    """Stamp build/job status and timing into the step environment."""
    if state.process is not None and state.process.exited:
        return
    status = "failure" if state.error is not None else "success"
    now = str(int(time.time()))
    state.step.environment.update({
        "CI_BUILD_STATUS": status,
        "CI_BUILD_STARTED": str(state.started),
        "CI_BUILD_FINISHED": now,
        "CI_JOB_STATUS": status,
        "CI_JOB_STARTED": str(state.started),
        "CI_JOB_FINISHED": now,
    })


class Runtime:
    """
    Runs a compiled Config against an engine.

    Stages run one after another; the steps of a stage run concurrently.
    Once a step fails, later steps only run if they opted into running
    on failure. The engine is always destroyed at the end, and a cancelled
    scope aborts the run with CancelledError.
    """

    def __init__(
        self,
        config: Config,
        engine: Engine,
        scope: Optional[ExecutionScope] = None,
        *,
        logger: Optional[Logger] = None,
        tracer: Optional[Tracer] = default_tracer,
        max_workers: Optional[int] = None,
        poll_interval: float = 0.05,
    ):
        self.config = config
        self.engine = engine
        self.scope = scope or ExecutionScope()
        self.logger = logger
        self.tracer = tracer
        self.max_workers = max_workers
        self.poll_interval = poll_interval
        self.started = 0
        self.err: Optional[BaseException] = None

    def run(self) -> None:
        self.started = int(time.time())
        widest = max((len(s.steps) for s in self.config.stages), default=1)
        pool = ThreadPoolExecutor(max_workers=self.max_workers or max(widest, 1))
        try:
            self.scope.raise_if_cancelled()
            self.engine.setup(self.config)
            for stage in self.config.stages:
                self.scope.raise_if_cancelled()
                futures = [pool.submit(self._exec, step) for step in stage.steps]
                err = self._wait_all(futures)
                if err is not None:
                    self.err = err
        finally:
            # destroying first unblocks workers still waiting on containers
            self.engine.destroy(self.config)
            pool.shutdown(wait=False, cancel_futures=True)

        if self.err is not None:
            raise self.err

    def _wait_all(self, futures: List[Future]) -> Optional[BaseException]:
        first: Optional[BaseException] = None
        pending = set(futures)
        while pending:
            timeout = self.poll_interval
            remaining = self.scope.remaining()
            if remaining is not None:
                timeout = min(timeout, remaining)
            done, pending = wait(pending, timeout=timeout, return_when=FIRST_COMPLETED)
            for fut in done:
                err = fut.exception()
                if err is not None and first is None:
                    first = err
            if pending and self.scope.cancelled:
                raise CancelledError(self.scope.reason or "cancelled")
        return first

    def _exec(self, step: Step) -> None:
        if self.err is not None and not step.on_failure:
            return
        if self.err is None and not step.on_success:
            return

        if self.tracer is not None:
            try:
                self.tracer(TraceState(started=self.started, error=self.err, step=step))
            except SkipStep:
                return

        for key, value in list(step.environment.items()):
            if key.startswith("CI_"):
                step.environment["DRONE_" + key[3:]] = value

        self.engine.exec(step)

        log_thread = None
        log_errors: List[BaseException] = []
        if self.logger is not None:
            rc = self.engine.tail(step)
            log_thread = threading.Thread(
                target=self._log,
                args=(step, rc, log_errors),
                name=f"log-{step.alias}",
                daemon=True,
            )
            log_thread.start()

        if step.detached:
            return

        state = self.engine.wait(step)
        if log_thread is not None:
            log_thread.join()

        if self.tracer is not None:
            try:
                self.tracer(TraceState(started=self.started, error=self.err, step=step, process=state))
            except SkipStep:
                pass

        if state.oom_killed:
            raise OomError(name=step.alias, code=state.exit_code)
        if state.exit_code != 0:
            raise ExitError(name=step.alias, code=state.exit_code)
        if log_errors:
            raise log_errors[0]

    def _log(self, step: Step, rc, errors: List[BaseException]) -> None:
        try:
            self.logger(step, new_reader(rc))
        except Exception as e:
            errors.append(e)
        finally:
            rc.close()
