# logs.py
from __future__ import annotations

import sys
import threading
import time
from dataclasses import dataclass
from typing import List, Optional, TextIO

from .errors import LogStreamError


@dataclass(frozen=True)
class Line:
    proc: str
    pos: int
    time: int
    out: str


class LineWriter:
    """
    Line oriented sink for one step. Every line is echoed to `stream` as

        [alias:L<n>:<seconds>s] <text>

    and kept in `lines`.
    """

    def __init__(
        self,
        name: str,
        stream: Optional[TextIO] = None,
        *,
        lock: Optional[threading.Lock] = None,
        clock=time.monotonic,
    ):
        self.name = name
        self.stream = stream if stream is not None else sys.stderr
        self.lines: List[Line] = []
        self._num = 0
        self._clock = clock
        self._start = clock()
        self._lock = lock or threading.Lock()

    def write(self, data: bytes) -> int:
        out = data.decode("utf-8", "replace")
        if not out.endswith("\n"):
            out += "\n"
        line = Line(
            proc=self.name,
            pos=self._num,
            time=int(self._clock() - self._start),
            out=out,
        )
        # one lock per logger keeps lines of concurrent steps intact
        with self._lock:
            self.stream.write(f"[{line.proc}:L{line.pos}:{line.time}s] {line.out}")
            self.stream.flush()
        self._num += 1
        self.lines.append(line)
        return len(data)


class StepLogger:
    """
    Consumes the output reader of each step and writes it, line by line,
    to a LineWriter keyed by the step alias.

    Injected into the runtime per run; nothing is held globally.
    """

    def __init__(self, stream: Optional[TextIO] = None):
        self.stream = stream if stream is not None else sys.stderr
        self._lock = threading.Lock()

    def writer(self, alias: str) -> LineWriter:
        return LineWriter(alias, self.stream, lock=self._lock)

    def __call__(self, step, reader) -> None:
        self.log(step, reader)

    def log(self, step, reader) -> None:
        """
        Copy every part of `reader` to the step's writer until exhausted.

        Raises:
            LogStreamError: if the first part cannot be obtained
        """
        try:
            part = reader.next_part()
        except Exception as e:
            raise LogStreamError(f"{step.alias}: cannot read log stream: {e}") from e
        if part is None:
            raise LogStreamError(f"{step.alias}: log stream is empty")

        logstream = self.writer(step.alias)
        while part is not None:
            for line in part:
                logstream.write(line)
            part = reader.next_part()
