"""Tests for step log formatting."""

import io

import pytest

from pipexec.backend.types import Step
from pipexec.errors import LogStreamError
from pipexec.logs import LineWriter, StepLogger
from pipexec.multipart import new_reader


class FakeClock:
    def __init__(self):
        self.now = 100.0

    def __call__(self):
        return self.now


def test_line_writer_prefixes_alias_line_and_elapsed():
    out = io.StringIO()
    clock = FakeClock()
    writer = LineWriter("build", out, clock=clock)

    writer.write(b"hello\n")
    clock.now = 103.7
    writer.write(b"world")

    assert out.getvalue() == "[build:L0:0s] hello\n[build:L1:3s] world\n"
    assert [line.pos for line in writer.lines] == [0, 1]
    assert writer.lines[1].time == 3


def test_step_logger_copies_every_part():
    out = io.StringIO()
    logger = StepLogger(out)
    stream = io.BytesIO(
        b"PIPELINE\n--boundary\n\none\n--boundary\n\ntwo\n--boundary--\n"
    )
    logger(Step(name="s0", alias="test", image="alpine"), new_reader(stream))
    assert out.getvalue() == "[test:L0:0s] one\n[test:L1:0s] two\n"


class BrokenReader:
    def next_part(self):
        raise OSError("stream closed")


class EmptyReader:
    def next_part(self):
        return None


@pytest.mark.parametrize("reader", [BrokenReader(), EmptyReader()])
def test_missing_first_part_raises(reader):
    with pytest.raises(LogStreamError):
        StepLogger(io.StringIO()).log(Step(name="s0", alias="test", image="alpine"), reader)
