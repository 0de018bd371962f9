"""Tests for staged step execution."""

import io
import time

import pytest

from pipexec.backend.types import Config, Network, Stage, Step, Volume
from pipexec.errors import CancelledError, ExitError, OomError
from pipexec.logs import StepLogger
from pipexec.runtime import Runtime, SkipStep
from pipexec.scope import ExecutionScope

from tests.helpers import FakeEngine


def _step(alias, **kwargs):
    return Step(name=f"x_{alias}", alias=alias, image="alpine", **kwargs)


def _config(*stages):
    return Config(
        stages=[Stage(name=f"x_stage_{i}", alias=steps[0].alias, steps=list(steps))
                for i, steps in enumerate(stages)],
        volumes=[Volume(name="x_default")],
        networks=[Network(name="x_default")],
    )


def test_stages_run_in_order_and_engine_is_destroyed():
    engine = FakeEngine()
    config = _config([_step("a")], [_step("b"), _step("c")], [_step("d")])

    Runtime(config, engine).run()

    aliases = engine.executed_aliases
    assert aliases[0] == "a"
    assert sorted(aliases[1:3]) == ["b", "c"]
    assert aliases[3] == "d"
    assert engine.calls[0] == ("setup",)
    assert engine.calls[-1] == ("destroy",)


def test_step_output_is_logged():
    engine = FakeEngine(outputs={"build": b"compiling\ndone\n"})
    out = io.StringIO()

    Runtime(_config([_step("build")]), engine, logger=StepLogger(out)).run()

    assert out.getvalue() == "[build:L0:0s] compiling\n[build:L1:0s] done\n"


def test_non_zero_exit_fails_run_and_skips_later_steps():
    engine = FakeEngine(exit_codes={"test": 2})
    config = _config(
        [_step("test")],
        [_step("deploy")],
        [_step("notify", on_success=False, on_failure=True)],
    )

    with pytest.raises(ExitError) as exc:
        Runtime(config, engine).run()

    assert exc.value.name == "test"
    assert exc.value.code == 2
    assert str(exc.value) == "test : exit code 2"
    assert engine.executed_aliases == ["test", "notify"]
    assert ("destroy",) in engine.calls


def test_on_failure_only_step_is_skipped_on_success():
    engine = FakeEngine()
    config = _config([_step("build")], [_step("notify", on_success=False, on_failure=True)])
    Runtime(config, engine).run()
    assert engine.executed_aliases == ["build"]


def test_oom_kill_is_reported():
    engine = FakeEngine(oom=["build"], exit_codes={"build": 137})
    with pytest.raises(OomError, match="build : received oom kill"):
        Runtime(_config([_step("build")]), engine).run()


def test_detached_step_is_not_waited_for():
    engine = FakeEngine()
    Runtime(_config([_step("db", detached=True)], [_step("test")]), engine).run()
    waited = [call[1] for call in engine.calls if call[0] == "wait"]
    assert waited == ["test"]


def test_environment_is_traced_and_mirrored():
    engine = FakeEngine()
    step = _step("build", environment={"CI_REPO": "octocat/hello"})
    Runtime(_config([step]), engine).run()

    env = engine.executed[0].environment
    assert env["CI_BUILD_STATUS"] == "success"
    assert env["DRONE_BUILD_STATUS"] == "success"
    assert env["DRONE_REPO"] == "octocat/hello"


def test_tracer_can_skip_a_step():
    def tracer(state):
        if state.step.alias == "skipped" and state.process is None:
            raise SkipStep()

    engine = FakeEngine()
    Runtime(_config([_step("skipped")], [_step("kept")]), engine, tracer=tracer).run()
    assert engine.executed_aliases == ["kept"]


def test_timeout_cancels_running_steps():
    engine = FakeEngine(delay=10)
    scope = ExecutionScope(timeout=0.2)

    start = time.monotonic()
    with pytest.raises(CancelledError, match="deadline exceeded"):
        Runtime(_config([_step("slow")], [_step("never")]), engine, scope).run()

    assert time.monotonic() - start < 5
    assert engine.destroyed.is_set()
    assert "never" not in engine.executed_aliases


def test_cancelled_scope_prevents_setup():
    engine = FakeEngine()
    scope = ExecutionScope()
    scope.cancel("interrupted")
    with pytest.raises(CancelledError):
        Runtime(_config([_step("a")]), engine, scope).run()
    assert engine.executed == []
    assert engine.calls == [("destroy",)]


def test_deadline_bounds_the_poll_interval():
    engine = FakeEngine(delay=10)
    scope = ExecutionScope(timeout=0.2)

    start = time.monotonic()
    with pytest.raises(CancelledError):
        Runtime(_config([_step("slow")]), engine, scope, poll_interval=30).run()

    assert time.monotonic() - start < 5
