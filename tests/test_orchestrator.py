"""Tests for per-axis orchestration."""

import io
from pathlib import Path

import pytest

from pipexec.environ import resolve
from pipexec.errors import CancelledError, CompileError, ConfigError, LintError
from pipexec.frontend.compiler import Compiler
from pipexec.frontend.definition import parse
from pipexec.metadata import Metadata
from pipexec.model import Axis, Secret
from pipexec.orchestrator import AxisState, ExecConfig, Orchestrator
from pipexec.ui.console import Console

from tests.helpers import FakeEngine

MATRIX_PIPELINE = """
matrix:
  GO_VERSION: [1.20, 1.21]

pipeline:
  build:
    image: golang:${GO_VERSION}
    commands: [go version]
"""

SIMPLE_PIPELINE = """
pipeline:
  build:
    image: alpine
    commands: [echo hello]
"""


class RecordingCompilerFactory:
    """Builds real compilers and records the arguments of every call."""

    def __init__(self, fail_on=None):
        self.calls = []
        self.fail_on = fail_on

    def __call__(self, **kwargs):
        self.calls.append(kwargs)
        if len(self.calls) == self.fail_on:
            raise CompileError("build: cannot compile")
        return Compiler(**kwargs)


def _orchestrator(engine, config=None, **kwargs):
    out = io.StringIO()
    orch = Orchestrator(
        config or ExecConfig(),
        console=Console(out=out, err=out),
        log_stream=io.StringIO(),
        engine_factory=lambda: engine,
        **kwargs,
    )
    return orch, out


def test_matrix_axes_run_with_their_values(write_pipeline):
    engine = FakeEngine()
    factory = RecordingCompilerFactory()
    orch, out = _orchestrator(engine, compiler_factory=factory)

    orch.run_all(write_pipeline(MATRIX_PIPELINE))

    assert [s.image for s in engine.executed] == ["golang:1.20", "golang:1.21"]
    assert [s.environment["GO_VERSION"] for s in engine.executed] == ["1.20", "1.21"]
    assert [call["secrets"] for call in factory.calls] == [
        [Secret("GO_VERSION", "1.20")],
        [Secret("GO_VERSION", "1.21")],
    ]
    assert [run.state for run in orch.runs] == [AxisState.SUCCEEDED, AxisState.SUCCEEDED]
    assert "AXIS 2: SUCCEEDED" in out.getvalue()


def test_pipeline_without_matrix_runs_once(write_pipeline):
    engine = FakeEngine()
    orch, _ = _orchestrator(engine)

    orch.run_all(write_pipeline(SIMPLE_PIPELINE))

    assert len(orch.runs) == 1
    assert orch.runs[0].axis == Axis()
    assert engine.executed_aliases == ["build"]


def test_first_failing_axis_stops_the_run(write_pipeline):
    raw = MATRIX_PIPELINE.replace("[1.20, 1.21]", "[1.19, 1.20, 1.21]")
    engine = FakeEngine()
    factory = RecordingCompilerFactory(fail_on=2)
    orch, _ = _orchestrator(engine, compiler_factory=factory)

    with pytest.raises(CompileError):
        orch.run_all(write_pipeline(raw))

    assert len(factory.calls) == 2
    assert [s.image for s in engine.executed] == ["golang:1.19"]
    assert [run.state for run in orch.runs] == [
        AxisState.SUCCEEDED,
        AxisState.FAILED,
        AxisState.PENDING,
    ]
    assert isinstance(orch.runs[1].error, CompileError)


def test_malformed_override_fails_before_execution(write_pipeline):
    engine = FakeEngine()
    orch, _ = _orchestrator(engine, ExecConfig(env=("BROKEN",)))

    with pytest.raises(ConfigError):
        orch.run_all(write_pipeline(SIMPLE_PIPELINE))

    assert engine.calls == []
    assert orch.runs[0].state == AxisState.FAILED


def test_overrides_reach_the_step_environment(write_pipeline):
    engine = FakeEngine()
    orch, _ = _orchestrator(engine, ExecConfig(env=("FOO=bar", "CI_COMMIT_BRANCH=dev")))

    orch.run_all(write_pipeline(SIMPLE_PIPELINE))

    env = engine.executed[0].environment
    assert env["FOO"] == "bar"
    assert env["CI_COMMIT_BRANCH"] == "dev"


def test_metadata_options_reach_the_step_environment(write_pipeline):
    engine = FakeEngine()
    config = ExecConfig(metadata={"repo_name": "octocat/hello", "build_number": 12})
    orch, _ = _orchestrator(engine, config)

    orch.run_all(write_pipeline(SIMPLE_PIPELINE))

    env = engine.executed[0].environment
    assert env["CI_REPO_NAME"] == "hello"
    assert env["CI_BUILD_NUMBER"] == "12"
    assert env["DRONE_BUILD_NUMBER"] == "12"


def test_lint_failure_stops_before_execution(write_pipeline):
    engine = FakeEngine()
    orch, _ = _orchestrator(engine)

    with pytest.raises(LintError):
        orch.run_all(write_pipeline("pipeline:\n  build:\n    commands: [make]\n"))

    assert engine.calls == []


def test_missing_pipeline_file_is_a_config_error(tmp_path):
    orch, _ = _orchestrator(FakeEngine())
    with pytest.raises(ConfigError):
        orch.run_all(tmp_path / "missing.yml")


def test_timeout_cancels_the_axis(write_pipeline):
    engine = FakeEngine(delay=10)
    orch, out = _orchestrator(engine, ExecConfig(timeout=0.2))

    with pytest.raises(CancelledError):
        orch.run_all(write_pipeline(SIMPLE_PIPELINE))

    assert orch.runs[0].state == AxisState.CANCELLED
    assert engine.destroyed.is_set()
    assert "AXIS 1: CANCELLED" in out.getvalue()


def test_local_mode_mounts_pipeline_directory(write_pipeline, tmp_path):
    engine = FakeEngine()
    orch, _ = _orchestrator(engine)

    orch.run_all(write_pipeline(SIMPLE_PIPELINE))

    step = engine.executed[0]
    assert step.volumes == [
        "woodpecker_default:/woodpecker",
        f"{tmp_path}:/woodpecker/src",
    ]


def test_local_volumes_follow_definition_workspace(tmp_path):
    orch, _ = _orchestrator(FakeEngine())
    conf = parse("workspace:\n  base: /go\n  path: src/hello\npipeline: {}\n")

    volumes = orch.local_volumes(tmp_path / ".woodpecker.yml", conf)

    assert volumes == ["woodpecker_default:/go", f"{tmp_path}:/go/src/hello"]


def test_local_volumes_for_relative_file_use_working_directory(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    orch, _ = _orchestrator(FakeEngine())

    volumes = orch.local_volumes(Path(".woodpecker.yml"), parse(SIMPLE_PIPELINE))

    assert volumes[1] == f"{tmp_path}:/woodpecker/src"


def test_expansion_is_deterministic():
    orch, _ = _orchestrator(FakeEngine())
    res = resolve(Metadata.from_options({}, Axis({"GO_VERSION": "1.20"})))

    first = orch.expand(MATRIX_PIPELINE, res)
    assert first == orch.expand(MATRIX_PIPELINE, res)
    assert "image: golang:1.20" in first


def test_overrides_win_over_host_proxy(write_pipeline, monkeypatch):
    monkeypatch.setenv("HTTP_PROXY", "http://host-proxy:3128")
    engine = FakeEngine()
    orch, _ = _orchestrator(engine, ExecConfig(env=("HTTP_PROXY=http://mine:8080",)))

    orch.run_all(write_pipeline(SIMPLE_PIPELINE))

    assert engine.executed[0].environment["HTTP_PROXY"] == "http://mine:8080"
