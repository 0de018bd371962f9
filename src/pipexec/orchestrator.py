# orchestrator.py
from __future__ import annotations

import enum
import os
import posixpath
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, List, Mapping, Optional, TextIO, Tuple

from . import envsubst, matrix
from .backend import docker
from .backend.types import Config, Engine
from .environ import Resolution, resolve
from .errors import CancelledError, ConfigError
from .frontend import definition as yaml_definition
from .frontend.compiler import Compiler, Netrc
from .frontend.definition import Definition
from .frontend.linter import Linter
from .logs import StepLogger
from .metadata import Metadata
from .model import Axis
from .paths import convert_path_for_windows
from .runtime import Runtime
from .scope import ExecutionScope, interrupt
from .ui.console import Console

DEFAULT_FILE = ".woodpecker.yml"
DEFAULT_TIMEOUT = 60 * 60.0
DEFAULT_PREFIX = "woodpecker"
DEFAULT_PRIVILEGED = ("plugins/docker", "plugins/gcr", "plugins/ecr")
DEFAULT_WORKSPACE_BASE = "/woodpecker"
DEFAULT_WORKSPACE_PATH = "src"


class AxisState(str, enum.Enum):
    PENDING = "pending"
    RESOLVING = "resolving"
    COMPILING = "compiling"
    LINTED = "linted"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class ExecConfig:
    """
    Command line configuration shared (read-only) by every axis.

    `metadata` holds the raw metadata option values keyed by option name
    with underscores (repo_name, commit_sha, prev_build_number, ...).
    `env` holds the raw KEY=VALUE override entries.
    """
    local: bool = True
    timeout: float = DEFAULT_TIMEOUT
    volumes: Tuple[str, ...] = ()
    networks: Tuple[str, ...] = ()
    prefix: str = DEFAULT_PREFIX
    privileged: Tuple[str, ...] = DEFAULT_PRIVILEGED
    workspace_base: str = DEFAULT_WORKSPACE_BASE
    workspace_path: str = DEFAULT_WORKSPACE_PATH
    netrc: Netrc = field(default_factory=Netrc)
    metadata: Mapping[str, Any] = field(default_factory=dict)
    env: Tuple[str, ...] = ()


@dataclass
class AxisRun:
    """Bookkeeping for one axis of the matrix."""
    index: int
    axis: Axis
    state: AxisState = AxisState.PENDING
    error: Optional[BaseException] = None


def _default_engine() -> Engine:
    return docker.new_env()


class Orchestrator:
    """
    Executes a pipeline file once per matrix axis.

    Axes run strictly one after another; the first failing axis ends the
    run and its error is raised. Nothing is rolled back for axes that
    already completed.
    """

    def __init__(
        self,
        config: ExecConfig,
        *,
        console: Optional[Console] = None,
        log_stream: Optional[TextIO] = None,
        engine_factory: Optional[Callable[[], Engine]] = None,
        linter: Optional[Linter] = None,
        compiler_factory: Callable[..., Compiler] = Compiler,
        platform: str = sys.platform,
    ):
        self.config = config
        self.console = console or Console()
        self.logger = StepLogger(log_stream)
        self.engine_factory = engine_factory or _default_engine
        self.linter = linter or Linter(trusted=True)
        self.compiler_factory = compiler_factory
        self.platform = platform
        self.runs: List[AxisRun] = []

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def run_all(self, path: str | Path = DEFAULT_FILE) -> None:
        path = Path(path or DEFAULT_FILE)
        raw = _read(path)

        axes = matrix.parse(raw) or [Axis()]
        self.runs = [AxisRun(index=i, axis=axis) for i, axis in enumerate(axes, 1)]
        self.console.print_run_started(str(path), len(axes))

        for run in self.runs:
            self.run_axis(path, raw, run)

    def run_axis(self, path: Path, raw: str, run: AxisRun) -> None:
        self.console.print_axis_started(run.index, len(self.runs) or 1, str(run.axis))
        try:
            self._transition(run, AxisState.RESOLVING)
            metadata, resolution = self.resolve(run.axis)
            text = self.expand(raw, resolution)
            conf = yaml_definition.parse(text)

            self._transition(run, AxisState.COMPILING)
            volumes = list(self.config.volumes)
            if self.config.local:
                volumes.extend(self.local_volumes(path, conf))

            self.linter.lint(conf)
            self._transition(run, AxisState.LINTED)

            compiled = self.compile(conf, metadata, resolution, volumes)

            self._transition(run, AxisState.RUNNING)
            self.execute(compiled)
        except CancelledError as e:
            run.error = e
            self._transition(run, AxisState.CANCELLED)
            raise
        except Exception as e:
            run.error = e
            self._transition(run, AxisState.FAILED)
            raise
        self._transition(run, AxisState.SUCCEEDED)

    # ------------------------------------------------------------------
    # Per-axis stages
    # ------------------------------------------------------------------

    def resolve(self, axis: Axis) -> Tuple[Metadata, Resolution]:
        metadata = Metadata.from_options(self.config.metadata, axis)
        return metadata, resolve(metadata, self.config.env)

    def expand(self, raw: str, resolution: Resolution) -> str:
        return envsubst.substitute(raw, resolution.environ)

    def local_volumes(self, path: Path, conf: Definition) -> List[str]:
        """Named workspace volume plus a bind mount of the pipeline's directory."""
        base = conf.workspace.base or self.config.workspace_base
        ws_path = conf.workspace.path or self.config.workspace_path

        source = os.path.abspath(os.path.dirname(os.fspath(path)) or ".")
        if self.platform == "win32":
            source = convert_path_for_windows(source)

        return [
            f"{self.config.prefix}_default:{base}",
            f"{source}:{posixpath.join(base, ws_path)}",
        ]

    def compile(
        self,
        conf: Definition,
        metadata: Metadata,
        resolution: Resolution,
        volumes: List[str],
    ) -> Config:
        compiler = self.compiler_factory(
            escalated=self.config.privileged,
            volumes=volumes,
            workspace_base=self.config.workspace_base,
            workspace_path=self.config.workspace_path,
            networks=self.config.networks,
            prefix=self.config.prefix,
            proxy=True,
            local=self.config.local,
            netrc=self.config.netrc,
            metadata=metadata,
            secrets=resolution.secrets,
            environ=resolution.overrides,
        )
        return compiler.compile(conf)

    def execute(self, compiled: Config) -> None:
        engine = self.engine_factory()
        scope = ExecutionScope(timeout=self.config.timeout)
        with interrupt(scope):
            Runtime(compiled, engine, scope, logger=self.logger).run()

    def _transition(self, run: AxisRun, state: AxisState) -> None:
        run.state = state
        self.console.print_axis_state(run.index, state.value)
        if state in (AxisState.SUCCEEDED, AxisState.FAILED, AxisState.CANCELLED):
            self.console.print_axis_finished(run.index, state.value)


def _read(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"cannot read pipeline file {path}: {e}") from e
