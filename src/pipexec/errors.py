# errors.py
from __future__ import annotations

from dataclasses import dataclass


class PipexecError(Exception):
    """Base class for every error raised while executing a pipeline."""

    kind = "error"


class MatrixParseError(PipexecError):
    kind = "matrix"


class ConfigError(PipexecError):
    """Invalid command line configuration (e.g. a malformed --env entry)."""

    kind = "config"


class TemplateError(PipexecError):
    kind = "template"


class DefinitionParseError(PipexecError):
    kind = "definition"


class LintError(PipexecError):
    kind = "lint"


class CompileError(PipexecError):
    kind = "compile"


class BackendError(PipexecError):
    kind = "backend"


class CancelledError(BackendError):
    """The execution scope was cancelled (deadline exceeded or interrupt)."""

    kind = "cancelled"

    def __init__(self, reason: str = "cancelled"):
        super().__init__(f"execution cancelled: {reason}")
        self.reason = reason


@dataclass(eq=False)
class ExitError(BackendError):
    name: str
    code: int

    def __str__(self) -> str:
        return f"{self.name} : exit code {self.code}"


@dataclass(eq=False)
class OomError(BackendError):
    name: str
    code: int

    def __str__(self) -> str:
        return f"{self.name} : received oom kill"


class LogStreamError(PipexecError):
    kind = "logs"
