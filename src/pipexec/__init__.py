__version__ = "0.1.0"

from .errors import (
    BackendError,
    CancelledError,
    CompileError,
    ConfigError,
    DefinitionParseError,
    ExitError,
    LintError,
    LogStreamError,
    MatrixParseError,
    OomError,
    PipexecError,
    TemplateError,
)
from .model import Axis, Secret
from .metadata import Metadata
from .orchestrator import ExecConfig, Orchestrator

__all__ = [
    "Axis", "Secret", "Metadata", "ExecConfig", "Orchestrator",
    "PipexecError", "MatrixParseError", "ConfigError", "TemplateError",
    "DefinitionParseError", "LintError", "CompileError", "BackendError",
    "CancelledError", "ExitError", "OomError", "LogStreamError",
]
