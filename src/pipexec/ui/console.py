"""Console output formatting utilities for pipexec."""

from __future__ import annotations

import sys
from typing import Optional, TextIO


class Console:
    """Centralized console output formatting."""

    def __init__(
        self,
        debug: bool = False,
        out: Optional[TextIO] = None,
        err: Optional[TextIO] = None,
    ):
        """
        Initialize console formatter.

        Args:
            debug: If True, show detailed output including stack traces
            out: Stream for regular output (defaults to stdout)
            err: Stream for errors and debug output (defaults to stderr)
        """
        self.debug = debug
        self._out = out
        self._err = err

    @property
    def out(self) -> TextIO:
        return self._out if self._out is not None else sys.stdout

    @property
    def err(self) -> TextIO:
        return self._err if self._err is not None else sys.stderr

    def print_run_started(self, pipeline: str, axis_count: int) -> None:
        """Print run start information."""
        print("\nRUN STARTED", file=self.out)
        print(f"Pipeline: {pipeline}", file=self.out)
        print(f"Axes: {axis_count}", file=self.out)
        print(file=self.out)

    def print_axis_started(self, index: int, total: int, axis: str) -> None:
        """Print the start of one matrix axis."""
        print(f"\nAXIS STARTED: {index}/{total}", file=self.out)
        if axis:
            print(f"Matrix: {axis}", file=self.out)

    def print_axis_state(self, index: int, state: str) -> None:
        """Print an axis state transition (debug only)."""
        self.print_debug(f"axis {index}: {state}")

    def print_axis_finished(self, index: int, status: str) -> None:
        """Print axis completion."""
        print(f"AXIS {index}: {status.upper()}", file=self.out)

    def print_error(
        self,
        title: str,
        message: str,
        details: Optional[list[str]] = None,
        suggestion: Optional[str] = None,
    ) -> None:
        """
        Print structured error message.

        Args:
            title: Error title
            message: Main error message
            details: Optional list of detail lines
            suggestion: Optional suggestion for user
        """
        print(f"\nERROR: {title}", file=self.err)
        print(f"{message}", file=self.err)
        if details:
            for detail in details:
                print(f"  {detail}", file=self.err)
        if suggestion:
            print(f"\n{suggestion}", file=self.err)

    def print_exception(self, exc: BaseException) -> None:
        """Print exception, with full traceback only in debug mode."""
        if self.debug:
            import traceback
            traceback.print_exception(type(exc), exc, exc.__traceback__, file=self.err)
        else:
            print(f"Error: {exc}", file=self.err)

    def print_info(self, message: str) -> None:
        """Print informational message."""
        print(message, file=self.out)

    def print_debug(self, message: str) -> None:
        """Print debug message (only if debug mode enabled)."""
        if self.debug:
            print(f"[DEBUG] {message}", file=self.err)


# Console used by the CLI (initialized by the `cli` group)
_console: Optional[Console] = None


def get_console() -> Console:
    """Get the CLI console instance."""
    global _console
    if _console is None:
        _console = Console()
    return _console


def set_console(console: Console) -> None:
    """Set the CLI console instance."""
    global _console
    _console = console
