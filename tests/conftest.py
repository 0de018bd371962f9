"""Pytest configuration and shared fixtures."""

import pytest
from click.testing import CliRunner

from tests.helpers import FakeEngine


@pytest.fixture
def engine():
    return FakeEngine()


@pytest.fixture
def cli_runner():
    """Provide Click CLI test runner."""
    return CliRunner()


@pytest.fixture
def write_pipeline(tmp_path):
    """Write a pipeline file into tmp_path and return its path."""
    def _write(text: str, name: str = ".woodpecker.yml"):
        path = tmp_path / name
        path.write_text(text)
        return path
    return _write
