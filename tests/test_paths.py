"""Tests for host path conversion."""

import pytest

from pipexec.paths import convert_path_for_windows


@pytest.mark.parametrize(
    "path,expected",
    [
        ("/home/me/repo", "/home/me/repo"),
        ("C:\\Users\\me\\repo", "/c/Users/me/repo"),
        ("d:\\work", "/d/work"),
        ("relative\\dir", "relative/dir"),
        ("\\\\server\\share\\repo", "//server/share/repo"),
    ],
)
def test_convert_path_for_windows(path, expected):
    assert convert_path_for_windows(path) == expected
