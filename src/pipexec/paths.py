# paths.py
from __future__ import annotations

import ntpath


def convert_path_for_windows(path: str) -> str:
    """
    Rewrite a Windows host path into the form Docker expects for a bind
    mount source.

        C:\\Users\\me\\repo    -> /c/Users/me/repo
        \\\\host\\share\\repo  -> //host/share/repo
        relative\\dir          -> relative/dir

    Only a two character drive prefix (``C:``) is translated into a
    ``/c`` mount root; longer volume prefixes such as UNC shares are only
    converted to forward slashes.
    """
    drive, rest = ntpath.splitdrive(path)
    if len(drive) == 2:
        return "/" + drive.rstrip(":").lower() + _to_slash(rest)
    return _to_slash(path)


def _to_slash(path: str) -> str:
    return path.replace("\\", "/")
