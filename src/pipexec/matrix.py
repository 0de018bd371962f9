# matrix.py
from __future__ import annotations

from typing import Any, Dict, List

import yaml

from .errors import MatrixParseError
from .frontend.loader import load_text
from .model import Axis

# Upper bounds on the size of an expanded matrix.
LIMIT_TAGS = 10
LIMIT_AXES = 25


def parse(raw: str) -> List[Axis]:
    """
    Expand the `matrix` block of a pipeline file into build axes.

    Two forms are accepted:

        matrix:                      matrix:
          GO_VERSION: [1.20, 1.21]     include:
          REDIS: [6, 7]                  - GO_VERSION: 1.20
                                           REDIS: 6

    The first form is expanded as a cartesian product, the first key
    varying slowest. The second yields one axis per entry, in order.

    Returns an empty list when there is no matrix; callers normalize that
    to a single empty axis.
    """
    try:
        doc = load_text(raw)
    except yaml.YAMLError as e:
        raise MatrixParseError(f"Parse matrix fail: {e}") from e

    if not isinstance(doc, dict):
        return []
    block = doc.get("matrix")
    if block in (None, ""):
        return []
    if not isinstance(block, dict):
        raise MatrixParseError("Parse matrix fail: matrix must be a mapping")

    if "include" in block:
        return _parse_include(block["include"])
    return _calc(_parse_tags(block))


def _parse_include(entries: Any) -> List[Axis]:
    if not isinstance(entries, list):
        raise MatrixParseError("Parse matrix fail: matrix.include must be a list")
    axes: List[Axis] = []
    for entry in entries[:LIMIT_AXES]:
        if not isinstance(entry, dict):
            raise MatrixParseError("Parse matrix fail: matrix.include entries must be mappings")
        for key, value in entry.items():
            _require_scalar(key, value)
        axes.append(Axis(list(entry.items())[:LIMIT_TAGS]))
    return axes


def _parse_tags(block: Dict[Any, Any]) -> Dict[str, List[str]]:
    tags: Dict[str, List[str]] = {}
    for key, values in block.items():
        if not isinstance(values, list):
            raise MatrixParseError(f"Parse matrix fail: values of {key!r} must be a list")
        for value in values:
            _require_scalar(key, value)
        tags[str(key)] = ["" if v is None else str(v) for v in values]
    return tags


def _require_scalar(key: Any, value: Any) -> None:
    if isinstance(value, (dict, list)):
        raise MatrixParseError(f"Parse matrix fail: value of {key!r} must be a scalar")


def _calc(tags: Dict[str, List[str]]) -> List[Axis]:
    names = list(tags)[:LIMIT_TAGS]
    if not names or any(not tags[n] for n in names):
        return []

    perm = 1
    for name in names:
        perm *= len(tags[name])

    axes: List[Axis] = []
    for p in range(min(perm, LIMIT_AXES)):
        pairs = []
        decr = perm
        for name in names:
            elems = tags[name]
            decr //= len(elems)
            pairs.append((name, elems[p // decr % len(elems)]))
        axes.append(Axis(pairs))
    return axes
