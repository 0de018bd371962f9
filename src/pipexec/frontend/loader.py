# frontend/loader.py
from __future__ import annotations

import re
from typing import Any

import yaml


class TextLoader(yaml.SafeLoader):
    """
    SafeLoader that keeps every plain scalar as the text it was written as.

    Pipeline files are consumed as strings (environment values, matrix
    entries, plugin settings), so `1.20` must stay "1.20" rather than
    collapsing to the float 1.2. Merge keys (`<<`) keep working, and
    null (`~`, `null`, empty) still loads as None.
    """


TextLoader.yaml_implicit_resolvers = {
    "<": [("tag:yaml.org,2002:merge", re.compile(r"^(?:<<)$"))],
}
TextLoader.add_implicit_resolver(
    "tag:yaml.org,2002:null",
    re.compile(r"^(?:~|null|Null|NULL|)$"),
    ["~", "n", "N", ""],
)


def load_text(raw: str) -> Any:
    """Parse a single YAML document with TextLoader."""
    return yaml.load(raw, Loader=TextLoader)


_TRUE = {"true", "yes", "on", "y", "1"}
_FALSE = {"false", "no", "off", "n", "0", ""}


def as_bool(value: Any, field: str = "value") -> bool:
    """Interpret a scalar loaded by TextLoader as a boolean."""
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    text = str(value).strip().lower()
    if text in _TRUE:
        return True
    if text in _FALSE:
        return False
    raise ValueError(f"{field}: expected a boolean, got {value!r}")
