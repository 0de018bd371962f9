# envsubst.py
from __future__ import annotations

import re
from fnmatch import fnmatchcase
from typing import Callable, Mapping, Union

from .errors import TemplateError

Lookup = Union[Mapping[str, str], Callable[[str], str]]

_NAME = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")
_INT = re.compile(r"\s*-?\d+\s*$")


def substitute(text: str, lookup: Lookup) -> str:
    """
    Replace $VAR and ${VAR...} references in `text`.

    Unknown variables expand to "". `$$` yields a literal `$`, and a `$`
    not followed by a name or brace is kept as is. Supported operators:

        ${VAR:-default} ${VAR-default} ${VAR:=default} ${VAR=default}
        ${VAR:+alt} ${VAR+alt} ${#VAR}
        ${VAR^} ${VAR^^} ${VAR,} ${VAR,,}
        ${VAR:offset} ${VAR:offset:length}
        ${VAR#pat} ${VAR##pat} ${VAR%pat} ${VAR%%pat}
        ${VAR/old/new} ${VAR//old/new}

    Raises:
        TemplateError: on unterminated or malformed ${...} expressions
    """
    if isinstance(lookup, Mapping):
        mapping = lookup
        fn: Callable[[str], str] = lambda name: mapping.get(name, "")
    else:
        fn = lookup

    out = []
    i, n = 0, len(text)
    while i < n:
        j = text.find("$", i)
        if j < 0:
            out.append(text[i:])
            break
        out.append(text[i:j])
        i = j

        if i + 1 >= n:
            out.append("$")
            break
        nxt = text[i + 1]
        if nxt == "$":
            out.append("$")
            i += 2
        elif nxt == "{":
            end = _closing_brace(text, i + 2)
            if end < 0:
                raise TemplateError(f"unterminated variable reference at offset {i}")
            out.append(_expand(text[i + 2:end], fn))
            i = end + 1
        else:
            m = _NAME.match(text, i + 1)
            if m:
                out.append(fn(m.group(0)) or "")
                i = m.end()
            else:
                out.append("$")
                i += 1
    return "".join(out)


def _closing_brace(text: str, start: int) -> int:
    depth = 1
    i = start
    while i < len(text):
        c = text[i]
        if c == "{" and text[i - 1] == "$":
            depth += 1
        elif c == "}":
            depth -= 1
            if depth == 0:
                return i
        i += 1
    return -1


def _expand(expr: str, fn: Callable[[str], str]) -> str:
    if expr.startswith("#") and len(expr) > 1:
        return str(len(fn(_name(expr[1:], expr)) or ""))

    m = _NAME.match(expr)
    if not m:
        raise TemplateError(f"bad substitution: ${{{expr}}}")
    name, rest = m.group(0), expr[m.end():]
    value = fn(name) or ""

    if not rest:
        return value

    # case modification
    if rest == "^^":
        return value.upper()
    if rest == "^":
        return value[:1].upper() + value[1:]
    if rest == ",,":
        return value.lower()
    if rest == ",":
        return value[:1].lower() + value[1:]

    # defaults and alternatives
    for op in (":-", ":=", "-", "="):
        if rest.startswith(op):
            return value if value else substitute(rest[len(op):], fn)
    for op in (":+", "+"):
        if rest.startswith(op):
            return substitute(rest[len(op):], fn) if value else ""

    # substring
    if rest.startswith(":"):
        return _substring(value, rest[1:], expr)

    # pattern removal
    if rest.startswith("##"):
        return _trim_prefix(value, substitute(rest[2:], fn), longest=True)
    if rest.startswith("#"):
        return _trim_prefix(value, substitute(rest[1:], fn), longest=False)
    if rest.startswith("%%"):
        return _trim_suffix(value, substitute(rest[2:], fn), longest=True)
    if rest.startswith("%"):
        return _trim_suffix(value, substitute(rest[1:], fn), longest=False)

    # replacement
    if rest.startswith("//"):
        old, new = _split_replacement(rest[2:], fn)
        return value.replace(old, new) if old else value
    if rest.startswith("/"):
        old, new = _split_replacement(rest[1:], fn)
        return value.replace(old, new, 1) if old else value

    raise TemplateError(f"bad substitution: ${{{expr}}}")


def _name(candidate: str, expr: str) -> str:
    if not _NAME.fullmatch(candidate):
        raise TemplateError(f"bad substitution: ${{{expr}}}")
    return candidate


def _substring(value: str, spec: str, expr: str) -> str:
    offset, _, length = spec.partition(":")
    if not _INT.match(offset) or (length and not _INT.match(length)):
        raise TemplateError(f"bad substitution: ${{{expr}}}")
    start = int(offset)
    if start < 0:
        start = max(len(value) + start, 0)
    if not length:
        return value[start:]
    size = int(length)
    if size < 0:
        return value[start:len(value) + size]
    return value[start:start + size]


def _trim_prefix(value: str, pattern: str, *, longest: bool) -> str:
    cuts = range(len(value), -1, -1) if longest else range(len(value) + 1)
    for k in cuts:
        if fnmatchcase(value[:k], pattern):
            return value[k:]
    return value


def _trim_suffix(value: str, pattern: str, *, longest: bool) -> str:
    cuts = range(len(value) + 1) if longest else range(len(value), -1, -1)
    for k in cuts:
        if fnmatchcase(value[k:], pattern):
            return value[:k]
    return value


def _split_replacement(arg: str, fn: Callable[[str], str]):
    old, _, new = arg.partition("/")
    return substitute(old, fn), substitute(new, fn)
