# environ.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List

from .errors import ConfigError
from .metadata import Metadata
from .model import Secret


@dataclass(frozen=True)
class Resolution:
    """
    Variables resolved for one axis.

    environ:   used for template substitution (metadata < axis values)
    secrets:   axis values again, handed to the compiler as secrets
    overrides: user supplied KEY=VALUE pairs; not used for substitution,
               they override the step environment at execution time
    """
    environ: Dict[str, str] = field(default_factory=dict)
    secrets: List[Secret] = field(default_factory=list)
    overrides: Dict[str, str] = field(default_factory=dict)


def parse_overrides(entries: Iterable[str]) -> Dict[str, str]:
    """
    Parse repeated KEY=VALUE entries, splitting on the first '='.

    Raises:
        ConfigError: for an entry with no '=' or an empty key
    """
    overrides: Dict[str, str] = {}
    for entry in entries:
        key, sep, value = entry.partition("=")
        if not sep:
            raise ConfigError(f"Invalid environment override {entry!r}: expected KEY=VALUE")
        if not key:
            raise ConfigError(f"Invalid environment override {entry!r}: empty variable name")
        overrides[key] = value
    return overrides


def resolve(metadata: Metadata, overrides: Iterable[str] = ()) -> Resolution:
    """
    Merge metadata, the job's matrix axis and user overrides.

    Precedence for the substitution environment, lowest first:
      1. metadata (CI_* then DRONE_*)
      2. matrix axis values, which are also recorded as secrets
    """
    environ = metadata.environ()
    environ.update(metadata.drone_environ())

    secrets: List[Secret] = []
    for key, value in metadata.job.matrix.items():
        environ[key] = value
        secrets.append(Secret(name=key, value=value))

    return Resolution(
        environ=environ,
        secrets=secrets,
        overrides=parse_overrides(overrides),
    )
