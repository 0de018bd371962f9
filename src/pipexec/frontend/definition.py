# frontend/definition.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List

import yaml

from ..errors import DefinitionParseError
from .loader import as_bool, load_text

# Container keys with a meaning of their own; anything else is a plugin setting.
CONTAINER_KEYS = {
    "image",
    "commands",
    "environment",
    "secrets",
    "privileged",
    "volumes",
    "devices",
    "network_mode",
    "extra_hosts",
    "dns",
    "tmpfs",
    "entrypoint",
    "detach",
    "group",
    "when",
    "settings",
}


@dataclass(frozen=True)
class SecretRef:
    source: str
    target: str


@dataclass
class Container:
    name: str
    image: str = ""
    commands: List[str] = field(default_factory=list)
    environment: Dict[str, str] = field(default_factory=dict)
    secrets: List[SecretRef] = field(default_factory=list)
    privileged: bool = False
    volumes: List[str] = field(default_factory=list)
    devices: List[str] = field(default_factory=list)
    network_mode: str = ""
    extra_hosts: List[str] = field(default_factory=list)
    dns: List[str] = field(default_factory=list)
    tmpfs: List[str] = field(default_factory=list)
    entrypoint: List[str] = field(default_factory=list)
    detached: bool = False
    group: str = ""
    when_status: List[str] = field(default_factory=list)
    settings: Dict[str, Any] = field(default_factory=dict)


@dataclass
class Workspace:
    base: str = ""
    path: str = ""


@dataclass
class Definition:
    workspace: Workspace = field(default_factory=Workspace)
    pipeline: List[Container] = field(default_factory=list)
    services: List[Container] = field(default_factory=list)


def parse(raw: str) -> Definition:
    """
    Parse substituted pipeline text into a Definition.

    Raises:
        DefinitionParseError: on invalid YAML or unexpected structure
    """
    try:
        doc = load_text(raw)
    except yaml.YAMLError as e:
        raise DefinitionParseError(f"invalid pipeline yaml: {e}") from e

    if doc in (None, ""):
        doc = {}
    if not isinstance(doc, dict):
        raise DefinitionParseError("pipeline definition must be a mapping")

    try:
        return Definition(
            workspace=_workspace(doc.get("workspace")),
            pipeline=_containers(doc.get("pipeline"), "pipeline"),
            services=_containers(doc.get("services"), "services"),
        )
    except (TypeError, ValueError) as e:
        raise DefinitionParseError(str(e)) from e


def _workspace(raw: Any) -> Workspace:
    if raw in (None, ""):
        return Workspace()
    if not isinstance(raw, dict):
        raise ValueError("workspace must be a mapping")
    return Workspace(base=str(raw.get("base") or ""), path=str(raw.get("path") or ""))


def _containers(raw: Any, section: str) -> List[Container]:
    if raw in (None, ""):
        return []
    if not isinstance(raw, dict):
        raise ValueError(f"{section} must be a mapping of step name to container")
    return [_container(str(name), body, section) for name, body in raw.items()]


def _container(name: str, raw: Any, section: str) -> Container:
    where = f"{section}.{name}"
    if not isinstance(raw, dict):
        raise ValueError(f"{where} must be a mapping")

    settings = {k: v for k, v in raw.items() if k not in CONTAINER_KEYS}
    explicit = raw.get("settings")
    if explicit not in (None, ""):
        if not isinstance(explicit, dict):
            raise ValueError(f"{where}.settings must be a mapping")
        settings.update(explicit)

    return Container(
        name=name,
        image=_scalar(raw.get("image"), f"{where}.image"),
        commands=_str_list(raw.get("commands"), f"{where}.commands"),
        environment=_environment(raw.get("environment"), f"{where}.environment"),
        secrets=_secrets(raw.get("secrets"), f"{where}.secrets"),
        privileged=as_bool(raw.get("privileged"), f"{where}.privileged"),
        volumes=_str_list(raw.get("volumes"), f"{where}.volumes"),
        devices=_str_list(raw.get("devices"), f"{where}.devices"),
        network_mode=_scalar(raw.get("network_mode"), f"{where}.network_mode"),
        extra_hosts=_str_list(raw.get("extra_hosts"), f"{where}.extra_hosts"),
        dns=_str_list(raw.get("dns"), f"{where}.dns"),
        tmpfs=_str_list(raw.get("tmpfs"), f"{where}.tmpfs"),
        entrypoint=_str_list(raw.get("entrypoint"), f"{where}.entrypoint"),
        detached=as_bool(raw.get("detach"), f"{where}.detach"),
        group=_scalar(raw.get("group"), f"{where}.group"),
        when_status=_when_status(raw.get("when"), f"{where}.when"),
        settings=settings,
    )


def _scalar(raw: Any, where: str) -> str:
    if raw is None:
        return ""
    if isinstance(raw, (dict, list)):
        raise ValueError(f"{where} must be a string")
    return str(raw)


def _str_list(raw: Any, where: str) -> List[str]:
    """Accept a single string or a list of strings."""
    if raw in (None, ""):
        return []
    if isinstance(raw, list):
        return [_scalar(item, where) for item in raw]
    return [_scalar(raw, where)]


def _environment(raw: Any, where: str) -> Dict[str, str]:
    if raw in (None, ""):
        return {}
    if isinstance(raw, dict):
        return {str(k): _scalar(v, f"{where}.{k}") for k, v in raw.items()}
    if isinstance(raw, list):
        env: Dict[str, str] = {}
        for item in raw:
            key, sep, value = _scalar(item, where).partition("=")
            if not sep:
                raise ValueError(f"{where}: expected KEY=VALUE, got {item!r}")
            env[key] = value
        return env
    raise ValueError(f"{where} must be a mapping or a list")


def _secrets(raw: Any, where: str) -> List[SecretRef]:
    refs: List[SecretRef] = []
    if raw in (None, ""):
        return refs
    if not isinstance(raw, list):
        raw = [raw]
    for item in raw:
        if isinstance(item, dict):
            source = _scalar(item.get("source"), f"{where}.source")
            target = _scalar(item.get("target"), f"{where}.target") or source
        else:
            source = target = _scalar(item, where)
        if not source:
            raise ValueError(f"{where}: secret without a name")
        refs.append(SecretRef(source=source, target=target))
    return refs


def _when_status(raw: Any, where: str) -> List[str]:
    if raw in (None, ""):
        return []
    if not isinstance(raw, dict):
        raise ValueError(f"{where} must be a mapping")
    return [s.lower() for s in _str_list(raw.get("status"), f"{where}.status")]
