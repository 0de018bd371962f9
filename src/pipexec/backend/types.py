# backend/types.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import BinaryIO, Dict, List, Protocol


@dataclass
class Step:
    """A container to run, as produced by the compiler."""
    name: str
    alias: str
    image: str
    environment: Dict[str, str] = field(default_factory=dict)
    entrypoint: List[str] = field(default_factory=list)
    command: List[str] = field(default_factory=list)
    working_dir: str = ""
    volumes: List[str] = field(default_factory=list)
    networks: List[str] = field(default_factory=list)
    network_mode: str = ""
    devices: List[str] = field(default_factory=list)
    extra_hosts: List[str] = field(default_factory=list)
    dns: List[str] = field(default_factory=list)
    tmpfs: List[str] = field(default_factory=list)
    privileged: bool = False
    detached: bool = False
    on_success: bool = True
    on_failure: bool = False


@dataclass
class Stage:
    name: str
    alias: str
    steps: List[Step] = field(default_factory=list)


@dataclass
class Volume:
    name: str
    driver: str = "local"


@dataclass
class Network:
    name: str
    driver: str = "bridge"


@dataclass
class Config:
    """Compiled pipeline: stages run in order, steps of a stage together."""
    stages: List[Stage] = field(default_factory=list)
    volumes: List[Volume] = field(default_factory=list)
    networks: List[Network] = field(default_factory=list)


@dataclass
class State:
    exit_code: int = 0
    exited: bool = False
    oom_killed: bool = False


class Engine(Protocol):
    """Container backend the runtime drives."""

    def setup(self, config: Config) -> None: ...

    def exec(self, step: Step) -> None: ...

    def tail(self, step: Step) -> BinaryIO: ...

    def wait(self, step: Step) -> State: ...

    def destroy(self, config: Config) -> None: ...
