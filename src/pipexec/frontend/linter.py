# frontend/linter.py
from __future__ import annotations

from typing import List

from ..errors import LintError
from .definition import Container, Definition

BLOCK_PIPELINE = "pipeline"
BLOCK_SERVICES = "services"


class Linter:
    """
    Validates a parsed definition.

    Untrusted definitions may not use host level capabilities (privileged
    mode, volumes, devices, ...); trusted ones may.
    """

    def __init__(self, trusted: bool = False):
        self.trusted = trusted

    def lint(self, definition: Definition) -> None:
        if not definition.pipeline:
            raise LintError("Invalid or missing pipeline section")
        self._lint(definition.pipeline, BLOCK_PIPELINE)
        self._lint(definition.services, BLOCK_SERVICES)

    def _lint(self, containers: List[Container], block: str) -> None:
        for container in containers:
            _lint_image(container)
            if not self.trusted:
                _lint_trusted(container)
            if block != BLOCK_SERVICES and not container.detached:
                _lint_entrypoint(container)
            _lint_commands(container)


def _fail(container: Container, message: str) -> None:
    raise LintError(f"{container.name}: {message}")


def _lint_image(container: Container) -> None:
    if not container.image:
        _fail(container, "Invalid or missing image")


def _lint_commands(container: Container) -> None:
    if container.commands and container.settings:
        keys = sorted(container.settings)
        _fail(container, f"Cannot configure both commands and custom attributes {keys}")


def _lint_entrypoint(container: Container) -> None:
    if container.entrypoint:
        _fail(container, "Cannot override container entrypoint")


def _lint_trusted(container: Container) -> None:
    if container.privileged:
        _fail(container, "Insufficient privileges to use privileged mode")
    if container.volumes:
        _fail(container, "Insufficient privileges to use volumes")
    if container.devices:
        _fail(container, "Insufficient privileges to use devices")
    if container.network_mode:
        _fail(container, "Insufficient privileges to use network_mode")
    if container.extra_hosts:
        _fail(container, "Insufficient privileges to use extra_hosts")
    if container.dns:
        _fail(container, "Insufficient privileges to use dns")
    if container.tmpfs:
        _fail(container, "Insufficient privileges to use tmpfs")
