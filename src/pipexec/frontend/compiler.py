# frontend/compiler.py
from __future__ import annotations

import base64
import json
import os
import posixpath
import shlex
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from ..backend.types import Config, Network, Stage, Step, Volume
from ..errors import CompileError
from ..metadata import Metadata
from ..model import Secret
from .definition import Container, Definition
from .images import match_image

DEFAULT_CLONE_IMAGE = "woodpeckerci/plugin-git"

PROXY_VARS = ("no_proxy", "http_proxy", "https_proxy")

SETUP_SCRIPT = """
if [ -n "$CI_NETRC_MACHINE" ]; then
cat <<EOF > $HOME/.netrc
machine $CI_NETRC_MACHINE
login $CI_NETRC_USERNAME
password $CI_NETRC_PASSWORD
EOF
chmod 0600 $HOME/.netrc
fi
unset CI_NETRC_USERNAME
unset CI_NETRC_PASSWORD
unset CI_SCRIPT
{commands}
"""

TRACE_SCRIPT = """
echo + {quoted}
{command}
"""


@dataclass(frozen=True)
class Netrc:
    username: str = ""
    password: str = ""
    machine: str = ""

    def environ(self) -> Dict[str, str]:
        if not self.machine:
            return {}
        return {
            "CI_NETRC_USERNAME": self.username,
            "CI_NETRC_PASSWORD": self.password,
            "CI_NETRC_MACHINE": self.machine,
            "DRONE_NETRC_USERNAME": self.username,
            "DRONE_NETRC_PASSWORD": self.password,
            "DRONE_NETRC_MACHINE": self.machine,
        }


def generate_script(commands: Sequence[str]) -> str:
    """Wrap commands in a traced posix shell script, base64 encoded."""
    body = "".join(
        TRACE_SCRIPT.format(quoted=shlex.quote(command), command=command)
        for command in commands
    )
    script = SETUP_SCRIPT.format(commands=body)
    return base64.b64encode(script.encode("utf-8")).decode("ascii")


def params_to_env(settings: Mapping[str, Any]) -> Dict[str, str]:
    """Plugin settings become PLUGIN_<KEY> variables."""
    env: Dict[str, str] = {}
    for key, value in settings.items():
        name = "PLUGIN_" + str(key).upper().replace("-", "_").replace(".", "_")
        if value is None:
            env[name] = ""
        elif isinstance(value, dict):
            env[name] = json.dumps(value)
        elif isinstance(value, list):
            if any(isinstance(v, (dict, list)) for v in value):
                env[name] = json.dumps(value)
            else:
                env[name] = ",".join(str(v) for v in value)
        else:
            env[name] = str(value)
    return env


class Compiler:
    """
    Turns a linted Definition into a backend Config.

    Stages: clone (unless running from a local directory), services, then
    one stage per pipeline step; consecutive steps sharing a `group` share
    a stage and run together.
    """

    def __init__(
        self,
        *,
        escalated: Iterable[str] = (),
        volumes: Iterable[str] = (),
        workspace_base: str = "/woodpecker",
        workspace_path: str = "src",
        networks: Iterable[str] = (),
        prefix: str = "woodpecker",
        proxy: bool = True,
        local: bool = False,
        netrc: Optional[Netrc] = None,
        metadata: Optional[Metadata] = None,
        secrets: Iterable[Secret] = (),
        environ: Optional[Mapping[str, str]] = None,
        clone_image: str = DEFAULT_CLONE_IMAGE,
    ):
        self.escalated = list(escalated)
        self.volumes = list(volumes)
        self.base = workspace_base
        self.path = workspace_path
        self.networks = list(networks)
        self.prefix = prefix
        self.local = local
        self.netrc = netrc or Netrc()
        self.metadata = metadata or Metadata()
        self.secrets = {s.name.lower(): s for s in secrets}
        self.clone_image = clone_image

        # proxy < metadata < matrix < overrides
        env: Dict[str, str] = _proxy_environ() if proxy else {}
        env.update(self.metadata.environ())
        env.update(self.metadata.drone_environ())
        env.update(self.metadata.job.matrix)
        env.update(environ or {})
        self.env = env

    def compile(self, definition: Definition) -> Config:
        if definition.workspace.base:
            self.base = definition.workspace.base
        if definition.workspace.path:
            self.path = definition.workspace.path

        config = Config(
            volumes=[Volume(name=f"{self.prefix}_default")],
            networks=[Network(name=f"{self.prefix}_default")],
        )

        if not self.local:
            clone = Container(name="clone", image=self.clone_image)
            step = self._step(clone, f"{self.prefix}_clone", "clone")
            config.stages.append(Stage(name=f"{self.prefix}_clone", alias="clone", steps=[step]))

        if definition.services:
            services = Stage(name=f"{self.prefix}_services", alias="services")
            for i, container in enumerate(definition.services):
                services.steps.append(
                    self._step(container, f"{self.prefix}_services_{i}", "services")
                )
            config.stages.append(services)

        stage: Optional[Stage] = None
        group = ""
        for i, container in enumerate(definition.pipeline):
            if stage is None or not container.group or container.group != group:
                stage = Stage(name=f"{self.prefix}_stage_{len(config.stages)}", alias=container.name)
                config.stages.append(stage)
            group = container.group
            stage.steps.append(self._step(container, f"{self.prefix}_step_{i}", "pipeline"))

        return config

    def _step(self, container: Container, name: str, section: str) -> Step:
        workspace = posixpath.join(self.base, self.path)
        detached = section == "services" or container.detached

        environment: Dict[str, str] = dict(container.environment)
        for key, value in self.env.items():
            if value != "":
                environment[key] = value
        environment["CI_WORKSPACE"] = workspace
        if section == "clone":
            environment.update(self.netrc.environ())

        if not detached:
            environment.update(params_to_env(container.settings))

        entrypoint = list(container.entrypoint)
        command: List[str] = []
        if container.commands:
            entrypoint = ["/bin/sh", "-c"]
            command = ["echo $CI_SCRIPT | base64 -d | /bin/sh -e"]
            environment["CI_SCRIPT"] = generate_script(container.commands)
            environment["HOME"] = "/root"
            environment["SHELL"] = "/bin/sh"

        for ref in container.secrets:
            secret = self.secrets.get(ref.source.lower())
            if secret is None or not secret.allowed_for(container.image):
                raise CompileError(
                    f"{container.name}: secret {ref.source!r} not found or not allowed to be used"
                )
            environment[ref.target.upper()] = secret.value

        volumes = [] if self.local else [f"{self.prefix}_default:{self.base}"]
        volumes.extend(self.volumes)
        volumes.extend(container.volumes)

        status = container.when_status
        return Step(
            name=name,
            alias=container.name,
            image=container.image,
            environment=environment,
            entrypoint=entrypoint,
            command=command,
            working_dir=workspace if not detached or container.commands else "",
            volumes=volumes,
            networks=[f"{self.prefix}_default", *self.networks],
            network_mode=container.network_mode,
            devices=list(container.devices),
            extra_hosts=list(container.extra_hosts),
            dns=list(container.dns),
            tmpfs=list(container.tmpfs),
            privileged=container.privileged or match_image(container.image, *self.escalated),
            detached=detached,
            on_success=not status or "success" in status,
            on_failure="failure" in status,
        )


def _proxy_environ() -> Dict[str, str]:
    env: Dict[str, str] = {}
    for name in PROXY_VARS:
        value = os.environ.get(name) or os.environ.get(name.upper())
        if value:
            env[name] = value
            env[name.upper()] = value
    return env
