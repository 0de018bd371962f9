# backend/docker.py
from __future__ import annotations

import subprocess
import threading
from typing import BinaryIO, Dict, List

from ..errors import BackendError
from .types import Config, State, Step

DOCKER_HINT = "Install Docker and ensure the daemon is running."


def new_env(docker: str = "docker") -> "DockerEngine":
    """Return an engine talking to the local Docker daemon through the CLI."""
    _check_docker_available(docker)
    return DockerEngine(docker)


def _check_docker_available(docker: str) -> None:
    """Check if Docker is available, raise a helpful error if not."""
    try:
        subprocess.run(
            [docker, "version", "--format", "{{.Server.Version}}"],
            capture_output=True,
            check=True,
        )
    except (subprocess.CalledProcessError, FileNotFoundError) as e:
        raise BackendError(f"Docker is not available ({e}). {DOCKER_HINT}") from e


def create_args(step: Step) -> List[str]:
    """Arguments for `docker create` that reproduce `step`."""
    args = ["create", "--name", step.name]

    for key in sorted(step.environment):
        args.extend(["-e", f"{key}={step.environment[key]}"])
    for volume in step.volumes:
        args.extend(["-v", volume])
    for device in step.devices:
        args.extend(["--device", device])
    for host in step.extra_hosts:
        args.extend(["--add-host", host])
    for server in step.dns:
        args.extend(["--dns", server])
    for mount in step.tmpfs:
        args.extend(["--tmpfs", mount])

    if step.network_mode:
        args.extend(["--network", step.network_mode])
    elif step.networks:
        args.extend(["--network", step.networks[0], "--network-alias", step.alias])

    if step.working_dir:
        args.extend(["-w", step.working_dir])
    if step.privileged:
        args.append("--privileged")

    # docker only takes the executable in --entrypoint; the rest joins the command
    command = list(step.command)
    if step.entrypoint:
        args.extend(["--entrypoint", step.entrypoint[0]])
        command = list(step.entrypoint[1:]) + command

    args.append(step.image)
    args.extend(command)
    return args


class DockerEngine:
    """Engine that shells out to the docker CLI."""

    def __init__(self, docker: str = "docker"):
        self.docker = docker
        self._tails: Dict[str, subprocess.Popen] = {}
        self._lock = threading.Lock()

    def _docker(self, *args: str, check: bool = True) -> subprocess.CompletedProcess:
        proc = subprocess.run(
            [self.docker, *args],
            capture_output=True,
            text=True,
        )
        if check and proc.returncode != 0:
            raise BackendError(f"docker {args[0]} failed: {proc.stderr.strip()}")
        return proc

    def setup(self, config: Config) -> None:
        for volume in config.volumes:
            self._docker("volume", "create", "--driver", volume.driver, volume.name)
        for network in config.networks:
            self._docker("network", "create", "--driver", network.driver, network.name)

    def exec(self, step: Step) -> None:
        self._docker(*create_args(step))
        if not step.network_mode:
            for network in step.networks[1:]:
                self._docker("network", "connect", "--alias", step.alias, network, step.name)
        self._docker("start", step.name)

    def tail(self, step: Step) -> BinaryIO:
        proc = subprocess.Popen(
            [self.docker, "logs", "--follow", step.name],
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
        )
        with self._lock:
            self._tails[step.name] = proc
        return proc.stdout

    def wait(self, step: Step) -> State:
        out = self._docker("wait", step.name).stdout.strip()
        try:
            code = int(out.splitlines()[-1])
        except (IndexError, ValueError) as e:
            raise BackendError(f"docker wait {step.name}: unexpected output {out!r}") from e

        inspect = self._docker(
            "inspect", "--format", "{{.State.OOMKilled}}", step.name, check=False
        )
        return State(
            exit_code=code,
            exited=True,
            oom_killed=inspect.stdout.strip() == "true",
        )

    def destroy(self, config: Config) -> None:
        # best effort: containers may never have been created
        for stage in config.stages:
            for step in stage.steps:
                self._docker("rm", "--force", step.name, check=False)
        with self._lock:
            tails, self._tails = self._tails, {}
        for proc in tails.values():
            if proc.poll() is None:
                proc.terminate()
        for volume in config.volumes:
            self._docker("volume", "rm", "--force", volume.name, check=False)
        for network in config.networks:
            self._docker("network", "rm", network.name, check=False)
