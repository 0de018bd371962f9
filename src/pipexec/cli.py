# cli.py
from __future__ import annotations

import re
import sys

import click

from .errors import PipexecError
from .frontend.compiler import Netrc
from .orchestrator import (
    DEFAULT_FILE,
    DEFAULT_PREFIX,
    DEFAULT_PRIVILEGED,
    DEFAULT_TIMEOUT,
    DEFAULT_WORKSPACE_BASE,
    DEFAULT_WORKSPACE_PATH,
    ExecConfig,
    Orchestrator,
)
from .ui.console import Console, get_console, set_console

ERROR_TITLES = {
    "matrix": "Invalid build matrix",
    "config": "Invalid configuration",
    "template": "Cannot substitute pipeline variables",
    "definition": "Invalid pipeline definition",
    "lint": "Pipeline failed linting",
    "compile": "Cannot compile pipeline",
    "backend": "Pipeline execution failed",
    "cancelled": "Pipeline cancelled",
    "logs": "Cannot read step logs",
}


class Duration(click.ParamType):
    """Go style durations: 90s, 1h30m, 250ms, 1.5h. Bare numbers are seconds."""

    name = "duration"

    _UNITS = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0}
    _PART = re.compile(r"(\d+(?:\.\d+)?)(ms|s|m|h)")

    def convert(self, value, param, ctx):
        if isinstance(value, (int, float)):
            return float(value)
        text = str(value).strip()
        try:
            return float(text)
        except ValueError:
            pass
        pos, total = 0, 0.0
        for m in self._PART.finditer(text):
            if m.start() != pos:
                break
            total += float(m.group(1)) * self._UNITS[m.group(2)]
            pos = m.end()
        if not text or pos != len(text):
            self.fail(f"{value!r} is not a valid duration", param, ctx)
        return total


DURATION = Duration()


class CommaList(click.ParamType):
    """
    String option that is repeatable on the command line and comma
    separated when read from an environment variable. Whitespace inside
    an item is kept ("MSG=hello world").
    """

    name = "text"

    def split_envvar_value(self, rv):
        return [item.strip() for item in (rv or "").split(",") if item.strip()]

    def convert(self, value, param, ctx):
        return str(value)


COMMA_LIST = CommaList()


# (option, environment variable, type, default)
METADATA_OPTIONS = [
    ("system-arch", "WOODPECKER_SYSTEM_ARCH", str, "linux/amd64"),
    ("system-name", "WOODPECKER_SYSTEM_NAME", str, "pipec"),
    ("system-link", "WOODPECKER_SYSTEM_LINK", str, "https://github.com/cncd/pipec"),
    ("repo-name", "WOODPECKER_REPO_NAME", str, ""),
    ("repo-link", "WOODPECKER_REPO_LINK", str, ""),
    ("repo-remote-url", "WOODPECKER_REPO_REMOTE", str, ""),
    ("repo-private", "WOODPECKER_REPO_PRIVATE", click.BOOL, False),
    ("build-number", "WOODPECKER_BUILD_NUMBER", int, 0),
    ("parent-build-number", "WOODPECKER_PARENT_BUILD_NUMBER", int, 0),
    ("build-created", "WOODPECKER_BUILD_CREATED", int, 0),
    ("build-started", "WOODPECKER_BUILD_STARTED", int, 0),
    ("build-finished", "WOODPECKER_BUILD_FINISHED", int, 0),
    ("build-status", "WOODPECKER_BUILD_STATUS", str, ""),
    ("build-event", "WOODPECKER_BUILD_EVENT", str, ""),
    ("build-link", "WOODPECKER_BUILD_LINK", str, ""),
    ("build-target", "WOODPECKER_BUILD_TARGET", str, ""),
    ("commit-sha", "WOODPECKER_COMMIT_SHA", str, ""),
    ("commit-ref", "WOODPECKER_COMMIT_REF", str, ""),
    ("commit-refspec", "WOODPECKER_COMMIT_REFSPEC", str, ""),
    ("commit-branch", "WOODPECKER_COMMIT_BRANCH", str, ""),
    ("commit-message", "WOODPECKER_COMMIT_MESSAGE", str, ""),
    ("commit-author-name", "WOODPECKER_COMMIT_AUTHOR_NAME", str, ""),
    ("commit-author-avatar", "WOODPECKER_COMMIT_AUTHOR_AVATAR", str, ""),
    ("commit-author-email", "WOODPECKER_COMMIT_AUTHOR_EMAIL", str, ""),
    ("prev-build-number", "WOODPECKER_PREV_BUILD_NUMBER", int, 0),
    ("prev-build-created", "WOODPECKER_PREV_BUILD_CREATED", int, 0),
    ("prev-build-started", "WOODPECKER_PREV_BUILD_STARTED", int, 0),
    ("prev-build-finished", "WOODPECKER_PREV_BUILD_FINISHED", int, 0),
    ("prev-build-status", "WOODPECKER_PREV_BUILD_STATUS", str, ""),
    ("prev-build-event", "WOODPECKER_PREV_BUILD_EVENT", str, ""),
    ("prev-build-link", "WOODPECKER_PREV_BUILD_LINK", str, ""),
    ("prev-commit-sha", "WOODPECKER_PREV_COMMIT_SHA", str, ""),
    ("prev-commit-ref", "WOODPECKER_PREV_COMMIT_REF", str, ""),
    ("prev-commit-refspec", "WOODPECKER_PREV_COMMIT_REFSPEC", str, ""),
    ("prev-commit-branch", "WOODPECKER_PREV_COMMIT_BRANCH", str, ""),
    ("prev-commit-message", "WOODPECKER_PREV_COMMIT_MESSAGE", str, ""),
    ("prev-commit-author-name", "WOODPECKER_PREV_COMMIT_AUTHOR_NAME", str, ""),
    ("prev-commit-author-avatar", "WOODPECKER_PREV_COMMIT_AUTHOR_AVATAR", str, ""),
    ("prev-commit-author-email", "WOODPECKER_PREV_COMMIT_AUTHOR_EMAIL", str, ""),
    ("job-number", "WOODPECKER_JOB_NUMBER", int, 0),
]

METADATA_KEYS = [name.replace("-", "_") for name, _, _, _ in METADATA_OPTIONS]


def metadata_options(f):
    """Attach every build metadata option to a command."""
    for name, envvar, type_, default in reversed(METADATA_OPTIONS):
        f = click.option(
            f"--{name}",
            envvar=envvar,
            type=type_,
            default=default,
            show_envvar=True,
        )(f)
    return f


@click.group()
@click.option(
    "--debug",
    is_flag=True,
    default=False,
    help="Enable debug mode (show stack traces and detailed output)",
)
@click.pass_context
def cli(ctx, debug):
    """pipexec: run CI pipeline definitions locally."""
    console = Console(debug=debug)
    set_console(console)
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug


@cli.command("exec")
@click.argument("path", required=False, default=DEFAULT_FILE, metavar="[path/to/.woodpecker.yml]")
@click.option("--local/--no-local", envvar="WOODPECKER_LOCAL", default=True, help="build from local directory")
@click.option("--timeout", envvar="WOODPECKER_TIMEOUT", type=DURATION, default=DEFAULT_TIMEOUT, help="build timeout (e.g. 1h, 30m)")
@click.option("--volumes", envvar="WOODPECKER_VOLUMES", multiple=True, type=COMMA_LIST, help="build volumes")
@click.option("--network", "networks", envvar="WOODPECKER_NETWORKS", multiple=True, type=COMMA_LIST, help="external networks")
@click.option("--prefix", envvar="WOODPECKER_DOCKER_PREFIX", default=DEFAULT_PREFIX, hidden=True, help="prefix containers created by pipexec")
@click.option("--privileged", envvar="WOODPECKER_PLUGINS_PRIVILEGED", multiple=True, type=COMMA_LIST, default=DEFAULT_PRIVILEGED, show_default=True, help="privileged plugins")
@click.option("--workspace-base", envvar="WOODPECKER_WORKSPACE_BASE", default=DEFAULT_WORKSPACE_BASE, show_default=True)
@click.option("--workspace-path", envvar="WOODPECKER_WORKSPACE_PATH", default=DEFAULT_WORKSPACE_PATH, show_default=True)
@click.option("--netrc-username", envvar="WOODPECKER_NETRC_USERNAME", default="")
@click.option("--netrc-password", envvar="WOODPECKER_NETRC_PASSWORD", default="")
@click.option("--netrc-machine", envvar="WOODPECKER_NETRC_MACHINE", default="")
@metadata_options
@click.option("-e", "--env", "env", envvar="WOODPECKER_ENV", multiple=True, type=COMMA_LIST, help="KEY=VALUE environment override (repeatable)")
@click.pass_context
def exec_command(ctx, path, local, timeout, volumes, networks, prefix, privileged,
                 workspace_base, workspace_path, netrc_username, netrc_password,
                 netrc_machine, env, **metadata):
    """Execute a local build."""
    console = get_console()

    config = ExecConfig(
        local=local,
        timeout=timeout,
        volumes=tuple(volumes),
        networks=tuple(networks),
        prefix=prefix,
        privileged=tuple(privileged),
        workspace_base=workspace_base,
        workspace_path=workspace_path,
        netrc=Netrc(
            username=netrc_username,
            password=netrc_password,
            machine=netrc_machine,
        ),
        metadata={key: metadata[key] for key in METADATA_KEYS},
        env=tuple(env),
    )

    try:
        Orchestrator(config, console=console).run_all(path)
    except KeyboardInterrupt:
        console.print_info("\nInterrupted by user")
        sys.exit(130)
    except PipexecError as e:
        console.print_error(ERROR_TITLES.get(e.kind, "Pipeline failed"), str(e))
        if ctx.obj.get("debug", False):
            console.print_exception(e)
        sys.exit(1)
    except Exception as e:
        console.print_exception(e)
        sys.exit(1)


if __name__ == "__main__":
    cli()
