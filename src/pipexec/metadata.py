# metadata.py
from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping

from . import __version__
from .model import Axis

EVENT_PUSH = "push"
EVENT_PULL = "pull_request"
EVENT_TAG = "tag"
EVENT_DEPLOY = "deployment"

_PULL_REF = re.compile(r"\d+")


@dataclass(frozen=True)
class Repo:
    name: str = ""
    link: str = ""
    remote: str = ""
    private: bool = False


@dataclass(frozen=True)
class Author:
    name: str = ""
    email: str = ""
    avatar: str = ""


@dataclass(frozen=True)
class Commit:
    sha: str = ""
    ref: str = ""
    refspec: str = ""
    branch: str = ""
    message: str = ""
    author: Author = field(default_factory=Author)


@dataclass(frozen=True)
class Build:
    number: int = 0
    parent: int = 0
    created: int = 0
    started: int = 0
    finished: int = 0
    status: str = ""
    event: str = ""
    link: str = ""
    target: str = ""
    commit: Commit = field(default_factory=Commit)


@dataclass(frozen=True)
class Job:
    number: int = 0
    matrix: Axis = field(default_factory=Axis)


@dataclass(frozen=True)
class System:
    name: str = ""
    link: str = ""
    arch: str = ""


@dataclass(frozen=True)
class Metadata:
    """
    Read-only snapshot of everything a build knows about itself:
    repository, current and previous build, job (including its matrix
    axis) and the executing system.
    """
    repo: Repo = field(default_factory=Repo)
    curr: Build = field(default_factory=Build)
    prev: Build = field(default_factory=Build)
    job: Job = field(default_factory=Job)
    sys: System = field(default_factory=System)

    @classmethod
    def from_options(cls, options: Mapping[str, Any], axis: Axis) -> Metadata:
        """
        Build metadata from command line option values.

        `options` is keyed by option name with dashes replaced by
        underscores (e.g. "commit_sha", "prev_build_number"); missing
        keys fall back to empty values.
        """
        def s(key: str) -> str:
            value = options.get(key)
            return "" if value is None else str(value)

        def i(key: str) -> int:
            value = options.get(key)
            return int(value) if value not in (None, "") else 0

        def commit(prefix: str) -> Commit:
            return Commit(
                sha=s(f"{prefix}commit_sha"),
                ref=s(f"{prefix}commit_ref"),
                refspec=s(f"{prefix}commit_refspec"),
                branch=s(f"{prefix}commit_branch"),
                message=s(f"{prefix}commit_message"),
                author=Author(
                    name=s(f"{prefix}commit_author_name"),
                    email=s(f"{prefix}commit_author_email"),
                    avatar=s(f"{prefix}commit_author_avatar"),
                ),
            )

        return cls(
            repo=Repo(
                name=s("repo_name"),
                link=s("repo_link"),
                remote=s("repo_remote_url"),
                private=bool(options.get("repo_private") or False),
            ),
            curr=Build(
                number=i("build_number"),
                parent=i("parent_build_number"),
                created=i("build_created"),
                started=i("build_started"),
                finished=i("build_finished"),
                status=s("build_status"),
                event=s("build_event"),
                link=s("build_link"),
                target=s("build_target"),
                commit=commit(""),
            ),
            prev=Build(
                number=i("prev_build_number"),
                created=i("prev_build_created"),
                started=i("prev_build_started"),
                finished=i("prev_build_finished"),
                status=s("prev_build_status"),
                event=s("prev_build_event"),
                link=s("prev_build_link"),
                commit=commit("prev_"),
            ),
            job=Job(number=i("job_number"), matrix=axis),
            sys=System(
                name=s("system_name"),
                link=s("system_link"),
                arch=s("system_arch"),
            ),
        )

    # ------------------------------------------------------------------
    # Environment
    # ------------------------------------------------------------------

    def environ(self) -> Dict[str, str]:
        """Flatten the metadata into CI_* environment variables."""
        repo_owner, repo_name = "", self.repo.name
        parts = self.repo.name.split("/")
        if len(parts) == 2:
            repo_owner, repo_name = parts

        source_branch, target_branch = "", ""
        parts = self.curr.commit.refspec.split(":")
        if len(parts) == 2:
            source_branch, target_branch = parts

        params = {
            "CI": self.sys.name,
            "CI_REPO": self.repo.name,
            "CI_REPO_OWNER": repo_owner,
            "CI_REPO_NAME": repo_name,
            "CI_REPO_SCM": "git",
            "CI_REPO_LINK": self.repo.link,
            "CI_REPO_REMOTE": self.repo.remote,
            "CI_REPO_PRIVATE": _bool(self.repo.private),

            "CI_COMMIT_SHA": self.curr.commit.sha,
            "CI_COMMIT_REF": self.curr.commit.ref,
            "CI_COMMIT_REFSPEC": self.curr.commit.refspec,
            "CI_COMMIT_BRANCH": self.curr.commit.branch,
            "CI_COMMIT_SOURCE_BRANCH": source_branch,
            "CI_COMMIT_TARGET_BRANCH": target_branch,
            "CI_COMMIT_LINK": self.curr.link,
            "CI_COMMIT_MESSAGE": self.curr.commit.message,
            "CI_COMMIT_AUTHOR": self.curr.commit.author.name,
            "CI_COMMIT_AUTHOR_EMAIL": self.curr.commit.author.email,
            "CI_COMMIT_AUTHOR_AVATAR": self.curr.commit.author.avatar,
            "CI_COMMIT_TAG": "",
            "CI_COMMIT_PULL_REQUEST": "",

            "CI_BUILD_NUMBER": str(self.curr.number),
            "CI_BUILD_PARENT": str(self.curr.parent),
            "CI_BUILD_EVENT": self.curr.event,
            "CI_BUILD_LINK": self.curr.link,
            "CI_BUILD_TARGET": self.curr.target,
            "CI_BUILD_CREATED": str(self.curr.created),
            "CI_BUILD_STARTED": str(self.curr.started),
            "CI_BUILD_FINISHED": str(self.curr.finished),
            "CI_BUILD_STATUS": self.curr.status,

            "CI_JOB_NUMBER": str(self.job.number),

            "CI_PREV_COMMIT_SHA": self.prev.commit.sha,
            "CI_PREV_COMMIT_REF": self.prev.commit.ref,
            "CI_PREV_COMMIT_REFSPEC": self.prev.commit.refspec,
            "CI_PREV_COMMIT_BRANCH": self.prev.commit.branch,
            "CI_PREV_COMMIT_LINK": self.prev.link,
            "CI_PREV_COMMIT_MESSAGE": self.prev.commit.message,
            "CI_PREV_COMMIT_AUTHOR": self.prev.commit.author.name,
            "CI_PREV_COMMIT_AUTHOR_EMAIL": self.prev.commit.author.email,
            "CI_PREV_COMMIT_AUTHOR_AVATAR": self.prev.commit.author.avatar,

            "CI_PREV_BUILD_NUMBER": str(self.prev.number),
            "CI_PREV_BUILD_EVENT": self.prev.event,
            "CI_PREV_BUILD_LINK": self.prev.link,
            "CI_PREV_BUILD_CREATED": str(self.prev.created),
            "CI_PREV_BUILD_STARTED": str(self.prev.started),
            "CI_PREV_BUILD_FINISHED": str(self.prev.finished),
            "CI_PREV_BUILD_STATUS": self.prev.status,

            "CI_SYSTEM_NAME": self.sys.name,
            "CI_SYSTEM_LINK": self.sys.link,
            "CI_SYSTEM_ARCH": self.sys.arch,
            "CI_SYSTEM_VERSION": __version__,
        }
        if self.curr.event == EVENT_TAG:
            params["CI_COMMIT_TAG"] = _trim_prefix(self.curr.commit.ref, "refs/tags/")
        if self.curr.event == EVENT_PULL:
            found = _PULL_REF.search(self.curr.commit.ref)
            params["CI_COMMIT_PULL_REQUEST"] = found.group(0) if found else ""
        return params

    def drone_environ(self) -> Dict[str, str]:
        """DRONE_* names kept for pipelines written against the older scheme."""
        params = {
            "DRONE_REPO": self.repo.name,
            "DRONE_REPO_LINK": self.repo.link,
            "DRONE_REMOTE_URL": self.repo.remote,
            "DRONE_REPO_PRIVATE": _bool(self.repo.private),
            "DRONE_BUILD_NUMBER": str(self.curr.number),
            "DRONE_PARENT_BUILD_NUMBER": str(self.curr.parent),
            "DRONE_BUILD_CREATED": str(self.curr.created),
            "DRONE_BUILD_STARTED": str(self.curr.started),
            "DRONE_BUILD_FINISHED": str(self.curr.finished),
            "DRONE_BUILD_STATUS": self.curr.status,
            "DRONE_BUILD_EVENT": self.curr.event,
            "DRONE_BUILD_LINK": self.curr.link,
            "DRONE_DEPLOY_TO": self.curr.target,
            "DRONE_COMMIT": self.curr.commit.sha,
            "DRONE_COMMIT_SHA": self.curr.commit.sha,
            "DRONE_COMMIT_REF": self.curr.commit.ref,
            "DRONE_COMMIT_REFSPEC": self.curr.commit.refspec,
            "DRONE_BRANCH": self.curr.commit.branch,
            "DRONE_COMMIT_BRANCH": self.curr.commit.branch,
            "DRONE_COMMIT_MESSAGE": self.curr.commit.message,
            "DRONE_COMMIT_AUTHOR": self.curr.commit.author.name,
            "DRONE_COMMIT_AUTHOR_EMAIL": self.curr.commit.author.email,
            "DRONE_COMMIT_AUTHOR_AVATAR": self.curr.commit.author.avatar,
            "DRONE_PREV_BUILD_NUMBER": str(self.prev.number),
            "DRONE_PREV_BUILD_STATUS": self.prev.status,
            "DRONE_PREV_COMMIT_SHA": self.prev.commit.sha,
            "DRONE_JOB_NUMBER": str(self.job.number),
            "DRONE_ARCH": self.sys.arch,
        }
        if self.curr.event == EVENT_TAG:
            params["DRONE_TAG"] = _trim_prefix(self.curr.commit.ref, "refs/tags/")
        if self.curr.event == EVENT_PULL:
            found = _PULL_REF.search(self.curr.commit.ref)
            params["DRONE_PULL_REQUEST"] = found.group(0) if found else ""
        return params


def _bool(value: bool) -> str:
    return "true" if value else "false"


def _trim_prefix(value: str, prefix: str) -> str:
    return value[len(prefix):] if value.startswith(prefix) else value
