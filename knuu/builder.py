"""Image build options and build-context helpers."""

from __future__ import annotations

import hashlib
import re
from dataclasses import dataclass, field
from typing import Optional, Protocol, Union

from knuu.errors import Error

BUILD_ARG_KEY = "--build-arg"
DIR_PROTOCOL = "dir:///"
GIT_PROTOCOL = "git://"

_GIT_REPO_PROTOCOL = re.compile(r"^(https?|git|ssh|ftp)://")
_GIT_REPO_DOT_GIT = re.compile(r"\.git\Z")

ERR_BUILD_CONTEXT_EMPTY = Error("BuildContextEmpty", "build context cannot be empty")


@dataclass(frozen=True)
class BuildArg:
    """A ``--build-arg`` passed to the image builder."""

    value: str

    @property
    def key(self) -> str:
        return BUILD_ARG_KEY


@dataclass(frozen=True)
class CustomArg:
    """An arbitrary key/value argument passed to the image builder."""

    key: str
    value: str


Arg = Union[BuildArg, CustomArg]


@dataclass
class CacheOptions:
    """Layer cache settings for a build."""

    enabled: bool = False
    dir: str = ""
    repo: str = ""


@dataclass
class BuilderOptions:
    """Everything a builder needs to produce and push one image."""

    image_name: str = ""
    build_context: str = ""
    args: list[Arg] = field(default_factory=list)
    destination: str = ""
    cache: Optional[CacheOptions] = None


class Builder(Protocol):
    """Something that builds and pushes an image, returning its logs."""

    def build(self, options: BuilderOptions) -> str:
        """Build the image described by ``options`` and return the build logs."""
        ...


def _hash_string(text: str) -> str:
    return hashlib.sha256(text.encode()).hexdigest()


def default_cache_options(build_context: str) -> CacheOptions:
    """Return cache options keyed on a hash of the build context."""
    if not build_context:
        raise ERR_BUILD_CONTEXT_EMPTY
    # The builder appends its own tag to the repository, so none is added here.
    return CacheOptions(
        enabled=True,
        dir="",
        repo=f"ttl.sh/{_hash_string(build_context)}:24h",
    )


def default_image_name(build_context: str) -> str:
    """Return a temporary registry image name derived from the build context."""
    if not build_context:
        raise ERR_BUILD_CONTEXT_EMPTY
    return f"ttl.sh/{_hash_string(build_context)}:24h"


@dataclass
class DirContext:
    """A build context rooted at an absolute local directory."""

    path: str

    def build_context(self) -> str:
        return DIR_PROTOCOL + self.path.strip("/")


def get_dir_from_build_context(ctx: str) -> str:
    """Return the absolute directory named by a ``dir:///`` build context."""
    return "/" + ctx.removeprefix(DIR_PROTOCOL)


def is_dir_context(ctx: str) -> bool:
    return ctx.startswith(DIR_PROTOCOL)


@dataclass
class GitContext:
    """A build context fetched from a git repository."""

    repo: str
    branch: str = ""
    commit: str = ""
    username: str = ""
    password: str = ""

    def build_context(self) -> str:
        """Return the ``git://`` build context; ``repo`` is normalised in place."""
        repo = _GIT_REPO_PROTOCOL.sub("", self.repo)
        repo = _GIT_REPO_DOT_GIT.sub("", repo)
        self.repo = repo.removesuffix("/")

        context = GIT_PROTOCOL
        if self.username:
            context += self.username
            if self.password:
                context += ":" + self.password
            context += "@"
        context += self.repo
        if self.branch:
            context += "#refs/heads/" + self.branch
        if self.commit:
            context += "#" + self.commit
        return context


def is_git_context(ctx: str) -> bool:
    return ctx.startswith(GIT_PROTOCOL)