"""Assembles Dockerfiles from image modifications and hands them to a builder."""

from __future__ import annotations

import hashlib
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator, Optional, Sequence

from knuu.builder import (
    Arg,
    Builder,
    BuilderOptions,
    DirContext,
    GitContext,
    default_cache_options,
)
from knuu.errors import Error

ERR_CREATING_DOCKER_CLIENT = Error("CreatingDockerClient", "failed to create docker client")
ERR_FAILED_TO_CREATE_CONTEXT_DIR = Error(
    "FailedToCreateContextDir", "failed to create context directory"
)
ERR_NO_IMAGE_NAME_PROVIDED = Error(
    "NoImageNameProvided", "no image name provided, push before reading"
)
ERR_FAILED_TO_CREATE_CONTAINER = Error("FailedToCreateContainer", "failed to create container")
ERR_FAILED_TO_STOP_CONTAINER = Error("FailedToStopContainer", "failed to stop container")
ERR_FAILED_TO_REMOVE_CONTAINER = Error("FailedToRemoveContainer", "failed to remove container")
ERR_FAILED_TO_START_CONTAINER = Error("FailedToStartContainer", "failed to start container")
ERR_FAILED_TO_COPY_FILE_FROM_CONTAINER = Error(
    "FailedToCopyFileFromContainer", "failed to copy file from container"
)
ERR_FAILED_TO_READ_FROM_TAR = Error("FailedToReadFromTar", "failed to read from tar")
ERR_FAILED_TO_READ_FILE_FROM_TAR = Error("FailedToReadFileFromTar", "failed to read file from tar")
ERR_FILE_NOT_FOUND_IN_TAR = Error("FileNotFoundInTar", "file not found in tar")
ERR_FAILED_TO_WRITE_DOCKERFILE = Error("FailedToWriteDockerfile", "failed to write Dockerfile")
ERR_FAILED_TO_GET_BUILD_CONTEXT = Error("FailedToGetBuildContext", "failed to get build context")
ERR_FAILED_TO_GET_DEFAULT_CACHE_OPTIONS = Error(
    "FailedToGetDefaultCacheOptions", "failed to get default cache options"
)
ERR_HASHING_DOCKERFILE = Error("HashingDockerfile", "error hashing Dockerfile content")
ERR_READING_FILE = Error("ReadingFile", "error reading file: %s")
ERR_HASHING_FILE = Error("HashingFile", "error hashing file %s")
ERR_HASHING_BUILD_CONTEXT = Error("HashingBuildContext", "error hashing build context")
ERR_IMAGE_NAME_EMPTY = Error("ImageNameEmpty", "image name is empty")
ERR_BUILD_CONTEXT_EMPTY = Error("BuildContextEmpty", "build context is empty")
ERR_IMAGE_BUILDER_NOT_SET = Error("ImageBuilderNotSet", "image builder is not set")
ERR_LOGGER_EMPTY = Error("LoggerEmpty", "logger is empty")

DOCKERFILE_NAME = "Dockerfile"


@dataclass
class BuilderFactoryOptions:
    """Settings for creating a :class:`BuilderFactory`."""

    image_name: str = ""
    build_context: str = ""
    image_builder: Optional[Builder] = None
    args: list[Arg] = field(default_factory=list)
    logger: Optional[logging.Logger] = None


def _walk_files(root: Path) -> Iterator[Path]:
    """Yield non-directory paths under ``root`` in lexical, depth-first order."""
    os.lstat(root)
    if not root.is_dir() or root.is_symlink():
        yield root
        return
    for name in sorted(os.listdir(root)):
        child = root / name
        if child.is_dir() and not child.is_symlink():
            yield from _walk_files(child)
        else:
            yield child


class BuilderFactory:
    """Collects Dockerfile instructions on top of a base image and builds the result."""

    def __init__(
        self,
        image_name_from: str,
        build_context: str,
        logger: logging.Logger,
        image_builder: Optional[Builder] = None,
        args: Sequence[Arg] = (),
    ) -> None:
        self.image_name_from = image_name_from
        self.image_name_to = ""
        self.build_context = build_context
        self.image_builder = image_builder
        self.args = list(args)
        self.logger = logger
        self.dockerfile_instructions = [f"FROM {image_name_from}"]

    @property
    def changed(self) -> bool:
        """Whether any instruction was added after the base image."""
        return len(self.dockerfile_instructions) > 1

    @property
    def dockerfile(self) -> str:
        return "\n".join(self.dockerfile_instructions)

    def add_cmd_to_builder(self, command: Sequence[str]) -> None:
        """Run ``command`` in the image being built."""
        self.dockerfile_instructions.append("RUN " + " ".join(command))

    def add_to_builder(self, src_path: str, dest_path: str, chown: str) -> None:
        """Add a file from the build context to the image with the given owner."""
        self.dockerfile_instructions.append(f"ADD --chown={chown} {src_path} {dest_path}")

    def set_env_var(self, name: str, value: str) -> None:
        self.dockerfile_instructions.append(f"ENV {name}={value}")

    def set_user(self, user: str) -> None:
        self.dockerfile_instructions.append(f"USER {user}")

    def _require_builder(self) -> Builder:
        if self.image_builder is None:
            raise ERR_IMAGE_BUILDER_NOT_SET
        return self.image_builder

    def push_builder_image(self, image_name: str) -> None:
        """Write the Dockerfile, then build and push it as ``image_name``."""
        if not self.changed:
            self.logger.debug("No changes made to image %s, skipping push", self.image_name_from)
            return

        self.image_name_to = image_name
        context_dir = Path(self.build_context)
        try:
            context_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise ERR_FAILED_TO_CREATE_CONTEXT_DIR.wrap(exc) from exc

        try:
            (context_dir / DOCKERFILE_NAME).write_text(self.dockerfile)
        except OSError as exc:
            raise ERR_FAILED_TO_WRITE_DOCKERFILE.wrap(exc) from exc

        image_builder = self._require_builder()
        # The docker builder needs the image name and destination to be equal.
        logs = image_builder.build(
            BuilderOptions(
                image_name=image_name,
                destination=image_name,
                build_context=DirContext(self.build_context).build_context(),
                args=list(self.args),
            )
        )
        self.logger.debug("build logs: %s", logs)

    def build_image_from_git_repo(self, git_ctx: GitContext, image_name: str) -> None:
        """Build the repository in ``git_ctx`` and push it as ``image_name``."""
        build_ctx = git_ctx.build_context()
        self.image_name_to = image_name

        try:
            cache = default_cache_options(build_ctx)
        except Error as exc:
            raise ERR_FAILED_TO_GET_DEFAULT_CACHE_OPTIONS.wrap(exc) from exc

        self.logger.debug("Building image %s from git repo %s", image_name, git_ctx.repo)
        image_builder = self._require_builder()
        logs = image_builder.build(
            BuilderOptions(
                image_name=image_name,
                destination=image_name,
                build_context=build_ctx,
                cache=cache,
                args=list(self.args),
            )
        )
        self.logger.debug("build logs: %s", logs)

    def generate_image_hash(self) -> str:
        """Hash the Dockerfile instructions and every file in the build context."""
        hasher = hashlib.sha256(self.dockerfile.encode())
        try:
            for path in _walk_files(Path(self.build_context)):
                try:
                    content = path.read_bytes()
                except OSError as exc:
                    raise ERR_READING_FILE.with_params(str(path)).wrap(exc) from exc
                hasher.update(content)
        except (Error, OSError) as exc:
            raise ERR_HASHING_BUILD_CONTEXT.wrap(exc) from exc

        digest = hasher.hexdigest()
        self.logger.debug("Generated image hash: %s", digest)
        return digest


def _verify_options(opts: BuilderFactoryOptions) -> None:
    if not opts.image_name:
        raise ERR_IMAGE_NAME_EMPTY
    if not opts.build_context:
        raise ERR_BUILD_CONTEXT_EMPTY
    if opts.logger is None:
        raise ERR_LOGGER_EMPTY


def new_builder_factory(opts: BuilderFactoryOptions) -> BuilderFactory:
    """Validate ``opts``, create the build context directory and return a factory."""
    _verify_options(opts)
    try:
        Path(opts.build_context).mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise ERR_FAILED_TO_CREATE_CONTEXT_DIR.wrap(exc) from exc

    assert opts.logger is not None
    return BuilderFactory(
        image_name_from=opts.image_name,
        build_context=opts.build_context,
        logger=opts.logger,
        image_builder=opts.image_builder,
        args=opts.args,
    )