"""Image builder that drives the local docker buildx tooling."""

from __future__ import annotations

import logging
import shutil
import subprocess
from pathlib import Path
from typing import Sequence

from knuu.builder import BuilderOptions, get_dir_from_build_context, is_git_context
from knuu.errors import Error

logger = logging.getLogger(__name__)

ERR_FAILED_TO_LIST_BUILDX_BUILDERS = Error(
    "FailedToListBuildxBuilders", "failed to list buildx builders"
)
ERR_RUN_COMMAND_FAILED = Error("RunCommandFailed", "failed to run command")
ERR_FAILED_TO_CREATE_BUILDER = Error("FailedToCreateBuilder", "failed to create buildx builder")
ERR_FAILED_TO_BUILD_IMAGE = Error("FailedToBuildImage", "failed to build image")
ERR_FAILED_TO_PUSH_IMAGE = Error("FailedToPushImage", "failed to push image")
ERR_FAILED_TO_REMOVE_CONTEXT_DIR = Error(
    "FailedToRemoveContextDir", "failed to remove context directory"
)
ERR_GIT_CONTEXT_NOT_SUPPORTED = Error(
    "GitContextNotSupported", "git context is not supported in the docker builder"
)


def run_command(args: Sequence[str]) -> str:
    """Run a command and return its stdout followed by its stderr."""
    command = list(args)
    try:
        result = subprocess.run(command, capture_output=True, text=True, check=False)
    except OSError as exc:
        detail = RuntimeError(f"{exc}\nstdout: \nstderr: ")
        raise ERR_RUN_COMMAND_FAILED.wrap(detail) from exc
    if result.returncode != 0:
        cause = subprocess.CalledProcessError(
            result.returncode, command, result.stdout, result.stderr
        )
        detail = RuntimeError(f"{cause}\nstdout: {result.stdout}\nstderr: {result.stderr}")
        raise ERR_RUN_COMMAND_FAILED.wrap(detail) from cause
    return result.stdout + result.stderr


def _list_builders() -> str:
    command = ["docker", "buildx", "ls"]
    try:
        result = subprocess.run(command, capture_output=True, text=True, check=False)
    except OSError as exc:
        raise ERR_FAILED_TO_LIST_BUILDX_BUILDERS.wrap(exc) from exc
    logger.debug("docker buildx ls: %s", result.stdout)
    if result.returncode != 0:
        cause = subprocess.CalledProcessError(
            result.returncode, command, result.stdout, result.stderr
        )
        raise ERR_FAILED_TO_LIST_BUILDX_BUILDERS.wrap(cause) from cause
    return result.stdout


def _remove_path(path: Path) -> None:
    if path.is_dir() and not path.is_symlink():
        shutil.rmtree(path)
    elif path.exists() or path.is_symlink():
        path.unlink()


class DockerBuilder:
    """Builds images with ``docker buildx`` and pushes them to their registry."""

    def build(self, options: BuilderOptions) -> str:
        if is_git_context(options.build_context):
            raise ERR_GIT_CONTEXT_NOT_SUPPORTED

        if "default" not in _list_builders():
            try:
                run_command(["docker", "buildx", "create", "--use"])
            except Error as exc:
                raise ERR_FAILED_TO_CREATE_BUILDER.wrap(exc) from exc
            logger.debug("created new docker builder instance")

        logger.debug("building docker image: %s", options.destination)
        context_dir = get_dir_from_build_context(options.build_context)

        # Docker requires the image name and the destination to be the same.
        build_command = [
            "docker", "buildx", "build", "--load",
            "--platform", "linux/amd64",
            "-t", options.destination,
            context_dir,
        ]
        try:
            build_logs = run_command(build_command)
        except Error as exc:
            raise ERR_FAILED_TO_BUILD_IMAGE.wrap(exc) from exc
        logs = build_logs + "\n"
        logger.debug("built docker image: %s", options.destination)
        logger.debug("logs: %s", build_logs)

        try:
            push_logs = run_command(["docker", "push", options.destination])
        except Error as exc:
            raise ERR_FAILED_TO_PUSH_IMAGE.wrap(exc) from exc
        logs += push_logs + "\n"
        logger.debug("pushed docker image: %s", options.destination)
        logger.debug("logs: %s", push_logs)

        try:
            _remove_path(Path(options.build_context))
        except OSError as exc:
            raise ERR_FAILED_TO_REMOVE_CONTEXT_DIR.wrap(exc) from exc

        return logs