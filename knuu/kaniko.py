"""Job manifests and build-context archives for in-cluster Kaniko builds."""

from __future__ import annotations

import copy
import hashlib
import io
import os
import tarfile
import uuid
from pathlib import Path
from typing import Any, Iterator

from knuu.builder import BuilderOptions
from knuu.errors import Error

KANIKO_IMAGE = "gcr.io/kaniko-project/executor:latest"
KANIKO_CONTAINER_NAME = "kaniko-container"
KANIKO_JOB_NAME_PREFIX = "kaniko-build-job"

DEFAULT_PARALLELISM = 1
DEFAULT_BACKOFF_LIMIT = 5

MINIO_BUCKET_NAME = "kaniko"
EPHEMERAL_STORAGE = "10Gi"

WORKSPACE_DIR = "/workspace"
WORKSPACE_VOLUME_NAME = "workspace"
ARCHIVE_FILE_PATH = WORKSPACE_DIR + "/archive.tar.gz"
DOWNLOAD_IMAGE = "curlimages/curl:latest"

ERR_BUILD_FAILED = Error("BuildFailed", "build failed")
ERR_BUILD_CONTEXT_EMPTY = Error("BuildContextEmpty", "build context cannot be empty")
ERR_CLEANING_UP = Error("CleaningUp", "error cleaning up")
ERR_CREATING_JOB = Error("CreatingJob", "error creating Job")
ERR_DELETING_JOB = Error("DeletingJob", "error deleting Job")
ERR_DELETING_PODS = Error("DeletingPods", "error deleting Pods")
ERR_GENERATING_UUID = Error("GeneratingUUID", "error generating UUID")
ERR_GETTING_CONTAINER_LOGS = Error("GettingContainerLogs", "error getting container logs")
ERR_GETTING_POD_FROM_JOB = Error("GettingPodFromJob", "error getting Pod from Job")
ERR_LISTING_JOBS = Error("ListingJobs", "error listing Jobs")
ERR_LISTING_PODS = Error("ListingPods", "error listing Pods")
ERR_NO_CONTAINERS_FOUND = Error("NoContainersFound", "no containers found")
ERR_NO_PODS_FOUND = Error("NoPodsFound", "no Pods found")
ERR_PREPARING_JOB = Error("PreparingJob", "error preparing Job")
ERR_WAITING_JOB_COMPLETION = Error("WaitingJobCompletion", "error waiting for Job completion")
ERR_WATCHING_CHANNEL_CLOSE_UNEXPECTEDLY = Error(
    "WatchingChannelCloseUnexpectedly", "watch channel closed unexpectedly"
)
ERR_WATCHING_JOB = Error("WatchingJob", "error watching Job")
ERR_CONTEXT_CANCELLED = Error("ContextCancelled", "context cancelled")
ERR_MOUNTING_DIR = Error("MountingDir", "error mounting directory")
ERR_MINIO_NOT_CONFIGURED = Error("MinioNotConfigured", "Minio service is not configured")
ERR_MINIO_DEPLOYMENT_FAILED = Error("MinioDeploymentFailed", "Minio deployment failed")
ERR_DELETING_MINIO_CONTENT = Error("DeletingMinioContent", "error deleting Minio content")
ERR_PARSING_QUANTITY = Error("ParsingQuantity", "error parsing quantity")
ERR_MINIO_FAILED_TO_GET_DEPLOYMENT = Error(
    "MinioFailedToGetDeployment", "Minio failed to get deployment"
)

Manifest = dict[str, Any]


def prepare_args(options: BuilderOptions) -> list[str]:
    """Return the Kaniko executor arguments for ``options``."""
    args = [
        f"--context={options.build_context}",
        f"--destination={options.destination}",
    ]
    cache = options.cache
    if cache is not None and cache.enabled:
        args.append("--cache=true")
        if cache.dir:
            args.append(f"--cache-dir={cache.dir}")
        if cache.repo:
            args.append(f"--cache-repo={cache.repo}")
    args.extend(f"{arg.key}={arg.value}" for arg in options.args)
    return args


def prepare_job(options: BuilderOptions, job_name: str) -> Manifest:
    """Return a batch/v1 Job manifest that runs one Kaniko build."""
    return {
        "apiVersion": "batch/v1",
        "kind": "Job",
        "metadata": {"name": job_name},
        "spec": {
            # A single pod, retried a bounded number of times.
            "parallelism": DEFAULT_PARALLELISM,
            "backoffLimit": DEFAULT_BACKOFF_LIMIT,
            "template": {
                "spec": {
                    "containers": [
                        {
                            "name": KANIKO_CONTAINER_NAME,
                            "image": KANIKO_IMAGE,
                            "args": prepare_args(options),
                            "resources": {
                                "requests": {"ephemeral-storage": EPHEMERAL_STORAGE},
                            },
                        }
                    ],
                    "restartPolicy": "Never",
                }
            },
        },
    }


def mount_archive(job: Manifest, archive_url: str) -> Manifest:
    """Return a copy of ``job`` that downloads a context archive and builds from it.

    An init container fetches the tar.gz archive into a shared volume that is
    also mounted in the Kaniko container, whose context then points at it.
    """
    job = copy.deepcopy(job)
    pod_spec = job["spec"]["template"]["spec"]
    mount = {"name": WORKSPACE_VOLUME_NAME, "mountPath": WORKSPACE_DIR}

    pod_spec.setdefault("initContainers", []).append(
        {
            "name": "download-container",
            "image": DOWNLOAD_IMAGE,
            "command": ["/bin/sh", "-c"],
            "args": [f"curl -L -o {ARCHIVE_FILE_PATH} '{archive_url}'"],
            "volumeMounts": [dict(mount)],
        }
    )
    pod_spec.setdefault("volumes", []).append(
        {"name": WORKSPACE_VOLUME_NAME, "emptyDir": {}}
    )
    kaniko = pod_spec["containers"][0]
    kaniko.setdefault("volumeMounts", []).append(dict(mount))
    kaniko.setdefault("args", []).append(f"--context=tar://{ARCHIVE_FILE_PATH}")
    return job


def _walk(path: Path) -> Iterator[Path]:
    """Yield ``path`` and everything below it in lexical, depth-first order."""
    os.lstat(path)
    yield path
    if path.is_dir() and not path.is_symlink():
        for name in sorted(os.listdir(path)):
            yield from _walk(path / name)


def create_tar_gz(src_dir: str | os.PathLike[str]) -> bytes:
    """Archive ``src_dir`` into gzip-compressed tar bytes with relative names."""
    root = Path(src_dir)
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w:gz") as archive:
        for path in _walk(root):
            rel = os.path.relpath(path, root).replace(os.sep, "/")
            info = archive.gettarinfo(str(path), arcname=rel)
            if info.isreg():
                with path.open("rb") as handle:
                    archive.addfile(info, handle)
            else:
                archive.addfile(info)
    return buffer.getvalue()


def archive_content_name(archive_data: bytes) -> str:
    """Return the storage name for an archive: the hex SHA-256 of its bytes."""
    return hashlib.sha256(archive_data).hexdigest()


def random_job_name(prefix: str = KANIKO_JOB_NAME_PREFIX) -> str:
    """Return ``prefix`` followed by a short random lowercase suffix."""
    return f"{prefix}-{uuid.uuid4().hex[:8]}"