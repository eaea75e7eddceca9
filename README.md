# knuu

Helpers for building container images for test networks:

- `knuu.errors`: coded errors that can wrap causes and carry message parameters
- `knuu.builder`: build options and `dir:///` and `git://` build contexts
- `knuu.container`: a factory that assembles a Dockerfile on top of a base image
  and hands it to a builder
- `knuu.docker_builder`: a builder that runs `docker buildx` and `docker push`
- `knuu.kaniko`: Kubernetes Job manifests and context archives for kaniko builds

The package has no third-party dependencies.

## Installation

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Errors

Every failure the package reports is raised as a `knuu.errors.Error`. Each
error has a stable `code`. Two errors match when their codes are equal. Use
`Error.is_(target)` to compare one error, or `is_error(err, target)` to search
everything that `err` wraps. `Error.wrap(err)` returns a copy with `err` joined
to its cause. `Error.with_params(*args)` returns a copy whose message
placeholders are filled from `args`.

```python
from knuu.errors import Error, is_error

not_found = Error("FileNotFound", "file %s not found")
try:
    raise not_found.with_params("/tmp/x")
except Error as exc:
    assert is_error(exc, not_found)
    print(exc)  # file /tmp/x not found
```

Each module defines its own errors as `ERR_*` constants, for example
`knuu.container.ERR_IMAGE_BUILDER_NOT_SET` or
`knuu.docker_builder.ERR_GIT_CONTEXT_NOT_SUPPORTED`. Compare a raised error
with one of these constants through `is_error`.

## Build contexts

```python
from knuu.builder import DirContext, GitContext, default_cache_options, is_git_context

ctx = DirContext(path="/tmp/build").build_context()     # "dir:///tmp/build"
git = GitContext(repo="https://example.com/org/repo.git", branch="main").build_context()
# "git://example.com/org/repo#refs/heads/main"
assert is_git_context(git)

cache = default_cache_options(git)  # enabled, repo "ttl.sh/<sha256 of context>:24h"
```

`GitContext.build_context()` strips the protocol, a trailing `.git` and a
trailing slash from `repo`, and stores the cleaned value back in `repo`. When
a username is set, it goes before the host (`user@` or `user:password@`). A
commit is added as `#<commit>`.

`default_image_name(build_context)` gives the same `ttl.sh/<hash>:24h` name
that the cache options use. `default_cache_options` and `default_image_name`
both raise `ERR_BUILD_CONTEXT_EMPTY` when the context is empty.
`get_dir_from_build_context` and `is_dir_context` work on `dir:///` contexts.

`BuildArg(value)` is passed as `--build-arg=<value>`. `CustomArg(key, value)`
is passed as `<key>=<value>`. Any object with a `build(options)` method that
takes a `BuilderOptions` and returns the build logs can act as a `Builder`.

## Composing an image

```python
import logging

from knuu.container import BuilderFactoryOptions, new_builder_factory
from knuu.docker_builder import DockerBuilder

factory = new_builder_factory(BuilderFactoryOptions(
    image_name="alpine:latest",
    build_context="/tmp/knuu-build",
    image_builder=DockerBuilder(),
    logger=logging.getLogger("knuu"),
))
factory.add_cmd_to_builder(["apk", "add", "curl"])
factory.set_env_var("MODE", "test")
factory.set_user("1000")
tag = "ttl.sh/" + factory.generate_image_hash() + ":24h"
factory.push_builder_image(tag)
```

`new_builder_factory` requires an image name, a build context directory and a
logger. It creates the directory if it is missing. The factory records `RUN`,
`ADD --chown=...`, `ENV` and `USER` instructions after `FROM <image>`. Its
`changed` property reports whether anything was added.

`push_builder_image(image_name)` does nothing if the Dockerfile is unchanged.
Otherwise it writes `Dockerfile` into the build context and asks the builder to
build and push it. If no builder was given, it raises
`ERR_IMAGE_BUILDER_NOT_SET`.

`generate_image_hash()` returns the SHA-256 of the Dockerfile text followed by
the contents of every file in the build context, taken in sorted path order.

`build_image_from_git_repo(git_ctx, image_name)` builds straight from a
repository. Its cache settings come from `default_cache_options`.

`DockerBuilder` needs the `docker` command with buildx. It creates a buildx
builder when `docker buildx ls` lists no `default` builder. It builds for
`linux/amd64` with `--load`, then pushes the destination tag. It rejects
`git://` contexts. `run_command(args)` runs one command and returns its stdout
followed by its stderr. It raises `ERR_RUN_COMMAND_FAILED` on a non-zero exit.

## Kaniko jobs

`knuu.kaniko` describes the same builds for running inside a cluster:

- `prepare_args(options)` gives the kaniko arguments: the context, the
  destination, the cache flags and the builder arguments.
- `prepare_job(options, job_name)` returns a `batch/v1` Job manifest as a plain
  dict. The Job runs one pod with parallelism 1, a backoff limit of 5, restart
  policy `Never`, and 10Gi of ephemeral storage requested.
- `mount_archive(job, archive_url)` returns a copy of the Job with these
  additions: an init container that downloads a `tar.gz` into a shared
  `/workspace` volume, and a `--context=tar://...` argument that points kaniko
  at that archive.
- `create_tar_gz(src_dir)` archives a directory with relative member names,
  starting with `.`. `archive_content_name(data)` gives the hex SHA-256 of the
  archive bytes.
- `random_job_name(prefix)` adds a random eight-character suffix to the prefix.
  The default prefix is `kaniko-build-job`.

## What the package does not do

The package does not talk to a Kubernetes cluster or to object storage. It
builds kaniko Job manifests and context archives. It does not create those
Jobs, watch them finish, read their pod logs, or upload archives anywhere. It
has no command-line program; use it as a library.