import logging

import pytest

from knuu.builder import BuildArg, BuilderOptions, DirContext, GitContext, default_cache_options
from knuu.container import (
    ERR_BUILD_CONTEXT_EMPTY,
    ERR_HASHING_BUILD_CONTEXT,
    ERR_IMAGE_BUILDER_NOT_SET,
    ERR_IMAGE_NAME_EMPTY,
    ERR_LOGGER_EMPTY,
    BuilderFactoryOptions,
    new_builder_factory,
)
from knuu.errors import Error, is_error

LOGGER = logging.getLogger("tests.container")


class RecordingBuilder:
    def __init__(self, fail=None):
        self.calls: list[BuilderOptions] = []
        self.fail = fail

    def build(self, options):
        self.calls.append(options)
        if self.fail is not None:
            raise self.fail
        return "build output"


def make_factory(tmp_path, builder=None, name="ctx", args=()):
    return new_builder_factory(
        BuilderFactoryOptions(
            image_name="alpine:latest",
            build_context=str(tmp_path / name),
            image_builder=builder,
            args=list(args),
            logger=LOGGER,
        )
    )


@pytest.mark.parametrize(
    "opts, expected",
    [
        (BuilderFactoryOptions(image_name="", build_context="x", logger=LOGGER), ERR_IMAGE_NAME_EMPTY),
        (BuilderFactoryOptions(image_name="img", build_context="", logger=LOGGER), ERR_BUILD_CONTEXT_EMPTY),
        (BuilderFactoryOptions(image_name="img", build_context="x", logger=None), ERR_LOGGER_EMPTY),
    ],
)
def test_invalid_options_raise(opts, expected):
    with pytest.raises(Error) as info:
        new_builder_factory(opts)
    assert is_error(info.value, expected)


def test_new_factory_creates_context_dir(tmp_path):
    factory = make_factory(tmp_path, name="nested/dir")
    assert (tmp_path / "nested" / "dir").is_dir()
    assert factory.image_name_from == "alpine:latest"
    assert factory.changed is False


def test_instructions_mark_factory_changed(tmp_path):
    factory = make_factory(tmp_path)
    factory.set_user("root")
    assert factory.changed is True
    assert factory.dockerfile_instructions == ["FROM alpine:latest", "USER root"]


def test_push_without_changes_skips_build(tmp_path):
    builder = RecordingBuilder()
    factory = make_factory(tmp_path, builder)
    factory.push_builder_image("registry/out:1")
    assert builder.calls == []
    assert not (tmp_path / "ctx" / "Dockerfile").exists()
    assert factory.image_name_to == ""


def test_push_writes_dockerfile_and_builds(tmp_path):
    builder = RecordingBuilder()
    args = [BuildArg("A=1")]
    factory = make_factory(tmp_path, builder, args=args)
    factory.add_cmd_to_builder(["echo", "hi"])
    factory.add_to_builder("src.txt", "/dest.txt", "0:0")
    factory.set_env_var("KEY", "VALUE")
    factory.set_user("root")

    factory.push_builder_image("registry/out:1")

    content = (tmp_path / "ctx" / "Dockerfile").read_text()
    assert content.split("\n") == [
        "FROM alpine:latest",
        "RUN echo hi",
        "ADD --chown=0:0 src.txt /dest.txt",
        "ENV KEY=VALUE",
        "USER root",
    ]
    assert len(builder.calls) == 1
    options = builder.calls[0]
    assert options.image_name == "registry/out:1"
    assert options.destination == "registry/out:1"
    assert options.build_context == DirContext(str(tmp_path / "ctx")).build_context()
    assert options.args == args
    assert factory.image_name_to == "registry/out:1"


def test_push_without_builder_raises_after_writing_dockerfile(tmp_path):
    factory = make_factory(tmp_path)
    factory.set_user("root")
    with pytest.raises(Error) as info:
        factory.push_builder_image("registry/out:1")
    assert is_error(info.value, ERR_IMAGE_BUILDER_NOT_SET)
    assert (tmp_path / "ctx" / "Dockerfile").exists()


def test_push_propagates_builder_error(tmp_path):
    failure = Error("BuildFailed", "build failed")
    factory = make_factory(tmp_path, RecordingBuilder(fail=failure))
    factory.set_user("root")
    with pytest.raises(Error) as info:
        factory.push_builder_image("registry/out:1")
    assert info.value.code == "BuildFailed"


def test_build_image_from_git_repo(tmp_path):
    builder = RecordingBuilder()
    factory = make_factory(tmp_path, builder)
    git_ctx = GitContext(repo="https://github.com/example/repo.git", branch="main")
    factory.build_image_from_git_repo(git_ctx, "registry/git:1")

    options = builder.calls[0]
    expected_ctx = "git://github.com/example/repo#refs/heads/main"
    assert options.build_context == expected_ctx
    assert options.cache == default_cache_options(expected_ctx)
    assert options.image_name == options.destination == "registry/git:1"
    assert factory.image_name_to == "registry/git:1"


def test_build_from_git_without_builder_raises(tmp_path):
    factory = make_factory(tmp_path)
    with pytest.raises(Error) as info:
        factory.build_image_from_git_repo(GitContext(repo="github.com/example/repo"), "img")
    assert is_error(info.value, ERR_IMAGE_BUILDER_NOT_SET)


def test_image_hash_depends_on_content_not_location(tmp_path):
    first = make_factory(tmp_path, name="one")
    second = make_factory(tmp_path, name="two")
    for factory, name in ((first, "one"), (second, "two")):
        (tmp_path / name / "sub").mkdir()
        (tmp_path / name / "a.txt").write_text("alpha")
        (tmp_path / name / "sub" / "b.txt").write_text("beta")

    assert first.generate_image_hash() == second.generate_image_hash()
    assert len(first.generate_image_hash()) == 64


def test_image_hash_changes_with_files_and_instructions(tmp_path):
    factory = make_factory(tmp_path)
    (tmp_path / "ctx" / "a.txt").write_text("alpha")
    original = factory.generate_image_hash()

    (tmp_path / "ctx" / "a.txt").write_text("changed")
    after_file = factory.generate_image_hash()
    assert after_file != original

    factory.set_env_var("K", "V")
    assert factory.generate_image_hash() != after_file


def test_image_hash_missing_context_raises(tmp_path):
    factory = make_factory(tmp_path)
    (tmp_path / "ctx").rmdir()
    with pytest.raises(Error) as info:
        factory.generate_image_hash()
    assert is_error(info.value, ERR_HASHING_BUILD_CONTEXT)