[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "knuu"
version = "0.1.0"
description = "Container image building helpers: Dockerfile assembly, build contexts, docker buildx builds and kaniko Job manifests"
requires-python = ">=3.10"
dependencies = []
keywords = ["containers", "docker", "kaniko", "kubernetes", "image-build", "dockerfile"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Software Development :: Build Tools",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["knuu"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
strict = true
