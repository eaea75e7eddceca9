"""Container image building helpers: coded errors, build contexts, Dockerfile assembly, docker buildx builds and kaniko Job manifests."""

__version__ = "0.1.0"
__all__ = ["builder", "container", "docker_builder", "errors", "kaniko"]