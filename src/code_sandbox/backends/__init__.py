"""Container engine backends."""

from code_sandbox.backends.docker import DockerEngine

__all__ = ["DockerEngine"]
