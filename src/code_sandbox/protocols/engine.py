"""Container engine protocol consumed by the lifecycle manager."""

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Protocol


@dataclass(frozen=True)
class Mount:
    """Bind mount of a host path into an environment."""

    source: str
    target: str
    read_only: bool = False


@dataclass
class ContainerSpec:
    """Everything needed to create an environment."""

    image: str
    command: list[str] | None = None
    name: str | None = None
    working_dir: str | None = None
    tty: bool = False
    stdin_open: bool = False
    mounts: list[Mount] = field(default_factory=list)
    labels: dict[str, str] = field(default_factory=dict)


@dataclass
class ContainerInfo:
    """Point-in-time view of an environment."""

    id: str
    name: str
    image: str
    status: str
    tty: bool = False


@dataclass
class RawOutput:
    """Undemultiplexed output bytes as read from the engine."""

    chunks: list[bytes]
    tty: bool = False


@dataclass
class RawExec:
    """Result of running one command inside an environment."""

    exit_code: int
    output: RawOutput


@dataclass
class ArchiveBlob:
    """Archive read from an environment, with the stat of its source path."""

    data: bytes
    is_dir: bool = False


class ContainerEngine(Protocol):
    """Protocol for container engines (Docker, or a fake in tests).

    Environments are addressed by id or name. Implementations raise the
    code_sandbox exception taxonomy, never engine-specific errors.
    """

    async def pull(self, image: str, *, always: bool = False) -> None:
        """Make an image available locally; a no-op when cached unless ``always``."""
        ...

    async def create(self, spec: ContainerSpec) -> str:
        """Create an environment and return its id."""
        ...

    async def start(self, container: str) -> None:
        """Start a created environment."""
        ...

    async def wait(self, container: str) -> int:
        """Block until the environment exits and return its exit status."""
        ...

    async def exec(self, container: str, command: Sequence[str], workdir: str | None = None) -> RawExec:
        """Run a command in a running environment."""
        ...

    async def copy_into(self, container: str, path: str, archive: bytes) -> None:
        """Unpack a tar archive into an existing directory of the environment."""
        ...

    async def copy_from(self, container: str, path: str) -> ArchiveBlob:
        """Read a path from the environment as a tar archive."""
        ...

    async def logs(self, container: str) -> RawOutput:
        """Read the environment's full output stream."""
        ...

    async def stop(self, container: str, timeout: int) -> None:
        """Stop the environment, killing it after ``timeout`` seconds."""
        ...

    async def remove(self, container: str, *, volumes: bool = True, force: bool = True) -> None:
        """Remove the environment."""
        ...

    async def list(self, label: str | None = None) -> list[ContainerInfo]:
        """List running environments, optionally only those carrying ``label``."""
        ...

    async def inspect(self, container: str) -> ContainerInfo:
        """Describe one environment."""
        ...
