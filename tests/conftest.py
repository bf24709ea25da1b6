"""Pytest configuration and fixtures."""

import asyncio
import shlex
import uuid
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from pathlib import Path

import pytest

from code_sandbox.archive import build_directory_archive, build_file_archive, extract_archive
from code_sandbox.config import Config
from code_sandbox.demux import Stream, encode_frame
from code_sandbox.exceptions import (
    EnvironmentNotFoundError,
    EnvironmentStartError,
    ImagePullError,
    PathNotFoundError,
)
from code_sandbox.protocols import ArchiveBlob, ContainerInfo, ContainerSpec, RawExec, RawOutput
from code_sandbox.service import CodeSandbox

Frames = list[tuple[Stream, bytes]]
Runner = Callable[[ContainerSpec], tuple[int, Frames]]


def split_odd(data: bytes, size: int = 3) -> list[bytes]:
    """Split bytes into small chunks that cut through frame headers."""
    return [data[i:i + size] for i in range(0, len(data), size)] or [b""]


def framed(frames: Frames) -> bytes:
    return b"".join(encode_frame(stream, payload) for stream, payload in frames)


@dataclass
class FakeContainer:
    """A container kept by FakeEngine."""

    id: str
    spec: ContainerSpec
    root: Path
    status: str = "created"
    exit_code: int = 0
    frames: Frames = field(default_factory=list)


class FakeEngine:
    """In-memory ContainerEngine with a per-container filesystem on disk.

    Foreground output comes from ``runner``; exec results come from
    ``exec_results`` keyed by the shell command, except ``mkdir -p`` which
    acts on the container's filesystem.
    """

    def __init__(self, root: Path) -> None:
        self.root = root
        self.containers: dict[str, FakeContainer] = {}
        self.images: set[str] = set()
        self.pulls: list[tuple[str, bool]] = []
        self.calls: list[str] = []
        self.runner: Runner = lambda spec: (0, [])
        self.exec_results: dict[str, tuple[int, bytes, bytes]] = {}
        self.executed: list[list[str]] = []
        self.missing_images: set[str] = set()
        self.fail_start = False
        self.wait_delay = 0.0

    def _get(self, ref: str) -> FakeContainer:
        for container in self.containers.values():
            if ref in (container.id, container.spec.name) or (len(ref) >= 12 and container.id.startswith(ref)):
                return container
        raise EnvironmentNotFoundError(f"No such container: {ref}")

    def _path(self, container: FakeContainer, path: str) -> Path:
        return container.root / path.lstrip("/")

    async def pull(self, image: str, *, always: bool = False) -> None:
        self.calls.append("pull")
        self.pulls.append((image, always))
        if image in self.missing_images:
            raise ImagePullError(f"Failed to pull image {image}: not found")
        self.images.add(image)

    async def create(self, spec: ContainerSpec) -> str:
        self.calls.append("create")
        container_id = uuid.uuid4().hex + uuid.uuid4().hex
        root = self.root / container_id[:12]
        (root / (spec.working_dir or "/").lstrip("/")).mkdir(parents=True, exist_ok=True)
        self.containers[container_id] = FakeContainer(id=container_id, spec=spec, root=root)
        return container_id

    async def start(self, container: str) -> None:
        self.calls.append("start")
        if self.fail_start:
            raise EnvironmentStartError(f"Failed to start container {container}")
        entry = self._get(container)
        entry.status = "running"
        if entry.spec.command:
            entry.exit_code, entry.frames = self.runner(entry.spec)

    async def wait(self, container: str) -> int:
        self.calls.append("wait")
        entry = self._get(container)
        if self.wait_delay:
            await asyncio.sleep(self.wait_delay)
        entry.status = "exited"
        return entry.exit_code

    async def exec(self, container: str, command: Sequence[str], workdir: str | None = None) -> RawExec:
        entry = self._get(container)
        self.executed.append(list(command))
        script = command[-1]
        if script.startswith("mkdir -p ") and script not in self.exec_results:
            target = shlex.split(script)[-1]
            self._path(entry, target).mkdir(parents=True, exist_ok=True)
            return RawExec(exit_code=0, output=RawOutput(chunks=[]))
        exit_code, stdout, stderr = self.exec_results.get(script, (0, script.encode() + b"\n", b""))
        frames: Frames = []
        if stdout:
            frames.append((Stream.STDOUT, stdout))
        if stderr:
            frames.append((Stream.STDERR, stderr))
        return RawExec(exit_code=exit_code, output=RawOutput(chunks=split_odd(framed(frames))))

    async def copy_into(self, container: str, path: str, archive: bytes) -> None:
        entry = self._get(container)
        destination = self._path(entry, path)
        if not destination.is_dir():
            raise PathNotFoundError(f"Could not find the file {path} in container {container}")
        extract_archive(archive, destination)

    async def copy_from(self, container: str, path: str) -> ArchiveBlob:
        entry = self._get(container)
        source = self._path(entry, path)
        if not source.exists():
            raise PathNotFoundError(f"Could not find the file {path} in container {container}")
        if source.is_dir():
            return ArchiveBlob(data=build_directory_archive(source), is_dir=True)
        return ArchiveBlob(data=build_file_archive(source))

    async def logs(self, container: str) -> RawOutput:
        entry = self._get(container)
        if entry.spec.tty:
            return RawOutput(chunks=[payload for _, payload in entry.frames], tty=True)
        return RawOutput(chunks=split_odd(framed(entry.frames)))

    async def stop(self, container: str, timeout: int) -> None:
        self.calls.append("stop")
        self._get(container).status = "exited"

    async def remove(self, container: str, *, volumes: bool = True, force: bool = True) -> None:
        self.calls.append("remove")
        entry = self._get(container)
        del self.containers[entry.id]

    async def list(self, label: str | None = None) -> list[ContainerInfo]:
        return [
            await self.inspect(c.id)
            for c in self.containers.values()
            if c.status == "running" and (label is None or label in c.spec.labels)
        ]

    async def inspect(self, container: str) -> ContainerInfo:
        entry = self._get(container)
        return ContainerInfo(
            id=entry.id,
            name=entry.spec.name or "",
            image=entry.spec.image,
            status=entry.status,
            tty=entry.spec.tty,
        )


@pytest.fixture
def sample_config_dict():
    """Sample configuration dictionary for testing."""
    return {
        "engine": {"backend": "docker", "timeout_seconds": 30},
        "sandbox": {
            "default_image": "python:3.12-slim-bookworm",
            "workdir": "/app",
            "stop_timeout_seconds": 5,
            "progress_interval_seconds": 0.01,
            "images": {"nodejs": "node:22-slim"},
        },
        "logging": {"level": "DEBUG", "format": "text"},
        "server": {"name": "code-sandbox-test", "transport": "stdio"},
    }


@pytest.fixture
def fake_engine(tmp_path):
    """FakeEngine rooted in a temporary directory."""
    root = tmp_path / "engine"
    root.mkdir()
    return FakeEngine(root)


@pytest.fixture
def config(sample_config_dict):
    """Parsed test configuration."""
    return Config.from_dict(sample_config_dict)


@pytest.fixture
def sandbox(config, fake_engine):
    """CodeSandbox backed by the fake engine."""
    return CodeSandbox(config, engine=fake_engine)
