"""Docker implementation of the container engine protocol."""

import asyncio
import atexit
import functools
import os
import threading
import time
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor
from typing import Any, TypeVar
from urllib.parse import quote

import docker
import requests
from docker.errors import DockerException, ImageNotFound, NotFound, create_api_error_from_http_exception
from docker.utils import parse_repository_tag
from docker.utils.socket import read as socket_read

from code_sandbox.exceptions import (
    ArchiveError,
    EngineError,
    EnvironmentCreateError,
    EnvironmentNotFoundError,
    EnvironmentStartError,
    ImagePullError,
    LogRetrievalError,
    PathNotFoundError,
    SandboxError,
    WaitError,
)
from code_sandbox.observability import get_logger
from code_sandbox.protocols.engine import (
    ArchiveBlob,
    ContainerInfo,
    ContainerSpec,
    RawExec,
    RawOutput,
)

logger = get_logger(__name__)

T = TypeVar("T")

# Thread pool for blocking Docker SDK calls - configurable via environment
_max_workers = int(os.environ.get("CODE_SANDBOX_DOCKER_WORKERS", "16"))
_executor = ThreadPoolExecutor(max_workers=_max_workers, thread_name_prefix="docker")

# Ensure executor is cleaned up on process exit
atexit.register(_executor.shutdown, wait=False)

_READ_SIZE = 4096
# Go's os.ModeDir, as reported in the archive stat header
_MODE_DIR = 1 << 31
# Seconds per daemon wait request; bounds how long a cancelled wait holds its thread
_WAIT_POLL_SECONDS = 1


def _explain(error: Exception) -> str:
    return getattr(error, "explanation", None) or str(error)


def _is_read_timeout(error: Exception) -> bool:
    if isinstance(error, requests.exceptions.ConnectTimeout):
        return False
    # Over the unix socket a read timeout surfaces as a ConnectionError
    if isinstance(error, requests.exceptions.ReadTimeout):
        return True
    return isinstance(error, requests.exceptions.ConnectionError) and "timed out" in str(error).lower()


class DockerEngine:
    """Container engine backed by the local Docker daemon.

    One client is shared for the process lifetime; every call is stateless.
    Blocking SDK calls run on a thread pool so the event loop never waits
    on the daemon.
    """

    def __init__(self, base_url: str | None = None, timeout_seconds: int = 120, **kwargs: Any) -> None:
        """Initialize Docker engine.

        Args:
            base_url: Daemon URL; DOCKER_HOST or the local socket when omitted
            timeout_seconds: HTTP timeout for daemon calls
            **kwargs: Ignored (for compatibility with other backends)
        """
        self._base_url = base_url
        self._timeout = timeout_seconds
        self._client: docker.DockerClient | None = None
        self._lock = threading.Lock()

    @property
    def client(self) -> docker.DockerClient:
        """Lazy initialization of Docker client."""
        with self._lock:
            if self._client is None:
                if self._base_url:
                    self._client = docker.DockerClient(base_url=self._base_url, timeout=self._timeout)
                else:
                    self._client = docker.from_env(timeout=self._timeout)
            return self._client

    def close(self) -> None:
        """Close the client connection."""
        with self._lock:
            if self._client is not None:
                self._client.close()
                self._client = None

    async def _run(
        self,
        fn: Callable[..., T],
        *args: Any,
        error: type[SandboxError] = EngineError,
        not_found: type[SandboxError] = EnvironmentNotFoundError,
        action: str,
    ) -> T:
        """Run a blocking call on the pool, translating Docker errors."""
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(_executor, functools.partial(fn, *args))
        except ImageNotFound as e:
            raise error(f"Failed to {action}: {_explain(e)}") from e
        except NotFound as e:
            raise not_found(f"Failed to {action}: {_explain(e)}") from e
        except (DockerException, OSError) as e:
            # requests' connection errors are OSErrors
            raise error(f"Failed to {action}: {_explain(e)}") from e

    # Image

    def _pull(self, image: str, always: bool) -> None:
        if not always:
            try:
                self.client.images.get(image)
                logger.debug("Image present locally", context={"image": image})
                return
            except ImageNotFound:
                logger.debug("Image not cached", context={"image": image})
        repository, tag = parse_repository_tag(image)
        self.client.images.pull(repository, tag=tag or "latest")
        logger.info("Pulled image", context={"image": image})

    async def pull(self, image: str, *, always: bool = False) -> None:
        """Make an image available locally."""
        await self._run(self._pull, image, always, error=ImagePullError, action=f"pull image {image}")

    # Lifecycle

    def _create(self, spec: ContainerSpec) -> str:
        volumes = {
            mount.source: {"bind": mount.target, "mode": "ro" if mount.read_only else "rw"}
            for mount in spec.mounts
        }
        container = self.client.containers.create(
            spec.image,
            command=spec.command,
            name=spec.name,
            working_dir=spec.working_dir,
            tty=spec.tty,
            stdin_open=spec.stdin_open,
            labels=spec.labels,
            volumes=volumes or None,
        )
        return container.id

    async def create(self, spec: ContainerSpec) -> str:
        """Create an environment and return its id."""
        return await self._run(
            self._create,
            spec,
            error=EnvironmentCreateError,
            not_found=EnvironmentCreateError,
            action=f"create container from {spec.image}",
        )

    def _start(self, container: str) -> None:
        self.client.api.start(container)

    async def start(self, container: str) -> None:
        """Start a created environment."""
        await self._run(
            self._start, container, error=EnvironmentStartError, action=f"start container {container}"
        )

    def _wait(self, container: str, abort: threading.Event) -> int:
        api = self.client.api
        while not abort.is_set():
            try:
                result = api.wait(container, timeout=_WAIT_POLL_SECONDS)
            except requests.exceptions.RequestException as e:
                if not _is_read_timeout(e):
                    raise
                continue
            return int(result.get("StatusCode", -1))
        raise WaitError(f"Stopped waiting for container {container}")

    async def wait(self, container: str) -> int:
        """Block until the environment exits and return its exit status.

        The daemon is polled in short rounds so a cancelled wait frees its
        worker thread within one round.
        """
        abort = threading.Event()
        try:
            return await self._run(
                self._wait, container, abort, error=WaitError, action=f"wait for container {container}"
            )
        except asyncio.CancelledError:
            abort.set()
            raise

    def _stop(self, container: str, timeout: int) -> None:
        self.client.api.stop(container, timeout=timeout)

    async def stop(self, container: str, timeout: int) -> None:
        """Stop the environment, killing it after ``timeout`` seconds."""
        await self._run(
            self._stop,
            container,
            timeout,
            action=f"stop container {container}",
        )

    def _remove(self, container: str, volumes: bool, force: bool) -> None:
        self.client.api.remove_container(container, v=volumes, force=force)

    async def remove(self, container: str, *, volumes: bool = True, force: bool = True) -> None:
        """Remove the environment."""
        await self._run(
            self._remove,
            container,
            volumes,
            force,
            action=f"remove container {container}",
        )

    # Exec and output

    def _read_socket(self, sock: Any) -> list[bytes]:
        chunks = []
        try:
            while True:
                chunk = socket_read(sock, _READ_SIZE)
                if not chunk:
                    return chunks
                chunks.append(chunk)
        finally:
            sock.close()

    def _exec(self, container: str, command: Sequence[str], workdir: str | None) -> RawExec:
        api = self.client.api
        exec_id = api.exec_create(
            container, list(command), stdout=True, stderr=True, tty=False, workdir=workdir
        )["Id"]
        # The raw socket keeps frame headers for the demultiplexer
        chunks = self._read_socket(api.exec_start(exec_id, socket=True))
        details = api.exec_inspect(exec_id)
        while details.get("Running"):
            time.sleep(0.05)
            details = api.exec_inspect(exec_id)
        exit_code = details.get("ExitCode")
        return RawExec(exit_code=-1 if exit_code is None else int(exit_code), output=RawOutput(chunks))

    async def exec(self, container: str, command: Sequence[str], workdir: str | None = None) -> RawExec:
        """Run a command in a running environment."""
        return await self._run(self._exec, container, command, workdir, action=f"exec in container {container}")

    def _logs(self, container: str) -> RawOutput:
        api = self.client.api
        tty = bool(api.inspect_container(container)["Config"].get("Tty"))
        # Read the HTTP body directly; the SDK's logs() strips frame headers
        url = f"{api.base_url}/v{api.api_version}/containers/{quote(container, safe='')}/logs"
        response = api.get(
            url,
            params={"stdout": 1, "stderr": 1, "follow": 0, "timestamps": 0},
            stream=True,
            timeout=self._timeout,
        )
        try:
            try:
                response.raise_for_status()
            except requests.exceptions.HTTPError as e:
                raise create_api_error_from_http_exception(e) from e
            chunks = [chunk for chunk in response.iter_content(chunk_size=_READ_SIZE) if chunk]
        finally:
            response.close()
        return RawOutput(chunks=chunks, tty=tty)

    async def logs(self, container: str) -> RawOutput:
        """Read the environment's full output stream."""
        return await self._run(
            self._logs, container, error=LogRetrievalError, action=f"read logs of container {container}"
        )

    # Files

    def _copy_into(self, container: str, path: str, archive: bytes) -> None:
        if not self.client.api.put_archive(container, path, archive):
            raise ArchiveError(f"Docker rejected archive for {path}")

    async def copy_into(self, container: str, path: str, archive: bytes) -> None:
        """Unpack a tar archive into an existing directory of the environment."""
        await self._run(
            self._copy_into,
            container,
            path,
            archive,
            error=ArchiveError,
            action=f"copy archive to {container}:{path}",
        )

    def _copy_from(self, container: str, path: str) -> ArchiveBlob:
        stream, stat = self.client.api.get_archive(container, path)
        data = b"".join(stream)
        return ArchiveBlob(data=data, is_dir=bool(int(stat.get("mode", 0)) & _MODE_DIR))

    async def copy_from(self, container: str, path: str) -> ArchiveBlob:
        """Read a path from the environment as a tar archive."""
        return await self._run(
            self._copy_from,
            container,
            path,
            error=ArchiveError,
            not_found=PathNotFoundError,
            action=f"copy {container}:{path}",
        )

    # Inspection

    @staticmethod
    def _summary(entry: dict[str, Any]) -> ContainerInfo:
        names = entry.get("Names") or [""]
        return ContainerInfo(
            id=entry["Id"],
            name=names[0].lstrip("/"),
            image=entry.get("Image", ""),
            status=entry.get("State", ""),
        )

    def _list(self, label: str | None) -> list[ContainerInfo]:
        filters = {"label": label} if label else None
        return [self._summary(entry) for entry in self.client.api.containers(filters=filters)]

    async def list(self, label: str | None = None) -> list[ContainerInfo]:
        """List running environments, optionally only those carrying ``label``."""
        return await self._run(self._list, label, action="list containers")

    def _inspect(self, container: str) -> ContainerInfo:
        details = self.client.api.inspect_container(container)
        config = details.get("Config") or {}
        return ContainerInfo(
            id=details["Id"],
            name=details.get("Name", "").lstrip("/"),
            image=config.get("Image", ""),
            status=(details.get("State") or {}).get("Status", ""),
            tty=bool(config.get("Tty")),
        )

    async def inspect(self, container: str) -> ContainerInfo:
        """Describe one environment."""
        return await self._run(self._inspect, container, action=f"inspect container {container}")
