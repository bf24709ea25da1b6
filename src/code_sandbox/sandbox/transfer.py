"""File transfer between the host and running environments.

Relative sandbox paths resolve against the environment's working
directory. Destination directories are created with ``mkdir -p`` before an
archive is unpacked into them.
"""

import posixpath
import shlex
from pathlib import Path

from code_sandbox.archive import (
    build_bytes_archive,
    build_directory_archive,
    build_file_archive,
    extract_single_file,
)
from code_sandbox.exceptions import (
    ArchiveError,
    InvalidArgumentError,
    PathNotFoundError,
    PermissionDeniedError,
)
from code_sandbox.observability import get_logger
from code_sandbox.sandbox.manager import SandboxManager, SandboxTarget, target_id
from code_sandbox.utils.validation import validate_file_name

logger = get_logger(__name__)

_PERMISSION_MARKERS = ("Permission denied", "Read-only file system", "Operation not permitted")


class FileTransfer:
    """Copies files and directory trees into and out of environments."""

    def __init__(self, manager: SandboxManager) -> None:
        """Initialize transfer.

        Args:
            manager: Manager whose engine and working directory are used
        """
        self.manager = manager
        self.engine = manager.engine
        self.workdir = manager.config.workdir

    def resolve(self, path: str | None, default: str | None = None) -> str:
        """Absolute sandbox path; relative paths are taken from the working directory."""
        if not path or not path.strip():
            if default is None:
                raise InvalidArgumentError("A sandbox path is required")
            path = default
        path = path.strip()
        if not posixpath.isabs(path):
            path = posixpath.join(self.workdir, path)
        return posixpath.normpath(path)

    async def require_running(self, target: SandboxTarget) -> None:
        """Check that the environment exists and is running.

        Raises:
            EnvironmentNotFoundError: If there is no such environment
            InvalidArgumentError: If the environment is not running
        """
        info = await self.engine.inspect(target_id(target))
        if info.status != "running":
            raise InvalidArgumentError(f"Container {target_id(target)} is not running (status: {info.status})")

    async def ensure_directory(self, target: SandboxTarget, directory: str) -> None:
        """Create ``directory`` and its parents inside a running environment.

        Raises:
            EnvironmentNotFoundError: If there is no such environment
            InvalidArgumentError: If the environment is not running
            PermissionDeniedError: If the environment refuses the directory
            ArchiveError: If the directory cannot be created otherwise
        """
        await self.require_running(target)
        step = await self.manager.run_command(target, f"mkdir -p {shlex.quote(directory)}")
        if step.exit_code == 0:
            return
        message = step.output.text().strip()
        if any(marker in message for marker in _PERMISSION_MARKERS):
            raise PermissionDeniedError(f"Cannot create {directory}: {message}")
        raise ArchiveError(f"Failed to create {directory} (exit code {step.exit_code}): {message}")

    async def copy_project(self, target: SandboxTarget, local_dir: str, dest_dir: str | None = None) -> str:
        """Copy a local directory tree into an environment.

        The tree lands under its own name inside ``dest_dir`` (the working
        directory by default), e.g. ``/app/myproject``.

        Returns:
            Confirmation message
        """
        ref = target_id(target)
        source = Path(local_dir).expanduser()
        if not source.is_dir():
            raise PathNotFoundError(f"Directory does not exist: {local_dir}")
        destination = self.resolve(dest_dir, self.workdir)

        archive = build_directory_archive(source)
        await self.ensure_directory(ref, destination)
        await self.engine.copy_into(ref, destination, archive)

        landed = posixpath.join(destination, source.resolve().name)
        logger.info(
            "Copied project",
            context={"container_id": ref, "source": str(source), "destination": landed, "bytes": len(archive)},
        )
        return f"Successfully copied {local_dir} to {landed} in container {ref}"

    async def copy_file(self, target: SandboxTarget, local_file: str, dest_path: str | None = None) -> str:
        """Copy one local file into an environment, keeping its permission bits.

        ``dest_path`` defaults to the file's name in the working directory; a
        path ending in ``/`` names the directory to copy into.

        Returns:
            Confirmation message
        """
        ref = target_id(target)
        source = Path(local_file).expanduser()
        if not source.exists():
            raise PathNotFoundError(f"File does not exist: {local_file}")
        if not source.is_file():
            raise InvalidArgumentError(f"Not a regular file: {local_file}")

        if dest_path and dest_path.strip().endswith("/"):
            dest_path = posixpath.join(dest_path.strip(), source.name)
        destination = self.resolve(dest_path, source.name)
        directory, name = posixpath.split(destination)

        archive = build_file_archive(source, arcname=name)
        await self.ensure_directory(ref, directory)
        await self.engine.copy_into(ref, directory, archive)

        logger.info("Copied file", context={"container_id": ref, "destination": destination})
        return f"Successfully copied {local_file} to {destination} in container {ref}"

    async def write_file(
        self,
        target: SandboxTarget,
        file_name: str,
        contents: str,
        dest_dir: str | None = None,
    ) -> str:
        """Write text content to a new file inside an environment.

        Returns:
            Confirmation message
        """
        ref = target_id(target)
        validate_file_name(file_name)
        directory = self.resolve(dest_dir, self.workdir)

        archive = build_bytes_archive(file_name, contents.encode())
        await self.ensure_directory(ref, directory)
        await self.engine.copy_into(ref, directory, archive)

        path = posixpath.join(directory, file_name)
        logger.info("Wrote file", context={"container_id": ref, "path": path})
        return f"Successfully wrote {path} in container {ref}"

    async def copy_file_from_sandbox(
        self,
        target: SandboxTarget,
        src_path: str,
        local_dest: str | None = None,
    ) -> str:
        """Copy one file out of an environment, restoring its permission bits.

        ``local_dest`` defaults to the file's name in the current directory;
        missing parent directories are created.

        Raises:
            ArchiveError: If the source is a directory or the archive does not
                hold exactly one regular file
            PathNotFoundError: If the source does not exist

        Returns:
            Confirmation message
        """
        ref = target_id(target)
        source = self.resolve(src_path)
        blob = await self.engine.copy_from(ref, source)
        if blob.is_dir:
            raise ArchiveError(f"{source} is a directory; only files can be copied")

        destination = Path(local_dest).expanduser() if local_dest else Path.cwd() / posixpath.basename(source)
        entry = extract_single_file(blob.data, destination)

        logger.info(
            "Copied file from container",
            context={"container_id": ref, "source": source, "bytes": entry.size},
        )
        return f"Successfully copied {source} from container {ref} to {destination}"
