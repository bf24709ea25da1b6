"""Tar archive codec for moving files into and out of environments.

Archives are built fully in memory. Directory trees are anchored under the
source directory's own name so they land as one subtree at the destination.
Only regular files and directories are archived; symlinks, devices, FIFOs
and sockets are skipped.
"""

import io
import os
import tarfile
import time
from dataclasses import dataclass
from pathlib import Path, PurePosixPath

from code_sandbox.exceptions import ArchiveError, PathNotFoundError, PermissionDeniedError
from code_sandbox.observability import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class ArchiveEntry:
    """One member of an archive."""

    path: str
    size: int
    mode: int
    mtime: float
    is_dir: bool = False
    data: bytes | None = None


def _normalize_owner(info: tarfile.TarInfo) -> tarfile.TarInfo:
    # Members are owned by root inside the environment
    info.uid = info.gid = 0
    info.uname = info.gname = ""
    return info


def _add_path(tar: tarfile.TarFile, path: Path, arcname: str) -> bool:
    info = tar.gettarinfo(str(path), arcname=arcname)
    if info.isdir():
        tar.addfile(_normalize_owner(info))
        return True
    if info.isreg():
        with path.open("rb") as f:
            tar.addfile(_normalize_owner(info), f)
        return True
    logger.warning("Skipping unsupported file type", context={"path": str(path)})
    return False


def build_directory_archive(path: str | Path) -> bytes:
    """Archive a directory tree anchored under its base name.

    The walk is sorted, so the same tree always yields entries in the same
    order. Directories get header-only entries.

    Args:
        path: Local directory

    Returns:
        Uncompressed tar bytes

    Raises:
        PathNotFoundError: If the directory does not exist
        ArchiveError: If reading the tree fails
    """
    root = Path(path).resolve()
    if not root.is_dir():
        raise PathNotFoundError(f"Directory does not exist: {path}")

    buffer = io.BytesIO()
    try:
        with tarfile.open(fileobj=buffer, mode="w") as tar:
            _add_path(tar, root, root.name)
            for current, dirs, files in os.walk(root):
                dirs.sort()
                base = Path(current)
                for name in dirs + sorted(files):
                    full = base / name
                    arcname = str(PurePosixPath(root.name, *full.relative_to(root).parts))
                    _add_path(tar, full, arcname)
    except PermissionError as e:
        raise PermissionDeniedError(f"Cannot read {path}: {e}") from e
    except (OSError, tarfile.TarError) as e:
        raise ArchiveError(f"Failed to archive {path}: {e}") from e
    return buffer.getvalue()


def build_file_archive(path: str | Path, arcname: str | None = None) -> bytes:
    """Archive a single regular file, keeping its permission bits.

    Args:
        path: Local file
        arcname: Entry name; defaults to the file's base name

    Raises:
        PathNotFoundError: If the file does not exist
        ArchiveError: If the path is not a regular file or cannot be read
    """
    source = Path(path)
    if not source.exists():
        raise PathNotFoundError(f"File does not exist: {path}")
    if not source.is_file():
        raise ArchiveError(f"Not a regular file: {path}")

    buffer = io.BytesIO()
    try:
        with tarfile.open(fileobj=buffer, mode="w") as tar:
            _add_path(tar, source, arcname or source.name)
    except PermissionError as e:
        raise PermissionDeniedError(f"Cannot read {path}: {e}") from e
    except (OSError, tarfile.TarError) as e:
        raise ArchiveError(f"Failed to archive {path}: {e}") from e
    return buffer.getvalue()


def build_bytes_archive(name: str, data: bytes, mode: int = 0o644, mtime: float | None = None) -> bytes:
    """Archive in-memory content as a single regular file named ``name``."""
    if not name or "/" in name.strip("/") or name in (".", ".."):
        raise ArchiveError(f"Invalid file name: {name!r}")
    info = tarfile.TarInfo(name=name.strip("/"))
    info.size = len(data)
    info.mode = mode
    info.mtime = int(time.time() if mtime is None else mtime)

    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w") as tar:
        tar.addfile(info, io.BytesIO(data))
    return buffer.getvalue()


def _open(data: bytes) -> tarfile.TarFile:
    try:
        return tarfile.open(fileobj=io.BytesIO(data), mode="r:*")
    except tarfile.TarError as e:
        raise ArchiveError(f"Invalid archive: {e}") from e


def _entry(tar: tarfile.TarFile, member: tarfile.TarInfo) -> ArchiveEntry:
    data = None
    if member.isreg():
        extracted = tar.extractfile(member)
        data = extracted.read() if extracted else b""
    return ArchiveEntry(
        path=member.name,
        size=member.size,
        mode=member.mode,
        mtime=member.mtime,
        is_dir=member.isdir(),
        data=data,
    )


def read_entries(data: bytes) -> list[ArchiveEntry]:
    """List the directory and regular-file entries of an archive, in order."""
    with _open(data) as tar:
        try:
            return [
                _entry(tar, member)
                for member in tar.getmembers()
                if member.isreg() or member.isdir()
            ]
        except tarfile.TarError as e:
            raise ArchiveError(f"Invalid archive: {e}") from e


def _member_path(destination: Path, name: str) -> Path:
    relative = PurePosixPath(name)
    if relative.is_absolute() or ".." in relative.parts:
        raise ArchiveError(f"Unsafe archive entry: {name}")
    return destination.joinpath(*relative.parts)


def extract_archive(data: bytes, destination: str | Path) -> list[ArchiveEntry]:
    """Extract directories and regular files under ``destination``.

    Permission bits of every entry are restored.

    Raises:
        ArchiveError: If the archive is invalid or an entry escapes the destination
    """
    root = Path(destination)
    entries = read_entries(data)
    try:
        root.mkdir(parents=True, exist_ok=True)
        for entry in entries:
            target = _member_path(root, entry.path)
            if entry.is_dir:
                target.mkdir(parents=True, exist_ok=True)
            else:
                target.parent.mkdir(parents=True, exist_ok=True)
                target.write_bytes(entry.data or b"")
        # Apply directory modes after every file is written
        for entry in sorted(entries, key=lambda e: e.is_dir):
            os.chmod(_member_path(root, entry.path), entry.mode)
    except OSError as e:
        raise ArchiveError(f"Failed to extract archive into {destination}: {e}") from e
    return entries


def extract_single_file(data: bytes, destination: str | Path) -> ArchiveEntry:
    """Write the one regular file held by ``data`` to ``destination``.

    If ``destination`` is an existing directory the file keeps its entry name
    inside it. The entry's permission bits are restored.

    Raises:
        ArchiveError: Unless the archive holds exactly one regular-file entry
    """
    with _open(data) as tar:
        try:
            members = tar.getmembers()
            if len(members) != 1 or not members[0].isreg():
                raise ArchiveError("Archive must contain exactly one regular file")
            entry = _entry(tar, members[0])
        except tarfile.TarError as e:
            raise ArchiveError(f"Invalid archive: {e}") from e

    target = Path(destination)
    if target.is_dir():
        target = target / PurePosixPath(entry.path).name
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(entry.data or b"")
        os.chmod(target, entry.mode)
    except PermissionError as e:
        raise PermissionDeniedError(f"Cannot write {target}: {e}") from e
    except OSError as e:
        raise ArchiveError(f"Failed to write {target}: {e}") from e
    return entry
