"""Tests for the tar archive codec."""

import io
import os
import stat
import tarfile

import pytest

from code_sandbox.archive import (
    build_bytes_archive,
    build_directory_archive,
    build_file_archive,
    extract_archive,
    extract_single_file,
    read_entries,
)
from code_sandbox.exceptions import ArchiveError, PathNotFoundError


def _mode(path) -> int:
    return stat.S_IMODE(os.stat(path).st_mode)


@pytest.fixture
def project(tmp_path):
    """A small project tree with varied permissions."""
    root = tmp_path / "myproject"
    (root / "src" / "pkg").mkdir(parents=True)
    (root / "empty").mkdir()
    (root / "README.md").write_text("hello\n")
    (root / "src" / "pkg" / "mod.py").write_bytes(b"\x00\x01binary")
    script = root / "run.sh"
    script.write_text("#!/bin/sh\necho hi\n")
    script.chmod(0o755)
    return root


class TestBuildDirectoryArchive:
    """Tests for build_directory_archive()."""

    def test_anchored_under_base_name_in_sorted_order(self, project) -> None:
        """Entries are rooted at the directory name and sorted."""
        names = [entry.path for entry in read_entries(build_directory_archive(project))]
        assert names == [
            "myproject",
            "myproject/empty",
            "myproject/src",
            "myproject/README.md",
            "myproject/run.sh",
            "myproject/src/pkg",
            "myproject/src/pkg/mod.py",
        ]

    def test_deterministic(self, project) -> None:
        """The same tree archives to the same bytes."""
        assert build_directory_archive(project) == build_directory_archive(project)

    def test_owner_normalized(self, project) -> None:
        """Members are owned by root."""
        with tarfile.open(fileobj=io.BytesIO(build_directory_archive(project))) as tar:
            assert {(m.uid, m.gid) for m in tar.getmembers()} == {(0, 0)}

    def test_symlinks_skipped(self, project) -> None:
        """Symlinks are left out of the archive."""
        (project / "link").symlink_to(project / "README.md")
        names = [entry.path for entry in read_entries(build_directory_archive(project))]
        assert "myproject/link" not in names

    def test_missing_directory(self, tmp_path) -> None:
        """A missing directory is reported."""
        with pytest.raises(PathNotFoundError):
            build_directory_archive(tmp_path / "nope")


class TestRoundTrip:
    """Archive out, extract back."""

    def test_tree_reproduces_bytes_and_modes(self, project, tmp_path) -> None:
        """Extracting a directory archive reproduces contents and permission bits."""
        dest = tmp_path / "out"
        extract_archive(build_directory_archive(project), dest)

        copied = dest / "myproject"
        assert (copied / "src" / "pkg" / "mod.py").read_bytes() == b"\x00\x01binary"
        assert (copied / "README.md").read_text() == "hello\n"
        assert (copied / "empty").is_dir()
        assert _mode(copied / "run.sh") == 0o755
        assert _mode(copied / "README.md") == _mode(project / "README.md")

    def test_single_file_keeps_mode(self, project, tmp_path) -> None:
        """A file archive extracted by extract_single_file keeps its bits."""
        data = build_file_archive(project / "run.sh")
        entry = extract_single_file(data, tmp_path / "nested" / "copy.sh")

        assert entry.path == "run.sh"
        assert (tmp_path / "nested" / "copy.sh").read_text() == "#!/bin/sh\necho hi\n"
        assert _mode(tmp_path / "nested" / "copy.sh") == 0o755

    def test_single_file_into_directory(self, project, tmp_path) -> None:
        """An existing directory destination keeps the entry name."""
        extract_single_file(build_file_archive(project / "README.md", arcname="notes.md"), tmp_path)
        assert (tmp_path / "notes.md").read_text() == "hello\n"


class TestBuildFileArchive:
    """Tests for build_file_archive() and build_bytes_archive()."""

    def test_missing_file(self, tmp_path) -> None:
        """A missing file is reported."""
        with pytest.raises(PathNotFoundError):
            build_file_archive(tmp_path / "nope.txt")

    def test_directory_rejected(self, project) -> None:
        """Only regular files are archived."""
        with pytest.raises(ArchiveError):
            build_file_archive(project)

    def test_bytes_archive(self) -> None:
        """In-memory content becomes a single 0644 member."""
        (entry,) = read_entries(build_bytes_archive("hello.txt", b"hi", mtime=0))
        assert entry.path == "hello.txt"
        assert entry.data == b"hi"
        assert entry.mode == 0o644
        assert entry.mtime == 0

    @pytest.mark.parametrize("name", ["", ".", "..", "a/b"])
    def test_bytes_archive_bad_name(self, name: str) -> None:
        """Names must be plain file names."""
        with pytest.raises(ArchiveError):
            build_bytes_archive(name, b"")


class TestExtract:
    """Tests for extraction safeguards."""

    def test_rejects_path_traversal(self, tmp_path) -> None:
        """Entries escaping the destination are refused."""
        buffer = io.BytesIO()
        with tarfile.open(fileobj=buffer, mode="w") as tar:
            info = tarfile.TarInfo("../escape.txt")
            info.size = 1
            tar.addfile(info, io.BytesIO(b"x"))
        with pytest.raises(ArchiveError, match="Unsafe"):
            extract_archive(buffer.getvalue(), tmp_path / "dest")
        assert not (tmp_path / "escape.txt").exists()

    def test_single_file_requires_one_regular_member(self, project, tmp_path) -> None:
        """A directory archive is not a single file."""
        with pytest.raises(ArchiveError, match="exactly one"):
            extract_single_file(build_directory_archive(project), tmp_path / "x")

    def test_garbage_rejected(self, tmp_path) -> None:
        """Non-tar bytes are reported as an archive error."""
        with pytest.raises(ArchiveError):
            read_entries(b"definitely not a tar archive" * 40)
