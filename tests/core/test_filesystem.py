"""
Unit tests for filesystem module.
"""

import errno
import io
import os
import tarfile
from unittest.mock import patch

import pytest

from binarykit.core.exceptions import ExtractionError, InsecureArchiveError
from binarykit.core.filesystem import (
    atomic_write,
    backup_path_for,
    extract_tar_gz,
    make_executable,
    remove_tree,
    replace_file,
)
from tests.conftest import make_tar_gz

real_unlink = os.unlink


def _locking_unlink(locked_names):
    """os.unlink replacement that reports the given file names as busy."""

    def unlink(path, *args, **kwargs):
        if os.path.basename(path) in locked_names:
            raise PermissionError(errno.EACCES, "The process cannot access the file", path)
        return real_unlink(path, *args, **kwargs)

    return unlink


class TestExtractTarGz:
    """Test extract_tar_gz function."""

    def test_extracts_members(self, tmp_path):
        archive = make_tar_gz(
            tmp_path / "a.tar.gz", {"rockide": b"bin", "docs/README.md": b"readme"}
        )
        dest = tmp_path / "out"

        extract_tar_gz(archive, dest)

        assert (dest / "rockide").read_bytes() == b"bin"
        assert (dest / "docs" / "README.md").read_bytes() == b"readme"

    def test_existing_destination_ok(self, tmp_path):
        archive = make_tar_gz(tmp_path / "a.tar.gz", {"rockide": b"bin"})
        dest = tmp_path / "out"
        dest.mkdir()

        extract_tar_gz(archive, dest)

        assert (dest / "rockide").exists()

    def test_corrupt_archive(self, tmp_path):
        archive = tmp_path / "bad.tar.gz"
        archive.write_bytes(b"this is not gzip")

        with pytest.raises(ExtractionError, match="Failed to extract"):
            extract_tar_gz(archive, tmp_path / "out")

    def test_missing_archive(self, tmp_path):
        with pytest.raises(ExtractionError, match="Archive not found"):
            extract_tar_gz(tmp_path / "missing.tar.gz", tmp_path / "out")

    def test_path_traversal_blocked(self, tmp_path):
        """Test members escaping the destination are rejected before writing."""
        archive = make_tar_gz(tmp_path / "evil.tar.gz", {"../escape.txt": b"x"})

        with pytest.raises(InsecureArchiveError, match="directory traversal"):
            extract_tar_gz(archive, tmp_path / "out")

        assert not (tmp_path / "escape.txt").exists()

    def test_symlink_escape_blocked(self, tmp_path):
        archive = tmp_path / "link.tar.gz"
        with tarfile.open(archive, "w:gz") as tar:
            info = tarfile.TarInfo("bin/link")
            info.type = tarfile.SYMTYPE
            info.linkname = "../../../etc/passwd"
            tar.addfile(info, io.BytesIO())

        with pytest.raises(InsecureArchiveError):
            extract_tar_gz(archive, tmp_path / "out")

    def test_insecure_archive_is_extraction_error(self):
        assert issubclass(InsecureArchiveError, ExtractionError)


class TestRemoveTree:
    """Test best-effort recursive removal."""

    def test_missing_path_is_noop(self, tmp_path):
        result = remove_tree(tmp_path / "nothing")

        assert result.complete
        assert result.skipped == []

    def test_removes_directory_tree(self, tmp_path):
        root = tmp_path / "v1.0.0"
        (root / "sub").mkdir(parents=True)
        (root / "rockide").write_bytes(b"bin")
        (root / "sub" / "data.txt").write_text("data")

        result = remove_tree(root)

        assert result.complete
        assert not root.exists()

    def test_removes_single_file(self, tmp_path):
        path = tmp_path / "file.txt"
        path.write_text("x")

        assert remove_tree(path).complete
        assert not path.exists()

    def test_locked_file_skipped_and_reported(self, tmp_path):
        """Test a busy file is skipped, everything else goes, parents stay."""
        root = tmp_path / "v1.0.0"
        (root / "lib").mkdir(parents=True)
        (root / "rockide").write_bytes(b"bin")
        (root / "lib" / "other.so").write_bytes(b"so")
        (root / "LICENSE").write_text("MIT")

        with patch(
            "binarykit.core.filesystem.os.unlink", side_effect=_locking_unlink({"rockide"})
        ):
            result = remove_tree(root)

        assert not result.complete
        assert root / "rockide" in result.skipped
        assert root in result.skipped
        assert (root / "rockide").exists()
        assert not (root / "LICENSE").exists()
        assert not (root / "lib").exists()

    def test_does_not_follow_directory_symlinks(self, tmp_path):
        target = tmp_path / "keep"
        target.mkdir()
        (target / "important.txt").write_text("keep me")
        root = tmp_path / "v1.0.0"
        root.mkdir()
        try:
            (root / "link").symlink_to(target, target_is_directory=True)
        except OSError:
            pytest.skip("symlinks not supported")

        result = remove_tree(root)

        assert result.complete
        assert not root.exists()
        assert (target / "important.txt").exists()


class TestReplaceFile:
    """Test replace_file function."""

    def test_new_destination(self, tmp_path):
        source = tmp_path / "new"
        source.write_bytes(b"new")
        destination = tmp_path / "bin" / "rockide"

        backup = replace_file(source, destination)

        assert backup is None
        assert destination.read_bytes() == b"new"
        assert not source.exists()

    def test_existing_file_moved_aside(self, tmp_path):
        source = tmp_path / "new"
        source.write_bytes(b"new")
        destination = tmp_path / "rockide"
        destination.write_bytes(b"old")

        backup = replace_file(source, destination)

        assert backup == backup_path_for(destination)
        assert backup.name == "rockide.old"
        assert backup.read_bytes() == b"old"
        assert destination.read_bytes() == b"new"

    def test_previous_backup_replaced(self, tmp_path):
        source = tmp_path / "new"
        source.write_bytes(b"v3")
        destination = tmp_path / "rockide"
        destination.write_bytes(b"v2")
        backup_path_for(destination).write_bytes(b"v1")

        backup = replace_file(source, destination)

        assert backup.read_bytes() == b"v2"
        assert destination.read_bytes() == b"v3"

    def test_failed_move_restores_original(self, tmp_path):
        """Test a failed write never destroys the working binary."""
        source = tmp_path / "new"
        source.write_bytes(b"new")
        destination = tmp_path / "rockide"
        destination.write_bytes(b"working")

        with patch(
            "binarykit.core.filesystem.shutil.move", side_effect=OSError("disk full")
        ):
            with pytest.raises(OSError, match="disk full"):
                replace_file(source, destination)

        assert destination.read_bytes() == b"working"
        assert not backup_path_for(destination).exists()


class TestAtomicWrite:
    """Test atomic_write function."""

    def test_writes_text(self, tmp_path):
        path = tmp_path / "state" / "state.json"

        atomic_write(path, '{"a": 1}')

        assert path.read_text() == '{"a": 1}'
        assert list(path.parent.iterdir()) == [path]

    def test_overwrites(self, tmp_path):
        path = tmp_path / "state.json"
        path.write_text("old")

        atomic_write(path, b"new")

        assert path.read_bytes() == b"new"


@pytest.mark.skipif(os.name == "nt", reason="POSIX permissions")
def test_make_executable(tmp_path):
    path = tmp_path / "rockide"
    path.write_bytes(b"bin")
    path.chmod(0o644)

    make_executable(path)

    assert path.stat().st_mode & 0o777 == 0o755
