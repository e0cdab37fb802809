"""
Tests for the local filesystem helpers.
"""
from pathlib import Path

import pytest

from s3_ferry.errors import ArgumentError, LocalIOError, NoFilenameError
from s3_ferry.models import Target, TargetKind
from s3_ferry.scanner import FileScanner, local_filename
from s3_ferry.uri import Uri


@pytest.fixture
def scanner():
    return FileScanner()


def test_scan_directory_sorted(scanner, local_tree):
    """Test that directory entries are returned sorted by name."""
    children, error = scanner.scan_directory(local_tree)
    assert error is None
    assert [c.name for c in children] == ["a.jpg", "b.jpg", "trip"]


def test_scan_missing_directory_reports_error(scanner, tmp_path):
    """Test that an unreadable directory yields an error, not an exception."""
    children, error = scanner.scan_directory(tmp_path / "missing")
    assert children == []
    assert isinstance(error, LocalIOError)


def test_ensure_directory_is_idempotent(scanner, tmp_path):
    """Test that creating an existing directory is not an error."""
    folder = tmp_path / "new"
    scanner.ensure_directory(folder)
    scanner.ensure_directory(folder)
    assert folder.is_dir()


def test_ensure_directory_over_file_fails(scanner, tmp_path):
    """Test that a file in the way is an error."""
    blocker = tmp_path / "blocker"
    blocker.write_text("x")
    with pytest.raises(LocalIOError):
        scanner.ensure_directory(blocker)


def test_resolve_existing_directory(scanner, tmp_download_dir):
    """Test that an existing directory is a directory target."""
    assert scanner.resolve_target(tmp_download_dir, 1, False) == Target.directory(tmp_download_dir)


def test_resolve_missing_single_file(scanner, tmp_download_dir):
    """Test that a missing path for one source is a file target."""
    target = scanner.resolve_target(tmp_download_dir / "out.txt", 1, False)
    assert target.kind is TargetKind.FILE
    assert not (tmp_download_dir / "out.txt").exists()


def test_resolve_missing_for_many_sources_creates_directory(scanner, tmp_download_dir):
    """Test that several sources need a directory, which is created."""
    target = scanner.resolve_target(tmp_download_dir / "many", 2, False)
    assert target.is_directory
    assert (tmp_download_dir / "many").is_dir()


def test_resolve_trailing_separator_is_directory(scanner, tmp_download_dir):
    """Test that a trailing slash asks for a directory."""
    target = scanner.resolve_target(f"{tmp_download_dir}/sub/", 1, False)
    assert target.is_directory


def test_resolve_existing_file_with_many_sources(scanner, tmp_download_dir):
    """Test that several sources cannot be written to one file."""
    existing = tmp_download_dir / "file.txt"
    existing.write_text("x")
    with pytest.raises(ArgumentError):
        scanner.resolve_target(existing, 2, False)


def test_target_path_for(tmp_download_dir):
    """Test the local path of an object under each target kind."""
    uri = Uri.parse("s3://test-bucket/dir/file.txt")
    assert Target.file(tmp_download_dir / "x").path_for(uri) == tmp_download_dir / "x"
    assert Target.directory(tmp_download_dir).path_for(uri) == tmp_download_dir / "file.txt"
    with pytest.raises(NoFilenameError):
        Target.directory(tmp_download_dir).path_for(Uri.parse("s3://test-bucket/dir/"))


def test_local_filename():
    """Test the name used for uploaded files."""
    assert local_filename(Path("/tmp/a.txt")) == "a.txt"
    with pytest.raises(NoFilenameError):
        local_filename(Path("/"))
