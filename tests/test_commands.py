"""
Tests for the command handlers.
"""
import io

import pytest

from s3_ferry.commands import Commands, CopyArgument
from s3_ferry.errors import InvalidScheme
from s3_ferry.models import CommandResult, ListOptions, MakeBucketOptions, TransferOptions

from conftest import TEST_BUCKET


@pytest.fixture
def output():
    return io.StringIO()


@pytest.fixture
def commands(fake_backend, output):
    return Commands(fake_backend, out=output, binary_out=io.BytesIO())


def test_copy_argument_classification():
    """Test that only non-URLs are local paths."""
    assert CopyArgument.parse("s3://test-bucket/key").is_remote
    assert not CopyArgument.parse("relative/path.txt").is_remote
    assert not CopyArgument.parse("/absolute/path.txt").is_remote
    with pytest.raises(InvalidScheme):
        CopyArgument.parse("http://example.com/file")


def test_cp_uploads_local_sources(commands, fake_backend, tmp_upload_dir):
    """Test cp with local sources and a remote destination."""
    source = tmp_upload_dir / "a.txt"
    source.write_text("a")

    result = commands.cp([str(source), "s3://test-bucket/dest/"], TransferOptions())

    assert result is CommandResult.SUCCESS
    assert fake_backend.buckets[TEST_BUCKET]["dest/a.txt"] == b"a"


def test_cp_downloads_remote_sources(commands, fake_backend, tmp_download_dir):
    """Test cp with remote sources and a local destination."""
    fake_backend.add("dir/a.txt", b"a")

    result = commands.cp(["s3://test-bucket/dir/a.txt", str(tmp_download_dir)], TransferOptions())

    assert result is CommandResult.SUCCESS
    assert (tmp_download_dir / "a.txt").read_bytes() == b"a"


def test_cp_rejects_mixed_sources(commands, tmp_upload_dir):
    """Test that local and remote sources cannot be mixed."""
    result = commands.cp([str(tmp_upload_dir), "s3://test-bucket/a", "s3://test-bucket/"],
                         TransferOptions())
    assert result is CommandResult.ERROR_ARGUMENTS


def test_cp_rejects_bad_url(commands, tmp_upload_dir):
    """Test that a URL with the wrong scheme is an argument error."""
    result = commands.cp([str(tmp_upload_dir), "ftp://test-bucket/"], TransferOptions())
    assert result is CommandResult.ERROR_ARGUMENTS


def test_cp_needs_a_remote_side(commands, tmp_upload_dir):
    """Test that local-to-local copies are refused."""
    assert commands.cp([str(tmp_upload_dir), "elsewhere"], TransferOptions()) is CommandResult.ERROR_ARGUMENTS


def test_upload_bad_destination(commands, tmp_upload_dir):
    """Test that an invalid bucket name aborts before any transfer."""
    result = commands.upload([str(tmp_upload_dir)], "s3://UPPER/", TransferOptions())
    assert result is CommandResult.ERROR_ARGUMENTS


def test_download_many_sources_into_file(commands, fake_backend, tmp_download_dir):
    """Test that several sources cannot be written to one existing file."""
    existing = tmp_download_dir / "file.txt"
    existing.write_text("x")
    result = commands.download(["s3://test-bucket/a", "s3://test-bucket/b"], str(existing),
                               TransferOptions())
    assert result is CommandResult.ERROR_ARGUMENTS


def test_download_uncreatable_destination(commands, fake_backend, tmp_download_dir):
    """Test that a destination directory that cannot be made is an argument error."""
    fake_backend.add("a.txt", b"a")
    blocker = tmp_download_dir / "file.txt"
    blocker.write_text("x")

    result = commands.download(["s3://test-bucket/a.txt"], f"{blocker}/sub/", TransferOptions())

    assert result is CommandResult.ERROR_ARGUMENTS
    assert fake_backend.max_in_flight == 0


def test_rm_stops_at_first_failure(commands, fake_backend):
    """Test that rm does not continue after a failed delete."""
    for key in ("a", "b", "c"):
        fake_backend.add(key)
    fake_backend.fail_keys = {"b"}

    result = commands.rm(["s3://test-bucket/a", "s3://test-bucket/b", "s3://test-bucket/c"])

    assert result is CommandResult.ERROR_SOME_OPERATIONS_FAILED
    assert fake_backend.deleted == ["a"]


def test_ls_prints_entries(commands, fake_backend, output):
    """Test that ls prints one entry per line."""
    fake_backend.add("dir/a.txt")
    fake_backend.add("top.txt")

    result = commands.ls(["s3://test-bucket/"], ListOptions())

    assert result is CommandResult.SUCCESS
    assert output.getvalue().splitlines() == ["dir/", "top.txt"]


def test_ls_conflicting_filters(commands):
    """Test that exclusive filters are an argument error."""
    options = ListOptions(only_files=True, only_directories=True)
    assert commands.ls(["s3://test-bucket/"], options) is CommandResult.ERROR_ARGUMENTS


def test_ls_empty_result_is_success(commands, output):
    """Test that listing nothing is not an error."""
    assert commands.ls(["s3://test-bucket/none"], ListOptions()) is CommandResult.SUCCESS
    assert output.getvalue() == ""


def test_ls_buckets(commands, fake_backend, output):
    """Test bucket listing."""
    fake_backend.buckets["another-bucket"] = {}
    assert commands.ls_buckets() is CommandResult.SUCCESS
    assert output.getvalue().splitlines() == ["another-bucket", TEST_BUCKET]


def test_cat_writes_bytes(commands, fake_backend):
    """Test that cat streams object contents."""
    fake_backend.add("a.txt", b"first ")
    fake_backend.add("b.txt", b"second")

    result = commands.cat(["s3://test-bucket/a.txt", "s3://test-bucket/b.txt"])

    assert result is CommandResult.SUCCESS
    assert commands.binary_out.getvalue() == b"first second"


def test_cat_missing_object(commands):
    """Test that a missing object fails the command."""
    assert commands.cat(["s3://test-bucket/missing"]) is CommandResult.ERROR_SOME_OPERATIONS_FAILED


def test_mb_creates_buckets(commands, fake_backend):
    """Test bucket creation with grants."""
    result = commands.mb(["s3://new-bucket/"], MakeBucketOptions(acl="private"), region="eu-west-1")

    assert result is CommandResult.SUCCESS
    assert fake_backend.created_buckets == [("new-bucket", "eu-west-1", {'ACL': 'private'})]


def test_mb_rejects_keys(commands, fake_backend):
    """Test that a bucket address with a key is an argument error."""
    assert commands.mb(["s3://new-bucket/key"]) is CommandResult.ERROR_ARGUMENTS
    assert fake_backend.created_buckets == []


def test_mb_continue_on_error(commands, fake_backend):
    """Test that continue-on-error keeps creating after a failure."""
    result = commands.mb(["s3://test-bucket/", "s3://new-bucket/"], continue_on_error=True)

    assert result is CommandResult.ERROR_SOME_OPERATIONS_FAILED
    assert [b[0] for b in fake_backend.created_buckets] == ["new-bucket"]


def test_mb_stops_on_error(commands, fake_backend):
    """Test that the first failure stops bucket creation by default."""
    result = commands.mb(["s3://test-bucket/", "s3://new-bucket/"])

    assert result is CommandResult.ERROR_SOME_OPERATIONS_FAILED
    assert fake_backend.created_buckets == []
