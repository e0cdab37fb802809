"""
Tests for remote address parsing and key helpers.
"""
import pytest

from s3_ferry.errors import (
    InvalidBucketName,
    InvalidScheme,
    InvalidUrlComponents,
    MissingBucket,
    UriParseError,
)
from s3_ferry.uri import Key, Uri, filename, validate_bucket_name


@pytest.mark.parametrize("key", ["", "a", "a/", "a/b", "a/b/", "dir/file.txt"])
def test_to_explicit_directory_is_idempotent(key):
    """Test that making a key an explicit directory twice changes nothing."""
    once = Key(key).to_explicit_directory()
    assert once.is_explicitly_directory()
    assert once.to_explicit_directory() == once


def test_filename():
    """Test extraction of the part after the last slash."""
    assert filename("dir/file.txt") == "file.txt"
    assert filename("file.txt") == "file.txt"
    assert filename("dir/") is None
    assert filename("") is None


def test_key_basename_and_components():
    """Test directory-like views of a key."""
    key = Key("photos/trip/c.jpg")
    assert key.basename() == "photos/trip/"
    assert Key("c.jpg").basename() == ""
    assert Key("photos/trip/").as_directory_component() == "trip"
    assert Key("photos/trip/").without_trailing_slash() == Key("photos/trip")


def test_parse_valid_uri():
    """Test that bucket and key are split at the first slash."""
    uri = Uri.parse("s3://my-bucket/dir/file.txt")
    assert uri.bucket == "my-bucket"
    assert uri.key == Key("dir/file.txt")
    assert str(uri) == "s3://my-bucket/dir/file.txt"
    assert uri.filename() == "file.txt"


def test_parse_bucket_only():
    """Test that a bare bucket has an empty key."""
    assert Uri.parse("s3://my-bucket").key == Key("")
    assert Uri.parse("s3://my-bucket/").key == Key("")


@pytest.mark.parametrize("text,error", [
    ("http://bucket/key", InvalidScheme),
    ("s3://", MissingBucket),
    ("s3:bucket", MissingBucket),
    ("s3://bucket/key?x=1", InvalidUrlComponents),
    ("s3://bucket/key#frag", InvalidUrlComponents),
    ("s3://user@bucket/key", InvalidUrlComponents),
    ("s3://bucket:9000/key", InvalidUrlComponents),
    ("s3://bucket//key", InvalidUrlComponents),
    ("s3://Bucket/key", InvalidBucketName),
    ("some/local/path", UriParseError),
])
def test_parse_rejects(text, error):
    """Test that malformed addresses raise the matching error."""
    with pytest.raises(error):
        Uri.parse(text)


def test_bucket_name_rules():
    """Test the bucket name diagnostics."""
    assert validate_bucket_name("abc") is None
    assert validate_bucket_name("ab") == "too short (must be at least 3 characters)"
    assert validate_bucket_name("a_b") == "invalid character (valid: [a-z0-9.-])"
    assert validate_bucket_name("-ab") == "needs begin and end with a number or character ([a-z0-9])"
    assert validate_bucket_name("ab.") == "needs begin and end with a number or character ([a-z0-9])"


def test_child_directory():
    """Test that child directories are explicit directories below the key."""
    assert Uri("b-1", Key("dest")).child_directory("photos") == Uri("b-1", Key("dest/photos/"))
    assert Uri("b-1", Key("dest/")).child_directory("photos") == Uri("b-1", Key("dest/photos/"))
    assert Uri("b-1", Key("")).child_directory("photos") == Uri("b-1", Key("photos/"))


def test_uri_rejects_leading_slash_key():
    """Test that keys beginning with a slash are not representable."""
    with pytest.raises(ValueError):
        Uri("bucket", Key("/abs"))
