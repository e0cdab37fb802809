"""
Module for parsing and manipulating remote object addresses.

Object stores have a flat key namespace. The helpers on ``Key`` give the
``/`` separated structure of a key a directory-like meaning without the
store enforcing it.
"""
from dataclasses import dataclass
from typing import Optional

from .errors import (
    InvalidBucketName,
    InvalidScheme,
    InvalidUrlComponents,
    MissingBucket,
    UriParseError,
)

SCHEME = "s3"


def filename(key: str) -> Optional[str]:
    """Return the part of ``key`` after the last ``/``.

    Args:
        key: Object key

    Returns:
        The filename, or None if the key is empty or ends in ``/``
    """
    if "/" not in key:
        return key or None
    name = key.rsplit("/", 1)[1]
    return name or None


@dataclass(frozen=True)
class Key:
    """An object key within a bucket."""
    value: str = ""

    def __str__(self) -> str:
        return self.value

    def __len__(self) -> int:
        return len(self.value)

    def filename(self) -> Optional[str]:
        return filename(self.value)

    def basename(self) -> str:
        """Directory portion of the key, including the final ``/``."""
        index = self.value.rfind("/")
        return self.value[:index + 1]

    def is_explicitly_directory(self) -> bool:
        return self.value == "" or self.value.endswith("/")

    def to_explicit_directory(self) -> "Key":
        if self.is_explicitly_directory():
            return self
        return Key(self.value + "/")

    def as_directory_component(self) -> str:
        """Final path segment with any trailing slash stripped."""
        without_slash = self.value[:-1] if self.value.endswith("/") else self.value
        return without_slash.rsplit("/", 1)[-1]

    def without_trailing_slash(self) -> "Key":
        if self.value.endswith("/"):
            return Key(self.value[:-1])
        return self

    def joined(self, component: str) -> "Key":
        return Key(self.value + component)


def bucket_valid_starting_char(c: str) -> bool:
    return ("a" <= c <= "z") or ("0" <= c <= "9")


def bucket_valid_char(c: str) -> bool:
    return bucket_valid_starting_char(c) or c in ".-"


def validate_bucket_name(bucket: str) -> Optional[str]:
    """Validate a bucket name against a pragmatic subset of the S3 naming rules.

    Args:
        bucket: Bucket name to check

    Returns:
        None if the name is acceptable, otherwise the reason it is not
    """
    if len(bucket) < 3:
        return "too short (must be at least 3 characters)"
    if not all(bucket_valid_char(c) for c in bucket):
        return "invalid character (valid: [a-z0-9.-])"
    if not bucket_valid_starting_char(bucket[0]) or not bucket_valid_starting_char(bucket[-1]):
        return "needs begin and end with a number or character ([a-z0-9])"
    return None


@dataclass(frozen=True)
class Uri:
    """A remote address: bucket plus key."""
    bucket: str
    key: Key = Key()

    def __post_init__(self):
        if self.key.value.startswith("/"):
            raise ValueError(f"key must not begin with '/': {self.key.value!r}")

    def __str__(self) -> str:
        return f"{SCHEME}://{self.bucket}/{self.key}"

    @classmethod
    def parse(cls, text: str) -> "Uri":
        """Parse ``s3://bucket/key`` into a Uri.

        Args:
            text: Address to parse

        Returns:
            The parsed Uri

        Raises:
            UriError: If the address is malformed or names an invalid bucket
        """
        scheme, sep, rest = text.partition("://")
        if not sep:
            # URLs without an authority, e.g. "s3:bucket"
            scheme, sep, rest = text.partition(":")
            if not sep or not _is_scheme(scheme):
                raise UriParseError(text, "relative URL without a base")
            if scheme.lower() != SCHEME:
                raise InvalidScheme(scheme)
            raise MissingBucket()
        if not _is_scheme(scheme):
            raise UriParseError(text, "invalid scheme")
        if scheme.lower() != SCHEME:
            raise InvalidScheme(scheme)

        if "?" in rest:
            raise InvalidUrlComponents("query string")
        if "#" in rest:
            raise InvalidUrlComponents("fragment")

        authority, _, path = rest.partition("/")
        if "@" in authority:
            userinfo = authority.rsplit("@", 1)[0]
            if ":" in userinfo:
                raise InvalidUrlComponents("password")
            raise InvalidUrlComponents("username")
        if ":" in authority:
            raise InvalidUrlComponents("port")
        if not authority:
            raise MissingBucket()

        reason = validate_bucket_name(authority)
        if reason:
            raise InvalidBucketName(reason)
        if path.startswith("/"):
            raise InvalidUrlComponents("key beginning with '/'")
        return cls(bucket=authority, key=Key(path))

    def filename(self) -> Optional[str]:
        return self.key.filename()

    def with_key(self, key: Key) -> "Uri":
        return Uri(bucket=self.bucket, key=key)

    def child_directory(self, component: str) -> "Uri":
        """Uri of the directory ``component`` beneath this Uri's directory."""
        child = self.key.to_explicit_directory().joined(component)
        return self.with_key(child.to_explicit_directory())


def _is_scheme(candidate: str) -> bool:
    if not candidate or not candidate[0].isascii() or not candidate[0].isalpha():
        return False
    return all(c.isascii() and (c.isalnum() or c in "+-.") for c in candidate)
