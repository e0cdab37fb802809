"""
Exception hierarchy shared by every part of the transfer engine.
"""
from pathlib import Path
from typing import Optional, Union


class FerryError(Exception):
    """Base class for all errors raised by s3_ferry."""


class UriError(FerryError):
    """A remote address could not be parsed or is not acceptable."""


class UriParseError(UriError):
    def __init__(self, text: str, reason: str):
        self.text = text
        self.reason = reason
        super().__init__(f"error parsing url {text!r}: {reason}")


class InvalidScheme(UriError):
    def __init__(self, scheme: str):
        self.scheme = scheme
        super().__init__(f"scheme was not s3:// (got {scheme}://)")


class MissingBucket(UriError):
    def __init__(self):
        super().__init__("missing bucket")


class InvalidUrlComponents(UriError):
    def __init__(self, component: str):
        self.component = component
        super().__init__(f"invalid url component provided: {component}")


class InvalidBucketName(UriError):
    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"invalid bucket name: {reason}")


class NoFilenameError(FerryError):
    """Neither the source nor the destination supplies a file name."""

    def __init__(self, location: str = ""):
        self.location = location
        message = "no filename specified"
        if location:
            message = f"{message} for {location}"
        super().__init__(message)


class UnsafeLocalPath(FerryError):
    """A key would be written outside the local download target."""

    def __init__(self, key: str):
        self.key = key
        super().__init__(f"key {key!r} has a '.' or '..' component")


class LocalFilenameNotUnicode(FerryError):
    def __init__(self, path: Union[str, Path]):
        self.path = path
        super().__init__(f"specified local filename not unicode: {path!r}")


class BackendError(FerryError):
    """A storage backend request failed.

    Args:
        kind: One of ``construction``, ``timeout``, ``dispatch``,
            ``response`` or ``service``
        operation: Backend operation that failed, e.g. ``GetObject``
        detail: Human readable diagnostic
        code: Service error code, when the service supplied one
    """

    KINDS = ("construction", "timeout", "dispatch", "response", "service")

    def __init__(self, kind: str, operation: str, detail: str,
                 code: Optional[str] = None):
        if kind not in self.KINDS:
            raise ValueError(f"unknown backend error kind: {kind}")
        self.kind = kind
        self.operation = operation
        self.detail = detail
        self.code = code
        super().__init__(self._render())

    def _render(self) -> str:
        if self.code:
            return f"S3 {self.kind} error during {self.operation} ({self.code}): {self.detail}"
        return f"S3 {self.kind} error during {self.operation}: {self.detail}"


class NoSuchKeyError(BackendError):
    """The requested object does not exist."""

    def __init__(self, bucket: str, key: str, operation: str = "GetObject"):
        self.bucket = bucket
        self.key = key
        super().__init__("service", operation, f"no such key s3://{bucket}/{key}",
                         code="NoSuchKey")


class LocalIOError(FerryError):
    """A local file or directory operation failed."""

    def __init__(self, action: str, path: Union[str, Path], cause: OSError):
        self.action = action
        self.path = path
        self.cause = cause
        super().__init__(f"{action} {str(path)!r}: {cause}")


class OperationCancelled(FerryError):
    def __init__(self, what: str = "operation"):
        self.what = what
        super().__init__(f"{what} cancelled")


class ArgumentError(FerryError):
    """Conflicting or structurally invalid command arguments."""
