"""
Module containing data models for the transfer engine.
"""
import enum
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from .errors import ArgumentError, NoFilenameError, UnsafeLocalPath
from .key_glob import GlobMode
from .uri import Uri


class CommandResult(enum.IntEnum):
    """Outcome of one command invocation, doubling as the process exit code."""
    SUCCESS = 0
    ERROR_ARGUMENTS = 1
    ERROR_SOME_OPERATIONS_FAILED = 2
    CANCELLED = 3

    @classmethod
    def from_error_count(cls, count: int) -> "CommandResult":
        return cls.SUCCESS if count == 0 else cls.ERROR_SOME_OPERATIONS_FAILED


class TargetKind(str, enum.Enum):
    FILE = "file"
    DIRECTORY = "directory"


@dataclass(frozen=True)
class Target:
    """Local destination of a download."""
    kind: TargetKind
    path: Path

    @classmethod
    def file(cls, path) -> "Target":
        return cls(TargetKind.FILE, Path(path))

    @classmethod
    def directory(cls, path) -> "Target":
        return cls(TargetKind.DIRECTORY, Path(path))

    @property
    def is_directory(self) -> bool:
        return self.kind is TargetKind.DIRECTORY

    def child(self, relative_dir: str) -> "Target":
        """Directory target for a ``/`` separated path beneath this one.

        Raises:
            UnsafeLocalPath: If a component is ``.`` or ``..``
        """
        parts = [p for p in relative_dir.split("/") if p]
        if any(p in (".", "..") for p in parts):
            raise UnsafeLocalPath(relative_dir)
        return Target.directory(self.path.joinpath(*parts))

    def path_for(self, uri: Uri) -> Path:
        """Local file path an object should be written to.

        Raises:
            NoFilenameError: If the target is a directory and the key has
                no filename
            UnsafeLocalPath: If the filename is ``.`` or ``..``
        """
        if not self.is_directory:
            return self.path
        name = uri.filename()
        if name is None:
            raise NoFilenameError(str(uri))
        if name in (".", ".."):
            raise UnsafeLocalPath(uri.key.value)
        return self.path / name


@dataclass
class TransferOptions:
    """Options shared by upload and download batches."""
    concurrency: int = 1
    continue_on_error: bool = False
    recursive: bool = False

    def __post_init__(self):
        """Validate the transfer options."""
        if self.concurrency < 1:
            raise ValueError(f"concurrency must be at least 1, got {self.concurrency}")


@dataclass
class UploadOptions:
    """Per-object options applied to uploaded objects."""
    acl: Optional[str] = None
    grant_full_control: Optional[str] = None
    grant_read: Optional[str] = None
    grant_read_acp: Optional[str] = None
    grant_write_acp: Optional[str] = None
    storage_class: Optional[str] = None

    def to_extra_args(self) -> Dict[str, str]:
        """Render as boto3 ``ExtraArgs``, omitting unset options."""
        names = {
            'acl': 'ACL',
            'grant_full_control': 'GrantFullControl',
            'grant_read': 'GrantRead',
            'grant_read_acp': 'GrantReadACP',
            'grant_write_acp': 'GrantWriteACP',
            'storage_class': 'StorageClass',
        }
        return {
            boto_name: getattr(self, attr)
            for attr, boto_name in names.items()
            if getattr(self, attr) is not None
        }


@dataclass
class MakeBucketOptions:
    acl: Optional[str] = None
    grant_full_control: Optional[str] = None
    grant_read: Optional[str] = None
    grant_read_acp: Optional[str] = None
    grant_write: Optional[str] = None
    grant_write_acp: Optional[str] = None

    def to_request_args(self) -> Dict[str, str]:
        names = {
            'acl': 'ACL',
            'grant_full_control': 'GrantFullControl',
            'grant_read': 'GrantRead',
            'grant_read_acp': 'GrantReadACP',
            'grant_write': 'GrantWrite',
            'grant_write_acp': 'GrantWriteACP',
        }
        return {
            boto_name: getattr(self, attr)
            for attr, boto_name in names.items()
            if getattr(self, attr) is not None
        }


@dataclass
class ListOptions:
    """Options controlling a listing."""
    recursive: bool = False
    directory: bool = False
    substring: bool = False
    full_path: bool = False
    long: bool = False
    only_files: bool = False
    only_directories: bool = False
    glob: GlobMode = GlobMode.AUTO

    def validate(self) -> None:
        if self.only_files and self.only_directories:
            raise ArgumentError("--only-files and --only-directories are mutually exclusive")


@dataclass
class ObjectInfo:
    """An object as reported by a listing."""
    key: str
    size: int = 0
    last_modified: Optional[datetime] = None
    storage_class: Optional[str] = None


@dataclass
class ListPage:
    """One page of a (possibly delimited) listing."""
    objects: List[ObjectInfo] = field(default_factory=list)
    common_prefixes: List[str] = field(default_factory=list)
    next_token: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return not self.objects and not self.common_prefixes


class EntryKind(str, enum.Enum):
    FILE = "file"
    DIRECTORY = "directory"


@dataclass
class ListEntry:
    """A file or synthesized directory in the user-facing listing."""
    key: str
    kind: EntryKind
    name: str = ""
    size: Optional[int] = None
    last_modified: Optional[datetime] = None
    storage_class: Optional[str] = None

    @property
    def is_directory(self) -> bool:
        return self.kind is EntryKind.DIRECTORY

    @classmethod
    def directory(cls, key: str) -> "ListEntry":
        return cls(key=key, kind=EntryKind.DIRECTORY)

    @classmethod
    def from_object(cls, info: ObjectInfo) -> "ListEntry":
        return cls(key=info.key, kind=EntryKind.FILE, size=info.size,
                   last_modified=info.last_modified, storage_class=info.storage_class)


@dataclass
class TransferResult:
    """Represents the result of a single object transfer or expansion."""
    source: str
    destination: str
    success: bool
    error: Optional[str] = None
    size_bytes: Optional[int] = None


@dataclass
class TransferSummary:
    """Represents a summary of a batch transfer."""
    operation: str
    results: List[TransferResult] = field(default_factory=list)
    not_started: int = 0
    cancelled: bool = False
    metadata: Optional[Dict[str, Any]] = None

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if not r.success)

    @property
    def bytes_transferred(self) -> int:
        return sum(r.size_bytes or 0 for r in self.results if r.success)

    @property
    def outcome(self) -> CommandResult:
        if self.cancelled:
            return CommandResult.CANCELLED
        return CommandResult.from_error_count(self.failed)
