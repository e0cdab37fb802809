from .backend import S3Backend
from .cancellation import CancellationToken
from .commands import Commands
from .listing import Lister
from .models import CommandResult, ListOptions, Target, TransferOptions, TransferSummary, UploadOptions
from .partial_file import PartialFile
from .seen_directories import SeenDirectories
from .transfer import TransferOrchestrator
from .uri import Key, Uri

__version__ = "0.1.0"

__all__ = [
    "S3Backend",
    "CancellationToken",
    "Commands",
    "Lister",
    "CommandResult",
    "ListOptions",
    "Target",
    "TransferOptions",
    "TransferSummary",
    "UploadOptions",
    "PartialFile",
    "SeenDirectories",
    "TransferOrchestrator",
    "Key",
    "Uri",
]
