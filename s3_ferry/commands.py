"""
Module containing the handlers behind each CLI subcommand.

Every handler returns a CommandResult; addressing and argument errors are
turned into ``ERROR_ARGUMENTS`` before anything is transferred.
"""
import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence, TextIO, BinaryIO

from .cancellation import CancellationToken
from .errors import (
    ArgumentError,
    BackendError,
    FerryError,
    LocalFilenameNotUnicode,
    LocalIOError,
    NoFilenameError,
    UriError,
    UriParseError,
)
from .listing import Lister, format_entry
from .models import (
    CommandResult,
    ListOptions,
    MakeBucketOptions,
    TransferOptions,
    UploadOptions,
)
from .transfer import TransferOrchestrator
from .uri import Uri

logger = logging.getLogger(__name__)

ADDRESSING_ERRORS = (UriError, ArgumentError, NoFilenameError, LocalFilenameNotUnicode)


def parse_uris(texts: Sequence[str]) -> List[Uri]:
    return [Uri.parse(text) for text in texts]


@dataclass
class CopyArgument:
    """One ``cp`` argument: either a remote Uri or a local path."""
    text: str
    uri: Optional[Uri] = None

    @property
    def is_remote(self) -> bool:
        return self.uri is not None

    @property
    def path(self) -> Path:
        return Path(self.text)

    @classmethod
    def parse(cls, text: str) -> "CopyArgument":
        """Classify a ``cp`` argument.

        Anything that is not a URL at all is a local path; a URL that is
        otherwise unacceptable (wrong scheme, bad bucket) is an error.

        Raises:
            UriError: If the argument is a URL but not a valid s3 address
        """
        try:
            return cls(text, Uri.parse(text))
        except UriParseError:
            return cls(text)


class Commands:
    """Runs commands against one backend."""

    def __init__(self, backend, cancellation: Optional[CancellationToken] = None,
                 out: Optional[TextIO] = None, binary_out: Optional[BinaryIO] = None):
        """Initialize the command runner.

        Args:
            backend: Storage backend
            cancellation: Token set when the user interrupts
            out: Stream listings are printed to, stdout by default
            binary_out: Stream ``cat`` writes object bytes to
        """
        self.backend = backend
        self.cancellation = cancellation or CancellationToken()
        self.out = out or sys.stdout
        self.binary_out = binary_out

    def _orchestrator(self, options: TransferOptions,
                      upload_options: Optional[UploadOptions] = None) -> TransferOrchestrator:
        return TransferOrchestrator(self.backend, options, upload_options,
                                    cancellation=self.cancellation)

    def upload(self, paths: Sequence[str], destination: str, options: TransferOptions,
               upload_options: Optional[UploadOptions] = None) -> CommandResult:
        """Upload local files or directories to one destination.

        Args:
            paths: Local paths
            destination: ``s3://`` address to upload to
            options: Transfer options
            upload_options: ACL/grant/storage class options

        Returns:
            CommandResult of the batch
        """
        try:
            uri = Uri.parse(destination)
        except ADDRESSING_ERRORS as e:
            logger.error(f"{destination}: {e}")
            return CommandResult.ERROR_ARGUMENTS
        summary = self._orchestrator(options, upload_options).upload(paths, uri)
        return summary.outcome

    def download(self, uris: Sequence[str], to: str, options: TransferOptions) -> CommandResult:
        """Download objects or prefixes into a local file or directory.

        Args:
            uris: ``s3://`` addresses to download
            to: Local destination
            options: Transfer options

        Returns:
            CommandResult of the batch
        """
        try:
            sources = parse_uris(uris)
        except ADDRESSING_ERRORS as e:
            logger.error(str(e))
            return CommandResult.ERROR_ARGUMENTS
        return self._download(sources, to, options)

    def _download(self, sources: List[Uri], to: str, options: TransferOptions) -> CommandResult:
        try:
            summary = self._orchestrator(options).download(sources, to)
        except ArgumentError as e:
            logger.error(str(e))
            return CommandResult.ERROR_ARGUMENTS
        except LocalIOError as e:
            logger.error(f"failed to prepare download destination: {e}")
            return CommandResult.ERROR_ARGUMENTS
        return summary.outcome

    def cp(self, arguments: Sequence[str], options: TransferOptions,
           upload_options: Optional[UploadOptions] = None) -> CommandResult:
        """Copy between local paths and the store, in either direction.

        The last argument is the destination; the sources must all be local
        paths (upload) or all be ``s3://`` addresses (download).

        Returns:
            CommandResult of the batch
        """
        if len(arguments) < 2:
            logger.error("cp needs at least one source and a destination")
            return CommandResult.ERROR_ARGUMENTS
        try:
            parsed = [CopyArgument.parse(text) for text in arguments]
        except UriError as e:
            logger.error(str(e))
            return CommandResult.ERROR_ARGUMENTS

        *sources, destination = parsed
        remote_sources = sum(1 for s in sources if s.is_remote)
        if remote_sources not in (0, len(sources)):
            logger.error("cannot mix local paths and s3:// addresses as sources")
            return CommandResult.ERROR_ARGUMENTS

        if remote_sources:
            if destination.is_remote:
                logger.error("copying between two s3:// addresses is not supported")
                return CommandResult.ERROR_ARGUMENTS
            return self._download([s.uri for s in sources], destination.text, options)

        if not destination.is_remote:
            logger.error("either the sources or the destination must be an s3:// address")
            return CommandResult.ERROR_ARGUMENTS
        summary = self._orchestrator(options, upload_options).upload(
            [s.path for s in sources], destination.uri)
        return summary.outcome

    def rm(self, uris: Sequence[str]) -> CommandResult:
        """Delete objects one at a time, stopping at the first failure."""
        try:
            targets = parse_uris(uris)
        except ADDRESSING_ERRORS as e:
            logger.error(str(e))
            return CommandResult.ERROR_ARGUMENTS

        for uri in targets:
            if self.cancellation.is_cancelled():
                return CommandResult.CANCELLED
            if uri.filename() is None:
                logger.error(f"failed to remove {uri}: {NoFilenameError(str(uri))}")
                return CommandResult.ERROR_SOME_OPERATIONS_FAILED
            try:
                self.backend.delete(uri.bucket, uri.key.value)
            except BackendError as e:
                logger.error(f"failed to remove {uri}: {e}")
                return CommandResult.ERROR_SOME_OPERATIONS_FAILED
            logger.debug(f"removed {uri}")
        return CommandResult.SUCCESS

    def ls(self, uris: Sequence[str], options: ListOptions) -> CommandResult:
        """Print the entries under each address.

        Args:
            uris: ``s3://`` addresses; keys may be globs
            options: Listing options

        Returns:
            CommandResult
        """
        try:
            options.validate()
            targets = parse_uris(uris)
        except ADDRESSING_ERRORS as e:
            logger.error(str(e))
            return CommandResult.ERROR_ARGUMENTS

        lister = Lister(self.backend, options)
        errors = 0
        for uri in targets:
            try:
                for entry in lister.entries(uri):
                    if self.cancellation.is_cancelled():
                        return CommandResult.CANCELLED
                    print(format_entry(entry, options.long), file=self.out)
            except BackendError as e:
                logger.error(f"failed to list {uri}: {e}")
                errors += 1
        return CommandResult.from_error_count(errors)

    def ls_buckets(self) -> CommandResult:
        try:
            names = self.backend.list_buckets()
        except BackendError as e:
            logger.error(f"failed to list buckets: {e}")
            return CommandResult.ERROR_SOME_OPERATIONS_FAILED
        for name in names:
            print(name, file=self.out)
        return CommandResult.SUCCESS

    def cat(self, uris: Sequence[str]) -> CommandResult:
        """Write the bytes of each object to standard output."""
        try:
            targets = parse_uris(uris)
        except ADDRESSING_ERRORS as e:
            logger.error(str(e))
            return CommandResult.ERROR_ARGUMENTS

        out = self.binary_out or sys.stdout.buffer
        for uri in targets:
            if self.cancellation.is_cancelled():
                return CommandResult.CANCELLED
            try:
                obj = self.backend.get(uri.bucket, uri.key.value)
                try:
                    for chunk in obj.iter_chunks():
                        if self.cancellation.is_cancelled():
                            return CommandResult.CANCELLED
                        out.write(chunk)
                finally:
                    obj.close()
            except BackendError as e:
                logger.error(f"failed to read {uri}: {e}")
                return CommandResult.ERROR_SOME_OPERATIONS_FAILED
        out.flush()
        return CommandResult.SUCCESS

    def mb(self, uris: Sequence[str], options: Optional[MakeBucketOptions] = None,
           continue_on_error: bool = False, region: Optional[str] = None) -> CommandResult:
        """Create buckets.

        Args:
            uris: Bucket addresses, e.g. ``s3://name/``
            options: ACL/grant options for the new buckets
            continue_on_error: Keep creating buckets after a failure
            region: Region to create the buckets in

        Returns:
            CommandResult
        """
        try:
            targets = parse_uris(uris)
            for uri in targets:
                if uri.key.value:
                    raise ArgumentError(f"{uri}: bucket address must not have a key")
        except ADDRESSING_ERRORS as e:
            logger.error(str(e))
            return CommandResult.ERROR_ARGUMENTS

        request_args = (options or MakeBucketOptions()).to_request_args()
        errors = 0
        for uri in targets:
            if self.cancellation.is_cancelled():
                return CommandResult.CANCELLED
            try:
                self.backend.create_bucket(uri.bucket, region, request_args)
            except FerryError as e:
                logger.error(f"failed to create bucket {uri.bucket}: {e}")
                errors += 1
                if not continue_on_error:
                    break
                continue
            logger.info(f"created bucket {uri.bucket}")
        return CommandResult.from_error_count(errors)
