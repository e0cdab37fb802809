"""
Module for running batches of uploads and downloads under bounded concurrency.

A batch is a worklist of tasks. Leaf tasks move one object and run on a pool
of ``concurrency`` threads, each holding one of ``concurrency`` permits while
it talks to the store. Expansion tasks (reading a local directory, fetching
one page of a remote listing) run on a separate small pool and push more
tasks onto the worklist. Only the scheduling thread touches the worklist.
"""
import enum
import logging
import threading
from collections import deque
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from pathlib import Path
from typing import Deque, Dict, List, Optional, Sequence, Union

from .cancellation import CancellationToken
from .errors import (
    FerryError,
    LocalIOError,
    LocalFilenameNotUnicode,
    NoSuchKeyError,
    OperationCancelled,
    UnsafeLocalPath,
)
from .listing import fetch_tree_page
from .models import (
    Target,
    TransferOptions,
    TransferResult,
    TransferSummary,
    UploadOptions,
)
from .partial_file import PartialFile
from .progress import ProgressTracker, longest_file_display_prefix
from .scanner import FileScanner, local_filename
from .seen_directories import SeenDirectories
from .uri import Key, Uri

logger = logging.getLogger(__name__)

LISTING_WORKERS = 2
POLL_INTERVAL = 0.1


class TaskKind(enum.Enum):
    UPLOAD = "upload"
    UPLOAD_DIRECTORY = "upload directory"
    DOWNLOAD = "download"
    DOWNLOAD_PREFIX = "download prefix"


@dataclass(eq=False)
class TransferTask:
    """A node of the task graph of one batch."""
    kind: TaskKind
    local_path: Optional[Path] = None
    uri: Optional[Uri] = None
    target: Optional[Target] = None
    expand_missing: bool = False
    seen: Optional[SeenDirectories] = None
    continuation_token: Optional[str] = None
    first_page: bool = True
    parent: Optional["TransferTask"] = None
    errors: int = 0

    @property
    def is_leaf(self) -> bool:
        return self.kind in (TaskKind.UPLOAD, TaskKind.DOWNLOAD)

    @property
    def name(self) -> str:
        if self.kind in (TaskKind.UPLOAD, TaskKind.UPLOAD_DIRECTORY):
            return str(self.local_path)
        return str(self.uri)

    def add_errors(self, count: int) -> None:
        task = self
        while task is not None:
            task.errors += count
            task = task.parent


@dataclass
class TaskOutcome:
    results: List[TransferResult] = field(default_factory=list)
    children: List[TransferTask] = field(default_factory=list)
    skipped: bool = False


def upload_key(destination: Uri, path: Path) -> str:
    """Key an uploaded file is stored under.

    The local file name is appended when the destination names a directory.
    """
    key = destination.key.value
    if destination.filename() is None:
        key += local_filename(path)
    return key.lstrip("/")


def _directory_component(path: Path) -> str:
    name = path.name
    if name in ("", "..", "."):
        return ""
    try:
        name.encode("utf-8")
    except UnicodeEncodeError:
        raise LocalFilenameNotUnicode(path) from None
    return name


class TransferOrchestrator:
    """Runs one batch of uploads or downloads."""

    def __init__(self, backend, options: Optional[TransferOptions] = None,
                 upload_options: Optional[UploadOptions] = None,
                 cancellation: Optional[CancellationToken] = None,
                 scanner: Optional[FileScanner] = None,
                 poll_interval: float = POLL_INTERVAL):
        """Initialize the orchestrator.

        Args:
            backend: Storage backend
            options: Concurrency, continue-on-error and recursion settings
            upload_options: ACL/grant/storage class options for uploads
            cancellation: Shared cancellation token
            scanner: Local filesystem helper
            poll_interval: Seconds between checks of the cancellation token
                while waiting on running tasks
        """
        self.backend = backend
        self.options = options or TransferOptions()
        self.upload_options = upload_options or UploadOptions()
        self.cancellation = cancellation or CancellationToken()
        self.scanner = scanner or FileScanner()
        self.poll_interval = poll_interval
        self.progress = ProgressTracker()
        self._permits = threading.BoundedSemaphore(self.options.concurrency)
        self._halted = threading.Event()

    def upload(self, local_paths: Sequence[Union[str, Path]], destination: Uri) -> TransferSummary:
        """Upload local files and, when recursive, directories.

        Args:
            local_paths: Files or directories to upload
            destination: Remote object or directory to upload to

        Returns:
            TransferSummary object
        """
        paths = [Path(p) for p in local_paths]
        self.progress = ProgressTracker(longest_file_display_prefix(str(p) for p in paths))
        roots = [TransferTask(TaskKind.UPLOAD, local_path=p, uri=destination) for p in paths]
        return self._run("upload", roots)

    def download(self, uris: Sequence[Uri], to: Union[str, Path]) -> TransferSummary:
        """Download objects and, when recursive, implicit directories.

        Args:
            uris: Remote objects or key prefixes
            to: Local file or directory

        Returns:
            TransferSummary object

        Raises:
            ArgumentError: If several sources would be written to one file
            LocalIOError: If the destination directory cannot be created
        """
        target = self.scanner.resolve_target(to, len(uris), self.options.recursive)
        self.progress = ProgressTracker(longest_file_display_prefix(str(u) for u in uris))
        roots = [
            TransferTask(TaskKind.DOWNLOAD, uri=uri, target=target,
                         expand_missing=self.options.recursive)
            for uri in uris
        ]
        return self._run("download", roots)

    def _may_launch(self) -> bool:
        return not self.cancellation.is_cancelled() and not self._halted.is_set()

    def _run(self, operation: str, roots: List[TransferTask]) -> TransferSummary:
        summary = TransferSummary(operation=operation)
        pending: Deque[TransferTask] = deque(roots)
        in_flight: Dict[Future, TransferTask] = {}
        self.progress.add_incoming_tasks(len(roots))
        self._halted.clear()

        with ThreadPoolExecutor(max_workers=self.options.concurrency,
                                thread_name_prefix="transfer") as transfers, \
                ThreadPoolExecutor(max_workers=LISTING_WORKERS,
                                   thread_name_prefix="listing") as listings:
            while pending or in_flight:
                while pending:
                    task = pending.popleft()
                    if not self._may_launch():
                        summary.not_started += 1
                        continue
                    pool = transfers if task.is_leaf else listings
                    in_flight[pool.submit(self._execute, task)] = task

                if not in_flight:
                    break
                done, _ = wait(list(in_flight), timeout=self.poll_interval,
                               return_when=FIRST_COMPLETED)
                for future in done:
                    task = in_flight.pop(future)
                    self._absorb(summary, task, future, pending)

        summary.cancelled = self.cancellation.is_cancelled()
        summary.metadata = {'root_errors': {task.name: task.errors for task in roots}}
        self.progress.log_summary(summary)
        return summary

    def _absorb(self, summary: TransferSummary, task: TransferTask, future: Future,
                pending: Deque[TransferTask]) -> None:
        try:
            outcome = future.result()
        except Exception as e:
            logger.error(f"Unexpected error in {task.kind.value} of {task.name}: {e}")
            outcome = TaskOutcome(results=[TransferResult(
                source=task.name, destination="", success=False, error=str(e))])

        if outcome.skipped:
            summary.not_started += 1
        for result in outcome.results:
            summary.results.append(result)
            if not result.success:
                task.add_errors(1)
                if not self.options.continue_on_error:
                    self._halted.set()
        for child in outcome.children:
            child.parent = task
            pending.append(child)
        if outcome.children:
            self.progress.add_incoming_tasks(len(outcome.children))

    def _execute(self, task: TransferTask) -> TaskOutcome:
        if not self._may_launch():
            return TaskOutcome(skipped=True)
        handlers = {
            TaskKind.UPLOAD: self._upload_one,
            TaskKind.UPLOAD_DIRECTORY: self._expand_directory,
            TaskKind.DOWNLOAD: self._download_one,
            TaskKind.DOWNLOAD_PREFIX: self._expand_prefix,
        }
        outcome = handlers[task.kind](task)
        if not self.options.continue_on_error and any(not r.success for r in outcome.results):
            self._halted.set()
        return outcome

    def _failure(self, source: str, destination: str, error: Union[FerryError, str],
                 action: str) -> TaskOutcome:
        logger.error(f"failed to {action} {source} to {destination}: {error}")
        return TaskOutcome(results=[TransferResult(
            source=source, destination=destination, success=False, error=str(error))])

    def _upload_one(self, task: TransferTask) -> TaskOutcome:
        path, destination = task.local_path, task.uri
        with self._permits:
            handle = self.progress.start(str(path), "statting")
            try:
                metadata = self.scanner.stat(path)
                if path.is_dir():
                    if not self.options.recursive:
                        self.progress.fail(handle, "given directory in non-recursive mode")
                        return self._failure(str(path), str(destination),
                                             "given directory in non-recursive mode", "upload")
                    self.progress.finish(handle)
                    return TaskOutcome(children=[TransferTask(
                        TaskKind.UPLOAD_DIRECTORY, local_path=path, uri=destination)])

                key = upload_key(destination, path)
                remote = destination.with_key(Key(key))
                self.progress.set_state(handle, "uploading", metadata.st_size)
                try:
                    stream = open(path, 'rb')
                except OSError as e:
                    raise LocalIOError("opening", path, e) from e
                with stream:
                    self.backend.put(destination.bucket, key, stream, metadata.st_size,
                                     self.upload_options, progress=self.progress.callback(handle))
            except FerryError as e:
                self.progress.fail(handle, str(e))
                return self._failure(str(path), str(destination), e, "upload")

        self.progress.finish(handle)
        logger.debug(f"uploaded {self.progress.display_name(str(path))} to {remote}")
        return TaskOutcome(results=[TransferResult(
            source=str(path), destination=str(remote), success=True,
            size_bytes=metadata.st_size)])

    def _expand_directory(self, task: TransferTask) -> TaskOutcome:
        path = task.local_path
        try:
            destination = task.uri.child_directory(_directory_component(path))
        except FerryError as e:
            return self._failure(str(path), str(task.uri), e, "upload")

        children, error = self.scanner.scan_directory(path)
        outcome = TaskOutcome(children=[
            TransferTask(TaskKind.UPLOAD, local_path=child, uri=destination)
            for child in children
        ])
        if error:
            outcome.results = self._failure(str(path), str(destination), error, "upload").results
        logger.debug(f"listed {len(children)} entries of {path}")
        return outcome

    def _download_one(self, task: TransferTask) -> TaskOutcome:
        uri, target = task.uri, task.target
        if uri.key.is_explicitly_directory():
            if task.expand_missing:
                return TaskOutcome(children=[self._prefix_task(task)])
            return self._failure(str(uri), str(target.path),
                                 "is a directory (use recursive mode)", "download")

        with self._permits:
            handle = self.progress.start(str(uri), "requesting")
            try:
                obj = self.backend.get(uri.bucket, uri.key.value)
            except NoSuchKeyError as e:
                if task.expand_missing:
                    self.progress.finish(handle)
                    return TaskOutcome(children=[self._prefix_task(task)])
                self.progress.fail(handle, str(e))
                return self._failure(str(uri), str(target.path), e, "download")
            except FerryError as e:
                self.progress.fail(handle, str(e))
                return self._failure(str(uri), str(target.path), e, "download")

            try:
                final_path = self._write_object(obj, target.path_for(uri), handle)
            except FerryError as e:
                self.progress.fail(handle, str(e))
                return self._failure(str(uri), str(target.path), e, "download")
            finally:
                obj.close()

        self.progress.finish(handle)
        logger.debug(f"downloaded {self.progress.display_name(str(uri))} to {final_path}")
        return TaskOutcome(results=[TransferResult(
            source=str(uri), destination=str(final_path), success=True,
            size_bytes=obj.content_length)])

    def _write_object(self, obj, final_path: Path, handle: int) -> Path:
        self.progress.set_state(handle, "downloading", obj.content_length)
        with PartialFile(final_path) as partial:
            for chunk in obj.iter_chunks():
                if self.cancellation.is_cancelled():
                    raise OperationCancelled(f"download to {final_path}")
                partial.write(chunk)
                self.progress.advance(handle, len(chunk))
            return partial.finished()

    def _prefix_task(self, task: TransferTask) -> TransferTask:
        return TransferTask(TaskKind.DOWNLOAD_PREFIX,
                            uri=task.uri.with_key(task.uri.key.to_explicit_directory()),
                            target=task.target)

    def _expand_prefix(self, task: TransferTask) -> TaskOutcome:
        uri, target = task.uri, task.target
        prefix = uri.key.value
        if not target.is_directory:
            return self._failure(str(uri), str(target.path),
                                 "cannot download a directory into a file", "download")
        seen = task.seen or SeenDirectories(prefix)
        try:
            page = fetch_tree_page(self.backend, uri.bucket, prefix, seen, task.continuation_token)
        except FerryError as e:
            return self._failure(str(uri), str(target.path), f"fetching list files page: {e}", "download")

        if task.first_page and page.is_empty and not page.next_token:
            return self._failure(str(uri), str(target.path),
                                 NoSuchKeyError(uri.bucket, uri.key.without_trailing_slash().value),
                                 "download")

        outcome = TaskOutcome()
        for directory in page.directories:
            relative = directory[len(prefix):]
            if not relative:
                continue
            try:
                local_dir = target.child(relative)
            except UnsafeLocalPath as e:
                # Reported once, by the files beneath it
                logger.warning(f"not creating {directory}: {e}")
                continue
            try:
                self.scanner.ensure_directory(local_dir.path)
            except LocalIOError as e:
                outcome.results.extend(self._failure(directory, str(target.path), e, "download").results)
                if not self.options.continue_on_error:
                    return outcome

        for item in page.files:
            item_uri = uri.with_key(Key(item.key))
            relative_dir = item.key[len(prefix):].rpartition("/")[0]
            try:
                item_target = target.child(relative_dir) if relative_dir else target
            except UnsafeLocalPath as e:
                outcome.results.extend(self._failure(str(item_uri), str(target.path), e, "download").results)
                if not self.options.continue_on_error:
                    return outcome
                continue
            outcome.children.append(TransferTask(TaskKind.DOWNLOAD, uri=item_uri, target=item_target))
        if page.next_token:
            outcome.children.append(TransferTask(
                TaskKind.DOWNLOAD_PREFIX, uri=uri, target=target, seen=seen,
                continuation_token=page.next_token, first_page=False))
        logger.debug(f"listed {len(page.files)} objects under {uri}")
        return outcome
