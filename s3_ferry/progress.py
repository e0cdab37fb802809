"""
Module for tracking the progress of a batch of transfers.
"""
import logging
import threading
from dataclasses import dataclass
from typing import Dict, Iterable, Optional

from .models import TransferSummary

logger = logging.getLogger(__name__)


def longest_file_display_prefix(names: Iterable[str]) -> str:
    """Longest common prefix of ``names`` that ends in ``/``.

    Args:
        names: Paths or URIs

    Returns:
        The shared directory-like prefix, or "" if there is none
    """
    prefix: Optional[str] = None
    for name in names:
        if prefix is None:
            prefix = name
            continue
        length = 0
        for a, b in zip(prefix, name):
            if a != b:
                break
            length += 1
        prefix = prefix[:length]
    if not prefix:
        return ""
    return prefix[:prefix.rfind("/") + 1]


@dataclass
class TaskProgress:
    """Byte progress of one leaf transfer."""
    name: str
    state: str = "starting"
    total_bytes: Optional[int] = None
    transferred_bytes: int = 0
    error: Optional[str] = None


class ProgressTracker:
    """Tracks tasks and bytes of one command invocation."""

    def __init__(self, display_prefix: str = ""):
        """Initialize the tracker.

        Args:
            display_prefix: Prefix stripped from task names in log messages
        """
        self.display_prefix = display_prefix
        self._tasks: Dict[int, TaskProgress] = {}
        self._next_id = 0
        self.incoming_tasks = 0
        self.bytes_transferred = 0
        self._lock = threading.Lock()

    def display_name(self, name: str) -> str:
        if self.display_prefix and name.startswith(self.display_prefix) and name != self.display_prefix:
            return name[len(self.display_prefix):]
        return name

    def add_incoming_tasks(self, count: int) -> None:
        with self._lock:
            self.incoming_tasks += count

    def start(self, name: str, state: str = "starting") -> int:
        """Register a task.

        Returns:
            Handle for the other methods
        """
        with self._lock:
            task_id = self._next_id
            self._next_id += 1
            self._tasks[task_id] = TaskProgress(name=name, state=state)
        logger.debug(f"{state} {self.display_name(name)}")
        return task_id

    def set_state(self, task_id: int, state: str, total_bytes: Optional[int] = None) -> None:
        with self._lock:
            task = self._tasks[task_id]
            task.state = state
            if total_bytes is not None:
                task.total_bytes = total_bytes

    def advance(self, task_id: int, byte_count: int) -> None:
        """Record bytes moved for a task; usable as a boto3 transfer callback."""
        with self._lock:
            task = self._tasks[task_id]
            task.transferred_bytes += byte_count
            self.bytes_transferred += byte_count
            transferred, total = task.transferred_bytes, task.total_bytes
        if total:
            logger.debug(f"{self.display_name(task.name)}: {transferred}/{total} bytes")

    def callback(self, task_id: int):
        return lambda byte_count: self.advance(task_id, byte_count)

    def finish(self, task_id: int) -> TaskProgress:
        with self._lock:
            task = self._tasks.pop(task_id)
        task.state = "done"
        return task

    def fail(self, task_id: int, error: str) -> TaskProgress:
        with self._lock:
            task = self._tasks.pop(task_id)
        task.state = "failed"
        task.error = error
        return task

    @property
    def active_tasks(self) -> int:
        with self._lock:
            return len(self._tasks)

    def log_summary(self, summary: TransferSummary) -> None:
        """Log the summary of a completed batch.

        Args:
            summary: TransferSummary object
        """
        if summary.cancelled:
            logger.warning(
                f"{summary.operation} cancelled: {summary.succeeded} completed, "
                f"{summary.failed} failed, {summary.not_started} not started"
            )
            return
        logger.info(
            f"Completed {summary.operation}: {summary.succeeded}/{len(summary.results)} "
            f"operations succeeded ({summary.bytes_transferred} bytes)"
        )
        if summary.failed:
            logger.error(f"{summary.failed} {summary.operation} operations failed")
