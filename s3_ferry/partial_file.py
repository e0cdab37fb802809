"""
Module for writing local files that only appear once they are complete.
"""
import logging
import os
from pathlib import Path
from typing import Optional, Union

from .errors import LocalIOError

logger = logging.getLogger(__name__)

PARTIAL_SUFFIX = ".s3-ferry.partial"


def partial_path_for(final_path: Union[str, Path]) -> Path:
    final_path = Path(final_path)
    return final_path.with_name(final_path.name + PARTIAL_SUFFIX)


class PartialFile:
    """A download staged in a sibling temporary file.

    Data is written to ``<final path>.s3-ferry.partial``. ``finished()``
    renames it over the final path, ``cancelled()`` removes it. If neither is
    called, leaving the ``with`` block (or garbage collection) cancels.
    """

    def __init__(self, final_path: Union[str, Path], buffer_size: int = 1024 * 1024):
        """Open the temporary file for writing.

        Args:
            final_path: Where the file should appear once complete
            buffer_size: Size of the write buffer in bytes

        Raises:
            LocalIOError: If the temporary file cannot be created
        """
        self.final_path = Path(final_path)
        self.temp_path = partial_path_for(self.final_path)
        self._writer = None
        try:
            self._writer = open(self.temp_path, "wb", buffering=buffer_size)
        except OSError as e:
            raise LocalIOError("creating file", self.temp_path, e) from e
        self.bytes_written = 0

    def __enter__(self) -> "PartialFile":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if self._writer is None:
            return
        if exc_type is None:
            self.cancelled()
            return
        try:
            self.cancelled()
        except LocalIOError as e:
            logger.error(f"failed to remove partial file {self.temp_path}: {e}")

    def __del__(self):
        if getattr(self, "_writer", None) is None:
            return
        try:
            self._cancel()
        except LocalIOError as e:
            logger.error(f"failed to drop partial file {self.temp_path}: {e}")

    @property
    def is_open(self) -> bool:
        return self._writer is not None

    @property
    def writer(self):
        if self._writer is None:
            raise RuntimeError(f"partial file {self.temp_path} already closed")
        return self._writer

    def write(self, data: bytes) -> int:
        try:
            written = self.writer.write(data)
        except OSError as e:
            raise LocalIOError("writing", self.temp_path, e) from e
        self.bytes_written += written
        return written

    def finished(self) -> Path:
        """Flush and atomically move the temporary file to its final path.

        Returns:
            The final path

        Raises:
            LocalIOError: If flushing or renaming fails; the temporary file
                is removed in that case
        """
        writer = self.writer
        try:
            writer.flush()
            writer.close()
            self._writer = None
            os.replace(self.temp_path, self.final_path)
        except OSError as e:
            self._discard_after_failure()
            raise LocalIOError("finishing", self.final_path, e) from e
        return self.final_path

    def cancelled(self) -> None:
        """Flush and remove the temporary file.

        Raises:
            LocalIOError: If the temporary file cannot be removed
        """
        if self._writer is None:
            raise RuntimeError(f"partial file {self.temp_path} already closed")
        self._cancel()

    def _cancel(self) -> None:
        writer, self._writer = self._writer, None
        error: Optional[OSError] = None
        try:
            writer.flush()
        except OSError as e:
            error = e
        try:
            writer.close()
        except OSError as e:
            error = error or e
        try:
            os.remove(self.temp_path)
        except OSError as e:
            raise LocalIOError("removing", self.temp_path, e) from e
        if error is not None:
            raise LocalIOError("flushing", self.temp_path, error) from error

    def _discard_after_failure(self) -> None:
        if self._writer is not None:
            writer, self._writer = self._writer, None
            try:
                writer.close()
            except OSError as e:
                logger.debug(f"closing {self.temp_path} after failure: {e}")
        try:
            os.remove(self.temp_path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.error(f"failed to remove partial file {self.temp_path}: {e}")
