"""
Module for the local filesystem side of transfers.
"""
import logging
import os
from pathlib import Path
from typing import List, Optional, Tuple, Union

from .errors import ArgumentError, LocalFilenameNotUnicode, LocalIOError, NoFilenameError
from .models import Target

logger = logging.getLogger(__name__)


class FileScanner:
    """Probes, enumerates and creates local paths."""

    def stat(self, path: Path) -> os.stat_result:
        """Stat a local path, following symlinks.

        Raises:
            LocalIOError: If the path cannot be accessed
        """
        try:
            return path.stat()
        except OSError as e:
            raise LocalIOError("accessing local path", path, e) from e

    def scan_directory(self, folder: Path) -> Tuple[List[Path], Optional[LocalIOError]]:
        """Enumerate the entries of a directory.

        Enumeration stops at the first unreadable entry; the entries read
        before it are still returned.

        Args:
            folder: Directory to enumerate

        Returns:
            The child paths, sorted by name, and the error that stopped the
            enumeration if there was one
        """
        children: List[Path] = []
        error = None
        try:
            with os.scandir(folder) as entries:
                while True:
                    try:
                        entry = next(entries)
                    except StopIteration:
                        break
                    except OSError as e:
                        error = LocalIOError("reading directory", folder, e)
                        break
                    children.append(Path(entry.path))
        except OSError as e:
            error = LocalIOError("listing directory", folder, e)
        children.sort(key=lambda p: p.name)
        if error:
            logger.debug(f"enumeration of {folder} stopped after {len(children)} entries: {error}")
        return children, error

    def ensure_directory(self, folder: Path) -> None:
        """Create a directory; an existing directory is not an error.

        Raises:
            LocalIOError: If the directory cannot be created
        """
        try:
            folder.mkdir()
        except FileExistsError:
            if not folder.is_dir():
                raise LocalIOError("creating directory", folder,
                                   FileExistsError(f"{folder} exists and is not a directory"))
        except OSError as e:
            raise LocalIOError("creating directory", folder, e) from e

    def resolve_target(self, to: Union[str, Path], source_count: int,
                       recursive: bool) -> Target:
        """Decide once whether a download destination is a file or a directory.

        Args:
            to: Local destination given on the command line
            source_count: Number of remote sources mapped onto it
            recursive: Whether directories are being downloaded

        Returns:
            The Target; a missing directory target is created

        Raises:
            ArgumentError: If several sources would map onto one file
            LocalIOError: If the directory cannot be created
        """
        explicit_directory = str(to).endswith(("/", os.sep))
        path = Path(to)
        if path.is_dir():
            return Target.directory(path)
        if path.exists():
            if source_count > 1:
                raise ArgumentError(f"{source_count} sources given but destination {str(path)!r} is an existing file")
            return Target.file(path)
        if source_count > 1 or recursive or explicit_directory:
            try:
                path.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise LocalIOError("creating directory", path, e) from e
            logger.debug(f"created download directory {path}")
            return Target.directory(path)
        return Target.file(path)


def local_filename(path: Path) -> str:
    """The final component of a local path, as it should appear in a key.

    Raises:
        NoFilenameError: If the path has no final component
        LocalFilenameNotUnicode: If the name cannot be represented in a key
    """
    name = path.name
    if not name:
        raise NoFilenameError(str(path))
    try:
        name.encode("utf-8")
    except UnicodeEncodeError:
        raise LocalFilenameNotUnicode(path) from None
    return name
