"""
Module for turning flat, paginated object listings into a directory view.
"""
import logging
from dataclasses import dataclass, field
from typing import Iterator, List, Optional

from .key_glob import Glob
from .models import ListEntry, ListOptions, ListPage, ObjectInfo
from .seen_directories import SeenDirectories
from .uri import Key, Uri

logger = logging.getLogger(__name__)

DELIMITER = "/"


@dataclass
class TreePage:
    """One page of a recursive listing, split into directories and files.

    ``directories`` are in creation order: every directory comes after its
    parent, and before any file inside it.
    """
    directories: List[str] = field(default_factory=list)
    files: List[ObjectInfo] = field(default_factory=list)
    next_token: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return not self.directories and not self.files


def fetch_tree_page(backend, bucket: str, prefix: str, seen: SeenDirectories,
                    continuation_token: Optional[str] = None) -> TreePage:
    """Fetch one page of every key under ``prefix``, at any depth.

    Args:
        backend: Storage backend
        bucket: Bucket name
        prefix: Explicit directory key to list beneath
        seen: Directories already reported by earlier pages of this listing
        continuation_token: Token from the previous page

    Returns:
        The page's not-yet-seen directories and its files
    """
    page = backend.list(bucket, prefix, None, continuation_token)
    tree = TreePage(next_token=page.next_token)
    for item in page.objects:
        tree.directories.extend(seen.add_key(item.key))
        # Zero-byte "folder" placeholder objects
        if item.key.endswith("/"):
            continue
        tree.files.append(item)
    return tree


def iter_tree(backend, uri: Uri) -> Iterator[TreePage]:
    prefix = uri.key.to_explicit_directory().value
    seen = SeenDirectories(prefix)
    token = None
    while True:
        page = fetch_tree_page(backend, uri.bucket, prefix, seen, token)
        yield page
        token = page.next_token
        if not token:
            return


@dataclass
class ListRequest:
    """Listing parameters derived from a requested Uri."""
    bucket: str
    key: Key
    prefix: str
    delimiter: Optional[str]
    glob: Optional[Glob] = None

    @property
    def display_prefix(self) -> str:
        if self.glob:
            return self.glob.prefix.value
        return self.key.basename()


class Lister:
    """Lists remote keys the way a user expects to see a directory tree.

    Matching precedence for a candidate key, first rule that applies wins:
    substring mode accepts everything; a glob decides on its own; otherwise
    the key is accepted if it equals the request, lies under a requested
    explicit directory, lies under the request when recursing, or equals
    the request once a trailing slash is removed.
    """

    def __init__(self, backend, options: Optional[ListOptions] = None):
        self.backend = backend
        self.options = options or ListOptions()

    def plan(self, uri: Uri) -> ListRequest:
        """Work out the prefix and delimiter for the first listing request."""
        options = self.options
        glob = None if options.substring else Glob.from_key(uri.key, options.glob)
        if glob:
            # Patterns spanning several segments are matched against full relative paths
            flat = options.recursive or glob.has_recursive_wildcard or "/" in glob.pattern
            return ListRequest(uri.bucket, uri.key, glob.prefix.value,
                               None if flat else DELIMITER, glob)
        if options.directory:
            key = uri.key.without_trailing_slash()
            return ListRequest(uri.bucket, key, key.value, DELIMITER)
        return ListRequest(uri.bucket, uri.key, uri.key.value,
                           None if options.recursive else DELIMITER)

    def matches(self, request: ListRequest, candidate: str) -> bool:
        if self.options.substring:
            return True
        if request.glob:
            return request.glob.matches(candidate)
        requested = request.key.value
        if candidate == requested:
            return True
        if request.key.is_explicitly_directory() and candidate.startswith(request.key.basename()):
            return True
        if self.options.recursive and candidate.startswith(requested + "/"):
            return True
        return candidate.endswith("/") and candidate[:-1] == requested

    def entries(self, uri: Uri) -> Iterator[ListEntry]:
        """Yield the entries of a listing, fetching pages as needed.

        Args:
            uri: Requested address; may name an object, an explicit or
                implicit directory, a substring or a glob

        Returns:
            Iterator over entries with ``name`` set for display
        """
        request = self.plan(uri)
        page = self.backend.list(request.bucket, request.prefix, request.delimiter)

        if self._is_implicit_directory(request, page):
            logger.debug(f"{uri} is a directory, listing its contents")
            key = request.key.to_explicit_directory()
            request = ListRequest(request.bucket, key, key.value, request.delimiter)
            page = self.backend.list(request.bucket, request.prefix, request.delimiter)

        seen = SeenDirectories(request.prefix) if request.delimiter is None else None
        while True:
            yield from self._page_entries(request, page, seen)
            if not page.next_token:
                return
            page = self.backend.list(request.bucket, request.prefix, request.delimiter,
                                     page.next_token)

    def _is_implicit_directory(self, request: ListRequest, page: ListPage) -> bool:
        if request.glob or self.options.directory or self.options.substring:
            return False
        if page.objects or len(page.common_prefixes) != 1:
            return False
        return page.common_prefixes[0] == request.key.value + "/"

    def _page_entries(self, request: ListRequest, page: ListPage,
                      seen: Optional[SeenDirectories]) -> Iterator[ListEntry]:
        options = self.options
        for prefix in page.common_prefixes:
            if options.only_files or not self.matches(request, prefix):
                continue
            yield self._named(request, ListEntry.directory(prefix))

        for item in page.objects:
            if not self.matches(request, item.key):
                continue
            if seen is not None:
                for directory in seen.add_key(item.key):
                    if not options.only_files:
                        yield self._named(request, ListEntry.directory(directory + DELIMITER))
            if item.key.endswith("/"):
                if seen is None and item.key != request.prefix and not options.only_files:
                    yield self._named(request, ListEntry.directory(item.key))
                continue
            if not options.only_directories:
                yield self._named(request, ListEntry.from_object(item))

    def _named(self, request: ListRequest, entry: ListEntry) -> ListEntry:
        if self.options.full_path:
            entry.name = f"s3://{request.bucket}/{entry.key}"
        else:
            display_prefix = request.display_prefix
            if entry.key.startswith(display_prefix) and entry.key != display_prefix:
                entry.name = entry.key[len(display_prefix):]
            else:
                entry.name = entry.key
        return entry


def format_entry(entry: ListEntry, long: bool = False) -> str:
    """Render one listing line."""
    if not long:
        return entry.name
    if entry.is_directory:
        return f"{'DIR':>12} {'':19} {'':<12} {entry.name}"
    modified = entry.last_modified.strftime("%Y-%m-%d %H:%M:%S") if entry.last_modified else "-"
    storage_class = entry.storage_class or "STANDARD"
    return f"{entry.size:>12} {modified:19} {storage_class:<12} {entry.name}"
