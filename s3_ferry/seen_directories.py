"""
Module for synthesizing directory entries out of flat object keys.
"""
from typing import List, Set


def dirname(key: str) -> str:
    """Everything before the last ``/`` of a key, or "" if there is none."""
    index = key.rfind("/")
    if index < 0:
        return ""
    return key[:index]


def up_directory(key: str) -> str:
    without_slash = key[:-1] if key.endswith("/") else key
    return dirname(without_slash)


class SeenDirectories:
    """Reports each ancestor directory of a stream of keys exactly once.

    Directories at or above ``prefix`` are never reported, so the root of a
    listing is not announced as one of its own entries.
    """

    def __init__(self, prefix: str = ""):
        self._seen: Set[str] = set()
        self.prefix_len = len(prefix) - 1 if prefix.endswith("/") else len(prefix)

    def __contains__(self, directory: str) -> bool:
        return directory in self._seen

    def add_key(self, key: str) -> List[str]:
        """Record the ancestors of a key.

        Args:
            key: Full object key

        Returns:
            Previously unseen ancestor directories, shallowest first
        """
        missing = self._missing_directories(key)
        self._seen.update(missing)
        missing.reverse()
        return missing

    def _missing_directories(self, key: str) -> List[str]:
        missing = []
        search_key = dirname(key)
        while len(search_key) > self.prefix_len:
            if search_key in self._seen:
                break
            missing.append(search_key)
            search_key = up_directory(search_key)
        return missing
