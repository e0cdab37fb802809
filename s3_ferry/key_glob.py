"""
Module for splitting key patterns into a listing prefix and a client-side glob.

Only the leading literal path components of a pattern can be sent to the
store as a listing prefix; the rest is compiled to a regular expression and
matched against the listed keys.
"""
import enum
import logging
import re
from typing import List, Optional, Tuple

from .uri import Key

logger = logging.getLogger(__name__)

SPECIAL_CHARS = set("*?[]{}\\")


class GlobMode(str, enum.Enum):
    """How to interpret wildcard syntax in remote keys."""
    OFF = "off"
    AUTO = "auto"
    ON = "on"


def has_recursive_wildcard(pattern: str) -> bool:
    """Check whether a pattern contains an unescaped ``**``.

    Args:
        pattern: Glob pattern

    Returns:
        True if any ``**`` is preceded by an even number of backslashes
    """
    start = 0
    while True:
        index = pattern.find("**", start)
        if index < 0:
            return False
        backslashes = 0
        while index - backslashes > 0 and pattern[index - backslashes - 1] == "\\":
            backslashes += 1
        if backslashes % 2 == 0:
            return True
        start = index + 1


def _is_literal(component: str) -> bool:
    return not any(c in SPECIAL_CHARS for c in component)


def _translate_class(pattern: str, index: int) -> Tuple[str, int]:
    """Translate a ``[...]`` character class starting at ``pattern[index]``."""
    end = index + 1
    if end < len(pattern) and pattern[end] in "!^":
        end += 1
    if end < len(pattern) and pattern[end] == "]":
        end += 1
    while end < len(pattern) and pattern[end] != "]":
        end += 1
    if end >= len(pattern):
        raise ValueError(f"unterminated character class in {pattern!r}")
    body = pattern[index + 1:end]
    negate = body[:1] in ("!", "^")
    if negate:
        body = body[1:]
    body = body.replace("\\", "\\\\")
    if body.startswith("]"):
        body = "\\" + body
    if negate:
        return f"[^/{body}]", end + 1
    return f"(?!/)[{body}]", end + 1


def _split_alternatives(body: str) -> List[str]:
    parts = []
    depth = 0
    current = []
    escaped = False
    for c in body:
        if escaped:
            current.append(c)
            escaped = False
        elif c == "\\":
            current.append(c)
            escaped = True
        elif c == "{":
            depth += 1
            current.append(c)
        elif c == "}":
            depth -= 1
            current.append(c)
        elif c == "," and depth == 0:
            parts.append("".join(current))
            current = []
        else:
            current.append(c)
    parts.append("".join(current))
    return parts


def _matching_brace(pattern: str, index: int) -> int:
    depth = 0
    i = index
    while i < len(pattern):
        c = pattern[i]
        if c == "\\":
            i += 2
            continue
        if c == "{":
            depth += 1
        elif c == "}":
            depth -= 1
            if depth == 0:
                return i
        i += 1
    raise ValueError(f"unterminated alternative in {pattern!r}")


def translate(pattern: str) -> str:
    """Translate a glob pattern into a regular expression body.

    ``*`` and ``?`` never cross a ``/``; ``**`` does, and ``**/`` also
    matches zero directories. ``{a,b}`` alternatives and ``[...]`` classes
    are supported, ``\\`` escapes the following character.

    Raises:
        ValueError: If the pattern is malformed
    """
    out = []
    i = 0
    n = len(pattern)
    while i < n:
        c = pattern[i]
        if c == "\\":
            if i + 1 >= n:
                raise ValueError(f"dangling escape in {pattern!r}")
            out.append(re.escape(pattern[i + 1]))
            i += 2
        elif c == "*":
            if pattern.startswith("**", i):
                at_component_start = i == 0 or pattern[i - 1] == "/"
                if at_component_start and pattern.startswith("**/", i):
                    out.append("(?:.*/)?")
                    i += 3
                else:
                    out.append(".*")
                    i += 2
            else:
                out.append("[^/]*")
                i += 1
        elif c == "?":
            out.append("[^/]")
            i += 1
        elif c == "[":
            translated, i = _translate_class(pattern, i)
            out.append(translated)
        elif c == "{":
            end = _matching_brace(pattern, i)
            alternatives = _split_alternatives(pattern[i + 1:end])
            out.append("(?:" + "|".join(translate(a) for a in alternatives) + ")")
            i = end + 1
        elif c in "]}":
            raise ValueError(f"unbalanced {c!r} in {pattern!r}")
        else:
            out.append(re.escape(c))
            i += 1
    return "".join(out)


class Glob:
    """A key pattern split into a literal listing prefix and a compiled remainder."""

    def __init__(self, prefix: Key, pattern: str, recursive: bool):
        self.prefix = prefix
        self.pattern = pattern
        self.has_recursive_wildcard = recursive
        self._regex = re.compile(translate(pattern), re.DOTALL)

    def __repr__(self) -> str:
        return f"Glob(prefix={self.prefix.value!r}, pattern={self.pattern!r})"

    @classmethod
    def from_key(cls, key: Key, mode: GlobMode = GlobMode.AUTO) -> Optional["Glob"]:
        """Extract a glob from a key.

        Args:
            key: Requested key, possibly containing wildcard syntax
            mode: ``off`` never extracts, ``auto`` only extracts when the key
                contains wildcard syntax, ``on`` always extracts

        Returns:
            The Glob, or None if the key is to be treated as a literal address
        """
        mode = GlobMode(mode)
        if mode is GlobMode.OFF or not key.value:
            return None

        text = key.without_trailing_slash().value
        components = text.split("/")
        literal_count = 0
        for component in components:
            if not _is_literal(component):
                break
            literal_count += 1

        if literal_count == len(components):
            if mode is GlobMode.AUTO:
                return None
            # Degenerate pattern: the last component matched literally
            literal_count = len(components) - 1

        prefix = "/".join(components[:literal_count])
        pattern = "/".join(components[literal_count:])
        if prefix:
            prefix += "/"
        try:
            return cls(Key(prefix), pattern, has_recursive_wildcard(pattern))
        except (ValueError, re.error) as e:
            logger.debug(f"treating {key.value!r} as a literal key: {e}")
            return None

    def matches(self, candidate: str) -> bool:
        """Check a listed key against the pattern.

        Args:
            candidate: Full key as returned by a listing under ``prefix``

        Returns:
            True if the key, relative to the prefix, matches the pattern
        """
        if not candidate.startswith(self.prefix.value):
            return False
        relative = candidate[len(self.prefix.value):]
        if relative.startswith("/"):
            relative = relative[1:]
        if relative.endswith("/"):
            relative = relative[:-1]
        return self._regex.fullmatch(relative) is not None
