"""
File selection for translate-repo-ai.

Compiles glob patterns into anchored regular expressions and filters a
repository tree listing down to the files that should be translated.

Pattern syntax:
- ``*`` matches any run of characters except ``/``
- ``?`` matches one character except ``/``
- ``[...]`` matches one character from the class
- a leading ``**/`` matches any number of directories, including none
- ``**`` anywhere else matches any run of characters, ``/`` included
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)


class GlobMatcher:
    """Compiled glob pattern."""

    def __init__(self, pattern: str, regex: re.Pattern[str] | None, error: str | None = None):
        self.pattern = pattern
        self._regex = regex
        self.error = error

    @property
    def valid(self) -> bool:
        """False when the pattern could not be compiled and matches nothing."""
        return self._regex is not None

    @property
    def regex(self) -> str | None:
        return self._regex.pattern if self._regex is not None else None

    def matches(self, path: str) -> bool:
        """Check whether a repository-relative path matches the pattern."""
        if self._regex is None:
            return False
        return self._regex.match(path) is not None

    def __repr__(self) -> str:
        return f"GlobMatcher({self.pattern!r}, valid={self.valid})"


def _translate_segment(segment: str) -> str:
    """Translate a pattern fragment that contains no ``**``."""
    out: list[str] = []
    i = 0
    n = len(segment)
    while i < n:
        c = segment[i]
        if c == "*":
            out.append("[^/]*")
        elif c == "?":
            out.append("[^/]")
        elif c == "[":
            # A "]" directly after "[" or "[!" is a literal member of the class
            start = i + 3 if segment[i + 1 : i + 2] in ("!", "^") else i + 2
            end = segment.find("]", start)
            if end == -1:
                raise re.error(f"unterminated character class at position {i}")
            body = segment[i + 1 : end].replace("\\", "\\\\")
            if body.startswith("!"):
                body = "^" + body[1:]
            out.append(f"[{body}]")
            i = end
        else:
            out.append(re.escape(c))
        i += 1
    return "".join(out)


def _translate(pattern: str) -> str:
    if pattern.startswith("**/"):
        return "(?:.*/)?" + _translate(pattern[3:])
    if "**" in pattern:
        return ".*".join(_translate_segment(part) for part in pattern.split("**"))
    return _translate_segment(pattern)


def compile_pattern(pattern: str) -> GlobMatcher:
    """
    Compile a glob pattern.

    Malformed patterns never raise. They produce a matcher that matches
    nothing and a warning is logged.

    Args:
        pattern: Glob pattern, e.g. ``**/*.md`` or ``docs/*.md``.

    Returns:
        GlobMatcher for the pattern.
    """
    if not isinstance(pattern, str) or not pattern.strip():
        logger.warning("Ignoring empty file pattern %r", pattern)
        return GlobMatcher(str(pattern), None, "empty pattern")

    try:
        regex = re.compile(f"^{_translate(pattern)}$")
    except re.error as e:
        logger.warning("Ignoring malformed file pattern %r: %s", pattern, e)
        return GlobMatcher(pattern, None, str(e))

    return GlobMatcher(pattern, regex)


@dataclass
class TreeEntry:
    """One entry of a recursive repository tree listing."""

    path: str
    type: str = "blob"
    sha: str | None = None
    size: int | None = None
    mode: str | None = None

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> TreeEntry:
        return cls(
            path=data["path"],
            type=data.get("type", "blob"),
            sha=data.get("sha"),
            size=data.get("size"),
            mode=data.get("mode"),
        )

    @property
    def is_file(self) -> bool:
        # Symlinks (120000) and submodules (160000) carry no translatable content
        return self.type == "blob" and self.mode not in ("120000", "160000")


class FileSelector:
    """
    Selects translatable files from a tree listing.

    A file is selected when it matches at least one include pattern and no
    exclude pattern.
    """

    def __init__(self, include: Iterable[str], exclude: Iterable[str] = ()):
        self.include = [compile_pattern(p) for p in include]
        self.exclude = [compile_pattern(p) for p in exclude]

    @property
    def invalid_patterns(self) -> list[GlobMatcher]:
        """Patterns that failed to compile."""
        return [m for m in (*self.include, *self.exclude) if not m.valid]

    def matches(self, path: str) -> bool:
        """Check a single path against include and exclude patterns."""
        if not any(m.matches(path) for m in self.include):
            return False
        return not any(m.matches(path) for m in self.exclude)

    def select(self, entries: Iterable[TreeEntry]) -> list[TreeEntry]:
        """Filter tree entries down to matching files, preserving order."""
        return list(self._iter_selected(entries))

    def _iter_selected(self, entries: Iterable[TreeEntry]) -> Iterator[TreeEntry]:
        for entry in entries:
            if entry.is_file and self.matches(entry.path):
                yield entry


def build_target_path(source_path: str, language: str, style: str = "directory") -> str:
    """
    Build the path a translated file is written to.

    ``directory`` style: ``docs/guide.md`` -> ``docs/fr/guide.md``
    ``suffix`` style: ``docs/guide.md`` -> ``docs/guide.fr.md``
    """
    directory, _, file_name = source_path.rpartition("/")

    if style == "suffix":
        stem, dot, ext = file_name.rpartition(".")
        if not dot or not stem:
            file_name = f"{file_name}.{language}"
        else:
            file_name = f"{stem}.{language}.{ext}"
        return f"{directory}/{file_name}" if directory else file_name

    return f"{directory}/{language}/{file_name}" if directory else f"{language}/{file_name}"
