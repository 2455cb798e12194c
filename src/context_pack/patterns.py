"""Glob matching for include/exclude filters and token-limit rules.

Two flavours are supported:

- *name* patterns apply to a single path segment: ``*`` matches any run of
  characters and ``?`` exactly one.
- *path* patterns apply to ``/``-separated relative paths: ``**/`` matches
  zero or more whole segments, a trailing ``**`` matches anything below,
  and ``*`` / ``?`` never cross a ``/``.

Every glob is compiled once into an anchored regular expression. Matching is
case-sensitive.
"""

from __future__ import annotations

import re
from functools import lru_cache
from typing import TYPE_CHECKING

from context_pack.config import DEFAULT_INCLUDE_PATTERNS, EXCLUDED_DIRECTORIES, IGNORED_EXTENSIONS

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence
    from pathlib import Path

    from context_pack.settings import Settings

WILDCARDS = frozenset("*?")


def has_wildcard(pattern: str) -> bool:
    """Whether `pattern` contains a glob wildcard."""
    return any(ch in WILDCARDS for ch in pattern)


def is_path_pattern(pattern: str) -> bool:
    """Whether `pattern` is path-shaped, i.e. spans more than one segment."""
    return "/" in pattern


@lru_cache(maxsize=1024)
def compile_name_pattern(pattern: str) -> re.Pattern[str]:
    """Compile a single-segment glob to an anchored regex.

    Args:
        pattern: glob where `*` matches any run of characters and `?` one character

    Returns:
        re.Pattern[str]: the compiled expression, to be used with `fullmatch`
    """
    parts: list[str] = []
    for ch in pattern:
        if ch == "*":
            parts.append(".*")
        elif ch == "?":
            parts.append(".")
        else:
            parts.append(re.escape(ch))
    return re.compile("".join(parts), re.DOTALL)


@lru_cache(maxsize=1024)
def compile_path_pattern(pattern: str) -> re.Pattern[str]:
    """Compile a multi-segment glob to an anchored regex.

    Args:
        pattern: glob over `/`-separated paths, supporting `**`, `*` and `?`

    Returns:
        re.Pattern[str]: the compiled expression, to be used with `fullmatch`
    """
    parts: list[str] = []
    i = 0
    n = len(pattern)
    while i < n:
        ch = pattern[i]
        if pattern.startswith("**", i):
            i += 2
            if i < n and pattern[i] == "/":
                parts.append("(?:.*/)?")
                i += 1
            else:
                parts.append(".*")
            continue
        if ch == "*":
            parts.append("[^/]*")
        elif ch == "?":
            parts.append("[^/]")
        else:
            parts.append(re.escape(ch))
        i += 1
    return re.compile("".join(parts), re.DOTALL)


def matches_name(name: str, pattern: str) -> bool:
    """Check a single path segment against a name glob.

    Args:
        name: file or directory name (no separators)
        pattern: name glob, e.g. `*.min.*` or `Makefile`

    Returns:
        bool: True when the whole name matches
    """
    if not name:
        return False
    if not has_wildcard(pattern):
        return name == pattern
    return compile_name_pattern(pattern).fullmatch(name) is not None


def matches_path(path: str, pattern: str) -> bool:
    """Check a relative POSIX path against a path glob.

    Args:
        path: `/`-separated relative path
        pattern: path glob, e.g. `instance/*/content/**` or `**/*.generated.*`

    Returns:
        bool: True when the whole path matches
    """
    if not path:
        return False
    if not has_wildcard(pattern):
        return path == pattern
    return compile_path_pattern(pattern).fullmatch(path) is not None


def matches_any(name: str, rel: str, patterns: Iterable[str]) -> bool:
    """Match path-shaped patterns against `rel` and the others against `name`."""
    for pattern in patterns:
        if is_path_pattern(pattern):
            if matches_path(rel, pattern):
                return True
        elif matches_name(name, pattern):
            return True
    return False


class PatternMatcher:
    """Include/exclude decisions for discovered files.

    Relative paths given to this class are POSIX strings relative to the scan
    root (or the repository root in git mode).
    """

    def __init__(
        self,
        *,
        include_patterns: Sequence[str] = (),
        exclude_patterns: Sequence[str] = (),
        exclude_directories: Iterable[str] = (),
        type_filters: Sequence[str] = (),
        ignored_extensions: Iterable[str] = (),
    ) -> None:
        self.include_patterns = tuple(include_patterns) or DEFAULT_INCLUDE_PATTERNS
        self.exclude_patterns = tuple(exclude_patterns)
        self.type_filters = tuple(type_filters)
        self.ignored_extensions = IGNORED_EXTENSIONS | {e.strip().lstrip(".") for e in ignored_extensions if e.strip()}
        excluded = set(EXCLUDED_DIRECTORIES) | {d.strip().strip("/") for d in exclude_directories if d.strip()}
        self._excluded_names = frozenset(d for d in excluded if "/" not in d)
        self._excluded_prefixes = tuple(sorted(d for d in excluded if "/" in d))

    @classmethod
    def from_settings(cls, settings: Settings) -> PatternMatcher:
        """Build the matcher configured by `settings`."""
        return cls(
            include_patterns=settings.include_patterns,
            exclude_patterns=settings.exclude_patterns,
            exclude_directories=settings.exclude_directories,
            type_filters=settings.type_filters,
            ignored_extensions=settings.exclude_extensions,
        )

    def is_in_excluded_directory(self, rel: str) -> bool:
        """Whether any directory component of `rel` is excluded.

        Args:
            rel: relative path of a file

        Returns:
            bool: True if the file lives below an excluded directory
        """
        parts = rel.split("/")
        if any(p in self._excluded_names for p in parts[:-1]):
            return True
        return any(rel.startswith(prefix + "/") for prefix in self._excluded_prefixes)

    def is_excluded_directory(self, rel_dir: str) -> bool:
        """Whether the walker should prune the directory at `rel_dir`.

        Hidden directories, statically or explicitly excluded directories and
        directories matched by an exclude pattern are pruned.

        Args:
            rel_dir: relative path of a directory (no trailing slash)

        Returns:
            bool: True if the directory must not be descended into
        """
        name = rel_dir.rsplit("/", 1)[-1]
        if name.startswith(".") or name in self._excluded_names:
            return True
        if any(rel_dir == prefix or rel_dir.startswith(prefix + "/") for prefix in self._excluded_prefixes):
            return True
        return self.matches_exclude_pattern(rel_dir + "/")

    def matches_exclude_pattern(self, rel: str) -> bool:
        """Whether `rel` is matched by one of the configured exclude globs.

        Args:
            rel: relative path; directories carry a trailing `/`

        Returns:
            bool: True if an exclude pattern matches
        """
        if not self.exclude_patterns:
            return False
        name = rel.rstrip("/").rsplit("/", 1)[-1]
        return matches_any(name, rel, self.exclude_patterns)

    def is_excluded(self, path: Path, rel: str) -> bool:
        """Apply every filter except the include table.

        Files named through an explicit glob input only go through this check.

        Args:
            path: absolute path of the file
            rel: path of the file relative to the scan root

        Returns:
            bool: True if an extension, directory, exclude or type filter rejects the file
        """
        if path.suffix[1:] in self.ignored_extensions:
            return True
        if self.is_in_excluded_directory(rel):
            return True
        if self.matches_exclude_pattern(rel):
            return True
        return bool(self.type_filters) and not any(matches_name(path.name, t) for t in self.type_filters)

    def should_include(self, path: Path, rel: str) -> bool:
        """Decide whether a discovered file is kept.

        Args:
            path: absolute path of the file
            rel: path of the file relative to the scan root

        Returns:
            bool: True if the file passes every filter
        """
        if self.is_excluded(path, rel):
            return False
        return matches_any(path.name, rel, self.include_patterns)
