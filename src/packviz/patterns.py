# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""File and type name pattern matching.

Two independent contracts:
- File inclusion: glob include patterns under a root, filtered by exclude
  wildcards (a file is selected when some include finds it and no exclude
  matches it)
- Name matching: ordered matchers evaluated against a fully-qualified type
  name, first match wins
"""

import fnmatch
import logging
import re
from pathlib import Path
from typing import Iterable, List, Optional, Protocol, Sequence, TypeVar

logger = logging.getLogger(__name__)


class NameMatcher(Protocol):
    """Anything that can decide whether it matches a type name."""

    def matches(self, name: str) -> bool: ...


M = TypeVar("M", bound=NameMatcher)


class Wildcard:
    """Shell-style wildcard ("*", "?", "[seq]") compiled to a regular expression."""

    def __init__(self, pattern: str) -> None:
        self.pattern = pattern
        self._regex = re.compile(fnmatch.translate(pattern))

    def matches(self, value: str) -> bool:
        return self._regex.match(value) is not None

    def __repr__(self) -> str:
        return f"Wildcard({self.pattern!r})"


def glob_files(root: Path, pattern: str) -> List[Path]:
    """Return files under root matching a glob pattern, sorted.

    Args:
        root: Directory to search.
        pattern: pathlib glob pattern relative to root ("**" recurses).

    Returns:
        Sorted list of matching files (directories are ignored).
    """
    try:
        return sorted(path for path in root.glob(pattern) if path.is_file())
    except (ValueError, NotImplementedError) as e:
        # Empty, absolute or otherwise unsupported glob patterns
        logger.warning(f"⚠️ Ignoring invalid include pattern '{pattern}': {e}")
        return []


def is_excluded(path: Path, root: Path, excludes: Iterable[str]) -> bool:
    """Check a file against exclude wildcards.

    Each pattern is tried against the root-relative POSIX path and against
    the bare file name.
    """
    try:
        rel_path_str = path.relative_to(root).as_posix()
    except ValueError:
        rel_path_str = path.as_posix()

    for pattern in excludes:
        if fnmatch.fnmatch(rel_path_str, pattern) or fnmatch.fnmatch(path.name, pattern):
            return True
    return False


def select_files(root: Path, includes: Sequence[str], excludes: Sequence[str]) -> List[Path]:
    """Resolve include/exclude patterns to the list of selected files.

    Files keep include order (sorted within each pattern) and appear once even
    when several include patterns find them.
    """
    selected: List[Path] = []
    seen = set()
    for pattern in includes:
        for path in glob_files(root, pattern):
            resolved = path.resolve()
            if resolved in seen:
                continue
            seen.add(resolved)
            if is_excluded(path, root, excludes):
                logger.debug(f"Excluded {path}")
                continue
            selected.append(path)
    return selected


def first_match(name: str, matchers: Iterable[M]) -> Optional[M]:
    """Return the first matcher (in declared order) that matches name."""
    for matcher in matchers:
        if matcher.matches(name):
            return matcher
    return None
