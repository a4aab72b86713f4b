"""Ignore policy applied to every mirror traversal."""

from __future__ import annotations

from collections.abc import Iterable
from pathlib import Path

from worktrail.config.defaults import DEFAULT_IGNORE_PATTERNS


class IgnorePolicy:
    """Fixed predicate over path segments.

    A directory is ignored when its name equals a rule, and callers prune its
    whole subtree. A file is ignored when any rule is a substring of its
    basename, so ``"out"`` hides ``layout.css`` but not a ``routes/`` folder.
    """

    def __init__(self, patterns: Iterable[str] | None = None):
        if patterns is None:
            patterns = DEFAULT_IGNORE_PATTERNS
        self._patterns: tuple[str, ...] = tuple(p for p in patterns if p)

    @property
    def patterns(self) -> tuple[str, ...]:
        return self._patterns

    def is_ignored(self, name: str) -> bool:
        """File rule: substring containment in the basename."""
        return any(pattern in name for pattern in self._patterns)

    def is_ignored_dir(self, name: str) -> bool:
        """Directory rule: exact name match."""
        return name in self._patterns

    def matches(self, entry: Path) -> bool:
        """Apply the directory or file rule depending on what ``entry`` is.

        Symlinked directories are judged by the directory rule as well.
        """
        if entry.is_dir():
            return self.is_ignored_dir(entry.name)
        return self.is_ignored(entry.name)

    def __repr__(self) -> str:
        return f"IgnorePolicy({list(self._patterns)!r})"
