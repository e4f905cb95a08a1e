"""Path routing for supervised tasks.

A task declares gitignore-style patterns for the files it depends on. The
PathMatcher compiles them once and answers whether a changed path concerns
the task.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, final

from pathspec import PathSpec
from pathspec.patterns.gitwildmatch import GitWildMatchPattern

from hound.exceptions import PatternError

if TYPE_CHECKING:
    from collections.abc import Iterable


@final
class PathMatcher:
    """Compiled set of path patterns for one task.

    Patterns follow gitignore semantics: a pattern without a slash matches
    at any depth (``*.go`` matches ``main.go`` and ``cmd/main.go``), a
    pattern containing a slash is anchored to the watched root
    (``src/*.go``), ``**`` spans directories and ``!pattern`` re-excludes.
    An empty pattern set never matches.

    Raises:
        PatternError: If any pattern is invalid.
    """

    __slots__ = ("_patterns", "_spec")

    def __init__(self, patterns: Iterable[str]) -> None:
        self._patterns: tuple[str, ...] = tuple(patterns)

        compiled: list[GitWildMatchPattern] = []
        for pattern in self._patterns:
            try:
                compiled.append(GitWildMatchPattern(pattern))
            except ValueError as e:
                msg = f"Failed to compile path pattern '{pattern}': {e}"
                raise PatternError(msg, pattern=pattern) from e

        self._spec = PathSpec(compiled)

    @property
    def patterns(self) -> tuple[str, ...]:
        """Return the patterns as declared."""
        return self._patterns

    def match(self, path: str) -> bool:
        """Return True if the path is selected by the patterns."""
        if not self._patterns:
            return False
        return self._spec.match_file(path)

    def __repr__(self) -> str:
        return f"PathMatcher({list(self._patterns)!r})"
