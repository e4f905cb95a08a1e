"""Gitignore-style ignore rules for the filesystem watch.

This module collects ignore patterns from the built-in defaults, the watched
root's .gitignore and configured extras, and compiles them with pathspec.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from pathspec import PathSpec
from pathspec.patterns.gitwildmatch import GitWildMatchPattern

if TYPE_CHECKING:
    from collections.abc import Iterable


DEFAULT_IGNORE_PATTERNS: frozenset[str] = frozenset(
    {
        "*.pyc",
        "*.swp",
        "*~",
        "__pycache__/",
        ".git/",
        ".hg/",
        ".idea/",
        ".mypy_cache/",
        ".pytest_cache/",
        ".ruff_cache/",
        ".venv/",
        "node_modules/",
    }
)
"""Patterns ignored by the watch regardless of configuration."""


@dataclass(frozen=True, slots=True)
class IgnoreConfig:
    """Configuration for ignore pattern loading.

    Attributes:
        include_defaults: Whether to include DEFAULT_IGNORE_PATTERNS.
        gitignore: Whether to load patterns from the root .gitignore.
        extra_patterns: Additional patterns to include.
    """

    include_defaults: bool = True
    gitignore: bool = True
    extra_patterns: tuple[str, ...] = field(default_factory=tuple)


def load_gitignore_patterns(path: Path) -> list[str]:
    """Load patterns from a gitignore file.

    Comments (lines starting with #) and empty lines are filtered out.

    Args:
        path: Path to the gitignore file.

    Returns:
        List of patterns from the file. Returns empty list if file doesn't exist.
    """
    if not path.is_file():
        return []

    patterns: list[str] = []
    content = path.read_text(encoding="utf-8")

    for line in content.splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        patterns.append(stripped)

    return patterns


def collect_patterns(root: Path, config: IgnoreConfig | None = None) -> list[str]:
    """Collect ignore patterns from all configured sources.

    Args:
        root: The watched root directory.
        config: Configuration for pattern sources. Uses defaults if None.

    Returns:
        List of all collected patterns, deduplicated while preserving order.
    """
    if config is None:
        config = IgnoreConfig()

    patterns: list[str] = []
    seen: set[str] = set()

    def add_patterns(new_patterns: Iterable[str]) -> None:
        for pattern in new_patterns:
            if pattern not in seen:
                seen.add(pattern)
                patterns.append(pattern)

    if config.include_defaults:
        add_patterns(sorted(DEFAULT_IGNORE_PATTERNS))

    if config.gitignore:
        add_patterns(load_gitignore_patterns(root / ".gitignore"))

    if config.extra_patterns:
        add_patterns(config.extra_patterns)

    return patterns


def create_pathspec(root: Path, config: IgnoreConfig | None = None) -> PathSpec:
    """Create a PathSpec from collected ignore patterns.

    Args:
        root: The watched root directory.
        config: Configuration for pattern sources. Uses defaults if None.

    Returns:
        A PathSpec instance with gitignore-style pattern matching.
    """
    return PathSpec.from_lines(GitWildMatchPattern, collect_patterns(root, config))


def matches_any(spec: PathSpec, path: str | Path) -> bool:
    """Check whether a path is matched by a PathSpec.

    Args:
        spec: The compiled patterns.
        path: Relative path to check.

    Returns:
        True if any pattern matches the path.
    """
    return spec.match_file(Path(path).as_posix())
