"""Shared CLI utilities for commands.

This module provides standardized exit codes and console helpers used by the
command implementations.
"""

from __future__ import annotations

from enum import IntEnum
from typing import TYPE_CHECKING, Never

from rich.console import Console

if TYPE_CHECKING:
    from hound.exceptions import ConfigError

__all__ = [
    "ExitCode",
    "describe_config_error",
    "exit_with_error",
    "get_error_console",
]


class ExitCode(IntEnum):
    """Standard exit codes for hound CLI commands."""

    SUCCESS = 0
    CONFIG_ERROR = 1
    STARTUP_ERROR = 2


def get_error_console(*, no_color: bool = False) -> Console:
    """Get a Rich console configured for error output to stderr."""
    return Console(stderr=True, no_color=no_color)


def describe_config_error(error: ConfigError) -> str:
    """Render a configuration error with its location, when known."""
    from hound.exceptions import ConfigLoadError

    message = str(error)
    if isinstance(error, ConfigLoadError) and error.line is not None:
        location = f"line {error.line}"
        if error.column is not None:
            location = f"{location}, column {error.column}"
        message = f"{message} ({location})"
    return message


def exit_with_error(
    message: str,
    code: ExitCode,
    *,
    console: Console | None = None,
) -> Never:
    """Print an error message and exit with the specified code.

    Args:
        message: The error message to display.
        code: The exit code to use.
        console: Optional Rich console for output. If not provided,
            a new stderr console will be created.

    Raises:
        SystemExit: Always raised with the specified exit code.
    """
    if console is None:
        console = get_error_console()

    console.print(f"[red]Error:[/red] {message}", highlight=False, markup=True)
    raise SystemExit(code)
