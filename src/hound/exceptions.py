"""hound exceptions."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from pathlib import Path


class HoundError(Exception):
    """Base exception for hound errors."""


# =============================================================================
# Configuration Exceptions
# =============================================================================


class ConfigError(HoundError):
    """Base exception for configuration errors."""


class ConfigLoadError(ConfigError):
    """Raised when configuration cannot be loaded or parsed."""

    def __init__(
        self,
        message: str,
        *,
        path: Path | None = None,
        line: int | None = None,
        column: int | None = None,
    ) -> None:
        """Initialize with error message and optional location context."""
        super().__init__(message)
        self.path: Path | None = path
        self.line: int | None = line
        self.column: int | None = column


class ConfigValidationError(ConfigError):
    """Raised when configuration fails validation."""

    def __init__(
        self,
        message: str,
        *,
        key: str,
        value: Any,  # pyright: ignore[reportAny,reportExplicitAny]
        expected: str,
        source: str | None = None,
    ) -> None:
        """Initialize with error message and validation context."""
        super().__init__(message)
        self.key: str = key
        self.value: Any = value  # pyright: ignore[reportExplicitAny]
        self.expected: str = expected
        self.source: str | None = source


class PatternError(ConfigError):
    """Raised when a task path pattern cannot be compiled.

    Attributes:
        pattern: The pattern that failed to compile.
    """

    def __init__(self, message: str, *, pattern: str) -> None:
        """Initialize with error message and the offending pattern.

        Args:
            message: Human-readable error message.
            pattern: The pattern that failed to compile.
        """
        super().__init__(message)
        self.pattern: str = pattern


# =============================================================================
# Supervisor Exceptions
# =============================================================================


class SupervisorError(HoundError):
    """Base exception for supervisor errors."""


class TaskNotFoundError(SupervisorError, KeyError):
    """Raised when a task cannot be found by name.

    Attributes:
        task_name: The name of the task that was not found.
    """

    def __init__(self, message: str, *, task_name: str | None = None) -> None:
        """Initialize with error message and task context.

        Args:
            message: Human-readable error message.
            task_name: The name of the task that was not found.
        """
        super().__init__(message)
        self.task_name: str | None = task_name

    def __str__(self) -> str:
        # KeyError would quote the message
        return str(self.args[0]) if self.args else ""


class SpawnError(SupervisorError):
    """Raised when a task's process or its pipes cannot be created.

    Attributes:
        task_name: The name of the task that failed to start.
        cause: The underlying exception that caused the failure.
    """

    def __init__(
        self,
        message: str,
        *,
        task_name: str | None = None,
        cause: Exception | None = None,
    ) -> None:
        """Initialize with error message and task context.

        Args:
            message: Human-readable error message.
            task_name: The name of the task that failed to start.
            cause: The underlying exception that caused the failure.
        """
        super().__init__(message)
        self.task_name: str | None = task_name
        self.cause: Exception | None = cause


class KillError(SupervisorError):
    """Raised when the operating system refuses to terminate a task's process.

    Attributes:
        task_name: The name of the task that failed to stop.
        pid: Process ID that could not be killed.
        cause: The underlying exception that caused the failure.
    """

    def __init__(
        self,
        message: str,
        *,
        task_name: str | None = None,
        pid: int | None = None,
        cause: Exception | None = None,
    ) -> None:
        """Initialize with error message and task context.

        Args:
            message: Human-readable error message.
            task_name: The name of the task that failed to stop.
            pid: Process ID that could not be killed.
            cause: The underlying exception that caused the failure.
        """
        super().__init__(message)
        self.task_name: str | None = task_name
        self.pid: int | None = pid
        self.cause: Exception | None = cause


class WatchError(SupervisorError):
    """Raised when the filesystem watch cannot be established.

    Attributes:
        path: The root path that could not be watched.
    """

    def __init__(self, message: str, *, path: Path | None = None) -> None:
        """Initialize with error message and path context.

        Args:
            message: Human-readable error message.
            path: The root path that could not be watched.
        """
        super().__init__(message)
        self.path: Path | None = path
