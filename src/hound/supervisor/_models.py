"""Data models for the supervisor system.

This module defines the core data types for task supervision:
- TaskState: Lifecycle states for supervised tasks
- TaskEventType: Types of lifecycle events
- TaskEvent: Immutable event records
- TaskConfig: Task configuration
- TaskStatus: Mutable runtime status
- ChangeKind / ChangeEvent: Filesystem change notifications
"""

from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path  # noqa: TC003 - Used in runtime type annotations

DEFAULT_RESTART_DELAY: float = 1.0
"""Restart delay in seconds used when a task configures a non-positive one."""


class TaskState(StrEnum):
    """Task lifecycle states.

    - STOPPED: No process is running
    - STARTING: The process is being spawned
    - RUNNING: The process is running
    - BACKOFF: The process exited and a restart is pending
    - FAILED: The last spawn attempt failed
    """

    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    BACKOFF = "backoff"
    FAILED = "failed"


class TaskEventType(StrEnum):
    """Types of task lifecycle events.

    - STARTED: Task process has been spawned
    - EXITED: Task process exited with code 0
    - CRASHED: Task process exited with a non-zero code
    - RESTARTING: Task is about to be restarted after an exit
    - RELOADING: A debounced reload is stopping and starting the task
    - STOPPED: Task process was killed by request
    """

    STARTED = "started"
    EXITED = "exited"
    CRASHED = "crashed"
    RESTARTING = "restarting"
    RELOADING = "reloading"
    STOPPED = "stopped"


@dataclass(frozen=True, slots=True)
class TaskIdentity:
    """Who produced an output line: a task name and the pid at that moment.

    Attributes:
        name: Task name.
        pid: Process ID, or None when no process is running.
    """

    name: str
    pid: int | None = None

    @property
    def display_id(self) -> str:
        """Return ``name:pid``, or ``name:stopped`` without a process."""
        if self.pid is None:
            return f"{self.name}:stopped"
        return f"{self.name}:{self.pid}"


@dataclass(frozen=True, slots=True)
class TaskEvent:
    """Immutable task lifecycle event.

    Attributes:
        task_name: Name of the task that generated the event.
        event_type: Type of lifecycle event.
        timestamp: ISO 8601 formatted timestamp.
        pid: Process ID if applicable.
        exit_code: Exit code if the process terminated.
        message: Optional human-readable message.
    """

    task_name: str
    event_type: TaskEventType
    timestamp: str
    pid: int | None = None
    exit_code: int | None = None
    message: str | None = None


@dataclass(frozen=True, slots=True)
class TaskConfig:
    """Configuration for a supervised task.

    Attributes:
        name: Unique identifier for the task.
        command: Shell command to execute.
        paths: Gitignore-style patterns selecting the files that reload the task.
        restart_on_exit: Whether to restart the process when it exits on its own.
        restart_delay: Debounce window for reloads and minimum spacing of
            exit-triggered restarts, in seconds. Non-positive values mean 1 second.
        shell: Interpreter used to run the command as ``<shell> -c <command>``.
        cwd: Working directory for the process.
        env: Additional environment variables.
    """

    name: str
    command: str
    paths: tuple[str, ...] = ()
    restart_on_exit: bool = False
    restart_delay: float = DEFAULT_RESTART_DELAY
    shell: str = "bash"
    cwd: Path | None = None
    env: dict[str, str] = field(default_factory=dict)

    @property
    def effective_restart_delay(self) -> float:
        """Return the restart delay, with non-positive values replaced by 1 second."""
        if self.restart_delay <= 0:
            return DEFAULT_RESTART_DELAY
        return self.restart_delay


@dataclass(slots=True)
class TaskStatus:
    """Mutable runtime status of a task.

    Attributes:
        state: Current task state.
        pid: Process ID of the running process, if any.
        restart_count: Number of exit-triggered restarts so far.
        last_exit_code: Exit code from the last process termination.
        started_at: ISO 8601 timestamp of last start.
        stopped_at: ISO 8601 timestamp of last stop or exit.
    """

    state: TaskState = TaskState.STOPPED
    pid: int | None = None
    restart_count: int = 0
    last_exit_code: int | None = None
    started_at: str | None = None
    stopped_at: str | None = None


class ChangeKind(StrEnum):
    """Kinds of filesystem change. Informational only; routing uses the path."""

    CREATE = "create"
    WRITE = "write"
    REMOVE = "remove"


@dataclass(frozen=True, slots=True)
class ChangeEvent:
    """A single filesystem change.

    Attributes:
        path: POSIX path relative to the watched root, or absolute when the
            change happened outside it.
        kind: What happened to the path.
    """

    path: str
    kind: ChangeKind
