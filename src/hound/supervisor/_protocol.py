"""Protocol definitions for the supervisor system.

This module defines the interfaces that decouple the supervision core from
output rendering and from the control surface:
- OutputSink: Protocol for consuming task output and events
- TaskController: Protocol for the operations the control API needs
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Literal, Protocol, runtime_checkable

if TYPE_CHECKING:
    from ._models import TaskEvent, TaskIdentity

StreamName = Literal["stdout", "stderr"]


@runtime_checkable
class OutputSink(Protocol):
    """Protocol for consuming task output lines and lifecycle events.

    Implementations must not assume any ordering between stdout and stderr
    or between tasks; within one stream lines arrive in the order produced.
    """

    async def write_line(
        self,
        identity: TaskIdentity,
        stream: StreamName,
        line: str,
    ) -> None:
        """Write a line of task output.

        Args:
            identity: Task name and pid of the process that produced the line.
            stream: Which output stream the line came from.
            line: The output line (without trailing newline).
        """
        ...

    async def write_event(self, event: TaskEvent) -> None:
        """Write a task lifecycle event.

        Args:
            event: The lifecycle event to record.
        """
        ...


@runtime_checkable
class TaskController(Protocol):
    """Operations exposed through the control API."""

    def get_status(self) -> dict[str, dict[str, object]]:
        """Return status dictionaries keyed by task name."""
        ...

    async def start_task(self, name: str) -> None:
        """Start the named task.

        Raises:
            TaskNotFoundError: If no task has that name.
            SpawnError: If the process cannot be spawned.
        """
        ...

    async def stop_task(self, name: str) -> None:
        """Stop the named task.

        Raises:
            TaskNotFoundError: If no task has that name.
            KillError: If the process cannot be killed.
        """
        ...

    def reload_task(self, name: str) -> None:
        """Schedule a debounced reload of the named task.

        Raises:
            TaskNotFoundError: If no task has that name.
        """
        ...

    async def shutdown(self) -> None:
        """Request shutdown of the whole run."""
        ...
