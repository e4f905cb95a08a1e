"""Console output sink for task output and lifecycle events.

This module provides the ConsoleOutputSink, an OutputSink implementation
that renders lines as ``3:04PM web:1234 > line`` with a per-task color.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Final, final

import pendulum
from rich.console import Console
from rich.style import Style
from rich.text import Text

from ._models import TaskEventType

if TYPE_CHECKING:
    from ._models import TaskEvent, TaskIdentity
    from ._protocol import StreamName

TASK_COLORS: Final[tuple[str, ...]] = (
    "red",
    "green",
    "yellow",
    "blue",
    "magenta",
    "cyan",
)
"""Palette task ids are drawn from."""


def task_color(name: str) -> str:
    """Pick a palette color for a task name, stable across runs."""
    total = sum(ord(char) + ord("r") for char in name)
    return TASK_COLORS[total % len(TASK_COLORS)]


def _kitchen_time() -> str:
    return pendulum.now().format("h:mmA")


@final
class ConsoleOutputSink:
    """Output sink that writes prefixed task output to the terminal.

    - stdout lines: go to the console, task id in the task's color
    - stderr lines: go to the error console, task id in red
    - events: bracketed task name, styled event label and details
    """

    __slots__ = ("_console", "_error_console", "_event_styles")

    def __init__(
        self,
        console: Console | None = None,
        error_console: Console | None = None,
        *,
        no_color: bool = False,
    ) -> None:
        """Initialize the output sink.

        Args:
            console: Console for stdout lines and events.
            error_console: Console for stderr lines.
            no_color: Disable styling on consoles created here.
        """
        self._console = console or Console(no_color=no_color, highlight=False)
        self._error_console = error_console or Console(
            stderr=True, no_color=no_color, highlight=False
        )
        self._event_styles: dict[TaskEventType, Style] = {
            TaskEventType.STARTED: Style(color="green", bold=True),
            TaskEventType.EXITED: Style(color="yellow"),
            TaskEventType.CRASHED: Style(color="red", bold=True),
            TaskEventType.RESTARTING: Style(color="cyan"),
            TaskEventType.RELOADING: Style(color="cyan", bold=True),
            TaskEventType.STOPPED: Style(color="yellow"),
        }

    def format_line(
        self,
        identity: TaskIdentity,
        stream: StreamName,
        line: str,
    ) -> Text:
        """Build the rendered text for one output line."""
        id_color = "red" if stream == "stderr" else task_color(identity.name)

        text = Text()
        _ = text.append(_kitchen_time(), style=Style(dim=True))
        _ = text.append(" ")
        _ = text.append(identity.display_id, style=Style(color=id_color, bold=True))
        _ = text.append(" > ")
        _ = text.append(line)
        return text

    def format_event(self, event: TaskEvent) -> Text:
        """Build the rendered text for one lifecycle event."""
        style = self._event_styles.get(event.event_type, Style())

        text = Text()
        _ = text.append(_kitchen_time(), style=Style(dim=True))
        _ = text.append(" ")
        _ = text.append(
            f"[{event.task_name}]",
            style=Style(color=task_color(event.task_name), bold=True),
        )
        _ = text.append(" ")
        _ = text.append(event.event_type.value.upper(), style=style)

        if event.pid is not None:
            _ = text.append(f" (pid={event.pid})", style=Style(dim=True))

        if event.exit_code is not None:
            _ = text.append(f" exit_code={event.exit_code}", style=Style(dim=True))

        if event.message:
            _ = text.append(f" - {event.message}", style=style)

        return text

    async def write_line(
        self,
        identity: TaskIdentity,
        stream: StreamName,
        line: str,
    ) -> None:
        """Write a line of task output with its prefix.

        Args:
            identity: Task name and pid of the process that produced the line.
            stream: Which output stream the line came from.
            line: The output line (without trailing newline).
        """
        console = self._error_console if stream == "stderr" else self._console
        console.print(self.format_line(identity, stream, line), soft_wrap=True)

    async def write_event(self, event: TaskEvent) -> None:
        """Write a task lifecycle event.

        Args:
            event: The lifecycle event to record.
        """
        self._console.print(self.format_event(event), soft_wrap=True)
