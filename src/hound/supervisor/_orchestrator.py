"""Coordination of task supervisors and the filesystem change source.

This module provides the Orchestrator class that routes filesystem changes
to the supervisors whose path patterns match, and owns startup, shutdown
and signal handling for a run.
"""

from __future__ import annotations

import signal
from contextlib import AsyncExitStack
from typing import TYPE_CHECKING, Self, final

import anyio

from hound.exceptions import SupervisorError, TaskNotFoundError
from hound.utils import default_logger

if TYPE_CHECKING:
    from collections.abc import Sequence
    from types import TracebackType

    from structlog.typing import FilteringBoundLogger

    from ._models import ChangeEvent, TaskIdentity
    from ._protocol import OutputSink
    from ._service import ProcessSupervisor
    from ._watcher import ChangeSource


@final
class Orchestrator:
    """Routes filesystem changes to task supervisors.

    A single listener on the change source asks every supervisor whether
    the changed path concerns it and reloads the ones that say yes. The
    change source is told to report every path some task matches, even
    when its ignore rules cover that path. Reloads are only coalesced by
    each supervisor's own debouncer.

    Entering the orchestrator enters every supervisor and the change
    source; leaving it closes the watch first, then stops the tasks.
    """

    __slots__ = (
        "_change_source",
        "_exit_stack",
        "_logger",
        "_shutdown_event",
        "_supervisors",
    )

    def __init__(
        self,
        supervisors: Sequence[ProcessSupervisor],
        change_source: ChangeSource | None = None,
        *,
        output_sink: OutputSink | None = None,
        logger: FilteringBoundLogger | None = None,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            supervisors: Supervisors for the tasks of this run.
            change_source: Source of filesystem changes. Without one, tasks
                are only reloaded through ``reload_task``.
            output_sink: Sink receiving every task's output lines and events.
            logger: Logger for routing decisions.

        Raises:
            SupervisorError: If two supervisors share a task name.
        """
        self._logger = logger or default_logger()
        self._supervisors: dict[str, ProcessSupervisor] = {}
        for supervisor in supervisors:
            if supervisor.name in self._supervisors:
                msg = f"Duplicate task name '{supervisor.name}'"
                raise SupervisorError(msg)
            self._supervisors[supervisor.name] = supervisor

        self._change_source = change_source
        self._shutdown_event: anyio.Event | None = None
        self._exit_stack: AsyncExitStack | None = None

        if output_sink is not None:
            self.attach_output(output_sink)

        if change_source is not None:
            change_source.register_listener(self.handle_change)
            change_source.set_relevance(self.is_relevant)

    @property
    def supervisors(self) -> dict[str, ProcessSupervisor]:
        """Return the supervisors keyed by task name."""
        return self._supervisors

    @property
    def change_source(self) -> ChangeSource | None:
        """Return the change source, if any."""
        return self._change_source

    def attach_output(self, sink: OutputSink) -> None:
        """Send every task's output lines and lifecycle events to ``sink``."""

        async def write_stdout(identity: TaskIdentity, line: str) -> None:
            await sink.write_line(identity, "stdout", line)

        async def write_stderr(identity: TaskIdentity, line: str) -> None:
            await sink.write_line(identity, "stderr", line)

        for supervisor in self._supervisors.values():
            supervisor.register_stdout(write_stdout)
            supervisor.register_stderr(write_stderr)
            supervisor.register_event_listener(sink.write_event)

    def get_supervisor(self, name: str) -> ProcessSupervisor:
        """Get a supervisor by task name.

        Raises:
            TaskNotFoundError: If no task exists with that name.
        """
        supervisor = self._supervisors.get(name)
        if supervisor is None:
            msg = f"Task '{name}' not found"
            raise TaskNotFoundError(msg, task_name=name)
        return supervisor

    def is_relevant(self, path: str) -> bool:
        """Return True if any task's patterns match the path."""
        return any(supervisor.match(path) for supervisor in self._supervisors.values())

    async def handle_change(self, event: ChangeEvent) -> None:
        """Reload every task whose patterns match the changed path."""
        for supervisor in self._supervisors.values():
            if not supervisor.match(event.path):
                continue

            self._logger.debug(
                "task_reload_requested",
                task=supervisor.display_id,
                path=event.path,
                kind=event.kind.value,
            )
            try:
                supervisor.reload()
            except SupervisorError:
                self._logger.exception("task_reload_failed", task=supervisor.name)

    # -------------------------------------------------------------------------
    # Context management
    # -------------------------------------------------------------------------

    async def __aenter__(self) -> Self:
        async with AsyncExitStack() as stack:
            for supervisor in self._supervisors.values():
                _ = await stack.enter_async_context(supervisor)
            if self._change_source is not None:
                _ = await stack.enter_async_context(self._change_source)
            self._exit_stack = stack.pop_all()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> bool | None:
        stack = self._exit_stack
        if stack is None:
            return None
        self._exit_stack = None
        return await stack.__aexit__(exc_type, exc_val, exc_tb)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def start(self) -> None:
        """Start every task, then the change source.

        Raises:
            SpawnError: If any task fails to start.
            WatchError: If the watch cannot be opened.
        """
        for supervisor in self._supervisors.values():
            await supervisor.start()

        if self._change_source is not None:
            await self._change_source.start()

    async def start_task(self, name: str) -> None:
        """Start a specific task.

        Raises:
            TaskNotFoundError: If no task exists with that name.
            SpawnError: If the task fails to start.
        """
        await self.get_supervisor(name).start()

    async def stop_task(self, name: str) -> None:
        """Stop a specific task.

        Raises:
            TaskNotFoundError: If no task exists with that name.
            KillError: If the task's process cannot be killed.
        """
        await self.get_supervisor(name).stop()

    def reload_task(self, name: str) -> None:
        """Schedule a debounced reload of a specific task.

        Raises:
            TaskNotFoundError: If no task exists with that name.
        """
        self.get_supervisor(name).reload()

    async def run(self) -> None:
        """Start everything and block until shutdown.

        Shutdown is triggered by SIGINT, SIGTERM or ``shutdown()``.

        Raises:
            SpawnError: If any task fails to start.
            WatchError: If the watch cannot be opened.
        """
        shutdown_event = anyio.Event()
        self._shutdown_event = shutdown_event

        async def handle_signals() -> None:
            with anyio.open_signal_receiver(signal.SIGINT, signal.SIGTERM) as signals:
                async for signum in signals:
                    self._logger.info("shutdown_signal", signal=signum.name)
                    shutdown_event.set()
                    break

        try:
            async with self:
                await self.start()
                self._logger.info("orchestrator_started", tasks=list(self._supervisors))

                async with anyio.create_task_group() as tg:
                    tg.start_soon(handle_signals)
                    await shutdown_event.wait()
                    tg.cancel_scope.cancel()
        finally:
            self._shutdown_event = None

        self._logger.info("orchestrator_stopped")

    async def shutdown(self) -> None:
        """Trigger shutdown of a running ``run()``."""
        if self._shutdown_event is not None:
            self._shutdown_event.set()

    def get_status(self) -> dict[str, dict[str, object]]:
        """Get status summary for all tasks.

        Returns:
            Dictionary mapping task names to status dictionaries.
        """
        return {
            name: supervisor.get_status()
            for name, supervisor in self._supervisors.items()
        }
