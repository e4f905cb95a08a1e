"""Process supervision for a single task.

This module provides the ProcessSupervisor class that spawns a task's shell
command, streams its output to listeners, watches for its exit, restarts it
when configured to, and performs debounced reloads.
"""

from __future__ import annotations

import os
import signal
import subprocess
import sys
from contextlib import AsyncExitStack
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Self, final

import anyio
import anyio.abc
from anyio.streams.text import TextReceiveStream

from hound.exceptions import KillError, SpawnError, SupervisorError
from hound.utils import default_logger

from ._debounce import Debouncer
from ._matcher import PathMatcher
from ._models import (
    TaskConfig,
    TaskEvent,
    TaskEventType,
    TaskIdentity,
    TaskState,
    TaskStatus,
)
from ._registry import ListenerRegistry

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable
    from types import TracebackType

    from structlog.typing import FilteringBoundLogger

    OutputListener = Callable[[TaskIdentity, str], Awaitable[object]]
    EventListener = Callable[[TaskEvent], Awaitable[object]]

# Each task runs in its own session so the whole process group can be killed
_USE_PROCESS_GROUPS = sys.platform != "win32"


def _get_timestamp() -> str:
    """Get current timestamp in ISO 8601 format."""
    import pendulum  # noqa: PLC0415

    return pendulum.now("UTC").to_iso8601_string()


@dataclass(slots=True, eq=False)
class ProcessHandle:
    """A spawned process and the one-shot signal its exit watcher completes.

    Attributes:
        process: The running process.
        started_at: Event loop clock reading taken right after the spawn.
        exited: Set by the exit watcher once the process has terminated.
        exit_code: Exit code recorded by the exit watcher.
    """

    process: anyio.abc.Process
    started_at: float
    exited: anyio.Event = field(default_factory=anyio.Event)
    exit_code: int | None = None

    @property
    def pid(self) -> int:
        """Return the process ID."""
        return self.process.pid


@final
class ProcessSupervisor:
    """Owns the lifecycle of one task's OS process.

    The supervisor is an async context manager. Entering it opens the task
    group that hosts its background work: two stream readers and an exit
    watcher per process, debounce timers, pending restarts and listener
    dispatches. Leaving it kills the process and cancels that work.

    At most one process exists per supervisor at any time. The current
    ProcessHandle is only read or replaced while holding ``_lock``; a handle
    removed by ``stop()`` is never restarted by its exit watcher.

    Attributes:
        config: Immutable configuration for this task.
        status: Mutable runtime status tracking.
    """

    __slots__ = (
        "_debouncer",
        "_events",
        "_exit_stack",
        "_handle",
        "_lock",
        "_logger",
        "_matcher",
        "_pending_restart",
        "_stderr",
        "_stdout",
        "_task_group",
        "config",
        "status",
    )

    def __init__(
        self,
        config: TaskConfig,
        *,
        logger: FilteringBoundLogger | None = None,
    ) -> None:
        """Initialize the supervisor.

        Args:
            config: Configuration for the task.
            logger: Logger to bind the task name to.

        Raises:
            PatternError: If one of the task's path patterns is invalid.
        """
        self.config = config
        self.status = TaskStatus()
        self._matcher = PathMatcher(config.paths)
        self._logger = (logger or default_logger()).bind(task=config.name)
        self._stdout = ListenerRegistry(f"{config.name}.stdout", logger=self._logger)
        self._stderr = ListenerRegistry(f"{config.name}.stderr", logger=self._logger)
        self._events = ListenerRegistry(f"{config.name}.events", logger=self._logger)
        self._handle: ProcessHandle | None = None
        self._lock = anyio.Lock()
        self._debouncer: Debouncer | None = None
        self._pending_restart: anyio.CancelScope | None = None
        self._task_group: anyio.abc.TaskGroup | None = None
        self._exit_stack: AsyncExitStack | None = None

    def __repr__(self) -> str:
        state = self.status.state.value
        return f"ProcessSupervisor({self.display_id!r}, state={state!r})"

    @property
    def name(self) -> str:
        """Return the task name."""
        return self.config.name

    @property
    def pid(self) -> int | None:
        """Return the process ID if running, None otherwise."""
        handle = self._handle
        return handle.pid if handle is not None else None

    @property
    def state(self) -> TaskState:
        """Return the current lifecycle state."""
        return self.status.state

    @property
    def restart_delay(self) -> float:
        """Return the effective restart delay in seconds."""
        return self.config.effective_restart_delay

    @property
    def identity(self) -> TaskIdentity:
        """Return the task name paired with the current pid."""
        return TaskIdentity(self.name, self.pid)

    @property
    def display_id(self) -> str:
        """Return ``name:pid`` while running, ``name:stopped`` otherwise."""
        return self.identity.display_id

    def is_running(self) -> bool:
        """Check if a process is currently associated with the task."""
        return self._handle is not None

    def match(self, path: str) -> bool:
        """Return True if a change to ``path`` concerns this task."""
        return self._matcher.match(path)

    def register_stdout(self, listener: OutputListener) -> None:
        """Register a listener for stdout lines."""
        self._stdout.register(listener)

    def register_stderr(self, listener: OutputListener) -> None:
        """Register a listener for stderr lines."""
        self._stderr.register(listener)

    def register_event_listener(self, listener: EventListener) -> None:
        """Register a listener for lifecycle events."""
        self._events.register(listener)

    def get_status(self) -> dict[str, object]:
        """Return the runtime status as a plain dictionary."""
        return {
            "state": self.status.state.value,
            "pid": self.status.pid,
            "restart_count": self.status.restart_count,
            "last_exit_code": self.status.last_exit_code,
            "started_at": self.status.started_at,
            "stopped_at": self.status.stopped_at,
        }

    # -------------------------------------------------------------------------
    # Context management
    # -------------------------------------------------------------------------

    async def __aenter__(self) -> Self:
        if self._exit_stack is not None:
            msg = f"Supervisor for task '{self.name}' is already active"
            raise SupervisorError(msg)

        stack = AsyncExitStack()
        self._task_group = await stack.enter_async_context(anyio.create_task_group())
        self._exit_stack = stack
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> bool | None:
        stack = self._exit_stack
        task_group = self._task_group
        if stack is None or task_group is None:
            return None

        try:
            with anyio.CancelScope(shield=True):
                await self.stop()
        except KillError:
            self._logger.exception("task_stop_failed")

        if self._debouncer is not None:
            self._debouncer.cancel()
            self._debouncer = None

        # Child tasks handle their own errors; close the group without the
        # body exception so it propagates unwrapped
        task_group.cancel_scope.cancel()
        self._task_group = None
        self._exit_stack = None
        await stack.aclose()
        return None

    def _require_task_group(self) -> anyio.abc.TaskGroup:
        if self._task_group is None:
            msg = f"Supervisor for task '{self.name}' is not active; use 'async with'"
            raise SupervisorError(msg)
        return self._task_group

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def start(self) -> None:
        """Spawn the task's command unless a process is already running.

        Output lines are dispatched to the registered listeners as they
        arrive. When the process exits on its own it is restarted if the task
        has ``restart_on_exit`` set.

        Raises:
            SpawnError: If the process or its pipes cannot be created.
            SupervisorError: If the supervisor has not been entered.
        """
        async with self._lock:
            if self._handle is not None:
                return
            handle = await self._spawn()

        self._announce_start(handle)

    async def stop(self) -> None:
        """Kill the running process, if any.

        The kill is immediate (SIGKILL to the task's process group); output
        still buffered in the pipes is not waited for. A process that already
        exited on its own counts as stopped.

        Raises:
            KillError: If the operating system refuses to kill the process.
        """
        async with self._lock:
            self._cancel_pending_restart()

            handle = self._handle
            if handle is None:
                if self.status.state == TaskState.BACKOFF:
                    self.status.state = TaskState.STOPPED
                return

            try:
                self._kill(handle)
            except ProcessLookupError:
                # Exited between the exit watcher noticing and us getting the lock
                pass
            except OSError as e:
                msg = f"Failed to kill task '{self.name}' (pid {handle.pid}): {e}"
                raise KillError(
                    msg, task_name=self.name, pid=handle.pid, cause=e
                ) from e

            self._handle = None
            exit_code = await handle.process.wait()

            self.status.pid = None
            self.status.last_exit_code = exit_code
            self.status.stopped_at = _get_timestamp()
            self.status.state = TaskState.STOPPED

        self._logger.info("task_stopped", pid=handle.pid, exit_code=exit_code)
        self._emit(
            TaskEventType.STOPPED,
            pid=handle.pid,
            exit_code=exit_code,
            message="Stopped by request",
        )

    def reload(self) -> None:
        """Schedule a debounced stop-then-start of the task.

        Repeated calls within the restart delay supersede each other; only
        the last one runs, once the delay has passed without another call.
        Failures of the stop or start are logged, not raised.

        Raises:
            SupervisorError: If the supervisor has not been entered.
        """
        task_group = self._require_task_group()
        if self._debouncer is None:
            self._debouncer = Debouncer(
                self.restart_delay, task_group, logger=self._logger
            )

        self._logger.debug("task_reload_scheduled", delay=self.restart_delay)
        self._debouncer.trigger(self._reload_now)

    async def wait(self) -> int | None:
        """Wait for the current process to exit.

        Returns:
            The exit code, or None if no process was running.
        """
        handle = self._handle
        if handle is None:
            return None
        await handle.exited.wait()
        return handle.exit_code

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    async def _spawn(self) -> ProcessHandle:
        """Spawn the process and its background tasks. Caller holds the lock."""
        task_group = self._require_task_group()
        self.status.state = TaskState.STARTING

        env: dict[str, str] | None = None
        if self.config.env:
            env = {**os.environ, **self.config.env}

        self._logger.debug("task_starting", command=self.config.command)
        try:
            process = await anyio.open_process(
                [self.config.shell, "-c", self.config.command],
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                cwd=self.config.cwd,
                env=env,
                start_new_session=_USE_PROCESS_GROUPS,
            )
        except OSError as e:
            self.status.state = TaskState.FAILED
            msg = f"Failed to start task '{self.name}': {e}"
            raise SpawnError(msg, task_name=self.name, cause=e) from e

        if process.stdout is None or process.stderr is None:
            process.kill()
            _ = await process.wait()
            self.status.state = TaskState.FAILED
            msg = f"Failed to start task '{self.name}': output pipes unavailable"
            raise SpawnError(msg, task_name=self.name)

        handle = ProcessHandle(process=process, started_at=anyio.current_time())
        self._handle = handle

        self.status.pid = handle.pid
        self.status.started_at = _get_timestamp()
        self.status.state = TaskState.RUNNING

        identity = TaskIdentity(self.name, handle.pid)
        task_group.start_soon(
            self._stream_output, process.stdout, identity, self._stdout
        )
        task_group.start_soon(
            self._stream_output, process.stderr, identity, self._stderr
        )
        task_group.start_soon(self._watch_exit, handle)
        return handle

    def _announce_start(self, handle: ProcessHandle) -> None:
        self._logger.info("task_started", pid=handle.pid)
        self._emit(
            TaskEventType.STARTED,
            pid=handle.pid,
            message=f"Started with command: {self.config.command}",
        )

    def _kill(self, handle: ProcessHandle) -> None:
        if _USE_PROCESS_GROUPS:
            os.killpg(handle.pid, signal.SIGKILL)
        else:
            handle.process.kill()

    async def _stream_output(
        self,
        stream: anyio.abc.ByteReceiveStream,
        identity: TaskIdentity,
        registry: ListenerRegistry,
    ) -> None:
        """Split a pipe into lines and dispatch each one to the listeners."""
        task_group = self._require_task_group()
        pending = ""
        try:
            async for chunk in TextReceiveStream(stream, errors="replace"):
                pending += chunk
                *lines, pending = pending.split("\n")
                for line in lines:
                    registry.dispatch(task_group, identity, line.rstrip("\r"))
        except (anyio.ClosedResourceError, anyio.BrokenResourceError):
            # Pipe torn down after the process was killed
            pass

        if pending:
            registry.dispatch(task_group, identity, pending.rstrip("\r"))

    async def _watch_exit(self, handle: ProcessHandle) -> None:
        """Wait for the process to end and decide what happens next."""
        exit_code = await handle.process.wait()
        handle.exit_code = exit_code
        handle.exited.set()

        async with self._lock:
            if self._handle is not handle:
                # Removed by stop(), which already recorded the outcome
                return

            self._handle = None
            self.status.pid = None
            self.status.last_exit_code = exit_code
            self.status.stopped_at = _get_timestamp()
            self.status.state = TaskState.STOPPED

            if self.config.restart_on_exit:
                self._schedule_restart(handle)

        if exit_code == 0:
            self._logger.debug("task_exited", pid=handle.pid)
            self._emit(
                TaskEventType.EXITED,
                pid=handle.pid,
                exit_code=exit_code,
                message="Exited normally",
            )
        else:
            self._logger.warning("task_crashed", pid=handle.pid, exit_code=exit_code)
            self._emit(
                TaskEventType.CRASHED,
                pid=handle.pid,
                exit_code=exit_code,
                message=f"Exited with code {exit_code}",
            )

    def _schedule_restart(self, handle: ProcessHandle) -> None:
        """Queue a restart after an exit. Caller holds the lock.

        Restarts are spaced at least ``restart_delay`` apart: a process that
        ran longer than that is restarted immediately, a crash loop waits out
        the remainder of the delay.
        """
        uptime = anyio.current_time() - handle.started_at
        delay = max(0.0, self.restart_delay - uptime)

        scope = anyio.CancelScope()
        self._pending_restart = scope
        self.status.state = TaskState.BACKOFF
        self._require_task_group().start_soon(self._restart_after, scope, delay)

    def _cancel_pending_restart(self) -> None:
        if self._pending_restart is not None:
            self._pending_restart.cancel()
            self._pending_restart = None

    async def _restart_after(self, scope: anyio.CancelScope, delay: float) -> None:
        self._logger.info("task_restarting", delay=round(delay, 3))
        self._emit(TaskEventType.RESTARTING, message=f"Restarting in {delay:.1f}s")

        with scope:
            await anyio.sleep(delay)

        async with self._lock:
            if scope.cancel_called or self._pending_restart is not scope:
                return
            self._pending_restart = None
            if self._handle is not None:
                return

            self.status.restart_count += 1
            try:
                handle = await self._spawn()
            except SpawnError:
                self._logger.exception("task_restart_failed")
                return

        self._announce_start(handle)

    async def _reload_now(self) -> None:
        self._logger.info("task_reloading", pid=self.pid)
        self._emit(TaskEventType.RELOADING, pid=self.pid, message="Reloading")

        try:
            await self.stop()
        except KillError:
            self._logger.exception("task_reload_failed", step="stop")
            return

        try:
            await self.start()
        except SpawnError:
            self._logger.exception("task_reload_failed", step="start")

    def _emit(
        self,
        event_type: TaskEventType,
        *,
        pid: int | None = None,
        exit_code: int | None = None,
        message: str | None = None,
    ) -> None:
        """Dispatch a lifecycle event to the event listeners."""
        if self._task_group is None:
            return

        event = TaskEvent(
            task_name=self.name,
            event_type=event_type,
            timestamp=_get_timestamp(),
            pid=pid,
            exit_code=exit_code,
            message=message,
        )
        self._events.dispatch(self._task_group, event)
