"""Listener registries for fan-out of output lines and events.

Each component owns its registries; nothing is global. Registration may
happen from any thread while dispatch runs on the event loop, so the
listener list is guarded and dispatch always works from a snapshot.

Dispatch is fire-and-forget: every listener invocation becomes its own task
in the caller's task group. A slow listener never blocks the producer or
other listeners, but there is no backpressure either; a listener that never
returns holds one task per invocation until the owning task group is
cancelled.
"""

from __future__ import annotations

import threading
from typing import TYPE_CHECKING, final

from hound.utils import default_logger

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    import anyio.abc
    from structlog.typing import FilteringBoundLogger

    Listener = Callable[..., Awaitable[object]]


@final
class ListenerRegistry:
    """Append-only list of async listeners with concurrent dispatch."""

    __slots__ = ("_listeners", "_lock", "_logger", "_name")

    def __init__(
        self, name: str, *, logger: FilteringBoundLogger | None = None
    ) -> None:
        """Initialize an empty registry.

        Args:
            name: Label used when logging listener failures.
            logger: Logger for listener failures.
        """
        self._name = name
        self._listeners: list[Listener] = []
        self._lock = threading.Lock()
        self._logger = logger or default_logger()

    def register(self, listener: Listener) -> None:
        """Append a listener."""
        with self._lock:
            self._listeners.append(listener)

    def snapshot(self) -> tuple[Listener, ...]:
        """Return the listeners registered so far."""
        with self._lock:
            return tuple(self._listeners)

    def __len__(self) -> int:
        with self._lock:
            return len(self._listeners)

    def dispatch(self, task_group: anyio.abc.TaskGroup, *args: object) -> None:
        """Invoke every listener with ``args`` in its own task.

        Tasks are started in registration order but run independently.

        Args:
            task_group: Task group that hosts the listener invocations.
            *args: Positional arguments passed to each listener.
        """
        for listener in self.snapshot():
            task_group.start_soon(self._invoke, listener, args)

    async def _invoke(self, listener: Listener, args: tuple[object, ...]) -> None:
        try:
            await listener(*args)
        except Exception:  # noqa: BLE001
            # Listener errors must not crash the producer
            self._logger.exception("listener_failed", registry=self._name)
