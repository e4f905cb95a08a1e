"""Trailing-edge debounce for coalescing bursts of reload requests.

Every trigger replaces the pending action and restarts the delay window, so
a burst of triggers results in exactly one execution of the last action,
``delay`` seconds after the last trigger.
"""

from __future__ import annotations

import threading
from typing import TYPE_CHECKING, final

import anyio

from hound.utils import default_logger

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    import anyio.abc
    from structlog.typing import FilteringBoundLogger


@final
class Debouncer:
    """Coalesces rapid triggers into one deferred action.

    Each scheduled action is guarded by its own cancel scope, which doubles
    as the token identifying the pending slot. Replacing the slot cancels the
    previous token; a cancelled token's action never runs.

    Attributes:
        delay: Quiet period in seconds that must follow the last trigger.
    """

    __slots__ = ("_lock", "_logger", "_pending", "_task_group", "delay")

    def __init__(
        self,
        delay: float,
        task_group: anyio.abc.TaskGroup,
        *,
        logger: FilteringBoundLogger | None = None,
    ) -> None:
        """Initialize the debouncer.

        Args:
            delay: Quiet period in seconds.
            task_group: Task group hosting the timers and actions.
            logger: Logger for action failures.
        """
        self.delay = delay
        self._task_group = task_group
        self._pending: anyio.CancelScope | None = None
        self._lock = threading.Lock()
        self._logger = logger or default_logger()

    @property
    def pending(self) -> bool:
        """Return True if an action is waiting for its delay to elapse."""
        with self._lock:
            return self._pending is not None

    def trigger(self, action: Callable[[], Awaitable[object]]) -> None:
        """Schedule ``action``, superseding any pending one.

        Args:
            action: Coroutine function to run once the delay elapses
                without another trigger.
        """
        token = anyio.CancelScope()
        with self._lock:
            if self._pending is not None:
                self._pending.cancel()
            self._pending = token
        self._task_group.start_soon(self._fire, token, action)

    def cancel(self) -> None:
        """Drop the pending action, if any."""
        with self._lock:
            if self._pending is not None:
                self._pending.cancel()
            self._pending = None

    async def _fire(
        self,
        token: anyio.CancelScope,
        action: Callable[[], Awaitable[object]],
    ) -> None:
        with token:
            await anyio.sleep(self.delay)

        with self._lock:
            if token.cancel_called or self._pending is not token:
                return
            self._pending = None

        try:
            await action()
        except Exception:  # noqa: BLE001
            self._logger.exception("debounced_action_failed")
