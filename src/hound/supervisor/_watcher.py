"""Filesystem change source using watchfiles.

This module provides the ChangeSource class: one watch over a root
directory whose changes are republished as ChangeEvents to every
registered listener.
"""

from __future__ import annotations

from contextlib import AsyncExitStack
from pathlib import Path
from typing import TYPE_CHECKING, Self, final

import anyio
import anyio.abc
import anyio.to_thread
from watchfiles import Change, awatch
from watchfiles._rust_notify import RustNotify

from hound.exceptions import SupervisorError, WatchError
from hound.utils import create_pathspec, default_logger, matches_any

from ._models import ChangeEvent, ChangeKind
from ._registry import ListenerRegistry

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable
    from types import TracebackType

    from pathspec import PathSpec
    from structlog.typing import FilteringBoundLogger

    from hound.utils import IgnoreConfig

    ChangeListener = Callable[[ChangeEvent], Awaitable[object]]
    PathPredicate = Callable[[str], bool]

_CHANGE_KINDS: dict[Change, ChangeKind] = {
    Change.added: ChangeKind.CREATE,
    Change.modified: ChangeKind.WRITE,
    Change.deleted: ChangeKind.REMOVE,
}

# Pause before re-opening the watch after the backend reported an error
_RETRY_DELAY = 1.0

# Poll interval used by the backend when it falls back to polling
_POLL_DELAY_MS = 300


@final
class ChangeSource:
    """Publishes filesystem changes under a root directory.

    Coverage is recursive unless ``recursive`` is False, in which case only
    entries directly inside the root are reported. Paths matching the ignore
    rules (built-in defaults, the root .gitignore and extra patterns) are
    dropped before dispatch, unless the relevance predicate accepts them:
    a path some task asks for is always reported. watchfiles reports a
    rename as a removal of the old path plus a creation of the new one.

    ``start`` registers the OS watch before returning, so a backend refusal
    surfaces as WatchError there; later backend errors are logged and the
    watch is re-opened.

    The source is an async context manager; entering it opens the task group
    that hosts the dispatch loop and listener invocations.
    """

    __slots__ = (
        "_debounce_ms",
        "_exit_stack",
        "_ignore",
        "_listeners",
        "_logger",
        "_loop_scope",
        "_recursive",
        "_relevance",
        "_root",
        "_stop_event",
        "_task_group",
    )

    def __init__(
        self,
        root: Path | None = None,
        *,
        recursive: bool = True,
        ignore: IgnoreConfig | None = None,
        debounce_ms: int = 50,
        logger: FilteringBoundLogger | None = None,
    ) -> None:
        """Initialize the change source.

        Args:
            root: Directory to watch. Defaults to the current working directory.
            recursive: Whether to report changes in subdirectories.
            ignore: Ignore pattern sources. Uses defaults if None.
            debounce_ms: Window in which watchfiles batches raw notifications.
            logger: Logger for watch activity and errors.
        """
        self._root = (root if root is not None else Path.cwd()).resolve()
        self._recursive = recursive
        self._ignore = ignore
        self._debounce_ms = debounce_ms
        self._logger = logger or default_logger()
        self._listeners = ListenerRegistry("changes", logger=self._logger)
        self._relevance: PathPredicate | None = None
        self._stop_event: anyio.Event | None = None
        self._loop_scope: anyio.CancelScope | None = None
        self._task_group: anyio.abc.TaskGroup | None = None
        self._exit_stack: AsyncExitStack | None = None

    @property
    def root(self) -> Path:
        """Return the resolved root directory."""
        return self._root

    def is_running(self) -> bool:
        """Check whether the dispatch loop has been started."""
        return self._loop_scope is not None

    def register_listener(self, listener: ChangeListener) -> None:
        """Register a listener for change events."""
        self._listeners.register(listener)

    def set_relevance(self, predicate: PathPredicate | None) -> None:
        """Set the predicate for paths that bypass the ignore rules.

        Args:
            predicate: Called with the root-relative POSIX path of a change.
                Paths it accepts are reported even when an ignore rule
                matches them. None restores plain ignore filtering.
        """
        self._relevance = predicate

    async def __aenter__(self) -> Self:
        if self._exit_stack is not None:
            msg = "Change source is already active"
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

        await self.stop()
        # Child tasks handle their own errors; close the group without the
        # body exception so it propagates unwrapped
        task_group.cancel_scope.cancel()
        self._task_group = None
        self._exit_stack = None
        await stack.aclose()
        return None

    async def start(self) -> None:
        """Open the watch and start dispatching changes.

        Calling start on a running source does nothing.

        Raises:
            WatchError: If the root cannot be watched.
            SupervisorError: If the source has not been entered.
        """
        if self._task_group is None:
            msg = "Change source is not active; use 'async with'"
            raise SupervisorError(msg)

        if self._loop_scope is not None:
            return

        if not self._root.is_dir():
            msg = f"Cannot watch '{self._root}': not a directory"
            raise WatchError(msg, path=self._root)

        try:
            ignore_spec = create_pathspec(self._root, self._ignore)
        except (OSError, ValueError) as e:
            msg = f"Failed to load ignore patterns for '{self._root}': {e}"
            raise WatchError(msg, path=self._root) from e

        await anyio.to_thread.run_sync(self._open_backend)

        self._stop_event = anyio.Event()
        self._loop_scope = anyio.CancelScope()
        self._task_group.start_soon(
            self._dispatch_loop,
            self._task_group,
            self._loop_scope,
            self._stop_event,
            ignore_spec,
        )
        self._logger.debug(
            "watcher_started", root=str(self._root), recursive=self._recursive
        )

    async def stop(self) -> None:
        """Close the watch and end the dispatch loop.

        Listener invocations already in flight are not waited for.
        """
        if self._loop_scope is None:
            return

        if self._stop_event is not None:
            self._stop_event.set()
        self._loop_scope.cancel()
        self._loop_scope = None
        self._stop_event = None
        self._logger.debug("watcher_stopped", root=str(self._root))

    def _open_backend(self) -> None:
        """Check that the OS watch can be registered on the root.

        Raises:
            WatchError: If the backend refuses the watch, for example when
                the inotify watch limit is reached.
        """
        try:
            with RustNotify(
                [str(self._root)], False, False, _POLL_DELAY_MS, self._recursive, False
            ):
                pass
        except (OSError, RuntimeError) as e:
            msg = f"Cannot watch '{self._root}': {e}"
            raise WatchError(msg, path=self._root) from e

    def to_event(self, change: Change, raw_path: str) -> ChangeEvent:
        """Convert a raw watchfiles change into a ChangeEvent."""
        path = Path(raw_path)
        try:
            display = path.relative_to(self._root).as_posix()
        except ValueError:
            display = path.as_posix()
        kind = _CHANGE_KINDS.get(change, ChangeKind.WRITE)
        return ChangeEvent(path=display, kind=kind)

    def _build_filter(self, spec: PathSpec) -> Callable[[Change, str], bool]:
        root = self._root
        recursive = self._recursive

        def should_watch(_change: Change, changed_path: str) -> bool:
            """Filter function for watchfiles.

            Args:
                _change: The type of change (unused).
                changed_path: The path that changed.

            Returns:
                True if the change should be reported.
            """
            try:
                rel_path = Path(changed_path).relative_to(root)
            except ValueError:
                rel_path = Path(changed_path)
            else:
                if not recursive and len(rel_path.parts) > 1:
                    return False

            relevance = self._relevance
            if relevance is not None and relevance(rel_path.as_posix()):
                return True
            return not matches_any(spec, rel_path)

        return should_watch

    async def _dispatch_loop(
        self,
        task_group: anyio.abc.TaskGroup,
        scope: anyio.CancelScope,
        stop_event: anyio.Event,
        spec: PathSpec,
    ) -> None:
        watch_filter = self._build_filter(spec)
        with scope:
            while not stop_event.is_set():
                try:
                    async for changes in awatch(
                        self._root,
                        watch_filter=watch_filter,
                        recursive=self._recursive,
                        debounce=self._debounce_ms,
                        stop_event=stop_event,
                    ):
                        for change, raw_path in sorted(changes, key=lambda c: c[1]):
                            event = self.to_event(change, raw_path)
                            self._logger.debug(
                                "change_detected",
                                path=event.path,
                                kind=event.kind.value,
                            )
                            self._listeners.dispatch(task_group, event)
                except Exception:  # noqa: BLE001
                    # Backend errors are not fatal; re-open the watch
                    self._logger.exception("watch_failed", root=str(self._root))
                    await anyio.sleep(_RETRY_DELAY)
