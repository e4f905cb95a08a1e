"""Supervisor package for running and reloading shell-command tasks.

This package keeps a set of tasks alive, streams their output, restarts
them when they exit, and reloads them when files they depend on change.

Key Components:
    - TaskConfig: Configuration for a supervised task
    - TaskState / TaskStatus: Lifecycle state and runtime status
    - TaskEvent: Lifecycle event records
    - ChangeEvent: Filesystem change notifications
    - PathMatcher: Gitignore-style routing of changed paths to tasks
    - Debouncer: Trailing-edge coalescing of reload requests
    - ListenerRegistry: Per-component listener fan-out
    - ProcessSupervisor: Single task lifecycle manager
    - ChangeSource: Filesystem watch publisher
    - Orchestrator: Routes changes to supervisors and owns a run
    - ConsoleOutputSink: Terminal output implementation
    - create_control_router: FastAPI endpoint factory

Example:
    >>> from hound.supervisor import ChangeSource, Orchestrator, TaskConfig
    >>> from hound.supervisor import ProcessSupervisor
    >>> web = ProcessSupervisor(
    ...     TaskConfig(name="web", command="go run .", paths=("*.go",))
    ... )
    >>> orchestrator = Orchestrator([web], ChangeSource())
    >>> await orchestrator.run()  # Blocks until shutdown
"""

from ._api import create_control_router
from ._debounce import Debouncer
from ._matcher import PathMatcher
from ._models import (
    DEFAULT_RESTART_DELAY,
    ChangeEvent,
    ChangeKind,
    TaskConfig,
    TaskEvent,
    TaskEventType,
    TaskIdentity,
    TaskState,
    TaskStatus,
)
from ._orchestrator import Orchestrator
from ._output import TASK_COLORS, ConsoleOutputSink, task_color
from ._protocol import OutputSink, StreamName, TaskController
from ._registry import ListenerRegistry
from ._service import ProcessHandle, ProcessSupervisor
from ._watcher import ChangeSource

__all__ = [
    "DEFAULT_RESTART_DELAY",
    "TASK_COLORS",
    "ChangeEvent",
    "ChangeKind",
    "ChangeSource",
    "ConsoleOutputSink",
    "Debouncer",
    "ListenerRegistry",
    "Orchestrator",
    "OutputSink",
    "PathMatcher",
    "ProcessHandle",
    "ProcessSupervisor",
    "StreamName",
    "TaskConfig",
    "TaskController",
    "TaskEvent",
    "TaskEventType",
    "TaskIdentity",
    "TaskState",
    "TaskStatus",
    "create_control_router",
    "task_color",
]
