"""Async runner for the run command.

This module builds the orchestrator from a loaded configuration and runs
it, optionally together with the control API, using anyio.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import anyio

from hound.exceptions import SupervisorError
from hound.supervisor import ChangeSource, Orchestrator, ProcessSupervisor

from ._control import create_control_server

if TYPE_CHECKING:
    from pathlib import Path

    from structlog.typing import FilteringBoundLogger

    from hound.config import HoundConfig
    from hound.supervisor import OutputSink


def build_orchestrator(
    config: HoundConfig,
    *,
    base_dir: Path | None = None,
    output_sink: OutputSink | None = None,
    logger: FilteringBoundLogger | None = None,
) -> Orchestrator:
    """Build an orchestrator for every configured task.

    Relative task working directories and the watch root are resolved
    against ``base_dir``, normally the directory holding the config file.

    Args:
        config: The validated configuration.
        base_dir: Directory relative paths are resolved against.
        output_sink: Sink for task output and lifecycle events.
        logger: Logger shared by all components.

    Returns:
        An orchestrator that has not been started.

    Raises:
        PatternError: If a task's path patterns are invalid.
    """
    supervisors = [
        ProcessSupervisor(task, logger=logger)
        for task in config.task_configs(base_dir)
    ]
    change_source = ChangeSource(
        config.watch.resolve_root(base_dir),
        recursive=config.watch.recursive,
        ignore=config.watch.ignore_config(),
        debounce_ms=config.watch.debounce_ms,
        logger=logger,
    )
    return Orchestrator(
        supervisors,
        change_source,
        output_sink=output_sink,
        logger=logger,
    )


async def run_orchestrator(
    orchestrator: Orchestrator,
    control_port: int | None = None,
) -> None:
    """Run the orchestrator until shutdown, with an optional control API.

    Args:
        orchestrator: The orchestrator to run.
        control_port: Port for the control API server. None disables it.

    Raises:
        SpawnError: If a task fails to start.
        WatchError: If the watch cannot be opened.
    """
    if control_port is None:
        await orchestrator.run()
        return

    control_server = create_control_server(orchestrator, control_port)
    failure: SupervisorError | None = None

    async with anyio.create_task_group() as tg:
        # Start the control server first so it's ready before tasks start
        tg.start_soon(control_server.serve)

        # Give the control server a moment to start
        await anyio.sleep(0.1)

        try:
            await orchestrator.run()
        except SupervisorError as e:
            failure = e
        finally:
            control_server.should_exit = True

    if failure is not None:
        raise failure
