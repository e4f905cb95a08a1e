"""FastAPI control endpoints for the orchestrator.

This module provides REST API endpoints for inspecting tasks and for
starting, stopping and reloading them at runtime.
"""

# pyright: reportUnusedFunction=false
# FastAPI route handlers are registered via decorators, not direct calls

from typing import Never

from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel

from hound.exceptions import KillError, SpawnError, TaskNotFoundError

from ._protocol import TaskController


class TaskStatusResponse(BaseModel):
    """Response model for task status."""

    name: str
    state: str
    pid: int | None
    restart_count: int
    last_exit_code: int | None
    started_at: str | None
    stopped_at: str | None


class SupervisorStatusResponse(BaseModel):
    """Response model for overall status."""

    tasks: dict[str, TaskStatusResponse]
    total_tasks: int
    running_tasks: int


class MessageResponse(BaseModel):
    """Response model for simple message responses."""

    message: str


def _build_task_status(name: str, data: dict[str, object]) -> TaskStatusResponse:
    """Build a TaskStatusResponse from raw status data.

    Args:
        name: The task name.
        data: Raw status dictionary from the orchestrator.

    Returns:
        TaskStatusResponse with properly typed fields.
    """
    pid = data.get("pid")
    restart_count = data.get("restart_count")
    last_exit_code = data.get("last_exit_code")
    started_at = data.get("started_at")
    stopped_at = data.get("stopped_at")
    state_val = data.get("state")

    return TaskStatusResponse(
        name=name,
        state=str(state_val) if state_val is not None else "unknown",
        pid=pid if isinstance(pid, int) else None,
        restart_count=restart_count if isinstance(restart_count, int) else 0,
        last_exit_code=last_exit_code if isinstance(last_exit_code, int) else None,
        started_at=str(started_at) if started_at else None,
        stopped_at=str(stopped_at) if stopped_at else None,
    )


def _raise_not_found(name: str, cause: TaskNotFoundError) -> Never:
    raise HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=f"Task '{name}' not found",
    ) from cause


def _raise_server_error(cause: Exception) -> Never:
    raise HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=str(cause),
    ) from cause


def create_control_router(controller: TaskController) -> APIRouter:
    """Create a FastAPI router for task control endpoints.

    Args:
        controller: The orchestrator (or any TaskController) to drive.

    Returns:
        A FastAPI APIRouter with control endpoints.
    """
    router = APIRouter(prefix="/supervisor", tags=["supervisor"])

    def _task_status(name: str) -> TaskStatusResponse:
        data = controller.get_status().get(name)
        if data is None:
            _raise_not_found(name, TaskNotFoundError(name, task_name=name))
        return _build_task_status(name, data)

    @router.get("/status", response_model=SupervisorStatusResponse)
    async def get_supervisor_status() -> SupervisorStatusResponse:
        """Get overall status."""
        tasks = {
            name: _build_task_status(name, data)
            for name, data in controller.get_status().items()
        }
        running_count = sum(1 for t in tasks.values() if t.state == "running")

        return SupervisorStatusResponse(
            tasks=tasks,
            total_tasks=len(tasks),
            running_tasks=running_count,
        )

    @router.get("/tasks", response_model=list[TaskStatusResponse])
    async def list_tasks() -> list[TaskStatusResponse]:
        """List all tasks."""
        return [
            _build_task_status(name, data)
            for name, data in controller.get_status().items()
        ]

    @router.get("/tasks/{name}", response_model=TaskStatusResponse)
    async def get_task_status(name: str) -> TaskStatusResponse:
        """Get status of a specific task."""
        return _task_status(name)

    @router.post("/tasks/{name}/start", response_model=MessageResponse)
    async def start_task(name: str) -> MessageResponse:
        """Start a specific task."""
        try:
            await controller.start_task(name)
        except TaskNotFoundError as e:
            _raise_not_found(name, e)
        except SpawnError as e:
            _raise_server_error(e)

        return MessageResponse(message=f"Task '{name}' started")

    @router.post("/tasks/{name}/stop", response_model=MessageResponse)
    async def stop_task(name: str) -> MessageResponse:
        """Stop a specific task."""
        try:
            await controller.stop_task(name)
        except TaskNotFoundError as e:
            _raise_not_found(name, e)
        except KillError as e:
            _raise_server_error(e)

        return MessageResponse(message=f"Task '{name}' stopped")

    @router.post("/tasks/{name}/reload", response_model=MessageResponse)
    async def reload_task(name: str) -> MessageResponse:
        """Schedule a debounced reload of a specific task."""
        try:
            controller.reload_task(name)
        except TaskNotFoundError as e:
            _raise_not_found(name, e)

        return MessageResponse(message=f"Task '{name}' reload scheduled")

    @router.post("/shutdown", response_model=MessageResponse)
    async def shutdown() -> MessageResponse:
        """Trigger shutdown of the run."""
        await controller.shutdown()
        return MessageResponse(message="Shutdown initiated")

    return router
