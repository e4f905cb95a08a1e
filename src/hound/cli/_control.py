"""Control application factory for the run command.

This module provides the in-process FastAPI application and uvicorn server
that expose the task control endpoints during a run.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import TYPE_CHECKING

import uvicorn
from fastapi import FastAPI

from hound.supervisor import create_control_router

if TYPE_CHECKING:
    from collections.abc import Iterator

    from hound.supervisor import TaskController

CONTROL_HOST = "127.0.0.1"


def create_control_app(controller: TaskController) -> FastAPI:
    """Create the FastAPI control application.

    Args:
        controller: The orchestrator to control.

    Returns:
        A FastAPI application with task control endpoints.
    """
    app = FastAPI(
        title="hound control",
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )

    control_router = create_control_router(controller)
    app.include_router(control_router)

    return app


class ControlServer(uvicorn.Server):
    """uvicorn server that leaves signal handling to the orchestrator."""

    @contextmanager
    def capture_signals(self) -> Iterator[None]:
        yield


def create_control_server(controller: TaskController, port: int) -> ControlServer:
    """Create the uvicorn server for the control application on localhost."""
    config = uvicorn.Config(
        app=create_control_app(controller),
        host=CONTROL_HOST,
        port=port,
        log_level="warning",
        access_log=False,
    )
    return ControlServer(config)
