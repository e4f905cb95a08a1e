"""Command-line interface for hound."""

from ._app import app, create_app, main
from ._control import create_control_app, create_control_server
from ._runner import build_orchestrator, run_orchestrator
from ._shared import ExitCode

__all__ = [
    "ExitCode",
    "app",
    "build_orchestrator",
    "create_app",
    "create_control_app",
    "create_control_server",
    "main",
    "run_orchestrator",
]
