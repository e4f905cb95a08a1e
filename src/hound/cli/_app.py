"""The command-line interface for hound."""
# ruff: noqa: TC003  # Path needed at runtime for cyclopts parameter parsing

from pathlib import Path
from typing import Annotated

import anyio
from cyclopts import App, Parameter
from rich.console import Console
from rich.markup import escape

from hound.config import DEFAULT_CONFIG_FILE, format_duration, load_config
from hound.exceptions import ConfigError, SupervisorError
from hound.supervisor import ConsoleOutputSink, PathMatcher
from hound.utils import create_logger

from ._runner import build_orchestrator, run_orchestrator
from ._shared import ExitCode, describe_config_error, exit_with_error

ConfigOption = Annotated[
    Path,
    Parameter(
        name=["--config", "-c"],
        env_var="HOUND_CONFIG",
        help="Path to the configuration file.",
    ),
]


def create_app(
    console: Console | None = None,
    error_console: Console | None = None,
    *,
    exit_on_error: bool = True,
) -> App:
    """Create the hound CLI application.

    Args:
        console: Console for regular output.
        error_console: Console for errors.
        exit_on_error: Whether cyclopts exits on parse errors.
    """
    if console is None:
        console = Console()
    if error_console is None:
        error_console = Console(stderr=True)

    app = App(
        name="hound",
        help="Run shell commands, restart them when they exit, reload them on change.",
        help_on_error=True,
        console=console,
        error_console=error_console,
        exit_on_error=exit_on_error,
    )

    @app.command(name="run")
    def run(  # pyright: ignore[reportUnusedFunction]
        *,
        config: ConfigOption = Path(DEFAULT_CONFIG_FILE),
        log_level: Annotated[
            str | None,
            Parameter(
                env_var="HOUND_LOG_LEVEL",
                help="Log level (debug, info, warning, error).",
            ),
        ] = None,
        control_port: Annotated[
            int | None,
            Parameter(help="Serve the control API on this localhost port."),
        ] = None,
        no_color: Annotated[
            bool, Parameter(name="--no-color", help="Disable colored output")
        ] = False,
    ) -> None:
        """Supervise every configured task until interrupted.

        Args:
            config: Path to the configuration file.
            log_level: Overrides the configured log level.
            control_port: Port for the control API. Disabled when omitted.
            no_color: Disable colored output.
        """
        try:
            loaded = load_config(config)
        except ConfigError as e:
            exit_with_error(
                escape(describe_config_error(e)),
                ExitCode.CONFIG_ERROR,
                console=error_console,
            )

        logger = create_logger(
            level=log_level or loaded.logging.level.value,
            log_format=loaded.logging.format.value,  # type: ignore[arg-type]
            log_file=loaded.logging.file,
            max_bytes=loaded.logging.max_bytes,
            backup_count=loaded.logging.backup_count,
        )

        if not loaded.tasks:
            exit_with_error(
                f"No tasks configured in {escape(str(config))}",
                ExitCode.CONFIG_ERROR,
                console=error_console,
            )

        try:
            orchestrator = build_orchestrator(
                loaded,
                base_dir=config.resolve().parent,
                output_sink=ConsoleOutputSink(no_color=no_color),
                logger=logger,
            )
        except ConfigError as e:
            exit_with_error(
                escape(str(e)), ExitCode.CONFIG_ERROR, console=error_console
            )

        try:
            anyio.run(run_orchestrator, orchestrator, control_port)
        except SupervisorError as e:
            exit_with_error(
                escape(str(e)), ExitCode.STARTUP_ERROR, console=error_console
            )

    @app.command(name="validate")
    def validate(  # pyright: ignore[reportUnusedFunction]
        *,
        config: ConfigOption = Path(DEFAULT_CONFIG_FILE),
    ) -> None:
        """Check a configuration file and summarize its tasks.

        Args:
            config: Path to the configuration file.
        """
        try:
            loaded = load_config(config)
            for task in loaded.tasks:
                _ = PathMatcher(task.paths)
        except ConfigError as e:
            exit_with_error(
                escape(describe_config_error(e)),
                ExitCode.CONFIG_ERROR,
                console=error_console,
            )

        console.print(
            f"[green]OK[/green] {escape(str(config))}: {len(loaded.tasks)} task(s)"
        )
        for task in loaded.tasks:
            restart = "restart on exit" if task.restart_on_exit else "no restart"
            patterns = ", ".join(task.paths) if task.paths else "(no paths)"
            delay = format_duration(task.to_task_config().effective_restart_delay)
            console.print(
                f"  [bold]{escape(task.name)}[/bold]: {escape(task.command)}"
                f" [dim]| {escape(patterns)} | {restart},"
                f" delay {delay}[/dim]"
            )

    return app


app = create_app()


def main() -> None:
    """Default entrypoint for the `hound` CLI."""
    app = create_app()
    app()


if __name__ == "__main__":
    main()
