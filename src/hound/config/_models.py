"""Configuration models for hound.

This module provides the Pydantic models describing a configuration file:
the task list, the filesystem watch and logging.
"""

from enum import StrEnum
from pathlib import Path
from typing import ClassVar, Self, cast

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from hound.supervisor import DEFAULT_RESTART_DELAY, TaskConfig
from hound.utils import IgnoreConfig

from ._duration import parse_duration


class LogLevel(StrEnum):
    """Log level options."""

    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class LogFormat(StrEnum):
    """Log output format options."""

    TEXT = "text"
    JSON = "json"


class TaskSection(BaseModel):
    """A single entry of the ``tasks`` list."""

    model_config: ClassVar[ConfigDict] = ConfigDict(frozen=True, extra="forbid")

    name: str = Field(description="Unique task name.")
    command: str = Field(description="Shell command to run.")
    paths: tuple[str, ...] = Field(
        default=(), description="Gitignore-style patterns that reload the task."
    )
    restart_on_exit: bool = Field(
        default=False, description="Restart the process when it exits."
    )
    restart_delay: float = Field(
        default=DEFAULT_RESTART_DELAY,
        description="Reload debounce window and restart spacing, in seconds.",
    )
    shell: str = Field(default="bash", description="Shell used to run the command.")
    cwd: Path | None = Field(default=None, description="Working directory.")
    env: dict[str, str] = Field(
        default_factory=dict, description="Extra environment variables."
    )

    @field_validator("name", "command", "shell")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            msg = "must not be empty"
            raise ValueError(msg)
        return value

    @field_validator("restart_delay", mode="before")
    @classmethod
    def _parse_restart_delay(cls, value: object) -> float:
        if isinstance(value, str | int | float):
            return parse_duration(value)
        msg = "must be a number of seconds or a duration string"
        raise ValueError(msg)

    @field_validator("env", mode="before")
    @classmethod
    def _stringify_env(cls, value: object) -> object:
        # YAML turns PORT: 8080 into an int
        if isinstance(value, dict):
            items = cast("dict[object, object]", value)
            return {str(k): str(v) for k, v in items.items()}
        return value

    def to_task_config(self, base_dir: Path | None = None) -> TaskConfig:
        """Build the runtime TaskConfig.

        Args:
            base_dir: Directory that a relative ``cwd`` is resolved against.
        """
        cwd = self.cwd
        if cwd is not None and base_dir is not None and not cwd.is_absolute():
            cwd = base_dir / cwd

        return TaskConfig(
            name=self.name,
            command=self.command,
            paths=self.paths,
            restart_on_exit=self.restart_on_exit,
            restart_delay=self.restart_delay,
            shell=self.shell,
            cwd=cwd,
            env=dict(self.env),
        )


class WatchConfig(BaseModel):
    """The ``watch`` section."""

    model_config: ClassVar[ConfigDict] = ConfigDict(frozen=True, extra="forbid")

    root: Path = Field(default=Path(), description="Directory to watch.")
    recursive: bool = Field(default=True, description="Watch subdirectories.")
    gitignore: bool = Field(
        default=True, description="Honor the .gitignore in the watch root."
    )
    ignore: tuple[str, ...] = Field(default=(), description="Extra ignore patterns.")
    debounce: float = Field(
        default=0.05, description="Batching window for raw notifications, in seconds."
    )

    @field_validator("debounce", mode="before")
    @classmethod
    def _parse_debounce(cls, value: object) -> float:
        if isinstance(value, str | int | float):
            seconds = parse_duration(value)
            if seconds < 0:
                msg = "must not be negative"
                raise ValueError(msg)
            return seconds
        msg = "must be a number of seconds or a duration string"
        raise ValueError(msg)

    @property
    def debounce_ms(self) -> int:
        """Return the batching window in whole milliseconds."""
        return round(self.debounce * 1000)

    def ignore_config(self) -> IgnoreConfig:
        """Build the IgnoreConfig for the change source."""
        return IgnoreConfig(gitignore=self.gitignore, extra_patterns=self.ignore)

    def resolve_root(self, base_dir: Path | None = None) -> Path:
        """Return the watch root, resolving a relative root against ``base_dir``."""
        if base_dir is not None and not self.root.is_absolute():
            return (base_dir / self.root).resolve()
        return self.root.resolve()


class LoggingConfig(BaseModel):
    """The ``logging`` section."""

    model_config: ClassVar[ConfigDict] = ConfigDict(frozen=True, extra="forbid")

    level: LogLevel = Field(default=LogLevel.INFO, description="Minimum log level.")
    format: LogFormat = Field(default=LogFormat.TEXT, description="Log format.")
    file: str = Field(default="", description="Log file path; empty means stderr.")
    max_bytes: int | None = Field(
        default=None, ge=1, description="Rotate the log file at this size."
    )
    backup_count: int | None = Field(
        default=None, ge=0, description="Rotated log files to keep."
    )

    @model_validator(mode="after")
    def _rotation_needs_both(self) -> Self:
        if (self.max_bytes is None) != (self.backup_count is None):
            msg = "max_bytes and backup_count must be set together"
            raise ValueError(msg)
        return self


class HoundConfig(BaseModel):
    """Root configuration model."""

    model_config: ClassVar[ConfigDict] = ConfigDict(frozen=True, extra="forbid")

    tasks: tuple[TaskSection, ...] = Field(default=(), description="Supervised tasks.")
    watch: WatchConfig = Field(default_factory=WatchConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @model_validator(mode="after")
    def _unique_task_names(self) -> Self:
        seen: set[str] = set()
        for task in self.tasks:
            if task.name in seen:
                msg = f"duplicate task name '{task.name}'"
                raise ValueError(msg)
            seen.add(task.name)
        return self

    def task_configs(self, base_dir: Path | None = None) -> list[TaskConfig]:
        """Build runtime TaskConfigs for every task, in file order."""
        return [task.to_task_config(base_dir) for task in self.tasks]
