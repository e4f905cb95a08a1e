"""Configuration loading for hound.

A configuration file lists the tasks to supervise and tunes the filesystem
watch and logging. YAML is the default format; ``.toml`` files are read as
TOML.
"""

from ._duration import format_duration, parse_duration
from ._load import DEFAULT_CONFIG_FILE, load_config, parse_config
from ._models import (
    HoundConfig,
    LogFormat,
    LoggingConfig,
    LogLevel,
    TaskSection,
    WatchConfig,
)

__all__ = [
    "DEFAULT_CONFIG_FILE",
    "HoundConfig",
    "LogFormat",
    "LogLevel",
    "LoggingConfig",
    "TaskSection",
    "WatchConfig",
    "format_duration",
    "load_config",
    "parse_config",
    "parse_duration",
]
