"""Configuration file loading.

Files ending in ``.toml`` are read as TOML; everything else is read as YAML.
"""

import tomllib
from pathlib import Path
from typing import Final

import yaml
from pydantic import ValidationError

from hound.exceptions import ConfigLoadError, ConfigValidationError

from ._models import HoundConfig

DEFAULT_CONFIG_FILE: Final = "hound.yaml"
"""Config file name used when none is given."""


def _read_yaml(path: Path, text: str) -> object:
    try:
        return yaml.safe_load(text)
    except yaml.MarkedYAMLError as e:
        mark = e.problem_mark
        line = mark.line + 1 if mark is not None else None
        column = mark.column + 1 if mark is not None else None
        msg = f"Invalid YAML in {path}: {e.problem or e}"
        raise ConfigLoadError(msg, path=path, line=line, column=column) from e
    except yaml.YAMLError as e:
        msg = f"Invalid YAML in {path}: {e}"
        raise ConfigLoadError(msg, path=path) from e


def _read_toml(path: Path, text: str) -> object:
    try:
        return tomllib.loads(text)
    except tomllib.TOMLDecodeError as e:
        msg = f"Invalid TOML in {path}: {e}"
        raise ConfigLoadError(
            msg,
            path=path,
            line=getattr(e, "lineno", None),
            column=getattr(e, "colno", None),
        ) from e


def _error_key(loc: tuple[int | str, ...]) -> str:
    parts: list[str] = []
    for part in loc:
        if isinstance(part, int):
            parts.append(f"[{part}]")
        elif parts:
            parts.append(f".{part}")
        else:
            parts.append(part)
    return "".join(parts)


def parse_config(data: object, *, source: str | None = None) -> HoundConfig:
    """Validate raw configuration data.

    Args:
        data: Parsed file contents. None (an empty file) is treated as ``{}``.
        source: Description of where the data came from, for error messages.

    Returns:
        The validated configuration.

    Raises:
        ConfigValidationError: If the data does not match the schema.
    """
    if data is None:
        data = {}

    if not isinstance(data, dict):
        msg = "Configuration must be a mapping"
        if source:
            msg = f"{msg} ({source})"
        raise ConfigValidationError(
            msg,
            key="",
            value=data,
            expected="mapping",
            source=source,
        )

    try:
        return HoundConfig.model_validate(data)
    except ValidationError as e:
        error = e.errors()[0]
        key = _error_key(error["loc"])
        if key:
            msg = f"Invalid value for '{key}': {error['msg']}"
        else:
            msg = f"Invalid configuration: {error['msg']}"
        if source:
            msg = f"{msg} ({source})"
        raise ConfigValidationError(
            msg,
            key=key,
            value=error.get("input"),
            expected=error["type"],
            source=source,
        ) from e


def load_config(path: Path | str | None = None) -> HoundConfig:
    """Load and validate a configuration file.

    Args:
        path: Path to the file. Defaults to ``hound.yaml`` in the current
            directory.

    Returns:
        The validated configuration.

    Raises:
        ConfigLoadError: If the file is missing, unreadable or unparseable.
        ConfigValidationError: If the contents do not match the schema.
    """
    config_path = Path(path) if path is not None else Path(DEFAULT_CONFIG_FILE)

    if not config_path.is_file():
        msg = f"Config file not found: {config_path}"
        raise ConfigLoadError(msg, path=config_path)

    try:
        text = config_path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        msg = f"Failed to read config file {config_path}: {e}"
        raise ConfigLoadError(msg, path=config_path) from e

    if config_path.suffix == ".toml":
        data = _read_toml(config_path, text)
    else:
        data = _read_yaml(config_path, text)

    return parse_config(data, source=str(config_path))
