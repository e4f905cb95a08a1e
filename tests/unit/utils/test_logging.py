"""Unit tests for logging utilities."""

import json
import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

import pytest

from hound.utils._logging import (
    _create_logger,
    _get_log_level,
    _log_level_from_string,
    create_logger,
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("HOUND_DEBUG", raising=False)
    monkeypatch.delenv("HOUND_LOG_LEVEL", raising=False)


class TestLogLevel:
    def test_defaults_to_info(self) -> None:
        assert _get_log_level() == logging.INFO

    def test_debug_env_forces_debug(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("HOUND_DEBUG", "1")
        assert _get_log_level() == logging.DEBUG

    def test_log_level_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("HOUND_LOG_LEVEL", "warning")
        assert _get_log_level() == logging.WARNING

    def test_from_string(self) -> None:
        assert _log_level_from_string("error") == logging.ERROR
        assert _log_level_from_string("bogus") == logging.INFO

    def test_from_string_respects_debug_env(
        self, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("HOUND_DEBUG", "1")

        assert _log_level_from_string("error", respect_env=True) == logging.DEBUG
        assert _log_level_from_string("error") == logging.ERROR


class TestCreateLogger:
    def test_creates_log_directory_if_missing(self, tmp_path: Path) -> None:
        log_path = tmp_path / "logs" / "hound.log"

        _ = _create_logger(str(log_path))

        assert log_path.parent.exists()

    def test_json_format(self, tmp_path: Path) -> None:
        log_path = tmp_path / "hound.log"
        logger = create_logger(log_format="json", log_file=str(log_path))

        logger.info("task_started", task="web", pid=42)

        record = json.loads(log_path.read_text().splitlines()[0])
        assert record["event"] == "task_started"
        assert record["task"] == "web"
        assert record["pid"] == 42
        assert record["level"] == "info"
        assert "timestamp" in record

    def test_text_format(self, tmp_path: Path) -> None:
        log_path = tmp_path / "hound.log"
        logger = create_logger(log_file=str(log_path))

        logger.info("task_started", task="web")

        content = log_path.read_text()
        assert "task_started" in content
        assert "task=web" in content

    def test_respects_level(self, tmp_path: Path) -> None:
        log_path = tmp_path / "hound.log"
        logger = create_logger(level="error", log_file=str(log_path))

        logger.debug("debug_level_message")
        logger.error("error_level_message")

        content = log_path.read_text()
        assert "debug_level_message" not in content
        assert "error_level_message" in content

    def test_debug_env_overrides_level(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("HOUND_DEBUG", "1")
        log_path = tmp_path / "hound.log"
        logger = create_logger(level="error", log_file=str(log_path))

        logger.debug("debug_level_message")

        assert "debug_level_message" in log_path.read_text()

    def test_writes_to_stderr_without_file(
        self, capsys: pytest.CaptureFixture[str]
    ) -> None:
        logger = create_logger()

        logger.warning("watch_failed", root="/tmp")

        captured = capsys.readouterr()
        assert "watch_failed" in captured.err
        assert captured.out == ""

    def test_bound_context_is_rendered(self, tmp_path: Path) -> None:
        log_path = tmp_path / "hound.log"
        logger = create_logger(log_format="json", log_file=str(log_path)).bind(
            task="web"
        )

        logger.info("task_stopped")

        assert json.loads(log_path.read_text())["task"] == "web"


class TestCreateLoggerRotation:
    def test_with_rotation_uses_stdlib_logger(self, tmp_path: Path) -> None:
        log_path = tmp_path / "rotated.log"

        logger = _create_logger(str(log_path), max_bytes=1000, backup_count=3)
        logger.info("rotated_message")

        found = False
        for name in logging.root.manager.loggerDict:
            if name.startswith("hound.rotated."):
                handlers = logging.getLogger(name).handlers
                assert len(handlers) == 1
                handler = handlers[0]
                assert isinstance(handler, RotatingFileHandler)
                assert handler.maxBytes == 1000
                assert handler.backupCount == 3
                found = True

        assert found
        assert "rotated_message" in log_path.read_text()
