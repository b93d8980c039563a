"""Unit tests for logging configuration."""

from __future__ import annotations

import json
import logging
import logging.handlers
from io import StringIO
from pathlib import Path

import pytest

from shipline.config import LoggingConfig
from shipline.logging import (
    bind_run_context,
    clear_run_context,
    get_logger,
    setup_logging,
)


@pytest.fixture(autouse=True)
def clear_root_handlers(reset_logging) -> None:
    """Start each test without any root handlers."""
    logging.getLogger().handlers.clear()


@pytest.fixture
def capture_stream() -> StringIO:
    """Create a StringIO stream for capturing log output."""
    return StringIO()


def _capture(stream: StringIO) -> None:
    root = logging.getLogger()
    root.handlers[0].stream = stream


def test_json_output_format(capture_stream: StringIO) -> None:
    """Test that JSON format produces valid JSON output."""
    setup_logging(LoggingConfig(level="INFO", format="json"))
    _capture(capture_stream)

    logger = get_logger("test.module")
    logger.info("stage_started", stage="build", attempt=1)

    log_entry = json.loads(capture_stream.getvalue().strip())
    assert log_entry["event"] == "stage_started"
    assert log_entry["stage"] == "build"
    assert log_entry["attempt"] == 1
    assert log_entry["level"] == "info"
    assert log_entry["logger"] == "test.module"
    assert "timestamp" in log_entry


def test_level_filtering(capture_stream: StringIO) -> None:
    """Test that events below the configured level are dropped."""
    setup_logging(LoggingConfig(level="WARNING", format="json"))
    _capture(capture_stream)

    logger = get_logger("test.filter")
    logger.info("ignored_event")
    logger.warning("kept_event")

    lines = [line for line in capture_stream.getvalue().splitlines() if line]
    assert len(lines) == 1
    assert json.loads(lines[0])["event"] == "kept_event"


def test_run_context_is_attached(capture_stream: StringIO) -> None:
    """Test that bound run context appears on every event."""
    setup_logging(LoggingConfig(level="INFO", format="json"))
    _capture(capture_stream)

    bind_run_context(action="deploy", branch="production", commit="a1b2c3")
    get_logger("test.context").info("pipeline_started")

    log_entry = json.loads(capture_stream.getvalue().strip())
    assert log_entry["action"] == "deploy"
    assert log_entry["branch"] == "production"
    assert log_entry["commit"] == "a1b2c3"


def test_clear_run_context(capture_stream: StringIO) -> None:
    """Test that clearing the run context removes its keys."""
    setup_logging(LoggingConfig(level="INFO", format="json"))
    _capture(capture_stream)

    bind_run_context(action="test", branch="main", commit="abc")
    clear_run_context()
    get_logger("test.context").info("after_clear")

    log_entry = json.loads(capture_stream.getvalue().strip())
    assert "action" not in log_entry
    assert "branch" not in log_entry


def test_file_handler_with_rotation(tmp_path: Path) -> None:
    """Test that a log file enables a rotating file handler."""
    log_file = tmp_path / "logs" / "shipline.log"
    setup_logging(
        LoggingConfig(
            level="INFO",
            format="json",
            file=log_file,
            rotation_size_mb=1,
            retention_count=3,
        )
    )

    handler = logging.getLogger().handlers[0]
    assert isinstance(handler, logging.handlers.RotatingFileHandler)
    assert handler.maxBytes == 1024 * 1024
    assert handler.backupCount == 3
    assert log_file.parent.exists()

    get_logger("test.file").info("written_to_file")
    handler.flush()
    assert "written_to_file" in log_file.read_text()


def test_console_format_renders_text(capture_stream: StringIO) -> None:
    """Test that console format renders a human-readable line."""
    setup_logging(LoggingConfig(level="DEBUG", format="console"))
    _capture(capture_stream)

    get_logger("test.console").debug("debug_event", key="value")

    output = capture_stream.getvalue()
    assert "debug_event" in output
    assert "key" in output
