"""Tests for structured logging configuration."""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING

import pytest

from rzmanager.observability import (
    bound_context,
    close_file_logging,
    configure_logging,
    get_logger,
    get_logs_dir,
)

if TYPE_CHECKING:
    from pathlib import Path


def test_configure_logging_sets_level_warning() -> None:
    """Default verbosity (0) sets WARNING level."""
    configure_logging(verbosity=0)

    root_logger = logging.getLogger()
    assert root_logger.level == logging.WARNING


def test_configure_logging_verbose_sets_info() -> None:
    """verbosity=1 sets INFO level."""
    configure_logging(verbosity=1)

    root_logger = logging.getLogger()
    # Root level is DEBUG to allow file handlers, but console handler filters
    assert root_logger.level == logging.DEBUG


def test_configure_logging_very_verbose_sets_debug() -> None:
    """verbosity=2 sets DEBUG level."""
    configure_logging(verbosity=2)

    root_logger = logging.getLogger()
    assert root_logger.level == logging.DEBUG


def test_get_logger_returns_bound_logger() -> None:
    """get_logger returns a structlog logger with expected methods."""
    logger = get_logger(__name__)

    # Structlog uses a lazy proxy, verify it has expected logging methods
    assert hasattr(logger, "info")
    assert hasattr(logger, "debug")
    assert hasattr(logger, "error")
    assert hasattr(logger, "warning")


def test_get_logger_auto_configures() -> None:
    """get_logger configures logging if not already done."""
    # Reset configuration state
    import rzmanager.observability.logging as log_module

    log_module._configured = False

    logger = get_logger("test")

    assert log_module._configured is True
    assert logger is not None


def test_get_logger_with_name() -> None:
    """get_logger accepts optional name."""
    logger = get_logger("my.module.name")

    # Should not raise
    assert logger is not None


def test_configure_logging_quiets_asyncio() -> None:
    """Logging configuration keeps asyncio debug chatter out."""
    configure_logging(verbosity=2)

    assert logging.getLogger("asyncio").level == logging.WARNING


def test_configure_logging_with_file_logging(tmp_path: Path) -> None:
    """File logging creates debug.jsonl in logs directory."""
    configure_logging(verbosity=0, log_to_file=True, project_path=tmp_path)

    logs_dir = tmp_path / "logs"
    assert logs_dir.exists()


def test_configure_logging_without_file_logging(tmp_path: Path) -> None:
    """Without file logging flag, logs directory is not created."""
    configure_logging(verbosity=0, log_to_file=False, project_path=tmp_path)

    logs_dir = tmp_path / "logs"
    assert not logs_dir.exists()


def test_configure_logging_requires_project_path_for_file_logging() -> None:
    """log_to_file=True without project_path raises ValueError."""
    with pytest.raises(ValueError, match="project_path is required"):
        configure_logging(verbosity=0, log_to_file=True, project_path=None)


def test_configure_logging_reconfiguration_closes_handler(tmp_path: Path) -> None:
    """Reconfiguring logging closes previous file handler."""
    import rzmanager.observability.logging as log_module

    # Configure with file logging
    configure_logging(verbosity=0, log_to_file=True, project_path=tmp_path)
    first_handler = log_module._file_handler
    assert first_handler is not None

    # Reconfigure - should close previous handler
    configure_logging(verbosity=0, log_to_file=True, project_path=tmp_path)
    second_handler = log_module._file_handler

    # First handler should have been closed (stream is None after close)
    assert first_handler.stream is None or first_handler.stream.closed
    assert second_handler is not None


def test_close_file_logging_clears_handler(tmp_path: Path) -> None:
    """close_file_logging closes handler and clears reference."""
    import rzmanager.observability.logging as log_module

    configure_logging(verbosity=0, log_to_file=True, project_path=tmp_path)
    assert log_module._file_handler is not None

    close_file_logging()

    assert log_module._file_handler is None


def test_jsonl_file_handler_writes_structlog_context(tmp_path: Path) -> None:
    """JSONLFileHandler correctly extracts structlog context to JSONL."""
    # Configure file logging
    configure_logging(verbosity=2, log_to_file=True, project_path=tmp_path)

    # Get a structlog logger and log with context
    logger = get_logger("test.context")
    logger.info("commit_applied", commit_id="abc123", changes=2)

    # Close to flush
    close_file_logging()

    # Read the JSONL file
    log_file = tmp_path / "logs" / "debug.jsonl"
    assert log_file.exists()

    # Find our log entry
    found = False
    with log_file.open() as f:
        for line in f:
            entry = json.loads(line)
            if entry.get("message") == "commit_applied":
                found = True
                assert entry["commit_id"] == "abc123"
                assert entry["changes"] == 2
                assert entry["level"] == "INFO"
                break

    assert found, "Log entry with structlog context not found in JSONL"


def test_get_logs_dir_reports_file_logging_dir(tmp_path: Path) -> None:
    """get_logs_dir returns the directory file logging writes to."""
    configure_logging(verbosity=0, log_to_file=True, project_path=tmp_path)
    try:
        assert get_logs_dir() == tmp_path / "logs"
    finally:
        close_file_logging()


def test_jsonl_file_handler_serializes_non_json_values(tmp_path: Path) -> None:
    """Values like datetimes are written as strings instead of failing."""
    from datetime import UTC, datetime

    configure_logging(verbosity=2, log_to_file=True, project_path=tmp_path)
    logger = get_logger("test.serialize")
    logger.info("snapshot_saved", taken_at=datetime(2024, 1, 1, tzinfo=UTC))
    close_file_logging()

    lines = (tmp_path / "logs" / "debug.jsonl").read_text().splitlines()
    entries = [json.loads(line) for line in lines]
    entry = next(e for e in entries if e.get("message") == "snapshot_saved")
    assert entry["taken_at"] == "2024-01-01 00:00:00+00:00"


def test_get_logs_dir_cleared_after_close(tmp_path: Path) -> None:
    """Closing file logging clears the reported logs directory."""
    configure_logging(verbosity=0, log_to_file=True, project_path=tmp_path)
    close_file_logging()

    assert get_logs_dir() is None


def test_bound_context_is_written_and_removed(tmp_path: Path) -> None:
    """Context bound with bound_context appears only inside the block."""
    configure_logging(verbosity=2, log_to_file=True, project_path=tmp_path)
    logger = get_logger("test.bound")
    with bound_context(commit_id="c-42", workspace_id="ws-1"):
        logger.info("transaction_committed", statements=3)
    logger.info("after_block")
    close_file_logging()

    lines = (tmp_path / "logs" / "debug.jsonl").read_text().splitlines()
    entries = {e["message"]: e for e in map(json.loads, lines)}
    assert entries["transaction_committed"]["commit_id"] == "c-42"
    assert entries["transaction_committed"]["workspace_id"] == "ws-1"
    assert "commit_id" not in entries["after_block"]
