"""Structured logging for the tracker, staging area and commit engine.

Console output goes through rich and is gated by ``-v``/``-vv``. With
``--log`` every event is also appended to ``{project}/logs/debug.jsonl``,
one JSON object per line, including context bound with ``bound_context``
(for example the commit being applied).
"""

from __future__ import annotations

import json
import logging
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path  # noqa: TC003 - Used at runtime for path operations
from typing import TYPE_CHECKING, Any

import structlog
from rich.console import Console
from rich.logging import RichHandler

if TYPE_CHECKING:
    from collections.abc import Iterator

    from structlog.typing import Processor

LOG_FILENAME = "debug.jsonl"

# Module-level state
_configured = False
_file_handler: logging.FileHandler | None = None
_logs_dir: Path | None = None

_CONSOLE_LEVELS = {0: logging.WARNING, 1: logging.INFO}


class JSONLFileHandler(logging.FileHandler):
    """File handler that writes one JSON object per event."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            entry: dict[str, Any] = {
                "timestamp": datetime.now(UTC).isoformat(),
                "level": record.levelname,
                "logger": record.name,
            }
            # structlog hands over the event dict as record.msg
            if isinstance(record.msg, dict):
                event_dict = dict(record.msg)
                event_dict.pop("level", None)
                event_dict.pop("timestamp", None)
                entry["message"] = event_dict.pop("event", "")
                entry.update(event_dict)
            else:
                entry["message"] = record.getMessage()

            if self.stream:
                self.stream.write(json.dumps(entry, default=str) + "\n")
                self.stream.flush()
        except Exception:
            self.handleError(record)


def _console_handler(verbosity: int) -> RichHandler:
    return RichHandler(
        console=Console(stderr=True),
        rich_tracebacks=True,
        tracebacks_show_locals=verbosity >= 2,
        show_time=verbosity >= 1,
        show_path=verbosity >= 2,
        markup=False,
        level=_CONSOLE_LEVELS.get(verbosity, logging.DEBUG),
    )


def _open_file_handler(project_path: Path) -> JSONLFileHandler:
    global _file_handler, _logs_dir
    _logs_dir = project_path / "logs"
    _logs_dir.mkdir(parents=True, exist_ok=True)
    _file_handler = JSONLFileHandler(str(_logs_dir / LOG_FILENAME), mode="a")
    _file_handler.setLevel(logging.DEBUG)
    return _file_handler


def configure_logging(
    verbosity: int = 0,
    log_to_file: bool = False,
    project_path: Path | None = None,
) -> None:
    """Configure logging for rzmanager.

    Safe to call repeatedly; each call replaces the previous handlers.

    Args:
        verbosity: 0=WARNING (default), 1=INFO, 2+=DEBUG
        log_to_file: If True, also write JSONL events to {project_path}/logs/.
        project_path: Project directory. Required if log_to_file=True.

    Raises:
        ValueError: If log_to_file=True but project_path is not provided.
    """
    global _configured

    if log_to_file and project_path is None:
        raise ValueError("project_path is required when log_to_file=True")

    close_file_logging()

    handlers: list[logging.Handler] = [_console_handler(verbosity)]
    if log_to_file and project_path is not None:
        handlers.append(_open_file_handler(project_path))

    root_level = logging.DEBUG if (verbosity > 0 or log_to_file) else logging.WARNING
    logging.basicConfig(level=root_level, format="%(message)s", handlers=handlers, force=True)

    # Apply runs on the event loop; keep its debug chatter out of the log.
    logging.getLogger("asyncio").setLevel(logging.WARNING)

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
    ]
    structlog.configure(
        processors=processors,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.make_filtering_bound_logger(root_level),
        cache_logger_on_first_use=True,
    )
    _configured = True


def get_logger(name: str | None = None) -> structlog.typing.FilteringBoundLogger:
    """Get a structured logger, configuring defaults on first use.

    Args:
        name: Logger name (typically __name__).
    """
    if not _configured:
        configure_logging()

    logger: structlog.typing.FilteringBoundLogger = structlog.get_logger(name)
    return logger


@contextmanager
def bound_context(**values: Any) -> Iterator[None]:
    """Attach key/value context to every event logged inside the block.

    Context is held in contextvars, so it follows the current asyncio task
    and does not leak into concurrently running applies.
    """
    with structlog.contextvars.bound_contextvars(**values):
        yield


def get_logs_dir() -> Path | None:
    """Get the configured logs directory, or None if file logging is off."""
    return _logs_dir


def close_file_logging() -> None:
    """Close the JSONL file handler, if any."""
    global _file_handler, _logs_dir
    if _file_handler is not None:
        _file_handler.close()
        _file_handler = None
    _logs_dir = None
