"""Observability module for rzmanager.

Provides structured logging for tracking, staging, and commit operations.
"""

from rzmanager.observability.logging import (
    bound_context,
    close_file_logging,
    configure_logging,
    get_logger,
    get_logs_dir,
)

__all__ = [
    "bound_context",
    "close_file_logging",
    "configure_logging",
    "get_logger",
    "get_logs_dir",
]
