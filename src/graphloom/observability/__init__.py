"""Observability module for graphloom.

Provides structured logging (structlog over rich / JSONL handlers).
"""

from graphloom.observability.logging import (
    close_file_logging,
    configure_logging,
    get_logger,
    get_logs_dir,
)

__all__ = [
    "close_file_logging",
    "configure_logging",
    "get_logger",
    "get_logs_dir",
]
