"""Tests for structured logging configuration."""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING

import pytest

from graphloom.observability import (
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


def test_configure_logging_verbose_opens_root() -> None:
    """verbosity=1 lets records through to the console handler's filter."""
    configure_logging(verbosity=1)

    root_logger = logging.getLogger()
    assert root_logger.level == logging.DEBUG
    assert root_logger.handlers[0].level == logging.INFO


def test_configure_logging_very_verbose_sets_debug() -> None:
    """verbosity=2 sets DEBUG level on the console handler."""
    configure_logging(verbosity=2)

    root_logger = logging.getLogger()
    assert root_logger.handlers[0].level == logging.DEBUG


def test_get_logger_auto_configures() -> None:
    """get_logger configures logging if not already done."""
    import graphloom.observability.logging as log_module

    log_module._configured = False

    logger = get_logger("test")

    assert log_module._configured is True
    assert hasattr(logger, "info")
    assert hasattr(logger, "warning")


def test_log_to_file_requires_dir() -> None:
    with pytest.raises(ValueError, match="log_dir is required"):
        configure_logging(log_to_file=True)


def test_file_logging_writes_jsonl(tmp_path: Path) -> None:
    """Events land in debug.jsonl with their key/value pairs."""
    log_dir = tmp_path / "logs"
    configure_logging(verbosity=0, log_to_file=True, log_dir=log_dir)
    try:
        assert get_logs_dir() == log_dir
        get_logger("graphloom.test").info("nodes_renamed", count=3)
    finally:
        close_file_logging()
        configure_logging(verbosity=0)

    lines = (log_dir / "debug.jsonl").read_text().strip().splitlines()
    entries = [json.loads(line) for line in lines]
    entry = next(e for e in entries if e["event"] == "nodes_renamed")
    assert entry["count"] == 3
    assert entry["level"] == "info"
    assert "timestamp" in entry
    assert entry["logger"] == "graphloom.test"


def test_close_file_logging_is_idempotent() -> None:
    close_file_logging()
    close_file_logging()


def test_module_logger_follows_reconfiguration(tmp_path: Path) -> None:
    """A logger bound before --log is applied still reaches the file."""
    logger = get_logger("graphloom.early")
    logger.info("before_file_logging")

    log_dir = tmp_path / "logs"
    configure_logging(verbosity=0, log_to_file=True, log_dir=log_dir)
    try:
        logger.info("after_file_logging")
    finally:
        close_file_logging()
        configure_logging(verbosity=0)

    content = (log_dir / "debug.jsonl").read_text()
    assert "after_file_logging" in content
    assert "before_file_logging" not in content
