"""Tests for structured logging configuration."""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING

import pytest

from podcraft.observability import (
    bind_stage,
    close_file_logging,
    configure_logging,
    get_logger,
    run_context,
)

if TYPE_CHECKING:
    from pathlib import Path


def test_configure_logging_sets_level_warning() -> None:
    """Default verbosity (0) sets WARNING level."""
    configure_logging(verbosity=0)

    assert logging.getLogger().level == logging.WARNING


def test_configure_logging_verbose_opens_root_level() -> None:
    """Root level is DEBUG when verbose; the console handler filters."""
    configure_logging(verbosity=1)

    assert logging.getLogger().level == logging.DEBUG


def test_get_logger_auto_configures() -> None:
    """get_logger configures logging if not already done."""
    import podcraft.observability.logging as log_module

    log_module._configured = False

    logger = get_logger("test")

    assert log_module._configured is True
    assert hasattr(logger, "info")


def test_configure_logging_suppresses_noisy_loggers() -> None:
    configure_logging(verbosity=2)

    for name in ("httpx", "openai", "anthropic", "langchain"):
        assert logging.getLogger(name).level == logging.WARNING


def test_file_logging_requires_directory() -> None:
    with pytest.raises(ValueError, match="log_dir is required"):
        configure_logging(verbosity=0, log_to_file=True, log_dir=None)


def _read_entries(path: Path) -> list[dict[str, object]]:
    lines = path.read_text(encoding="utf-8").splitlines()
    return [json.loads(line) for line in lines]


def test_file_logging_writes_jsonl(tmp_path: Path) -> None:
    """Events land in debug.jsonl with their key/value context."""
    logs_dir = tmp_path / "logs"
    configure_logging(verbosity=0, log_to_file=True, log_dir=logs_dir)
    try:
        logging.getLogger("podcraft.test").info({"event": "stage_start", "stage": "summary"})
    finally:
        close_file_logging()

    entries = _read_entries(logs_dir / "debug.jsonl")
    entry = next(e for e in entries if e["event"] == "stage_start")
    assert entry["stage"] == "summary"
    assert entry["level"] == "INFO"
    assert entry["run_id"] is None


def test_file_entries_carry_run_and_stage(tmp_path: Path) -> None:
    configure_logging(verbosity=0, log_to_file=True, log_dir=tmp_path)
    try:
        with run_context("run-7"), bind_stage("quotes"):
            get_logger("podcraft.test").info("quote_kept", speaker="Dana")
            logging.getLogger("httpx").warning("plain library message")
        get_logger("podcraft.test").info("after_run")
    finally:
        close_file_logging()

    entries = {e["event"]: e for e in _read_entries(tmp_path / "debug.jsonl")}
    kept = entries["quote_kept"]
    assert list(kept)[:5] == ["ts", "level", "run_id", "stage", "event"]
    assert kept["run_id"] == "run-7"
    assert kept["stage"] == "quotes"
    assert kept["speaker"] == "Dana"
    library = entries["plain library message"]
    assert library["run_id"] == "run-7"
    assert library["logger"] == "httpx"
    assert entries["after_run"]["run_id"] is None
    assert entries["after_run"]["stage"] is None


def test_reconfiguration_closes_previous_file_handler(tmp_path: Path) -> None:
    import podcraft.observability.logging as log_module

    configure_logging(verbosity=0, log_to_file=True, log_dir=tmp_path)
    first_handler = log_module._file_handler
    assert first_handler is not None

    configure_logging(verbosity=0, log_to_file=True, log_dir=tmp_path)
    try:
        assert first_handler.stream is None or first_handler.stream.closed
        assert log_module._file_handler is not None
    finally:
        close_file_logging()
