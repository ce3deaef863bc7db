"""Logging setup for podcraft runs.

Console output goes through rich at a level picked by ``-v``. With ``--log``
every event of a run is also appended to ``<output>/logs/debug.jsonl``, one
JSON object per line, keyed by run and stage so a single run's history can be
filtered out of a shared log.
"""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

import structlog
from rich.console import Console
from rich.logging import RichHandler

from podcraft.observability.tracing import get_pipeline_run_id

if TYPE_CHECKING:
    from pathlib import Path

    from structlog.typing import Processor

LOG_FILENAME = "debug.jsonl"

_configured = False
_file_handler: RunLogHandler | None = None

# Client libraries that log every request at DEBUG
_QUIET_LOGGERS = (
    "httpx",
    "httpcore",
    "openai",
    "anthropic",
    "langchain",
    "langchain_core",
    "asyncio",
)


class RunLogHandler(logging.FileHandler):
    """Append log records as run-scoped JSON lines.

    Every entry leads with ``ts``, ``level``, ``run_id``, ``stage`` and
    ``event``; any other structlog keys follow. Records from third-party
    loggers emitted inside a run pick up the run id from the current context.
    """

    def emit(self, record: logging.LogRecord) -> None:
        try:
            line = json.dumps(self._entry(record), default=str)
            if self.stream:
                self.stream.write(line + "\n")
                self.stream.flush()
        except Exception:
            self.handleError(record)

    @staticmethod
    def _entry(record: logging.LogRecord) -> dict[str, Any]:
        fields: dict[str, Any] = {}
        if isinstance(record.msg, dict):
            fields = dict(record.msg)
            event = fields.pop("event", None)
        else:
            event = record.getMessage()
        fields.pop("level", None)
        fields.pop("timestamp", None)
        return {
            "ts": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "run_id": fields.pop("run_id", None) or get_pipeline_run_id(),
            "stage": fields.pop("stage", None),
            "event": event,
            "logger": record.name,
            **fields,
        }


def _console_level(verbosity: int) -> int:
    if verbosity <= 0:
        return logging.WARNING
    return logging.INFO if verbosity == 1 else logging.DEBUG


def _console_handler(verbosity: int) -> RichHandler:
    return RichHandler(
        console=Console(stderr=True),
        level=_console_level(verbosity),
        markup=False,
        show_time=verbosity >= 1,
        show_path=verbosity >= 2,
        rich_tracebacks=True,
        tracebacks_show_locals=verbosity >= 2,
    )


def configure_logging(
    verbosity: int = 0,
    log_to_file: bool = False,
    log_dir: Path | None = None,
) -> None:
    """Configure console and (optionally) file logging.

    Safe to call again: the CLI first configures the console, then adds the
    file log once the output directory is known.

    Args:
        verbosity: 0 shows warnings, 1 adds info, 2 or more adds debug.
        log_to_file: Also write every event to ``log_dir / debug.jsonl``.
        log_dir: Directory for the JSONL log; created if missing.

    Raises:
        ValueError: If ``log_to_file`` is set without ``log_dir``.
    """
    global _configured

    if log_to_file and log_dir is None:
        raise ValueError("log_dir is required when log_to_file=True")

    close_file_logging()
    handlers: list[logging.Handler] = [_console_handler(verbosity)]
    if log_to_file and log_dir is not None:
        handlers.append(_open_run_log(log_dir))

    # The root logger passes everything the file log wants; handlers filter.
    root_level = logging.DEBUG if (verbosity > 0 or log_to_file) else logging.WARNING
    logging.basicConfig(level=root_level, format="%(message)s", handlers=handlers, force=True)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

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


def _open_run_log(log_dir: Path) -> RunLogHandler:
    global _file_handler
    log_dir.mkdir(parents=True, exist_ok=True)
    _file_handler = RunLogHandler(str(log_dir / LOG_FILENAME), mode="a", encoding="utf-8")
    _file_handler.setLevel(logging.DEBUG)
    return _file_handler


def get_logger(name: str | None = None) -> structlog.typing.FilteringBoundLogger:
    """Get a structlog logger, configuring console logging on first use."""
    if not _configured:
        configure_logging()
    logger: structlog.typing.FilteringBoundLogger = structlog.get_logger(name)
    return logger


def close_file_logging() -> None:
    """Flush and close the JSONL log, if one is open."""
    global _file_handler
    if _file_handler is not None:
        _file_handler.close()
        _file_handler = None
