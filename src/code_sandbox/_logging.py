"""Logging for code-sandbox.

The package logs under the ``code_sandbox`` logger and ships only a
NullHandler, so applications decide where records go. Two knobs:

- CODE_SANDBOX_LOG_LEVEL sets the package level at import time
- configure_logging() attaches a stderr handler for the CLI

Modules pass structured fields through ``extra={...}``. The CLI handler
renders them after the message:

    INFO [2026-10-19 12:00:00] code_sandbox.executor - Execution completed context_id=tmp_1_ab.py exit_code=0

Records travel through a bounded queue drained by a listener thread, so a
slow stderr never stalls the event loop. A full queue drops records.
"""

import atexit
import logging
import logging.handlers
import os
import queue
from typing import Any

import click

LIBRARY_LOGGER_NAME: str = "code_sandbox"

_QUEUE_CAPACITY = 4096

# Attributes every LogRecord has; anything else arrived through `extra`
_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime"}

_library_logger = logging.getLogger(LIBRARY_LOGGER_NAME)
_library_logger.addHandler(logging.NullHandler())


def _level_from_env() -> int | None:
    name = os.environ.get("CODE_SANDBOX_LOG_LEVEL", "").strip().upper()
    # NOTSET (0) counts as unset
    return logging.getLevelNamesMapping().get(name) or None


if (_env_level := _level_from_env()) is not None:
    _library_logger.setLevel(_env_level)


def extra_fields(record: logging.LogRecord) -> dict[str, Any]:
    """Fields attached to record through ``extra``, in insertion order."""
    return {key: value for key, value in vars(record).items() if key not in _RECORD_ATTRS}


class ContextFormatter(logging.Formatter):
    """Formatter that appends ``extra`` fields as key=value pairs."""

    def __init__(self) -> None:
        super().__init__(
            fmt="%(levelname)s [%(asctime)s] %(name)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    def formatMessage(self, record: logging.LogRecord) -> str:  # noqa: N802
        text = super().formatMessage(record)
        fields = extra_fields(record)
        if not fields:
            return text
        return text + " " + " ".join(f"{key}={value}" for key, value in fields.items())


class _StderrHandler(logging.Handler):
    """Writes dimmed lines to stderr via click.echo (ANSI stripped off-TTY)."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            click.echo(click.style(self.format(record), dim=True), err=True)
        except BlockingIOError:
            pass  # stderr full, drop the line
        except Exception:  # noqa: BLE001
            self.handleError(record)


class _DroppingQueueHandler(logging.handlers.QueueHandler):
    """QueueHandler that drops records instead of blocking when the queue is full."""

    def prepare(self, record: logging.LogRecord) -> logging.LogRecord:
        # Same-process queue: keep the record intact for ContextFormatter
        return record

    def enqueue(self, record: logging.LogRecord) -> None:
        try:
            self.queue.put_nowait(record)
        except queue.Full:
            pass


_queue_handler: _DroppingQueueHandler | None = None


def get_logger(name: str) -> logging.Logger:
    """Get a logger for the given module name.

    All code_sandbox modules use this instead of logging.getLogger()
    directly for a consistent logger hierarchy.
    """
    return logging.getLogger(name)


def configure_logging(
    *,
    level: int | str | None = None,
    quiet: bool = False,
) -> None:
    """Send package logs to stderr. For CLI and application entry points.

    The stderr handler is installed once; later calls only change the
    level. Pending records are flushed at interpreter exit.

    Args:
        level: Log level (e.g. logging.DEBUG, "WARNING"). Overrides env var.
        quiet: If True, set level to ERROR. Takes precedence over level.
    """
    global _queue_handler  # noqa: PLW0603

    if _queue_handler is None:
        records: queue.Queue[logging.LogRecord] = queue.Queue(maxsize=_QUEUE_CAPACITY)
        stderr_handler = _StderrHandler()
        stderr_handler.setFormatter(ContextFormatter())
        listener = logging.handlers.QueueListener(records, stderr_handler)
        listener.start()
        atexit.register(listener.stop)
        _queue_handler = _DroppingQueueHandler(records)
        _library_logger.addHandler(_queue_handler)

    if quiet:
        _library_logger.setLevel(logging.ERROR)
    elif level is not None:
        # setLevel() raises ValueError on unknown level names
        _library_logger.setLevel(level)
