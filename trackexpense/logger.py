"""
Structured JSON Logging Module.

Every component logs through a ``StructuredLogger`` received by injection.
All of them are children of the ``trackexpense`` logger, which owns the
handlers (stdout plus one rotating file), so however many component
loggers exist the log file is opened and rotated in exactly one place.

Each line is one JSON object.  Records carry the emitting thread's name
because cloud writes and change-feed polls run off the caller's thread.
"""

import json
import logging
import sys
import threading
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional, TextIO, Union

ROOT_LOGGER_NAME: str = "trackexpense"

_configure_lock = threading.Lock()


class JSONFormatter(logging.Formatter):
    """Formats log records as structured JSON objects.

    Each log entry contains:
        - timestamp  (ISO-8601, UTC)
        - level      (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        - logger_name
        - thread     (``MainThread``, ``CloudWriter_0``, ``CloudPoller`` ...)
        - message
        - extra      (optional structured fields passed via the `extra` kwarg)
        - exception  (formatted traceback when ``exc_info`` is set)
    """

    # Standard LogRecord attribute names, computed once.
    _STANDARD_ATTRS: frozenset[str] = frozenset(
        logging.LogRecord(
            name="", level=0, pathname="", lineno=0, msg="", args=(), exc_info=None
        ).__dict__.keys()
    ) | {"message", "asctime", "taskName"}

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Union[str, dict[str, str]]] = {
            "timestamp": datetime.fromtimestamp(
                record.created, tz=timezone.utc
            ).isoformat(),
            "level": record.levelname,
            "logger_name": record.name,
            "thread": record.threadName or "",
            "message": record.getMessage(),
        }

        extra_fields: dict[str, str] = {
            key: str(value)
            for key, value in record.__dict__.items()
            if key not in self._STANDARD_ATTRS
        }
        if extra_fields:
            entry["extra"] = extra_fields

        if record.exc_info and not record.exc_text:
            record.exc_text = self.formatException(record.exc_info)
        if record.exc_text:
            entry["exception"] = record.exc_text

        return json.dumps(entry, ensure_ascii=False)


def configure_logging(
    level: Optional[int] = None,
    stream: Optional[TextIO] = None,
    log_file: Optional[str] = None,
    max_bytes: Optional[int] = None,
    backup_count: Optional[int] = None,
) -> logging.Logger:
    """Install the handlers on the ``trackexpense`` logger.

    Only the first call has an effect; later calls return the already
    configured logger.  Arguments left as ``None`` come from
    :class:`~trackexpense.config.AppConfig`.
    """
    # Lazy import to avoid circular dependency at module level
    from trackexpense.config import get_config

    root = logging.getLogger(ROOT_LOGGER_NAME)
    with _configure_lock:
        if root.handlers:
            return root

        cfg = get_config()
        resolved_level: int = (
            level if level is not None
            else getattr(logging, cfg.LOG_LEVEL.upper(), logging.INFO)
        )
        root.setLevel(resolved_level)
        formatter = JSONFormatter()

        stream_handler = logging.StreamHandler(stream or sys.stdout)
        stream_handler.setFormatter(formatter)
        root.addHandler(stream_handler)

        resolved_log_file: str = log_file or cfg.LOG_FILE
        try:
            log_path = Path(resolved_log_file)
            log_path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = RotatingFileHandler(
                filename=str(log_path),
                maxBytes=max_bytes if max_bytes is not None else cfg.LOG_MAX_BYTES,
                backupCount=backup_count if backup_count is not None else cfg.LOG_BACKUP_COUNT,
                encoding="utf-8",
            )
            file_handler.setFormatter(formatter)
            root.addHandler(file_handler)
        except OSError as exc:
            root.warning(
                "Could not create log file '%s': %s. "
                "Continuing with console logging only.",
                resolved_log_file,
                exc,
            )
    return root


class StructuredLogger:
    """Injectable logger for one component.

    *name* is placed under the ``trackexpense`` hierarchy
    (``"database"`` becomes ``"trackexpense.database"``), so records reach
    the shared handlers by propagation.  The underlying ``logging.Logger``
    is exposed via the ``.logger`` attribute.

    Usage::

        log = StructuredLogger(name="expenses")
        log.info("Expense created", extra={"expense_id": "e1"})
    """

    def __init__(self, name: str = ROOT_LOGGER_NAME, level: Optional[int] = None) -> None:
        configure_logging()
        self._logger: logging.Logger = logging.getLogger(_qualify(name))
        if level is not None:
            self._logger.setLevel(level)

    @property
    def logger(self) -> logging.Logger:
        """Access the underlying ``logging.Logger`` directly."""
        return self._logger

    @property
    def name(self) -> str:
        return self._logger.name

    def debug(self, msg: str, *args: object, **kwargs: object) -> None:
        self._logger.debug(msg, *args, **kwargs)

    def info(self, msg: str, *args: object, **kwargs: object) -> None:
        self._logger.info(msg, *args, **kwargs)

    def warning(self, msg: str, *args: object, **kwargs: object) -> None:
        self._logger.warning(msg, *args, **kwargs)

    def error(self, msg: str, *args: object, **kwargs: object) -> None:
        self._logger.error(msg, *args, **kwargs)

    def exception(self, msg: str, *args: object, **kwargs: object) -> None:
        """Log at ERROR with the active exception's traceback."""
        self._logger.exception(msg, *args, **kwargs)

    def critical(self, msg: str, *args: object, **kwargs: object) -> None:
        self._logger.critical(msg, *args, **kwargs)


def _qualify(name: str) -> str:
    if name == ROOT_LOGGER_NAME or name.startswith(ROOT_LOGGER_NAME + "."):
        return name
    return f"{ROOT_LOGGER_NAME}.{name}"


def get_logger(name: str = ROOT_LOGGER_NAME) -> StructuredLogger:
    """Create and return a ``StructuredLogger`` instance with the given *name*."""
    return StructuredLogger(name=name)
