"""
Structured logging for the Biomes client.

Log lines carry keyword fields and, inside a LogContext, the user and
load attempt they belong to. Output is either one JSON object per line or
plain text.

Usage:
    from biomes.logging_config import LogContext, configure_logging, get_logger

    configure_logging(level="INFO", json_output=True)

    logger = get_logger(__name__)
    with LogContext(user_id=42, load_attempt=1):
        logger.info("Client loaded", duration_seconds=4.2)
"""

import json
import logging
import logging.handlers
import os
import sys
import threading
from contextvars import ContextVar, Token
from datetime import datetime, timezone
from typing import Any, Dict, Optional

_load_context: ContextVar[Dict[str, Any]] = ContextVar("biomes_load_context", default={})

# Context keys, in the order they are rendered
CONTEXT_KEYS = ("user_id", "load_attempt")

LOG_LEVEL = os.environ.get("BIOMES_LOG_LEVEL", "INFO").upper()
LOG_FORMAT = os.environ.get("BIOMES_LOG_FORMAT", "text")  # "json" or "text"
LOG_FILE = os.environ.get("BIOMES_LOG_FILE", "")
LOG_MAX_BYTES = int(os.environ.get("BIOMES_LOG_MAX_BYTES", 5 * 1024 * 1024))
LOG_BACKUP_COUNT = int(os.environ.get("BIOMES_LOG_BACKUP_COUNT", 3))


def _context_for() -> Dict[str, Any]:
    ctx = _load_context.get()
    return {key: ctx[key] for key in CONTEXT_KEYS if ctx.get(key) is not None}


class JSONFormatter(logging.Formatter):
    """One JSON object per line: ts, level, logger, msg, context, fields."""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "ts": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        payload.update(_context_for())
        payload.update(getattr(record, "structured_fields", {}))
        if record.exc_info and record.exc_info[0] is not None:
            payload["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
            }
        return json.dumps(payload, default=str)


class TextFormatter(logging.Formatter):
    """`<time> [LEVEL] [module] [user:N] [attempt:N] message k=v ...`"""

    _labels = {"user_id": "user", "load_attempt": "attempt"}

    def format(self, record: logging.LogRecord) -> str:
        parts = [
            datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S"),
            f"[{record.levelname}]",
            f"[{record.name.rsplit('.', 1)[-1]}]",
        ]
        parts.extend(f"[{self._labels[k]}:{v}]" for k, v in _context_for().items())
        parts.append(record.getMessage())
        fields = getattr(record, "structured_fields", {})
        if fields:
            parts.append(" ".join(f"{k}={v}" for k, v in fields.items()))
        text = " ".join(parts)
        if record.exc_info:
            text += "\n" + self.formatException(record.exc_info)
        return text


class StructuredLogger:
    """Wraps a stdlib logger so calls can pass keyword fields."""

    def __init__(self, name: str):
        self._logger = logging.getLogger(name)

    def _log(self, level: int, message: str, fields: Dict[str, Any]) -> None:
        if self._logger.isEnabledFor(level):
            self._logger.log(level, message, extra={"structured_fields": fields})

    def debug(self, message: str, **fields: Any) -> None:
        self._log(logging.DEBUG, message, fields)

    def info(self, message: str, **fields: Any) -> None:
        self._log(logging.INFO, message, fields)

    def warning(self, message: str, **fields: Any) -> None:
        self._log(logging.WARNING, message, fields)

    def error(self, message: str, **fields: Any) -> None:
        self._log(logging.ERROR, message, fields)


class LogContext:
    """Attach user/attempt fields to every log line emitted inside the block."""

    def __init__(self, **fields: Any):
        self._fields = fields
        self._token: Optional[Token[Dict[str, Any]]] = None

    def __enter__(self) -> "LogContext":
        self._token = _load_context.set({**_load_context.get(), **self._fields})
        return self

    def __exit__(self, *args) -> None:
        if self._token is not None:
            _load_context.reset(self._token)
            self._token = None


_loggers: Dict[str, StructuredLogger] = {}
_loggers_lock = threading.Lock()


def get_logger(name: str) -> StructuredLogger:
    """Get the cached StructuredLogger for `name`."""
    with _loggers_lock:
        if name not in _loggers:
            _loggers[name] = StructuredLogger(name)
        return _loggers[name]


def configure_logging(
    level: Optional[str] = None,
    json_output: Optional[bool] = None,
    log_file: Optional[str] = None,
) -> None:
    """
    Install the client's log handlers on the root logger.

    Args:
        level: Level name; defaults to BIOMES_LOG_LEVEL
        json_output: JSON lines if True, text if False; defaults to BIOMES_LOG_FORMAT
        log_file: Also write to this rotating file; defaults to BIOMES_LOG_FILE
    """
    log_level = getattr(logging, (level or LOG_LEVEL).upper(), logging.INFO)
    use_json = json_output if json_output is not None else LOG_FORMAT == "json"
    formatter = JSONFormatter() if use_json else TextFormatter()

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    file_path = log_file or LOG_FILE
    if file_path:
        handlers.append(
            logging.handlers.RotatingFileHandler(
                file_path, maxBytes=LOG_MAX_BYTES, backupCount=LOG_BACKUP_COUNT
            )
        )

    root = logging.getLogger()
    for handler in root.handlers[:]:
        root.removeHandler(handler)
    for handler in handlers:
        handler.setFormatter(formatter)
        root.addHandler(handler)
    root.setLevel(log_level)
    logging.getLogger("biomes").setLevel(log_level)
