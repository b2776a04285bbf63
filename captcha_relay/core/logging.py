"""Logging setup for the relay.

``setup_logging()`` is called once from the application lifespan and wires
the root logger to:

- stdout, as plain text or as JSON lines (``LOG_JSON``) for log shippers
- a size-rotated file under ``LOG_FILE_PATH`` (always plain text)

Every record is stamped with the id of the HTTP request that produced it,
taken from a context variable that ``RequestIDMiddleware`` sets. Background
inference runs after the response, so its records carry no request id and
are correlated by ``task_id`` instead.

Anything derived from an exception goes through ``sanitize_error()`` before
it is logged or stored as a task message: the Gemini key travels in the
request URL and shows up in httpx error text.
"""

import logging
import re
import sys
from contextvars import ContextVar
from datetime import UTC, datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

from pythonjsonlogger.json import JsonFormatter

from captcha_relay.core.config import Settings, get_settings

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"

# Libraries that log every request at INFO
NOISY_LOGGERS = ("httpx", "httpcore", "uvicorn.access")

# (pattern, replacement) pairs applied in order
_REDACTIONS: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"([?&]key=)[^&\s'\"]+", re.IGNORECASE), r"\1[REDACTED]"),
    (re.compile(r"Bearer\s+\S+", re.IGNORECASE), "[REDACTED]"),
    (
        re.compile(r"(password|secret|token|api[_-]?key|auth)[=:]\s*\S+", re.IGNORECASE),
        "[REDACTED]",
    ),
]
_PATH_PATTERN = re.compile(r"(/[^\s:?]+)+")

_request_id: ContextVar[str | None] = ContextVar("request_id", default=None)


def get_request_id() -> str | None:
    return _request_id.get()


def set_request_id(request_id: str | None) -> None:
    _request_id.set(request_id)


class ContextFilter(logging.Filter):
    """Copy the current request id onto each record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = get_request_id()  # type: ignore[attr-defined]
        return True


class CustomJsonFormatter(JsonFormatter):
    """JSON lines with timestamp, level, component and request id."""

    def add_fields(
        self,
        log_record: dict[str, Any],
        record: logging.LogRecord,
        message_dict: dict[str, Any],
    ) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = datetime.fromtimestamp(record.created, UTC).isoformat()
        log_record["level"] = record.levelname
        log_record["component"] = record.name
        request_id = getattr(record, "request_id", None)
        if request_id:
            log_record["request_id"] = request_id


def _console_handler(settings: Settings) -> logging.Handler:
    handler = logging.StreamHandler(sys.stdout)
    if settings.log_json:
        handler.setFormatter(CustomJsonFormatter("%(message)s"))
    else:
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
    return handler


def _file_handler(settings: Settings) -> logging.Handler:
    path = Path(settings.log_file_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        filename=path,
        maxBytes=settings.log_file_max_bytes,
        backupCount=settings.log_file_backup_count,
        encoding="utf-8",
    )
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    return handler


def setup_logging() -> None:
    """Replace the root logger's handlers according to the LOG_* settings.

    A log file that cannot be opened is reported and skipped; console
    logging always works.
    """
    settings = get_settings()
    level = logging.getLevelName(settings.log_level)

    root = logging.getLogger()
    root.setLevel(level)
    for handler in list(root.handlers):
        root.removeHandler(handler)

    handlers = [_console_handler(settings)]
    file_error: OSError | None = None
    try:
        handlers.append(_file_handler(settings))
    except OSError as e:
        file_error = e

    context_filter = ContextFilter()
    for handler in handlers:
        handler.setLevel(level)
        handler.addFilter(context_filter)
        root.addHandler(handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    if file_error is not None:
        root.warning(f"File logging disabled: {sanitize_error(file_error)}")
    root.info(
        f"Logging configured: level={settings.log_level}, "
        f"file={settings.log_file_path}, json={settings.log_json}"
    )


def _shorten_path(match: re.Match[str]) -> str:
    path = match.group(0)
    # "//host/..." is the tail of a URL, leave it readable
    if path.startswith("//"):
        return path
    head, _, name = path.rpartition("/")
    return f".../{name}" if head else path


def sanitize_error(error: Exception | str, max_length: int = 500) -> str:
    """Return ``error`` as text that is safe to log or hand to a client.

    Credentials (``?key=`` URL parameters, bearer tokens, ``api_key=``-style
    assignments) are replaced with ``[REDACTED]``, filesystem paths are cut
    down to the file name, and the result is truncated to ``max_length``.

    Args:
        error: Exception or message text
        max_length: Characters kept before "...[truncated]" is appended

    Returns:
        Sanitized message
    """
    msg = str(error)
    for pattern, replacement in _REDACTIONS:
        msg = pattern.sub(replacement, msg)
    msg = _PATH_PATTERN.sub(_shorten_path, msg)
    if len(msg) > max_length:
        msg = msg[:max_length] + "...[truncated]"
    return msg


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
