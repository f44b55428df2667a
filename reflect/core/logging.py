import json
import logging
import os
import re
import sys
import traceback
from datetime import UTC, datetime
from functools import lru_cache
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path
from typing import Any

from reflect.core.settings import get_settings

_STANDARD_LOG_RECORD_KEYS = set(logging.LogRecord("", 0, "", 0, "", (), None).__dict__.keys())
_STANDARD_LOG_RECORD_KEYS.update({"message", "asctime"})
_STRUCTURED_LOG_KEYS = {
    "component",
    "operation",
    "session_id",
    "context_data",
    "http_details",
    "error_type",
    "error_message",
}

_SECRET_KEYS = (
    "authorization",
    "cookie",
    "api-key",
    "api_key",
    "apikey",
    "token",
    "password",
    "secret",
    "jwt",
)

# Journal text is private; only its size is ever logged.
_JOURNAL_TEXT_KEYS = {
    "transcript",
    "draft_text",
    "drafttext",
    "recent_text",
    "recenttext",
    "notes_append",
    "memory_notes",
}


def _sanitize_filename(value: str) -> str:
    cleaned = re.sub(r"[^a-zA-Z0-9._-]+", "_", value.strip().lower())
    return cleaned.strip("._-") or "reflect"


def _redact_value(value: Any) -> Any:
    if isinstance(value, dict):
        out: dict[str, Any] = {}
        for k, v in value.items():
            key = str(k)
            lowered = key.lower()
            if any(part in lowered for part in _SECRET_KEYS):
                out[key] = "<redacted>"
            elif lowered in _JOURNAL_TEXT_KEYS:
                out[key] = f"<journal text: {len(str(v))} chars>"
            else:
                out[key] = _redact_value(v)
        return out

    if isinstance(value, (list, tuple)):
        return type(value)(_redact_value(v) for v in value)

    if isinstance(value, str):
        return re.sub(r"(?i)\bbearer\s+[a-z0-9\-._~+/]+=*", "Bearer <redacted>", value)

    return value


def _extract_extra_fields(record: logging.LogRecord) -> dict[str, Any]:
    return {
        key: value
        for key, value in record.__dict__.items()
        if key not in _STANDARD_LOG_RECORD_KEYS and key not in _STRUCTURED_LOG_KEYS
    }


def _context_for(record: logging.LogRecord) -> Any:
    context_data = getattr(record, "context_data", None)
    extra_fields = _extract_extra_fields(record)
    if extra_fields:
        if context_data is None:
            context_data = extra_fields
        elif isinstance(context_data, dict):
            context_data = {**extra_fields, **context_data}
        else:
            context_data = {"context_data": context_data, **extra_fields}
    return _redact_value(context_data) if context_data is not None else None


def _build_payload(record: logging.LogRecord, *, include_error: bool) -> dict[str, Any]:
    message = _redact_value(record.getMessage())
    component = getattr(record, "component", None)

    payload: dict[str, Any] = {
        "timestamp": datetime.now(UTC).isoformat(),
        "level": record.levelname,
        "logger": record.name,
        "component": component if isinstance(component, str) and component else record.name,
        "operation": getattr(record, "operation", None),
        "message": message,
        "context_data": _context_for(record),
        "http_details": _redact_value(getattr(record, "http_details", None)),
        "session_id": getattr(record, "session_id", None),
        "source_file": record.filename,
        "source_line": record.lineno,
        "source_function": record.funcName,
        "process": record.process,
    }

    if include_error:
        exc_type, exc_value, exc_tb = record.exc_info or (None, None, None)
        payload["error_type"] = (
            getattr(record, "error_type", None)
            or (exc_type.__name__ if exc_type else None)
            or "LogError"
        )
        payload["error_message"] = (
            getattr(record, "error_message", None)
            or (str(exc_value) if exc_value else None)
            or str(message)
        )
        if exc_type and exc_value and exc_tb:
            payload["stack_trace"] = "".join(
                traceback.format_exception(exc_type, exc_value, exc_tb)
            )

    return {k: v for k, v in payload.items() if v is not None}


class _JsonLineErrorFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        return json.dumps(_build_payload(record, include_error=True), ensure_ascii=False, default=str)


class _JsonLineStructuredFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        return json.dumps(_build_payload(record, include_error=False), ensure_ascii=False, default=str)


class _StructuredLogFilter(logging.Filter):
    """Only records logged with structured extras reach the structured JSONL file."""

    def filter(self, record: logging.LogRecord) -> bool:
        for key in ("context_data", "http_details", "session_id", "operation"):
            if getattr(record, key, None) is not None:
                return True
        return bool(_extract_extra_fields(record))


def _rotate_jsonl_namer(default_name: str) -> str:
    marker = ".jsonl."
    if marker not in default_name:
        return default_name
    before, after = default_name.split(marker, 1)
    return f"{before}_{after}.jsonl"


def _create_jsonl_handler(
    *,
    directory: Path,
    logger_name: str,
    kind: str,
    level: int,
    formatter: logging.Formatter,
) -> logging.Handler:
    directory.mkdir(parents=True, exist_ok=True)
    base_file = directory / f"{_sanitize_filename(logger_name)}_{kind}_{os.getpid()}.jsonl"

    handler = TimedRotatingFileHandler(
        filename=str(base_file),
        when="D",
        interval=1,
        backupCount=0,
        encoding="utf-8",
        delay=True,
        utc=True,
    )
    handler.setLevel(level)
    handler.setFormatter(formatter)
    handler.suffix = "%Y%m%d_%H%M%S"
    handler.namer = _rotate_jsonl_namer
    return handler


@lru_cache
def setup_logging(name: str | None = None, level: str | None = None) -> logging.Logger:
    """
    Set up logging configuration for the entire application.

    Args:
        name: Logger name (defaults to app name from settings)
        level: Log level (defaults to settings.log_level)

    Returns:
        Configured logger instance
    """
    settings = get_settings()
    logger_name = name or settings.app_name
    log_level = getattr(logging, (level or settings.log_level).upper())

    # Configure the root logger so every module logger inherits the handlers
    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(
        logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )
    root_logger.addHandler(console_handler)

    root_logger.addHandler(
        _create_jsonl_handler(
            directory=settings.logs_dir / "errors",
            logger_name=logger_name,
            kind="errors",
            level=logging.ERROR,
            formatter=_JsonLineErrorFormatter(),
        )
    )

    structured_handler = _create_jsonl_handler(
        directory=settings.logs_dir / "structured",
        logger_name=logger_name,
        kind="structured",
        level=logging.NOTSET,
        formatter=_JsonLineStructuredFormatter(),
    )
    structured_handler.addFilter(_StructuredLogFilter())
    root_logger.addHandler(structured_handler)

    app_logger = logging.getLogger(logger_name)
    app_logger.setLevel(log_level)
    return app_logger


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance with the given name."""
    return logging.getLogger(name)
