"""Structured logging built on Loguru.

Every module logs through ``from loguru import logger`` and attaches context
as keyword arguments (``cuit=...``, ``provider=...``, ``attempt=...``). This
module decides how those records are rendered:

- **console**: human-readable, lookup context inline (development)
- **json**: one JSON object per line (self-hosted)
- **gcp**: Google Cloud Logging structured entries (Cloud Run)

Standard library loggers (httpx, uvicorn, asyncio) are intercepted and routed
through Loguru so the whole process shares one format. Credential-bearing
fields (ticket token and sign, API keys) are redacted before rendering.
"""

from __future__ import annotations

import json
import logging
import sys
from collections.abc import Callable
from typing import TYPE_CHECKING, Any, Final, cast

from loguru import logger

from src.core.config import get_settings
from src.core.constants import REDACTED
from src.core.error_context import is_sensitive_field, sanitize_dict

if TYPE_CHECKING:
    from src.core.config import Settings

type LogRecord = dict[str, Any]
type RecordSerializer = Callable[[LogRecord], str]


class _LoggingState:
    """Whether ``setup_logging`` already ran in this process."""

    def __init__(self) -> None:
        self.configured = False


_state = _LoggingState()

FALLBACK_LOG_FORMAT: Final[str] = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
    "{message}"
)
CORRELATION_ID_DISPLAY_LENGTH: Final[int] = 8
MAX_FIELD_VALUE_LENGTH: Final[int] = 100

UVICORN_LOGGERS: Final[tuple[str, ...]] = ("uvicorn", "uvicorn.error", "uvicorn.access")
NOISY_LOGGERS: Final[tuple[str, ...]] = ("httpcore", "hpack")

GCP_SEVERITY: Final[dict[str, str]] = {
    "TRACE": "DEBUG",
    "DEBUG": "DEBUG",
    "INFO": "INFO",
    "SUCCESS": "INFO",
    "WARNING": "WARNING",
    "ERROR": "ERROR",
    "CRITICAL": "CRITICAL",
}


def _escape(value: object) -> str:
    return str(value).replace("{", "{{").replace("}", "}}")


def _short_id(value: object) -> str:
    return str(value)[:CORRELATION_ID_DISPLAY_LENGTH]


def _coloured_status(value: object) -> str:
    status = str(value)
    if status.startswith("2"):
        return f"<green>{status}</green>"
    if status.startswith("4"):
        return f"<red>{status}</red>"
    if status.startswith("5"):
        return f"<red><bold>{status}</bold></red>"
    return status


# Shown first, in this order, when present on a record
PRIORITY_FIELDS: Final[dict[str, Callable[[object], str]]] = {
    "correlation_id": _short_id,
    "actor_id": str,
    "cuit": str,
    "provider": str,
    "state": str,
    "attempt": lambda value: f"attempt={value}",
    "error_code": str,
    "status_code": _coloured_status,
    "duration_ms": lambda value: f"{value}ms",
}


def _format_extra_field(key: str, value: object) -> str:
    if is_sensitive_field(key):
        text = REDACTED
    else:
        text = str(value)
        if len(text) > MAX_FIELD_VALUE_LENGTH:
            text = text[: MAX_FIELD_VALUE_LENGTH - 3] + "..."
    return f"{_escape(key)}={_escape(text)}"


def _format_context_fields(extra: dict[str, Any]) -> list[str]:
    """Priority fields first (highlighted), then everything else."""
    parts = [
        f"<yellow>{_escape(render(extra[field]))}</yellow>"
        for field, render in PRIORITY_FIELDS.items()
        if extra.get(field) is not None
    ]
    parts.extend(
        f"<dim>{_format_extra_field(key, value)}</dim>"
        for key, value in extra.items()
        if key not in PRIORITY_FIELDS and not key.startswith("_") and value is not None
    )
    return parts


def format_console_with_context(record: LogRecord) -> str:
    """Loguru format function rendering the record's context inline.

    Returns a format string, so user-supplied text is brace-escaped and the
    traceback is left to Loguru's ``{exception}`` placeholder.
    """
    try:
        timestamp = record.get("time")
        time_str = (
            timestamp.strftime("%Y-%m-%d %H:%M:%S.%f")[:-3] if timestamp else "unknown"
        )
        level = record.get("level")
        level_name = getattr(level, "name", str(level))

        parts = [
            f"<green>{time_str}</green>",
            f"<level>{level_name: <8}</level>",
            f"<cyan>{record.get('name', '')}:{record.get('function', '')}:"
            f"{record.get('line', '')}</cyan>",
        ]

        context_parts = _format_context_fields(record.get("extra", {}))
        if context_parts:
            parts.append(" ".join(f"[{part}]" for part in context_parts))

        parts.append(_escape(record.get("message", "")))

        if record.get("exception"):
            parts.append("\n{{exception}}")

        return " | ".join(parts) + "\n"
    except (AttributeError, TypeError, ValueError, KeyError) as e:
        logger.trace("Failed to format log record: {}", e)
        return FALLBACK_LOG_FORMAT + "\n"


class InterceptHandler(logging.Handler):
    """Re-emits standard library log records through Loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Find the caller outside of the logging module
        try:
            frame, depth = sys._getframe(6), 6
            while frame and frame.f_code.co_filename == logging.__file__:
                next_frame = frame.f_back
                if next_frame is None:
                    break
                frame = next_frame
                depth += 1
        except ValueError:
            depth = 1

        logger.opt(depth=depth, exception=record.exc_info).bind(
            stdlib_logger=record.name
        ).log(level, record.getMessage())


def _public_extra(record: LogRecord) -> dict[str, Any]:
    extra = {k: v for k, v in record.get("extra", {}).items() if not k.startswith("_")}
    return sanitize_dict(extra)


def serialize_for_json(record: LogRecord) -> str:
    """One flat JSON object per record; context keys sit beside the message."""
    log_entry: dict[str, Any] = {
        "timestamp": record["time"].isoformat(),
        "level": record["level"].name,
        "message": record["message"],
        "logger": record["name"],
        "function": record["function"],
        "line": record["line"],
    }
    log_entry.update(_public_extra(record))

    if exc := record.get("exception"):
        log_entry["exception"] = {
            "type": exc.type.__name__ if exc.type else None,
            "value": str(exc.value) if exc.value else None,
        }

    return json.dumps(log_entry, default=str) + "\n"


def serialize_for_gcp(record: LogRecord) -> str:
    """Cloud Logging structured entry.

    See https://cloud.google.com/logging/docs/structured-logging. The
    correlation ID becomes the trace field and the error fingerprint a label,
    so repeated provider failures group together.
    """
    settings = get_settings()
    log_entry: dict[str, Any] = {
        "severity": GCP_SEVERITY.get(record["level"].name, "INFO"),
        "message": record["message"],
        "timestamp": record["time"].isoformat(),
        "serviceContext": {
            "service": settings.app_name,
            "version": settings.app_version,
        },
    }

    extra = _public_extra(record)
    if correlation_id := extra.pop("correlation_id", None):
        log_entry["logging.googleapis.com/trace"] = correlation_id
    if fingerprint := extra.get("fingerprint"):
        log_entry["logging.googleapis.com/labels"] = {
            "error_fingerprint": str(fingerprint)[:8]
        }
    if extra:
        log_entry["jsonPayload"] = extra

    if record.get("exception") or record["level"].name in ("ERROR", "CRITICAL"):
        log_entry["logging.googleapis.com/sourceLocation"] = {
            "file": record["file"].path,
            "line": str(record["line"]),
            "function": record["function"],
        }

    return json.dumps(log_entry, default=str) + "\n"


STRUCTURED_SERIALIZERS: Final[dict[str, RecordSerializer]] = {
    "json": serialize_for_json,
    "gcp": serialize_for_gcp,
}


def _structured_sink(serialize: RecordSerializer) -> Callable[[object], None]:
    def sink(message: object) -> None:
        if hasattr(message, "record"):
            sys.stdout.write(serialize(message.record))
            sys.stdout.flush()

    return sink


def setup_logging(settings: Settings) -> None:
    """Replace Loguru's default sink and route stdlib logging into it.

    Only the first call in a process has an effect.
    """
    if _state.configured:
        return

    logger.remove()

    log_config = settings.log_config
    formatter_type = log_config.log_formatter_type or "console"
    serialize = STRUCTURED_SERIALIZERS.get(formatter_type)

    if serialize is None:
        logger.add(
            sys.stdout,
            format=cast("Any", format_console_with_context),
            level=log_config.log_level,
            enqueue=True,
            colorize=True,
            diagnose=settings.debug,
            backtrace=settings.debug,
        )
    else:
        logger.add(
            _structured_sink(serialize),
            level=log_config.log_level,
            enqueue=True,
            diagnose=False,
            backtrace=False,
        )

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)

    for logger_name in UVICORN_LOGGERS:
        uvicorn_logger = logging.getLogger(logger_name)
        uvicorn_logger.handlers = [InterceptHandler()]
        uvicorn_logger.propagate = False

    for logger_name in NOISY_LOGGERS:
        logging.getLogger(logger_name).setLevel(logging.WARNING)

    logger.info(
        "Logging configured with {} formatter",
        formatter_type,
        formatter_type=formatter_type,
        log_level=log_config.log_level,
    )

    _state.configured = True
