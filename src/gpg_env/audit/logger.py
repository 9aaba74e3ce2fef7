"""Structured logging and the audit trail.

Records are rendered by structlog as one JSON object per line into
``gpg-env.log`` (owner and group readable only); warnings are echoed to
stderr as well. Audit records use their own stdlib logger so they reach
the file at any configured level but never the terminal.
"""

import logging
import os
import sys
import uuid
from contextlib import suppress
from datetime import UTC, datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Iterable

import structlog
from structlog.types import EventDict

from .events import EventType

LOG_FILE_NAME = "gpg-env.log"
AUDIT_LOGGER_NAME = "gpg_env.audit"
REDACTED = "***"

# Keys whose values never reach a log record
SENSITIVE_KEYS = frozenset(
    {"passphrase", "password", "secret", "token", "value", "plaintext"}
)


def get_log_dir(base_dir: str | Path | None = None) -> Path:
    """Resolve the log directory, ``~/.local/log`` unless given."""
    if base_dir is None:
        base_dir = Path.home() / ".local" / "log"
    return Path(base_dir).resolve()


def _open_log_file(
    log_dir: Path, max_bytes: int, backup_count: int
) -> RotatingFileHandler:
    os.makedirs(log_dir, mode=0o750, exist_ok=True)
    path = log_dir / LOG_FILE_NAME
    path.touch(mode=0o640, exist_ok=True)
    os.chmod(path, 0o640)

    handler = RotatingFileHandler(
        str(path), maxBytes=max_bytes, backupCount=backup_count
    )
    handler.setFormatter(logging.Formatter("%(message)s"))
    return handler


def _open_console() -> logging.Handler:
    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(logging.WARNING)
    handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
    handler.addFilter(lambda record: record.name != AUDIT_LOGGER_NAME)
    return handler


def add_timestamp(
    _: structlog.BoundLogger, __: str, event_dict: EventDict
) -> EventDict:
    """Add ISO 8601 timestamp."""
    event_dict["timestamp"] = datetime.now(UTC).isoformat()
    return event_dict


def redact(data: Any, keys: Iterable[str] = SENSITIVE_KEYS) -> Any:
    """Return a copy of ``data`` with sensitive entries masked.

    Dict keys are matched case-insensitively, at any nesting depth inside
    dicts and lists.
    """
    keys = frozenset(k.lower() for k in keys)

    def walk(item: Any) -> Any:
        if isinstance(item, dict):
            return {
                k: REDACTED if str(k).lower() in keys else walk(v)
                for k, v in item.items()
            }
        if isinstance(item, (list, tuple)):
            return [walk(v) for v in item]
        return item

    return walk(data)


def redact_processor(
    _: structlog.BoundLogger, __: str, event_dict: EventDict
) -> EventDict:
    return redact(event_dict)


def setup_logging(
    *,
    log_level: str = "WARNING",
    correlation_id: str | None = None,
    max_log_size: int = 5 * 1024 * 1024,  # 5 MB
    backup_count: int = 3,
    base_dir: str | Path | None = None,
) -> structlog.BoundLogger:
    """Route structlog through the stdlib root logger.

    Replaces whatever handlers were installed before, so it can be called
    once per CLI invocation.

    Args:
        log_level: Minimum level recorded (audit events are always kept)
        correlation_id: ID shared by every record of this run
        max_log_size: Size at which the log file rotates
        backup_count: Rotated files kept
        base_dir: Log directory

    Returns:
        A logger bound to the correlation ID
    """
    reset_logger()

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            add_timestamp,
            redact_processor,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    root = logging.getLogger()
    root.setLevel(log_level.upper())
    root.addHandler(_open_log_file(get_log_dir(base_dir), max_log_size, backup_count))
    root.addHandler(_open_console())
    logging.getLogger(AUDIT_LOGGER_NAME).setLevel(logging.INFO)

    return get_logger().bind(correlation_id=correlation_id or str(uuid.uuid4()))


def get_logger(name: str | None = None) -> structlog.BoundLogger:
    """Get a structlog logger."""
    return structlog.get_logger(name)


def reset_logger() -> None:
    """Detach all root handlers and restore structlog defaults.

    Idempotent.
    """
    root = logging.getLogger()
    for handler in root.handlers[:]:
        with suppress(Exception):
            handler.close()
        root.removeHandler(handler)
    logging.getLogger(AUDIT_LOGGER_NAME).setLevel(logging.NOTSET)

    structlog.reset_defaults()


def audit_event(
    event_type: EventType | str,
    user: str,
    success: bool,
    details: dict[str, Any] | None = None,
    error: Exception | None = None,
) -> None:
    """Record the outcome of an operation in the audit trail.

    Args:
        event_type: An :class:`EventType` or its value, e.g. ``"store.edit"``
        user: Who ran the operation
        success: Whether it succeeded
        details: Non-secret context; sensitive keys are masked anyway
        error: The exception that made it fail

    Raises:
        ValueError: If ``event_type`` is not a known event type.
    """
    record: dict[str, Any] = {
        "event_type": EventType(event_type).value,
        "user": user,
        "success": success,
    }
    if details:
        record["details"] = redact(details)
    if error is not None:
        record["error"] = {"type": type(error).__name__, "message": str(error)}

    audit_logger = get_logger(AUDIT_LOGGER_NAME).bind(**record)
    if success:
        audit_logger.info("audit_event")
    else:
        audit_logger.error("audit_event")
