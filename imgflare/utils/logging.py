"""Structured logging for ImgFlare.

Every record carries ``operation``, ``image_id`` and ``status`` fields so a
log line can be traced back to the workflow and image it concerns. Output goes
to stderr; stdout is reserved for command output.
"""

from __future__ import annotations

import logging
import sys
from threading import Lock
from typing import Any, Final

from .config import get_settings

CONTEXT_FIELDS: Final[tuple[str, ...]] = ("operation", "image_id", "status")
PLACEHOLDER: Final[str] = "-"

LOG_FORMAT: Final[str] = (
    "%(asctime)s %(levelname)-7s %(name)s "
    "[op=%(operation)s image=%(image_id)s status=%(status)s] %(message)s"
)

_configured = False
_configure_lock: Final = Lock()


class ContextualFormatter(logging.Formatter):
    """Formatter tolerant of records logged without the structured fields."""

    def __init__(self, fmt: str = LOG_FORMAT, fields: tuple[str, ...] = CONTEXT_FIELDS) -> None:
        super().__init__(fmt)
        self._fields = fields

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        for field in self._fields:
            record.__dict__.setdefault(field, PLACEHOLDER)
        return super().format(record)


def configure_logging(level: str | None = None) -> None:
    """Attach the stderr handler to the root logger once per process."""

    global _configured
    with _configure_lock:
        if _configured:
            return

        level_name = (level or get_settings().log_level).upper()
        numeric_level = logging.getLevelName(level_name)
        if not isinstance(numeric_level, int):
            numeric_level = logging.WARNING

        root = logging.getLogger()
        root.setLevel(numeric_level)
        formatter = ContextualFormatter()

        if root.handlers:
            # Existing handlers keep their destination.
            for existing in root.handlers:
                existing.setFormatter(formatter)
        else:
            stderr_handler = logging.StreamHandler(sys.stderr)
            stderr_handler.setFormatter(formatter)
            root.addHandler(stderr_handler)

        _configured = True


class ContextLogger(logging.LoggerAdapter):
    """Adapter whose bound context can be overridden per call via ``extra``."""

    def process(self, msg: str, kwargs: dict[str, Any]) -> tuple[str, dict[str, Any]]:  # type: ignore[override]
        kwargs["extra"] = {**(self.extra or {}), **(kwargs.get("extra") or {})}
        return msg, kwargs


def setup_logger(
    name: str,
    *,
    level: str | None = None,
    context: dict[str, Any] | None = None,
) -> ContextLogger:
    """Return a module logger bound to ``context``.

    Args:
        name: Logger name, usually ``__name__``.
        level: Optional per-logger level override.
        context: Default values for the structured fields.
    """

    configure_logging()
    logger = logging.getLogger(name)
    if level is not None:
        logger.setLevel(level.upper())

    bound = dict.fromkeys(CONTEXT_FIELDS, PLACEHOLDER)
    bound.update(context or {})
    return ContextLogger(logger, bound)


def log_operation(
    logger: logging.Logger | logging.LoggerAdapter,
    operation: str,
    image_id: str | None,
    status: str,
    **details: Any,
) -> None:
    """
    Emit one line summarising a workflow outcome.

    ``error`` and ``failed`` statuses log at ERROR; anything else at INFO.
    Extra keyword arguments are appended to the message.
    """
    outcome = status or "unknown"
    message = f"{operation} finished: {outcome}"
    if details:
        message += " (" + ", ".join(f"{key}={value}" for key, value in details.items()) + ")"

    level = logging.ERROR if outcome.lower() in {"error", "failed"} else logging.INFO
    logger.log(
        level,
        message,
        extra={"operation": operation, "image_id": image_id or PLACEHOLDER, "status": outcome},
    )
