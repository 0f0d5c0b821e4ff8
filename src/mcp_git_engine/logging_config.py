"""Structured JSON logging for the engine.

stdout carries the MCP stdio transport, so every record goes to stderr as one
JSON object. Operation context passed through ``extra=`` (see
``OperationContext.log_extra`` and ``log_operation_error``) becomes top-level
keys of that object.
"""

import json
import logging
import sys
from typing import Any, Dict, Optional

# Keys lifted from ``extra=`` into the JSON object, in output order
CONTEXT_FIELDS = (
    "tenant_id",
    "request_id",
    "operation",
    "provider",
    "working_directory",
    "error_kind",
    "exit_code",
    "duration_ms",
)

# Third-party loggers that are too chatty below WARNING
QUIET_LOGGERS = ("asyncio", "dulwich", "mcp")

_CLOSED_STREAM_MARKERS = ("closed file", "bad file descriptor")


def _is_closed_stream_error(error: Optional[BaseException]) -> bool:
    if not isinstance(error, (ValueError, OSError)):
        return False
    text = str(error).lower()
    return any(marker in text for marker in _CLOSED_STREAM_MARKERS)


class SafeStreamHandler(logging.StreamHandler):
    """StreamHandler that drops records once its stream has been closed.

    The stdio transport may close stderr before the last shutdown messages are
    written. Any other write failure goes through the normal ``handleError``.
    """

    def handleError(self, record: logging.LogRecord) -> None:
        if _is_closed_stream_error(sys.exc_info()[1]):
            return
        super().handleError(record)


class StructuredLogFormatter(logging.Formatter):
    """One JSON object per record with the context fields that are set."""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(self._context(record))
        exception = self._exception_text(record)
        if exception:
            payload["exception"] = exception
        return json.dumps(payload, ensure_ascii=False, default=str)

    @staticmethod
    def _context(record: logging.LogRecord) -> Dict[str, Any]:
        return {
            field: getattr(record, field)
            for field in CONTEXT_FIELDS
            if getattr(record, field, None) is not None
        }

    def _exception_text(self, record: logging.LogRecord) -> Optional[str]:
        if record.exc_info:
            return self.formatException(record.exc_info)
        return record.exc_text or None


def configure_logging(log_level: str = "WARNING") -> None:
    """Send all logging to stderr as JSON at ``log_level``.

    Calling it again replaces the handler installed by the previous call.

    Raises:
        ValueError: for an unknown level name, before any handler is changed
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(log_level.upper())

    handler = SafeStreamHandler(sys.stderr)
    handler.setFormatter(StructuredLogFormatter())
    root_logger.handlers[:] = [handler]

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
