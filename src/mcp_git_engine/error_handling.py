"""Domain error taxonomy for the MCP Git engine."""

import logging
import time
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

logger = logging.getLogger(__name__)


class ErrorKind(Enum):
    """Finite classification of every failure the engine can surface."""

    NOT_FOUND = "not_found"
    VALIDATION = "validation"
    CONFLICT = "conflict"
    UNSUPPORTED_CAPABILITY = "unsupported_capability"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"
    SIGNING = "signing"
    INTERNAL = "internal"


class ErrorSeverity(Enum):
    """How loudly an adapter should report an error."""

    HIGH = "high"  # Engine or environment is broken
    MEDIUM = "medium"  # Operation failed, caller may retry
    LOW = "low"  # Caller supplied bad input


class GitOperationError(Exception):
    """Base class for all classified git operation failures.

    Every instance keeps the operation name, the attempted argument vector and
    whatever raw output the backing engine produced, so the caller can
    self-diagnose without re-running the command.
    """

    kind: ErrorKind = ErrorKind.INTERNAL
    recoverable: bool = False

    def __init__(
        self,
        message: str,
        operation: str = "",
        args: Optional[Sequence[str]] = None,
        exit_code: Optional[int] = None,
        stdout: str = "",
        stderr: str = "",
        trace: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.operation = operation
        self.git_args: List[str] = list(args or [])
        self.exit_code = exit_code
        self.stdout = stdout
        self.stderr = stderr
        self.trace = dict(trace or {})
        self.error_time = time.time()

    @property
    def raw_output(self) -> str:
        return "\n".join(part for part in (self.stderr, self.stdout) if part)

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "error": self.kind.value,
            "message": self.message,
            "operation": self.operation,
            "recoverable": self.recoverable,
        }
        if self.git_args:
            payload["args"] = self.git_args
        if self.exit_code is not None:
            payload["exit_code"] = self.exit_code
        if self.stderr:
            payload["stderr"] = self.stderr
        if self.stdout:
            payload["stdout"] = self.stdout
        if self.trace:
            payload["trace"] = self.trace
        return payload

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(operation={self.operation!r}, "
            f"exit_code={self.exit_code!r}, message={self.message!r})"
        )


class NotFoundError(GitOperationError):
    """Missing repository, ref, branch, remote, tag or path."""

    kind = ErrorKind.NOT_FOUND


class ValidationError(GitOperationError):
    """Bad arguments or malformed names, detected before or by git."""

    kind = ErrorKind.VALIDATION


class ConflictError(GitOperationError):
    """Merge/rebase/cherry-pick conflicts and duplicate creation."""

    kind = ErrorKind.CONFLICT


class UnsupportedCapabilityError(GitOperationError):
    """The active provider does not implement the requested operation."""

    kind = ErrorKind.UNSUPPORTED_CAPABILITY


class OperationTimeoutError(GitOperationError):
    kind = ErrorKind.TIMEOUT
    recoverable = True


class OperationCancelledError(GitOperationError):
    kind = ErrorKind.CANCELLED


class SigningError(GitOperationError):
    """Commit signing failed; operations with an unsigned fallback retry once."""

    kind = ErrorKind.SIGNING
    recoverable = True


class InternalError(GitOperationError):
    """Anything the mapper could not classify."""

    kind = ErrorKind.INTERNAL


ERROR_CLASSES = {
    cls.kind: cls
    for cls in (
        NotFoundError,
        ValidationError,
        ConflictError,
        UnsupportedCapabilityError,
        OperationTimeoutError,
        OperationCancelledError,
        SigningError,
        InternalError,
    )
}


def error_class_for(kind: ErrorKind) -> type:
    return ERROR_CLASSES[kind]


def classify_severity(error: Exception) -> ErrorSeverity:
    """
    Decide how an adapter should report an error.

    Args:
        error: The exception that escaped an operation

    Returns:
        ErrorSeverity used to pick the log level for the failure
    """
    if isinstance(error, GitOperationError):
        if error.kind in (ErrorKind.VALIDATION, ErrorKind.NOT_FOUND,
                          ErrorKind.CONFLICT, ErrorKind.UNSUPPORTED_CAPABILITY,
                          ErrorKind.CANCELLED):
            return ErrorSeverity.LOW
        if error.kind in (ErrorKind.TIMEOUT, ErrorKind.SIGNING):
            return ErrorSeverity.MEDIUM
        return ErrorSeverity.HIGH

    error_type = type(error).__name__
    if error_type in ("ValueError", "TypeError") or "Validation" in error_type:
        return ErrorSeverity.LOW
    return ErrorSeverity.HIGH


def log_operation_error(error: Exception, operation: str = "", **extra: Any) -> None:
    """Log a failed operation at a level matching its severity."""
    severity = classify_severity(error)
    extra.setdefault("operation", operation)
    if isinstance(error, GitOperationError):
        extra.setdefault("error_kind", error.kind.value)
        if error.exit_code is not None:
            extra.setdefault("exit_code", error.exit_code)
    if severity == ErrorSeverity.LOW:
        logger.info(f"{operation} rejected: {error}", extra=extra)
    elif severity == ErrorSeverity.MEDIUM:
        logger.warning(f"{operation} failed: {error}", extra=extra)
    else:
        logger.error(f"{operation} failed: {error}", extra=extra, exc_info=error)
