"""Classification of raw git failures into the domain error taxonomy.

This is the only place that reads stderr/stdout text to decide what kind of
failure happened. Rules are checked in order against stderr first and stdout
second; the first match wins.
"""

import logging
import re
from typing import Any, Dict, List, Optional, Pattern, Sequence, Tuple

from ..error_handling import (
    ConflictError,
    ErrorKind,
    GitOperationError,
    InternalError,
    NotFoundError,
    OperationCancelledError,
    OperationTimeoutError,
    SigningError,
    ValidationError,
    error_class_for,
)
from .process import GitProcessError, ProcessCancelledError, ProcessError, ProcessTimeoutError

logger = logging.getLogger(__name__)

_GIT_PREFIXES = re.compile(r"^(?:fatal|error|warning|hint):\s*", re.IGNORECASE | re.MULTILINE)

ERROR_RULES: List[Tuple[Pattern, ErrorKind]] = [
    # Repository
    (re.compile(r"not a git repository", re.I), ErrorKind.NOT_FOUND),
    (re.compile(r"repository .* not found", re.I), ErrorKind.NOT_FOUND),
    # Duplicate creation
    (re.compile(r"already exists", re.I), ErrorKind.CONFLICT),
    # Signing, ahead of missing-path rules: a missing gpg binary reports
    # "No such file or directory" alongside "gpg failed to sign"
    (re.compile(r"gpg failed to sign", re.I), ErrorKind.SIGNING),
    (re.compile(r"failed to sign", re.I), ErrorKind.SIGNING),
    (re.compile(r"cannot run \S*gpg", re.I), ErrorKind.SIGNING),
    (re.compile(r"error: gpg", re.I), ErrorKind.SIGNING),
    (re.compile(r"signing failed", re.I), ErrorKind.SIGNING),
    # Missing refs, paths and remotes
    (re.compile(r"unknown revision", re.I), ErrorKind.NOT_FOUND),
    (re.compile(r"did not match any", re.I), ErrorKind.NOT_FOUND),
    (re.compile(r"not a valid object name", re.I), ErrorKind.NOT_FOUND),
    (re.compile(r"bad revision", re.I), ErrorKind.NOT_FOUND),
    (re.compile(r"invalid reference", re.I), ErrorKind.NOT_FOUND),
    (re.compile(r"no such remote", re.I), ErrorKind.NOT_FOUND),
    (re.compile(r"does not appear to be a git repository", re.I), ErrorKind.NOT_FOUND),
    (re.compile(r"couldn't find remote ref", re.I), ErrorKind.NOT_FOUND),
    (re.compile(r"does not exist", re.I), ErrorKind.NOT_FOUND),
    (re.compile(r"no such file or directory", re.I), ErrorKind.NOT_FOUND),
    (re.compile(r"\bnot found\b", re.I), ErrorKind.NOT_FOUND),
    (re.compile(r"no stash entries found", re.I), ErrorKind.NOT_FOUND),
    (re.compile(r"reference is not a tree", re.I), ErrorKind.NOT_FOUND),
    (re.compile(r"not something we can merge", re.I), ErrorKind.NOT_FOUND),
    # Unmerged paths and conflicts
    (re.compile(r"unmerged", re.I), ErrorKind.CONFLICT),
    (re.compile(r"CONFLICT"), ErrorKind.CONFLICT),
    (re.compile(r"would be overwritten", re.I), ErrorKind.CONFLICT),
    (re.compile(r"needs merge", re.I), ErrorKind.CONFLICT),
    (re.compile(r"you have unstaged changes", re.I), ErrorKind.CONFLICT),
    (re.compile(r"failed to merge", re.I), ErrorKind.CONFLICT),
    (re.compile(r"not possible to fast-forward", re.I), ErrorKind.CONFLICT),
    (re.compile(r"\[rejected\]", re.I), ErrorKind.CONFLICT),
    # Invalid input git itself rejected
    (re.compile(r"is not a valid", re.I), ErrorKind.VALIDATION),
    (re.compile(r"ambiguous argument", re.I), ErrorKind.VALIDATION),
    (re.compile(r"nothing to commit", re.I), ErrorKind.VALIDATION),
    (re.compile(r"no changes added to commit", re.I), ErrorKind.VALIDATION),
    (re.compile(r"^usage:", re.I | re.M), ErrorKind.VALIDATION),
    (re.compile(r"unknown option", re.I), ErrorKind.VALIDATION),
    (re.compile(r"invalid", re.I), ErrorKind.VALIDATION),
]

# Failures that are neither the caller's fault nor classifiable further. They
# map to Internal but keep a clearer message.
_ENVIRONMENT_RULES: List[Tuple[Pattern, str]] = [
    (re.compile(r"permission denied|eacces", re.I), "Permission denied"),
    (re.compile(r"authentication failed", re.I), "Authentication failed"),
    (re.compile(r"could not read from remote", re.I), "Could not read from remote repository"),
    (re.compile(r"failed to connect|could not resolve host|connection (?:refused|timed out)", re.I),
     "Network failure contacting remote"),
]


def extract_git_error_message(stderr: str) -> str:
    """Strip ``fatal:``/``error:`` prefixes and return the first meaningful line."""
    message = _GIT_PREFIXES.sub("", stderr or "").strip()
    for line in message.splitlines():
        if line.strip():
            return line.strip()
    return message


def is_git_not_found_error(error: Any) -> bool:
    """True when the failure means the git executable itself is missing."""
    if isinstance(error, ProcessError) and error.exit_code == 127:
        return True
    message = str(error).lower()
    return "git" in message and (
        "command not found" in message or "enoent" in message or "executable not found" in message
    )


def _classify(texts: Sequence[str]) -> Optional[Tuple[ErrorKind, str]]:
    for text in texts:
        if not text:
            continue
        for pattern, kind in ERROR_RULES:
            if pattern.search(text):
                return kind, text
    return None


def map_git_error(
    error: BaseException,
    operation: str,
    args: Optional[Sequence[str]] = None,
    trace: Optional[Dict[str, Any]] = None,
) -> GitOperationError:
    """
    Convert a raw failure into a :class:`GitOperationError`.

    Already-classified errors are returned unchanged. Timeouts and
    cancellations map directly; non-zero exits are classified from their
    output. Raw stdout/stderr are always carried on the result.

    Args:
        error: The exception raised by the process adapter or a backing library
        operation: Logical operation name, e.g. ``"commit"``
        args: Attempted argument vector, when not already on the error
        trace: Opaque request context propagated into the error payload

    Returns:
        The classified error, ready to raise
    """
    if isinstance(error, GitOperationError):
        if trace and not error.trace:
            error.trace = dict(trace)
        return error

    if isinstance(error, GitProcessError):
        attempted = error.git_args or list(args or [])
        common = dict(
            operation=operation,
            args=attempted,
            exit_code=error.exit_code,
            stdout=error.stdout,
            stderr=error.stderr,
            trace=trace,
        )
        if isinstance(error, ProcessTimeoutError):
            return OperationTimeoutError(str(error), **common)
        if isinstance(error, ProcessCancelledError):
            return OperationCancelledError(str(error), **common)

        if is_git_not_found_error(error):
            return InternalError(
                "Git executable not found. Please ensure git is installed and on PATH.",
                **common,
            )

        classified = _classify([error.stderr, error.stdout])
        if classified is not None:
            kind, source = classified
            detail = extract_git_error_message(source)
            return error_class_for(kind)(f"git {operation} failed: {detail}", **common)

        for pattern, summary in _ENVIRONMENT_RULES:
            for text in (error.stderr, error.stdout):
                if text and pattern.search(text):
                    return InternalError(
                        f"git {operation} failed: {summary}: {extract_git_error_message(text)}",
                        **common,
                    )

        logger.debug(f"Unclassified git {operation} failure (exit {error.exit_code})")
        return InternalError(f"git {operation} failed: {error}", **common)

    message = str(error) or type(error).__name__
    classified = _classify([message])
    if classified is not None:
        kind, _ = classified
        return error_class_for(kind)(
            f"git {operation} failed: {message}", operation=operation, args=args, trace=trace
        )
    return InternalError(
        f"git {operation} failed: {message}", operation=operation, args=args, trace=trace
    )


__all__ = [
    "map_git_error",
    "extract_git_error_message",
    "is_git_not_found_error",
    "ERROR_RULES",
    "ConflictError",
    "NotFoundError",
    "SigningError",
    "ValidationError",
]
