"""Git command execution and result normalization."""

from .context import CancellationToken, OperationContext
from .process import (
    GitProcessError,
    ProcessCancelledError,
    ProcessError,
    ProcessOutput,
    ProcessTimeoutError,
    run_git,
)

__all__ = [
    "CancellationToken",
    "OperationContext",
    "GitProcessError",
    "ProcessCancelledError",
    "ProcessError",
    "ProcessOutput",
    "ProcessTimeoutError",
    "run_git",
]
