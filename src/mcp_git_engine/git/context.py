"""Per-call operation context and the one-shot cancellation token."""

import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

CancelListener = Callable[[Optional[str]], None]


class CancellationToken:
    """One-shot, thread-safe cancellation signal.

    Once fired it stays fired. Listeners registered before firing are invoked
    exactly once, from the thread that calls :meth:`cancel`; listeners added
    after firing are invoked immediately.
    """

    def __init__(self):
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._listeners: List[CancelListener] = []
        self._reason: Optional[str] = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> Optional[str]:
        return self._reason

    def cancel(self, reason: Optional[str] = None) -> bool:
        """Fire the token. Returns False if it had already been fired."""
        with self._lock:
            if self._event.is_set():
                return False
            self._reason = reason
            self._event.set()
            listeners = list(self._listeners)
            self._listeners.clear()

        for listener in listeners:
            try:
                listener(reason)
            except Exception as e:
                logger.warning(f"Cancellation listener raised: {e}", exc_info=True)
        return True

    def add_listener(self, listener: CancelListener) -> None:
        with self._lock:
            if not self._event.is_set():
                self._listeners.append(listener)
                return
        listener(self._reason)

    def remove_listener(self, listener: CancelListener) -> None:
        with self._lock:
            try:
                self._listeners.remove(listener)
            except ValueError:
                pass

    def wait(self, timeout: Optional[float] = None) -> bool:
        return self._event.wait(timeout)

    def __repr__(self) -> str:
        return f"CancellationToken(cancelled={self.cancelled}, reason={self._reason!r})"


@dataclass(frozen=True)
class OperationContext:
    """Everything an operation needs besides its options.

    ``working_directory`` is expected to be an absolute, already-validated
    path; the session store is responsible for sanitizing it.
    """

    working_directory: str
    tenant_id: Optional[str] = None
    trace: Dict[str, Any] = field(default_factory=dict)
    cancellation: Optional[CancellationToken] = None
    timeout_ms: Optional[int] = None

    def with_directory(self, working_directory: str) -> "OperationContext":
        return OperationContext(
            working_directory=working_directory,
            tenant_id=self.tenant_id,
            trace=self.trace,
            cancellation=self.cancellation,
            timeout_ms=self.timeout_ms,
        )

    def log_extra(self, operation: str, **extra: Any) -> Dict[str, Any]:
        """Fields for ``logger.*(..., extra=...)`` picked up by the JSON formatter."""
        fields: Dict[str, Any] = {
            "operation": operation,
            "working_directory": self.working_directory,
        }
        if self.tenant_id is not None:
            fields["tenant_id"] = self.tenant_id
        request_id = self.trace.get("request_id")
        if request_id is not None:
            fields["request_id"] = request_id
        fields.update(extra)
        return fields
