"""
Session working-directory store for the MCP Git engine.

- Remembers one working directory per tenant/session id, in memory only.
- Resolves paths to absolute form before storing them.
- Rejects directories outside the configured base directory.
"""

import logging
import threading
from pathlib import Path
from typing import Dict, Optional, Union

from .error_handling import NotFoundError, ValidationError

logger = logging.getLogger(__name__)

DEFAULT_SESSION = "default"


class SessionDirectoryStore:
    """In-memory map of session id to working directory."""

    def __init__(self, base_directory: Optional[Path] = None):
        self.base_directory = base_directory.resolve() if base_directory else None
        self._directories: Dict[str, str] = {}
        self._lock = threading.Lock()

    def resolve(self, path: Union[str, Path]) -> str:
        """Return the absolute form of ``path`` after checking it is allowed.

        Raises:
            ValidationError: if the path is empty, contains a null byte or
                escapes the base directory
        """
        raw = str(path)
        if not raw.strip():
            raise ValidationError("Working directory must be specified")
        if "\x00" in raw:
            raise ValidationError("Null byte detected in working directory path")

        candidate = Path(raw).expanduser()
        if not candidate.is_absolute() and self.base_directory is not None:
            candidate = self.base_directory / candidate
        resolved = candidate.resolve()

        if self.base_directory is not None and not resolved.is_relative_to(self.base_directory):
            raise ValidationError(
                f"Path {resolved} is outside the allowed base directory {self.base_directory}"
            )
        return str(resolved)

    def set(self, session_id: Optional[str], path: Union[str, Path], must_exist: bool = True) -> str:
        resolved = self.resolve(path)
        if must_exist and not Path(resolved).is_dir():
            raise NotFoundError(f"Directory does not exist: {resolved}")
        with self._lock:
            self._directories[session_id or DEFAULT_SESSION] = resolved
        logger.info(f"Working directory for session {session_id or DEFAULT_SESSION} set to {resolved}")
        return resolved

    def get(self, session_id: Optional[str]) -> Optional[str]:
        with self._lock:
            return self._directories.get(session_id or DEFAULT_SESSION)

    def clear(self, session_id: Optional[str]) -> Optional[str]:
        """Forget the session's directory and return what was stored."""
        with self._lock:
            return self._directories.pop(session_id or DEFAULT_SESSION, None)

    def require(self, session_id: Optional[str], path: Optional[Union[str, Path]] = None) -> str:
        """Pick the working directory for a call.

        An explicit ``path`` wins; otherwise the session's stored directory is
        used.

        Raises:
            ValidationError: if neither is available
        """
        if path:
            return self.resolve(path)
        stored = self.get(session_id)
        if stored is None:
            raise ValidationError(
                "No working directory set. Pass repo_path or call git_set_working_dir first."
            )
        return stored
