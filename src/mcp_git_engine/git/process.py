"""Process adapter: spawns git and races its exit against timeout and cancellation.

Two spawn strategies sit behind one contract. ``AsyncioSubprocessStrategy``
uses the event loop's own subprocess support and reads both pipes to
completion with ``communicate()``. ``ThreadedPopenStrategy`` uses
``subprocess.Popen`` with one reader thread per pipe accumulating chunks until
close, for event loops that cannot spawn subprocesses (the selector loop on
Windows). Which one is active is decided once per process by
:func:`detect_runtime`.
"""

import asyncio
import functools
import logging
import os
import subprocess
import sys
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from ..constants import GitOperationDefaults
from ..error_handling import ValidationError
from .arguments import validate_git_args
from .context import CancellationToken
from .environment import build_git_env

logger = logging.getLogger(__name__)

READ_CHUNK_SIZE = 64 * 1024

ExitResult = Tuple[Optional[int], str, str]


class GitProcessError(Exception):
    """Base for the three process-level failures."""

    def __init__(
        self,
        message: str,
        args: Sequence[str] = (),
        exit_code: Optional[int] = None,
        stdout: str = "",
        stderr: str = "",
        pid: Optional[int] = None,
    ):
        super().__init__(message)
        self.git_args = list(args)
        self.exit_code = exit_code
        self.stdout = stdout
        self.stderr = stderr
        self.pid = pid


class ProcessError(GitProcessError):
    """git exited non-zero, or could not be started at all."""

    def __init__(self, exit_code, stdout, stderr, args=(), pid=None):
        super().__init__(
            f"Exit Code: {exit_code}\nStderr: {stderr}\nStdout: {stdout}",
            args=args,
            exit_code=exit_code,
            stdout=stdout,
            stderr=stderr,
            pid=pid,
        )


class ProcessTimeoutError(GitProcessError):
    def __init__(self, timeout_ms: int, args=(), stdout="", stderr="", pid=None):
        super().__init__(
            f"git command timed out after {timeout_ms / 1000:g}s: git {' '.join(args)}",
            args=args,
            stdout=stdout,
            stderr=stderr,
            pid=pid,
        )
        self.timeout_ms = timeout_ms


class ProcessCancelledError(GitProcessError):
    def __init__(self, reason: Optional[str] = None, args=(), stdout="", stderr="",
                 pid=None, spawned: bool = True):
        when = "cancelled" if spawned else "cancelled before execution"
        message = f"git command {when}: git {' '.join(args)}"
        if reason:
            message += f" ({reason})"
        super().__init__(message, args=args, stdout=stdout, stderr=stderr, pid=pid)
        self.reason = reason
        self.spawned = spawned


@dataclass(frozen=True)
class ProcessOutput:
    stdout: str
    stderr: str


def _decode(data: Optional[bytes]) -> str:
    if not data:
        return ""
    return data.decode("utf-8", errors="replace")


class RunningProcess(ABC):
    """Handle on a spawned child, independent of how it was spawned."""

    pid: Optional[int] = None

    @abstractmethod
    async def wait(self) -> ExitResult:
        """Wait for exit and both pipes to close; return (code, stdout, stderr)."""

    @abstractmethod
    async def wait_exit(self, timeout: Optional[float]) -> bool:
        """Wait for the child to exit. Returns False if ``timeout`` elapsed."""

    @abstractmethod
    def terminate(self) -> None: ...

    @abstractmethod
    def kill(self) -> None: ...


class SpawnStrategy(ABC):
    name: str = ""

    @abstractmethod
    async def spawn(self, argv: List[str], cwd: str, env: Dict[str, str]) -> RunningProcess:
        """Start ``argv`` with stdin closed and stdout/stderr piped."""


class _AsyncioProcess(RunningProcess):
    def __init__(self, proc: asyncio.subprocess.Process):
        self._proc = proc
        self.pid = proc.pid

    async def wait(self) -> ExitResult:
        stdout, stderr = await self._proc.communicate()
        return self._proc.returncode, _decode(stdout), _decode(stderr)

    async def wait_exit(self, timeout: Optional[float]) -> bool:
        try:
            await asyncio.wait_for(self._proc.wait(), timeout)
        except asyncio.TimeoutError:
            return False
        return True

    def terminate(self) -> None:
        try:
            self._proc.terminate()
        except ProcessLookupError:
            pass

    def kill(self) -> None:
        try:
            self._proc.kill()
        except ProcessLookupError:
            pass


class AsyncioSubprocessStrategy(SpawnStrategy):
    name = "asyncio"

    async def spawn(self, argv, cwd, env) -> RunningProcess:
        proc = await asyncio.create_subprocess_exec(
            *argv,
            cwd=cwd,
            env=env,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        return _AsyncioProcess(proc)


class _ThreadedProcess(RunningProcess):
    def __init__(self, proc: subprocess.Popen):
        self._proc = proc
        self.pid = proc.pid
        self._stdout_chunks: List[bytes] = []
        self._stderr_chunks: List[bytes] = []
        self._readers = [
            threading.Thread(
                target=self._pump, args=(proc.stdout, self._stdout_chunks), daemon=True
            ),
            threading.Thread(
                target=self._pump, args=(proc.stderr, self._stderr_chunks), daemon=True
            ),
        ]
        for reader in self._readers:
            reader.start()

    @staticmethod
    def _pump(stream, chunks: List[bytes]) -> None:
        with stream:
            for chunk in iter(functools.partial(stream.read1, READ_CHUNK_SIZE), b""):
                chunks.append(chunk)

    def _collect(self) -> ExitResult:
        code = self._proc.wait()
        for reader in self._readers:
            reader.join()
        return (
            code,
            _decode(b"".join(self._stdout_chunks)),
            _decode(b"".join(self._stderr_chunks)),
        )

    async def wait(self) -> ExitResult:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._collect)

    async def wait_exit(self, timeout: Optional[float]) -> bool:
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, self._proc.wait, timeout)
        except subprocess.TimeoutExpired:
            return False
        return True

    def terminate(self) -> None:
        if self._proc.poll() is None:
            self._proc.terminate()

    def kill(self) -> None:
        if self._proc.poll() is None:
            self._proc.kill()


class ThreadedPopenStrategy(SpawnStrategy):
    name = "thread"

    async def spawn(self, argv, cwd, env) -> RunningProcess:
        proc = subprocess.Popen(
            argv,
            cwd=cwd,
            env=env,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
        )
        return _ThreadedProcess(proc)


_STRATEGIES: Dict[str, SpawnStrategy] = {
    AsyncioSubprocessStrategy.name: AsyncioSubprocessStrategy(),
    ThreadedPopenStrategy.name: ThreadedPopenStrategy(),
}


@functools.lru_cache(maxsize=None)
def detect_runtime() -> str:
    """Decide once which spawn strategy this process uses.

    ``GIT_ENGINE_SPAWN_STRATEGY`` wins when set. Otherwise the threaded
    strategy is chosen only on Windows when the running loop is a selector
    loop, which has no subprocess support.
    """
    override = os.environ.get("GIT_ENGINE_SPAWN_STRATEGY", "").strip().lower()
    if override in _STRATEGIES:
        logger.debug(f"Spawn strategy forced by environment: {override}")
        return override

    if sys.platform == "win32":
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None
        if isinstance(loop, asyncio.SelectorEventLoop):
            return ThreadedPopenStrategy.name
    return AsyncioSubprocessStrategy.name


def get_spawn_strategy(name: Optional[str] = None) -> SpawnStrategy:
    name = name or detect_runtime()
    try:
        return _STRATEGIES[name]
    except KeyError:
        raise ValueError(f"Unknown spawn strategy: {name}") from None


async def _terminate(process: RunningProcess, grace: float) -> None:
    process.terminate()
    if not await process.wait_exit(grace):
        logger.warning(f"git process {process.pid} ignored SIGTERM, killing")
        process.kill()
        await process.wait_exit(None)


async def _drain(task: "asyncio.Future[ExitResult]", grace: float) -> Tuple[str, str]:
    """Collect whatever output a terminated child produced, without hanging on
    pipes a grandchild may still hold open."""
    done, _ = await asyncio.wait({task}, timeout=grace)
    if task in done and not task.cancelled() and task.exception() is None:
        _, stdout, stderr = task.result()
        return stdout, stderr
    task.cancel()
    return "", ""


async def run_git(
    args: Sequence[str],
    cwd: str,
    env: Optional[Dict[str, str]] = None,
    timeout_ms: Optional[int] = None,
    cancel: Optional[CancellationToken] = None,
    *,
    strict: bool = False,
    executable: str = GitOperationDefaults.GIT_BINARY,
    strategy: Optional[SpawnStrategy] = None,
) -> ProcessOutput:
    """
    Run ``git <args>`` in ``cwd`` and return its captured output.

    Exactly one of normal exit, timeout or cancellation settles the call,
    whichever happens first. On timeout or cancellation the child is
    terminated (then killed after a grace period) before the error is raised.

    Raises:
        ValidationError: if an argument is rejected by ``validate_git_args``
        ProcessError: on non-zero exit or failure to spawn
        ProcessTimeoutError: if ``timeout_ms`` elapsed first
        ProcessCancelledError: if ``cancel`` fired first, or was already fired
    """
    args = list(args)
    validate_git_args(args, strict=strict)

    if cancel is not None and cancel.cancelled:
        raise ProcessCancelledError(cancel.reason, args=args, spawned=False)

    if timeout_ms is None:
        timeout_ms = GitOperationDefaults.TIMEOUT_MS
    elif timeout_ms <= 0:
        raise ValidationError(f"Timeout must be positive, got {timeout_ms}ms", args=args)
    strategy = strategy or get_spawn_strategy()
    env = build_git_env() if env is None else env
    grace = GitOperationDefaults.TERMINATE_GRACE_SECONDS

    start = time.monotonic()
    logger.debug(f"Running git {' '.join(args)} in {cwd} via {strategy.name}")
    try:
        process = await strategy.spawn([executable, *args], cwd, env)
    except FileNotFoundError as e:
        if cwd and not os.path.isdir(cwd):
            raise ProcessError(
                None, "", f"fatal: cannot change to '{cwd}': No such file or directory", args
            ) from e
        raise ProcessError(127, "", f"{executable}: command not found ({e})", args) from e
    except OSError as e:
        raise ProcessError(None, "", str(e), args) from e

    loop = asyncio.get_running_loop()
    cancelled: "asyncio.Future[Optional[str]]" = loop.create_future()

    def settle_cancelled(reason: Optional[str]) -> None:
        if not cancelled.done():
            cancelled.set_result(reason)

    def on_cancel(reason: Optional[str]) -> None:
        loop.call_soon_threadsafe(settle_cancelled, reason)

    exit_task = asyncio.ensure_future(process.wait())
    waiters = {exit_task}
    if cancel is not None:
        cancel.add_listener(on_cancel)
        waiters.add(cancelled)

    try:
        done, _ = await asyncio.wait(
            waiters, timeout=timeout_ms / 1000, return_when=asyncio.FIRST_COMPLETED
        )
    except asyncio.CancelledError:
        await _terminate(process, grace)
        exit_task.cancel()
        raise
    finally:
        if cancel is not None:
            cancel.remove_listener(on_cancel)

    duration_ms = (time.monotonic() - start) * 1000
    if exit_task in done:
        if not cancelled.done():
            cancelled.cancel()
        exit_code, stdout, stderr = exit_task.result()
        logger.debug(
            f"git {args[0] if args else ''} exited {exit_code}",
            extra={"duration_ms": round(duration_ms, 1)},
        )
        if exit_code != 0:
            raise ProcessError(exit_code, stdout, stderr, args, pid=process.pid)
        return ProcessOutput(stdout=stdout, stderr=stderr)

    await _terminate(process, grace)
    stdout, stderr = await _drain(exit_task, grace)

    if cancelled in done:
        logger.info(f"git {args[0] if args else ''} cancelled after {duration_ms:.0f}ms")
        raise ProcessCancelledError(
            cancelled.result(), args=args, stdout=stdout, stderr=stderr, pid=process.pid
        )

    if not cancelled.done():
        cancelled.cancel()
    logger.warning(f"git {args[0] if args else ''} timed out after {timeout_ms}ms")
    raise ProcessTimeoutError(
        timeout_ms, args=args, stdout=stdout, stderr=stderr, pid=process.pid
    )
