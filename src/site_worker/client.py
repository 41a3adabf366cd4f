"""
WorkerClient: multiplexes concurrent calls over one worker subprocess.

Every call gets its own sequence number.  The caller registers a delivery
slot, writes its request line under a lock (so lines from different
threads never interleave), and then blocks until the output reader hands
over the response carrying that sequence number.  Responses may arrive in
any order.
"""

import logging
import threading
from typing import Optional

from .config import WorkerConfig, load_config
from .errors import (
    DuplicateSequence,
    WorkerChannelClosed,
    WorkerStartupFailed,
    WorkerTimeout,
    WorkerWriteError,
)
from .ipc.process_manager import WorkerProcess
from .ipc.protocol import HIGHLIGHT, MAX_SEQ, MINIFY, encode_request
from .ipc.reader import OutputReader
from .ipc.registry import ResponseRegistry

logger = logging.getLogger(__name__)

# Shell exit statuses for "command not found" / "not executable"
_SHELL_SPAWN_FAILURES = (126, 127)

_USE_CONFIG = object()


class WorkerClient:
    """Thread-safe client for the worker process.

    The process is started lazily on the first call and force-killed by
    ``close()``.
    """

    def __init__(self, config: Optional[WorkerConfig] = None, process: Optional[WorkerProcess] = None):
        self._config = config if config is not None else load_config()
        self._process = process
        self._registry = ResponseRegistry()
        self._reader: Optional[OutputReader] = None
        self._seq = 0
        self._seq_lock = threading.Lock()
        self._write_lock = threading.Lock()
        self._start_lock = threading.Lock()
        self._closed = False
        self._startup_error: Optional[WorkerStartupFailed] = None

    @property
    def config(self) -> WorkerConfig:
        return self._config

    @property
    def alive(self) -> bool:
        return (
            self._process is not None
            and self._process.alive
            and self._reader is not None
            and self._reader.alive
        )

    @property
    def pending(self) -> int:
        """Number of requests still waiting for a response."""
        return len(self._registry)

    def start(self) -> None:
        """
        Start the worker and its output reader (no-op once running).

        A failed start is remembered: later calls re-raise it instead of
        spawning the worker again.
        """
        with self._start_lock:
            if self._closed:
                raise WorkerChannelClosed("Worker client is closed")
            if self._startup_error is not None:
                raise WorkerStartupFailed(str(self._startup_error)) from self._startup_error
            if self._reader is not None:
                return
            if self._process is None:
                self._process = WorkerProcess(
                    self._config.command,
                    cwd=self._config.cwd,
                    env=self._config.process_env(),
                    kill_timeout=self._config.kill_timeout,
                )
            if not self._process.started:
                try:
                    self._process.start()
                except WorkerStartupFailed as exc:
                    self._startup_error = exc
                    raise
            self._reader = OutputReader(self._process.take_stdout(), self._registry)
            self._reader.start()

    def call(self, operation: str, payload: str, timeout=_USE_CONFIG) -> str:
        """
        Send ``operation`` with ``payload`` and block until the worker answers.

        Args:
            operation: Operation name, forwarded as-is
            payload: Request data
            timeout: Seconds to wait, None to wait forever. Defaults to
                ``config.request_timeout``.

        Raises:
            WorkerStartupFailed: the worker could not be started
            WorkerWriteError: the request could not be written
            WorkerChannelClosed: the worker went away before answering
            WorkerTimeout: no answer within ``timeout``
        """
        if timeout is _USE_CONFIG:
            timeout = self._config.request_timeout
        self.start()

        seq = self._next_sequence()
        try:
            # Register before writing: the answer may beat us back otherwise
            slot = self._registry.register(seq)
            try:
                self._write(encode_request(seq, operation, payload))
            except WorkerWriteError:
                self._registry.discard(seq)
                raise
            logger.debug("-> #%d %s (%d chars)", seq, operation, len(payload))

            try:
                return slot.wait(timeout)
            except WorkerTimeout:
                self._registry.discard(seq)
                if slot.delivered:
                    # Answer landed between the timeout and the discard
                    return slot.wait(0)
                logger.warning(
                    "Worker did not answer %s request #%d within %ss", operation, seq, timeout
                )
                raise
        except (WorkerChannelClosed, WorkerWriteError) as exc:
            self._raise_if_spawn_failed(exc)
            raise

    def minify(self, html: str) -> str:
        return self.call(MINIFY, html)

    def highlight(self, html: str) -> str:
        return self.call(HIGHLIGHT, html)

    def close(self) -> None:
        """Kill the worker and fail anything still waiting. Idempotent."""
        with self._start_lock:
            if self._closed:
                return
            self._closed = True
        self._registry.close("worker client closed")
        if self._process is not None:
            self._process.kill()
        if self._reader is not None:
            self._reader.join(timeout=self._config.kill_timeout)

    def __enter__(self) -> "WorkerClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def __del__(self):
        try:
            self.close()
        except Exception:
            pass

    # -- Internal helpers --------------------------------------------------

    def _next_sequence(self) -> int:
        with self._seq_lock:
            if self._seq >= MAX_SEQ:
                raise DuplicateSequence("Sequence numbers exhausted for this worker")
            self._seq += 1
            return self._seq

    def _write(self, line: str) -> None:
        with self._write_lock:
            stdin = self._process.stdin
            if stdin is None:
                raise WorkerWriteError("Worker stdin is not available")
            try:
                stdin.write(line)
                stdin.flush()
            except (OSError, ValueError) as exc:
                # ValueError: stdin already closed by kill()
                raise WorkerWriteError(f"Failed to send request to worker: {exc}") from exc

    def _raise_if_spawn_failed(self, exc: Exception) -> None:
        """Report a shell that couldn't run the worker command as a startup failure."""
        if self._closed or self._process is None:
            return
        status = self._process.exit_status(timeout=1.0)
        if status in _SHELL_SPAWN_FAILURES:
            error = WorkerStartupFailed(
                f"Worker command '{self._process.command}' could not be executed "
                f"(exit status {status})"
            )
            self._startup_error = error
            raise error from exc
