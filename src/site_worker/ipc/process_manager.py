"""
Owns the lifecycle of the long-running worker subprocess.

The worker is started through the host shell with piped stdin/stdout;
stderr is inherited.  The process is always force-killed, never asked to
shut down: on ``kill()``, when used as a context manager, on garbage
collection, and at interpreter exit.
"""

import atexit
import logging
import os
import signal
import subprocess
import threading
from typing import Dict, Optional, TextIO

from ..errors import WorkerStartupFailed

logger = logging.getLogger(__name__)

_POSIX = os.name != "nt"


class WorkerProcess:
    """Manages a single worker subprocess."""

    def __init__(
        self,
        command: str,
        cwd: Optional[str] = None,
        env: Optional[Dict[str, str]] = None,
        kill_timeout: float = 5.0,
    ):
        self._command = command
        self._cwd = cwd
        self._env = env
        self._kill_timeout = kill_timeout
        self._proc: Optional[subprocess.Popen] = None
        self._stdout_taken = False
        self._killed = False
        self._lock = threading.Lock()  # Protects start/kill transitions

    @property
    def command(self) -> str:
        return self._command

    @property
    def started(self) -> bool:
        return self._proc is not None

    @property
    def alive(self) -> bool:
        return self._proc is not None and not self._killed and self._proc.poll() is None

    @property
    def pid(self) -> Optional[int]:
        return self._proc.pid if self._proc is not None else None

    @property
    def returncode(self) -> Optional[int]:
        return self._proc.poll() if self._proc is not None else None

    @property
    def stdin(self) -> Optional[TextIO]:
        return self._proc.stdin if self._proc is not None else None

    def start(self) -> None:
        """Spawn the worker. Raises WorkerStartupFailed if that's impossible."""
        with self._lock:
            if self._proc is not None:
                raise RuntimeError("Worker already started")
            logger.debug("Starting worker: %s (cwd=%s)", self._command, self._cwd)
            try:
                self._proc = subprocess.Popen(
                    self._command,
                    shell=True,
                    cwd=self._cwd,
                    env=self._env,
                    stdin=subprocess.PIPE,
                    stdout=subprocess.PIPE,
                    text=True,
                    encoding="utf-8",
                    errors="replace",
                    bufsize=1,  # Line-buffered
                    # Own process group so kill() reaches the shell's children too
                    start_new_session=_POSIX,
                )
            except OSError as exc:
                logger.error("Could not start worker '%s': %s", self._command, exc)
                raise WorkerStartupFailed(
                    f"Could not start worker '{self._command}' (cwd={self._cwd}): {exc}"
                ) from exc
            atexit.register(self.kill)
        logger.info("Worker started (pid=%d): %s", self._proc.pid, self._command)

    def take_stdout(self) -> TextIO:
        """Hand over the worker's stdout. Only one reader may ever own it."""
        with self._lock:
            if self._proc is None:
                raise RuntimeError("Worker is not running")
            if self._stdout_taken:
                raise RuntimeError("Worker stdout was already taken")
            self._stdout_taken = True
            return self._proc.stdout

    def exit_status(self, timeout: float = 1.0) -> Optional[int]:
        """Wait up to ``timeout`` seconds for the worker to exit; None if still running."""
        if self._proc is None:
            return None
        try:
            return self._proc.wait(timeout=timeout)
        except subprocess.TimeoutExpired:
            return None

    def kill(self) -> None:
        """Force-kill the worker. Safe to call more than once."""
        with self._lock:
            proc = self._proc
            if proc is None or self._killed:
                return
            self._killed = True
        atexit.unregister(self.kill)

        try:
            if _POSIX:
                os.killpg(proc.pid, signal.SIGKILL)
            else:
                proc.kill()
        except ProcessLookupError:
            pass  # already gone
        except OSError as exc:
            logger.warning("Failed to kill worker (pid=%d): %s", proc.pid, exc)

        try:
            proc.wait(timeout=self._kill_timeout)
        except subprocess.TimeoutExpired:
            logger.warning(
                "Worker (pid=%d) still running %.1fs after kill", proc.pid, self._kill_timeout
            )

        if proc.stdin is not None:
            try:
                proc.stdin.close()
            except OSError:
                pass  # unflushed data to a dead pipe
        logger.info("Worker stopped (pid=%d, returncode=%s)", proc.pid, proc.returncode)

    def __enter__(self) -> "WorkerProcess":
        if self._proc is None:
            self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.kill()

    def __del__(self):
        try:
            self.kill()
        except Exception:
            pass
