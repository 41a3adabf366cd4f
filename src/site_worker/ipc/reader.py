"""
Background reader for the worker's stdout.

A daemon thread reads response lines, decodes them and hands each payload
to the registry.  Malformed lines are logged and skipped.  When the stream
ends the registry is closed so nobody keeps waiting on a dead worker.
"""

import logging
import threading
from typing import Optional, TextIO

from ..errors import MalformedFrame
from .protocol import decode_response
from .registry import ResponseRegistry

logger = logging.getLogger(__name__)


class OutputReader:
    """Reads framed responses from ``stream`` until EOF."""

    def __init__(self, stream: TextIO, registry: ResponseRegistry, name: str = "worker-stdout"):
        self._stream = stream
        self._registry = registry
        self._name = name
        self._thread: Optional[threading.Thread] = None
        self.delivered = 0
        self.malformed = 0

    @property
    def alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self._thread is not None:
            raise RuntimeError("Output reader already started")
        self._thread = threading.Thread(target=self._run, daemon=True, name=self._name)
        self._thread.start()

    def join(self, timeout: Optional[float] = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout)

    def _run(self) -> None:
        reason = "worker closed its output"
        try:
            while True:
                line = self._stream.readline()
                if not line:
                    break
                self._handle_line(line)
        except (OSError, ValueError) as exc:
            # ValueError: stream closed underneath us
            reason = f"error reading worker output: {exc}"
            logger.warning("Worker output reader failed: %s", exc)
        finally:
            logger.debug(
                "Worker output reader stopped (%s; %d delivered, %d malformed)",
                reason, self.delivered, self.malformed,
            )
            self._registry.close(reason)

    def _handle_line(self, line: str) -> None:
        if not line.strip():
            return
        try:
            response = decode_response(line)
        except MalformedFrame as exc:
            self.malformed += 1
            logger.warning("Skipping malformed worker frame (%s): %r", exc, exc.line)
            return
        self._registry.deliver(response.seq, response.data)
        self.delivered += 1
        logger.debug("<- #%d (%d chars)", response.seq, len(response.data))
