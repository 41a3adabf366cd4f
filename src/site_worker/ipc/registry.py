"""
Registry of outstanding requests, keyed by sequence number.

Callers register a ``DeliverySlot`` before sending their request and then
block on it; the output reader fills the slot when the matching response
arrives.  The reader never blocks on a slot.
"""

import logging
import threading
from typing import Dict, Optional

from ..errors import DuplicateSequence, WorkerChannelClosed, WorkerTimeout

logger = logging.getLogger(__name__)


class DeliverySlot:
    """
    Single-use hand-off point for one response.

    The first ``put`` or ``close`` wins; later ones are ignored.  Filled
    from the reader thread while the caller blocks in ``wait``.
    """

    def __init__(self, seq: int):
        self.seq = seq
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._data: Optional[str] = None
        self._closed = False
        self._reason: Optional[str] = None

    @property
    def done(self) -> bool:
        return self._event.is_set()

    @property
    def delivered(self) -> bool:
        """True once a response was put (not merely closed)."""
        return self._event.is_set() and not self._closed

    def put(self, data: str) -> bool:
        """Fill the slot. Returns False if it was already filled or closed."""
        with self._lock:
            if self._event.is_set():
                return False
            self._data = data
            self._event.set()
            return True

    def close(self, reason: Optional[str] = None) -> bool:
        """Close without a response, waking the waiter."""
        with self._lock:
            if self._event.is_set():
                return False
            self._closed = True
            self._reason = reason
            self._event.set()
            return True

    def wait(self, timeout: Optional[float] = None) -> str:
        """
        Block until the response arrives.

        Raises:
            WorkerTimeout: nothing arrived within ``timeout`` seconds
            WorkerChannelClosed: the slot was closed without a response
        """
        if not self._event.wait(timeout):
            raise WorkerTimeout(
                f"No response for request #{self.seq} after {timeout}s",
                seq=self.seq,
                timeout=timeout,
            )
        if self._closed:
            reason = f": {self._reason}" if self._reason else ""
            raise WorkerChannelClosed(
                f"Worker channel closed before request #{self.seq} was answered{reason}"
            )
        return self._data


class ResponseRegistry:
    """Thread-safe map of sequence number -> DeliverySlot."""

    def __init__(self):
        self._slots: Dict[int, DeliverySlot] = {}
        self._lock = threading.Lock()
        self._closed = False
        self._close_reason: Optional[str] = None

    def __len__(self) -> int:
        with self._lock:
            return len(self._slots)

    @property
    def pending(self) -> int:
        return len(self)

    @property
    def closed(self) -> bool:
        return self._closed

    def register(self, seq: int) -> DeliverySlot:
        with self._lock:
            if self._closed:
                raise WorkerChannelClosed(
                    f"Worker channel is closed: {self._close_reason or 'no reason given'}"
                )
            if seq in self._slots:
                raise DuplicateSequence(f"Sequence number {seq} is already registered")
            slot = DeliverySlot(seq)
            self._slots[seq] = slot
            return slot

    def deliver(self, seq: int, data: str) -> bool:
        """
        Hand ``data`` to the caller waiting on ``seq`` and drop the entry.

        Returns False if nobody is registered for ``seq`` (already answered,
        abandoned, or never sent); the response is discarded.
        """
        with self._lock:
            slot = self._slots.pop(seq, None)
        if slot is None:
            logger.debug("Discarding response for unknown request #%d", seq)
            return False
        if not slot.put(data):
            logger.debug("Request #%d was abandoned, dropping its response", seq)
        return True

    def discard(self, seq: int) -> None:
        """Forget ``seq`` (caller gave up or its request was never sent)."""
        with self._lock:
            slot = self._slots.pop(seq, None)
        if slot is not None:
            slot.close("request abandoned")

    def close(self, reason: Optional[str] = None) -> int:
        """
        Fail every outstanding request and refuse new ones.

        Idempotent; the first reason is kept. Returns the number of
        requests that were failed.
        """
        with self._lock:
            if self._closed:
                return 0
            self._closed = True
            self._close_reason = reason
            slots = list(self._slots.values())
            self._slots.clear()
        for slot in slots:
            slot.close(reason)
        if slots:
            logger.warning("Failed %d pending worker request(s): %s", len(slots), reason)
        return len(slots)
