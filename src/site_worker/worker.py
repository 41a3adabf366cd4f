"""
Python implementation of the worker side of the protocol.

Run as:  ``python -m site_worker.worker``

Reads JSON-line requests from stdin, runs each one on a thread pool and
writes the JSON-line response to stdout as soon as it is ready, so
responses can come back in a different order than the requests.

**stdout is reserved for protocol frames**; all logging goes to stderr.

Operations: ``minify`` (minify-html), ``highlight`` (Pygments over
``pre > code`` blocks) and ``echo``.  Unknown operations are answered with
``"?"``.  A handler that raises is answered with an empty string so the
caller isn't left waiting.
"""

import logging
import sys
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Dict, Optional, TextIO

from site_worker.errors import MalformedFrame
from site_worker.ipc.protocol import HIGHLIGHT, MINIFY, Request, decode_request, encode_response
from site_worker.transforms import highlight_code_blocks, minify

logger = logging.getLogger("site_worker.worker")

Handler = Callable[[str], str]

UNKNOWN_OPERATION = "?"
ECHO = "echo"


def echo(data: str) -> str:
    return data


DEFAULT_HANDLERS: Dict[str, Handler] = {
    ECHO: echo,
    MINIFY: minify,
    HIGHLIGHT: highlight_code_blocks,
}


class Worker:
    """Encapsulates the worker state and request loop."""

    def __init__(
        self,
        handlers: Optional[Dict[str, Handler]] = None,
        stdin: Optional[TextIO] = None,
        stdout: Optional[TextIO] = None,
        max_threads: int = 4,
    ):
        self._handlers = dict(DEFAULT_HANDLERS if handlers is None else handlers)
        self._stdin = stdin
        self._stdout = stdout
        self._max_threads = max_threads
        self._write_lock = threading.Lock()

    # -- Protocol helpers --------------------------------------------------

    def _write(self, seq: int, data: str) -> None:
        """Write a single response line to stdout (thread-safe)."""
        out = self._stdout if self._stdout is not None else sys.stdout
        with self._write_lock:
            out.write(encode_response(seq, data))
            out.flush()

    # -- Request handling --------------------------------------------------

    def handle(self, request: Request) -> str:
        handler = self._handlers.get(request.op)
        if handler is None:
            logger.warning("Unknown operation '%s' (request #%d)", request.op, request.seq)
            return UNKNOWN_OPERATION
        try:
            return handler(request.data)
        except Exception as exc:
            logger.error("%s failed for request #%d: %s", request.op, request.seq, exc)
            return ""

    def _respond(self, request: Request) -> None:
        self._write(request.seq, self.handle(request))

    # -- Main loop ---------------------------------------------------------

    def run(self) -> None:
        """Blocking main loop. Returns once stdin closes and in-flight requests are answered."""
        stdin = self._stdin if self._stdin is not None else sys.stdin
        with ThreadPoolExecutor(max_workers=self._max_threads, thread_name_prefix="worker") as pool:
            while True:
                line = stdin.readline()
                if not line:
                    break
                if not line.strip():
                    continue
                try:
                    request = decode_request(line)
                except MalformedFrame as exc:
                    logger.warning("Skipping malformed request (%s): %r", exc, exc.line)
                    continue
                pool.submit(self._respond, request)
        logger.info("Worker exiting")


def main():
    logging.basicConfig(
        stream=sys.stderr,
        level=logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )
    Worker().run()


if __name__ == "__main__":
    main()
