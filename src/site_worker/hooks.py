"""
Write-pipeline hooks that run built pages through the worker.

A hook takes ``(path, contents)`` right before a file is written and
returns the list of ``(path, contents)`` pairs to write instead.  Only
``.html`` files are touched; everything else passes through unchanged.
"""

import logging
from pathlib import PurePath
from typing import Callable, Iterable, List, Optional, Tuple

from .client import WorkerClient
from .errors import BuildStepError, WorkerError
from .ipc.protocol import HIGHLIGHT, MINIFY
from .shared import SharedWorker

logger = logging.getLogger(__name__)

Output = List[Tuple[PurePath, bytes]]
Hook = Callable[[PurePath, bytes], Output]

MIN_HTML_HEADER = (
    "<!-- This file is minified, but you can find this site's original source at "
    "https://github.com/videogame-hacker/som.codes/"
    " -->\n"
)


def is_html(path) -> bool:
    return PurePath(path).name.endswith(".html")


def _transform(client: Optional[WorkerClient], operation: str, path, contents: bytes) -> str:
    client = client if client is not None else SharedWorker.get()
    html = contents.decode("utf-8", errors="replace")
    try:
        return client.call(operation, html)
    except WorkerError as exc:
        logger.error("%s failed for %s: %s", operation, path, exc)
        raise BuildStepError(operation, path, exc) from exc


def highlight_hook(client: Optional[WorkerClient] = None) -> Hook:
    """Syntax-highlight code blocks in HTML pages (shared worker if no client given)."""

    def hook(path, contents: bytes) -> Output:
        if not is_html(path):
            return [(path, contents)]
        return [(path, _transform(client, HIGHLIGHT, path, contents).encode("utf-8"))]

    return hook


def minify_hook(client: Optional[WorkerClient] = None, header: str = MIN_HTML_HEADER) -> Hook:
    """Minify HTML pages and prefix them with ``header``."""

    def hook(path, contents: bytes) -> Output:
        if not is_html(path):
            return [(path, contents)]
        minified = _transform(client, MINIFY, path, contents)
        return [(path, (header + minified).encode("utf-8"))]

    return hook


def run_hooks(hooks: Iterable[Hook], path, contents: bytes) -> Output:
    """Apply ``hooks`` in order; each output pair is fed to the next hook."""
    outputs: Output = [(path, contents)]
    for hook in hooks:
        outputs = [pair for p, c in outputs for pair in hook(p, c)]
    return outputs
