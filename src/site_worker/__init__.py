"""
site-worker: share one long-running HTML worker process between build threads.

Quick start:
    from site_worker import WorkerClient, WorkerConfig

    with WorkerClient(WorkerConfig(command="node index.js", cwd="build_src/node_worker")) as worker:
        html = worker.minify("<p>  hi  </p>")

Process-wide client (started on first use, killed at exit):
    from site_worker import SharedWorker

    SharedWorker.get().highlight('<pre><code class="language-rust">let x = 1;</code></pre>')
"""

__version__ = "0.1.0"

from .client import WorkerClient
from .config import WorkerConfig, load_config
from .errors import (
    BuildStepError,
    DuplicateSequence,
    MalformedFrame,
    WorkerChannelClosed,
    WorkerError,
    WorkerStartupFailed,
    WorkerTimeout,
    WorkerWriteError,
)
from .hooks import highlight_hook, minify_hook, run_hooks
from .shared import SharedWorker

__all__ = [
    "BuildStepError",
    "DuplicateSequence",
    "MalformedFrame",
    "SharedWorker",
    "WorkerChannelClosed",
    "WorkerClient",
    "WorkerConfig",
    "WorkerError",
    "WorkerStartupFailed",
    "WorkerTimeout",
    "WorkerWriteError",
    "__version__",
    "highlight_hook",
    "load_config",
    "minify_hook",
    "run_hooks",
]
