"""
Basic usage example: minify and highlight pages through one shared worker.

Requirements:
    pip install site-worker

By default the worker is the Node.js HTML worker (``node index.js`` run
from ``build_src/node_worker``).  To try this without Node, point it at
the bundled Python worker instead:

    SITE_WORKER_COMMAND="python -m site_worker.worker" SITE_WORKER_CWD= python basic_usage.py
"""
from concurrent.futures import ThreadPoolExecutor

from site_worker import SharedWorker, WorkerClient, WorkerConfig, minify_hook, run_hooks

# --- Option 1: An explicit client, closed when the block exits ---
with WorkerClient(WorkerConfig.from_env(WorkerConfig(request_timeout=30))) as worker:
    print(worker.minify("<p>  Hello   from the worker!  </p>"))


# --- Option 2: The process-wide worker, shared by build threads ---
pages = {
    f"dist/page-{i}.html": f"<html>\n  <body>\n    <p>Page {i}</p>\n  </body>\n</html>\n".encode()
    for i in range(10)
}
hooks = [minify_hook()]  # no client given: uses SharedWorker.get()

with ThreadPoolExecutor(max_workers=4) as pool:
    results = pool.map(lambda item: run_hooks(hooks, *item), pages.items())
    for outputs in results:
        for path, contents in outputs:
            print(f"{path}: {len(contents)} bytes")

SharedWorker.shutdown()  # also runs automatically at exit
