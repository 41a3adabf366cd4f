"""
Process-wide shared worker client.

Build stages running on different threads all talk to the same worker.
``SharedWorker.get()`` builds the client on first use; ``shutdown()``
kills the worker and runs automatically at interpreter exit.
"""
import atexit
import logging
import threading
from typing import Optional

from .client import WorkerClient
from .config import WorkerConfig, load_config

logger = logging.getLogger(__name__)


class SharedWorker:
    """Lazily-created singleton ``WorkerClient``."""

    _client: Optional[WorkerClient] = None
    _config: Optional[WorkerConfig] = None
    _lock = threading.Lock()
    _atexit_registered = False

    @classmethod
    def configure(cls, config: WorkerConfig) -> None:
        """
        Set the config used when the shared client is created.

        Raises:
            RuntimeError: If the shared client already exists
        """
        with cls._lock:
            if cls._client is not None:
                raise RuntimeError("Shared worker already created; call shutdown() first")
            cls._config = config

    @classmethod
    def get(cls) -> WorkerClient:
        """Return the shared client, creating it on first use."""
        with cls._lock:
            if cls._client is None:
                cls._client = WorkerClient(cls._config if cls._config is not None else load_config())
                if not cls._atexit_registered:
                    atexit.register(cls.shutdown)
                    cls._atexit_registered = True
                logger.debug("Created shared worker client")
            return cls._client

    @classmethod
    def shutdown(cls) -> None:
        """Kill the shared worker. The next ``get()`` starts a fresh one."""
        with cls._lock:
            client, cls._client = cls._client, None
        if client is not None:
            client.close()


def call(operation: str, payload: str) -> str:
    """``call`` on the shared client."""
    return SharedWorker.get().call(operation, payload)
