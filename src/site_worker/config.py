"""
Configuration for the worker process and client.

Defaults match the site build: the Node.js HTML worker started with
``node index.js`` from ``build_src/node_worker``.  Values can be loaded
from a JSON file (``SITE_WORKER_CONFIG`` env var or an explicit path) and
overridden per-field with ``SITE_WORKER_COMMAND``, ``SITE_WORKER_CWD`` and
``SITE_WORKER_TIMEOUT``.
"""

import json
import logging
import os
from dataclasses import asdict, dataclass, field, fields, replace
from typing import Dict, Optional

logger = logging.getLogger(__name__)

DEFAULT_COMMAND = "node index.js"
DEFAULT_CWD = os.path.join("build_src", "node_worker")
DEFAULT_KILL_TIMEOUT = 5.0

ENV_CONFIG = "SITE_WORKER_CONFIG"
ENV_COMMAND = "SITE_WORKER_COMMAND"
ENV_CWD = "SITE_WORKER_CWD"
ENV_TIMEOUT = "SITE_WORKER_TIMEOUT"


def _parse_timeout(value) -> Optional[float]:
    """Parse a timeout setting. Empty / ``none`` means wait forever."""
    if value is None:
        return None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        timeout = float(value)
    else:
        text = str(value).strip()
        if not text or text.lower() == "none":
            return None
        try:
            timeout = float(text)
        except ValueError:
            raise ValueError(f"Invalid worker timeout: {value!r}") from None
    if timeout <= 0:
        raise ValueError(f"Worker timeout must be positive, got {timeout}")
    return timeout


@dataclass
class WorkerConfig:
    command: str = DEFAULT_COMMAND
    cwd: Optional[str] = DEFAULT_CWD
    request_timeout: Optional[float] = None  # None = block until answered
    kill_timeout: float = DEFAULT_KILL_TIMEOUT
    env: Dict[str, str] = field(default_factory=dict)

    def __post_init__(self):
        self.request_timeout = _parse_timeout(self.request_timeout)

    def process_env(self) -> Optional[Dict[str, str]]:
        """Environment for the child, or None to inherit ours unchanged."""
        if not self.env:
            return None
        merged = dict(os.environ)
        merged.update(self.env)
        return merged

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "WorkerConfig":
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            logger.warning("Ignoring unknown worker config keys: %s", ", ".join(unknown))
        return cls(**{k: v for k, v in data.items() if k in known})

    @classmethod
    def from_env(cls, base: Optional["WorkerConfig"] = None) -> "WorkerConfig":
        """Apply ``SITE_WORKER_*`` overrides on top of ``base`` (or the defaults)."""
        config = base if base is not None else cls()
        overrides = {}
        if ENV_COMMAND in os.environ:
            overrides["command"] = os.environ[ENV_COMMAND]
        if ENV_CWD in os.environ:
            overrides["cwd"] = os.environ[ENV_CWD] or None
        if ENV_TIMEOUT in os.environ:
            overrides["request_timeout"] = _parse_timeout(os.environ[ENV_TIMEOUT])
        return replace(config, **overrides) if overrides else config


def get_config_path() -> Optional[str]:
    return os.environ.get(ENV_CONFIG)


def load_config(path: Optional[str] = None) -> WorkerConfig:
    """
    Load the worker config from a JSON file, then apply env overrides.

    Falls back to defaults if no file is configured, the file doesn't
    exist, or it can't be parsed.
    """
    path = path or get_config_path()
    config = WorkerConfig()
    if path and os.path.exists(path):
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
            if not isinstance(data, dict):
                raise ValueError("top-level value must be an object")
            config = WorkerConfig.from_dict(data)
            logger.info("Loaded worker config from %s", path)
        except (OSError, ValueError, TypeError) as e:
            logger.warning("Failed to load worker config from %s: %s, using defaults", path, e)
            config = WorkerConfig()
    elif path:
        logger.info("No worker config at %s, using defaults", path)
    return WorkerConfig.from_env(config)
