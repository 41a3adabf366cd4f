"""
Plumbing for talking to the worker subprocess.

``protocol`` frames requests and responses as JSON lines, ``registry``
matches responses to waiting callers, ``reader`` drains the worker's
stdout on a background thread and ``process_manager`` owns the process.
"""

from .process_manager import WorkerProcess
from .reader import OutputReader
from .registry import DeliverySlot, ResponseRegistry

__all__ = ["DeliverySlot", "OutputReader", "ResponseRegistry", "WorkerProcess"]
