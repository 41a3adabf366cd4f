"""Exception hierarchy for the worker multiplexer."""

from typing import Optional


class WorkerError(RuntimeError):
    """Base class for all worker related errors."""


class WorkerStartupFailed(WorkerError):
    """The worker process could not be spawned. Not retried."""


class MalformedFrame(WorkerError, ValueError):
    """A line from the worker could not be decoded into a frame."""

    def __init__(self, message: str, line: Optional[str] = None):
        super().__init__(message)
        self.line = line


class DuplicateSequence(WorkerError):
    """A sequence number was registered twice (allocation bug)."""


class WorkerChannelClosed(WorkerError):
    """The worker's output closed before a response was delivered."""


class WorkerTimeout(WorkerError):
    """A caller waited longer than the configured timeout."""

    def __init__(self, message: str, seq: Optional[int] = None, timeout: Optional[float] = None):
        super().__init__(message)
        self.seq = seq
        self.timeout = timeout


class WorkerWriteError(WorkerError):
    """Writing a request to the worker's stdin failed (e.g. broken pipe)."""


class BuildStepError(WorkerError):
    """A write-pipeline hook failed for a specific page."""

    def __init__(self, operation: str, path, cause: BaseException):
        super().__init__(f"{operation} failed for {path}: {cause}")
        self.operation = operation
        self.path = path
        self.cause = cause
