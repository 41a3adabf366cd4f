"""Shared fixtures: an in-memory fake worker process and real fixture workers."""

import os
import queue
import shlex
import sys
from pathlib import Path

import pytest

import site_worker
from site_worker.config import WorkerConfig
from site_worker.ipc.protocol import decode_request, encode_response

FIXTURES = Path(__file__).parent / "fixtures"
SRC_DIR = Path(site_worker.__file__).resolve().parent.parent


def echo_responses(request):
    return [encode_response(request.seq, request.data)]


class FakeStdout:
    """Blocking line source fed by the fake worker; ``close()`` means EOF."""

    def __init__(self):
        self._lines: queue.Queue = queue.Queue()

    def feed(self, line: str) -> None:
        self._lines.put(line)

    def close(self) -> None:
        self._lines.put("")

    def readline(self) -> str:
        return self._lines.get()


class FakeStdin:
    def __init__(self, on_line):
        self.lines = []
        self.closed = False
        self._on_line = on_line

    def write(self, text: str) -> int:
        if self.closed:
            raise ValueError("I/O operation on closed file")
        self.lines.append(text)
        self._on_line(text)
        return len(text)

    def flush(self) -> None:
        pass


class FakeProcess:
    """Stands in for WorkerProcess.

    ``respond(request)`` returns the output lines the "worker" writes for
    each request; they are fed to stdout as soon as the request is written.
    """

    command = "fake-worker"

    def __init__(self, respond=echo_responses):
        self.respond = respond
        self.stdout = FakeStdout()
        self.stdin = FakeStdin(self._on_line)
        self.started = True
        self.alive = True
        self.killed = False
        self.status = None

    @property
    def requests(self):
        return [decode_request(line) for line in self.stdin.lines]

    def _on_line(self, line: str) -> None:
        for out in self.respond(decode_request(line)):
            self.stdout.feed(out)

    def take_stdout(self):
        return self.stdout

    def exit_status(self, timeout: float = 1.0):
        return self.status

    def kill(self) -> None:
        self.killed = True
        self.alive = False
        self.stdin.closed = True
        self.stdout.close()


@pytest.fixture()
def fake_process():
    return FakeProcess


@pytest.fixture()
def worker_config():
    """Build a WorkerConfig that runs a fixture script with this interpreter."""

    def _make(script: str, *args: str, **kwargs) -> WorkerConfig:
        return _python_config((FIXTURES / script, *args), **kwargs)

    return _make


@pytest.fixture()
def package_worker_config():
    """WorkerConfig running the packaged worker: ``python -m site_worker.worker``."""
    return _python_config(("-m", "site_worker.worker"), request_timeout=30)


def _python_config(args, **kwargs) -> WorkerConfig:
    command = " ".join(shlex.quote(str(a)) for a in (sys.executable, *args))
    pythonpath = os.pathsep.join(p for p in (str(SRC_DIR), os.environ.get("PYTHONPATH")) if p)
    return WorkerConfig(command=command, cwd=None, env={"PYTHONPATH": pythonpath}, **kwargs)
