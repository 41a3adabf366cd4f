"""Tests for the Python worker entry point (in-process, canned stdin)."""

import io
import json
import threading

from site_worker.ipc.protocol import HIGHLIGHT, MINIFY, Request, encode_request
from site_worker.worker import (
    DEFAULT_HANDLERS,
    UNKNOWN_OPERATION,
    Worker,
)


class TestWorkerProtocol:
    """Test the worker's request handling with canned stdin."""

    def _run_worker(self, input_lines, handlers=None, max_threads=1):
        stdin = io.StringIO("".join(input_lines))
        stdout = io.StringIO()
        Worker(handlers, stdin=stdin, stdout=stdout, max_threads=max_threads).run()
        return [json.loads(line) for line in stdout.getvalue().splitlines() if line]

    def test_default_handlers(self):
        responses = self._run_worker([
            encode_request(1, "echo", "same"),
            encode_request(2, MINIFY, "<p>  hi  </p>"),
            encode_request(3, HIGHLIGHT, '<pre><code class="language-python">def f(): pass</code></pre>'),
        ])
        assert [r["seq"] for r in responses] == [1, 2, 3]
        assert responses[0]["data"] == "same"
        assert "hi" in responses[1]["data"]
        assert "  " not in responses[1]["data"]
        assert '<span class="k">def</span>' in responses[2]["data"]

    def test_default_operations(self):
        assert set(DEFAULT_HANDLERS) == {"echo", MINIFY, HIGHLIGHT}

    def test_unknown_operation_answers_question_mark(self):
        responses = self._run_worker([encode_request(5, "transmogrify", "<code></code>")])
        assert responses == [{"seq": 5, "data": UNKNOWN_OPERATION}]

    def test_custom_handlers(self):
        handlers = {HIGHLIGHT: lambda html: html.upper()}
        responses = self._run_worker([encode_request(1, HIGHLIGHT, "<code>x</code>")], handlers)
        assert responses == [{"seq": 1, "data": "<CODE>X</CODE>"}]

    def test_handler_error_answers_empty(self):
        def boom(data):
            raise RuntimeError("boom")

        responses = self._run_worker([encode_request(1, "boom", "x")], {"boom": boom})
        assert responses == [{"seq": 1, "data": ""}]

    def test_malformed_request_skipped(self):
        responses = self._run_worker([
            "not json\n",
            '{"seq": 1}\n',
            "\n",
            encode_request(2, "echo", "ok"),
        ])
        assert responses == [{"seq": 2, "data": "ok"}]

    def test_answers_every_request_with_thread_pool(self):
        lines = [encode_request(seq, "echo", f"payload-{seq}") for seq in range(1, 51)]
        responses = self._run_worker(lines, max_threads=8)
        assert sorted((r["seq"], r["data"]) for r in responses) == [
            (seq, f"payload-{seq}") for seq in range(1, 51)
        ]

    def test_slow_request_answered_after_fast_one(self):
        release = threading.Event()

        def slow(data):
            release.wait(timeout=5)
            return data

        def fast(data):
            release.set()
            return data

        responses = self._run_worker(
            [encode_request(1, "slow", "s"), encode_request(2, "fast", "f")],
            {"slow": slow, "fast": fast},
            max_threads=2,
        )
        assert [r["seq"] for r in responses] == [2, 1]

    def test_default_handlers_not_mutated(self):
        worker = Worker({"extra": str.upper})
        assert "extra" not in DEFAULT_HANDLERS
        assert worker.handle(Request(1, "echo", "x")) == UNKNOWN_OPERATION
