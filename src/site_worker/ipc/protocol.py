"""
JSON-line protocol between the build and the worker subprocess.

Each frame is one compact JSON object on its own line, sent over the
worker's stdin/stdout:

    request  (build -> worker):  {"seq": 1, "op": "minify", "data": "<p> hi </p>"}
    response (worker -> build):  {"seq": 1, "data": "<p>hi</p>"}

The sequence number is the only thing tying a response to its request;
the operation name is not echoed back.
"""

import json
from typing import NamedTuple

from ..errors import MalformedFrame

# Operations understood by the site's worker
MINIFY = "minify"
HIGHLIGHT = "highlight"

MAX_SEQ = 0xFFFFFFFF  # u32

# How much of a bad line to keep in error messages
_PREVIEW_CHARS = 120


class Request(NamedTuple):
    seq: int
    op: str
    data: str


class Response(NamedTuple):
    seq: int
    data: str


def _dump(obj: dict) -> str:
    # json escapes newlines; default ensure_ascii keeps frames ASCII-only
    return json.dumps(obj, separators=(",", ":")) + "\n"


def _preview(line: str) -> str:
    line = line.rstrip("\n")
    if len(line) > _PREVIEW_CHARS:
        return line[:_PREVIEW_CHARS] + "..."
    return line


def _check_seq(seq) -> int:
    if isinstance(seq, bool) or not isinstance(seq, int):
        raise MalformedFrame(f"seq must be an integer, got {type(seq).__name__}")
    if not 0 <= seq <= MAX_SEQ:
        raise MalformedFrame(f"seq out of range: {seq}")
    return seq


def _load(line: str) -> dict:
    try:
        obj = json.loads(line)
    except ValueError as exc:
        raise MalformedFrame(f"invalid JSON: {exc}", _preview(line)) from exc
    if not isinstance(obj, dict):
        raise MalformedFrame("frame is not a JSON object", _preview(line))
    return obj


def _field(obj: dict, name: str, line: str):
    if name not in obj:
        raise MalformedFrame(f"frame is missing '{name}'", _preview(line))
    return obj[name]


def _string_field(obj: dict, name: str, line: str) -> str:
    value = _field(obj, name, line)
    if not isinstance(value, str):
        raise MalformedFrame(f"'{name}' must be a string", _preview(line))
    return value


def _seq_field(obj: dict, line: str) -> int:
    try:
        return _check_seq(_field(obj, "seq", line))
    except MalformedFrame as exc:
        if exc.line is None:
            exc.line = _preview(line)
        raise


def encode_request(seq: int, op: str, data: str) -> str:
    """Encode a request as a JSON line (with trailing newline)."""
    return _dump({"seq": _check_seq(seq), "op": op, "data": data})


def decode_response(line: str) -> Response:
    """Decode a worker output line. Raises MalformedFrame on bad input."""
    obj = _load(line)
    return Response(_seq_field(obj, line), _string_field(obj, "data", line))


def encode_response(seq: int, data: str) -> str:
    """Encode a response as a JSON line (worker side)."""
    return _dump({"seq": _check_seq(seq), "data": data})


def decode_request(line: str) -> Request:
    """Decode a request line (worker side). Raises MalformedFrame on bad input."""
    obj = _load(line)
    return Request(
        _seq_field(obj, line),
        _string_field(obj, "op", line),
        _string_field(obj, "data", line),
    )
