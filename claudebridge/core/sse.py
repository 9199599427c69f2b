"""SSE (Server-Sent Events) framing utilities."""

import codecs
import json
from typing import Any, Mapping, Optional

from .exceptions import StreamDecodeError

DONE_SENTINEL = b"data: [DONE]\n\n"


def format_sse_data(payload: Mapping[str, Any]) -> bytes:
    """Frame one JSON object as an SSE ``data:`` event."""
    json_str = json.dumps(payload, ensure_ascii=False)
    return f"data: {json_str}\n\n".encode("utf-8")


class SSELineDecoder:
    """Split a byte stream into complete SSE lines.

    Network reads can end in the middle of a line or of a multi-byte UTF-8
    character; the unfinished tail is carried over to the next ``feed``.
    """

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""

    def feed(self, chunk: bytes) -> list[str]:
        """Add a chunk and return the lines it completed."""
        self._buffer += self._decoder.decode(chunk)
        lines = self._buffer.split("\n")
        self._buffer = lines.pop()
        return [line.rstrip("\r") for line in lines]

    def flush(self) -> list[str]:
        """Return whatever is left once the stream has ended."""
        self._buffer += self._decoder.decode(b"", final=True)
        remainder, self._buffer = self._buffer.rstrip("\r"), ""
        return [remainder] if remainder.strip() else []


def parse_sse_data(line: str) -> Optional[dict[str, Any]]:
    """Decode one SSE line into a JSON object.

    Returns None for lines that carry no event payload: blank lines,
    comments, ``event:``/``id:``/``retry:`` fields and the ``[DONE]`` marker.

    Raises:
        StreamDecodeError: If a ``data:`` line does not hold a JSON object.
    """
    stripped = line.strip()
    if not stripped or not stripped.startswith("data:"):
        return None

    data_str = stripped[5:].strip()
    if not data_str or data_str == "[DONE]":
        return None

    try:
        parsed = json.loads(data_str)
    except json.JSONDecodeError as exc:
        raise StreamDecodeError(f"invalid JSON in SSE data line: {exc}", line) from exc

    if not isinstance(parsed, dict):
        raise StreamDecodeError("SSE data payload is not a JSON object", line)
    return parsed
