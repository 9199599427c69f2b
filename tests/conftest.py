"""Pytest configuration and fixtures for testing."""

from __future__ import annotations

import json
from typing import Any, Callable, Iterable

import httpx
import pytest


# =============================================================================
# Claude SSE Event Builders
# =============================================================================


def sse_frame(event: dict[str, Any]) -> bytes:
    """Encode one Claude stream event as an ``event:``/``data:`` SSE frame."""
    return f"event: {event['type']}\ndata: {json.dumps(event, ensure_ascii=False)}\n\n".encode("utf-8")


def sse_body(events: Iterable[dict[str, Any]]) -> bytes:
    return b"".join(sse_frame(event) for event in events)


def message_start(message_id: str = "msg_test123", model: str = "claude-sonnet-4-5-20250929") -> dict[str, Any]:
    return {
        "type": "message_start",
        "message": {
            "id": message_id,
            "type": "message",
            "role": "assistant",
            "content": [],
            "model": model,
            "stop_reason": None,
            "usage": {"input_tokens": 12, "output_tokens": 1},
        },
    }


def text_block_start(index: int = 0) -> dict[str, Any]:
    return {"type": "content_block_start", "index": index, "content_block": {"type": "text", "text": ""}}


def thinking_block_start(index: int = 0) -> dict[str, Any]:
    return {"type": "content_block_start", "index": index, "content_block": {"type": "thinking", "thinking": ""}}


def tool_block_start(index: int, tool_id: str, name: str) -> dict[str, Any]:
    return {
        "type": "content_block_start",
        "index": index,
        "content_block": {"type": "tool_use", "id": tool_id, "name": name, "input": {}},
    }


def text_delta(text: str, index: int = 0) -> dict[str, Any]:
    return {"type": "content_block_delta", "index": index, "delta": {"type": "text_delta", "text": text}}


def thinking_delta(thinking: str, index: int = 0) -> dict[str, Any]:
    return {"type": "content_block_delta", "index": index, "delta": {"type": "thinking_delta", "thinking": thinking}}


def json_delta(partial: str, index: int) -> dict[str, Any]:
    return {"type": "content_block_delta", "index": index, "delta": {"type": "input_json_delta", "partial_json": partial}}


def block_stop(index: int = 0) -> dict[str, Any]:
    return {"type": "content_block_stop", "index": index}


def message_delta(stop_reason: str = "end_turn", output_tokens: int = 5) -> dict[str, Any]:
    return {
        "type": "message_delta",
        "delta": {"stop_reason": stop_reason, "stop_sequence": None},
        "usage": {"output_tokens": output_tokens},
    }


def message_stop() -> dict[str, Any]:
    return {"type": "message_stop"}


def simple_text_events(*parts: str, stop_reason: str = "end_turn") -> list[dict[str, Any]]:
    """A complete text-only event sequence."""
    events = [message_start(), text_block_start()]
    events.extend(text_delta(part) for part in parts)
    events.extend([block_stop(), message_delta(stop_reason), message_stop()])
    return events


# =============================================================================
# Output Parsing Helpers
# =============================================================================


def parse_chunks(frames: Iterable[bytes]) -> list[Any]:
    """Decode chat completion SSE frames; ``[DONE]`` is returned as the string."""
    parsed: list[Any] = []
    text = b"".join(frames).decode("utf-8")
    for block in text.split("\n\n"):
        block = block.strip()
        if not block:
            continue
        assert block.startswith("data: "), block
        data = block[len("data: "):]
        parsed.append(data if data == "[DONE]" else json.loads(data))
    return parsed


def joined_content(chunks: list[Any]) -> str:
    return "".join(
        chunk["choices"][0]["delta"].get("content") or ""
        for chunk in chunks
        if isinstance(chunk, dict)
    )


async def aiter_list(items: Iterable[Any]):
    """Helper to create async iterator from a list."""
    for item in items:
        yield item


# =============================================================================
# Config / Upstream Fixtures
# =============================================================================


def build_bridge_config(
    base_url: str = "http://claude.test",
    *,
    api_key: str = "test-key",
    stream_client: str = "httpx",
    max_attempts: int = 3,
    delay: float = 0.0,
    model_mapping: dict[str, str] | None = None,
) -> dict[str, Any]:
    """Build a bridge config pointing at a fake backend.

    Args:
        base_url: Upstream base URL
        api_key: Backend API key (empty string for none)
        stream_client: ``httpx`` or ``sdk``
        max_attempts: Retry attempts for non-streaming calls
        delay: Retry delay in seconds
        model_mapping: Optional alias overrides

    Returns:
        Config dict for ``create_app`` / ``ClaudeBridge``
    """
    config: dict[str, Any] = {
        "proxy_settings": {
            "backend": {
                "base_url": base_url,
                "api_key": api_key,
                "stream_client": stream_client,
            },
            "retry": {"max_attempts": max_attempts, "delay": delay},
        },
    }
    if model_mapping:
        config["model_mapping"] = model_mapping
    return config


class RecordingUpstream:
    """httpx handler that records requests and replays queued responses."""

    def __init__(self, responses: list[httpx.Response | Callable[[httpx.Request], httpx.Response] | Exception]):
        self.responses = list(responses)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if not self.responses:
            raise AssertionError(f"Unexpected upstream request to {request.url}")
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, Exception):
            raise response
        if callable(response):
            return response(request)
        # Fresh copy so a repeated response can be read again
        return httpx.Response(response.status_code, headers=response.headers, content=response.content)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)

    def json_bodies(self) -> list[dict[str, Any]]:
        return [json.loads(request.content) for request in self.requests]


@pytest.fixture
def claude_response() -> dict[str, Any]:
    """A minimal complete Claude Messages response."""
    return {
        "id": "msg_01ABC",
        "type": "message",
        "role": "assistant",
        "model": "claude-sonnet-4-5-20250929",
        "content": [{"type": "text", "text": "Hello there!"}],
        "stop_reason": "end_turn",
        "usage": {"input_tokens": 10, "output_tokens": 4},
    }


@pytest.fixture(autouse=True)
def clear_backend_env(monkeypatch):
    """Keep developer credentials out of tests."""
    monkeypatch.delenv("CLAUDE_API_KEY", raising=False)
    monkeypatch.delenv("CLAUDE_BASE_URL", raising=False)
