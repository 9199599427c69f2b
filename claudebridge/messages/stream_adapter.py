"""Stream adapter for converting Claude Messages SSE to OpenAI Chat Completions SSE.

Converts the Claude streaming event sequence into chat completion chunks with
the lifecycle guarantees OpenAI clients rely on: a leading role chunk, exactly
one finish chunk and a terminating ``[DONE]``.

Claude Messages Events:
    event: message_start
    data: {"type":"message_start","message":{"id":"msg_...","model":"...",...}}

    event: content_block_start
    data: {"type":"content_block_start","index":0,"content_block":{"type":"text","text":""}}

    event: content_block_delta
    data: {"type":"content_block_delta","index":0,"delta":{"type":"text_delta","text":"Hello"}}

    event: content_block_stop
    data: {"type":"content_block_stop","index":0}

    event: message_delta
    data: {"type":"message_delta","delta":{"stop_reason":"end_turn"},"usage":{"output_tokens":10}}

    event: message_stop
    data: {"type":"message_stop"}

OpenAI Chat Completion Events:
    data: {"choices":[{"delta":{"role":"assistant"},"index":0,"finish_reason":null}]}
    data: {"choices":[{"delta":{"content":"Hello"},"index":0,"finish_reason":null}]}
    data: {"choices":[{"delta":{"tool_calls":[...]},"index":0,"finish_reason":null}]}
    data: {"choices":[{"delta":{},"index":0,"finish_reason":"stop"}]}
    data: [DONE]

Reasoning ("thinking") blocks are surfaced inline as ordinary content wrapped
in <thinking> tags.
"""

import logging
import time
import uuid
from typing import Any, AsyncIterator, Awaitable, Callable, Iterator, Mapping, Optional, Union

from ..core.exceptions import StreamDecodeError
from ..core.sse import DONE_SENTINEL, SSELineDecoder, format_sse_data, parse_sse_data
from ..types.chat import ChatCompletionChunk, Delta
from .translator import THINKING_CLOSE, THINKING_OPEN, convert_stop_reason

logger = logging.getLogger("claudebridge")

DisconnectChecker = Callable[[], Awaitable[bool]]


def _event_to_dict(event: Any) -> Optional[dict[str, Any]]:
    """Normalize an SDK event object or a mapping into a plain dict."""
    if isinstance(event, Mapping):
        return dict(event)
    model_dump = getattr(event, "model_dump", None)
    if callable(model_dump):
        dumped = model_dump()
        if isinstance(dumped, dict):
            return dumped
    logger.warning(f"Skipping stream event of unsupported type {type(event).__name__}")
    return None


class ClaudeToChatStreamAdapter:
    """Converts a Claude Messages event stream to OpenAI chat completion chunks.

    This adapter maintains state during streaming to:
    - Emit the role chunk before any other frame
    - Wrap reasoning blocks in <thinking> tags
    - Accumulate tool-call arguments until the block closes
    - Emit the finish chunk and [DONE] exactly once
    """

    def __init__(self, model: str, response_id: Optional[str] = None):
        """Initialize the stream adapter.

        Args:
            model: Model name reported in chunks until message_start names one
            response_id: Chunk id; replaced by the id from message_start
        """
        self.model = model
        self.response_id = response_id or f"chatcmpl-{uuid.uuid4().hex[:24]}"
        self.created = int(time.time())

        # Reasoning / tool call tracking
        self.in_thinking = False
        self.current_tool_call: Optional[dict[str, Any]] = None
        self.tool_calls_started = 0

        # Usage tracking
        self.input_tokens = 0
        self.output_tokens = 0

        # State flags
        self.role_sent = False
        self.finish_sent = False
        self.done_sent = False
        self.events_seen = 0
        self.stop_reason: Optional[str] = None

    # ------------------------------------------------------------------
    # Event processing
    # ------------------------------------------------------------------

    def process_event(self, event: Mapping[str, Any]) -> Iterator[bytes]:
        """Process one parsed Claude stream event.

        Args:
            event: Parsed JSON of a single SSE ``data:`` payload

        Yields:
            OpenAI chat completion SSE frames
        """
        if self.done_sent:
            return

        self.events_seen += 1
        event_type = event.get("type", "")

        if event_type == "message_start":
            message = event.get("message") or {}
            if message.get("id"):
                self.response_id = message["id"]
            if message.get("model"):
                self.model = message["model"]
            usage = message.get("usage") or {}
            self.input_tokens = usage.get("input_tokens") or self.input_tokens
            yield from self._ensure_role()

        elif event_type == "content_block_start":
            yield from self._process_block_start(event.get("content_block") or {})

        elif event_type == "content_block_delta":
            yield from self._process_block_delta(event.get("delta") or {})

        elif event_type == "content_block_stop":
            yield from self._process_block_stop()

        elif event_type == "message_delta":
            usage = event.get("usage") or {}
            self.output_tokens = usage.get("output_tokens") or self.output_tokens
            stop_reason = (event.get("delta") or {}).get("stop_reason")
            if stop_reason:
                self.stop_reason = stop_reason
                yield from self._emit_finish(convert_stop_reason(stop_reason))

        elif event_type == "message_stop":
            yield from self._emit_finish("stop")
            yield from self._emit_done()

        elif event_type == "error":
            error = event.get("error") or {}
            logger.error(
                f"Upstream stream error: {error.get('type', 'unknown')}: {error.get('message', '')}"
            )

        elif event_type == "ping":
            pass

        else:
            logger.debug(f"Skipping unknown stream event type: {event_type}")

    def _process_block_start(self, block: Mapping[str, Any]) -> Iterator[bytes]:
        block_type = block.get("type", "")

        if block_type == "tool_use":
            self.current_tool_call = {
                "index": self.tool_calls_started,
                "id": block.get("id") or f"call_{uuid.uuid4().hex[:24]}",
                "name": block.get("name", ""),
                "arguments": "",
            }
            self.tool_calls_started += 1

        elif block_type == "thinking":
            self.in_thinking = True
            yield from self._emit_content(THINKING_OPEN)
            if block.get("thinking"):
                yield from self._emit_content(block["thinking"])

        elif block_type == "text":
            if block.get("text"):
                yield from self._emit_content(block["text"])

    def _process_block_delta(self, delta: Mapping[str, Any]) -> Iterator[bytes]:
        delta_type = delta.get("type", "")

        if delta_type == "text_delta":
            text = delta.get("text") or ""
            if text:
                yield from self._emit_content(text)

        elif delta_type == "thinking_delta":
            thinking = delta.get("thinking") or ""
            if thinking:
                yield from self._emit_content(thinking)

        elif delta_type == "input_json_delta":
            if self.current_tool_call is None:
                logger.warning("input_json_delta received outside a tool_use block")
                return
            self.current_tool_call["arguments"] += delta.get("partial_json") or ""

        # signature_delta carries nothing the client can use

    def _process_block_stop(self) -> Iterator[bytes]:
        if self.in_thinking:
            self.in_thinking = False
            yield from self._emit_content(THINKING_CLOSE)

        if self.current_tool_call is not None:
            tool_call = self.current_tool_call
            self.current_tool_call = None
            yield from self._emit_chunk({
                "tool_calls": [{
                    "index": tool_call["index"],
                    "id": tool_call["id"],
                    "type": "function",
                    "function": {
                        "name": tool_call["name"],
                        "arguments": tool_call["arguments"],
                    },
                }]
            })

    def finish(self) -> Iterator[bytes]:
        """Emit whatever is needed to leave the client stream well-formed.

        Yields:
            Closing <thinking> content, the finish chunk and [DONE] as needed
        """
        if self.done_sent:
            return

        if self.in_thinking:
            self.in_thinking = False
            yield from self._emit_content(THINKING_CLOSE)

        if self.current_tool_call is not None:
            logger.warning(
                f"Dropping unfinished tool call {self.current_tool_call['id']} "
                f"({self.current_tool_call['name']}) at end of stream"
            )
            self.current_tool_call = None

        yield from self._emit_finish("stop")
        yield from self._emit_done()

    # ------------------------------------------------------------------
    # Frame builders
    # ------------------------------------------------------------------

    def _chunk(self, delta: Delta, finish_reason: Optional[str] = None) -> bytes:
        chunk: ChatCompletionChunk = {
            "id": self.response_id,
            "object": "chat.completion.chunk",
            "created": self.created,
            "model": self.model,
            "choices": [{"index": 0, "delta": delta, "finish_reason": finish_reason}],
        }
        return format_sse_data(chunk)

    def _ensure_role(self) -> Iterator[bytes]:
        if not self.role_sent:
            self.role_sent = True
            yield self._chunk({"role": "assistant"})

    def _emit_chunk(self, delta: Delta) -> Iterator[bytes]:
        yield from self._ensure_role()
        yield self._chunk(delta)

    def _emit_content(self, text: str) -> Iterator[bytes]:
        yield from self._emit_chunk({"content": text})

    def _emit_finish(self, finish_reason: Optional[str]) -> Iterator[bytes]:
        if self.finish_sent:
            return
        yield from self._ensure_role()
        self.finish_sent = True
        yield self._chunk({}, finish_reason)

    def _emit_done(self) -> Iterator[bytes]:
        if not self.done_sent:
            self.done_sent = True
            yield DONE_SENTINEL

    # ------------------------------------------------------------------
    # Async drivers
    # ------------------------------------------------------------------

    def _log_summary(self) -> None:
        logger.info(
            f"Stream {self.response_id} complete: {self.events_seen} events, "
            f"{self.tool_calls_started} tool calls, stop_reason={self.stop_reason}, "
            f"usage(in={self.input_tokens}, out={self.output_tokens})"
        )

    async def adapt_stream(
        self,
        byte_chunks: AsyncIterator[bytes],
        disconnect_checker: Optional[DisconnectChecker] = None,
    ) -> AsyncIterator[bytes]:
        """Transform a raw Claude SSE byte stream into chat completion frames.

        Args:
            byte_chunks: Raw bytes from the upstream response body
            disconnect_checker: Returns True once the client has gone away

        Yields:
            OpenAI chat completion SSE frames
        """
        decoder = SSELineDecoder()
        try:
            async for chunk in byte_chunks:
                if disconnect_checker and await disconnect_checker():
                    logger.info(f"Client disconnected, stopping stream {self.response_id}")
                    return
                for line in decoder.feed(chunk):
                    for frame in self._process_line(line):
                        yield frame
            for line in decoder.flush():
                for frame in self._process_line(line):
                    yield frame
        except Exception as exc:
            logger.error(f"Upstream stream failed for {self.response_id}: {exc}", exc_info=True)

        for frame in self.finish():
            yield frame
        self._log_summary()

    def _process_line(self, line: str) -> Iterator[bytes]:
        try:
            event = parse_sse_data(line)
        except StreamDecodeError as exc:
            logger.warning(f"Skipping malformed stream line: {exc.message} ({exc.line[:100]})")
            return
        if event is not None:
            yield from self.process_event(event)

    async def adapt_events(
        self,
        events: AsyncIterator[Any],
        disconnect_checker: Optional[DisconnectChecker] = None,
    ) -> AsyncIterator[bytes]:
        """Transform an anthropic SDK event stream into chat completion frames.

        Args:
            events: Event objects exposing ``model_dump()``, or plain mappings
            disconnect_checker: Returns True once the client has gone away

        Yields:
            OpenAI chat completion SSE frames
        """
        try:
            async for raw_event in events:
                if disconnect_checker and await disconnect_checker():
                    logger.info(f"Client disconnected, stopping stream {self.response_id}")
                    return
                event = _event_to_dict(raw_event)
                if event is None:
                    continue
                for frame in self.process_event(event):
                    yield frame
        except Exception as exc:
            logger.error(f"Upstream stream failed for {self.response_id}: {exc}", exc_info=True)

        for frame in self.finish():
            yield frame
        self._log_summary()


async def convert_stream(
    model: str,
    source: Union[AsyncIterator[bytes], AsyncIterator[Any]],
    *,
    response_id: Optional[str] = None,
    disconnect_checker: Optional[DisconnectChecker] = None,
    events: bool = False,
) -> AsyncIterator[bytes]:
    """Convenience function to adapt a Claude stream to chat completion chunks.

    Args:
        model: Model name reported until the stream names one
        source: Raw SSE bytes, or SDK events when ``events`` is True
        response_id: Chunk id used until message_start provides one
        disconnect_checker: Returns True once the client has gone away
        events: Treat ``source`` as an SDK event iterator

    Yields:
        OpenAI chat completion SSE frames
    """
    adapter = ClaudeToChatStreamAdapter(model, response_id=response_id)
    if events:
        stream = adapter.adapt_events(source, disconnect_checker)
    else:
        stream = adapter.adapt_stream(source, disconnect_checker)
    async for frame in stream:
        yield frame
