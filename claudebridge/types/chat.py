"""Wire shapes for the two chat protocols bridged by this service.

Types are separated into:
- OpenAI chat completion types: what inbound clients send and receive
- Claude Messages types: what the backend accepts and streams back

Content blocks and stream events are closed tagged unions keyed by their
``type`` field so conversion code can branch exhaustively on it.
"""

from typing import Any, Literal, Union

from typing_extensions import NotRequired, TypedDict


# =============================================================================
# OpenAI Chat Completion Types
# =============================================================================


class FunctionCall(TypedDict, total=False):
    """A function call inside a tool call.

    Attributes:
        name: Name of the function to call.
        arguments: JSON-encoded arguments string. In stream chunks this
            holds the complete arguments of a finished call.
    """
    name: str
    arguments: str


class ToolCall(TypedDict, total=False):
    """A tool call requested by the assistant.

    Attributes:
        id: Identifier echoed back by the matching tool message.
        type: Always "function".
        function: The function name and its arguments.
        index: Position in the tool_calls array (stream chunks only).
    """
    id: str
    type: Literal["function"]
    function: FunctionCall
    index: int


class ImageURL(TypedDict, total=False):
    url: str
    detail: str


class TextPart(TypedDict):
    type: Literal["text"]
    text: str


class ImageURLPart(TypedDict):
    type: Literal["image_url"]
    image_url: ImageURL


ContentPart = Union[TextPart, ImageURLPart]


class ChatMessage(TypedDict, total=False):
    """A message in an inbound chat request.

    Attributes:
        role: "system", "user", "assistant" or "tool" ("developer" is
            treated as "system").
        content: Plain text, a list of content parts, or None when an
            assistant message only carries tool_calls.
        tool_calls: Tool calls made by the assistant.
        tool_call_id: The tool call a tool message answers.
        name: Optional speaker name.
    """
    role: str
    content: str | list[ContentPart] | None
    tool_calls: list[ToolCall]
    tool_call_id: str
    name: str


class FunctionDefinition(TypedDict, total=False):
    name: str
    description: str
    parameters: dict[str, Any]


class ToolDefinition(TypedDict):
    type: Literal["function"]
    function: FunctionDefinition


class ChatCompletionRequest(TypedDict, total=False):
    """Inbound request body for POST /v1/chat/completions."""
    model: str
    messages: list[ChatMessage]
    tools: list[ToolDefinition]
    tool_choice: str | dict[str, Any]
    stream: bool
    max_tokens: int
    max_completion_tokens: int
    temperature: float
    stop: str | list[str]
    user: str


class Delta(TypedDict, total=False):
    """Incremental update carried by one stream chunk.

    Attributes:
        role: "assistant" in the opening chunk only.
        content: A text increment.
        tool_calls: One completed tool call.
    """
    role: str
    content: str
    tool_calls: list[ToolCall]


class ResponseMessage(TypedDict):
    role: Literal["assistant"]
    content: str | None
    tool_calls: NotRequired[list[ToolCall]]


class Choice(TypedDict, total=False):
    """A choice in a completion or a completion chunk.

    Attributes:
        index: Always 0, a single choice is produced.
        delta: Stream chunks only.
        message: Non-streaming responses only.
        finish_reason: "stop", "length", "tool_calls" or None.
    """
    index: int
    delta: Delta
    message: ResponseMessage
    finish_reason: str | None


class Usage(TypedDict):
    prompt_tokens: int
    completion_tokens: int
    total_tokens: int


class ChatCompletionChunk(TypedDict):
    id: str
    object: Literal["chat.completion.chunk"]
    created: int
    model: str
    choices: list[Choice]


class ChatCompletionResponse(TypedDict):
    id: str
    object: Literal["chat.completion"]
    created: int
    model: str
    choices: list[Choice]
    usage: NotRequired[Usage]


# =============================================================================
# Claude Messages Types
# =============================================================================


class TextBlock(TypedDict):
    type: Literal["text"]
    text: str


class Base64ImageSource(TypedDict):
    type: Literal["base64"]
    media_type: str
    data: str


class ImageBlock(TypedDict):
    type: Literal["image"]
    source: Base64ImageSource


class ToolUseBlock(TypedDict):
    type: Literal["tool_use"]
    id: str
    name: str
    input: dict[str, Any]


class ToolResultBlock(TypedDict):
    type: Literal["tool_result"]
    tool_use_id: str
    content: str


class ThinkingBlock(TypedDict, total=False):
    type: Literal["thinking"]
    thinking: str
    signature: str


ContentBlock = Union[TextBlock, ImageBlock, ToolUseBlock, ToolResultBlock, ThinkingBlock]


class ClaudeMessage(TypedDict):
    """A message sent to the backend.

    Attributes:
        role: "user" or "assistant", strictly alternating.
        content: Plain text or a list of content blocks.
    """
    role: Literal["user", "assistant"]
    content: str | list[ContentBlock]


class ClaudeTool(TypedDict):
    name: str
    description: str
    input_schema: dict[str, Any]


class ThinkingConfig(TypedDict):
    type: Literal["enabled"]
    budget_tokens: int


class ClaudeRequest(TypedDict, total=False):
    """Outbound request body for POST /v1/messages."""
    model: str
    messages: list[ClaudeMessage]
    system: str
    max_tokens: int
    stream: bool
    thinking: ThinkingConfig
    tools: list[ClaudeTool]
    tool_choice: dict[str, Any]
    stop_sequences: list[str]
    metadata: dict[str, Any]


class ClaudeUsage(TypedDict, total=False):
    input_tokens: int
    output_tokens: int
    cache_creation_input_tokens: int | None
    cache_read_input_tokens: int | None


class ClaudeResponse(TypedDict, total=False):
    """A complete (non-streaming) backend response.

    Attributes:
        stop_reason: "end_turn", "tool_use", "max_tokens", "stop_sequence"
            or None.
    """
    id: str
    type: Literal["message"]
    role: Literal["assistant"]
    content: list[ContentBlock]
    model: str
    stop_reason: str | None
    stop_sequence: str | None
    usage: ClaudeUsage


# Stream events -------------------------------------------------------------


class MessageStartEvent(TypedDict):
    type: Literal["message_start"]
    message: ClaudeResponse


class ContentBlockStartEvent(TypedDict):
    type: Literal["content_block_start"]
    index: int
    content_block: ContentBlock


class TextDelta(TypedDict):
    type: Literal["text_delta"]
    text: str


class ThinkingDelta(TypedDict):
    type: Literal["thinking_delta"]
    thinking: str


class InputJSONDelta(TypedDict):
    type: Literal["input_json_delta"]
    partial_json: str


class SignatureDelta(TypedDict):
    type: Literal["signature_delta"]
    signature: str


BlockDelta = Union[TextDelta, ThinkingDelta, InputJSONDelta, SignatureDelta]


class ContentBlockDeltaEvent(TypedDict):
    type: Literal["content_block_delta"]
    index: int
    delta: BlockDelta


class ContentBlockStopEvent(TypedDict):
    type: Literal["content_block_stop"]
    index: int


class MessageDeltaBody(TypedDict, total=False):
    stop_reason: str | None
    stop_sequence: str | None


class MessageDeltaEvent(TypedDict):
    type: Literal["message_delta"]
    delta: MessageDeltaBody
    usage: NotRequired[ClaudeUsage]


class MessageStopEvent(TypedDict):
    type: Literal["message_stop"]


class PingEvent(TypedDict):
    type: Literal["ping"]


class ErrorEvent(TypedDict):
    type: Literal["error"]
    error: dict[str, Any]


ClaudeStreamEvent = Union[
    MessageStartEvent,
    ContentBlockStartEvent,
    ContentBlockDeltaEvent,
    ContentBlockStopEvent,
    MessageDeltaEvent,
    MessageStopEvent,
    PingEvent,
    ErrorEvent,
]
