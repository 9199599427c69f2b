"""Type definitions for the bridge."""

from .chat import (
    ChatCompletionChunk,
    ChatCompletionRequest,
    ChatCompletionResponse,
    ChatMessage,
    Choice,
    ClaudeMessage,
    ClaudeRequest,
    ClaudeResponse,
    ClaudeStreamEvent,
    ClaudeTool,
    ClaudeUsage,
    ContentBlock,
    ContentPart,
    Delta,
    FunctionCall,
    ToolCall,
    ToolDefinition,
    Usage,
)

__all__ = [
    "ChatCompletionChunk",
    "ChatCompletionRequest",
    "ChatCompletionResponse",
    "ChatMessage",
    "Choice",
    "ClaudeMessage",
    "ClaudeRequest",
    "ClaudeResponse",
    "ClaudeStreamEvent",
    "ClaudeTool",
    "ClaudeUsage",
    "ContentBlock",
    "ContentPart",
    "Delta",
    "FunctionCall",
    "ToolCall",
    "ToolDefinition",
    "Usage",
]
