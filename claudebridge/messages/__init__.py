"""Chat Completions <-> Claude Messages conversion."""

from .stream_adapter import ClaudeToChatStreamAdapter, convert_stream
from .translator import (
    ConversionResult,
    clean_json_schema,
    convert_messages,
    convert_request,
    convert_response,
    convert_stop_reason,
)

__all__ = [
    "ClaudeToChatStreamAdapter",
    "ConversionResult",
    "clean_json_schema",
    "convert_messages",
    "convert_request",
    "convert_response",
    "convert_stop_reason",
    "convert_stream",
]
