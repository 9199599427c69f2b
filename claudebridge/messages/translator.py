"""OpenAI Chat Completions <-> Claude Messages translation.

This module translates OpenAI-style chat requests into Claude Messages
requests and complete Claude responses back into chat completions, so
OpenAI clients can talk to a Claude-compatible backend.

Key mappings:
- system messages -> bracketed preface on the first user message
- content parts -> content blocks (data-URL images become base64 blocks)
- assistant tool_calls -> tool_use blocks
- consecutive tool messages -> one user message of tool_result blocks
- OpenAI tools/tool_choice -> Claude tools/tool_choice

Reference:
- Anthropic Messages API: https://docs.anthropic.com/en/api/messages
- OpenAI Chat Completions: https://platform.openai.com/docs/api-reference/chat
"""

from __future__ import annotations

import json
import logging
import time
import uuid
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from ..core.exceptions import MalformedRequestError
from ..model_mapper import ModelMapper
from ..types.chat import ChatCompletionRequest, ChatCompletionResponse, ChatMessage, ClaudeRequest, ClaudeResponse

logger = logging.getLogger("claudebridge")

DEFAULT_MAX_TOKENS = 4096
REASONING_MAX_TOKENS = 16000
REASONING_BUDGET_TOKENS = 10000

THINKING_OPEN = "<thinking>\n"
THINKING_CLOSE = "\n</thinking>\n\n"

# Schema keys some backends reject inside tool input schemas
UNSUPPORTED_SCHEMA_KEYS = frozenset({"format", "$schema"})
# Keys whose values map names to sub-schemas (the names themselves are kept)
_SCHEMA_MAP_KEYS = frozenset({"properties", "patternProperties", "$defs", "definitions"})

_SOURCE_ROLES = frozenset({"system", "developer", "user", "assistant", "tool"})

STOP_REASON_MAP = {
    "end_turn": "stop",
    "tool_use": "tool_calls",
    "max_tokens": "length",
}


@dataclass
class ConversionResult:
    """Converted message list plus the collected system text."""

    messages: list[dict[str, Any]]
    system_prompt: Optional[str] = None


# =============================================================================
# Request direction
# =============================================================================


def _text_from_parts(content: Any) -> str:
    """Join the text parts of a content value (string or list of parts)."""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        return "\n".join(
            part.get("text") or ""
            for part in content
            if isinstance(part, Mapping) and part.get("type") == "text"
        )
    return ""


def _convert_image_part(part: Mapping[str, Any]) -> Optional[dict[str, Any]]:
    """Convert an OpenAI image_url part to a Claude block.

    OpenAI format:
        {"type": "image_url", "image_url": {"url": "data:image/png;base64,..."}}
        {"type": "image_url", "image_url": {"url": "https://..."}}

    Claude format:
        {"type": "image", "source": {"type": "base64", "media_type": "image/png", "data": "..."}}

    Remote URLs are not fetched; Claude needs inline bytes, so they become a
    text block naming the URL.
    """
    image_url = part.get("image_url")
    if isinstance(image_url, Mapping):
        url = image_url.get("url") or ""
    elif isinstance(image_url, str):
        url = image_url
    else:
        url = ""

    if not url:
        logger.warning("Skipping image_url part without a URL")
        return None

    if not url.startswith("data:"):
        return {"type": "text", "text": f"[Image URL: {url}]"}

    header, marker, data = url.partition(";base64,")
    media_type = header[len("data:"):]
    if not marker or not media_type or not data:
        logger.warning(f"Skipping malformed data URL image ({url[:40]}...)")
        return None

    return {
        "type": "image",
        "source": {"type": "base64", "media_type": media_type, "data": data},
    }


def _parse_tool_arguments(arguments: Any, call_id: str) -> dict[str, Any]:
    if isinstance(arguments, Mapping):
        return dict(arguments)
    if arguments is None or (isinstance(arguments, str) and not arguments.strip()):
        return {}
    if not isinstance(arguments, str):
        raise MalformedRequestError(
            f"tool call {call_id} arguments must be a JSON string",
            code="invalid_tool_arguments",
            param="messages",
        )
    try:
        parsed = json.loads(arguments)
    except json.JSONDecodeError as exc:
        raise MalformedRequestError(
            f"tool call {call_id} arguments are not valid JSON: {exc}",
            code="invalid_tool_arguments",
            param="messages",
        ) from exc
    if not isinstance(parsed, dict):
        raise MalformedRequestError(
            f"tool call {call_id} arguments must encode a JSON object",
            code="invalid_tool_arguments",
            param="messages",
        )
    return parsed


def _convert_tool_calls(tool_calls: Any) -> list[dict[str, Any]]:
    if not tool_calls:
        return []
    if not isinstance(tool_calls, list):
        raise MalformedRequestError(
            "tool_calls must be an array", code="invalid_tool_calls", param="messages"
        )

    blocks: list[dict[str, Any]] = []
    for call in tool_calls:
        if not isinstance(call, Mapping):
            raise MalformedRequestError(
                "tool_calls entries must be objects",
                code="invalid_tool_calls",
                param="messages",
            )
        function = call.get("function") or {}
        if not isinstance(function, Mapping):
            raise MalformedRequestError(
                "tool_calls function must be an object",
                code="invalid_tool_calls",
                param="messages",
            )
        call_id = call.get("id") or f"toolu_{uuid.uuid4().hex[:24]}"
        blocks.append({
            "type": "tool_use",
            "id": call_id,
            "name": function.get("name", ""),
            "input": _parse_tool_arguments(function.get("arguments"), call_id),
        })
    return blocks


def _convert_content(content: Any) -> list[dict[str, Any]]:
    """Convert user/assistant content (string or parts) to content blocks."""
    if content is None or content == "":
        return []
    if isinstance(content, str):
        return [{"type": "text", "text": content}]
    if not isinstance(content, list):
        raise MalformedRequestError(
            "message content must be a string or an array of parts",
            code="invalid_content",
            param="messages",
        )

    blocks: list[dict[str, Any]] = []
    for part in content:
        if not isinstance(part, Mapping):
            logger.warning(f"Skipping non-object content part: {part!r}")
            continue
        part_type = part.get("type", "")
        if part_type == "text":
            blocks.append({"type": "text", "text": part.get("text") or ""})
        elif part_type == "image_url":
            block = _convert_image_part(part)
            if block is not None:
                blocks.append(block)
        else:
            logger.warning(f"Unsupported content part type: {part_type}")
    return blocks


def _is_tool_result_message(message: Mapping[str, Any]) -> bool:
    content = message.get("content")
    return (
        message.get("role") == "user"
        and isinstance(content, list)
        and bool(content)
        and all(block.get("type") == "tool_result" for block in content)
    )


def _prepend_system_prompt(messages: list[dict[str, Any]], system_prompt: str) -> None:
    """Splice the system text into the first user message, in place."""
    for message in messages:
        if message["role"] != "user":
            continue
        content = message["content"]
        if isinstance(content, str):
            message["content"] = (
                f"[System Instructions]\n{system_prompt}\n\n[User Message]\n{content}"
            )
        else:
            content.insert(0, {
                "type": "text",
                "text": f"[System Instructions]\n{system_prompt}\n\n[User Message]",
            })
        return
    logger.warning("No user message to carry the system prompt; system text dropped")


def convert_messages(messages: list[ChatMessage]) -> ConversionResult:
    """Convert OpenAI chat messages to alternating Claude messages.

    System messages are collected (joined by a blank line) and spliced into
    the first user message instead of the top-level ``system`` field, which
    some backends reject.

    Raises:
        MalformedRequestError: For unknown roles, tool messages without a
            tool_call_id, or tool call arguments that are not valid JSON.
    """
    converted: list[dict[str, Any]] = []
    system_parts: list[str] = []

    for position, message in enumerate(messages):
        if not isinstance(message, Mapping):
            raise MalformedRequestError(
                f"messages[{position}] must be an object",
                code="invalid_message",
                param="messages",
            )
        role = message.get("role")
        if role not in _SOURCE_ROLES:
            raise MalformedRequestError(
                f"messages[{position}] has unsupported role {role!r}",
                code="invalid_role",
                param="messages",
            )

        if role in ("system", "developer"):
            text = _text_from_parts(message.get("content"))
            if text:
                system_parts.append(text)
            continue

        if role == "tool":
            tool_call_id = message.get("tool_call_id")
            if not tool_call_id:
                raise MalformedRequestError(
                    f"messages[{position}] is a tool message without tool_call_id",
                    code="missing_tool_call_id",
                    param="messages",
                )
            result_text = _text_from_parts(message.get("content"))
            logger.debug(f"[Tool] id: {tool_call_id}, content_len: {len(result_text)}")
            block = {"type": "tool_result", "tool_use_id": tool_call_id, "content": result_text}

            # Merge consecutive results to keep user/assistant alternation
            if converted and _is_tool_result_message(converted[-1]):
                converted[-1]["content"].append(block)
            else:
                converted.append({"role": "user", "content": [block]})
            continue

        blocks = _convert_content(message.get("content"))
        if role == "assistant":
            blocks.extend(_convert_tool_calls(message.get("tool_calls")))

        if not blocks:
            continue

        content: str | list[dict[str, Any]] = blocks
        if len(blocks) == 1 and blocks[0]["type"] == "text":
            content = blocks[0]["text"]
        converted.append({"role": role, "content": content})

    system_prompt = "\n\n".join(system_parts) if system_parts else None
    if system_prompt:
        _prepend_system_prompt(converted, system_prompt)

    return ConversionResult(messages=converted, system_prompt=system_prompt)


def clean_json_schema(schema: Any) -> Any:
    """Recursively strip schema keys Claude does not accept.

    Only keys of schema nodes are stripped; property names under
    ``properties`` (and similar name -> schema maps) are preserved even when
    they collide with a stripped key.
    """
    if isinstance(schema, list):
        return [clean_json_schema(item) for item in schema]
    if not isinstance(schema, Mapping):
        return schema

    cleaned: dict[str, Any] = {}
    for key, value in schema.items():
        if key in UNSUPPORTED_SCHEMA_KEYS:
            continue
        if key in _SCHEMA_MAP_KEYS and isinstance(value, Mapping):
            cleaned[key] = {name: clean_json_schema(sub) for name, sub in value.items()}
        else:
            cleaned[key] = clean_json_schema(value)
    return cleaned


def _convert_tools(tools: Any) -> Optional[list[dict[str, Any]]]:
    """Convert OpenAI tools to Claude format.

    OpenAI: {"type": "function", "function": {"name": "...", "description": "...", "parameters": {...}}}
    Claude: {"name": "...", "description": "...", "input_schema": {...}}
    """
    if not tools:
        return None
    if not isinstance(tools, list):
        raise MalformedRequestError("tools must be an array", code="invalid_tools", param="tools")

    claude_tools = []
    for tool in tools:
        if not isinstance(tool, Mapping):
            raise MalformedRequestError(
                "tools entries must be objects", code="invalid_tools", param="tools"
            )
        if tool.get("type", "function") != "function":
            logger.warning(f"Skipping unsupported tool type: {tool.get('type')}")
            continue
        function = tool.get("function") or {}
        if not isinstance(function, Mapping):
            raise MalformedRequestError(
                "tools function must be an object", code="invalid_tools", param="tools"
            )
        name = function.get("name")
        if not name:
            raise MalformedRequestError(
                "function tools must have a name", code="invalid_tools", param="tools"
            )
        parameters = function.get("parameters") or {"type": "object", "properties": {}}
        claude_tools.append({
            "name": name,
            "description": function.get("description") or "",
            "input_schema": clean_json_schema(parameters),
        })

    return claude_tools or None


def _convert_tool_choice(tool_choice: Any) -> Optional[dict[str, Any]]:
    """Convert OpenAI tool_choice to Claude format.

    OpenAI: "auto" | "required" | "none" | {"type": "function", "function": {"name": "..."}}
    Claude: {"type": "auto"} | {"type": "any"} | {"type": "none"} | {"type": "tool", "name": "..."}
    """
    if tool_choice is None:
        return None

    if isinstance(tool_choice, str):
        mapping = {"auto": "auto", "required": "any", "none": "none"}
        choice_type = mapping.get(tool_choice)
        if choice_type is None:
            logger.warning(f"Ignoring unknown tool_choice {tool_choice!r}")
            return None
        return {"type": choice_type}

    if isinstance(tool_choice, Mapping) and tool_choice.get("type") == "function":
        function = tool_choice.get("function") or {}
        if not isinstance(function, Mapping):
            raise MalformedRequestError(
                "tool_choice function must be an object",
                code="invalid_tool_choice",
                param="tool_choice",
            )
        name = function.get("name")
        if name:
            return {"type": "tool", "name": name}

    logger.warning(f"Ignoring unsupported tool_choice {tool_choice!r}")
    return None


def _requested_max_tokens(payload: Mapping[str, Any]) -> Optional[int]:
    for field in ("max_tokens", "max_completion_tokens"):
        value = payload.get(field)
        if value is None:
            continue
        if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
            raise MalformedRequestError(
                f"{field} must be a positive integer", code="invalid_parameter", param=field
            )
        return value
    return None


def _has_tool_result(messages: list[dict[str, Any]]) -> bool:
    return any(
        isinstance(message["content"], list)
        and any(block.get("type") == "tool_result" for block in message["content"])
        for message in messages
    )


def convert_request(payload: ChatCompletionRequest, mapper: ModelMapper) -> ClaudeRequest:
    """Translate an OpenAI Chat Completions request to a Claude Messages request.

    Handles:
    - Message restructuring (see ``convert_messages``)
    - Model alias mapping and extended reasoning for reasoning aliases
    - max_tokens defaults, stream flag, tools, tool_choice, stop, user

    ``temperature`` is never forwarded: some backends return a server error
    for non-default values.

    Args:
        payload: OpenAI Chat Completions request body
        mapper: The model alias table to resolve ``model`` against

    Returns:
        Claude Messages API request body

    Raises:
        MalformedRequestError: If ``model`` or ``messages`` are missing or
            invalid.
    """
    model = payload.get("model")
    if not isinstance(model, str) or not model.strip():
        raise MalformedRequestError(
            "You must provide a model parameter", code="missing_parameter", param="model"
        )
    model = model.strip()

    messages = payload.get("messages")
    if not isinstance(messages, list) or not messages:
        raise MalformedRequestError(
            "messages must be a non-empty array", code="missing_parameter", param="messages"
        )

    conversion = convert_messages(messages)

    enable_thinking = mapper.is_reasoning_alias(model)
    if enable_thinking and _has_tool_result(conversion.messages):
        logger.info(f"Extended reasoning disabled for {model}: request continues a tool call")
        enable_thinking = False

    requested_max_tokens = _requested_max_tokens(payload)
    if enable_thinking:
        max_tokens = max(requested_max_tokens or REASONING_MAX_TOKENS, REASONING_MAX_TOKENS)
    else:
        max_tokens = requested_max_tokens or DEFAULT_MAX_TOKENS

    result: dict[str, Any] = {
        "model": mapper.resolve(model),
        "messages": conversion.messages,
        "max_tokens": max_tokens,
    }

    if "stream" in payload:
        result["stream"] = bool(payload["stream"])

    if enable_thinking:
        result["thinking"] = {"type": "enabled", "budget_tokens": REASONING_BUDGET_TOKENS}

    if "temperature" in payload:
        logger.debug(f"temperature={payload['temperature']} is not forwarded")

    tools = _convert_tools(payload.get("tools"))
    if tools:
        result["tools"] = tools
        tool_choice = _convert_tool_choice(payload.get("tool_choice"))
        if tool_choice is not None:
            result["tool_choice"] = tool_choice

    stop = payload.get("stop")
    if isinstance(stop, str) and stop:
        result["stop_sequences"] = [stop]
    elif isinstance(stop, list) and stop:
        result["stop_sequences"] = [s for s in stop if isinstance(s, str) and s]

    user = payload.get("user")
    if isinstance(user, str) and user:
        result["metadata"] = {"user_id": user}

    return result


# =============================================================================
# Response direction
# =============================================================================


def convert_stop_reason(stop_reason: Optional[str]) -> Optional[str]:
    """Convert a Claude stop_reason to an OpenAI finish_reason.

    end_turn -> stop, tool_use -> tool_calls, max_tokens -> length;
    anything else (or None) -> None.
    """
    if stop_reason is None:
        return None
    return STOP_REASON_MAP.get(stop_reason)


def convert_response(payload: ClaudeResponse, model: Optional[str] = None) -> ChatCompletionResponse:
    """Translate a complete Claude Messages response to a chat completion.

    Handles:
    - Text blocks, concatenated in order
    - Thinking blocks, wrapped in <thinking> tags ahead of the text
    - tool_use blocks -> tool_calls with JSON-encoded arguments
    - Usage and stop reason mapping

    Args:
        payload: Claude Messages API response body
        model: Model name to report when the response carries none

    Returns:
        OpenAI Chat Completions API response body
    """
    text_content = ""
    thinking_content = ""
    tool_calls: list[dict[str, Any]] = []

    for block in payload.get("content") or []:
        block_type = block.get("type", "")
        if block_type == "text":
            text_content += block.get("text") or ""
        elif block_type == "thinking":
            thinking_content += block.get("thinking") or ""
        elif block_type == "tool_use":
            tool_calls.append({
                "id": block.get("id") or f"call_{uuid.uuid4().hex[:24]}",
                "type": "function",
                "function": {
                    "name": block.get("name", ""),
                    "arguments": json.dumps(block.get("input") or {}, ensure_ascii=False),
                },
            })
        elif block_type == "redacted_thinking":
            logger.debug("Dropping redacted_thinking block during translation")
        else:
            logger.warning(f"Unknown content block type in response: {block_type}")

    if thinking_content:
        text_content = f"{THINKING_OPEN}{thinking_content}{THINKING_CLOSE}{text_content}"

    message: dict[str, Any] = {
        "role": "assistant",
        "content": text_content or None,
    }
    if tool_calls:
        message["tool_calls"] = tool_calls

    response: dict[str, Any] = {
        "id": payload.get("id") or f"chatcmpl-{uuid.uuid4().hex[:24]}",
        "object": "chat.completion",
        "created": int(time.time()),
        "model": payload.get("model") or model or "",
        "choices": [
            {
                "index": 0,
                "message": message,
                "finish_reason": convert_stop_reason(payload.get("stop_reason")),
            }
        ],
    }

    usage = payload.get("usage")
    if isinstance(usage, Mapping):
        input_tokens = int(usage.get("input_tokens") or 0)
        output_tokens = int(usage.get("output_tokens") or 0)
        response["usage"] = {
            "prompt_tokens": input_tokens,
            "completion_tokens": output_tokens,
            "total_tokens": input_tokens + output_tokens,
        }

    return response
