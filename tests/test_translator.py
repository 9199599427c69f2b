"""Tests for OpenAI Chat Completions <-> Claude Messages translator."""

import json

import pytest

from claudebridge.core.exceptions import MalformedRequestError
from claudebridge.messages.translator import (
    ConversionResult,
    _convert_tool_choice,
    _convert_tools,
    clean_json_schema,
    convert_messages,
    convert_request,
    convert_response,
    convert_stop_reason,
)
from claudebridge.model_mapper import ModelMapper


@pytest.fixture
def mapper():
    return ModelMapper()


def _assert_alternates(messages):
    roles = [message["role"] for message in messages]
    for previous, current in zip(roles, roles[1:]):
        assert previous != current, roles


# =============================================================================
# convert_messages() tests
# =============================================================================

class TestConvertMessages:
    """Tests for restructuring chat messages into Claude messages."""

    def test_single_text_message_stays_a_string(self):
        result = convert_messages([{"role": "user", "content": "Hello"}])

        assert isinstance(result, ConversionResult)
        assert result.messages == [{"role": "user", "content": "Hello"}]
        assert result.system_prompt is None

    def test_system_prompt_prefaces_first_user_message(self):
        """System text is spliced into the first user message."""
        result = convert_messages([
            {"role": "system", "content": "Be brief."},
            {"role": "user", "content": "Hi"},
        ])

        assert result.system_prompt == "Be brief."
        assert result.messages == [
            {"role": "user", "content": "[System Instructions]\nBe brief.\n\n[User Message]\nHi"}
        ]

    def test_multiple_system_messages_joined(self):
        result = convert_messages([
            {"role": "system", "content": "Rule one."},
            {"role": "developer", "content": "Rule two."},
            {"role": "user", "content": "Go"},
        ])

        assert result.system_prompt == "Rule one.\n\nRule two."
        assert result.messages[0]["content"].startswith("[System Instructions]\nRule one.\n\nRule two.")

    def test_system_prompt_with_array_content_inserts_leading_block(self):
        result = convert_messages([
            {"role": "system", "content": "Describe images."},
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": "What is this?"},
                    {"type": "image_url", "image_url": {"url": "data:image/png;base64,AAAA"}},
                ],
            },
        ])

        blocks = result.messages[0]["content"]
        assert blocks[0] == {
            "type": "text",
            "text": "[System Instructions]\nDescribe images.\n\n[User Message]",
        }
        assert blocks[1] == {"type": "text", "text": "What is this?"}
        assert blocks[2] == {
            "type": "image",
            "source": {"type": "base64", "media_type": "image/png", "data": "AAAA"},
        }

    def test_system_prompt_targets_first_user_even_after_assistant(self):
        result = convert_messages([
            {"role": "assistant", "content": "Welcome"},
            {"role": "system", "content": "S"},
            {"role": "user", "content": "U"},
        ])

        assert result.messages[0] == {"role": "assistant", "content": "Welcome"}
        assert result.messages[1]["content"] == "[System Instructions]\nS\n\n[User Message]\nU"

    def test_remote_image_becomes_text_placeholder(self):
        """Remote image URLs are not fetched."""
        result = convert_messages([
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": "Look"},
                    {"type": "image_url", "image_url": {"url": "https://example.com/cat.png"}},
                ],
            }
        ])

        assert result.messages[0]["content"] == [
            {"type": "text", "text": "Look"},
            {"type": "text", "text": "[Image URL: https://example.com/cat.png]"},
        ]

    def test_malformed_data_url_is_dropped(self):
        result = convert_messages([
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": "a"},
                    {"type": "text", "text": "b"},
                    {"type": "image_url", "image_url": {"url": "data:image/png,notbase64"}},
                ],
            }
        ])

        assert result.messages[0]["content"] == [
            {"type": "text", "text": "a"},
            {"type": "text", "text": "b"},
        ]

    def test_assistant_tool_calls_become_tool_use_blocks(self):
        result = convert_messages([
            {"role": "user", "content": "Weather?"},
            {
                "role": "assistant",
                "content": "Checking.",
                "tool_calls": [
                    {
                        "id": "call_1",
                        "type": "function",
                        "function": {"name": "get_weather", "arguments": '{"city": "Paris"}'},
                    }
                ],
            },
        ])

        assert result.messages[1] == {
            "role": "assistant",
            "content": [
                {"type": "text", "text": "Checking."},
                {"type": "tool_use", "id": "call_1", "name": "get_weather", "input": {"city": "Paris"}},
            ],
        }

    def test_empty_tool_arguments_become_empty_object(self):
        result = convert_messages([
            {"role": "user", "content": "x"},
            {
                "role": "assistant",
                "content": None,
                "tool_calls": [{"id": "call_1", "type": "function", "function": {"name": "now", "arguments": ""}}],
            },
        ])

        assert result.messages[1]["content"] == [
            {"type": "tool_use", "id": "call_1", "name": "now", "input": {}}
        ]

    def test_invalid_tool_arguments_rejected(self):
        with pytest.raises(MalformedRequestError) as exc_info:
            convert_messages([
                {"role": "user", "content": "x"},
                {
                    "role": "assistant",
                    "tool_calls": [{"id": "call_1", "function": {"name": "f", "arguments": "{not json"}}],
                },
            ])
        assert exc_info.value.code == "invalid_tool_arguments"

    def test_consecutive_tool_messages_merge(self):
        result = convert_messages([
            {"role": "user", "content": "Two cities"},
            {
                "role": "assistant",
                "tool_calls": [
                    {"id": "call_a", "function": {"name": "w", "arguments": "{}"}},
                    {"id": "call_b", "function": {"name": "w", "arguments": "{}"}},
                ],
            },
            {"role": "tool", "tool_call_id": "call_a", "content": "Sunny"},
            {"role": "tool", "tool_call_id": "call_b", "content": [{"type": "text", "text": "Rain"}, {"type": "text", "text": "Cold"}]},
        ])

        assert len(result.messages) == 3
        assert result.messages[2] == {
            "role": "user",
            "content": [
                {"type": "tool_result", "tool_use_id": "call_a", "content": "Sunny"},
                {"type": "tool_result", "tool_use_id": "call_b", "content": "Rain\nCold"},
            ],
        }
        _assert_alternates(result.messages)

    def test_tool_result_not_merged_into_plain_user_message(self):
        result = convert_messages([
            {"role": "user", "content": "Hi"},
            {"role": "tool", "tool_call_id": "call_a", "content": "Result"},
        ])

        assert len(result.messages) == 2
        assert result.messages[1]["content"][0]["type"] == "tool_result"

    def test_tool_message_without_id_rejected(self):
        with pytest.raises(MalformedRequestError) as exc_info:
            convert_messages([
                {"role": "user", "content": "Hi"},
                {"role": "tool", "content": "Result"},
            ])
        assert exc_info.value.code == "missing_tool_call_id"

    def test_unknown_role_rejected(self):
        with pytest.raises(MalformedRequestError):
            convert_messages([{"role": "wizard", "content": "Hi"}])

    def test_empty_messages_are_skipped(self):
        result = convert_messages([
            {"role": "user", "content": "Hi"},
            {"role": "assistant", "content": ""},
            {"role": "user", "content": "Again"},
        ])

        assert [m["role"] for m in result.messages] == ["user", "user"]

    def test_tool_conversation_alternates(self):
        messages = [
            {"role": "system", "content": "S"},
            {"role": "user", "content": "Q"},
            {"role": "assistant", "tool_calls": [{"id": "c1", "function": {"name": "t", "arguments": "{}"}}]},
            {"role": "tool", "tool_call_id": "c1", "content": "r1"},
            {"role": "assistant", "content": "A"},
            {"role": "user", "content": "Q2"},
        ]

        result = convert_messages(messages)

        _assert_alternates(result.messages)


# =============================================================================
# convert_request() tests
# =============================================================================

class TestConvertRequest:
    """Tests for translating full chat requests."""

    def test_simple_request(self, mapper):
        payload = {"model": "gpt-4o", "messages": [{"role": "user", "content": "Hello"}]}

        result = convert_request(payload, mapper)

        assert result == {
            "model": "claude-sonnet-4-5-20250929",
            "messages": [{"role": "user", "content": "Hello"}],
            "max_tokens": 4096,
        }

    def test_unmapped_model_passes_through(self, mapper):
        result = convert_request({"model": "claude-custom", "messages": [{"role": "user", "content": "x"}]}, mapper)

        assert result["model"] == "claude-custom"

    def test_requested_max_tokens_kept(self, mapper):
        payload = {"model": "gpt-4o", "max_tokens": 100, "messages": [{"role": "user", "content": "x"}]}

        assert convert_request(payload, mapper)["max_tokens"] == 100

    def test_max_completion_tokens_used(self, mapper):
        payload = {"model": "gpt-4o", "max_completion_tokens": 250, "messages": [{"role": "user", "content": "x"}]}

        assert convert_request(payload, mapper)["max_tokens"] == 250

    def test_invalid_max_tokens_rejected(self, mapper):
        payload = {"model": "gpt-4o", "max_tokens": -1, "messages": [{"role": "user", "content": "x"}]}

        with pytest.raises(MalformedRequestError):
            convert_request(payload, mapper)

    def test_reasoning_alias_enables_thinking(self, mapper):
        payload = {"model": "bigger-model", "max_tokens": 1000, "messages": [{"role": "user", "content": "Think"}]}

        result = convert_request(payload, mapper)

        assert result["model"] == "claude-opus-4-5-20251101"
        assert result["thinking"] == {"type": "enabled", "budget_tokens": 10000}
        assert result["max_tokens"] == 16000

    def test_reasoning_keeps_larger_max_tokens(self, mapper):
        payload = {"model": "tinyy-model", "max_tokens": 32000, "messages": [{"role": "user", "content": "x"}]}

        assert convert_request(payload, mapper)["max_tokens"] == 32000

    def test_reasoning_disabled_with_tool_results(self, mapper):
        payload = {
            "model": "tinyy-model",
            "messages": [
                {"role": "user", "content": "Q"},
                {"role": "assistant", "tool_calls": [{"id": "c1", "function": {"name": "t", "arguments": "{}"}}]},
                {"role": "tool", "tool_call_id": "c1", "content": "r"},
            ],
        }

        result = convert_request(payload, mapper)

        assert "thinking" not in result
        assert result["max_tokens"] == 4096

    def test_stream_flag_and_temperature(self, mapper):
        payload = {
            "model": "gpt-4o",
            "stream": True,
            "temperature": 0.2,
            "messages": [{"role": "user", "content": "x"}],
        }

        result = convert_request(payload, mapper)

        assert result["stream"] is True
        assert "temperature" not in result

    def test_tools_and_tool_choice(self, mapper):
        payload = {
            "model": "gpt-4o",
            "messages": [{"role": "user", "content": "x"}],
            "tools": [
                {
                    "type": "function",
                    "function": {
                        "name": "get_weather",
                        "description": "Get weather",
                        "parameters": {"type": "object", "properties": {"city": {"type": "string"}}},
                    },
                }
            ],
            "tool_choice": "required",
        }

        result = convert_request(payload, mapper)

        assert result["tools"] == [
            {
                "name": "get_weather",
                "description": "Get weather",
                "input_schema": {"type": "object", "properties": {"city": {"type": "string"}}},
            }
        ]
        assert result["tool_choice"] == {"type": "any"}

    def test_stop_and_user(self, mapper):
        payload = {
            "model": "gpt-4o",
            "messages": [{"role": "user", "content": "x"}],
            "stop": "END",
            "user": "user-42",
        }

        result = convert_request(payload, mapper)

        assert result["stop_sequences"] == ["END"]
        assert result["metadata"] == {"user_id": "user-42"}

    @pytest.mark.parametrize(
        "payload",
        [
            {"messages": [{"role": "user", "content": "x"}]},
            {"model": "", "messages": [{"role": "user", "content": "x"}]},
            {"model": "gpt-4o"},
            {"model": "gpt-4o", "messages": []},
            {"model": "gpt-4o", "messages": "hello"},
        ],
    )
    def test_missing_required_fields(self, mapper, payload):
        with pytest.raises(MalformedRequestError) as exc_info:
            convert_request(payload, mapper)
        assert exc_info.value.param in {"model", "messages"}


# =============================================================================
# Tool helpers
# =============================================================================

class TestToolHelpers:
    """Tests for tool and schema conversion helpers."""

    def test_clean_json_schema_strips_unsupported_keys(self):
        schema = {
            "$schema": "http://json-schema.org/draft-07/schema#",
            "type": "object",
            "properties": {
                "when": {"type": "string", "format": "date-time"},
                "format": {"type": "string", "description": "Output format"},
                "items": {"type": "array", "items": {"type": "string", "format": "uri"}},
            },
        }

        cleaned = clean_json_schema(schema)

        assert cleaned == {
            "type": "object",
            "properties": {
                "when": {"type": "string"},
                "format": {"type": "string", "description": "Output format"},
                "items": {"type": "array", "items": {"type": "string"}},
            },
        }

    def test_clean_json_schema_handles_combinators(self):
        schema = {"anyOf": [{"type": "string", "format": "email"}, {"type": "null"}]}

        assert clean_json_schema(schema) == {"anyOf": [{"type": "string"}, {"type": "null"}]}

    def test_missing_parameters_default_to_empty_object(self):
        tools = _convert_tools([{"type": "function", "function": {"name": "ping"}}])

        assert tools == [
            {"name": "ping", "description": "", "input_schema": {"type": "object", "properties": {}}}
        ]

    def test_tool_without_name_rejected(self):
        with pytest.raises(MalformedRequestError):
            _convert_tools([{"type": "function", "function": {"description": "nameless"}}])

    @pytest.mark.parametrize(
        ("choice", "expected"),
        [
            ("auto", {"type": "auto"}),
            ("required", {"type": "any"}),
            ("none", {"type": "none"}),
            ({"type": "function", "function": {"name": "f"}}, {"type": "tool", "name": "f"}),
            ("sometimes", None),
            (None, None),
        ],
    )
    def test_convert_tool_choice(self, choice, expected):
        assert _convert_tool_choice(choice) == expected

    def test_non_object_tool_function_rejected(self, mapper):
        payload = {
            "model": "gpt-4o",
            "messages": [{"role": "user", "content": "hi"}],
            "tools": [{"type": "function", "function": "oops"}],
        }

        with pytest.raises(MalformedRequestError) as exc_info:
            convert_request(payload, mapper)
        assert exc_info.value.code == "invalid_tools"
        assert exc_info.value.param == "tools"

    def test_non_object_tool_call_function_rejected(self):
        with pytest.raises(MalformedRequestError) as exc_info:
            convert_messages([
                {"role": "user", "content": "x"},
                {"role": "assistant", "tool_calls": [{"id": "call_1", "function": ["get_weather"]}]},
            ])
        assert exc_info.value.code == "invalid_tool_calls"
        assert exc_info.value.param == "messages"

    def test_non_object_tool_choice_function_rejected(self):
        with pytest.raises(MalformedRequestError) as exc_info:
            _convert_tool_choice({"type": "function", "function": "f"})
        assert exc_info.value.param == "tool_choice"


# =============================================================================
# convert_response() tests
# =============================================================================

class TestConvertResponse:
    """Tests for translating complete Claude responses."""

    def test_text_response(self, claude_response):
        result = convert_response(claude_response, model="gpt-4o")

        assert result["id"] == "msg_01ABC"
        assert result["object"] == "chat.completion"
        assert result["model"] == "claude-sonnet-4-5-20250929"
        assert result["choices"][0]["message"] == {"role": "assistant", "content": "Hello there!"}
        assert result["choices"][0]["finish_reason"] == "stop"
        assert result["usage"] == {"prompt_tokens": 10, "completion_tokens": 4, "total_tokens": 14}

    def test_falls_back_to_requested_model(self, claude_response):
        claude_response.pop("model")

        assert convert_response(claude_response, model="gpt-4o")["model"] == "gpt-4o"

    def test_thinking_is_wrapped_before_text(self):
        payload = {
            "id": "msg_1",
            "content": [
                {"type": "thinking", "thinking": "Let me see.", "signature": "sig"},
                {"type": "text", "text": "Answer."},
            ],
            "stop_reason": "end_turn",
        }

        result = convert_response(payload)

        assert result["choices"][0]["message"]["content"] == "<thinking>\nLet me see.\n</thinking>\n\nAnswer."
        assert "usage" not in result

    def test_tool_use_becomes_tool_calls(self):
        payload = {
            "id": "msg_1",
            "content": [
                {"type": "tool_use", "id": "toolu_1", "name": "get_weather", "input": {"city": "Paris"}},
            ],
            "stop_reason": "tool_use",
        }

        result = convert_response(payload)
        message = result["choices"][0]["message"]

        assert message["content"] is None
        assert message["tool_calls"] == [
            {
                "id": "toolu_1",
                "type": "function",
                "function": {"name": "get_weather", "arguments": json.dumps({"city": "Paris"})},
            }
        ]
        assert json.loads(message["tool_calls"][0]["function"]["arguments"]) == {"city": "Paris"}
        assert result["choices"][0]["finish_reason"] == "tool_calls"

    @pytest.mark.parametrize(
        ("stop_reason", "expected"),
        [
            ("end_turn", "stop"),
            ("tool_use", "tool_calls"),
            ("max_tokens", "length"),
            ("stop_sequence", None),
            (None, None),
        ],
    )
    def test_convert_stop_reason(self, stop_reason, expected):
        assert convert_stop_reason(stop_reason) == expected


class TestRoundTrip:
    def test_plain_text_round_trip(self, mapper):
        request = convert_request({"model": "gpt-4o", "messages": [{"role": "user", "content": "Ping"}]}, mapper)
        assert request["messages"] == [{"role": "user", "content": "Ping"}]

        response = convert_response({
            "id": "msg_rt",
            "model": request["model"],
            "content": [{"type": "text", "text": "Pong, exactly."}],
            "stop_reason": "end_turn",
        })

        assert response["choices"][0]["message"]["content"] == "Pong, exactly."
