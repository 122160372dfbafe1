from __future__ import annotations

import pytest

from threadline import (
    ErrorKind,
    RequestError,
    ResponseError,
    define_function_tool,
    validate_message_format,
    validate_metadata,
    validate_response_structure,
    validate_user_identifier,
)

from .fakes import make_message_response


class TestMessageFormat:
    @pytest.mark.parametrize(
        "messages",
        [
            {"input": "hello"},
            {"input": [{"role": "user", "content": "hello"}]},
            {"tool_outputs": []},
            {"tool_outputs": [{"tool_call_id": "call_1", "output": "ok"}], "input": "and then?"},
        ],
    )
    def test_accepts_input_or_tool_outputs(self, messages):
        validate_message_format(messages)

    @pytest.mark.parametrize("messages", [{}, {"input": ""}, {"input": []}, {"input": None}, "hello", None])
    def test_rejects_missing_input(self, messages):
        with pytest.raises(RequestError) as exc_info:
            validate_message_format(messages)
        assert exc_info.value.kind == ErrorKind.INVALID_INPUT

    def test_rejects_non_list_tool_outputs(self):
        with pytest.raises(RequestError):
            validate_message_format({"tool_outputs": {"tool_call_id": "call_1"}})


class TestMetadata:
    def test_bad_key_rejected(self):
        with pytest.raises(RequestError) as exc_info:
            validate_metadata({"bad key": "v"})
        assert exc_info.value.details == {"key": "bad key"}

    def test_good_key_returned_equal(self):
        metadata = {"good_key": "v"}
        sanitized = validate_metadata(metadata)
        assert sanitized == metadata
        assert sanitized is not metadata

    def test_limits(self):
        validate_metadata({f"k{i}": "v" for i in range(16)})
        with pytest.raises(RequestError):
            validate_metadata({f"k{i}": "v" for i in range(17)})
        with pytest.raises(RequestError):
            validate_metadata({"k" * 65: "v"})
        with pytest.raises(RequestError):
            validate_metadata({"key": "v" * 513})
        with pytest.raises(RequestError):
            validate_metadata({"key": 3})


class TestUserIdentifier:
    def test_opaque_id_passes(self):
        assert validate_user_identifier("user_8f2c") == "user_8f2c"

    @pytest.mark.parametrize("identifier", ["", "a" * 101, "someone@example.com", "acct-123456789", 42])
    def test_rejected(self, identifier):
        with pytest.raises(RequestError):
            validate_user_identifier(identifier)


class TestDefineFunctionTool:
    def test_returns_flat_definition(self):
        params = {"type": "object", "properties": {"city": {"type": "string"}}}
        definition = define_function_tool("get_weather", "Look up weather", params)
        assert definition == {
            "type": "function",
            "name": "get_weather",
            "description": "Look up weather",
            "parameters": params,
        }

    @pytest.mark.parametrize(
        ("name", "description", "parameters"),
        [
            ("", "desc", {"type": "object"}),
            ("tool", "", {"type": "object"}),
            ("tool", "desc", {}),
            ("tool", "desc", "not a schema"),
        ],
    )
    def test_rejects_missing_parts(self, name, description, parameters):
        with pytest.raises(RequestError):
            define_function_tool(name, description, parameters)


class TestResponseStructure:
    def test_valid_response_returned_unchanged(self):
        response = make_message_response()
        assert validate_response_structure(response) is response

    def test_missing_id(self):
        response = make_message_response()
        del response["id"]
        with pytest.raises(ResponseError):
            validate_response_structure(response)

    @pytest.mark.parametrize("output", [None, [], "text"])
    def test_bad_output(self, output):
        response = make_message_response()
        response["output"] = output
        with pytest.raises(ResponseError):
            validate_response_structure(response)

    def test_failed_carries_provider_error(self):
        response = make_message_response(status="failed")
        response["error"] = {"message": "server melted", "code": "server_error"}
        with pytest.raises(ResponseError) as exc_info:
            validate_response_structure(response)
        assert "server melted" in exc_info.value.message
        assert exc_info.value.code == "server_error"

    def test_failed_without_error_object(self):
        with pytest.raises(ResponseError):
            validate_response_structure(make_message_response(status="failed"))

    def test_not_a_mapping(self):
        with pytest.raises(ResponseError):
            validate_response_structure(["resp_1"])
