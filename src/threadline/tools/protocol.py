"""Helpers for the tool-result half of the function-calling round trip."""

from __future__ import annotations

import json
from collections.abc import Mapping, Sequence
from typing import Any

from threadline.core.errors import RequestError, ResponseHandlingError
from threadline.core.models import ToolCall

MAX_TOOL_OUTPUT_CHARS = 20_000


def _stringify_output(output: Any) -> str:
    if isinstance(output, str):
        return output
    try:
        return json.dumps(output)
    except (TypeError, ValueError) as exc:
        raise ResponseHandlingError(
            f"Tool output of type {type(output).__name__} is not JSON serializable.",
            cause=exc,
        ) from exc


def _tool_output_entry(tool_call_id: Any, output: Any) -> dict[str, str]:
    if not isinstance(tool_call_id, str) or not tool_call_id:
        raise RequestError("Tool call id is required to submit a tool result.")
    text = _stringify_output(output)
    if len(text) > MAX_TOOL_OUTPUT_CHARS:
        raise ResponseHandlingError(
            f"Tool output for {tool_call_id} exceeds maximum length of {MAX_TOOL_OUTPUT_CHARS} characters.",
            details={"tool_call_id": tool_call_id, "length": len(text)},
        )
    return {"tool_call_id": tool_call_id, "output": text}


def format_tool_result(tool_call_id: str, output: Any) -> dict[str, list[dict[str, str]]]:
    """Wrap one tool result in the ``tool_outputs`` submission shape."""
    return {"tool_outputs": [_tool_output_entry(tool_call_id, output)]}


def format_multiple_tool_results(results: Sequence[Any]) -> dict[str, list[dict[str, str]]]:
    """Format several results at once, failing on the first bad entry.

    Entries are mappings with ``tool_call_id`` and ``output`` keys, or
    ``(tool_call_id, output)`` pairs.
    """
    if isinstance(results, (str, bytes)) or not isinstance(results, Sequence):
        raise RequestError("Tool results must be a list.")

    outputs: list[dict[str, str]] = []
    for index, entry in enumerate(results):
        if isinstance(entry, Mapping):
            if "output" not in entry:
                raise RequestError(f"Tool result at index {index} has no output.", details={"index": index})
            tool_call_id, output = entry.get("tool_call_id"), entry["output"]
        elif isinstance(entry, Sequence) and not isinstance(entry, (str, bytes)) and len(entry) == 2:
            tool_call_id, output = entry
        else:
            raise RequestError(f"Tool result at index {index} must be a mapping or an (id, output) pair.")
        try:
            outputs.append(_tool_output_entry(tool_call_id, output))
        except (RequestError, ResponseHandlingError) as exc:
            exc.message = f"Tool result at index {index} ({tool_call_id!r}): {exc.message}"
            exc.details = {**(exc.details or {}), "index": index}
            raise
    return {"tool_outputs": outputs}


def create_tool_result_input(
    user_input: str | list[Any] | None,
    tool_outputs: Mapping[str, Any] | Sequence[Mapping[str, Any]],
) -> dict[str, Any]:
    """Combine tool outputs and an optional follow-up user input into one message object."""
    if isinstance(tool_outputs, Mapping):
        outputs = tool_outputs.get("tool_outputs")
    else:
        outputs = tool_outputs
    if not isinstance(outputs, Sequence) or isinstance(outputs, (str, bytes)):
        raise RequestError("tool_outputs must be a list of tool results.")

    message: dict[str, Any] = {"tool_outputs": [dict(item) for item in outputs]}
    if user_input is not None:
        message["input"] = user_input
    return message


def parse_tool_arguments(tool_call: ToolCall | Mapping[str, Any]) -> Any:
    """Decode a tool call's JSON arguments. An empty string decodes to ``{}``."""
    if isinstance(tool_call, ToolCall):
        raw = tool_call.function.arguments
        name = tool_call.function.name
    elif isinstance(tool_call, Mapping) and isinstance(tool_call.get("function"), Mapping):
        raw = tool_call["function"].get("arguments", "")
        name = tool_call["function"].get("name")
    else:
        raise ResponseHandlingError("Invalid tool call object.")

    if isinstance(raw, Mapping):
        return dict(raw)
    if raw is None or raw == "":
        return {}
    try:
        parsed = json.loads(raw)
    except (TypeError, json.JSONDecodeError) as exc:
        raise ResponseHandlingError(
            f"Failed to parse arguments for tool {name!r}: {exc}",
            details={"tool": name},
            cause=exc,
        ) from exc
    return parsed
