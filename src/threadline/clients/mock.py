"""Deterministic offline responses for running without credentials."""

from __future__ import annotations

import json
import logging
import time
from collections.abc import AsyncIterator
from itertools import count
from typing import Any

from threadline.stream.events import StreamEventKind
from threadline.tools.schema import forced_function_name

logger = logging.getLogger(__name__)

_PREVIEW_CHARS = 80


def _input_preview(payload: dict[str, Any]) -> str:
    value = payload.get("input")
    if isinstance(value, list):
        texts = [item.get("content") for item in value if isinstance(item, dict) and isinstance(item.get("content"), str)]
        value = texts[-1] if texts else ""
    if not isinstance(value, str):
        return ""
    return value[:_PREVIEW_CHARS]


def _usage(payload: dict[str, Any], text: str) -> dict[str, int]:
    input_tokens = len(_input_preview(payload).split())
    output_tokens = len(text.split())
    return {"input_tokens": input_tokens, "output_tokens": output_tokens, "total_tokens": input_tokens + output_tokens}


def _is_json_mode(payload: dict[str, Any]) -> bool:
    text = payload.get("text")
    return isinstance(text, dict) and (text.get("format") or {}).get("type") == "json_object"


def _tool_names(payload: dict[str, Any]) -> list[str]:
    return [tool["name"] for tool in payload.get("tools") or [] if isinstance(tool, dict) and tool.get("name")]


class MockResponder:
    """Produce well-formed responses and stream events without a network call.

    Ids are sequential per instance (``resp_mock_0001``, ...), so repeated runs
    with the same inputs produce the same output.
    """

    def __init__(self, *, model: str) -> None:
        self._model = model
        self._counter = count(1)

    def _next_seq(self) -> int:
        return next(self._counter)

    def _message_text(self, payload: dict[str, Any], response_id: str) -> str:
        tool_outputs = payload.get("tool_outputs")
        if tool_outputs is not None:
            summary = ", ".join(f"{item['tool_call_id']}={item['output']}" for item in tool_outputs)
            return f"Received {len(tool_outputs)} tool output(s): {summary}"
        preview = _input_preview(payload)
        if _is_json_mode(payload):
            return json.dumps({"mock": True, "response_id": response_id, "input": preview})
        return f"Mock response to: {preview}"

    def _tool_to_call(self, payload: dict[str, Any]) -> str | None:
        if payload.get("tool_outputs") is not None:
            return None
        names = _tool_names(payload)
        if not names:
            return None
        tool_choice = payload.get("tool_choice")
        forced = forced_function_name(tool_choice)
        if forced is not None:
            return forced if forced in names else None
        if tool_choice == "required":
            return names[0]
        return None

    def _envelope(self, payload: dict[str, Any], response_id: str, output: list[dict[str, Any]], text: str) -> dict:
        return {
            "id": response_id,
            "object": "response",
            "created_at": time.time(),
            "status": "completed",
            "model": payload.get("model") or self._model,
            "output": output,
            "previous_response_id": payload.get("previous_response_id"),
            "metadata": payload.get("metadata") or {},
            "usage": _usage(payload, text),
        }

    def create(self, payload: dict[str, Any]) -> dict[str, Any]:
        seq = self._next_seq()
        response_id = f"resp_mock_{seq:04d}"
        tool_name = self._tool_to_call(payload)
        if tool_name is not None:
            output = [
                {
                    "type": "tool_call",
                    "id": f"tc_mock_{seq:04d}",
                    "status": "completed",
                    "tool_call": {
                        "id": f"call_mock_{seq:04d}",
                        "type": "function",
                        "function": {"name": tool_name, "arguments": "{}"},
                    },
                }
            ]
            text = ""
        else:
            text = self._message_text(payload, response_id)
            output = [_message_item(f"msg_mock_{seq:04d}", text)]
        logger.debug("Mock response %s (%s)", response_id, output[0]["type"])
        return self._envelope(payload, response_id, output, text)

    async def stream(self, payload: dict[str, Any]) -> AsyncIterator[dict[str, Any]]:
        seq = self._next_seq()
        response_id = f"resp_mock_{seq:04d}"
        names = _tool_names(payload)
        if names and payload.get("tool_choice") != "none" and payload.get("tool_outputs") is None:
            tool_name = self._tool_to_call(payload) or names[0]
            events, output, text = _tool_call_events(seq, tool_name)
        else:
            text = self._message_text(payload, response_id)
            events, output = _message_events(seq, text)

        created = {"id": response_id, "object": "response", "status": "in_progress", "model": payload.get("model")}
        yield {"type": StreamEventKind.CREATED.wire_name, "response": created}
        yield {"type": StreamEventKind.IN_PROGRESS.wire_name, "response": created}
        for event in events:
            yield event
        yield {
            "type": StreamEventKind.COMPLETED.wire_name,
            "response": self._envelope(payload, response_id, output, text),
        }


def _message_item(item_id: str, text: str, status: str = "completed") -> dict[str, Any]:
    return {
        "type": "message",
        "id": item_id,
        "role": "assistant",
        "status": status,
        "content": [{"type": "output_text", "text": text, "annotations": []}] if text else [],
    }


def _chunks(text: str) -> list[str]:
    words = text.split(" ")
    return [word if index == len(words) - 1 else word + " " for index, word in enumerate(words)]


def _message_events(seq: int, text: str) -> tuple[list[dict[str, Any]], list[dict[str, Any]]]:
    item_id = f"msg_mock_{seq:04d}"
    part = {"type": "output_text", "text": "", "annotations": []}
    done_item = _message_item(item_id, text)
    events: list[dict[str, Any]] = [
        {"type": StreamEventKind.ITEM_ADDED.wire_name, "output_index": 0, "item": _message_item(item_id, "", "in_progress")},
        {"type": StreamEventKind.CONTENT_PART_ADDED.wire_name, "item_id": item_id, "content_index": 0, "part": part},
    ]
    events.extend(
        {"type": StreamEventKind.TEXT_DELTA.wire_name, "item_id": item_id, "content_index": 0, "delta": chunk}
        for chunk in _chunks(text)
    )
    events.extend(
        [
            {"type": StreamEventKind.TEXT_DONE.wire_name, "item_id": item_id, "content_index": 0, "text": text},
            {
                "type": StreamEventKind.CONTENT_PART_DONE.wire_name,
                "item_id": item_id,
                "content_index": 0,
                "part": {**part, "text": text},
            },
            {"type": StreamEventKind.ITEM_DONE.wire_name, "output_index": 0, "item": done_item},
        ]
    )
    return events, [done_item]


def _tool_call_events(seq: int, tool_name: str) -> tuple[list[dict[str, Any]], list[dict[str, Any]], str]:
    item_id = f"fc_mock_{seq:04d}"
    call_id = f"call_mock_{seq:04d}"
    added = {"type": "function_call", "id": item_id, "call_id": call_id, "name": tool_name, "arguments": ""}
    done_item = {**added, "arguments": "{}", "status": "completed"}
    events = [
        {"type": StreamEventKind.ITEM_ADDED.wire_name, "output_index": 0, "item": {**added, "status": "in_progress"}},
        {"type": StreamEventKind.FUNCTION_ARGS_DELTA.wire_name, "item_id": item_id, "delta": "{"},
        {"type": StreamEventKind.FUNCTION_ARGS_DELTA.wire_name, "item_id": item_id, "delta": "}"},
        {"type": StreamEventKind.FUNCTION_ARGS_DONE.wire_name, "item_id": item_id, "arguments": "{}"},
        {"type": StreamEventKind.ITEM_DONE.wire_name, "output_index": 0, "item": done_item},
    ]
    return events, [done_item], ""
