"""Turn chat-style messages into Responses API input."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

from threadline.core.errors import RequestError

_MESSAGE_ROLES = {"user", "developer", "assistant"}


def convert_messages_to_input(messages: Sequence[Mapping[str, Any]]) -> tuple[list[dict[str, Any]], list[str]]:
    """Split chat messages into responses input items and system instruction texts."""
    input_items: list[dict[str, Any]] = []
    instructions: list[str] = []
    for message in messages:
        if not isinstance(message, Mapping):
            raise RequestError("Each message must be a mapping with a role.")
        if message.get("type") in {"function_call", "function_call_output", "message"}:
            input_items.append(dict(message))
            continue

        role = message.get("role")
        content = message.get("content")
        if role == "system":
            if isinstance(content, str) and content:
                instructions.append(content)
            continue
        if role in _MESSAGE_ROLES and content not in (None, ""):
            input_items.append({"role": role, "content": content, "type": "message"})

        if role == "assistant":
            for index, tool_call in enumerate(message.get("tool_calls") or []):
                func = tool_call.get("function") or {}
                name = func.get("name")
                if not name:
                    continue
                call_id = tool_call.get("id") or tool_call.get("call_id") or f"call_{index}"
                input_items.append(
                    {"type": "function_call", "name": name, "arguments": func.get("arguments", ""), "call_id": call_id}
                )

        if role == "tool":
            call_id = message.get("tool_call_id") or message.get("call_id")
            if not call_id:
                continue
            input_items.append({"type": "function_call_output", "call_id": call_id, "output": content or ""})
    return input_items, instructions


def format_for_responses_api(
    user_input: str | Sequence[Mapping[str, Any]],
    instructions: str | None = None,
) -> dict[str, Any]:
    """Build a ``{"input", "instructions"}`` message object.

    A plain string is passed through. A chat-style message list has its system
    messages folded into ``instructions``, after any explicit ``instructions``.
    """
    if isinstance(user_input, str):
        if not user_input.strip():
            raise RequestError("Input text must not be empty.")
        message: dict[str, Any] = {"input": user_input}
        if instructions:
            message["instructions"] = instructions
        return message

    if not isinstance(user_input, Sequence) or not user_input:
        raise RequestError("Input must be a non-empty string or list of messages.")

    items, system_texts = convert_messages_to_input(user_input)
    if not items:
        raise RequestError("Messages contain no user, assistant or tool content.")
    parts = ([instructions] if instructions else []) + system_texts
    message = {"input": items}
    if parts:
        message["instructions"] = "\n\n".join(parts)
    return message
