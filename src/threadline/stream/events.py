"""Typed streaming events for the Responses API."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)


class StreamEventKind(str, Enum):
    """Closed set of stream event kinds the processor understands."""

    CREATED = "created"
    IN_PROGRESS = "in_progress"
    ITEM_ADDED = "item_added"
    CONTENT_PART_ADDED = "content_part_added"
    TEXT_DELTA = "text_delta"
    ANNOTATION_ADDED = "annotation_added"
    TEXT_DONE = "text_done"
    CONTENT_PART_DONE = "content_part_done"
    ITEM_DONE = "item_done"
    FUNCTION_ARGS_DELTA = "function_args_delta"
    FUNCTION_ARGS_DONE = "function_args_done"
    COMPLETED = "completed"
    FAILED = "failed"
    INCOMPLETE = "incomplete"
    ERROR = "error"

    @property
    def wire_name(self) -> str:
        return _WIRE_NAMES[self]

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_KINDS


_WIRE_NAMES: dict[StreamEventKind, str] = {
    StreamEventKind.CREATED: "response.created",
    StreamEventKind.IN_PROGRESS: "response.in_progress",
    StreamEventKind.ITEM_ADDED: "response.output_item.added",
    StreamEventKind.CONTENT_PART_ADDED: "response.content_part.added",
    StreamEventKind.TEXT_DELTA: "response.output_text.delta",
    StreamEventKind.ANNOTATION_ADDED: "response.output_text.annotation.added",
    StreamEventKind.TEXT_DONE: "response.output_text.done",
    StreamEventKind.CONTENT_PART_DONE: "response.content_part.done",
    StreamEventKind.ITEM_DONE: "response.output_item.done",
    StreamEventKind.FUNCTION_ARGS_DELTA: "response.function_call_arguments.delta",
    StreamEventKind.FUNCTION_ARGS_DONE: "response.function_call_arguments.done",
    StreamEventKind.COMPLETED: "response.completed",
    StreamEventKind.FAILED: "response.failed",
    StreamEventKind.INCOMPLETE: "response.incomplete",
    StreamEventKind.ERROR: "error",
}

_KINDS_BY_NAME: dict[str, StreamEventKind] = {
    **{wire: kind for kind, wire in _WIRE_NAMES.items()},
    **{kind.value: kind for kind in StreamEventKind},
}

TERMINAL_KINDS = frozenset({
    StreamEventKind.COMPLETED,
    StreamEventKind.FAILED,
    StreamEventKind.INCOMPLETE,
    StreamEventKind.ERROR,
})


def field_value(data: Any, key: str, default: Any = None) -> Any:
    if isinstance(data, dict):
        return data.get(key, default)
    return getattr(data, key, default)


def to_plain(value: Any) -> Any:
    """Turn SDK event objects (pydantic models, namespaces) into plain dicts and lists."""
    if isinstance(value, dict):
        return {key: to_plain(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_plain(item) for item in value]
    if hasattr(value, "model_dump"):
        return value.model_dump(exclude_none=True)
    if hasattr(value, "__dict__") and not isinstance(value, type):
        return {key: to_plain(item) for key, item in vars(value).items() if not key.startswith("_")}
    return value


@dataclass(frozen=True)
class StreamEvent:
    kind: StreamEventKind
    data: dict[str, Any] = field(default_factory=dict)

    @property
    def wire_type(self) -> str:
        return self.kind.wire_name

    @property
    def item_id(self) -> str | None:
        item_id = self.data.get("item_id")
        if item_id is None and isinstance(self.data.get("item"), dict):
            item_id = self.data["item"].get("id")
        return item_id

    def to_wire(self) -> dict[str, Any]:
        return {"type": self.wire_type, **self.data}


def resolve_kind(name: Any) -> StreamEventKind | None:
    if isinstance(name, StreamEventKind):
        return name
    if not isinstance(name, str):
        return None
    return _KINDS_BY_NAME.get(name)


def parse_stream_event(raw: Any) -> StreamEvent | None:
    """Type a raw event (dict, SDK model, or attribute object). Unknown types give None."""
    if isinstance(raw, StreamEvent):
        return raw
    event_type = field_value(raw, "type")
    kind = resolve_kind(event_type)
    if kind is None:
        logger.debug("Ignoring unknown stream event type %r", event_type)
        return None
    data = to_plain(raw)
    if not isinstance(data, dict):
        data = {}
    data.pop("type", None)
    return StreamEvent(kind, data)
