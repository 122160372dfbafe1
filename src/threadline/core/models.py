"""Typed records exchanged with the Responses API and the state store."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from threadline.core.errors import RequestError

logger = logging.getLogger(__name__)

ResponseStatus = Literal["in_progress", "completed", "failed", "incomplete"]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class FunctionCall(BaseModel):
    model_config = ConfigDict(extra="allow")

    name: str
    arguments: str = ""


class ToolCall(BaseModel):
    """A model-initiated request to run a named function."""

    model_config = ConfigDict(extra="allow")

    id: str
    type: Literal["function"] = "function"
    function: FunctionCall


class ToolResult(BaseModel):
    tool_call_id: str
    output: str


class MessageItem(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: Literal["message"] = "message"
    id: str | None = None
    role: str = "assistant"
    status: str | None = None
    content: list[dict[str, Any]] = Field(default_factory=list)

    @property
    def text(self) -> str:
        parts: list[str] = []
        for part in self.content:
            if part.get("type") in {"output_text", "text"} and isinstance(part.get("text"), str):
                parts.append(part["text"])
        return "".join(parts)


class ToolCallItem(BaseModel):
    """Tool call wrapped in an output item, as produced by the mock and older payloads."""

    model_config = ConfigDict(extra="allow")

    type: Literal["tool_call"] = "tool_call"
    id: str | None = None
    status: str | None = None
    tool_call: ToolCall

    def as_tool_call(self) -> ToolCall:
        return self.tool_call


class FunctionCallItem(BaseModel):
    """The provider's flat function-call output item."""

    model_config = ConfigDict(extra="allow")

    type: Literal["function_call"] = "function_call"
    id: str | None = None
    call_id: str | None = None
    name: str
    arguments: str = ""
    status: str | None = None

    def as_tool_call(self) -> ToolCall:
        call_id = self.call_id or self.id or ""
        return ToolCall(id=call_id, function=FunctionCall(name=self.name, arguments=self.arguments))


class UnknownOutputItem(BaseModel):
    """Output item with a type this client does not model. Kept opaque."""

    model_config = ConfigDict(extra="allow")

    type: str
    id: str | None = None


OutputItem = MessageItem | ToolCallItem | FunctionCallItem | UnknownOutputItem

_OUTPUT_ITEM_TYPES: dict[str, type[BaseModel]] = {
    "message": MessageItem,
    "tool_call": ToolCallItem,
    "function_call": FunctionCallItem,
}


def parse_output_item(data: dict[str, Any]) -> OutputItem:
    item_type = data.get("type")
    model = _OUTPUT_ITEM_TYPES.get(item_type) if isinstance(item_type, str) else None
    if model is None:
        logger.debug("Keeping unknown output item type %r as opaque", item_type)
        return UnknownOutputItem.model_validate({**data, "type": str(item_type)})
    return model.model_validate(data)  # type: ignore[return-value]


class Usage(BaseModel):
    model_config = ConfigDict(extra="allow")

    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0


class ProviderError(BaseModel):
    model_config = ConfigDict(extra="allow")

    message: str = ""
    code: str | None = None


class ResponseObject(BaseModel):
    """A completed (non-streamed) response."""

    model_config = ConfigDict(extra="allow")

    id: str
    object: str = "response"
    status: ResponseStatus | str = "completed"
    model: str | None = None
    created_at: float | None = None
    output: list[OutputItem] = Field(default_factory=list)
    usage: Usage | None = None
    error: ProviderError | None = None
    incomplete_details: dict[str, Any] | None = None

    @model_validator(mode="before")
    @classmethod
    def _type_output_items(cls, data: Any) -> Any:
        if isinstance(data, dict) and isinstance(data.get("output"), list):
            items = [parse_output_item(item) if isinstance(item, dict) else item for item in data["output"]]
            data = {**data, "output": items}
        return data

    @property
    def output_text(self) -> str:
        return "".join(
            item.text for item in self.output if isinstance(item, MessageItem) and item.role == "assistant"
        )

    @property
    def tool_calls(self) -> list[ToolCall]:
        return [item.as_tool_call() for item in self.output if isinstance(item, (ToolCallItem, FunctionCallItem))]

    @property
    def output_types(self) -> list[str]:
        return [item.type for item in self.output]


class RequestPayload(BaseModel):
    """Body of one request to the responses endpoint."""

    model_config = ConfigDict(extra="forbid")

    model: str
    input: str | list[Any] | None = None
    instructions: str | None = None
    temperature: float | None = None
    tools: list[dict[str, Any]] | None = None
    tool_choice: str | dict[str, Any] | None = None
    previous_response_id: str | None = None
    metadata: dict[str, str] | None = None
    truncation: Literal["auto", "disabled"] | None = None
    user: str | None = None
    include: list[str] | None = None
    tool_outputs: list[ToolResult] | None = None
    text: dict[str, Any] | None = None
    max_output_tokens: int | None = None
    stream: bool | None = None

    @model_validator(mode="after")
    def _require_input_or_tool_outputs(self) -> RequestPayload:
        has_input = self.input is not None and self.input != "" and self.input != []
        if not has_input and self.tool_outputs is None:
            raise RequestError("Request needs a non-empty input or a tool_outputs list.")
        return self

    @property
    def is_tool_submission(self) -> bool:
        return self.tool_outputs is not None

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


class ConversationState(BaseModel):
    """Stored pointer to the last completed turn of one (user_id, context) conversation."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    user_id: str
    context: str
    last_response_id: str | None = None
    metadata: dict[str, str] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)

    @classmethod
    def from_json(cls, raw: str | bytes) -> ConversationState:
        return cls.model_validate_json(raw)
