"""Structured results for threadline."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Literal

from threadline.core.errors import ThreadlineError
from threadline.core.models import ResponseObject, ToolCall, Usage


class TurnState(str, Enum):
    """Where a conversation turn stands in the tool-call protocol."""

    AWAITING_INPUT = "awaiting_input"
    SENT = "sent"
    STREAMING = "streaming"
    TOOL_CALL_PENDING = "tool_call_pending"
    TOOL_RESULT_SUBMITTED = "tool_result_submitted"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class HealthReport:
    status: Literal["healthy", "unhealthy", "mock"]
    response_time_ms: float
    message: str
    error: str | None = None

    def as_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "status": self.status,
            "response_time_ms": self.response_time_ms,
            "message": self.message,
        }
        if self.error:
            payload["error"] = self.error
        return payload


@dataclass(frozen=True)
class JsonResult:
    response_id: str
    status: str
    model: str | None
    data: Any
    usage: Usage | None
    raw_response: ResponseObject


@dataclass
class StreamResult:
    """What a stream has produced so far, or at its end."""

    response_id: str | None = None
    status: str = "in_progress"
    text: str = ""
    tool_calls: list[ToolCall] = field(default_factory=list)
    response: ResponseObject | None = None
    error: ThreadlineError | None = None
    cancelled: bool = False

    @property
    def ok(self) -> bool:
        return self.status == "completed" and self.error is None and not self.cancelled


@dataclass(frozen=True)
class ToolLoopResult:
    response: ResponseObject
    rounds: int
    tool_calls: list[ToolCall]
    tool_outputs: list[dict[str, str]]
    state: TurnState = TurnState.COMPLETED
