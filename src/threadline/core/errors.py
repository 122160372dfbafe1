"""Error definitions for threadline."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    """Stable error kinds for caller decisions."""

    INVALID_INPUT = "invalid_input"
    CONFIG = "config"
    PROVIDER = "provider"
    TEMPORARY = "temporary"
    TIMEOUT = "timeout"
    HANDLING = "handling"
    TOOL = "tool"
    STATE = "state"
    UNKNOWN = "unknown"


@dataclass
class ThreadlineError(Exception):
    """Public error type for threadline.

    Attributes:
        kind: Stable, actionable error kind.
        message: Human-readable description.
        code: Provider error code, when the provider sent one.
        details: Extra context for logging (ids, offending keys).
        cause: Original exception for debugging.
    """

    kind: ErrorKind
    message: str
    code: str | None = None
    details: dict[str, Any] | None = None
    cause: Exception | None = None

    def __str__(self) -> str:
        return f"[{self.kind.value}] {self.message}"

    def as_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "kind": self.kind.value,
            "message": self.message,
        }
        if self.code:
            payload["code"] = self.code
        if self.details:
            payload["details"] = self.details
        return payload


class RequestError(ThreadlineError):
    """Malformed caller input. Raised before anything is sent."""

    def __init__(
        self,
        message: str,
        *,
        kind: ErrorKind = ErrorKind.INVALID_INPUT,
        code: str | None = None,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(kind, message, code, details, cause)


class ResponseError(ThreadlineError):
    """The provider returned an invalid or failed response, or the call itself failed."""

    def __init__(
        self,
        message: str,
        *,
        kind: ErrorKind = ErrorKind.PROVIDER,
        code: str | None = None,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(kind, message, code, details, cause)


class ResponseHandlingError(ThreadlineError):
    """Local post-processing failed (tool arguments, oversized tool output)."""

    def __init__(
        self,
        message: str,
        *,
        kind: ErrorKind = ErrorKind.HANDLING,
        code: str | None = None,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(kind, message, code, details, cause)


class StateManagementError(ThreadlineError):
    """Conversation state could not be read or written."""

    def __init__(
        self,
        message: str,
        *,
        kind: ErrorKind = ErrorKind.STATE,
        code: str | None = None,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(kind, message, code, details, cause)
