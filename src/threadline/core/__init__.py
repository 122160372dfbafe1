"""Core primitives for threadline."""

from threadline.core.config import ClientConfig, RequestOptions
from threadline.core.errors import (
    ErrorKind,
    RequestError,
    ResponseError,
    ResponseHandlingError,
    StateManagementError,
    ThreadlineError,
)
from threadline.core.execution import ExecutionCore
from threadline.core.telemetry import instrument_threadline, span

__all__ = [
    "ClientConfig",
    "ErrorKind",
    "ExecutionCore",
    "RequestError",
    "RequestOptions",
    "ResponseError",
    "ResponseHandlingError",
    "StateManagementError",
    "ThreadlineError",
    "instrument_threadline",
    "span",
]
