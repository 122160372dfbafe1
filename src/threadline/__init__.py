"""threadline public API."""

from threadline.__about__ import DEFAULT_MODEL, __version__
from threadline.client import ResponseClient
from threadline.clients import AnyLLMTransport, MockResponder, ResponsesTransport, format_for_responses_api
from threadline.core import (
    ClientConfig,
    ErrorKind,
    RequestError,
    RequestOptions,
    ResponseError,
    ResponseHandlingError,
    StateManagementError,
    ThreadlineError,
    instrument_threadline,
)
from threadline.core.models import ConversationState, ResponseObject, ToolCall, ToolResult
from threadline.core.results import HealthReport, JsonResult, StreamResult, ToolLoopResult, TurnState
from threadline.core.validation import (
    validate_message_format,
    validate_metadata,
    validate_response_structure,
    validate_user_identifier,
)
from threadline.state import (
    AsyncKeyValueStoreAdapter,
    ConversationStateManager,
    InMemoryKeyValueStore,
    KeyValueStore,
)
from threadline.stream import StreamController, StreamEvent, StreamEventKind, StreamProcessor
from threadline.tools import (
    MAX_TOOL_OUTPUT_CHARS,
    Tool,
    ToolExecutor,
    ToolSet,
    create_tool_result_input,
    define_function_tool,
    force_function_call,
    format_multiple_tool_results,
    format_tool_result,
    parse_tool_arguments,
    schema_from_model,
    tool,
    tool_from_model,
)

__all__ = [
    "DEFAULT_MODEL",
    "MAX_TOOL_OUTPUT_CHARS",
    "AnyLLMTransport",
    "AsyncKeyValueStoreAdapter",
    "ClientConfig",
    "ConversationState",
    "ConversationStateManager",
    "ErrorKind",
    "HealthReport",
    "InMemoryKeyValueStore",
    "JsonResult",
    "KeyValueStore",
    "MockResponder",
    "RequestError",
    "RequestOptions",
    "ResponseClient",
    "ResponseError",
    "ResponseHandlingError",
    "ResponseObject",
    "ResponsesTransport",
    "StateManagementError",
    "StreamController",
    "StreamEvent",
    "StreamEventKind",
    "StreamProcessor",
    "StreamResult",
    "ThreadlineError",
    "Tool",
    "ToolCall",
    "ToolExecutor",
    "ToolLoopResult",
    "ToolResult",
    "ToolSet",
    "TurnState",
    "__version__",
    "create_tool_result_input",
    "define_function_tool",
    "force_function_call",
    "format_for_responses_api",
    "format_multiple_tool_results",
    "format_tool_result",
    "instrument_threadline",
    "parse_tool_arguments",
    "schema_from_model",
    "tool",
    "tool_from_model",
    "validate_message_format",
    "validate_metadata",
    "validate_response_structure",
    "validate_user_identifier",
]
