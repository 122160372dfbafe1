"""Clients for threadline."""

from threadline.clients.formatting import format_for_responses_api
from threadline.clients.mock import MockResponder
from threadline.clients.parsing import clean_json_string, extract_text, parse_json_text
from threadline.clients.responses import ResponsesClient, build_request_payload
from threadline.clients.streaming import StreamingClient
from threadline.clients.transport import AnyLLMTransport, ResponsesTransport

__all__ = [
    "AnyLLMTransport",
    "MockResponder",
    "ResponsesClient",
    "ResponsesTransport",
    "StreamingClient",
    "build_request_payload",
    "clean_json_string",
    "extract_text",
    "format_for_responses_api",
    "parse_json_text",
]
