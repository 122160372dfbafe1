"""Streaming support for threadline."""

from threadline.stream.events import StreamEvent, StreamEventKind, parse_stream_event
from threadline.stream.processor import StreamController, StreamProcessor

__all__ = [
    "StreamController",
    "StreamEvent",
    "StreamEventKind",
    "StreamProcessor",
    "parse_stream_event",
]
