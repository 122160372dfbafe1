"""Streamed Responses API operations."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from typing import Any

from threadline.clients.mock import MockResponder
from threadline.clients.responses import build_request_payload
from threadline.clients.transport import ResponsesTransport
from threadline.core.config import ClientConfig, RequestOptions
from threadline.core.execution import ExecutionCore
from threadline.core.models import RequestPayload
from threadline.stream.events import StreamEvent
from threadline.stream.processor import (
    CompleteCallback,
    ErrorCallback,
    StreamController,
    StreamProcessor,
    TextCallback,
    ToolCallCallback,
)

logger = logging.getLogger(__name__)


class StreamingClient:
    """Open event streams and hand them to a StreamController."""

    def __init__(
        self,
        core: ExecutionCore,
        config: ClientConfig,
        *,
        transport: ResponsesTransport | None,
        mock: MockResponder,
    ) -> None:
        self._core = core
        self._config = config
        self._transport = transport
        self._mock = mock

    async def _open(self, payload: RequestPayload, timeout_seconds: float | None) -> AsyncIterator[Any]:
        """Yield raw events, opening the transport stream on first use."""
        wire = payload.to_wire()
        if self._transport is None:
            source: AsyncIterator[Any] = self._mock.stream(wire)
        else:
            transport = self._transport
            source = await self._core.run(
                lambda: transport.stream(wire),
                model=payload.model,
                span_name="threadline.responses.stream",
                timeout_seconds=timeout_seconds,
            )
        logger.debug("Stream opened model=%s", payload.model)
        try:
            async for raw in source:
                yield raw
        finally:
            aclose = getattr(source, "aclose", None)
            if aclose is not None:
                await aclose()

    def controller(
        self,
        messages: Any,
        options: RequestOptions | None = None,
        *,
        on_text: TextCallback | None = None,
        on_tool_call: ToolCallCallback | None = None,
        on_complete: CompleteCallback | None = None,
        on_error: ErrorCallback | None = None,
    ) -> StreamController:
        payload = build_request_payload(self._config, messages, options, stream=True)
        timeout = (options.timeout_seconds if options else None) or self._config.timeout_seconds
        processor = StreamProcessor(
            on_text=on_text,
            on_tool_call=on_tool_call,
            on_complete=on_complete,
            on_error=on_error,
        )
        return StreamController(
            self._open(payload, timeout),
            processor,
            idle_timeout=timeout,
            error_wrapper=lambda exc: self._core.wrap_error(exc, payload.model),
        )

    def stream(self, messages: Any, options: RequestOptions | None = None) -> AsyncIterator[StreamEvent]:
        return aiter(self.controller(messages, options))
