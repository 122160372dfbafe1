"""Non-streamed Responses API operations."""

from __future__ import annotations

import json
import logging
import time
from typing import Any

from pydantic import TypeAdapter, ValidationError

from threadline.clients.mock import MockResponder
from threadline.clients.parsing import extract_text, parse_json_text
from threadline.clients.transport import ResponsesTransport
from threadline.core.config import ClientConfig, RequestOptions
from threadline.core.errors import ErrorKind, RequestError, ResponseError, ThreadlineError
from threadline.core.execution import ExecutionCore
from threadline.core.models import RequestPayload, ResponseObject
from threadline.core.results import HealthReport, JsonResult
from threadline.core.validation import (
    validate_message_format,
    validate_metadata,
    validate_response_structure,
    validate_user_identifier,
)
from threadline.tools.protocol import format_multiple_tool_results
from threadline.tools.schema import forced_function_name, normalize_tool_choice, normalize_tools

logger = logging.getLogger(__name__)

JSON_OUTPUT_FORMAT = {"format": {"type": "json_object"}}


def build_request_payload(
    config: ClientConfig,
    messages: Any,
    options: RequestOptions | None = None,
    *,
    stream: bool = False,
) -> RequestPayload:
    """Validate caller input and assemble the request body. Raises RequestError."""
    validate_message_format(messages)
    options = options or RequestOptions()

    tool_outputs = messages.get("tool_outputs")
    previous_response_id = options.previous_response_id
    if tool_outputs is not None and not previous_response_id:
        raise RequestError("previous_response_id is required when submitting tool outputs.")
    if tool_outputs is not None:
        tool_outputs = format_multiple_tool_results(tool_outputs)["tool_outputs"]

    metadata = options.metadata if options.metadata is not None else messages.get("metadata")
    tools = normalize_tools(options.tools).payload
    tool_choice = normalize_tool_choice(options.tool_choice)
    forced = forced_function_name(tool_choice)
    if forced is not None and forced not in {tool["name"] for tool in tools or []}:
        raise RequestError(f"tool_choice forces unknown function {forced!r}.", details={"tool": forced})

    fields: dict[str, Any] = {
        "model": options.model or config.model,
        "input": messages.get("input"),
        "instructions": messages.get("instructions"),
        "temperature": options.temperature if options.temperature is not None else config.temperature,
        "tools": tools,
        "tool_choice": tool_choice,
        "previous_response_id": previous_response_id,
        "metadata": validate_metadata(metadata) if metadata is not None else None,
        "truncation": options.truncation,
        "user": validate_user_identifier(options.user_identifier) if options.user_identifier is not None else None,
        "include": options.include,
        "tool_outputs": tool_outputs,
        "text": dict(JSON_OUTPUT_FORMAT) if options.response_format == "json_object" else None,
        "max_output_tokens": options.max_output_tokens,
        "stream": True if stream else None,
    }
    try:
        return RequestPayload(**fields)
    except ValidationError as exc:
        raise RequestError(
            "Request payload is malformed.",
            details={"errors": exc.errors(include_url=False, include_context=False)},
            cause=exc,
        ) from exc


class ResponsesClient:
    """Send one request and validate the response it yields."""

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

    @property
    def mock_mode(self) -> bool:
        return self._transport is None

    async def create(self, messages: Any, options: RequestOptions | None = None) -> ResponseObject:
        payload = build_request_payload(self._config, messages, options)
        wire = payload.to_wire()
        logger.debug(
            "Sending request model=%s previous_response_id=%s tool_outputs=%s",
            payload.model,
            payload.previous_response_id,
            len(payload.tool_outputs) if payload.tool_outputs is not None else None,
        )
        if self._transport is None:
            raw = self._mock.create(wire)
        else:
            transport = self._transport
            raw = await self._core.run(
                lambda: transport.create(wire),
                model=payload.model,
                span_name="threadline.responses.create",
                timeout_seconds=options.timeout_seconds if options else None,
                tool_submission=payload.is_tool_submission,
            )
        return self._to_response(raw)

    def _to_response(self, raw: Any) -> ResponseObject:
        validate_response_structure(raw)
        try:
            return ResponseObject.model_validate(raw)
        except ValidationError as exc:
            raise ResponseError(
                "Response does not match the expected shape.",
                details={"response_id": raw.get("id")},
                cause=exc,
            ) from exc

    async def create_json(
        self,
        messages: Any,
        options: RequestOptions | None = None,
        *,
        schema: Any | None = None,
    ) -> JsonResult:
        options = (options or RequestOptions()).merged(response_format="json_object")
        response = await self.create(messages, options)
        text = extract_text(response)
        if not text:
            raise ResponseError("Response contained no text content.", details={"response_id": response.id})
        try:
            data = parse_json_text(text)
        except json.JSONDecodeError as exc:
            raise ResponseError(
                f"Failed to parse JSON response: {exc}",
                kind=ErrorKind.HANDLING,
                details={"response_id": response.id},
                cause=exc,
            ) from exc

        if schema is not None:
            try:
                data = TypeAdapter(schema).validate_python(data)
            except ValidationError as exc:
                raise ResponseError(
                    "JSON response failed schema validation.",
                    kind=ErrorKind.HANDLING,
                    details={"response_id": response.id, "errors": exc.errors(include_url=False)},
                    cause=exc,
                ) from exc

        return JsonResult(
            response_id=response.id,
            status=str(response.status),
            model=response.model,
            data=data,
            usage=response.usage,
            raw_response=response,
        )

    async def check_health(self) -> HealthReport:
        if self.mock_mode:
            return HealthReport(status="mock", response_time_ms=0.0, message="Running in mock mode; no API key is set.")

        options = RequestOptions(model=self._config.health_check_model, max_output_tokens=16, temperature=0)
        started = time.perf_counter()
        try:
            await self.create({"input": "ping"}, options)
        except ThreadlineError as exc:
            elapsed = (time.perf_counter() - started) * 1000
            logger.warning("Health check failed: %s", exc)
            return HealthReport(status="unhealthy", response_time_ms=elapsed, message="Responses API call failed.", error=str(exc))
        except Exception as exc:
            elapsed = (time.perf_counter() - started) * 1000
            logger.warning("Health check failed unexpectedly: %r", exc)
            return HealthReport(status="unhealthy", response_time_ms=elapsed, message="Responses API call failed.", error=repr(exc))
        elapsed = (time.perf_counter() - started) * 1000
        return HealthReport(status="healthy", response_time_ms=elapsed, message="Responses API is reachable.")
