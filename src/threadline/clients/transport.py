"""Transport port for the responses endpoint, and its any-llm adapter."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from typing import Any, Protocol

from any_llm import AnyLLM

from threadline.__about__ import DEFAULT_PROVIDER
from threadline.stream.events import to_plain

logger = logging.getLogger(__name__)


class ResponsesTransport(Protocol):
    """Sends one request body to the responses endpoint.

    ``create`` returns the response as a plain mapping. ``stream`` returns an async
    iterator of raw stream events.
    """

    async def create(self, payload: dict[str, Any]) -> dict[str, Any]: ...

    async def stream(self, payload: dict[str, Any]) -> AsyncIterator[Any]: ...


def tool_outputs_to_input_items(tool_outputs: list[dict[str, Any]]) -> list[dict[str, Any]]:
    return [
        {"type": "function_call_output", "call_id": item["tool_call_id"], "output": item["output"]}
        for item in tool_outputs
    ]


def _as_input_list(value: Any) -> list[Any]:
    if value is None:
        return []
    if isinstance(value, str):
        return [{"role": "user", "content": value}]
    return list(value)


def build_request_kwargs(payload: dict[str, Any]) -> dict[str, Any]:
    """Map a wire payload onto ``AnyLLM.aresponses`` keyword arguments."""
    body = dict(payload)
    model = body.pop("model")
    input_data = body.pop("input", None)
    tool_outputs = body.pop("tool_outputs", None)
    body.pop("stream", None)
    if tool_outputs:
        input_data = tool_outputs_to_input_items(tool_outputs) + _as_input_list(input_data)
    tools = body.pop("tools", None)
    return {"model": model, "input_data": input_data, "tools": tools, **body}


class AnyLLMTransport:
    """ResponsesTransport backed by ``AnyLLM.aresponses``."""

    def __init__(
        self,
        *,
        provider: str = DEFAULT_PROVIDER,
        api_key: str | None = None,
        api_base: str | None = None,
        client_args: dict[str, Any] | None = None,
    ) -> None:
        self._provider = provider
        self._api_key = api_key
        self._api_base = api_base
        self._client_args = dict(client_args or {})
        self._client: AnyLLM | None = None

    @property
    def provider(self) -> str:
        return self._provider

    def get_client(self) -> AnyLLM:
        if self._client is None:
            self._client = AnyLLM.create(
                self._provider,
                api_key=self._api_key,
                api_base=self._api_base,
                **self._client_args,
            )
        return self._client

    async def create(self, payload: dict[str, Any]) -> dict[str, Any]:
        kwargs = build_request_kwargs(payload)
        logger.debug("POST responses model=%s keys=%s", kwargs["model"], sorted(kwargs))
        response = await self.get_client().aresponses(stream=False, **kwargs)
        plain = to_plain(response)
        return plain if isinstance(plain, dict) else {}

    async def stream(self, payload: dict[str, Any]) -> AsyncIterator[Any]:
        kwargs = build_request_kwargs(payload)
        logger.debug("POST responses (stream) model=%s keys=%s", kwargs["model"], sorted(kwargs))
        return await self.get_client().aresponses(stream=True, **kwargs)
