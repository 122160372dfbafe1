"""threadline conversation client facade."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Callable, Mapping, Sequence
from typing import Any

from threadline.clients.mock import MockResponder
from threadline.clients.responses import ResponsesClient
from threadline.clients.streaming import StreamingClient
from threadline.clients.transport import AnyLLMTransport, ResponsesTransport
from threadline.core.config import ClientConfig, RequestOptions
from threadline.core.errors import ErrorKind, RequestError, ResponseHandlingError
from threadline.core.execution import ExecutionCore
from threadline.core.models import ConversationState, ResponseObject, ToolCall
from threadline.core.results import HealthReport, JsonResult, ToolLoopResult, TurnState
from threadline.state.manager import ConversationStateManager
from threadline.state.store import InMemoryKeyValueStore, KeyValueStore, SyncKeyValueStore
from threadline.stream.events import StreamEvent
from threadline.stream.processor import (
    CompleteCallback,
    ErrorCallback,
    StreamController,
    TextCallback,
    ToolCallCallback,
)
from threadline.tools.executor import ToolExecutor
from threadline.tools.protocol import create_tool_result_input, format_multiple_tool_results
from threadline.tools.schema import ToolInput, normalize_tools

logger = logging.getLogger(__name__)


class ResponseClient:
    """Stateful client for a Responses-style API.

    Without an API key in ``config`` every call is answered by a deterministic
    mock, with the same validation and return types as live calls.
    """

    def __init__(
        self,
        config: ClientConfig,
        *,
        transport: ResponsesTransport | None = None,
        store: KeyValueStore | SyncKeyValueStore | None = None,
        error_classifier: Callable[[Exception], ErrorKind | None] | None = None,
    ) -> None:
        self._config = config
        self._core = ExecutionCore(
            provider=config.provider,
            timeout_seconds=config.timeout_seconds,
            verbose=config.verbose,
            error_classifier=error_classifier,
        )
        if config.mock_mode:
            if transport is not None:
                logger.warning("No API key configured; ignoring the injected transport and using mock responses.")
            transport = None
            logger.info("threadline running in mock mode")
        elif transport is None:
            transport = AnyLLMTransport(
                provider=config.provider,
                api_key=config.api_key,
                api_base=config.api_base,
                client_args=config.client_args,
            )

        mock = MockResponder(model=config.model)
        self._responses = ResponsesClient(self._core, config, transport=transport, mock=mock)
        self._streaming = StreamingClient(self._core, config, transport=transport, mock=mock)
        self._state = ConversationStateManager(
            store if store is not None else InMemoryKeyValueStore(),
            ttl_seconds=config.state_ttl_seconds,
        )
        self._tool_executor = ToolExecutor()

    @property
    def config(self) -> ClientConfig:
        return self._config

    @property
    def mock_mode(self) -> bool:
        return self._responses.mock_mode

    @property
    def state(self) -> ConversationStateManager:
        return self._state

    async def send_message(self, messages: Mapping[str, Any], options: RequestOptions | None = None) -> ResponseObject:
        return await self._responses.create(messages, options)

    async def send_json_message(
        self,
        messages: Mapping[str, Any],
        options: RequestOptions | None = None,
        *,
        schema: Any | None = None,
    ) -> JsonResult:
        return await self._responses.create_json(messages, options, schema=schema)

    async def send_message_with_tools(
        self,
        messages: Mapping[str, Any],
        tools: ToolInput,
        options: RequestOptions | None = None,
    ) -> ResponseObject:
        toolset = normalize_tools(tools)
        if not toolset.schemas:
            raise RequestError("At least one tool is required.")
        options = options or RequestOptions()
        options = options.merged(tools=toolset.schemas, tool_choice=options.tool_choice or "auto")
        return await self._responses.create(messages, options)

    async def submit_tool_results(
        self,
        tool_outputs: Mapping[str, Any] | Sequence[Any],
        user_input: str | list[Any] | None = None,
        options: RequestOptions | None = None,
    ) -> ResponseObject:
        if options is None or not options.previous_response_id:
            raise RequestError("previous_response_id is required to submit tool results.")
        entries = tool_outputs.get("tool_outputs") if isinstance(tool_outputs, Mapping) else tool_outputs
        if entries is None:
            raise RequestError("tool_outputs must be a list of tool results.")
        formatted = format_multiple_tool_results(entries)
        return await self._responses.create(create_tool_result_input(user_input, formatted), options)

    def stream_message(
        self,
        messages: Mapping[str, Any],
        options: RequestOptions | None = None,
    ) -> AsyncIterator[StreamEvent]:
        """Iterate typed stream events with ``async for``."""
        return self._streaming.stream(messages, options)

    async def create_stream_controller(
        self,
        messages: Mapping[str, Any],
        options: RequestOptions | None = None,
        *,
        on_text: TextCallback | None = None,
        on_tool_call: ToolCallCallback | None = None,
        on_complete: CompleteCallback | None = None,
        on_error: ErrorCallback | None = None,
    ) -> StreamController:
        """Start streaming in the background and return its controller."""
        controller = self._streaming.controller(
            messages,
            options,
            on_text=on_text,
            on_tool_call=on_tool_call,
            on_complete=on_complete,
            on_error=on_error,
        )
        return controller.start()

    async def check_health(self) -> HealthReport:
        return await self._responses.check_health()

    async def find_or_create_conversation_state(
        self,
        user_id: str,
        context: str,
        initial_metadata: Mapping[str, str] | None = None,
    ) -> ConversationState:
        return await self._state.find_or_create_conversation_state(user_id, context, initial_metadata)

    async def get_last_response_id(self, state_key: str) -> str | None:
        return await self._state.get_last_response_id(state_key)

    async def update_last_response_id(self, state_key: str, new_response_id: str) -> ConversationState | None:
        return await self._state.update_last_response_id(state_key, new_response_id)

    async def delete_conversation_state(self, state_key: str) -> None:
        await self._state.delete_conversation_state(state_key)

    async def converse(
        self,
        user_id: str,
        context: str,
        messages: Mapping[str, Any],
        options: RequestOptions | None = None,
        *,
        initial_metadata: Mapping[str, str] | None = None,
    ) -> ResponseObject:
        """Send one turn of the (user_id, context) conversation.

        Turns on the same conversation are serialized. The stored response id
        only advances after a completed response.
        """
        state_key = self._state.state_key(user_id, context)
        async with self._state.lock(state_key):
            state = await self._state.find_or_create_conversation_state(user_id, context, initial_metadata)
            options = options or RequestOptions()
            if options.previous_response_id is None and state.last_response_id:
                options = options.merged(previous_response_id=state.last_response_id)
            response = await self._responses.create(messages, options)
            if response.status == "completed":
                await self._state.update_last_response_id(state_key, response.id)
            else:
                logger.warning("Turn on %s ended with status %s; state not advanced", state_key, response.status)
            return response

    async def run_tool_loop(
        self,
        messages: Mapping[str, Any],
        tools: ToolInput,
        options: RequestOptions | None = None,
        *,
        max_rounds: int | None = None,
    ) -> ToolLoopResult:
        """Send, run requested tools locally, submit their outputs, and repeat until the model answers."""
        toolset = normalize_tools(tools)
        toolset.require_runnable()
        bound = max_rounds if max_rounds is not None else self._config.max_tool_rounds
        options = options or RequestOptions()

        turn = TurnState.SENT
        response = await self.send_message_with_tools(messages, toolset, options)
        rounds = 0
        calls: list[ToolCall] = []
        outputs: list[dict[str, str]] = []
        follow_up = options.merged(tools=toolset.schemas, tool_choice="auto")

        while response.tool_calls:
            if rounds >= bound:
                raise ResponseHandlingError(
                    f"Tool loop exceeded {bound} rounds.",
                    kind=ErrorKind.TOOL,
                    details={"response_id": response.id, "rounds": rounds},
                )
            turn = TurnState.TOOL_CALL_PENDING
            pending = response.tool_calls
            logger.debug("Round %d: %s requested %s", rounds + 1, response.id, [c.function.name for c in pending])
            submission = await self._tool_executor.execute(pending, toolset)
            calls.extend(pending)
            outputs.extend(submission["tool_outputs"])
            rounds += 1

            turn = TurnState.TOOL_RESULT_SUBMITTED
            response = await self.submit_tool_results(
                submission,
                options=follow_up.merged(previous_response_id=response.id),
            )

        turn = TurnState.COMPLETED if response.status == "completed" else TurnState.FAILED
        return ToolLoopResult(response=response, rounds=rounds, tool_calls=calls, tool_outputs=outputs, state=turn)
