"""Stream event folding and stream lifecycle control."""

from __future__ import annotations

import asyncio
import inspect
import json
import logging
from collections.abc import AsyncIterable, AsyncIterator, Callable, Generator
from dataclasses import dataclass
from typing import Any

from pydantic import ValidationError

from threadline.core.errors import ErrorKind, RequestError, ResponseError, ResponseHandlingError, ThreadlineError
from threadline.core.models import FunctionCall, ResponseObject, ToolCall
from threadline.core.results import StreamResult
from threadline.stream.events import StreamEvent, StreamEventKind, parse_stream_event

logger = logging.getLogger(__name__)

TextCallback = Callable[[str, str], Any]
ToolCallCallback = Callable[[ToolCall], Any]
CompleteCallback = Callable[[ResponseObject], Any]
ErrorCallback = Callable[[ThreadlineError], Any]

_TOOL_ITEM_TYPES = {"function_call", "tool_call"}


@dataclass
class _PendingToolCall:
    item_id: str
    call_id: str | None = None
    name: str = ""
    arguments: str = ""
    arguments_done: bool = False
    failed: bool = False


def _pending_from_item(item: dict[str, Any]) -> _PendingToolCall:
    item_id = item.get("id") or ""
    if item.get("type") == "tool_call":
        nested = item.get("tool_call") or {}
        function = nested.get("function") or {}
        return _PendingToolCall(
            item_id=item_id,
            call_id=nested.get("id"),
            name=function.get("name") or "",
            arguments=function.get("arguments") or "",
        )
    return _PendingToolCall(
        item_id=item_id,
        call_id=item.get("call_id"),
        name=item.get("name") or "",
        arguments=item.get("arguments") or "",
    )


class StreamProcessor:
    """Fold Responses API stream events into callbacks and a StreamResult.

    One processor handles exactly one stream. After a terminal event, or after
    ``cancel()``, further events are ignored and no callback fires. Callback
    exceptions never escape: they are logged and delivered to ``on_error``.
    """

    def __init__(
        self,
        *,
        on_text: TextCallback | None = None,
        on_tool_call: ToolCallCallback | None = None,
        on_complete: CompleteCallback | None = None,
        on_error: ErrorCallback | None = None,
    ) -> None:
        callbacks = {"on_text": on_text, "on_tool_call": on_tool_call, "on_complete": on_complete, "on_error": on_error}
        for label, callback in callbacks.items():
            if callback is not None and inspect.iscoroutinefunction(callback):
                raise RequestError(
                    f"{label} must be a plain function; iterate the controller with async for to await work per event."
                )
        self._on_text = on_text
        self._on_tool_call = on_tool_call
        self._on_complete = on_complete
        self._on_error = on_error

        self._texts: dict[str, str] = {}
        self._pending_tools: dict[str, _PendingToolCall] = {}
        self._tool_calls: list[ToolCall] = []
        self._response_id: str | None = None
        self._status = "in_progress"
        self._response: ResponseObject | None = None
        self._error: ThreadlineError | None = None
        self._done = False
        self._cancelled = False

    @property
    def done(self) -> bool:
        return self._done

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def text(self) -> str:
        return "".join(self._texts.values())

    def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        logger.debug("Stream %s cancelled", self._response_id)

    def result(self) -> StreamResult:
        return StreamResult(
            response_id=self._response_id,
            status=self._status,
            text=self.text,
            tool_calls=list(self._tool_calls),
            response=self._response,
            error=self._error,
            cancelled=self._cancelled,
        )

    def process(self, raw: Any) -> StreamEvent | None:
        """Fold one raw event. Returns the typed event, or None when it was ignored."""
        if self._done or self._cancelled:
            logger.debug("Ignoring stream event after stream end")
            return None
        event = parse_stream_event(raw)
        if event is None:
            return None
        handler = self._handlers.get(event.kind)
        if handler is not None:
            handler(self, event)
        return event

    def fail(self, error: ThreadlineError) -> None:
        """Terminate the stream with an error raised outside the event sequence."""
        if self._done:
            return
        self._finish("failed", error)

    def finish_without_terminal(self) -> None:
        if self._done:
            return
        self._finish(
            "incomplete",
            ResponseError(
                "Stream ended before a terminal event.",
                details={"response_id": self._response_id} if self._response_id else None,
            ),
        )

    def _finish(self, status: str, error: ThreadlineError | None = None) -> None:
        self._status = status
        self._done = True
        if error is not None:
            self._error = error
            self._deliver_error(error)

    def _emit(self, callback: Callable[..., Any] | None, *args: Any) -> None:
        if callback is None or self._cancelled:
            return
        try:
            result = callback(*args)
            if inspect.isawaitable(result):
                if inspect.iscoroutine(result):
                    result.close()
                raise TypeError("stream callbacks must not return awaitables")
        except Exception as exc:
            logger.exception("Stream callback %s raised", getattr(callback, "__name__", callback))
            self._deliver_error(ResponseHandlingError(f"Stream callback failed: {exc!r}", cause=exc))

    def _deliver_error(self, error: ThreadlineError) -> None:
        if self._on_error is None or self._cancelled:
            return
        try:
            self._on_error(error)
        except Exception:
            logger.exception("Stream on_error callback raised while handling %s", error)

    def _record_response(self, event: StreamEvent) -> dict[str, Any]:
        response = event.data.get("response")
        if not isinstance(response, dict):
            return {}
        if response.get("id"):
            self._response_id = response["id"]
        if isinstance(response.get("status"), str):
            self._status = response["status"]
        return response

    def _on_lifecycle(self, event: StreamEvent) -> None:
        self._record_response(event)

    def _on_item_added(self, event: StreamEvent) -> None:
        item = event.data.get("item")
        if not isinstance(item, dict):
            return
        item_type = item.get("type")
        if item_type == "message":
            self._texts.setdefault(item.get("id") or "", "")
        elif item_type in _TOOL_ITEM_TYPES:
            pending = _pending_from_item(item)
            self._pending_tools[pending.item_id] = pending

    def _on_text_delta(self, event: StreamEvent) -> None:
        delta = event.data.get("delta")
        if not isinstance(delta, str):
            return
        item_id = event.data.get("item_id") or ""
        self._texts[item_id] = self._texts.get(item_id, "") + delta
        self._emit(self._on_text, self.text, delta)

    def _on_text_done(self, event: StreamEvent) -> None:
        text = event.data.get("text")
        if not isinstance(text, str):
            return
        item_id = event.data.get("item_id") or ""
        accumulated = self._texts.get(item_id)
        if accumulated is not None and accumulated != text:
            logger.warning(
                "Streamed text for item %s does not match the final text (%d vs %d chars); using the final text",
                item_id,
                len(accumulated),
                len(text),
            )
        self._texts[item_id] = text

    def _on_args_delta(self, event: StreamEvent) -> None:
        delta = event.data.get("delta")
        if not isinstance(delta, str):
            return
        item_id = event.data.get("item_id") or ""
        pending = self._pending_tools.setdefault(item_id, _PendingToolCall(item_id=item_id))
        pending.arguments += delta

    def _validate_arguments(self, pending: _PendingToolCall) -> bool:
        try:
            json.loads(pending.arguments or "{}")
        except json.JSONDecodeError as exc:
            pending.failed = True
            logger.warning("Dropping tool call %s: arguments are not valid JSON", pending.item_id)
            self._deliver_error(
                ResponseHandlingError(
                    f"Failed to parse arguments for tool call {pending.call_id or pending.item_id}: {exc}",
                    details={"item_id": pending.item_id, "name": pending.name},
                    cause=exc,
                )
            )
            return False
        pending.arguments_done = True
        return True

    def _on_args_done(self, event: StreamEvent) -> None:
        item_id = event.data.get("item_id") or ""
        pending = self._pending_tools.setdefault(item_id, _PendingToolCall(item_id=item_id))
        arguments = event.data.get("arguments")
        if isinstance(arguments, str):
            pending.arguments = arguments
        if isinstance(event.data.get("name"), str) and not pending.name:
            pending.name = event.data["name"]
        self._validate_arguments(pending)

    def _on_item_done(self, event: StreamEvent) -> None:
        item = event.data.get("item")
        if not isinstance(item, dict):
            return
        item_type = item.get("type")
        item_id = item.get("id") or ""
        if item_type == "message":
            if not self._texts.get(item_id):
                final = "".join(
                    part.get("text", "")
                    for part in item.get("content") or []
                    if isinstance(part, dict) and part.get("type") == "output_text"
                )
                if final:
                    self._texts[item_id] = final
            return
        if item_type not in _TOOL_ITEM_TYPES:
            return

        pending = self._pending_tools.pop(item_id, None)
        final = _pending_from_item(item)
        if pending is None:
            pending = final
        else:
            pending.call_id = pending.call_id or final.call_id
            pending.name = pending.name or final.name
            if not pending.arguments_done and final.arguments:
                pending.arguments = final.arguments
        if pending.failed:
            return
        if not pending.arguments_done and not self._validate_arguments(pending):
            return

        call_id = pending.call_id or pending.item_id
        if not call_id or not pending.name:
            self._deliver_error(
                ResponseHandlingError("Tool call item is missing its id or function name.", details={"item": item})
            )
            return
        tool_call = ToolCall(id=call_id, function=FunctionCall(name=pending.name, arguments=pending.arguments))
        self._tool_calls.append(tool_call)
        self._emit(self._on_tool_call, tool_call)

    def _on_completed(self, event: StreamEvent) -> None:
        response = self._record_response(event)
        payload = {**response, "id": response.get("id") or self._response_id or "", "status": "completed"}
        try:
            self._response = ResponseObject.model_validate(payload)
        except (ValidationError, ThreadlineError) as exc:
            self._finish("failed", ResponseError("Completed stream carried an invalid response.", cause=exc))
            return
        self._finish("completed")
        self._emit(self._on_complete, self._response)

    def _on_failed(self, event: StreamEvent) -> None:
        response = self._record_response(event)
        error = response.get("error") if isinstance(response.get("error"), dict) else {}
        self._finish(
            "failed",
            ResponseError(
                f"API responded with error: {error.get('message') or 'unknown error'}",
                code=error.get("code"),
                details={"response_id": self._response_id},
            ),
        )

    def _on_incomplete(self, event: StreamEvent) -> None:
        response = self._record_response(event)
        details = response.get("incomplete_details") if isinstance(response.get("incomplete_details"), dict) else {}
        reason = details.get("reason") or "unknown reason"
        self._finish(
            "incomplete",
            ResponseError(
                f"Response incomplete: {reason}",
                details={"response_id": self._response_id, "reason": reason},
            ),
        )

    def _on_error_event(self, event: StreamEvent) -> None:
        nested = event.data.get("error") if isinstance(event.data.get("error"), dict) else event.data
        self._finish(
            "failed",
            ResponseError(
                f"Stream error: {nested.get('message') or 'unknown error'}",
                code=nested.get("code"),
                details={"response_id": self._response_id} if self._response_id else None,
            ),
        )

    _handlers: dict[StreamEventKind, Callable[[StreamProcessor, StreamEvent], None]] = {
        StreamEventKind.CREATED: _on_lifecycle,
        StreamEventKind.IN_PROGRESS: _on_lifecycle,
        StreamEventKind.ITEM_ADDED: _on_item_added,
        StreamEventKind.TEXT_DELTA: _on_text_delta,
        StreamEventKind.TEXT_DONE: _on_text_done,
        StreamEventKind.ITEM_DONE: _on_item_done,
        StreamEventKind.FUNCTION_ARGS_DELTA: _on_args_delta,
        StreamEventKind.FUNCTION_ARGS_DONE: _on_args_done,
        StreamEventKind.COMPLETED: _on_completed,
        StreamEventKind.FAILED: _on_failed,
        StreamEventKind.INCOMPLETE: _on_incomplete,
        StreamEventKind.ERROR: _on_error_event,
    }


class StreamController:
    """Drive a StreamProcessor from an async event source.

    Either ``start()`` the controller and ``await controller.wait()``, or iterate
    it with ``async for``. Not both.
    """

    def __init__(
        self,
        source: AsyncIterable[Any],
        processor: StreamProcessor,
        *,
        idle_timeout: float | None = None,
        error_wrapper: Callable[[Exception], ThreadlineError] | None = None,
    ) -> None:
        self._source = source
        self._processor = processor
        self._idle_timeout = idle_timeout
        self._error_wrapper = error_wrapper
        self._task: asyncio.Task[None] | None = None
        self._iterating = False
        self._cancelled = False
        self._closed = False

    @property
    def processor(self) -> StreamProcessor:
        return self._processor

    @property
    def started(self) -> bool:
        return self._task is not None or self._iterating

    @property
    def done(self):
        """Awaitable resolving to the StreamResult."""
        return self.wait()

    def __await__(self) -> Generator[Any, None, StreamResult]:
        return self.wait().__await__()

    def start(self) -> StreamController:
        if self._iterating:
            raise RequestError("Stream is already being iterated.")
        if self._task is None:
            self._task = asyncio.create_task(self._consume())
        return self

    def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        self._processor.cancel()
        if self._task is not None and not self._task.done():
            self._task.cancel()

    async def wait(self) -> StreamResult:
        if self._task is None:
            if self._cancelled or self._iterating:
                await self._close()
                return self._processor.result()
            self.start()
        task = self._task
        assert task is not None
        await asyncio.wait({task})
        if task.cancelled():
            self._processor.cancel()
            await self._close()
        else:
            task.result()
        return self._processor.result()

    def __aiter__(self) -> AsyncIterator[StreamEvent]:
        if self._task is not None:
            raise RequestError("Stream was started in the background; use wait() instead.")
        if self._iterating:
            raise RequestError("Stream is already being iterated.")
        self._iterating = True
        return self._iterate()

    async def _consume(self) -> None:
        async for _ in self._iterate():
            pass

    async def _iterate(self) -> AsyncIterator[StreamEvent]:
        try:
            iterator = aiter(self._source)
            while not self._processor.cancelled:
                try:
                    raw = await self._next(iterator)
                except StopAsyncIteration:
                    self._processor.finish_without_terminal()
                    break
                except asyncio.TimeoutError as exc:
                    self._processor.fail(
                        ResponseError(
                            f"No stream event received within {self._idle_timeout:g}s.",
                            kind=ErrorKind.TIMEOUT,
                            cause=exc,
                        )
                    )
                    break
                except ThreadlineError as exc:
                    self._processor.fail(exc)
                    break
                except Exception as exc:
                    self._processor.fail(self._wrap(exc))
                    break

                event = self._processor.process(raw)
                if event is not None and not self._processor.cancelled:
                    yield event
                if self._processor.done:
                    break
        finally:
            await self._close()

    async def _next(self, iterator: AsyncIterator[Any]) -> Any:
        if self._idle_timeout is None:
            return await anext(iterator)
        return await asyncio.wait_for(anext(iterator), timeout=self._idle_timeout)

    def _wrap(self, exc: Exception) -> ThreadlineError:
        if self._error_wrapper is not None:
            return self._error_wrapper(exc)
        return ResponseError(f"Stream transport failed: {exc}", kind=ErrorKind.UNKNOWN, cause=exc)

    async def _close(self) -> None:
        if self._closed:
            return
        self._closed = True
        aclose = getattr(self._source, "aclose", None)
        if aclose is None:
            return
        try:
            await aclose()
        except Exception as exc:
            logger.warning("Closing stream source failed: %r", exc)
