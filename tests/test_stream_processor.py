from __future__ import annotations

import asyncio
from types import SimpleNamespace

import pytest

from threadline import (
    ErrorKind,
    RequestError,
    ResponseError,
    ResponseHandlingError,
    StreamEventKind,
    StreamProcessor,
)
from threadline.stream.events import parse_stream_event
from threadline.stream.processor import StreamController

from .fakes import text_stream_events


class Recorder:
    def __init__(self) -> None:
        self.calls: list[tuple[str, tuple]] = []

    def callbacks(self) -> dict:
        return {
            "on_text": lambda full, delta: self.calls.append(("text", (full, delta))),
            "on_tool_call": lambda call: self.calls.append(("tool_call", (call,))),
            "on_complete": lambda response: self.calls.append(("complete", (response,))),
            "on_error": lambda error: self.calls.append(("error", (error,))),
        }

    def kinds(self) -> list[str]:
        return [kind for kind, _ in self.calls]

    def of(self, kind: str) -> list[tuple]:
        return [args for name, args in self.calls if name == kind]


def tool_call_events(arguments_parts: list[str], *, item_id: str = "fc_1", done_arguments: str | None = None):
    events = [
        {"type": "response.created", "response": {"id": "resp_t", "status": "in_progress"}},
        {
            "type": "response.output_item.added",
            "item": {"type": "function_call", "id": item_id, "call_id": "call_1", "name": "get_weather"},
        },
    ]
    events.extend(
        {"type": "response.function_call_arguments.delta", "item_id": item_id, "delta": part} for part in arguments_parts
    )
    done = {"type": "response.function_call_arguments.done", "item_id": item_id}
    if done_arguments is not None:
        done["arguments"] = done_arguments
    events.append(done)
    events.append(
        {
            "type": "response.output_item.done",
            "item": {"type": "function_call", "id": item_id, "call_id": "call_1", "name": "get_weather"},
        }
    )
    return events


class TestEventParsing:
    def test_wire_and_short_names(self):
        assert parse_stream_event({"type": "response.output_text.delta", "delta": "a"}).kind == StreamEventKind.TEXT_DELTA
        assert parse_stream_event({"type": "text_delta", "delta": "a"}).kind == StreamEventKind.TEXT_DELTA

    def test_attribute_objects(self):
        event = parse_stream_event(SimpleNamespace(type="response.output_text.delta", item_id="m", delta="x"))
        assert event.data == {"item_id": "m", "delta": "x"}

    def test_unknown_type_ignored(self):
        assert parse_stream_event({"type": "response.reasoning.delta"}) is None


class TestStreamProcessor:
    def test_text_ordering(self):
        recorder = Recorder()
        processor = StreamProcessor(**recorder.callbacks())
        for event in text_stream_events(["He", "llo"]):
            processor.process(event)

        assert recorder.kinds() == ["text", "text", "complete"]
        assert recorder.of("text") == [("He", "He"), ("Hello", "llo")]
        result = processor.result()
        assert result.ok
        assert result.text == "Hello"
        assert result.response_id == "resp_s"
        assert result.response.output_text == "Hello"

    def test_text_done_mismatch_trusts_done(self, caplog):
        processor = StreamProcessor()
        processor.process({"type": "response.output_text.delta", "item_id": "m", "delta": "Helo"})
        processor.process({"type": "response.output_text.done", "item_id": "m", "text": "Hello"})
        assert processor.text == "Hello"
        assert "does not match" in caplog.text

    def test_tool_call_assembled_from_deltas(self):
        recorder = Recorder()
        processor = StreamProcessor(**recorder.callbacks())
        for event in tool_call_events(['{"city"', ': "Oslo"}']):
            processor.process(event)

        [(call,)] = recorder.of("tool_call")
        assert call.id == "call_1"
        assert call.function.name == "get_weather"
        assert call.function.arguments == '{"city": "Oslo"}'

    def test_invalid_arguments_dropped_with_error(self):
        recorder = Recorder()
        processor = StreamProcessor(**recorder.callbacks())
        for event in tool_call_events(["{not json"]):
            processor.process(event)
        for event in text_stream_events(["ok"])[2:]:
            processor.process(event)

        assert recorder.of("tool_call") == []
        [(error,)] = recorder.of("error")
        assert isinstance(error, ResponseHandlingError)
        assert recorder.of("text") == [("ok", "ok")]
        assert len(recorder.of("complete")) == 1

    def test_done_arguments_override_buffer(self):
        recorder = Recorder()
        processor = StreamProcessor(**recorder.callbacks())
        for event in tool_call_events(["{garbage"], done_arguments='{"city": "Rome"}'):
            processor.process(event)
        [(call,)] = recorder.of("tool_call")
        assert call.function.arguments == '{"city": "Rome"}'

    @pytest.mark.parametrize(
        ("event", "status"),
        [
            ({"type": "response.failed", "response": {"id": "r", "error": {"message": "boom", "code": "x"}}}, "failed"),
            ({"type": "response.incomplete", "response": {"id": "r", "incomplete_details": {"reason": "max"}}}, "incomplete"),
            ({"type": "error", "message": "bad", "code": "rate_limit"}, "failed"),
        ],
    )
    def test_terminal_errors(self, event, status):
        recorder = Recorder()
        processor = StreamProcessor(**recorder.callbacks())
        processor.process(event)
        [(error,)] = recorder.of("error")
        assert isinstance(error, ResponseError)
        assert processor.done
        assert processor.result().status == status

    def test_events_after_done_ignored(self):
        recorder = Recorder()
        processor = StreamProcessor(**recorder.callbacks())
        for event in text_stream_events(["a"]):
            processor.process(event)
        assert processor.process({"type": "response.output_text.delta", "item_id": "msg_1", "delta": "b"}) is None
        assert recorder.kinds() == ["text", "complete"]

    def test_callback_exception_routed_to_on_error(self):
        errors = []

        def explode(full, delta):
            raise RuntimeError("callback bug")

        processor = StreamProcessor(on_text=explode, on_error=errors.append)
        for event in text_stream_events(["a", "b"]):
            processor.process(event)

        assert len(errors) == 2
        assert all(isinstance(error, ResponseHandlingError) for error in errors)
        assert processor.result().status == "completed"

    def test_async_callbacks_rejected(self):
        async def on_text(full, delta):
            return None

        with pytest.raises(RequestError):
            StreamProcessor(on_text=on_text)

    def test_callback_returning_awaitable_routed_to_on_error(self):
        errors = []

        async def record(full, delta):
            return None

        processor = StreamProcessor(on_text=lambda full, delta: record(full, delta), on_error=errors.append)
        for event in text_stream_events(["a"]):
            processor.process(event)

        assert len(errors) == 1
        assert isinstance(errors[0], ResponseHandlingError)
        assert processor.result().status == "completed"

    def test_cancel_is_idempotent_and_silences_callbacks(self):
        recorder = Recorder()
        processor = StreamProcessor(**recorder.callbacks())
        events = text_stream_events(["a", "b"])
        processor.process(events[0])
        processor.process(events[3])
        processor.cancel()
        processor.cancel()
        for event in events[4:]:
            processor.process(event)

        assert recorder.kinds() == ["text"]
        assert processor.result().cancelled


async def _source(events, *, delay: float = 0.0):
    for event in events:
        if delay:
            await asyncio.sleep(delay)
        yield event


class TestStreamController:
    @pytest.mark.asyncio
    async def test_wait_returns_result(self):
        recorder = Recorder()
        controller = StreamController(_source(text_stream_events(["He", "llo"])), StreamProcessor(**recorder.callbacks()))
        result = await controller.start().wait()
        assert result.ok
        assert result.text == "Hello"
        assert recorder.kinds() == ["text", "text", "complete"]

    @pytest.mark.asyncio
    async def test_async_iteration_yields_typed_events(self):
        controller = StreamController(_source(text_stream_events(["a"])), StreamProcessor())
        kinds = [event.kind async for event in controller]
        assert kinds[0] == StreamEventKind.CREATED
        assert kinds[-1] == StreamEventKind.COMPLETED

    @pytest.mark.asyncio
    async def test_source_without_terminal_event(self):
        recorder = Recorder()
        controller = StreamController(_source(text_stream_events(["a"])[:-1]), StreamProcessor(**recorder.callbacks()))
        result = await controller.start().wait()
        assert result.status == "incomplete"
        assert recorder.kinds()[-1] == "error"

    @pytest.mark.asyncio
    async def test_cancel_resolves_wait(self):
        recorder = Recorder()
        controller = StreamController(
            _source(text_stream_events(["a", "b", "c"]), delay=0.05),
            StreamProcessor(**recorder.callbacks()),
        )
        controller.start()
        await asyncio.sleep(0.01)
        controller.cancel()
        controller.cancel()
        result = await asyncio.wait_for(controller.wait(), timeout=1)
        assert result.cancelled
        assert "complete" not in recorder.kinds()

    @pytest.mark.asyncio
    async def test_idle_timeout(self):
        recorder = Recorder()
        controller = StreamController(
            _source(text_stream_events(["a"]), delay=0.2),
            StreamProcessor(**recorder.callbacks()),
            idle_timeout=0.05,
        )
        result = await controller.start().wait()
        assert result.status == "failed"
        assert result.error.kind == ErrorKind.TIMEOUT

    @pytest.mark.asyncio
    async def test_transport_error_mid_stream(self):
        async def broken():
            yield text_stream_events(["a"])[0]
            raise ConnectionError("connection error: reset by peer")

        recorder = Recorder()
        controller = StreamController(broken(), StreamProcessor(**recorder.callbacks()))
        result = await controller.start().wait()
        assert result.status == "failed"
        [(error,)] = recorder.of("error")
        assert error.cause is not None
