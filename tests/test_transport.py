from __future__ import annotations

from types import SimpleNamespace

import pytest

from threadline.clients.transport import AnyLLMTransport, build_request_kwargs


class StubAnyLLM:
    def __init__(self, result) -> None:
        self.result = result
        self.calls: list[dict] = []

    async def aresponses(self, **kwargs):
        self.calls.append(kwargs)
        return self.result


@pytest.fixture
def stub_anyllm(monkeypatch):
    created: list[tuple[tuple, dict]] = []
    stub = StubAnyLLM(
        SimpleNamespace(
            id="resp_1",
            status="completed",
            output=[SimpleNamespace(type="message", role="assistant", content=[])],
        )
    )

    def create(*args, **kwargs):
        created.append((args, kwargs))
        return stub

    monkeypatch.setattr("threadline.clients.transport.AnyLLM.create", create)
    stub.created = created
    return stub


def test_tool_outputs_become_function_call_output_items() -> None:
    kwargs = build_request_kwargs(
        {
            "model": "gpt-4o",
            "input": "thanks",
            "previous_response_id": "resp_1",
            "tool_outputs": [{"tool_call_id": "call_1", "output": "21"}],
            "stream": True,
        }
    )
    assert kwargs == {
        "model": "gpt-4o",
        "input_data": [
            {"type": "function_call_output", "call_id": "call_1", "output": "21"},
            {"role": "user", "content": "thanks"},
        ],
        "tools": None,
        "previous_response_id": "resp_1",
    }


@pytest.mark.asyncio
async def test_create_returns_plain_mapping(stub_anyllm) -> None:
    transport = AnyLLMTransport(api_key="sk-test", client_args={"timeout": 5})
    response = await transport.create({"model": "gpt-4o", "input": "hi", "temperature": 0.2})

    assert response == {
        "id": "resp_1",
        "status": "completed",
        "output": [{"type": "message", "role": "assistant", "content": []}],
    }
    assert stub_anyllm.created == [(("openai",), {"api_key": "sk-test", "api_base": None, "timeout": 5})]
    assert stub_anyllm.calls == [
        {"stream": False, "model": "gpt-4o", "input_data": "hi", "tools": None, "temperature": 0.2}
    ]


@pytest.mark.asyncio
async def test_client_is_created_once(stub_anyllm) -> None:
    transport = AnyLLMTransport(api_key="sk-test")
    await transport.create({"model": "gpt-4o", "input": "a"})
    await transport.create({"model": "gpt-4o", "input": "b"})
    assert len(stub_anyllm.created) == 1
