from __future__ import annotations

import asyncio

import pytest

from threadline.core.errors import ErrorKind, RequestError, ResponseError
from threadline.core.execution import ExecutionCore


class StatusError(Exception):
    def __init__(self, message: str, status_code: int, code: str | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = {"error": {"code": code}} if code else None


def make_core(**kwargs) -> ExecutionCore:
    return ExecutionCore(provider="openai", timeout_seconds=kwargs.pop("timeout_seconds", 1.0), **kwargs)


@pytest.mark.parametrize(
    ("exc", "kind"),
    [
        (StatusError("nope", 401), ErrorKind.CONFIG),
        (StatusError("bad", 422), ErrorKind.INVALID_INPUT),
        (StatusError("slow", 408), ErrorKind.TIMEOUT),
        (StatusError("busy", 429), ErrorKind.TEMPORARY),
        (StatusError("down", 503), ErrorKind.PROVIDER),
        (RuntimeError("Incorrect API key provided"), ErrorKind.CONFIG),
        (RuntimeError("model gpt-9 does not exist"), ErrorKind.INVALID_INPUT),
        (RuntimeError("read timed out"), ErrorKind.TIMEOUT),
        (RuntimeError("something odd"), ErrorKind.UNKNOWN),
    ],
)
def test_classify_exception(exc, kind) -> None:
    assert make_core().classify_exception(exc) == kind


def test_custom_classifier_wins() -> None:
    core = make_core(error_classifier=lambda exc: ErrorKind.TEMPORARY)
    assert core.classify_exception(StatusError("nope", 401)) == ErrorKind.TEMPORARY


def test_broken_classifier_falls_back() -> None:
    def classifier(exc: Exception) -> ErrorKind:
        raise ValueError("classifier bug")

    core = make_core(error_classifier=classifier)
    assert core.classify_exception(StatusError("busy", 429)) == ErrorKind.TEMPORARY


def test_wrap_error_keeps_details() -> None:
    exc = StatusError("busy", 429, code="rate_limit_exceeded")
    error = make_core().wrap_error(exc, "gpt-4o")
    assert isinstance(error, ResponseError)
    assert error.code == "rate_limit_exceeded"
    assert error.details == {"provider": "openai", "model": "gpt-4o", "status_code": 429}
    assert error.cause is exc


@pytest.mark.asyncio
async def test_run_passes_threadline_errors_through() -> None:
    async def operation():
        raise RequestError("bad input")

    with pytest.raises(RequestError):
        await make_core().run(operation, model="gpt-4o", span_name="test")


@pytest.mark.asyncio
async def test_run_timeout() -> None:
    async def operation():
        await asyncio.sleep(1)

    with pytest.raises(ResponseError) as exc_info:
        await make_core(timeout_seconds=0.01).run(operation, model="gpt-4o", span_name="test")
    assert exc_info.value.kind == ErrorKind.TIMEOUT
    assert isinstance(exc_info.value.__cause__, asyncio.TimeoutError)
