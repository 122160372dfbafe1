"""Request execution for threadline: timeouts, error classification and wrapping."""

from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import Awaitable, Callable
from typing import Any, NoReturn, TypeVar

from any_llm import exceptions as anyllm_errors

from threadline.core.errors import ErrorKind, ResponseError, ThreadlineError
from threadline.core.telemetry import span

logger = logging.getLogger(__name__)

T = TypeVar("T")

ErrorClassifier = Callable[[Exception], "ErrorKind | None"]

# Checked in order; the base AnyLLMError catches whatever the specific types miss.
_ANYLLM_KINDS: tuple[tuple[tuple[type[Exception], ...], ErrorKind], ...] = (
    ((anyllm_errors.MissingApiKeyError, anyllm_errors.AuthenticationError), ErrorKind.CONFIG),
    (
        (
            anyllm_errors.UnsupportedProviderError,
            anyllm_errors.UnsupportedParameterError,
            anyllm_errors.InvalidRequestError,
            anyllm_errors.ModelNotFoundError,
            anyllm_errors.ContextLengthExceededError,
        ),
        ErrorKind.INVALID_INPUT,
    ),
    ((anyllm_errors.RateLimitError, anyllm_errors.ContentFilterError), ErrorKind.TEMPORARY),
    ((anyllm_errors.ProviderError, anyllm_errors.AnyLLMError), ErrorKind.PROVIDER),
)

_STATUS_KINDS: dict[int, ErrorKind] = {
    401: ErrorKind.CONFIG,
    403: ErrorKind.CONFIG,
    400: ErrorKind.INVALID_INPUT,
    404: ErrorKind.INVALID_INPUT,
    413: ErrorKind.INVALID_INPUT,
    422: ErrorKind.INVALID_INPUT,
    408: ErrorKind.TIMEOUT,
    409: ErrorKind.TEMPORARY,
    425: ErrorKind.TEMPORARY,
    429: ErrorKind.TEMPORARY,
}

_TEXT_KINDS: tuple[tuple[re.Pattern[str], ErrorKind], ...] = (
    (
        re.compile(
            r"unauthori[sz]ed|forbidden|authenticat|permission denied|access denied"
            r"|invalid[_\s-]?api[_\s-]?key|incorrect api key|api key.*not valid"
        ),
        ErrorKind.CONFIG,
    ),
    (re.compile(r"rate[_\s-]?limit|too many requests|quota exceeded|\b429\b"), ErrorKind.TEMPORARY),
    (
        re.compile(
            r"invalid request|bad request|unprocessable|validation"
            r"|model.*not.*found|does not exist|context.*length|maximum.*context"
            r"|token limit|unsupported parameter"
        ),
        ErrorKind.INVALID_INPUT,
    ),
    (re.compile(r"timeout|timed out"), ErrorKind.TIMEOUT),
    (
        re.compile(r"connection error|network error|internal server|service unavailable|bad gateway"),
        ErrorKind.PROVIDER,
    ),
)


def status_code_of(exc: Exception) -> int | None:
    """HTTP status carried by an SDK exception, directly or on its response."""
    for holder in (exc, getattr(exc, "response", None)):
        status = getattr(holder, "status_code", None)
        if isinstance(status, int):
            return status
    return None


def error_code_of(exc: Exception) -> str | None:
    code = getattr(exc, "code", None)
    if isinstance(code, str) and code:
        return code
    body = getattr(exc, "body", None)
    if not isinstance(body, dict):
        return None
    error = body.get("error")
    source = error if isinstance(error, dict) else body
    code = source.get("code")
    return code if isinstance(code, str) and code else None


def _kind_from_anyllm(exc: Exception) -> ErrorKind | None:
    for types, kind in _ANYLLM_KINDS:
        if isinstance(exc, types):
            return kind
    return None


def _kind_from_status(exc: Exception) -> ErrorKind | None:
    status = status_code_of(exc)
    if status is None:
        return None
    if status >= 500:
        return ErrorKind.PROVIDER
    return _STATUS_KINDS.get(status)


def _kind_from_text(exc: Exception) -> ErrorKind | None:
    text = f"{type(exc).__name__} {exc}".lower()
    for pattern, kind in _TEXT_KINDS:
        if pattern.search(text):
            return kind
    return None


class ExecutionCore:
    """Runs transport calls for one provider and turns their failures into threadline errors."""

    def __init__(
        self,
        *,
        provider: str,
        timeout_seconds: float,
        verbose: int = 0,
        error_classifier: ErrorClassifier | None = None,
    ) -> None:
        self.provider = provider
        self.timeout_seconds = timeout_seconds
        self.verbose = verbose
        self.error_classifier = error_classifier

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        *,
        model: str,
        span_name: str,
        timeout_seconds: float | None = None,
        **attributes: Any,
    ) -> T:
        """Await ``operation()`` inside a span and under the request timeout."""
        timeout = timeout_seconds or self.timeout_seconds
        try:
            with span(span_name, provider=self.provider, model=model, **attributes):
                return await asyncio.wait_for(operation(), timeout=timeout)
        except ThreadlineError:
            raise
        except asyncio.TimeoutError as exc:
            error = ResponseError(
                f"{self.provider}:{model}: request timed out after {timeout:g}s",
                kind=ErrorKind.TIMEOUT,
                cause=exc,
            )
            self.log_error(error, model)
            raise error from exc
        except Exception as exc:
            self.raise_wrapped(exc, model)

    def log_error(self, error: ThreadlineError, model: str) -> None:
        if not self.verbose:
            return
        if error.cause is not None and self.verbose > 1:
            logger.warning("[%s:%s] %s (cause=%r)", self.provider, model, error, error.cause)
        else:
            logger.warning("[%s:%s] %s", self.provider, model, error)

    def classify_exception(self, exc: Exception) -> ErrorKind:
        """Caller classifier first, then any-llm type, HTTP status and message text."""
        if isinstance(exc, ThreadlineError):
            return exc.kind
        if self.error_classifier is not None:
            try:
                custom = self.error_classifier(exc)
            except Exception as classifier_exc:
                logger.warning("error_classifier raised %r; using built-in rules", classifier_exc)
            else:
                if isinstance(custom, ErrorKind):
                    return custom

        for rule in (_kind_from_anyllm, _kind_from_status, _kind_from_text):
            kind = rule(exc)
            if kind is not None:
                return kind
        return ErrorKind.UNKNOWN

    def wrap_error(self, exc: Exception, model: str) -> ThreadlineError:
        if isinstance(exc, ThreadlineError):
            return exc
        details: dict[str, Any] = {"provider": self.provider, "model": model}
        status = status_code_of(exc)
        if status is not None:
            details["status_code"] = status
        return ResponseError(
            f"{self.provider}:{model}: {exc}",
            kind=self.classify_exception(exc),
            code=error_code_of(exc),
            details=details,
            cause=exc,
        )

    def raise_wrapped(self, exc: Exception, model: str) -> NoReturn:
        error = self.wrap_error(exc, model)
        self.log_error(error, model)
        raise error from exc
