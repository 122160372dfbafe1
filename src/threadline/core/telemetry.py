"""Optional Logfire tracing around provider calls."""

from __future__ import annotations

from contextlib import AbstractContextManager, nullcontext
from typing import Any

try:  # pragma: no cover - optional dependency
    import logfire  # type: ignore[import-not-found]
except ImportError:  # pragma: no cover - optional dependency
    logfire = None

from threadline.core.errors import ErrorKind, ThreadlineError

_tracing_enabled = False


def tracing_enabled() -> bool:
    return _tracing_enabled and logfire is not None


def span(name: str, **attributes: Any) -> AbstractContextManager[Any]:
    """A Logfire span once tracing is on, otherwise a no-op context.

    ``None`` attributes are dropped so optional request fields do not clutter traces.
    """
    if not tracing_enabled():
        return nullcontext()
    return logfire.span(name, **{key: value for key, value in attributes.items() if value is not None})


def instrument_threadline(enabled: bool = True) -> None:
    """Switch threadline's spans on (or off) after the caller has run ``logfire.configure()``."""
    global _tracing_enabled
    if enabled and logfire is None:
        raise ThreadlineError(
            ErrorKind.CONFIG,
            "Tracing needs logfire; install the 'observability' extra of threadline.",
        )
    _tracing_enabled = enabled
