"""Pre-flight request validation and response structure checks.

Everything here is synchronous and side-effect free: a request that fails these
checks is never sent, and a response that fails them never reaches the caller.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any

from threadline.core.errors import RequestError, ResponseError

MAX_METADATA_PAIRS = 16
MAX_METADATA_KEY_LENGTH = 64
MAX_METADATA_VALUE_LENGTH = 512
MAX_USER_IDENTIFIER_LENGTH = 100

_METADATA_KEY = re.compile(r"[A-Za-z0-9_]{1,%d}" % MAX_METADATA_KEY_LENGTH)
_LONG_DIGIT_RUN = re.compile(r"\d{9,}")


def validate_message_format(messages: Any) -> None:
    """Require a non-empty ``input`` or a ``tool_outputs`` list."""
    if not isinstance(messages, Mapping):
        raise RequestError("Messages must be a mapping with 'input' or 'tool_outputs'.")

    if "tool_outputs" in messages and messages["tool_outputs"] is not None:
        if not isinstance(messages["tool_outputs"], list):
            raise RequestError("tool_outputs must be a list.")
        return

    value = messages.get("input")
    if isinstance(value, str) and value:
        return
    if isinstance(value, list) and value:
        return
    raise RequestError("Input is required in the messages object.")


def validate_metadata(metadata: Any) -> dict[str, str]:
    """Return a sanitized copy of ``metadata`` or raise RequestError."""
    if not isinstance(metadata, Mapping):
        raise RequestError("Metadata must be a mapping.")
    if len(metadata) > MAX_METADATA_PAIRS:
        raise RequestError(f"Metadata may hold at most {MAX_METADATA_PAIRS} pairs.")

    sanitized: dict[str, str] = {}
    for key, value in metadata.items():
        if not isinstance(key, str) or not _METADATA_KEY.fullmatch(key):
            raise RequestError(
                f"Invalid metadata key {key!r}: use 1-{MAX_METADATA_KEY_LENGTH} letters, digits or underscores.",
                details={"key": str(key)},
            )
        if not isinstance(value, str):
            raise RequestError(f"Metadata value for key {key!r} must be a string.", details={"key": key})
        if len(value) > MAX_METADATA_VALUE_LENGTH:
            raise RequestError(
                f"Metadata value for key {key!r} exceeds {MAX_METADATA_VALUE_LENGTH} characters.",
                details={"key": key},
            )
        sanitized[key] = value
    return sanitized


def validate_user_identifier(identifier: Any) -> str:
    if not isinstance(identifier, str) or not identifier:
        raise RequestError("User identifier must be a non-empty string.")
    if len(identifier) > MAX_USER_IDENTIFIER_LENGTH:
        raise RequestError(f"User identifier exceeds {MAX_USER_IDENTIFIER_LENGTH} characters.")
    if "@" in identifier or _LONG_DIGIT_RUN.search(identifier):
        raise RequestError("User identifier looks like personal data; use an opaque id.")
    return identifier


def validate_response_structure(response: Any) -> Any:
    """Check a completed response and return it unchanged."""
    if not isinstance(response, Mapping):
        raise ResponseError("Response must be an object.")

    response_id = response.get("id")
    if not response_id:
        raise ResponseError("Response missing required id field.")

    if response.get("status") == "failed":
        error = response.get("error")
        if isinstance(error, Mapping):
            raise ResponseError(
                f"API responded with error: {error.get('message') or 'unknown error'}",
                code=error.get("code"),
                details={"response_id": response_id},
            )
        raise ResponseError("Response failed without an error object.", details={"response_id": response_id})

    output = response.get("output")
    if not isinstance(output, list) or not output:
        raise ResponseError("Response missing valid output array.", details={"response_id": response_id})
    return response
