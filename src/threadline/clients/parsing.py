"""Response text extraction and JSON recovery."""

from __future__ import annotations

import json
import logging
import re
from typing import Any

from threadline.core.models import MessageItem, ResponseObject

logger = logging.getLogger(__name__)

_CODE_FENCE = re.compile(r"```(?:json)?\s*(.*?)\s*```", re.DOTALL | re.IGNORECASE)
_JSON_START = re.compile(r"[\[{]")


def extract_text(response: ResponseObject) -> str:
    """Concatenated assistant text of a response, or ``""``."""
    text = response.output_text
    if text:
        return text
    # Some providers emit messages without a role.
    return "".join(item.text for item in response.output if isinstance(item, MessageItem))


def clean_json_string(raw: str) -> str:
    """Strip code fences and surrounding prose from a model's JSON answer.

    Returns the original string when no JSON value can be located.
    """
    if not raw:
        return raw
    cleaned = raw.strip()
    fenced = _CODE_FENCE.search(cleaned)
    if fenced and fenced.group(1):
        cleaned = fenced.group(1)

    decoder = json.JSONDecoder()
    for match in _JSON_START.finditer(cleaned):
        try:
            _, end = decoder.raw_decode(cleaned, match.start())
        except json.JSONDecodeError:
            continue
        return cleaned[match.start() : end]
    logger.debug("No JSON value found in model output (%d chars)", len(raw))
    return raw


def parse_json_text(raw: str) -> Any:
    """Parse a model's JSON answer. Raises json.JSONDecodeError when nothing parses."""
    return json.loads(clean_json_string(raw))
