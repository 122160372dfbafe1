"""Local tool execution for threadline."""

from __future__ import annotations

import inspect
import logging
from collections.abc import Sequence
from typing import Any

from pydantic import ValidationError

from threadline.core.errors import ErrorKind, ResponseHandlingError, ThreadlineError
from threadline.core.models import ToolCall
from threadline.tools.protocol import format_multiple_tool_results, parse_tool_arguments
from threadline.tools.schema import Tool, ToolInput, normalize_tools

logger = logging.getLogger(__name__)


class ToolExecutor:
    """Run model-requested tool calls and format their outputs for submission."""

    async def execute(self, tool_calls: Sequence[ToolCall], tools: ToolInput) -> dict[str, list[dict[str, str]]]:
        """Return ``{"tool_outputs": [...]}`` with one entry per call, in call order.

        A failing handler produces an error payload for its call instead of raising.
        """
        tool_map = self._build_tool_map(tools)
        if tool_calls and not tool_map:
            raise ResponseHandlingError("No runnable tools are available.", kind=ErrorKind.TOOL)

        results: list[tuple[str, Any]] = []
        for call in tool_calls:
            try:
                output = await self._handle_tool_call(call, tool_map)
            except ThreadlineError as exc:
                logger.warning("Tool call %s (%s) failed: %s", call.id, call.function.name, exc)
                output = {"error": exc.as_dict()}
            results.append((call.id, output))
        return format_multiple_tool_results(results)

    def _build_tool_map(self, tools: ToolInput) -> dict[str, Tool]:
        toolset = normalize_tools(tools)
        return {tool_obj.name: tool_obj for tool_obj in toolset.runnable}

    async def _handle_tool_call(self, call: ToolCall, tool_map: dict[str, Tool]) -> Any:
        tool_name = call.function.name
        tool_obj = tool_map.get(tool_name)
        if tool_obj is None:
            raise ResponseHandlingError(f"Unknown tool name: {tool_name}.", kind=ErrorKind.TOOL)
        tool_args = parse_tool_arguments(call)
        if not isinstance(tool_args, dict):
            raise ResponseHandlingError(
                f"Arguments for tool '{tool_name}' must be a JSON object.",
                kind=ErrorKind.INVALID_INPUT,
                details={"tool": tool_name},
            )
        try:
            result = tool_obj.run(**tool_args)
            if inspect.isawaitable(result):
                result = await result
        except ValidationError as exc:
            raise ResponseHandlingError(
                f"Tool '{tool_name}' argument validation failed.",
                kind=ErrorKind.INVALID_INPUT,
                details={"errors": exc.errors(include_url=False)},
                cause=exc,
            ) from exc
        except Exception as exc:
            raise ResponseHandlingError(
                f"Tool '{tool_name}' execution failed.",
                kind=ErrorKind.TOOL,
                details={"error": repr(exc)},
                cause=exc,
            ) from exc
        return result
