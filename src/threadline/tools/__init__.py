"""Tooling helpers for threadline."""

from threadline.tools.executor import ToolExecutor
from threadline.tools.protocol import (
    MAX_TOOL_OUTPUT_CHARS,
    create_tool_result_input,
    format_multiple_tool_results,
    format_tool_result,
    parse_tool_arguments,
)
from threadline.tools.schema import (
    Tool,
    ToolInput,
    ToolSet,
    define_function_tool,
    force_function_call,
    normalize_tool_choice,
    normalize_tools,
    schema_from_model,
    tool,
    tool_from_model,
)

__all__ = [
    "MAX_TOOL_OUTPUT_CHARS",
    "Tool",
    "ToolExecutor",
    "ToolInput",
    "ToolSet",
    "create_tool_result_input",
    "define_function_tool",
    "force_function_call",
    "format_multiple_tool_results",
    "format_tool_result",
    "normalize_tool_choice",
    "normalize_tools",
    "parse_tool_arguments",
    "schema_from_model",
    "tool",
    "tool_from_model",
]
