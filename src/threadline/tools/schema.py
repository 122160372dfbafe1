"""Function tool definitions in the Responses API shape.

Tools reach the wire as flat ``{"type": "function", "name", "description",
"parameters"}`` objects. Callers may hand in :class:`Tool` objects, plain
callables, flat dicts or the nested chat-completions dicts; everything is
normalized into a :class:`ToolSet` before a request is built.
"""

from __future__ import annotations

import inspect
import re
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, NoReturn, TypeVar, Union

from pydantic import BaseModel, TypeAdapter

from threadline.core.errors import RequestError

ModelT = TypeVar("ModelT", bound=BaseModel)

TOOL_CHOICE_MODES = frozenset({"auto", "none", "required"})

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")


def _fail(message: str, cause: Exception | None = None) -> NoReturn:
    raise RequestError(message, cause=cause) from cause


def _snake_name(raw: str) -> str:
    return _CAMEL_BOUNDARY.sub("_", raw).lower()


def _require_text(value: Any, message: str) -> str:
    if not isinstance(value, str) or not value.strip():
        _fail(message)
    return value.strip()


def _parameters_from_signature(func: Callable[..., Any]) -> dict[str, Any]:
    """JSON schema for the keyword arguments of ``func``."""
    properties: dict[str, Any] = {}
    required: list[str] = []
    for param in inspect.signature(func).parameters.values():
        if param.kind in (param.VAR_POSITIONAL, param.VAR_KEYWORD):
            continue
        annotation = Any if param.annotation is param.empty else param.annotation
        try:
            properties[param.name] = TypeAdapter(annotation).json_schema()
        except Exception as exc:
            _fail(f"Cannot describe parameter {param.name!r} of type {annotation!r}.", exc)
        if param.default is param.empty:
            required.append(param.name)

    parameters: dict[str, Any] = {"type": "object", "properties": properties}
    if required:
        parameters["required"] = required
    return parameters


def define_function_tool(name: str, description: str, parameters: Mapping[str, Any]) -> dict[str, Any]:
    """Build a validated function tool definition."""
    tool_name = _require_text(name, "Function tool requires a name.")
    _require_text(description, f"Function tool {tool_name!r} requires a description.")
    if not isinstance(parameters, Mapping) or not parameters:
        _fail(f"Function tool {tool_name!r} requires a JSON schema for its parameters.")
    return {"type": "function", "name": tool_name, "description": description, "parameters": dict(parameters)}


def force_function_call(name: str) -> dict[str, Any]:
    """tool_choice directive that makes the model call ``name``."""
    return {"type": "function", "name": _require_text(name, "force_function_call requires a function name.")}


def normalize_tool_choice(tool_choice: str | Mapping[str, Any] | None) -> str | dict[str, Any] | None:
    if tool_choice is None:
        return None
    if isinstance(tool_choice, str):
        if tool_choice not in TOOL_CHOICE_MODES:
            _fail(f"Unsupported tool_choice mode: {tool_choice!r}")
        return tool_choice
    if not isinstance(tool_choice, Mapping):
        _fail(f"Unsupported tool_choice: {tool_choice!r}")

    normalized = dict(tool_choice)
    nested = normalized.pop("function", None)
    if isinstance(nested, Mapping):
        normalized.setdefault("type", "function")
        normalized["name"] = _require_text(nested.get("name"), "tool_choice function must include a name.")
    return normalized


def forced_function_name(tool_choice: str | Mapping[str, Any] | None) -> str | None:
    """Name of the function a tool_choice forces, if any."""
    normalized = normalize_tool_choice(tool_choice)
    if not isinstance(normalized, dict) or normalized.get("type") != "function":
        return None
    name = normalized.get("name")
    return name if isinstance(name, str) else None


@dataclass(frozen=True)
class Tool:
    """A function the model may call, optionally backed by a local handler."""

    name: str
    description: str = ""
    parameters: dict[str, Any] = field(default_factory=dict)
    handler: Callable[..., Any] | None = None

    def schema(self) -> dict[str, Any]:
        return {
            "type": "function",
            "name": self.name,
            "description": self.description,
            "parameters": self.parameters,
        }

    @property
    def runnable(self) -> bool:
        return self.handler is not None

    def run(self, **arguments: Any) -> Any:
        if self.handler is None:
            _fail(f"Tool {self.name!r} has no handler.")
        return self.handler(**arguments)

    @classmethod
    def from_callable(
        cls,
        func: Callable[..., Any],
        *,
        name: str | None = None,
        description: str | None = None,
    ) -> Tool:
        func_name = getattr(func, "__name__", None) or type(func).__name__
        return cls(
            name=name or _snake_name(func_name),
            description=(inspect.getdoc(func) or "") if description is None else description,
            parameters=_parameters_from_signature(func),
            handler=func,
        )


ToolLike = Union[Tool, Callable[..., Any], Mapping[str, Any]]


@dataclass(frozen=True)
class ToolSet:
    """Wire schemas for every tool plus the subset that can run locally."""

    schemas: list[dict[str, Any]]
    runnable: list[Tool]

    @property
    def payload(self) -> list[dict[str, Any]] | None:
        return self.schemas or None

    def require_runnable(self) -> None:
        if self.schemas and not self.runnable:
            _fail("Schema-only tools cannot be executed.")


ToolInput = Union[ToolSet, Sequence[ToolLike], None]


def _model_tool_fields(
    model: type[BaseModel], name: str | None, description: str | None
) -> tuple[str, str, dict[str, Any]]:
    return (
        name or _snake_name(model.__name__),
        (model.__doc__ or "") if description is None else description,
        model.model_json_schema(),
    )


def schema_from_model(
    model: type[ModelT],
    *,
    name: str | None = None,
    description: str | None = None,
) -> dict[str, Any]:
    """Schema-only tool definition whose parameters come from a pydantic model."""
    tool_name, tool_description, parameters = _model_tool_fields(model, name, description)
    return Tool(tool_name, tool_description, parameters).schema()


def tool_from_model(
    model: type[ModelT],
    handler: Callable[[ModelT], Any],
    *,
    name: str | None = None,
    description: str | None = None,
) -> Tool:
    """Runnable tool whose arguments are validated into ``model`` before ``handler`` sees them."""
    tool_name, tool_description, parameters = _model_tool_fields(model, name, description)

    def validate_then_call(**arguments: Any) -> Any:
        return handler(model.model_validate(arguments))

    return Tool(tool_name, tool_description, parameters, validate_then_call)


def _wire_schema(item: Mapping[str, Any]) -> dict[str, Any]:
    if item.get("type") != "function":
        _fail("Tool schema must have type='function'.")
    nested = item.get("function")
    schema = {"type": "function", **nested} if isinstance(nested, Mapping) else dict(item)
    name = _require_text(schema.get("name"), "Tool schema must include a non-empty function name.")
    if "parameters" not in schema:
        _fail(f"Tool schema {name!r} must include function parameters.")
    return schema


def _to_tool(item: Any) -> Tool:
    if isinstance(item, Tool):
        return item
    if callable(item):
        return Tool.from_callable(item)
    _fail(f"Unsupported tool type: {type(item).__name__}")


def normalize_tools(tools: ToolInput) -> ToolSet:
    """Collect tool schemas and runnable tools, rejecting duplicate names."""
    if tools is None:
        return ToolSet([], [])
    if isinstance(tools, ToolSet):
        return tools
    if isinstance(tools, (str, bytes)) or not isinstance(tools, Iterable):
        _fail(f"Tools must be a sequence, got {type(tools).__name__}.")

    toolset = ToolSet([], [])
    for item in tools:
        if isinstance(item, ToolSet):
            _fail("ToolSet cannot be mixed with other tool definitions.")
        if isinstance(item, Mapping):
            schema = _wire_schema(item)
        else:
            tool_obj = _to_tool(item)
            schema = tool_obj.schema()
            if tool_obj.runnable:
                toolset.runnable.append(tool_obj)
        if any(existing["name"] == schema["name"] for existing in toolset.schemas):
            _fail(f"Duplicate tool name: {schema['name']}")
        toolset.schemas.append(schema)
    return toolset


def tool(
    func: Callable[..., Any] | None = None,
    *,
    name: str | None = None,
    description: str | None = None,
) -> Any:
    """Turn a function into a :class:`Tool`, with or without arguments.

    Usage::

        @tool
        def get_weather(city: str) -> dict: ...

        @tool(name="lookup")
        async def find(query: str) -> str: ...
    """
    if func is None:
        return lambda f: Tool.from_callable(f, name=name, description=description)
    return Tool.from_callable(func, name=name, description=description)
