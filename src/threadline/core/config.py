"""Client configuration for threadline."""

from __future__ import annotations

import os
from collections.abc import Mapping
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from threadline.__about__ import DEFAULT_MODEL, DEFAULT_PROVIDER

API_KEY_ENV = "OPENAI_API_KEY"


class ClientConfig(BaseModel):
    """Caller-owned configuration. A missing api_key switches the client into mock mode."""

    model_config = ConfigDict(frozen=True)

    api_key: str | None = Field(default=None, repr=False)
    api_base: str | None = None
    provider: str = DEFAULT_PROVIDER
    model: str = DEFAULT_MODEL
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    timeout_seconds: float = Field(default=30.0, gt=0)
    state_ttl_seconds: int = Field(default=3600, gt=0)
    max_tool_rounds: int = Field(default=8, ge=1)
    health_check_model: str = "gpt-4o-mini"
    client_args: dict[str, Any] = Field(default_factory=dict)
    verbose: Literal[0, 1, 2] = 0

    @property
    def mock_mode(self) -> bool:
        return not self.api_key

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None, **overrides: Any) -> ClientConfig:
        env = os.environ if environ is None else environ
        values: dict[str, Any] = {"api_key": env.get(API_KEY_ENV) or None}
        values.update(overrides)
        return cls(**values)


class RequestOptions(BaseModel):
    """Per-call options. Unset fields fall back to the client's ClientConfig."""

    model_config = ConfigDict(frozen=True)

    model: str | None = None
    temperature: float | None = Field(default=None, ge=0.0, le=2.0)
    tools: list[dict[str, Any]] | None = None
    tool_choice: str | dict[str, Any] | None = None
    previous_response_id: str | None = None
    metadata: dict[str, str] | None = None
    truncation: Literal["auto", "disabled"] | None = None
    user_identifier: str | None = None
    include: list[str] | None = None
    max_output_tokens: int | None = Field(default=None, gt=0)
    response_format: Literal["text", "json_object"] | None = None
    timeout_seconds: float | None = Field(default=None, gt=0)

    def merged(self, **updates: Any) -> RequestOptions:
        return self.model_copy(update=updates)
