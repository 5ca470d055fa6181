"""
Side-channel payloads (based on actual agent backend messages).

Using Pydantic for runtime validation. Unknown keys are allowed so
the backend can add fields without breaking the client.

AgentState only checks the envelope. Each request and completion is
validated on its own by the reducer, so one malformed entry never hides
the others.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .normalizer import parse_time


def _timestamp(value: Any) -> Any:
    if isinstance(value, str):
        parsed = parse_time(value)
        # Unparseable strings fall through to the int check and fail there
        return parsed if parsed is not None else value
    return value


class PermissionRequest(BaseModel):
    """Pending permission request raised before a tool runs."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    tool: str | None = None
    arguments: Any = None
    created_at: int | float | None = Field(default=None, alias="createdAt")

    @field_validator("created_at", mode="before")
    @classmethod
    def _parse_created_at(cls, value: Any) -> Any:
        return _timestamp(value)


class CompletedPermission(BaseModel):
    """Resolved permission request."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    status: str
    reason: str | None = None
    mode: str | None = None
    decision: str | None = None
    allowed_tools: list[str] | None = Field(default=None, alias="allowedTools")
    tool: str | None = None
    arguments: Any = None
    created_at: int | float | None = Field(default=None, alias="createdAt")
    completed_at: int | float | None = Field(default=None, alias="completedAt")

    @field_validator("created_at", "completed_at", mode="before")
    @classmethod
    def _parse_timestamps(cls, value: Any) -> Any:
        return _timestamp(value)


class AgentState(BaseModel):
    """Permission side-channel delivered alongside the message stream."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    requests: dict[str, Any] = Field(default_factory=dict)
    completed_requests: dict[str, Any] = Field(
        default_factory=dict, alias="completedRequests"
    )

    @field_validator("requests", "completed_requests", mode="before")
    @classmethod
    def _none_as_empty(cls, value: Any) -> Any:
        return value or {}


class TokenUsagePayload(BaseModel):
    """Usage block of an assistant turn (Anthropic naming)."""

    model_config = ConfigDict(extra="allow")

    input_tokens: int | None = None
    output_tokens: int | None = None
    cache_creation_input_tokens: int | None = None
    cache_read_input_tokens: int | None = None
