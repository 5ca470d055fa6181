"""
Public message types produced by the reducer.

These are what the rendering layer consumes. Tool calls and permissions
are frozen: the reducer replaces them instead of mutating them, so a
message handed to a renderer never changes underneath it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

ToolState = Literal["running", "completed", "error"]
PermissionStatus = Literal["pending", "approved", "denied", "canceled"]
MessageKind = Literal["user-text", "agent-text", "tool-call", "agent-event"]


@dataclass(frozen=True)
class ToolPermission:
    """Approval gate attached to a tool call."""

    id: str
    status: PermissionStatus
    reason: str | None = None
    mode: str | None = None
    allowed_tools: list[str] | None = None
    decision: str | None = None  # approved | approved_for_session | denied | abort
    date: int | None = None


@dataclass(frozen=True)
class ToolCall:
    """
    A single tool invocation and its lifecycle.

    state moves running -> completed | error. The only way back is
    completed -> running, when an approved tool is invoked again.
    """

    id: str
    name: str
    state: ToolState
    input: Any
    created_at: int
    started_at: int | None = None
    completed_at: int | None = None
    description: str | None = None
    result: Any = None
    permission: ToolPermission | None = None


@dataclass(frozen=True)
class Usage:
    """Token usage snapshot."""

    input_tokens: int = 0
    output_tokens: int = 0
    cache_creation: int = 0
    cache_read: int = 0
    context_size: int = 0


@dataclass
class UserTextMessage:
    kind: Literal["user-text"] = field(default="user-text", init=False)
    id: str
    local_id: str | None
    created_at: int
    text: str
    display_text: str | None = None
    meta: dict[str, Any] | None = None


@dataclass
class AgentTextMessage:
    kind: Literal["agent-text"] = field(default="agent-text", init=False)
    id: str
    local_id: str | None
    created_at: int
    text: str
    meta: dict[str, Any] | None = None


@dataclass
class ToolCallMessage:
    """Tool call message. Sidechain messages live in children only."""

    kind: Literal["tool-call"] = field(default="tool-call", init=False)
    id: str
    local_id: str | None
    created_at: int
    tool: ToolCall
    children: list[Message] = field(default_factory=list)
    meta: dict[str, Any] | None = None


@dataclass
class AgentEventMessage:
    """Opaque agent event (mode switch, limit reached, status message...)."""

    kind: Literal["agent-event"] = field(default="agent-event", init=False)
    id: str
    created_at: int
    event: Any
    meta: dict[str, Any] | None = None


# Union type for all renderable messages
Message = UserTextMessage | AgentTextMessage | ToolCallMessage | AgentEventMessage


@dataclass
class ReducerResult:
    """
    Change-set returned by one reduce() call.

    messages holds every message touched by the call. todos and usage are
    the store's current snapshots, not just this call's delta.
    """

    messages: list[Message] = field(default_factory=list)
    todos: list[Any] | None = None
    usage: Usage | None = None
    has_ready_event: bool = False
