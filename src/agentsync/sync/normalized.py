"""
Normalized message types for stream reconciliation.

These types are the common shape every transport format is reduced to
before the reducer sees it. The flow is:

    Raw transport events → Normalized Messages → Reducer → Messages
    (list[dict])           (list[NormalizedMessage])    (list[Message])

Agent content is a list of tagged items. Each item carries the uuid of
the turn that produced it and, when known, its parent_uuid, which is how
sidechain messages find the conversation they belong to.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal


@dataclass
class TextContent:
    """Assistant text block."""

    type: Literal["text"] = field(default="text", init=False)
    text: str
    uuid: str
    parent_uuid: str | None = None


@dataclass
class ToolCallContent:
    """Tool invocation announced by the agent."""

    type: Literal["tool-call"] = field(default="tool-call", init=False)
    id: str
    name: str
    input: Any
    description: str | None
    uuid: str
    parent_uuid: str | None = None


@dataclass
class ToolResultPermissions:
    """Permission detail embedded in a tool result, copied as received."""

    date: int | None = None
    result: str | None = None
    mode: str | None = None
    allowed_tools: list[str] | None = None
    decision: str | None = None


@dataclass
class ToolResultContent:
    """Result for a previously announced tool call."""

    type: Literal["tool-result"] = field(default="tool-result", init=False)
    tool_use_id: str
    content: Any
    is_error: bool
    uuid: str
    parent_uuid: str | None = None
    permissions: ToolResultPermissions | None = None


@dataclass
class SidechainContent:
    """Prompt that opens a sidechain (sub-agent conversation)."""

    type: Literal["sidechain"] = field(default="sidechain", init=False)
    uuid: str
    prompt: str
    parent_uuid: str | None = None


@dataclass
class SummaryContent:
    """Conversation summary emitted by the agent."""

    type: Literal["summary"] = field(default="summary", init=False)
    summary: str
    uuid: str | None = None
    parent_uuid: str | None = None


NormalizedContent = (
    TextContent
    | ToolCallContent
    | ToolResultContent
    | SidechainContent
    | SummaryContent
)


@dataclass
class UserContent:
    type: Literal["text"] = field(default="text", init=False)
    text: str


@dataclass
class NormalizedUserMessage:
    """A user turn."""

    role: Literal["user"] = field(default="user", init=False)
    id: str
    local_id: str | None
    created_at: int
    content: UserContent
    meta: dict[str, Any] | None = None
    is_sidechain: bool = field(default=False, init=False)


@dataclass
class NormalizedAgentMessage:
    """An agent turn split into content items."""

    role: Literal["agent"] = field(default="agent", init=False)
    id: str
    local_id: str | None
    created_at: int
    content: list[NormalizedContent]
    is_sidechain: bool = False
    usage: dict[str, Any] | None = None
    meta: dict[str, Any] | None = None


@dataclass
class NormalizedEventMessage:
    """An opaque agent event; the payload is passed through untouched."""

    role: Literal["event"] = field(default="event", init=False)
    id: str
    created_at: int
    content: Any
    local_id: str | None = None
    meta: dict[str, Any] | None = None
    is_sidechain: bool = field(default=False, init=False)


# Union type for all normalized messages
NormalizedMessage = (
    NormalizedUserMessage | NormalizedAgentMessage | NormalizedEventMessage
)
