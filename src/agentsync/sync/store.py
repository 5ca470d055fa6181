"""Reducer state store. Owned by exactly one reducer, no I/O."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Any, Literal

from .types import ToolCall, Usage

logger = logging.getLogger(__name__)


@dataclass
class ReducerMessage:
    """
    Internal message record.

    For agent records exactly one of text, event and tool is set.
    Records mutate in place and are never removed from the store.
    """

    id: str
    real_id: str | None
    created_at: int
    role: Literal["user", "agent"]
    text: str | None = None
    event: Any = None
    tool: ToolCall | None = None
    meta: dict[str, Any] | None = None


@dataclass
class PermissionDetail:
    """Last known state of a permission request, tool call or not."""

    status: str
    tool: str | None = None
    arguments: Any = None
    created_at: int | None = None
    completed_at: int | None = None
    reason: str | None = None
    mode: str | None = None
    decision: str | None = None
    allowed_tools: list[str] | None = None


@dataclass
class TodoSnapshot:
    todos: list[Any]
    timestamp: int


@dataclass
class UsageSnapshot:
    usage: Usage
    timestamp: int


class ReducerStore:
    """
    Identity and dedup bookkeeping for one conversation session.

    Not safe for concurrent mutation: all reduce() calls for a session
    must be serialized (see SyncSession).
    """

    def __init__(self) -> None:
        self.messages: dict[str, ReducerMessage] = {}
        self.tool_id_to_message_id: dict[str, str] = {}
        self.sidechain_tool_id_to_message_id: dict[str, str] = {}
        self.permissions: dict[str, PermissionDetail] = {}
        self.local_ids: dict[str, str] = {}
        self.message_ids: dict[str, str] = {}
        self.sidechains: dict[str, list[ReducerMessage]] = {}
        self.latest_todos: TodoSnapshot | None = None
        self.latest_usage: UsageSnapshot | None = None
        self._id_counter = 0

    def allocate_id(self) -> str:
        """Allocate an internal message id. Ids grow in processing order."""
        self._id_counter += 1
        return f"msg-{self._id_counter}-{uuid.uuid4().hex[:8]}"

    def add(self, message: ReducerMessage) -> ReducerMessage:
        self.messages[message.id] = message
        return message

    def is_consumed(self, message_id: str) -> bool:
        return message_id in self.message_ids

    def reset(self) -> None:
        """Empty every table and reset the id counter."""
        self.messages.clear()
        self.tool_id_to_message_id.clear()
        self.sidechain_tool_id_to_message_id.clear()
        self.permissions.clear()
        self.local_ids.clear()
        self.message_ids.clear()
        self.sidechains.clear()
        self.latest_todos = None
        self.latest_usage = None
        self._id_counter = 0
        logger.debug("Reducer store reset")


def create_store() -> ReducerStore:
    """Create an empty store for a new session."""
    return ReducerStore()


def reset_store(store: ReducerStore) -> None:
    """Clear a store on explicit conversation reset."""
    store.reset()
