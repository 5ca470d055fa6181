"""Pure functions projecting store records to public messages. No I/O."""

from __future__ import annotations

import copy
from dataclasses import replace

from .store import ReducerMessage, ReducerStore
from .types import (
    AgentEventMessage,
    AgentTextMessage,
    Message,
    ToolCall,
    ToolCallMessage,
    UserTextMessage,
)


def project_message(record: ReducerMessage, store: ReducerStore) -> Message | None:
    """
    Convert an internal record to its public message.

    Tool calls get their sidechain children (looked up by the record's
    real_id), projected recursively in insertion order. Tool input, result
    and event payloads are copies, so a renderer mutating a message never
    reaches the store.

    Returns:
        The message, or None for a record with no renderable payload.
    """
    return _project(record, store, frozenset())


def get_all_messages(store: ReducerStore) -> list[Message]:
    """
    Get every root message sorted by created_at.

    Records inside any sidechain are only reachable through their parent
    tool call. Equal timestamps keep processing order.
    """
    in_sidechain = {
        member.id for chain in store.sidechains.values() for member in chain
    }

    messages: list[Message] = []
    for record in store.messages.values():
        if record.id in in_sidechain:
            continue
        message = project_message(record, store)
        if message is not None:
            messages.append(message)

    # list.sort is stable, dict order is allocation order
    messages.sort(key=lambda m: m.created_at)
    return messages


def _project(
    record: ReducerMessage,
    store: ReducerStore,
    visiting: frozenset[str],
) -> Message | None:
    meta = record.meta if isinstance(record.meta, dict) else None

    if record.role == "user" and record.text is not None:
        return UserTextMessage(
            id=record.id,
            local_id=None,
            created_at=record.created_at,
            text=record.text,
            display_text=meta.get("displayText") if meta else None,
            meta=record.meta,
        )

    if record.role != "agent":
        return None

    if record.text is not None:
        return AgentTextMessage(
            id=record.id,
            local_id=None,
            created_at=record.created_at,
            text=record.text,
            meta=record.meta,
        )

    if record.tool is not None:
        children: list[Message] = []
        chain_id = record.real_id
        # A sidechain can contain a tool call with the sidechain's own id
        if chain_id and chain_id not in visiting:
            nested = visiting | {chain_id}
            for child in store.sidechains.get(chain_id, []):
                projected = _project(child, store, nested)
                if projected is not None:
                    children.append(projected)

        return ToolCallMessage(
            id=record.id,
            local_id=None,
            created_at=record.created_at,
            tool=_detach(record.tool),
            children=children,
            meta=record.meta,
        )

    if record.event is not None:
        return AgentEventMessage(
            id=record.id,
            created_at=record.created_at,
            event=copy.deepcopy(record.event),
            meta=record.meta,
        )

    return None


def _detach(tool: ToolCall) -> ToolCall:
    """Copy of a stored tool call that shares no mutable state with the store."""
    permission = tool.permission
    if permission is not None and permission.allowed_tools is not None:
        permission = replace(permission, allowed_tools=list(permission.allowed_tools))
    return replace(
        tool,
        input=copy.deepcopy(tool.input),
        result=copy.deepcopy(tool.result),
        permission=permission,
    )
