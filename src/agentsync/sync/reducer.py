"""
Message reducer - folds normalized messages into the store.

This is the single source of truth for:
- Deduplication (local ids, source message ids, tool ids)
- Tool call lifecycle (running → completed | error)
- Permission state threaded through tool calls
- Sidechain assembly
- Todo and usage snapshots

Phases run in a fixed order, later phases rely on records created by
earlier ones in the same call:

    1. Permission sync (agent state side-channel)
    2. Consumed / ready / context-reset filtering
    3. User text and agent text
    4. Tool calls
    5. Tool results
    6. Sidechains
    7. Events

Replaying an already consumed message id is a no-op. A record that fails
in any phase is logged and skipped; the rest of the batch still runs.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import replace
from functools import partial
from typing import Any, Callable, Literal, TypeVar

from pydantic import ValidationError

from .normalized import (
    NormalizedAgentMessage,
    NormalizedEventMessage,
    NormalizedMessage,
    NormalizedUserMessage,
    SidechainContent,
    TextContent,
    ToolCallContent,
    ToolResultContent,
)
from .normalizer import now_ms
from .payloads import (
    AgentState,
    CompletedPermission,
    PermissionRequest,
    TokenUsagePayload,
)
from .projection import project_message
from .store import (
    PermissionDetail,
    ReducerMessage,
    ReducerStore,
    TodoSnapshot,
    UsageSnapshot,
)
from .types import ReducerResult, ToolCall, ToolPermission, Usage

logger = logging.getLogger(__name__)

CONTEXT_RESET_MESSAGE = "Context was reset"
COMPACTION_COMPLETED_MESSAGE = "Compaction completed"
TODO_TOOL_NAME = "TodoWrite"

# Ordered set of touched internal ids
_Changed = dict[str, None]

_Entry = TypeVar("_Entry", PermissionRequest, CompletedPermission)


def reduce(
    store: ReducerStore,
    messages: list[NormalizedMessage],
    agent_state: AgentState | dict[str, Any] | None = None,
) -> ReducerResult:
    """
    Fold a batch of normalized messages into the store.

    Args:
        store: Session store, mutated in place
        messages: Normalized messages, in delivery order
        agent_state: Optional permission side-channel (requests / completedRequests)

    Returns:
        ReducerResult with every message touched by this call and the
        store's current todos / usage snapshots.
    """
    changed: _Changed = {}

    top_level = [m for m in messages if not m.is_sidechain]
    sidechain = [m for m in messages if m.is_sidechain]

    state = _coerce_agent_state(agent_state)
    if state is not None:
        _sync_permissions(store, state, changed)

    pending, has_ready_event = _filter_consumed(store, top_level)

    # Agent messages consumed in this call; tool phases only look at these
    accepted: list[NormalizedAgentMessage] = []

    for msg in pending:
        _guarded("text", msg.id, partial(_process_text, store, changed, accepted, msg))
    for msg in accepted:
        _guarded("tool-call", msg.id, partial(_process_tool_calls, store, changed, msg))
    for msg in accepted:
        _guarded("tool-result", msg.id, partial(_process_tool_results, store, changed, msg))
    for msg in sidechain:
        _guarded("sidechain", msg.id, partial(_process_sidechain, store, changed, msg))
    for msg in pending:
        _guarded("event", msg.id, partial(_process_event, store, changed, msg))

    result = ReducerResult(has_ready_event=has_ready_event)
    for message_id in changed:
        record = store.messages.get(message_id)
        if record is None:
            continue
        message = project_message(record, store)
        if message is not None:
            result.messages.append(message)

    if store.latest_todos is not None:
        result.todos = copy.deepcopy(store.latest_todos.todos)
    if store.latest_usage is not None:
        result.usage = store.latest_usage.usage

    logger.debug(
        f"Reduced {len(messages)} messages into {len(result.messages)} changes"
    )
    return result


def _guarded(phase: str, key: str, handler: Callable[[], None]) -> None:
    try:
        handler()
    except Exception as e:
        logger.error(f"Reducer {phase} phase failed for {key}: {e}", exc_info=True)


def _ms(value: int | float | None) -> int | None:
    return int(value) if value is not None else None


# --- Phase 1: permissions ---


def _coerce_agent_state(
    agent_state: AgentState | dict[str, Any] | None,
) -> AgentState | None:
    if agent_state is None or isinstance(agent_state, AgentState):
        return agent_state
    try:
        return AgentState.model_validate(agent_state)
    except ValidationError as e:
        logger.warning(f"Ignoring malformed agent state: {e}")
        return None


def _validate_entries(
    model: type[_Entry],
    entries: dict[str, Any],
    label: str,
) -> dict[str, _Entry]:
    """Validate side-channel entries one by one, dropping malformed ones."""
    valid: dict[str, _Entry] = {}
    for permission_id, raw in entries.items():
        try:
            valid[permission_id] = model.model_validate(raw)
        except ValidationError as e:
            logger.warning(f"Ignoring malformed {label} {permission_id}: {e}")
    return valid


def _sync_permissions(store: ReducerStore, state: AgentState, changed: _Changed) -> None:
    requests = _validate_entries(PermissionRequest, state.requests, "permission request")
    completed_requests = _validate_entries(
        CompletedPermission, state.completed_requests, "completed permission"
    )

    for permission_id, request in requests.items():
        if permission_id in completed_requests:
            continue
        _guarded(
            "permission",
            permission_id,
            partial(_apply_pending_permission, store, changed, permission_id, request),
        )

    for permission_id, completed in completed_requests.items():
        _guarded(
            "permission",
            permission_id,
            partial(_apply_completed_permission, store, changed, permission_id, completed),
        )


def _apply_pending_permission(
    store: ReducerStore,
    changed: _Changed,
    permission_id: str,
    request: PermissionRequest,
) -> None:
    created_at = _ms(request.created_at) or now_ms()
    detail = PermissionDetail(
        status="pending",
        tool=request.tool,
        arguments=request.arguments,
        created_at=created_at,
    )

    message_id = store.tool_id_to_message_id.get(permission_id)
    if message_id is not None:
        store.permissions.setdefault(permission_id, detail)
        record = store.messages.get(message_id)
        if record is not None and record.tool is not None and record.tool.permission is None:
            record.tool = replace(
                record.tool,
                permission=ToolPermission(id=permission_id, status="pending"),
            )
            changed[message_id] = None
        return

    # The request can precede the tool call; show a placeholder until it lands
    tool = ToolCall(
        id=permission_id,
        name=request.tool or "unknown",
        state="running",
        input=request.arguments,
        created_at=created_at,
        permission=ToolPermission(id=permission_id, status="pending"),
    )
    record = store.add(
        ReducerMessage(
            id=store.allocate_id(),
            real_id=None,
            created_at=created_at,
            role="agent",
            tool=tool,
        )
    )
    store.tool_id_to_message_id[permission_id] = record.id
    store.permissions[permission_id] = detail
    changed[record.id] = None


def _apply_completed_permission(
    store: ReducerStore,
    changed: _Changed,
    permission_id: str,
    completed: CompletedPermission,
) -> None:
    previous = store.permissions.get(permission_id)
    completed_at = _ms(completed.completed_at)

    store.permissions[permission_id] = PermissionDetail(
        status=completed.status,
        tool=completed.tool or (previous.tool if previous else None),
        arguments=(
            completed.arguments
            if completed.arguments is not None
            else (previous.arguments if previous else None)
        ),
        created_at=_ms(completed.created_at) or (previous.created_at if previous else None),
        completed_at=completed_at,
        reason=completed.reason,
        mode=completed.mode,
        decision=completed.decision,
        allowed_tools=completed.allowed_tools,
    )

    message_id = store.tool_id_to_message_id.get(permission_id)
    if message_id is None:
        # Tool call not seen yet; it is seeded from the detail when it arrives
        return
    record = store.messages.get(message_id)
    if record is None or record.tool is None:
        return

    tool = record.tool
    fields = {
        "status": completed.status,
        "reason": completed.reason,
        "mode": completed.mode,
        "decision": completed.decision,
        "allowed_tools": completed.allowed_tools,
    }
    permission = (
        replace(tool.permission, **fields)
        if tool.permission is not None
        else ToolPermission(id=permission_id, **fields)
    )

    if completed.status == "approved":
        updated = replace(tool, permission=permission)
        if updated.state not in ("completed", "error"):
            updated = replace(updated, state="running")
    else:
        updated = replace(
            tool,
            permission=permission,
            state="error",
            completed_at=completed_at or tool.completed_at or now_ms(),
            result={"error": completed.reason} if completed.reason else tool.result,
        )

    if updated != tool:
        record.tool = updated
        changed[message_id] = None


# --- Phase 2: filtering ---


def _filter_consumed(
    store: ReducerStore,
    messages: list[NormalizedMessage],
) -> tuple[list[NormalizedMessage], bool]:
    """Drop consumed messages and ready events, apply reset markers."""
    pending: list[NormalizedMessage] = []
    has_ready_event = False

    for msg in messages:
        if (
            isinstance(msg, NormalizedUserMessage)
            and msg.local_id
            and msg.local_id in store.local_ids
        ):
            continue
        if store.is_consumed(msg.id):
            continue

        if isinstance(msg, NormalizedEventMessage) and isinstance(msg.content, dict):
            event_type = msg.content.get("type")
            if event_type == "ready":
                store.message_ids[msg.id] = msg.id
                has_ready_event = True
                continue

            if event_type == "message":
                marker = msg.content.get("message")
                # Markers still produce a visible event in phase 7
                if marker == CONTEXT_RESET_MESSAGE:
                    store.latest_todos = TodoSnapshot(todos=[], timestamp=msg.created_at)
                    store.latest_usage = UsageSnapshot(usage=Usage(), timestamp=msg.created_at)
                elif marker == COMPACTION_COMPLETED_MESSAGE:
                    store.latest_usage = UsageSnapshot(usage=Usage(), timestamp=msg.created_at)

        pending.append(msg)

    return pending, has_ready_event


# --- Phase 3: text ---


def _process_text(
    store: ReducerStore,
    changed: _Changed,
    accepted: list[NormalizedAgentMessage],
    msg: NormalizedMessage,
) -> None:
    if isinstance(msg, NormalizedUserMessage):
        if msg.local_id and msg.local_id in store.local_ids:
            return
        if store.is_consumed(msg.id):
            return

        record = store.add(
            ReducerMessage(
                id=store.allocate_id(),
                real_id=msg.id,
                created_at=msg.created_at,
                role="user",
                text=msg.content.text,
                meta=msg.meta,
            )
        )
        if msg.local_id:
            store.local_ids[msg.local_id] = record.id
        store.message_ids[msg.id] = record.id
        changed[record.id] = None
        return

    if not isinstance(msg, NormalizedAgentMessage) or store.is_consumed(msg.id):
        return

    store.message_ids[msg.id] = msg.id
    accepted.append(msg)

    if msg.usage:
        _fold_usage(store, msg.usage, msg.created_at)

    for item in msg.content:
        if isinstance(item, TextContent):
            record = store.add(
                ReducerMessage(
                    id=store.allocate_id(),
                    real_id=msg.id,
                    created_at=msg.created_at,
                    role="agent",
                    text=item.text,
                    meta=msg.meta,
                )
            )
            changed[record.id] = None


def _fold_usage(store: ReducerStore, raw: dict[str, Any], timestamp: int) -> None:
    """Latest timestamp wins; stale usage never overwrites newer usage."""
    try:
        payload = TokenUsagePayload.model_validate(raw)
    except ValidationError as e:
        logger.warning(f"Ignoring malformed usage payload: {e}")
        return

    if store.latest_usage is not None and timestamp <= store.latest_usage.timestamp:
        return

    input_tokens = payload.input_tokens or 0
    cache_creation = payload.cache_creation_input_tokens or 0
    cache_read = payload.cache_read_input_tokens or 0
    store.latest_usage = UsageSnapshot(
        usage=Usage(
            input_tokens=input_tokens,
            output_tokens=payload.output_tokens or 0,
            cache_creation=cache_creation,
            cache_read=cache_read,
            # Cached prefix counts toward the context window
            context_size=cache_creation + cache_read + input_tokens,
        ),
        timestamp=timestamp,
    )


# --- Phase 4: tool calls ---


def _process_tool_calls(
    store: ReducerStore,
    changed: _Changed,
    msg: NormalizedAgentMessage,
) -> None:
    for item in msg.content:
        if not isinstance(item, ToolCallContent):
            continue

        existing_id = store.tool_id_to_message_id.get(item.id)
        if existing_id is not None:
            record = store.messages.get(existing_id)
            if record is None or record.tool is None:
                continue

            tool = replace(
                record.tool,
                description=item.description,
                started_at=msg.created_at,
            )
            if (
                tool.state == "completed"
                and tool.permission is not None
                and tool.permission.status == "approved"
            ):
                # Renewed invocation: wait for this invocation's own result
                tool = replace(tool, state="running", completed_at=None, result=None)

            record.real_id = msg.id
            record.tool = tool
            changed[existing_id] = None
            _track_todos(store, tool)
            continue

        tool = _new_tool_call(item, msg.created_at, store.permissions.get(item.id))
        record = store.add(
            ReducerMessage(
                id=store.allocate_id(),
                real_id=msg.id,
                created_at=msg.created_at,
                role="agent",
                tool=tool,
                meta=msg.meta,
            )
        )
        store.tool_id_to_message_id[item.id] = record.id
        changed[record.id] = None
        _track_todos(store, tool)


def _new_tool_call(
    item: ToolCallContent,
    created_at: int,
    permission: PermissionDetail | None,
) -> ToolCall:
    """Create a tool call, seeded from a permission that arrived first."""
    tool = ToolCall(
        id=item.id,
        name=item.name,
        state="running",
        input=(
            permission.arguments
            if permission is not None and permission.arguments is not None
            else item.input
        ),
        created_at=(
            permission.created_at
            if permission is not None and permission.created_at is not None
            else created_at
        ),
        started_at=created_at,
        description=item.description,
    )
    if permission is None:
        return tool

    tool = replace(
        tool,
        permission=ToolPermission(
            id=item.id,
            status=permission.status,
            reason=permission.reason,
            mode=permission.mode,
            allowed_tools=permission.allowed_tools,
            decision=permission.decision,
        ),
    )
    if permission.status in ("approved", "pending"):
        return tool

    return replace(
        tool,
        state="error",
        completed_at=permission.completed_at or created_at,
        result={"error": permission.reason} if permission.reason else None,
    )


def _track_todos(store: ReducerStore, tool: ToolCall) -> None:
    if tool.name != TODO_TOOL_NAME or not isinstance(tool.input, dict):
        return
    todos = tool.input.get("todos")
    if not todos:
        return
    if store.latest_todos is None or tool.created_at > store.latest_todos.timestamp:
        store.latest_todos = TodoSnapshot(todos=todos, timestamp=tool.created_at)


# --- Phase 5: tool results ---


def _process_tool_results(
    store: ReducerStore,
    changed: _Changed,
    msg: NormalizedAgentMessage,
) -> None:
    for item in msg.content:
        if not isinstance(item, ToolResultContent):
            continue

        message_id = store.tool_id_to_message_id.get(item.tool_use_id)
        if message_id is None:
            logger.debug(f"tool-result for unknown tool {item.tool_use_id}, ignoring")
            continue

        record = store.messages.get(message_id)
        if record is None or record.tool is None or record.tool.state != "running":
            # Duplicate or late result, or a tool already failed by permission
            continue

        record.tool = _complete_tool(record.tool, item, msg.created_at)
        changed[message_id] = None


def _complete_tool(tool: ToolCall, item: ToolResultContent, completed_at: int) -> ToolCall:
    permission = tool.permission
    if item.permissions is not None:
        fields = {
            "status": "approved" if item.permissions.result == "approved" else "denied",
            "date": item.permissions.date,
            "mode": item.permissions.mode,
            "decision": item.permissions.decision,
            "allowed_tools": item.permissions.allowed_tools,
        }
        permission = (
            replace(permission, **fields)
            if permission is not None
            else ToolPermission(id=item.tool_use_id, **fields)
        )

    return replace(
        tool,
        state="error" if item.is_error else "completed",
        result=item.content,
        completed_at=completed_at,
        permission=permission,
    )


# --- Phase 6: sidechains ---


def _process_sidechain(
    store: ReducerStore,
    changed: _Changed,
    msg: NormalizedMessage,
) -> None:
    if not isinstance(msg, NormalizedAgentMessage) or store.is_consumed(msg.id):
        return
    store.message_ids[msg.id] = msg.id

    sidechain_id = _sidechain_id(msg)
    if sidechain_id is None:
        logger.debug(f"Sidechain message {msg.id} has no parent, dropping")
        return

    chain = store.sidechains.setdefault(sidechain_id, [])

    for item in msg.content:
        if isinstance(item, SidechainContent):
            chain.append(_child(store, msg, role="user", text=item.prompt))

        elif isinstance(item, TextContent):
            chain.append(_child(store, msg, role="agent", text=item.text))

        elif isinstance(item, ToolCallContent):
            if item.id in store.sidechain_tool_id_to_message_id:
                logger.debug(f"Sidechain tool {item.id} already recorded, ignoring")
                continue
            child = _child(
                store,
                msg,
                role="agent",
                tool=ToolCall(
                    id=item.id,
                    name=item.name,
                    state="running",
                    input=item.input,
                    created_at=msg.created_at,
                    description=item.description,
                ),
            )
            chain.append(child)
            store.sidechain_tool_id_to_message_id[item.id] = child.id

        elif isinstance(item, ToolResultContent):
            child_id = store.sidechain_tool_id_to_message_id.get(item.tool_use_id)
            record = store.messages.get(child_id) if child_id else None
            if record is not None and record.tool is not None and record.tool.state == "running":
                record.tool = _complete_tool(record.tool, item, msg.created_at)

    # Re-render the tool call that owns this sidechain
    members = {child.id for child in chain}
    for record in store.messages.values():
        if record.real_id == sidechain_id and record.tool is not None and record.id not in members:
            changed[record.id] = None
            break


def _sidechain_id(msg: NormalizedAgentMessage) -> str | None:
    for item in msg.content:
        if isinstance(item, SidechainContent):
            return item.uuid
        if item.parent_uuid:
            return item.parent_uuid
    return None


def _child(
    store: ReducerStore,
    msg: NormalizedAgentMessage,
    role: Literal["user", "agent"],
    text: str | None = None,
    tool: ToolCall | None = None,
) -> ReducerMessage:
    return store.add(
        ReducerMessage(
            id=store.allocate_id(),
            real_id=msg.id,
            created_at=msg.created_at,
            role=role,
            text=text,
            tool=tool,
        )
    )


# --- Phase 7: events ---


def _process_event(
    store: ReducerStore,
    changed: _Changed,
    msg: NormalizedMessage,
) -> None:
    if not isinstance(msg, NormalizedEventMessage) or store.is_consumed(msg.id):
        return

    record = store.add(
        ReducerMessage(
            id=store.allocate_id(),
            real_id=msg.id,
            created_at=msg.created_at,
            role="agent",
            event=msg.content,
            meta=msg.meta,
        )
    )
    store.message_ids[msg.id] = record.id
    changed[record.id] = None
