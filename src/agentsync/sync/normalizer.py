"""
Transport normalizer - converts raw transport events to normalized messages.

This is the single source of truth for:
- Recognizing the transport envelopes (plain user text, output, event, codex)
- Splitting assistant turns into text / tool-call items
- Extracting tool results, sidechain prompts and embedded permissions
- Assigning stable ids to optimistic user messages

Normalization never raises. Anything it cannot represent is logged and
dropped (None), so one malformed frame never takes down a batch.
"""

from __future__ import annotations

import hashlib
import itertools
import logging
import time
from datetime import datetime, timezone
from typing import Any

from .normalized import (
    NormalizedAgentMessage,
    NormalizedContent,
    NormalizedEventMessage,
    NormalizedMessage,
    NormalizedUserMessage,
    SidechainContent,
    SummaryContent,
    TextContent,
    ToolCallContent,
    ToolResultContent,
    ToolResultPermissions,
    UserContent,
)

logger = logging.getLogger(__name__)

# Content envelopes that arrive under the user role but carry agent data
_AGENT_ENVELOPES = frozenset({"output", "codex", "event"})

_fallback_counter = itertools.count(1)


def now_ms() -> int:
    """Current time in epoch milliseconds."""
    return int(time.time() * 1000)


def fallback_id(prefix: str) -> str:
    """Generate a unique id for frames that arrive without one."""
    return f"{prefix}-{now_ms()}-{next(_fallback_counter)}"


def normalize_raw_message(
    id: str,
    local_id: str | None,
    created_at: int,
    raw: dict[str, Any] | None,
) -> NormalizedMessage | None:
    """
    Normalize one raw transport message.

    Args:
        id: Source message id
        local_id: Client-assigned id for optimistic messages
        created_at: Creation time in epoch milliseconds
        raw: Dict with role, content and optionally meta / text

    Returns:
        The normalized message, or None if the frame is not representable.
    """
    try:
        return _normalize(id, local_id, created_at, raw)
    except Exception as e:
        logger.warning(f"Failed to normalize message {id}: {e}", exc_info=True)
        return None


def normalize_messages(
    raw_messages: list[dict[str, Any]],
    skip_optimistic_user_messages: bool = False,
) -> list[NormalizedMessage]:
    """
    Normalize a batch of raw transport messages.

    Args:
        raw_messages: Raw frames as delivered by the transport or history API.
        skip_optimistic_user_messages: Drop user frames that have no
            server-assigned identity. Used for live delivery, where the
            optimistic copy is already on screen; history replay keeps them.

    Returns:
        Normalized messages in input order, unrepresentable frames removed.

    Example:
        >>> batch = [{"role": "user", "id": "m1", "content": "hi", "createdAt": 1}]
        >>> [m.role for m in normalize_messages(batch)]
        ['user']
    """
    results: list[NormalizedMessage] = []

    for raw in raw_messages:
        if not isinstance(raw, dict):
            logger.debug(f"Skipping non-dict frame: {type(raw).__name__}")
            continue

        role = raw.get("role")
        if (
            skip_optimistic_user_messages
            and role == "user"
            and not raw.get("messageId")
            and not raw.get("id")
            and not raw.get("content")
        ):
            text = raw.get("text")
            preview = text[:50] if isinstance(text, str) else ""
            logger.debug(f"Skipping optimistic user message: {preview}")
            continue

        normalized = normalize_raw_message(
            _resolve_message_id(raw),
            raw.get("localId"),
            _resolve_created_at(raw),
            {
                "role": "agent" if role == "assistant" else role,
                "content": raw.get("content"),
                "meta": raw.get("meta"),
                "text": raw.get("text"),
            },
        )
        if normalized is not None:
            results.append(normalized)

    return results


def _resolve_message_id(raw: dict[str, Any]) -> str:
    """Source id, or a stable id for optimistic user messages."""
    message_id = raw.get("messageId") or raw.get("id")
    if message_id:
        return str(message_id)

    text = raw.get("text")
    if raw.get("role") == "user" and isinstance(text, str) and text:
        # Same text + timestamp always hashes to the same id, so the server
        # echo of an optimistic message dedups by id instead of by content.
        stamp = raw.get("timestamp") or raw.get("createdAt") or ""
        digest = hashlib.sha1(f"{stamp}\x00{text}".encode("utf-8")).hexdigest()
        return f"user-{digest[:16]}"

    return fallback_id("msg")


def _resolve_created_at(raw: dict[str, Any]) -> int:
    """Creation time in epoch ms from createdAt or timestamp."""
    for key in ("createdAt", "timestamp"):
        value = raw.get(key)
        if value is None or value == "":
            continue
        parsed = parse_time(value)
        if parsed is not None:
            return parsed
        logger.debug(f"Unparseable {key} {value!r}, using current time")
        break
    return now_ms()


def parse_time(value: Any) -> int | None:
    """Epoch ms from a number or an ISO-8601 string (naive means UTC)."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value)
    if isinstance(value, str):
        try:
            dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return int(dt.timestamp() * 1000)
    return None


def _normalize(
    id: str,
    local_id: str | None,
    created_at: int,
    raw: dict[str, Any] | None,
) -> NormalizedMessage | None:
    if not isinstance(raw, dict) or not raw.get("role"):
        return None

    role = raw["role"]
    content = raw.get("content")
    meta = raw.get("meta")

    if role == "user":
        if isinstance(content, dict) and content.get("type") in _AGENT_ENVELOPES:
            # Transport overloads the user role for bootstrap/event payloads
            role = "agent"
        else:
            return _normalize_user_text(id, local_id, created_at, raw)

    if role == "agent":
        if not isinstance(content, dict):
            logger.debug(f"Agent message {id} has no content envelope")
            return None

        envelope = content.get("type")
        if envelope == "output":
            return _normalize_output(id, local_id, created_at, content.get("data"), meta)
        if envelope == "event":
            return NormalizedEventMessage(
                id=id, local_id=local_id, created_at=created_at, content=content.get("data")
            )
        if envelope == "codex":
            return _normalize_codex(id, local_id, created_at, content.get("data"), meta)

    if role == "event":
        return NormalizedEventMessage(
            id=id, local_id=local_id, created_at=created_at, content=content
        )

    logger.debug(
        f"Unknown message format: role={role}, "
        f"content_type={content.get('type') if isinstance(content, dict) else type(content).__name__}"
    )
    return None


def _normalize_user_text(
    id: str,
    local_id: str | None,
    created_at: int,
    raw: dict[str, Any],
) -> NormalizedUserMessage | None:
    content = raw.get("content")
    text: Any = ""

    if isinstance(content, str):
        text = content
    elif isinstance(content, dict) and content.get("type") == "text":
        text = content.get("text") or ""
    elif isinstance(content, dict) and content.get("text"):
        text = content["text"]
    elif isinstance(raw.get("text"), str):
        # Optimistic frames carry text instead of content
        text = raw["text"]

    # Empty frames are keep-alives, not user intent
    if not isinstance(text, str) or not text.strip():
        return None

    return NormalizedUserMessage(
        id=id,
        local_id=local_id,
        created_at=created_at,
        content=UserContent(text=text),
        meta=raw.get("meta"),
    )


def _normalize_output(
    id: str,
    local_id: str | None,
    created_at: int,
    data: Any,
    meta: dict[str, Any] | None,
) -> NormalizedMessage | None:
    """Unwrap the output envelope (assistant / user / summary records)."""
    if not isinstance(data, dict):
        return None

    # Meta and compaction records are bookkeeping, never shown
    if data.get("isMeta") or data.get("isCompactSummary"):
        return None

    data_type = data.get("type")

    if data_type == "summary":
        return NormalizedAgentMessage(
            id=id,
            local_id=local_id,
            created_at=created_at,
            content=[SummaryContent(summary=data.get("summary") or "")],
            meta=meta,
        )

    if data_type == "assistant":
        return _normalize_assistant(id, local_id, created_at, data, meta)

    if data_type == "user":
        return _normalize_output_user(id, local_id, created_at, data, meta)

    logger.debug(f"Unknown output record type {data_type!r} in message {id}")
    return None


def _normalize_assistant(
    id: str,
    local_id: str | None,
    created_at: int,
    data: dict[str, Any],
    meta: dict[str, Any] | None,
) -> NormalizedAgentMessage:
    uuid = data.get("uuid") or id or fallback_id("assistant")
    parent_uuid = data.get("parentUuid") or None
    message = data.get("message") if isinstance(data.get("message"), dict) else {}
    blocks = message.get("content") if isinstance(message.get("content"), list) else []

    content: list[NormalizedContent] = []
    for block in blocks:
        if not isinstance(block, dict):
            continue
        block_type = block.get("type")
        if block_type == "text":
            content.append(
                TextContent(text=block.get("text") or "", uuid=uuid, parent_uuid=parent_uuid)
            )
        elif block_type == "tool_use":
            tool_input = block.get("input")
            description = None
            if isinstance(tool_input, dict) and isinstance(tool_input.get("description"), str):
                description = tool_input["description"]
            content.append(
                ToolCallContent(
                    id=block.get("id") or fallback_id("tool"),
                    name=block.get("name") or "unknown",
                    input=tool_input,
                    description=description,
                    uuid=uuid,
                    parent_uuid=parent_uuid,
                )
            )

    usage = message.get("usage")
    return NormalizedAgentMessage(
        id=id,
        local_id=local_id,
        created_at=created_at,
        content=content,
        is_sidechain=bool(data.get("isSidechain")),
        usage=usage if isinstance(usage, dict) else None,
        meta=meta,
    )


def _normalize_output_user(
    id: str,
    local_id: str | None,
    created_at: int,
    data: dict[str, Any],
    meta: dict[str, Any] | None,
) -> NormalizedMessage | None:
    """User records inside output: sidechain prompts, relayed text, tool results."""
    uuid = data.get("uuid") or id
    parent_uuid = data.get("parentUuid") or None
    is_sidechain = bool(data.get("isSidechain"))
    message = data.get("message") if isinstance(data.get("message"), dict) else {}
    message_content = message.get("content")

    if isinstance(message_content, str):
        if is_sidechain:
            return NormalizedAgentMessage(
                id=id,
                local_id=local_id,
                created_at=created_at,
                content=[SidechainContent(uuid=uuid, prompt=message_content)],
                is_sidechain=True,
            )
        if not message_content.strip():
            return None
        return NormalizedUserMessage(
            id=id,
            local_id=local_id,
            created_at=created_at,
            content=UserContent(text=message_content),
        )

    content: list[NormalizedContent] = []
    if isinstance(message_content, list):
        for block in message_content:
            if not isinstance(block, dict) or block.get("type") != "tool_result":
                continue

            result = data.get("toolUseResult") or block.get("content")
            if isinstance(result, list):
                first = result[0] if result else None
                result = (first.get("text") if isinstance(first, dict) else None) or ""

            content.append(
                ToolResultContent(
                    tool_use_id=block.get("tool_use_id") or "",
                    content=result,
                    is_error=bool(block.get("is_error")),
                    uuid=uuid,
                    parent_uuid=parent_uuid,
                    permissions=_result_permissions(block.get("permissions")),
                )
            )

    if not content:
        return None

    return NormalizedAgentMessage(
        id=id,
        local_id=local_id,
        created_at=created_at,
        content=content,
        is_sidechain=is_sidechain,
        meta=meta,
    )


def _result_permissions(raw: Any) -> ToolResultPermissions | None:
    if not isinstance(raw, dict):
        return None
    return ToolResultPermissions(
        date=raw.get("date"),
        result=raw.get("result"),
        mode=raw.get("mode"),
        allowed_tools=raw.get("allowedTools"),
        decision=raw.get("decision"),
    )


def _normalize_codex(
    id: str,
    local_id: str | None,
    created_at: int,
    data: Any,
    meta: dict[str, Any] | None,
) -> NormalizedAgentMessage | None:
    """Codex-style frames: message / reasoning / tool-call / tool-call-result."""
    if not isinstance(data, dict):
        return None

    data_type = data.get("type")
    logger.debug(
        f"codex frame: type={data_type}, call_id={data.get('callId')}, id={data.get('id')}"
    )

    content: NormalizedContent
    if data_type in ("message", "reasoning"):
        content = TextContent(text=data.get("message") or "", uuid=id)

    elif data_type == "tool-call":
        content = ToolCallContent(
            id=data.get("callId")
            or data.get("id")
            or data.get("tool_call_id")
            or fallback_id("tool"),
            name=data.get("name") or "unknown",
            input=data.get("input") or data.get("arguments"),
            description=None,
            uuid=data.get("id") or id,
        )

    elif data_type == "tool-call-result":
        content = ToolResultContent(
            tool_use_id=data.get("callId")
            or data.get("tool_call_id")
            or data.get("id")
            or fallback_id("tool"),
            content=data.get("output") or data.get("result"),
            is_error=bool(data.get("error")),
            uuid=data.get("id") or id,
        )

    else:
        logger.debug(f"Unknown codex frame type {data_type!r} in message {id}")
        return None

    return NormalizedAgentMessage(
        id=id,
        local_id=local_id,
        created_at=created_at,
        content=[content],
        meta=meta,
    )
