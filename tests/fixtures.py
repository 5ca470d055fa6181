"""Raw transport frame factories for unit tests.

This module provides factory functions to create raw frames in the shapes
the agent backend actually sends: plain user text, the "output" envelope
(assistant turns, tool results, sidechain prompts), the "event" envelope
and codex-style frames.

Timestamps are epoch milliseconds and default to a fixed base so tests
can reason about ordering.
"""

import uuid
from typing import Any, Dict, List, Optional

BASE_TIME = 1_700_000_000_000


def make_uuid() -> str:
    """Generate a random UUID string."""
    return str(uuid.uuid4())


class FrameFactory:
    """Factory for creating raw transport frames."""

    @staticmethod
    def user_text(
        text: str,
        id: Optional[str] = None,
        local_id: Optional[str] = None,
        created_at: int = BASE_TIME,
        meta: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """A user turn as echoed by the server."""
        frame: Dict[str, Any] = {
            "role": "user",
            "id": id or make_uuid(),
            "createdAt": created_at,
            "content": {"type": "text", "text": text},
        }
        if local_id:
            frame["localId"] = local_id
        if meta is not None:
            frame["meta"] = meta
        return frame

    @staticmethod
    def optimistic_user(
        text: str,
        local_id: Optional[str] = None,
        timestamp: int = BASE_TIME,
    ) -> Dict[str, Any]:
        """A user message rendered locally before the server assigned an id."""
        frame: Dict[str, Any] = {"role": "user", "text": text, "timestamp": timestamp}
        if local_id:
            frame["localId"] = local_id
        return frame

    @staticmethod
    def assistant(
        blocks: List[Dict[str, Any]],
        id: Optional[str] = None,
        created_at: int = BASE_TIME,
        uuid: Optional[str] = None,
        parent_uuid: Optional[str] = None,
        is_sidechain: bool = False,
        usage: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """An assistant turn inside the output envelope."""
        message: Dict[str, Any] = {"role": "assistant", "content": blocks}
        if usage is not None:
            message["usage"] = usage
        data: Dict[str, Any] = {
            "type": "assistant",
            "message": message,
            "isSidechain": is_sidechain,
        }
        if uuid:
            data["uuid"] = uuid
        if parent_uuid:
            data["parentUuid"] = parent_uuid
        return {
            "role": "agent",
            "id": id or make_uuid(),
            "createdAt": created_at,
            "content": {"type": "output", "data": data},
        }

    @staticmethod
    def text_block(text: str) -> Dict[str, Any]:
        return {"type": "text", "text": text}

    @staticmethod
    def tool_use(
        tool_id: str,
        name: str = "Bash",
        input: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        return {"type": "tool_use", "id": tool_id, "name": name, "input": input or {}}

    @staticmethod
    def tool_result(
        tool_id: str,
        content: Any = "ok",
        is_error: bool = False,
        id: Optional[str] = None,
        created_at: int = BASE_TIME,
        permissions: Optional[Dict[str, Any]] = None,
        tool_use_result: Any = None,
        uuid: Optional[str] = None,
        parent_uuid: Optional[str] = None,
        is_sidechain: bool = False,
    ) -> Dict[str, Any]:
        """A tool result, delivered as a user record inside the output envelope."""
        block: Dict[str, Any] = {
            "type": "tool_result",
            "tool_use_id": tool_id,
            "content": content,
            "is_error": is_error,
        }
        if permissions is not None:
            block["permissions"] = permissions
        data: Dict[str, Any] = {
            "type": "user",
            "message": {"role": "user", "content": [block]},
            "isSidechain": is_sidechain,
        }
        if tool_use_result is not None:
            data["toolUseResult"] = tool_use_result
        if uuid:
            data["uuid"] = uuid
        if parent_uuid:
            data["parentUuid"] = parent_uuid
        return {
            "role": "agent",
            "id": id or make_uuid(),
            "createdAt": created_at,
            "content": {"type": "output", "data": data},
        }

    @staticmethod
    def sidechain_prompt(
        prompt: str,
        uuid: str,
        id: Optional[str] = None,
        created_at: int = BASE_TIME,
    ) -> Dict[str, Any]:
        """The prompt that opens a sub-agent conversation."""
        return {
            "role": "agent",
            "id": id or make_uuid(),
            "createdAt": created_at,
            "content": {
                "type": "output",
                "data": {
                    "type": "user",
                    "uuid": uuid,
                    "isSidechain": True,
                    "message": {"role": "user", "content": prompt},
                },
            },
        }

    @staticmethod
    def event(
        data: Any,
        id: Optional[str] = None,
        created_at: int = BASE_TIME,
    ) -> Dict[str, Any]:
        """An agent event inside the event envelope."""
        return {
            "role": "agent",
            "id": id or make_uuid(),
            "createdAt": created_at,
            "content": {"type": "event", "data": data},
        }

    @staticmethod
    def codex(
        data: Dict[str, Any],
        id: Optional[str] = None,
        created_at: int = BASE_TIME,
    ) -> Dict[str, Any]:
        """A codex-style frame."""
        return {
            "role": "agent",
            "id": id or make_uuid(),
            "createdAt": created_at,
            "content": {"type": "codex", "data": data},
        }


frames = FrameFactory()
