"""
MessageHandler - wires normalizer, reducer and renderer for one session.

Live frames and history batches both go through the same store. Live
frames skip optimistic user messages (the renderer already shows them),
history batches never do.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Literal

from agentsync.config import SyncConfig
from agentsync.sync import (
    AgentState,
    Message,
    ReducerResult,
    Usage,
    create_store,
    get_all_messages,
    normalize_messages,
    reduce,
    reset_store,
)

logger = logging.getLogger(__name__)

AgentStatus = Literal["idle", "processing", "ready"]

MessageCallback = Callable[[Message], None]
UsageCallback = Callable[[Usage], None]
StatusCallback = Callable[[AgentStatus], None]


class MessageHandler:
    """
    Per-session message pipeline.

    Example:
        handler = MessageHandler(on_message=panel.render_message)
        handler.handle_history(history_frames)
        handler.handle_message(frame)   # for each live frame
        handler.clear()                 # on "clear conversation"
    """

    def __init__(
        self,
        on_message: MessageCallback | None = None,
        on_usage: UsageCallback | None = None,
        on_status: StatusCallback | None = None,
        config: SyncConfig | None = None,
    ):
        """
        Args:
            on_message: Receives every new or changed message
            on_usage: Receives the usage snapshot after each batch
            on_status: Receives agent status transitions
            config: Optional sync configuration
        """
        self.config = config or SyncConfig()
        self.store = create_store()
        self.status: AgentStatus = "idle"
        self._on_message = on_message
        self._on_usage = on_usage
        self._on_status = on_status

    def handle_message(self, raw: dict[str, Any]) -> ReducerResult | None:
        """
        Process one live frame.

        Returns:
            The reducer result, or None if the frame normalized to nothing.
        """
        normalized = normalize_messages(
            [raw],
            skip_optimistic_user_messages=self.config.skip_optimistic_user_messages,
        )
        if not normalized:
            logger.debug("Live frame normalized to nothing, skipping")
            return None

        result = reduce(self.store, normalized)
        if result.messages:
            logger.debug(f"Reducer produced {len(result.messages)} messages")
        for message in result.messages:
            self._dispatch(message)

        if result.has_ready_event:
            self.set_status("ready")
        self._report_usage(result)
        return result

    def handle_history(self, raw_messages: list[dict[str, Any]]) -> list[Message]:
        """
        Process a history batch and dispatch the full, ordered history.

        Returns:
            All root messages after the batch.
        """
        logger.info(f"Processing {len(raw_messages)} history messages")

        normalized = normalize_messages(raw_messages)
        if not normalized:
            logger.debug("No messages after normalization")
            return get_all_messages(self.store)

        result = reduce(self.store, normalized)
        messages = get_all_messages(self.store)
        logger.info(f"Total {len(messages)} messages after history load")

        for message in messages:
            self._dispatch(message)
        self._report_usage(result)
        return messages

    def apply_agent_state(self, agent_state: AgentState | dict[str, Any]) -> ReducerResult:
        """Apply a permission side-channel update on its own."""
        result = reduce(self.store, [], agent_state)
        for message in result.messages:
            self._dispatch(message)
        return result

    def set_status(self, status: AgentStatus) -> None:
        if status == self.status:
            return
        logger.debug(f"Agent status {self.status} -> {status}")
        self.status = status
        if self._on_status:
            try:
                self._on_status(status)
            except Exception as e:
                logger.error(f"Status callback failed: {e}", exc_info=True)

    def clear(self) -> None:
        """Clear the conversation: reset the store and go back to idle."""
        reset_store(self.store)
        self.set_status("idle")
        logger.info("Conversation cleared")

    def get_all_messages(self) -> list[Message]:
        return get_all_messages(self.store)

    def _dispatch(self, message: Message) -> None:
        if not self._on_message:
            return
        try:
            self._on_message(message)
        except Exception as e:
            # A renderer failure must not stop the remaining messages
            logger.error(f"Failed to dispatch message {message.id}: {e}", exc_info=True)

    def _report_usage(self, result: ReducerResult) -> None:
        if result.usage is None or not self._on_usage:
            return
        try:
            self._on_usage(result.usage)
        except Exception as e:
            logger.error(f"Usage callback failed: {e}", exc_info=True)
