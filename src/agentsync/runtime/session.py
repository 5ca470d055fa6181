"""
SyncSession - single-owner actor for a session's reducer store.

The store is not safe for concurrent mutation. SyncSession owns it from
one asyncio task and serializes every command through one ordered queue:

    submit(frame)            → live delivery (batch of one)
    submit_history(frames)   → history replay (one batch)
    submit_agent_state(s)    → permission side-channel
    reset()                  → clear conversation

Each processed command hands its ReducerResult to the on_result callback
in submission order.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, replace
from typing import Any, Awaitable, Callable, Literal

from agentsync.config import SyncConfig
from agentsync.sync import (
    AgentState,
    Message,
    ReducerResult,
    create_store,
    get_all_messages,
    normalize_messages,
    reduce,
    reset_store,
)

logger = logging.getLogger(__name__)

ResultHandler = Callable[["SyncSession", ReducerResult], Awaitable[None]]

CommandKind = Literal["live", "history", "agent_state", "reset"]


@dataclass
class _Command:
    kind: CommandKind
    payload: Any = None


class SyncSession:
    """
    Example:
        async def on_result(session: SyncSession, result: ReducerResult):
            for message in result.messages:
                await ui.render(message)

        session = SyncSession("session-1", on_result)
        await session.start()
        session.submit(frame)
        await session.join()
        await session.stop()
    """

    def __init__(
        self,
        session_id: str,
        on_result: ResultHandler,
        config: SyncConfig | None = None,
    ):
        self.session_id = session_id
        self.config = config or SyncConfig()
        self.store = create_store()
        self.queue: asyncio.Queue[_Command] = asyncio.Queue()
        self.state: Literal["starting", "idle", "processing"] = "starting"
        self._on_result = on_result
        self._process_loop_task: asyncio.Task[None] | None = None

    @property
    def is_running(self) -> bool:
        return (
            self._process_loop_task is not None and not self._process_loop_task.done()
        )

    @property
    def is_processing(self) -> bool:
        return self.state == "processing"

    async def start(self) -> None:
        """Start the task that owns the store."""
        if self.is_running:
            logger.warning(f"SyncSession {self.session_id} already running")
            return

        logger.info(f"Starting SyncSession: {self.session_id}")
        self.state = "idle"
        self._process_loop_task = asyncio.create_task(
            self._process_loop(),
            name=f"sync-{self.session_id}",
        )

    async def stop(self) -> None:
        """Stop processing instantly via asyncio cancellation."""
        if self._process_loop_task is None:
            return

        logger.info(f"Stopping SyncSession: {self.session_id}")
        self._process_loop_task.cancel()
        try:
            await self._process_loop_task
        except asyncio.CancelledError:
            pass
        self._process_loop_task = None
        self.state = "starting"

    def submit(self, raw: dict[str, Any]) -> None:
        self.queue.put_nowait(_Command("live", raw))

    def submit_history(self, raw_messages: list[dict[str, Any]]) -> None:
        self.queue.put_nowait(_Command("history", list(raw_messages)))

    def submit_agent_state(self, agent_state: AgentState | dict[str, Any]) -> None:
        self.queue.put_nowait(_Command("agent_state", agent_state))

    def reset(self) -> None:
        """Queue a conversation reset behind everything already submitted."""
        self.queue.put_nowait(_Command("reset"))

    async def join(self) -> None:
        """Wait until every submitted command has been processed."""
        await self.queue.join()

    def get_all_messages(self) -> list[Message]:
        return get_all_messages(self.store)

    async def _process_loop(self) -> None:
        logger.debug(f"SyncSession {self.session_id} loop started")
        while True:
            command = await self.queue.get()
            try:
                await self._process_command(command)
            finally:
                self.queue.task_done()

    async def _process_command(self, command: _Command) -> None:
        self.state = "processing"
        try:
            result = self._apply(command)
            if result is not None:
                await self._on_result(self, result)
        except Exception as e:
            logger.error(
                f"Error processing {command.kind} command in session {self.session_id}: {e}",
                exc_info=True,
            )
        finally:
            self.state = "idle"

    def _apply(self, command: _Command) -> ReducerResult | None:
        """Run one command against the store. Synchronous, never suspends."""
        if command.kind == "reset":
            reset_store(self.store)
            logger.info(f"SyncSession {self.session_id} reset")
            return None

        if command.kind == "agent_state":
            return reduce(self.store, [], command.payload)

        if command.kind == "live":
            normalized = normalize_messages(
                [command.payload],
                skip_optimistic_user_messages=self.config.skip_optimistic_user_messages,
            )
            if not normalized:
                return None
            return reduce(self.store, normalized)

        normalized = normalize_messages(command.payload)
        result = reduce(self.store, normalized)
        # History consumers redraw everything
        return replace(result, messages=get_all_messages(self.store))
