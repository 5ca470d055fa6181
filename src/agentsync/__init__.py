"""
agentsync - Streaming message reconciliation for AI coding agent clients.

Sync Layer:
    normalize_messages: Raw transport frames → normalized messages
    reduce: Fold normalized messages into a per-session store
    get_all_messages: Ordered root messages, sidechains nested in tool calls

Runtime Layer:
    MessageHandler: Per-session pipeline with renderer callbacks
    SyncSession: Asyncio actor that owns a store and serializes reduce calls

Configuration:
    SyncConfig: Sync settings
    load_sync_config: Load settings from agentsync.yaml

Example:
    from agentsync import MessageHandler

    handler = MessageHandler(on_message=print)
    handler.handle_history(history)
    handler.handle_message({"role": "user", "id": "m1", "content": "hi"})
"""

# Sync layer
from .sync import (
    AgentState,
    Message,
    ReducerResult,
    ReducerStore,
    create_store,
    get_all_messages,
    normalize_messages,
    normalize_raw_message,
    reduce,
    reset_store,
)

# Runtime layer
from .runtime import MessageHandler, SyncSession

# Configuration
from .config import SyncConfig, load_sync_config

__all__ = [
    # Sync
    "normalize_messages",
    "normalize_raw_message",
    "reduce",
    "create_store",
    "reset_store",
    "get_all_messages",
    "ReducerStore",
    "ReducerResult",
    "AgentState",
    "Message",
    # Runtime
    "MessageHandler",
    "SyncSession",
    # Configuration
    "SyncConfig",
    "load_sync_config",
]

__version__ = "0.0.1"
