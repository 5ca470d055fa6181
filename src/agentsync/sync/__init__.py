"""
Streaming message reconciliation.

The main entry points are `normalize_messages()`, which turns raw transport
frames into normalized messages, and `reduce()`, which folds them into a
per-session store and reports what changed.

Example:
    from agentsync.sync import create_store, get_all_messages, normalize_messages, reduce

    store = create_store()
    result = reduce(store, normalize_messages(raw_frames))
    for message in result.messages:
        render(message)

    # Full history, sorted, sidechains nested under their tool calls
    messages = get_all_messages(store)
"""

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
from .normalizer import normalize_messages, normalize_raw_message
from .payloads import AgentState, CompletedPermission, PermissionRequest
from .projection import get_all_messages, project_message
from .reducer import reduce
from .store import ReducerMessage, ReducerStore, create_store, reset_store
from .types import (
    AgentEventMessage,
    AgentTextMessage,
    Message,
    ReducerResult,
    ToolCall,
    ToolCallMessage,
    ToolPermission,
    Usage,
    UserTextMessage,
)

__all__ = [
    # Normalizer
    "normalize_messages",
    "normalize_raw_message",
    "NormalizedMessage",
    "NormalizedUserMessage",
    "NormalizedAgentMessage",
    "NormalizedEventMessage",
    "NormalizedContent",
    "UserContent",
    "TextContent",
    "ToolCallContent",
    "ToolResultContent",
    "ToolResultPermissions",
    "SidechainContent",
    "SummaryContent",
    # Side-channel
    "AgentState",
    "PermissionRequest",
    "CompletedPermission",
    # Reducer
    "reduce",
    "create_store",
    "reset_store",
    "ReducerStore",
    "ReducerMessage",
    # Projection
    "project_message",
    "get_all_messages",
    # Messages
    "Message",
    "UserTextMessage",
    "AgentTextMessage",
    "ToolCallMessage",
    "AgentEventMessage",
    "ToolCall",
    "ToolPermission",
    "Usage",
    "ReducerResult",
]
