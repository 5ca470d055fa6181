"""
Runtime layer for agentsync.

MessageHandler: synchronous per-session pipeline (normalize → reduce → dispatch)
SyncSession: asyncio actor serializing reduce calls for a session
Usage helpers: model context limits and the context-remaining indicator
"""

from .handler import AgentStatus, MessageHandler
from .session import ResultHandler, SyncSession
from .usage import (
    MODEL_LIMITS,
    PROVIDER_DEFAULT_MODELS,
    ContextWarning,
    ModelLimits,
    context_used_percent,
    context_warning,
    format_token_count,
    resolve_model_limits,
    usage_warning,
)

__all__ = [
    "MessageHandler",
    "AgentStatus",
    "SyncSession",
    "ResultHandler",
    "ModelLimits",
    "ContextWarning",
    "MODEL_LIMITS",
    "PROVIDER_DEFAULT_MODELS",
    "resolve_model_limits",
    "context_used_percent",
    "context_warning",
    "usage_warning",
    "format_token_count",
]
