"""Context-window accounting. Pure functions, no I/O."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Literal

from agentsync.sync.types import Usage

logger = logging.getLogger(__name__)

DEFAULT_CONTEXT_SIZE = 128000


@dataclass(frozen=True)
class ModelLimits:
    """Context window and output limit of a model."""

    name: str
    context_size: int
    max_output: int


MODEL_LIMITS: dict[str, ModelLimits] = {
    "deepseek-chat": ModelLimits("DeepSeek-V3.2", 128000, 8000),
    "deepseek-reasoner": ModelLimits("DeepSeek-R1", 128000, 64000),
    "claude-3-5-sonnet-20241022": ModelLimits("Claude 3.5 Sonnet", 200000, 8192),
    "claude-3-5-sonnet": ModelLimits("Claude 3.5 Sonnet", 200000, 8192),
    "claude-3-opus": ModelLimits("Claude 3 Opus", 200000, 4096),
    "claude-3-haiku": ModelLimits("Claude 3 Haiku", 200000, 4096),
    # Conservative fallback
    "default": ModelLimits("Unknown", DEFAULT_CONTEXT_SIZE, 8000),
}

PROVIDER_DEFAULT_MODELS: dict[str, str] = {
    "deepseek": "deepseek-chat",
    "anthropic": "claude-3-5-sonnet",
}

WarningLevel = Literal["normal", "warning", "critical"]


@dataclass(frozen=True)
class ContextWarning:
    level: WarningLevel
    percent_remaining: int

    @property
    def text(self) -> str:
        return f"{self.percent_remaining}% left"


def resolve_model_limits(model: str | None = None, provider: str | None = None) -> ModelLimits:
    """
    Find limits for a model.

    Priority: exact model > provider default model > global default.
    """
    if model and model in MODEL_LIMITS:
        return MODEL_LIMITS[model]

    default_model = PROVIDER_DEFAULT_MODELS.get(provider or "")
    if default_model and default_model in MODEL_LIMITS:
        logger.debug(f"Using provider default model {default_model} for {provider}")
        return MODEL_LIMITS[default_model]

    return MODEL_LIMITS["default"]


def context_used_percent(context_size: int, limits: ModelLimits | None = None) -> float:
    """Share of the context window in use, capped at 100."""
    limits = limits or MODEL_LIMITS["default"]
    max_size = limits.context_size or DEFAULT_CONTEXT_SIZE
    return min(context_size / max_size * 100, 100.0)


def context_warning(
    context_size: int,
    limits: ModelLimits | None = None,
    always_show: bool = True,
) -> ContextWarning | None:
    """
    Compute the "context remaining" indicator.

    Returns:
        critical at 5% or less remaining, warning at 10% or less, otherwise
        normal (or None when always_show is off).
    """
    limits = limits or MODEL_LIMITS["default"]
    max_size = limits.context_size or DEFAULT_CONTEXT_SIZE
    remaining = max(0.0, min(100.0, 100 - context_size / max_size * 100))
    rounded = math.floor(remaining + 0.5)

    if remaining <= 5:
        return ContextWarning("critical", rounded)
    if remaining <= 10:
        return ContextWarning("warning", rounded)
    if always_show:
        return ContextWarning("normal", rounded)
    return None


def usage_warning(usage: Usage | None, limits: ModelLimits | None = None) -> ContextWarning | None:
    """context_warning() for a reducer usage snapshot."""
    if usage is None:
        return None
    return context_warning(usage.context_size, limits)


def format_token_count(tokens: int) -> str:
    """Compact token count: 950, 1.2K, 3.4M."""
    if tokens >= 1_000_000:
        return f"{tokens / 1_000_000:.1f}M"
    if tokens >= 1000:
        return f"{tokens / 1000:.1f}K"
    return str(tokens)
