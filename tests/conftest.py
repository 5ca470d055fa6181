"""
Pytest fixtures for agentsync tests.

Provides a fresh store per test and helpers to push raw frames through
normalize + reduce in one call, which is how the runtime uses them.
"""

from typing import Any, Optional

import pytest

from agentsync.sync import (
    ReducerResult,
    ReducerStore,
    create_store,
    normalize_messages,
    reduce,
)


@pytest.fixture
def store() -> ReducerStore:
    """Empty reducer store."""
    return create_store()


@pytest.fixture
def feed(store):
    """Normalize raw frames and reduce them into the test store.

    Usage:
        result = feed([frames.user_text("hi")])
        result = feed([], agent_state={...})
    """

    def _feed(
        raw_frames: list[dict[str, Any]],
        agent_state: Optional[dict[str, Any]] = None,
        skip_optimistic_user_messages: bool = False,
    ) -> ReducerResult:
        normalized = normalize_messages(
            raw_frames,
            skip_optimistic_user_messages=skip_optimistic_user_messages,
        )
        return reduce(store, normalized, agent_state)

    return _feed
