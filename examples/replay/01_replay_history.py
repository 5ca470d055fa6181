#!/usr/bin/env python3
"""
Replay a saved session history through the sync pipeline.

Reads a JSON file holding a list of raw transport frames (as returned by
the history API), runs it through a MessageHandler and prints one line
per rendered message, with sidechain children indented under their tool
call.

Setup:
    1. Copy agentsync.yaml.example to agentsync.yaml (optional)
    2. Optionally set AGENTSYNC_HISTORY_FILE in .env

Usage:
    python examples/replay/01_replay_history.py history.json
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from pathlib import Path

# Add examples directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from dotenv import load_dotenv
from setup_logging import setup_logging

from agentsync import MessageHandler, SyncConfig, load_sync_config
from agentsync.runtime import format_token_count, resolve_model_limits, usage_warning
from agentsync.sync import (
    AgentEventMessage,
    AgentTextMessage,
    Message,
    ToolCallMessage,
    Usage,
    UserTextMessage,
)

# Load environment from .env
load_dotenv()


def describe(message: Message, indent: int = 0) -> list[str]:
    pad = "  " * indent
    if isinstance(message, UserTextMessage):
        return [f"{pad}[user] {message.display_text or message.text}"]
    if isinstance(message, AgentTextMessage):
        return [f"{pad}[agent] {message.text}"]
    if isinstance(message, ToolCallMessage):
        lines = [f"{pad}[tool:{message.tool.state}] {message.tool.name}"]
        for child in message.children:
            lines.extend(describe(child, indent + 1))
        return lines
    if isinstance(message, AgentEventMessage):
        return [f"{pad}[event] {message.event}"]
    return []


def main() -> None:
    parser = argparse.ArgumentParser(description="Replay a session history")
    parser.add_argument("history", nargs="?", default=os.environ.get("AGENTSYNC_HISTORY_FILE"))
    args = parser.parse_args()

    if not args.history:
        print("Error: pass a history file or set AGENTSYNC_HISTORY_FILE")
        sys.exit(1)

    try:
        config = load_sync_config()
    except FileNotFoundError:
        config = SyncConfig()

    setup_logging(getattr(logging, config.log_level, logging.INFO))
    limits = resolve_model_limits(config.model, config.provider)

    def on_usage(usage: Usage) -> None:
        warning = usage_warning(usage, limits)
        print(
            f"context {format_token_count(usage.context_size)} / "
            f"{format_token_count(limits.context_size)}"
            + (f" ({warning.text})" if warning else "")
        )

    handler = MessageHandler(on_usage=on_usage, config=config)
    frames = json.loads(Path(args.history).read_text())
    for message in handler.handle_history(frames):
        print("\n".join(describe(message)))


if __name__ == "__main__":
    main()
