"""
Sync configuration utilities.

Usage:
    from agentsync.config import load_sync_config

    config = load_sync_config()
"""

from agentsync.config.loader import SyncConfig, get_config_path, load_sync_config

__all__ = ["SyncConfig", "load_sync_config", "get_config_path"]
