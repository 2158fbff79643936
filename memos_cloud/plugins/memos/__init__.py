"""MemOS Cloud plugin: long-term memory for agent turns.

This plugin connects a conversational agent to the MemOS Cloud memory
service:
- Before a turn, recalled facts and preferences are prepended to the prompt
- After a turn, the exchange is stored back as new memory
- Heartbeat turns are detected and skipped in both directions
- A local dashboard exposes telemetry and runtime config overrides

Usage:
    # Plugin is auto-discovered by PluginRegistry
    registry.expose("memos_cloud", config={
        "api_key": "mpg-...",
        "capture_strategy": "last_turn",
    })
"""

PLUGIN_KIND = "lifecycle"

from .plugin import MemosCloudPlugin, create_plugin

__all__ = ["MemosCloudPlugin", "create_plugin", "PLUGIN_KIND"]
