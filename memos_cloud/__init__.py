"""Long-term memory hooks for conversational agents, backed by MemOS Cloud."""

from .plugins import LifecycleHookPlugin, PluginRegistry, TurnStartResult
from .plugins.memos import MemosCloudPlugin, create_plugin

__version__ = "0.1.0"

__all__ = ['LifecycleHookPlugin', 'MemosCloudPlugin', 'PluginRegistry', 'TurnStartResult', 'create_plugin']
