"""Plugin system for agent lifecycle hooks.

Lifecycle plugins observe the start and end of every agent turn and can
inject context ahead of the model's prompt.

Usage:
    from memos_cloud.plugins import PluginRegistry

    registry = PluginRegistry()
    registry.discover()
    registry.expose('memos_cloud')

    result = registry.dispatch_turn_start(event, ctx)
    registry.dispatch_turn_end(event, ctx)

    registry.unexpose_all()
"""

from .base import LifecycleHookPlugin, PromptEnrichmentResult, TurnStartResult
from .registry import PluginRegistry

__all__ = ['LifecycleHookPlugin', 'PluginRegistry', 'PromptEnrichmentResult', 'TurnStartResult']
