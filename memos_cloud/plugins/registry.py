"""Plugin registry for discovering, loading, and dispatching lifecycle plugins."""

import importlib
import importlib.metadata
import logging
import pkgutil
from pathlib import Path
from typing import Any, Dict, List, Optional

from .base import LifecycleHookPlugin, PromptEnrichmentResult, TurnStartResult

logger = logging.getLogger(__name__)

# Entry point group names by plugin kind
PLUGIN_ENTRY_POINT_GROUPS = {
    "lifecycle": "memos_cloud.plugins",
}


class PluginRegistry:
    """Manages plugin discovery, lifecycle, and hook dispatch.

    Usage:
        registry = PluginRegistry()
        registry.discover()

        print(registry.list_available())  # ['memos_cloud']

        registry.expose('memos_cloud', config={'api_key': '...'})

        # Host event loop
        result = registry.dispatch_turn_start(event, ctx)
        if result:
            context = result.prepend_context
        ...
        registry.dispatch_turn_end(event, ctx)

        registry.unexpose_all()
    """

    def __init__(self):
        self._plugins: Dict[str, LifecycleHookPlugin] = {}
        self._exposed: List[str] = []  # exposure order is dispatch order
        self._configs: Dict[str, Dict[str, Any]] = {}

    def discover(
        self,
        plugin_kind: str = "lifecycle",
        include_directory: bool = True
    ) -> List[str]:
        """Discover plugins via entry points and optionally directory scanning.

        Entry points allow external packages to register plugins:
            [project.entry-points."memos_cloud.plugins"]
            my_plugin = "my_package.plugins:create_plugin"

        Args:
            plugin_kind: Only plugins with a matching PLUGIN_KIND are loaded.
            include_directory: Also scan this package's directory, for
                development checkouts where the package isn't installed.

        Returns:
            List of discovered plugin names.
        """
        discovered = self._discover_via_entry_points(plugin_kind)
        if include_directory:
            discovered.extend(self._discover_via_directory(plugin_kind))
        return discovered

    def _discover_via_entry_points(self, plugin_kind: str) -> List[str]:
        discovered: List[str] = []

        group = PLUGIN_ENTRY_POINT_GROUPS.get(plugin_kind)
        if not group:
            return discovered

        for ep in importlib.metadata.entry_points(group=group):
            # Skip if already loaded
            if ep.name in self._plugins:
                continue
            try:
                plugin = ep.load()()
            except Exception as exc:
                logger.warning("[PluginRegistry] Error loading entry point '%s': %s", ep.name, exc)
                continue
            if not isinstance(plugin, LifecycleHookPlugin):
                logger.warning(
                    "[PluginRegistry] Entry point '%s': plugin does not implement LifecycleHookPlugin",
                    ep.name,
                )
                continue
            if plugin.name in self._plugins:
                continue
            self._plugins[plugin.name] = plugin
            discovered.append(plugin.name)

        return discovered

    def _discover_via_directory(
        self,
        plugin_kind: str,
        plugin_dir: Optional[Path] = None
    ) -> List[str]:
        """Scan for subpackages with a create_plugin() factory and matching PLUGIN_KIND."""
        if plugin_dir is None:
            plugin_dir = Path(__file__).parent

        discovered: List[str] = []

        for _, name, _ in pkgutil.iter_modules([str(plugin_dir)]):
            if name.startswith('_') or name in ('base', 'registry', 'tests'):
                continue

            try:
                module = importlib.import_module(f".{name}", package=__package__)
            except Exception as exc:
                logger.warning("[PluginRegistry] Error loading plugin '%s': %s", name, exc)
                continue

            if getattr(module, 'PLUGIN_KIND', None) != plugin_kind:
                continue
            if not hasattr(module, 'create_plugin'):
                continue

            try:
                plugin = module.create_plugin()
            except Exception as exc:
                logger.warning("[PluginRegistry] Error creating plugin '%s': %s", name, exc)
                continue
            if not isinstance(plugin, LifecycleHookPlugin):
                logger.warning("[PluginRegistry] %s: plugin does not implement LifecycleHookPlugin", name)
                continue
            # Skip if already loaded via entry points
            if plugin.name in self._plugins:
                continue

            self._plugins[plugin.name] = plugin
            discovered.append(plugin.name)

        return discovered

    def list_available(self) -> List[str]:
        """List all discovered plugin names."""
        return list(self._plugins.keys())

    def list_exposed(self) -> List[str]:
        """List currently exposed plugin names, in dispatch order."""
        return list(self._exposed)

    def is_exposed(self, name: str) -> bool:
        return name in self._exposed

    def get_plugin(self, name: str) -> Optional[LifecycleHookPlugin]:
        """Get a plugin by name, or None if not found."""
        return self._plugins.get(name)

    def register_plugin(
        self,
        plugin: LifecycleHookPlugin,
        expose: bool = False,
        config: Optional[Dict[str, Any]] = None
    ) -> None:
        """Manually register a plugin instance.

        Args:
            plugin: The plugin instance to register.
            expose: If True, also expose it (calls initialize).
            config: Optional configuration dict if exposing.
        """
        self._plugins[plugin.name] = plugin
        if expose:
            self.expose(plugin.name, config)

    def expose(self, name: str, config: Optional[Dict[str, Any]] = None) -> None:
        """Enable a plugin so it receives lifecycle events.

        Calls the plugin's initialize() the first time, or again (after
        shutdown()) when a different config is provided.

        Raises:
            ValueError: If the plugin is not found.
        """
        if name not in self._plugins:
            raise ValueError(f"Plugin '{name}' not found. Available: {self.list_available()}")

        plugin = self._plugins[name]

        if name not in self._exposed:
            plugin.initialize(config)
            if config:
                self._configs[name] = config
            self._exposed.append(name)
        elif config and config != self._configs.get(name):
            # Re-initialize with new config
            plugin.shutdown()
            plugin.initialize(config)
            self._configs[name] = config

    def unexpose(self, name: str) -> None:
        """Stop dispatching to a plugin and shut it down."""
        if name in self._exposed:
            self._plugins[name].shutdown()
            self._exposed.remove(name)
            self._configs.pop(name, None)

    def unexpose_all(self) -> None:
        for name in list(self._exposed):
            self.unexpose(name)

    def _exposed_plugins(self) -> List[LifecycleHookPlugin]:
        return [self._plugins[name] for name in self._exposed]

    # ==================== Lifecycle dispatch ====================

    def dispatch_turn_start(self, event: Any, ctx: Any = None) -> Optional[TurnStartResult]:
        """Run every exposed plugin's turn-start hook.

        Returns:
            One TurnStartResult whose prepend_context joins each plugin's
            block with a blank line, or None if no plugin returned one.
        """
        blocks: List[str] = []
        metadata: Dict[str, Any] = {}

        for plugin in self._exposed_plugins():
            try:
                result = plugin.on_turn_start(event, ctx)
            except Exception as exc:
                logger.warning("[PluginRegistry] Error in turn start for '%s': %s", plugin.name, exc)
                continue
            if result and result.prepend_context:
                blocks.append(result.prepend_context)
                if result.metadata:
                    metadata[plugin.name] = result.metadata

        if not blocks:
            return None
        return TurnStartResult(prepend_context="\n\n".join(blocks), metadata=metadata)

    def dispatch_turn_end(self, event: Any, ctx: Any = None) -> None:
        for plugin in self._exposed_plugins():
            try:
                plugin.on_turn_end(event, ctx)
            except Exception as exc:
                logger.warning("[PluginRegistry] Error in turn end for '%s': %s", plugin.name, exc)

    def dispatch_command(self, event: Any) -> None:
        """Forward a host command event to plugins that handle commands."""
        for plugin in self._exposed_plugins():
            if not hasattr(plugin, 'on_command'):
                continue
            try:
                plugin.on_command(event)
            except Exception as exc:
                logger.warning("[PluginRegistry] Error in command for '%s': %s", plugin.name, exc)

    # ==================== Prompt Enrichment ====================

    def get_prompt_enrichment_subscribers(self) -> List[LifecycleHookPlugin]:
        subscribers = []
        for plugin in self._exposed_plugins():
            try:
                if (hasattr(plugin, 'subscribes_to_prompt_enrichment') and
                        plugin.subscribes_to_prompt_enrichment()):
                    subscribers.append(plugin)
            except Exception as exc:
                logger.warning(
                    "[PluginRegistry] Error checking enrichment subscription for '%s': %s",
                    plugin.name, exc,
                )
        return subscribers

    def enrich_prompt(self, prompt: str) -> PromptEnrichmentResult:
        """Run prompt through all subscribed enrichment plugins.

        Plugins are called in exposure order, each receiving the previous
        plugin's output.

        Returns:
            PromptEnrichmentResult with the enriched prompt and metadata
            namespaced by plugin name.
        """
        current_prompt = prompt
        combined_metadata: Dict[str, Any] = {}

        for plugin in self.get_prompt_enrichment_subscribers():
            try:
                result = plugin.enrich_prompt(current_prompt)
            except Exception as exc:
                logger.warning("[PluginRegistry] Error in prompt enrichment for '%s': %s", plugin.name, exc)
                continue
            current_prompt = result.prompt
            if result.metadata:
                combined_metadata[plugin.name] = result.metadata

        return PromptEnrichmentResult(prompt=current_prompt, metadata=combined_metadata)
