"""Base protocol for lifecycle hook plugins."""

from dataclasses import dataclass, field
from typing import Protocol, Dict, Any, Optional, runtime_checkable


@dataclass
class TurnStartResult:
    """Result of a plugin's turn-start hook.

    Plugins that handle the "turn starting" event can hand back a block of
    text that the host prepends to the model's context for that turn.

    Attributes:
        prepend_context: Text to place ahead of the user's prompt.
        metadata: Optional metadata about what the plugin did.
    """
    prepend_context: str
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class PromptEnrichmentResult:
    """Result of prompt enrichment by a plugin.

    Plugins that subscribe to prompt enrichment can inspect and optionally
    modify user prompts before they are sent to the model.

    Attributes:
        prompt: The (possibly modified) prompt text.
        metadata: Optional metadata about the enrichment.
    """
    prompt: str
    metadata: Dict[str, Any] = field(default_factory=dict)


@runtime_checkable
class LifecycleHookPlugin(Protocol):
    """Interface that all lifecycle plugins must implement.

    A lifecycle plugin observes the two ends of an agent turn:

    1. Turn starting: called with the incoming event before the model runs.
       The plugin may return a TurnStartResult whose text is prepended to
       the model's context.
    2. Turn ended: called once the model has answered. The return value is
       ignored.

    The host (or PluginRegistry acting on its behalf) owns dispatch. Hooks
    must never raise: a failing plugin must not break the host's turn.
    """

    @property
    def name(self) -> str:
        """Unique identifier for this plugin."""
        ...

    def initialize(self, config: Optional[Dict[str, Any]] = None) -> None:
        """Called once when the plugin is enabled.

        Args:
            config: Optional configuration dict for plugin-specific settings.
        """
        ...

    def shutdown(self) -> None:
        """Called when the plugin is disabled. Clean up resources here."""
        ...

    def on_turn_start(self, event: Any, ctx: Any = None) -> Optional[TurnStartResult]:
        """Handle a "turn starting" event.

        Args:
            event: The host's lifecycle event (mapping or LifecycleEvent).
            ctx: The host's session context (mapping or SessionContext).

        Returns:
            A TurnStartResult to prepend context, or None.
        """
        ...

    def on_turn_end(self, event: Any, ctx: Any = None) -> None:
        """Handle a "turn ended" event."""
        ...

    # ==================== Optional Protocol Extensions ====================
    #
    # Commands:
    #
    # def on_command(self, event: Any) -> None:
    #     """Handle a host command event such as "/new".
    #
    #     Plugins that keep per-conversation state use this to react when the
    #     user starts a fresh conversation in the same session.
    #     """
    #     ...
    #
    # Prompt Enrichment:
    #
    # def subscribes_to_prompt_enrichment(self) -> bool:
    #     """Return True if this plugin wants to enrich prompts before sending."""
    #     ...
    #
    # def enrich_prompt(self, prompt: str) -> PromptEnrichmentResult:
    #     """Enrich a user prompt before sending to the model.
    #
    #     Called only if subscribes_to_prompt_enrichment() returns True.
    #     Hosts without structured lifecycle events can use this path to get
    #     the same recall behaviour from a bare prompt string.
    #     """
    #     ...
