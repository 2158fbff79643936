"""MemOS Cloud plugin: long-term memory recall and capture around agent turns."""

import logging
import time
from typing import Any, Callable, Dict, Optional, Set

from ..base import PromptEnrichmentResult, TurnStartResult
from .client import MalformedResponseError, MemosApiClient
from .config import ConfigValidationError, MemosConfig, build_config, validate_overrides
from .conversation import ConversationIdentity
from .dashboard import DashboardServer, create_dashboard_app
from .env import DotenvFileLookup, EnvLookup
from .heartbeat import debug_event_snapshot, is_heartbeat_event
from .models import EventKind, LifecycleEvent, SessionContext
from .payloads import build_add_payload, build_search_payload, select_messages
from .prompts import PromptOptions, clean_prompt_preview, format_context_block, format_prompt_block
from .telemetry import StatsCollector

logger = logging.getLogger(__name__)

API_KEY_HELP_URL = "https://memos-dashboard.openmem.net/cn/apikeys/"
MIN_PROMPT_CHARS = 3


class MemosCloudPlugin:
    """Lifecycle plugin that connects agent turns to MemOS Cloud.

    On turn start it searches the memory store with the user's prompt and
    returns a block of recalled facts and preferences to prepend. On turn end
    it stores the exchange. Heartbeat turns are skipped in both directions.

    Every remote call is best-effort: failures are recorded in telemetry and
    logged, and no exception ever reaches the host.
    """

    def __init__(
        self,
        env: Optional[EnvLookup] = None,
        session: Optional[Any] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic
    ):
        """Initialize the plugin.

        Args:
            env: Environment lookup; the well-known ``.env`` files when omitted.
            session: Optional ``requests.Session`` used for API calls.
            sleep: Retry delay function passed to the API client.
            clock: Monotonic clock used for latency and throttling.
        """
        self._name = "memos_cloud"
        self._env = env
        self._session = session
        self._sleep = sleep
        self._clock = clock
        self._plugin_config: Dict[str, Any] = {}
        self._config: Optional[MemosConfig] = None
        self._client: Optional[MemosApiClient] = None
        self._stats: Optional[StatsCollector] = None
        self._dashboard: Optional[DashboardServer] = None
        self._identity = ConversationIdentity()
        self._log = logger
        self._last_capture: Optional[float] = None
        self._warned_missing_key: Set[str] = set()

    @property
    def name(self) -> str:
        """Return plugin name."""
        return self._name

    @property
    def config(self) -> Optional[MemosConfig]:
        return self._config

    @property
    def stats(self) -> Optional[StatsCollector]:
        return self._stats

    @property
    def identity(self) -> ConversationIdentity:
        return self._identity

    def initialize(self, config: Optional[Dict[str, Any]] = None) -> None:
        """Resolve configuration, restore telemetry and start the dashboard.

        Args:
            config: Optional configuration dict. Any MemosConfig field is
                accepted in snake_case or camelCase. Also:
                - logger: a ``logging.Logger`` to use instead of this module's
        """
        config = dict(config or {})
        host_logger = config.pop("logger", None)
        if isinstance(host_logger, logging.Logger):
            self._log = host_logger
        self._plugin_config = config

        if self._env is None:
            self._env = DotenvFileLookup()
        env_status = self._env.status()
        if not env_status.found:
            self._log.warning(
                "[memos-cloud] No .env found in %s; falling back to process env or plugin config.",
                ", ".join(env_status.search_paths),
            )

        base = build_config(self._plugin_config, self._env)
        self._stats = StatsCollector(base.state_path)
        self._stats.start()
        self._apply_config(self._stats.get_config_overrides())

        if self._config.dashboard_enabled:
            app = create_dashboard_app(
                self._stats,
                runtime_config=lambda: self._config.to_dict(mask_secrets=True),
                apply_overrides=self.update_overrides,
                clear_overrides=self.clear_overrides,
            )
            self._dashboard = DashboardServer(app, self._config.dashboard_host, self._config.dashboard_port)
            try:
                self._dashboard.start()
            except (OSError, RuntimeError) as e:
                self._log.warning("[memos-cloud] Dashboard start failed: %s", e)
            if not self._dashboard.is_running:
                self._dashboard = None

    def shutdown(self) -> None:
        """Stop the dashboard and write a final telemetry snapshot."""
        if self._dashboard is not None:
            self._dashboard.stop()
        if self._stats is not None:
            self._stats.stop()
        self._dashboard = None
        self._stats = None
        self._client = None
        self._config = None

    # ===== Config overrides =====

    def _apply_config(self, overrides: Dict[str, Any]) -> None:
        self._config = build_config(self._plugin_config, self._env, overrides)
        self._client = MemosApiClient(self._config, session=self._session, sleep=self._sleep)

    def update_overrides(self, values: Dict[str, Any]) -> None:
        """Replace the runtime overrides and re-resolve the configuration.

        Raises:
            ConfigValidationError: The update is invalid; nothing changed.
        """
        valid, errors = validate_overrides(values)
        if not valid:
            raise ConfigValidationError(errors)
        if self._stats is not None:
            self._stats.set_config_overrides(values)
        self._apply_config(dict(values))
        self._log.info("[memos-cloud] Config overrides updated: %s", ", ".join(sorted(values)) or "(none)")

    def clear_overrides(self) -> None:
        if self._stats is not None:
            self._stats.clear_config_overrides()
        self._apply_config({})

    # ===== Helpers =====

    def _elapsed_ms(self, start: float) -> int:
        return int((self._clock() - start) * 1000)

    def _record(self, kind: EventKind, **details: Any) -> None:
        if self._stats is not None:
            self._stats.record(kind, **details)

    def _warn_missing_api_key(self, context: str) -> None:
        if context in self._warned_missing_key:
            return
        self._warned_missing_key.add(context)
        self._log.warning("\n".join([
            f"[memos-cloud] Missing MEMOS_API_KEY (Token auth); {context} skipped. Configure it with:",
            "echo 'export MEMOS_API_KEY=\"mpg-...\"' >> ~/.zshrc",
            "source ~/.zshrc",
            "or",
            "echo 'export MEMOS_API_KEY=\"mpg-...\"' >> ~/.bashrc",
            "source ~/.bashrc",
            "or",
            "[System.Environment]::SetEnvironmentVariable(\"MEMOS_API_KEY\", \"mpg-...\", \"User\")",
            f"Get API key: {API_KEY_HELP_URL}",
        ]))

    def _filter_heartbeat(self, event: LifecycleEvent, ctx: SessionContext, preview: str) -> bool:
        config = self._config
        if not is_heartbeat_event(event, ctx, config):
            return False
        snapshot = debug_event_snapshot(event, ctx) if config.debug_events else None
        self._record(EventKind.HEARTBEAT_FILTERED, prompt_preview=preview, debug=snapshot)
        if snapshot is not None:
            self._log.info("[memos-cloud] Heartbeat filtered: %s", snapshot)
        return True

    # ===== Lifecycle hooks =====

    def on_turn_start(self, event: Any, ctx: Any = None) -> Optional[TurnStartResult]:
        """Recall memories for the incoming prompt.

        Returns:
            TurnStartResult with the prompt block, or None when recall is
            skipped, fails, or finds nothing usable.
        """
        config = self._config
        if config is None or self._client is None:
            return None

        event = LifecycleEvent.from_value(event)
        ctx = SessionContext.from_value(ctx)

        if self._filter_heartbeat(event, ctx, event.prompt[:60]):
            return None
        if not config.recall_enabled:
            return None
        if len(event.prompt) < MIN_PROMPT_CHARS:
            return None
        if not config.api_key:
            self._warn_missing_api_key("recall")
            return None

        start = self._clock()
        try:
            payload = build_search_payload(config, event.prompt, ctx, self._identity)
            try:
                raw = self._client.search_memory(payload)
            except MalformedResponseError as e:
                self._log.warning("[memos-cloud] recall returned an unusable response: %s", e)
                raw = None
            block = format_prompt_block(raw, PromptOptions(
                style=config.prompt_style,
                template=config.prompt_template,
                max_item_chars=config.max_item_chars,
                wrap_tag_blocks=True,
            ))
        except Exception as e:
            self._record(
                EventKind.SEARCH_ERROR,
                prompt_preview=event.prompt[:60],
                error=str(e),
                duration_ms=self._elapsed_ms(start),
            )
            self._log.warning("[memos-cloud] recall failed: %s", e)
            return None

        duration_ms = self._elapsed_ms(start)
        self._record(EventKind.SEARCH, prompt_preview=clean_prompt_preview(event.prompt), duration_ms=duration_ms)
        if config.debug_events and raw is not None:
            self._log.debug("[memos-cloud] Recall result:\n%s", format_context_block(raw, config.max_item_chars))

        if not block:
            return None
        return TurnStartResult(prepend_context=block, metadata={"duration_ms": duration_ms})

    def on_turn_end(self, event: Any, ctx: Any = None) -> None:
        """Capture the finished turn into the memory store."""
        config = self._config
        if config is None or self._client is None:
            return

        event = LifecycleEvent.from_value(event)
        ctx = SessionContext.from_value(ctx)

        if self._filter_heartbeat(event, ctx, "(agent_end)"):
            return
        if not config.add_enabled:
            return
        if not event.success or not event.messages:
            return
        if not config.api_key:
            self._warn_missing_api_key("add")
            return

        now = self._clock()
        if (
            config.throttle_ms
            and self._last_capture is not None
            and (now - self._last_capture) * 1000 < config.throttle_ms
        ):
            return
        self._last_capture = now

        start = self._clock()
        try:
            messages = select_messages(event.messages, config)
            if not messages:
                return
            payload = build_add_payload(config, messages, ctx, self._identity)
            self._client.add_message(payload)
        except Exception as e:
            self._record(EventKind.ADD_ERROR, error=str(e), duration_ms=self._elapsed_ms(start))
            self._log.warning("[memos-cloud] add failed: %s", e)
            return

        self._record(
            EventKind.ADD,
            prompt_preview=f"{len(messages)} messages",
            duration_ms=self._elapsed_ms(start),
        )

    def on_command(self, event: Any) -> None:
        """Start a new conversation id for the session on ``/new``."""
        config = self._config
        if config is None:
            return
        if config.conversation_suffix_mode != "counter" or not config.reset_on_new:
            return
        event = LifecycleEvent.from_value(event)
        if event.type == "command" and event.action == "new":
            value = self._identity.bump(event.session_key)
            self._log.debug("[memos-cloud] Conversation counter for %s is now %d", event.session_key, value)

    # ===== Prompt Enrichment Protocol =====

    def subscribes_to_prompt_enrichment(self) -> bool:
        return self._config is not None and self._config.recall_enabled

    def enrich_prompt(self, prompt: str) -> PromptEnrichmentResult:
        """Prepend recalled memories to a bare prompt.

        Used by hosts that only offer prompt enrichment and no structured
        lifecycle events.
        """
        result = self.on_turn_start({"prompt": prompt})
        if result is None:
            return PromptEnrichmentResult(prompt=prompt, metadata={"memos_recall": False})
        return PromptEnrichmentResult(
            prompt=f"{result.prepend_context}\n{prompt}",
            metadata={"memos_recall": True, **result.metadata},
        )


def create_plugin() -> MemosCloudPlugin:
    """Factory function to create the MemOS Cloud plugin instance.

    Returns:
        MemosCloudPlugin instance
    """
    return MemosCloudPlugin()
