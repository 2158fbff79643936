"""Configuration resolution and validation for the MemOS Cloud plugin.

Resolves one immutable MemosConfig from four layers, highest first:

1. Runtime overrides (set from the dashboard, restored from the snapshot)
2. Explicit plugin config (the dict passed to ``initialize``)
3. Environment values (see ``env.py``)
4. Built-in defaults

A layer whose value is missing or unusable (non-numeric, out of window,
not a recognised boolean or choice) is skipped, so resolution never fails.
"""

import re
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .env import DotenvFileLookup, EnvLookup


DEFAULT_BASE_URL = "https://memos.memtensor.cn/api/openmem/v1"
DEFAULT_USER_ID = "openclaw-user"
DEFAULT_SOURCE = "openclaw"
DEFAULT_HEARTBEAT_KEYWORDS = ("HEARTBEAT_OK", "HEARTBEAT.md")
DEFAULT_STATE_PATH = str(Path.home() / ".openclaw" / "memos-cloud-state.json")

CAPTURE_STRATEGIES = ("last_turn", "full_session")
PROMPT_STYLES = ("default", "compact")
SUFFIX_MODES = ("none", "counter")

TRUTHY = ("1", "true", "yes", "y", "on")
FALSY = ("0", "false", "no", "n", "off")

# field -> (min, max, default)
NUMERIC_WINDOWS: Dict[str, Tuple[int, int, int]] = {
    "memory_limit_number": (0, 100, 10),
    "preference_limit_number": (0, 100, 10),
    "tool_memory_limit_number": (0, 100, 6),
    "timeout_ms": (1, 60000, 5000),
    "retries": (0, 5, 1),
    "throttle_ms": (0, 3600000, 0),
    "max_message_chars": (0, 1000000, 20000),
    "max_query_chars": (0, 100000, 0),
    "max_item_chars": (0, 100000, 0),
    "dashboard_port": (1, 65535, 9898),
}

# Narrower windows accepted from the dashboard
OVERRIDE_WINDOWS: Dict[str, Tuple[int, int, str]] = {
    "dashboard_port": (1024, 65535, "Dashboard port must be between 1024 and 65535."),
    "memory_limit_number": (0, 100, "Memory limit must be between 0 and 100."),
    "preference_limit_number": (0, 100, "Preference limit must be between 0 and 100."),
    "timeout_ms": (500, 60000, "API timeout must be between 500 and 60000 ms."),
}

ENV_NAMES: Dict[str, str] = {
    "base_url": "MEMOS_BASE_URL",
    "api_key": "MEMOS_API_KEY",
    "user_id": "MEMOS_USER_ID",
    "conversation_id": "MEMOS_CONVERSATION_ID",
    "recall_global": "MEMOS_RECALL_GLOBAL",
    "conversation_id_prefix": "MEMOS_CONVERSATION_PREFIX",
    "conversation_id_suffix": "MEMOS_CONVERSATION_SUFFIX",
    "conversation_suffix_mode": "MEMOS_CONVERSATION_SUFFIX_MODE",
    "reset_on_new": "MEMOS_CONVERSATION_RESET_ON_NEW",
    "ignore_heartbeats": "MEMOS_IGNORE_HEARTBEATS",
    "debug_events": "MEMOS_DEBUG_EVENTS",
    "prompt_style": "MEMOS_PROMPT_STYLE",
    "prompt_template": "MEMOS_PROMPT_TEMPLATE",
    "timeout_ms": "MEMOS_TIMEOUT_MS",
    "retries": "MEMOS_RETRIES",
    "dashboard_port": "MEMOS_DASHBOARD_PORT",
    "state_path": "MEMOS_STATE_PATH",
}


@dataclass(frozen=True)
class MemosConfig:
    """Effective configuration of one plugin instance.

    Never mutated in place; ``build_config`` produces a new value whenever
    overrides change.
    """

    # Remote service
    base_url: str = DEFAULT_BASE_URL
    api_key: str = ""
    user_id: str = DEFAULT_USER_ID
    source: str = DEFAULT_SOURCE
    timeout_ms: int = 5000
    retries: int = 1

    # Conversation identity
    conversation_id: str = ""
    conversation_id_prefix: str = ""
    conversation_id_suffix: str = ""
    conversation_suffix_mode: str = "none"
    reset_on_new: bool = True

    # Recall
    recall_enabled: bool = True
    recall_global: bool = True
    query_prefix: str = ""
    max_query_chars: int = 0
    memory_limit_number: int = 10
    preference_limit_number: int = 10
    include_preference: bool = True
    include_tool_memory: bool = False
    tool_memory_limit_number: int = 6
    filter: Any = None
    knowledgebase_ids: Tuple[str, ...] = ()

    # Capture
    add_enabled: bool = True
    capture_strategy: str = "last_turn"
    include_assistant: bool = True
    max_message_chars: int = 20000
    throttle_ms: int = 0
    tags: Tuple[str, ...] = ("openclaw",)
    info: Dict[str, Any] = field(default_factory=dict)
    agent_id: Optional[str] = None
    app_id: Optional[str] = None
    allow_public: bool = False
    allow_knowledgebase_ids: Tuple[str, ...] = ()
    async_mode: bool = True

    # Heartbeat filtering
    ignore_heartbeats: bool = True
    heartbeat_keywords: Tuple[str, ...] = DEFAULT_HEARTBEAT_KEYWORDS
    debug_events: bool = False

    # Prompt
    prompt_style: str = "default"
    prompt_template: Optional[str] = None
    max_item_chars: int = 0

    # Dashboard / telemetry
    dashboard_enabled: bool = True
    dashboard_host: str = "127.0.0.1"
    dashboard_port: int = 9898
    state_path: str = DEFAULT_STATE_PATH

    def to_dict(self, mask_secrets: bool = True) -> Dict[str, Any]:
        """Return a JSON-friendly copy, with the API key masked by default."""
        data = asdict(self)
        for name, value in data.items():
            if isinstance(value, tuple):
                data[name] = list(value)
        if mask_secrets and self.api_key:
            data["api_key"] = mask_secret(self.api_key)
        return data


CONFIG_FIELDS = tuple(f.name for f in fields(MemosConfig))


class ConfigValidationError(Exception):
    """Raised when a configuration update fails validation."""

    def __init__(self, errors: List[str]):
        self.errors = errors
        super().__init__(f"Configuration validation failed: {'; '.join(errors)}")


def mask_secret(value: str) -> str:
    if len(value) <= 8:
        return "*" * len(value)
    return f"{value[:4]}...{value[-4:]}"


_CAMEL_RE = re.compile(r"(?<!^)(?=[A-Z])")


def normalize_key(key: str) -> str:
    """Map the host's camelCase keys (``memoryLimitNumber``) to field names."""
    return _CAMEL_RE.sub("_", key).lower()


def normalize_keys(values: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    if not values:
        return {}
    return {normalize_key(str(k)): v for k, v in values.items()}


def parse_bool(value: Any, fallback: Optional[bool]) -> Optional[bool]:
    """Parse a boolean from a native bool or a truthy/falsy string.

    Args:
        value: Value to interpret.
        fallback: Returned when ``value`` is empty or not recognised.
    """
    if value is None or value == "":
        return fallback
    if isinstance(value, bool):
        return value
    normalized = str(value).strip().lower()
    if normalized in TRUTHY:
        return True
    if normalized in FALSY:
        return False
    return fallback


def parse_int_in_window(value: Any, minimum: int, maximum: int) -> Optional[int]:
    """Return ``value`` as an int inside ``[minimum, maximum]``, else None."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, float):
        if value != value or value in (float("inf"), float("-inf")):
            return None
        number = int(value)
    elif isinstance(value, int):
        number = value
    else:
        text = str(value).strip()
        if not re.fullmatch(r"[+-]?\d+", text):
            return None
        number = int(text)
    if number < minimum or number > maximum:
        return None
    return number


def _parse_str_list(value: Any) -> Optional[Tuple[str, ...]]:
    if value is None:
        return None
    if isinstance(value, str):
        items = [item.strip() for item in value.split(",")]
        return tuple(item for item in items if item)
    if isinstance(value, (list, tuple)):
        return tuple(str(item) for item in value if item is not None and str(item) != "")
    return None


class _Layers:
    """Candidate values for a field, in precedence order."""

    def __init__(self, overrides: Dict[str, Any], plugin_config: Dict[str, Any], env: EnvLookup):
        self._overrides = overrides
        self._plugin_config = plugin_config
        self._env = env

    def candidates(self, name: str) -> List[Any]:
        values = []
        for layer in (self._overrides, self._plugin_config):
            if name in layer and layer[name] is not None:
                values.append(layer[name])
        env_name = ENV_NAMES.get(name)
        if env_name:
            env_value = self._env.get(env_name)
            if env_value is not None and env_value != "":
                values.append(env_value)
        return values

    def text(self, name: str, default: str, allow_empty: bool = False) -> str:
        for value in self.candidates(name):
            if isinstance(value, (dict, list, tuple)):
                continue
            text = str(value)
            if text or allow_empty:
                return text
        return default

    def optional_text(self, name: str) -> Optional[str]:
        value = self.text(name, "")
        return value or None

    def choice(self, name: str, choices: Tuple[str, ...], default: str) -> str:
        for value in self.candidates(name):
            normalized = str(value).strip().lower()
            if normalized in choices:
                return normalized
        return default

    def boolean(self, name: str, default: bool) -> bool:
        for value in self.candidates(name):
            parsed = parse_bool(value, None)
            if parsed is not None:
                return parsed
        return default

    def number(self, name: str) -> int:
        minimum, maximum, default = NUMERIC_WINDOWS[name]
        for value in self.candidates(name):
            parsed = parse_int_in_window(value, minimum, maximum)
            if parsed is not None:
                return parsed
        return default

    def str_list(self, name: str, default: Tuple[str, ...]) -> Tuple[str, ...]:
        for value in self.candidates(name):
            parsed = _parse_str_list(value)
            if parsed is not None:
                return parsed
        return default

    def mapping(self, name: str) -> Dict[str, Any]:
        for value in self.candidates(name):
            if isinstance(value, Mapping):
                return dict(value)
        return {}

    def raw(self, name: str) -> Any:
        candidates = self.candidates(name)
        return candidates[0] if candidates else None


def build_config(
    plugin_config: Optional[Mapping[str, Any]] = None,
    env: Optional[EnvLookup] = None,
    overrides: Optional[Mapping[str, Any]] = None
) -> MemosConfig:
    """Resolve the effective configuration.

    Args:
        plugin_config: Static plugin configuration (snake_case or camelCase keys).
        env: Environment lookup; defaults to the well-known ``.env`` files.
        overrides: Runtime overrides; win over every other layer.

    Returns:
        A new MemosConfig. Numeric fields are always inside their windows.
    """
    layers = _Layers(
        normalize_keys(overrides),
        normalize_keys(plugin_config),
        env if env is not None else DotenvFileLookup(),
    )

    template = layers.text("prompt_template", "")
    state_path = layers.text("state_path", DEFAULT_STATE_PATH)

    return MemosConfig(
        base_url=layers.text("base_url", DEFAULT_BASE_URL).rstrip("/") or DEFAULT_BASE_URL,
        api_key=layers.text("api_key", "").strip(),
        user_id=layers.text("user_id", DEFAULT_USER_ID),
        source=layers.text("source", DEFAULT_SOURCE),
        timeout_ms=layers.number("timeout_ms"),
        retries=layers.number("retries"),
        conversation_id=layers.text("conversation_id", ""),
        conversation_id_prefix=layers.text("conversation_id_prefix", "", allow_empty=True),
        conversation_id_suffix=layers.text("conversation_id_suffix", "", allow_empty=True),
        conversation_suffix_mode=layers.choice("conversation_suffix_mode", SUFFIX_MODES, "none"),
        reset_on_new=layers.boolean("reset_on_new", True),
        recall_enabled=layers.boolean("recall_enabled", True),
        recall_global=layers.boolean("recall_global", True),
        query_prefix=layers.text("query_prefix", "", allow_empty=True),
        max_query_chars=layers.number("max_query_chars"),
        memory_limit_number=layers.number("memory_limit_number"),
        preference_limit_number=layers.number("preference_limit_number"),
        include_preference=layers.boolean("include_preference", True),
        include_tool_memory=layers.boolean("include_tool_memory", False),
        tool_memory_limit_number=layers.number("tool_memory_limit_number"),
        filter=layers.raw("filter"),
        knowledgebase_ids=layers.str_list("knowledgebase_ids", ()),
        add_enabled=layers.boolean("add_enabled", True),
        capture_strategy=layers.choice("capture_strategy", CAPTURE_STRATEGIES, "last_turn"),
        include_assistant=layers.boolean("include_assistant", True),
        max_message_chars=layers.number("max_message_chars"),
        throttle_ms=layers.number("throttle_ms"),
        tags=layers.str_list("tags", ("openclaw",)),
        info=layers.mapping("info"),
        agent_id=layers.optional_text("agent_id"),
        app_id=layers.optional_text("app_id"),
        allow_public=layers.boolean("allow_public", False),
        allow_knowledgebase_ids=layers.str_list("allow_knowledgebase_ids", ()),
        async_mode=layers.boolean("async_mode", True),
        ignore_heartbeats=layers.boolean("ignore_heartbeats", True),
        heartbeat_keywords=layers.str_list("heartbeat_keywords", DEFAULT_HEARTBEAT_KEYWORDS),
        debug_events=layers.boolean("debug_events", False),
        prompt_style=layers.choice("prompt_style", PROMPT_STYLES, "default"),
        prompt_template=template or None,
        max_item_chars=layers.number("max_item_chars"),
        dashboard_enabled=layers.boolean("dashboard_enabled", True),
        dashboard_host=layers.text("dashboard_host", "127.0.0.1"),
        dashboard_port=layers.number("dashboard_port"),
        state_path=str(Path(state_path).expanduser()),
    )


def validate_overrides(values: Any) -> Tuple[bool, List[str]]:
    """Validate a dashboard configuration update.

    Args:
        values: Raw JSON object received from the dashboard.

    Returns:
        Tuple of (is_valid, list_of_errors)
    """
    if not isinstance(values, Mapping):
        return False, ["Configuration update must be a JSON object."]

    errors: List[str] = []
    normalized = normalize_keys(values)

    unknown = sorted(name for name in normalized if name not in CONFIG_FIELDS)
    if unknown:
        errors.append(f"Unknown configuration fields: {', '.join(unknown)}.")

    for name, (minimum, maximum, message) in OVERRIDE_WINDOWS.items():
        if name in normalized and parse_int_in_window(normalized[name], minimum, maximum) is None:
            errors.append(message)

    return len(errors) == 0, errors
