"""Data models for the MemOS Cloud plugin."""

import copy
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional


class EventKind(Enum):
    """Kind of a telemetry event recorded by the plugin."""

    SEARCH = "search"
    ADD = "add"
    HEARTBEAT_FILTERED = "heartbeat_filtered"
    ERROR = "error"
    SEARCH_ERROR = "search_error"
    ADD_ERROR = "add_error"

    @property
    def is_error(self) -> bool:
        return self in (EventKind.ERROR, EventKind.SEARCH_ERROR, EventKind.ADD_ERROR)


def _get(data: Mapping[str, Any], *keys: str) -> Any:
    """Return the first present value among several spellings of a key."""
    for key in keys:
        if key in data:
            return data[key]
    return None


def extract_text(content: Any) -> str:
    """Flatten message content into plain text.

    Strings pass through; lists of content blocks contribute the ``text`` of
    every ``{"type": "text"}`` block, joined by spaces. Anything else is "".
    """
    if not content:
        return ""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        return " ".join(
            str(block.get("text") or "")
            for block in content
            if isinstance(block, Mapping) and block.get("type") == "text"
        )
    return ""


@dataclass
class ChatMessage:
    """A single role-tagged message of a turn.

    Attributes:
        role: "user", "assistant", "system", "tool", ...
        content: Either a plain string or a list of content blocks
            (``{"type": "text", "text": "..."}``); other block types are ignored.
    """
    role: str
    content: Any = ""

    @property
    def text(self) -> str:
        return extract_text(self.content)

    @classmethod
    def from_value(cls, value: Any) -> Optional['ChatMessage']:
        if isinstance(value, ChatMessage):
            return value
        if isinstance(value, Mapping):
            return cls(role=str(value.get("role") or ""), content=value.get("content"))
        return None


@dataclass
class LifecycleEvent:
    """One turn-start or turn-end notification from the host.

    Read-only to the pipeline. Hosts that deliver plain dicts go through
    ``from_dict``, which accepts both snake_case and the host's camelCase keys.
    """
    prompt: str = ""
    messages: List[ChatMessage] = field(default_factory=list)
    success: bool = False
    type: Optional[str] = None
    source: Optional[str] = None
    action: Optional[str] = None
    session_key: Optional[str] = None
    is_heartbeat: Optional[bool] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    keys: List[str] = field(default_factory=list)
    """Field names present on the original host payload (for debugging)."""

    @classmethod
    def from_value(cls, value: Any) -> 'LifecycleEvent':
        if isinstance(value, LifecycleEvent):
            return value
        if isinstance(value, Mapping):
            return cls.from_dict(value)
        return cls()

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'LifecycleEvent':
        raw_messages = data.get("messages")
        messages: List[ChatMessage] = []
        if isinstance(raw_messages, list):
            for item in raw_messages:
                message = ChatMessage.from_value(item)
                if message is not None:
                    messages.append(message)
        metadata = data.get("metadata")
        prompt = data.get("prompt")
        return cls(
            prompt=prompt if isinstance(prompt, str) else "",
            messages=messages,
            success=data.get("success") is True,
            type=data.get("type"),
            source=data.get("source"),
            action=data.get("action"),
            session_key=_get(data, "session_key", "sessionKey"),
            is_heartbeat=_get(data, "is_heartbeat", "isHeartbeat"),
            metadata=dict(metadata) if isinstance(metadata, Mapping) else {},
            keys=list(data.keys()),
        )


@dataclass
class SessionContext:
    """Host-supplied session and agent identity for one event."""
    session_key: Optional[str] = None
    session_id: Optional[str] = None
    agent_id: Optional[str] = None
    is_heartbeat: Optional[bool] = None
    type: Optional[str] = None
    source: Optional[str] = None
    session_type: Optional[str] = None
    keys: List[str] = field(default_factory=list)

    @classmethod
    def from_value(cls, value: Any) -> 'SessionContext':
        if isinstance(value, SessionContext):
            return value
        if isinstance(value, Mapping):
            return cls.from_dict(value)
        return cls()

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'SessionContext':
        return cls(
            session_key=_get(data, "session_key", "sessionKey"),
            session_id=_get(data, "session_id", "sessionId"),
            agent_id=_get(data, "agent_id", "agentId"),
            is_heartbeat=_get(data, "is_heartbeat", "isHeartbeat"),
            type=data.get("type"),
            source=data.get("source"),
            session_type=_get(data, "session_type", "sessionType"),
            keys=list(data.keys()),
        )


@dataclass
class MemoryResult:
    """Parsed payload of a recall response.

    Exists only within one recall call; nothing here is persisted.
    """
    facts: List[Dict[str, Any]] = field(default_factory=list)
    preferences: List[Dict[str, Any]] = field(default_factory=list)
    tool_memories: List[Dict[str, Any]] = field(default_factory=list)
    preference_note: Optional[str] = None

    @staticmethod
    def _records(value: Any) -> List[Dict[str, Any]]:
        if not isinstance(value, list):
            return []
        return [item for item in value if isinstance(item, dict)]

    @classmethod
    def from_data(cls, data: Mapping[str, Any]) -> 'MemoryResult':
        note = data.get("preference_note")
        return cls(
            facts=cls._records(data.get("memory_detail_list")),
            preferences=cls._records(data.get("preference_detail_list")),
            tool_memories=cls._records(data.get("tool_memory_detail_list")),
            preference_note=str(note) if note else None,
        )

    @classmethod
    def from_response(cls, raw: Any) -> Optional['MemoryResult']:
        """Unwrap the transport envelope (``{"data": {...}}``).

        Returns:
            MemoryResult, or None if the response carries no usable payload.
        """
        if not isinstance(raw, Mapping):
            return None
        data = raw.get("data")
        if not isinstance(data, Mapping):
            return None
        return cls.from_data(data)

    @property
    def is_empty(self) -> bool:
        return not (self.facts or self.preferences or self.tool_memories or self.preference_note)


@dataclass
class StatEvent:
    """One entry of the telemetry ring buffer."""
    id: int
    timestamp: str
    kind: EventKind
    prompt_preview: str = ""
    action: Optional[str] = None
    duration_ms: Optional[int] = None
    error: Optional[str] = None
    debug: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        """Serialize using the wire names the dashboard expects."""
        return {
            "id": self.id,
            "timestamp": self.timestamp,
            "type": self.kind.value,
            "promptPreview": self.prompt_preview,
            "action": self.action or self.kind.value,
            "durationMs": self.duration_ms,
            "error": self.error,
            "debug": copy.deepcopy(self.debug) if self.debug is not None else None,
        }


@dataclass
class StatsCounters:
    """Aggregate totals since the collector started."""
    total_events: int = 0
    heartbeats_filtered: int = 0
    search_calls: int = 0
    add_calls: int = 0
    errors: int = 0
    started_at: Optional[str] = None

    _WIRE_NAMES = {
        "total_events": "totalEvents",
        "heartbeats_filtered": "heartbeatsFiltered",
        "search_calls": "searchCalls",
        "add_calls": "addCalls",
        "errors": "errors",
        "started_at": "startedAt",
    }

    def to_dict(self) -> Dict[str, Any]:
        return {wire: getattr(self, attr) for attr, wire in self._WIRE_NAMES.items()}

    def restore(self, data: Mapping[str, Any]) -> None:
        """Load counter values from a snapshot; ``startedAt`` is never restored."""
        for attr, wire in self._WIRE_NAMES.items():
            if attr == "started_at":
                continue
            value = data.get(wire)
            if isinstance(value, int) and not isinstance(value, bool) and value >= 0:
                setattr(self, attr, value)
