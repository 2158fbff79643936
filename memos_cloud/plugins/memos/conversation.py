"""Conversation identity for recall and capture calls."""

import time
from typing import Any, Callable, Dict, Optional

from .config import MemosConfig
from .models import SessionContext


class ConversationIdentity:
    """Derives the conversation key under which memories are grouped.

    Holds one counter per session key. A counter only moves when the host
    signals "start a new conversation" (``bump``); resolving an id never
    changes state, so repeated calls with the same inputs agree.
    """

    def __init__(self, clock: Optional[Callable[[], float]] = None):
        self._counters: Dict[str, int] = {}
        self._clock = clock or time.time

    def counter(self, session_key: Optional[str]) -> int:
        if not session_key:
            return 0
        return self._counters.get(session_key, 0)

    def bump(self, session_key: Optional[str]) -> int:
        """Increment the counter for a session; returns the new value."""
        if not session_key:
            return 0
        value = self._counters.get(session_key, 0) + 1
        self._counters[session_key] = value
        return value

    def counters(self) -> Dict[str, int]:
        return dict(self._counters)

    def _dynamic_suffix(self, config: MemosConfig, session_key: Optional[str]) -> str:
        if config.conversation_suffix_mode != "counter":
            return ""
        current = self.counter(session_key)
        return f"#{current}" if current > 0 else ""

    def resolve(self, config: MemosConfig, ctx: Any = None) -> str:
        """Return the conversation id for a session context.

        A pinned ``config.conversation_id`` is returned unchanged. Otherwise
        the id is ``prefix + base + dynamic suffix + suffix`` where base is the
        session key, the session id, an agent-qualified key, or a synthetic
        timestamp key, in that order.
        """
        if config.conversation_id:
            return config.conversation_id

        ctx = SessionContext.from_value(ctx)
        dynamic = self._dynamic_suffix(config, ctx.session_key)
        prefix = config.conversation_id_prefix
        suffix = config.conversation_id_suffix

        if ctx.session_key:
            base = ctx.session_key
        elif ctx.session_id:
            base = ctx.session_id
        elif ctx.agent_id:
            base = f"{config.source}:{ctx.agent_id}"
        else:
            base = f"{config.source}-{int(self._clock() * 1000)}"
        return f"{prefix}{base}{dynamic}{suffix}"
