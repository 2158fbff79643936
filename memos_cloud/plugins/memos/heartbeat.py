"""Heartbeat detection for lifecycle events.

Hosts periodically run synthetic keep-alive turns. Those must bypass recall
and capture, both to save API calls and to keep them out of long-term memory.

Detection is layered and short-circuits on the first match:
 1. Explicit event/context flags and reserved source/type tags
 2. Keyword match on the event prompt
 3. Keyword match on the most recent user message only
"""

from typing import Any, Dict, Iterable, Optional

from .config import DEFAULT_HEARTBEAT_KEYWORDS, MemosConfig
from .models import LifecycleEvent, SessionContext

HEARTBEAT_TAGS = ("heartbeat", "system_heartbeat")


def _contains_keyword(text: str, keywords: Iterable[str]) -> bool:
    return bool(text) and any(kw and kw in text for kw in keywords)


def last_user_text(event: LifecycleEvent) -> str:
    """Text of the last user-authored message, or "" if there is none."""
    for message in reversed(event.messages):
        if message.role == "user":
            return message.text
    return ""


def is_heartbeat_event(event: Any, ctx: Any, config: MemosConfig) -> bool:
    """Decide whether an event is a heartbeat that must skip the pipeline.

    Only the final user message is inspected in layer 3: an earlier
    heartbeat turn still sitting in the history must not mark a later,
    unrelated turn as a heartbeat.

    Args:
        event: LifecycleEvent or host mapping.
        ctx: SessionContext or host mapping (may be None).
        config: Effective plugin configuration.

    Returns:
        True if the event should be skipped.
    """
    if not config.ignore_heartbeats:
        return False

    event = LifecycleEvent.from_value(event)
    ctx = SessionContext.from_value(ctx)

    # Layer 1: explicit signals
    if event.is_heartbeat is True or ctx.is_heartbeat is True:
        return True
    if event.metadata.get("isHeartbeat") is True or event.metadata.get("is_heartbeat") is True:
        return True
    if event.type in HEARTBEAT_TAGS or event.source in HEARTBEAT_TAGS:
        return True
    if ctx.type in HEARTBEAT_TAGS or ctx.source in HEARTBEAT_TAGS:
        return True

    keywords = config.heartbeat_keywords or DEFAULT_HEARTBEAT_KEYWORDS

    # Layer 2: prompt keywords
    if _contains_keyword(event.prompt, keywords):
        return True

    # Layer 3: final user message keywords
    return _contains_keyword(last_user_text(event), keywords)


def debug_event_snapshot(event: Any, ctx: Any) -> Dict[str, Optional[Any]]:
    """Build a snapshot of every field the classifier inspects.

    Useful for finding out which flag a host actually sets on its
    heartbeat turns. Has no influence on classification.
    """
    event = LifecycleEvent.from_value(event)
    ctx = SessionContext.from_value(ctx)
    return {
        "event.isHeartbeat": event.is_heartbeat,
        "event.type": event.type,
        "event.source": event.source,
        "event.metadata": dict(event.metadata),
        "ctx.isHeartbeat": ctx.is_heartbeat,
        "ctx.type": ctx.type,
        "ctx.source": ctx.source,
        "ctx.sessionType": ctx.session_type,
        "promptPreview": event.prompt[:120],
        "lastUserPreview": last_user_text(event)[:120],
        "eventKeys": list(event.keys),
        "ctxKeys": list(ctx.keys),
    }
