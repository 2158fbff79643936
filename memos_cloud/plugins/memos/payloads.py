"""Request bodies for the recall and capture endpoints."""

from typing import Any, Dict, Iterable, List, Optional

from .config import MemosConfig
from .conversation import ConversationIdentity
from .models import ChatMessage, SessionContext
from .prompts import USER_QUERY_MARKER, truncate


def strip_prepended_prompt(content: str) -> str:
    """Drop injected recall context from a user message.

    Everything up to and including the last query marker is removed, so the
    stored message is what the user actually typed.
    """
    if not content:
        return content
    idx = content.rfind(USER_QUERY_MARKER)
    if idx == -1:
        return content
    return content[idx + len(USER_QUERY_MARKER):].lstrip()


def _clean_message(message: ChatMessage, config: MemosConfig) -> Optional[Dict[str, str]]:
    if message.role == "user":
        content = strip_prepended_prompt(message.text)
    elif message.role == "assistant" and config.include_assistant:
        content = message.text
    else:
        return None
    if not content:
        return None
    return {"role": message.role, "content": truncate(content, config.max_message_chars)}


def _as_messages(messages: Iterable[Any]) -> List[ChatMessage]:
    result = []
    for item in messages or ():
        message = ChatMessage.from_value(item)
        if message is not None and message.role:
            result.append(message)
    return result


def pick_last_turn_messages(messages: Iterable[Any], config: MemosConfig) -> List[Dict[str, str]]:
    """Messages from the last user message onward, cleaned for storage."""
    items = _as_messages(messages)
    last_user = None
    for idx, message in enumerate(items):
        if message.role == "user":
            last_user = idx
    if last_user is None:
        return []

    results = []
    for message in items[last_user:]:
        cleaned = _clean_message(message, config)
        if cleaned:
            results.append(cleaned)
    return results


def pick_full_session_messages(messages: Iterable[Any], config: MemosConfig) -> List[Dict[str, str]]:
    """Every user (and optionally assistant) message, cleaned for storage."""
    results = []
    for message in _as_messages(messages):
        cleaned = _clean_message(message, config)
        if cleaned:
            results.append(cleaned)
    return results


def select_messages(messages: Iterable[Any], config: MemosConfig) -> List[Dict[str, str]]:
    if config.capture_strategy == "full_session":
        return pick_full_session_messages(messages, config)
    return pick_last_turn_messages(messages, config)


def build_search_payload(
    config: MemosConfig,
    prompt: str,
    ctx: Any,
    identity: ConversationIdentity
) -> Dict[str, Any]:
    """Build the recall request body.

    Args:
        config: Effective configuration.
        prompt: The user's prompt for this turn.
        ctx: Session context (mapping or SessionContext).
        identity: Resolver used when recall is scoped to the conversation.

    Returns:
        JSON-serializable dict for ``/search/memory``.
    """
    query = f"{config.query_prefix}{prompt}"
    if config.max_query_chars > 0:
        query = query[:config.max_query_chars]

    payload: Dict[str, Any] = {
        "user_id": config.user_id,
        "query": query,
        "source": config.source,
    }

    if not config.recall_global:
        conversation_id = identity.resolve(config, ctx)
        if conversation_id:
            payload["conversation_id"] = conversation_id

    if config.filter:
        payload["filter"] = config.filter
    if config.knowledgebase_ids:
        payload["knowledgebase_ids"] = list(config.knowledgebase_ids)

    payload["memory_limit_number"] = config.memory_limit_number
    payload["include_preference"] = config.include_preference
    payload["preference_limit_number"] = config.preference_limit_number
    payload["include_tool_memory"] = config.include_tool_memory
    payload["tool_memory_limit_number"] = config.tool_memory_limit_number
    return payload


def build_add_payload(
    config: MemosConfig,
    messages: List[Dict[str, str]],
    ctx: Any,
    identity: ConversationIdentity
) -> Dict[str, Any]:
    """Build the capture request body for already-selected messages."""
    session = SessionContext.from_value(ctx)
    payload: Dict[str, Any] = {
        "user_id": config.user_id,
        "conversation_id": identity.resolve(config, session),
        "messages": messages,
        "source": config.source,
    }

    if config.agent_id:
        payload["agent_id"] = config.agent_id
    if config.app_id:
        payload["app_id"] = config.app_id
    if config.tags:
        payload["tags"] = list(config.tags)

    info = {
        "source": config.source,
        "sessionKey": session.session_key,
        "agentId": session.agent_id,
    }
    info.update(config.info)
    info = {key: value for key, value in info.items() if value is not None}
    if info:
        payload["info"] = info

    payload["allow_public"] = config.allow_public
    if config.allow_knowledgebase_ids:
        payload["allow_knowledgebase_ids"] = list(config.allow_knowledgebase_ids)
    payload["async_mode"] = config.async_mode
    return payload
