"""Prompt assembly from recalled memory records.

The rendered block is prepended to the user's prompt. Every style ends with
USER_QUERY_MARKER; capture relies on that exact token to cut injected
context off user messages before storing them.
"""

import re
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional

from .models import MemoryResult

USER_QUERY_MARKER = "user​原​始​query​：​​​​"

AI_INFERENCE_TAGS = "'[assistant观点]' or '[模型总结]'"


@dataclass
class PromptOptions:
    """Rendering options for format_prompt_block.

    Attributes:
        style: "default" or "compact"; ignored when template is set.
        template: Custom template with {memories}, {currentTime} and
            {userQueryMarker} placeholders.
        max_item_chars: Truncate each record to this many chars (0 = no limit).
        wrap_tag_blocks: Wrap the <memories> block in a text code fence.
        current_time: Epoch milliseconds used for the "current time" line.
    """
    style: str = "default"
    template: Optional[str] = None
    max_item_chars: int = 0
    wrap_tag_blocks: bool = True
    current_time: Optional[float] = None


def truncate(text: str, max_len: int) -> str:
    """Cut ``text`` to ``max_len`` chars, appending "..." when cut; 0 disables."""
    if not text:
        return ""
    if not max_len or max_len <= 0:
        return text
    return f"{text[:max_len]}..." if len(text) > max_len else text


_EPOCH_DIGITS_RE = re.compile(r"[0-9]+")


def format_time(value: Any) -> str:
    """Render an epoch-milliseconds value as local ``YYYY-MM-DD HH:MM``.

    ASCII digit-only strings are treated as epoch milliseconds; other strings are
    returned trimmed. Unparseable values render as "".
    """
    if value is None or value == "" or isinstance(value, bool):
        return ""
    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value / 1000).strftime("%Y-%m-%d %H:%M")
        except (OverflowError, OSError, ValueError):
            return ""
    if isinstance(value, str):
        trimmed = value.strip()
        if not trimmed:
            return ""
        if _EPOCH_DIGITS_RE.fullmatch(trimmed):
            return format_time(int(trimmed))
        return trimmed
    return ""


def normalize_preference_type(value: Any) -> str:
    if not value:
        return ""
    normalized = str(value).strip().lower()
    if not normalized:
        return ""
    if "explicit" in normalized:
        return "Explicit Preference"
    if "implicit" in normalized:
        return "Implicit Preference"
    spaced = re.sub(r"[_-]+", " ", str(value))
    return re.sub(r"\b\w", lambda m: m.group(0).upper(), spaced)


def sanitize_inline_text(text: Any) -> str:
    if text is None:
        return ""
    return re.sub(r"(\r?\n)+", " ", str(text)).strip()


def _fact_text(item: Mapping[str, Any]) -> Any:
    return item.get("memory_value") or item.get("memory_key") or ""


def format_memory_line(item: Mapping[str, Any], text: Any, max_item_chars: int = 0) -> str:
    cleaned = sanitize_inline_text(text)
    if not cleaned:
        return ""
    truncated = truncate(cleaned, max_item_chars)
    when = format_time(item.get("create_time"))
    if when:
        return f"   -[{when}] {truncated}"
    return f"   - {truncated}"


def format_preference_line(item: Mapping[str, Any], text: Any, max_item_chars: int = 0) -> str:
    cleaned = sanitize_inline_text(text)
    if not cleaned:
        return ""
    truncated = truncate(cleaned, max_item_chars)
    when = format_time(item.get("create_time"))
    label = normalize_preference_type(item.get("preference_type"))
    label = f" [{label}]" if label else ""
    if when:
        return f"   -[{when}]{label} {truncated}"
    return f"   -{label} {truncated}"


def build_memories_block(memory_lines: List[str], preference_lines: List[str], wrap: bool = True) -> str:
    block = [
        "<memories>",
        "  <facts>",
        *memory_lines,
        "  </facts>",
        "  <preferences>",
        *preference_lines,
        "  </preferences>",
        "</memories>",
    ]
    if wrap:
        block = ["```text", *block, "```"]
    return "\n".join(block)


def build_default_prompt(now_text: str, memories_block: str) -> str:
    return "\n".join([
        "# Role",
        "",
        "You are an intelligent assistant with long-term memory capabilities (MemOS Assistant). "
        "Your goal is to combine retrieved memory fragments to provide highly personalized, "
        "accurate, and logically rigorous responses.",
        "",
        "# System Context",
        "",
        f"* Current Time: {now_text} (Use this as the baseline for freshness checks)",
        "",
        "# Memory Data",
        "",
        'Below is the information retrieved by MemOS, categorized into "Facts" and "Preferences".',
        "* **Facts**: May include user attributes, historical conversations, or third-party details.",
        f"* **Special Note**: Content tagged with {AI_INFERENCE_TAGS} represents **past AI inference**, "
        "**not** direct user statements.",
        "* **Preferences**: The user's explicit or implicit requirements on response style, format, or reasoning.",
        "",
        memories_block,
        "",
        "# Critical Protocol: Memory Safety",
        "",
        "Retrieved memories may contain **AI speculation**, **irrelevant noise**, or **wrong subject "
        "attribution**. You must strictly apply the **Four-Step Verdict**. If any step fails, "
        "**discard the memory**:",
        "",
        "1. **Source Verification**:",
        "* **Core**: Distinguish direct user statements from AI inference.",
        f"* If a memory has tags like {AI_INFERENCE_TAGS}, treat it as a **hypothesis**, "
        "not a user-grounded fact.",
        "* *Counterexample*: If memory says '[assistant观点] User loves mangoes' but the user never "
        "said that, do not assume it as fact.",
        "* **Principle: AI summaries are reference-only and have much lower authority than direct "
        "user statements.**",
        "",
        "2. **Attribution Check**:",
        "* Is the subject in memory definitely the user?",
        "* If the memory describes a **third party** (e.g., candidate, interviewee, fictional "
        "character, case data), never attribute it to the user.",
        "",
        "3. **Strong Relevance Check**:",
        "* Does the memory directly help answer the current 'Original Query'?",
        "* If it is only a keyword overlap with different context, ignore it.",
        "",
        "4. **Freshness Check**:",
        "* If memory conflicts with the user's latest intent, prioritize the current 'Original Query' "
        "as the highest source of truth.",
        "",
        "# Instructions",
        "",
        "1. **Review**: Read '<facts>' first and apply the Four-Step Verdict to remove noise and "
        "unreliable AI inference.",
        "2. **Execute**:",
        "   - Use only memories that pass filtering as context.",
        "   - Strictly follow style requirements from '<preferences>'.",
        '3. **Output**: Answer directly. Never mention internal terms such as "memory store", '
        '"retrieval", or "AI opinions".',
        "4. **Attention**: Additional memory context is already provided. Do not read from or write "
        "to local `MEMORY.md` or `memory/*` files for reference, as they may be outdated or "
        "irrelevant to the current query.",
        USER_QUERY_MARKER,
    ])


def build_compact_prompt(now_text: str, memories_block: str) -> str:
    return "\n".join([
        "You have long-term memory. Use the retrieved facts and preferences below to personalise "
        "your response.",
        "",
        f"Current Time: {now_text}",
        "",
        memories_block,
        "",
        "Guidelines:",
        "- Discard any memory that is irrelevant, misattributed, or conflicts with the user's "
        "current query.",
        f"- Content tagged {AI_INFERENCE_TAGS} is past AI inference; treat it as low-confidence.",
        "- Prioritise the current query over older memories.",
        "- Follow style/format requirements from <preferences>.",
        "- Never mention memory retrieval internals to the user.",
        "- Do not read or write local MEMORY.md / memory/* files.",
        USER_QUERY_MARKER,
    ])


def build_custom_prompt(template: str, now_text: str, memories_block: str) -> str:
    prompt = (
        template
        .replace("{memories}", memories_block)
        .replace("{currentTime}", now_text)
        .replace("{userQueryMarker}", USER_QUERY_MARKER)
    )
    if USER_QUERY_MARKER not in prompt:
        prompt += "\n" + USER_QUERY_MARKER
    return prompt


def build_prompt_from_result(result: MemoryResult, options: Optional[PromptOptions] = None) -> str:
    """Render a MemoryResult; "" when no fact or preference line survives cleaning."""
    options = options or PromptOptions()
    now = options.current_time if options.current_time is not None else time.time() * 1000
    now_text = format_time(now) or format_time(time.time() * 1000)

    memory_lines = [
        line for line in (
            format_memory_line(item, _fact_text(item), options.max_item_chars)
            for item in result.facts
        ) if line
    ]
    preference_lines = [
        line for line in (
            format_preference_line(item, item.get("preference") or "", options.max_item_chars)
            for item in result.preferences
        ) if line
    ]
    if not memory_lines and not preference_lines:
        return ""

    memories_block = build_memories_block(memory_lines, preference_lines, options.wrap_tag_blocks)

    if options.template:
        return build_custom_prompt(options.template, now_text, memories_block)
    if options.style == "compact":
        return build_compact_prompt(now_text, memories_block)
    return build_default_prompt(now_text, memories_block)


def format_prompt_block(raw: Any, options: Optional[PromptOptions] = None) -> str:
    """Turn a raw recall response into an injectable prompt block.

    Args:
        raw: Decoded JSON response (``{"data": {...}}``).
        options: Rendering options.

    Returns:
        The prompt block, or "" if the response holds nothing usable.
    """
    result = MemoryResult.from_response(raw)
    if result is None:
        return ""
    return build_prompt_from_result(result, options)


def format_context_block(raw: Any, max_item_chars: int = 0) -> str:
    """Render a plain listing of every recalled record kind.

    Unlike the prompt block this also lists tool memories and the
    preference note. Used for debug output.
    """
    result = MemoryResult.from_response(raw)
    if result is None:
        return ""

    lines: List[str] = []
    if result.facts:
        lines.append("Facts:")
        for item in result.facts:
            text = _fact_text(item)
            if text:
                lines.append(f"- {truncate(str(text), max_item_chars)}")

    if result.preferences:
        lines.append("Preferences:")
        for item in result.preferences:
            preference = item.get("preference") or ""
            if not preference:
                continue
            kind = f"({item['preference_type']}) " if item.get("preference_type") else ""
            lines.append(f"- {kind}{truncate(str(preference), max_item_chars)}")

    if result.tool_memories:
        lines.append("Tool Memories:")
        for item in result.tool_memories:
            value = item.get("tool_value") or ""
            if value:
                lines.append(f"- {truncate(str(value), max_item_chars)}")

    if result.preference_note:
        lines.append(f"Preference Note: {truncate(result.preference_note, max_item_chars)}")

    return "\n".join(lines)


def get_prompt_preview(style: str = "default", template: Optional[str] = None) -> str:
    """Render sample memories with the given style (dashboard preview)."""
    sample: Dict[str, Any] = {
        "memory_detail_list": [
            {"memory_value": "Sample fact: user prefers dark mode.", "create_time": int(time.time() * 1000)},
        ],
        "preference_detail_list": [
            {"preference": "Respond concisely.", "preference_type": "explicit"},
        ],
    }
    return build_prompt_from_result(
        MemoryResult.from_data(sample),
        PromptOptions(style=style, template=template, wrap_tag_blocks=True),
    )


_METADATA_BLOCK_RES = (
    re.compile(r"^Conversation info \(untrusted metadata\):[\s\S]*?```json[\s\S]*?```\n*", re.IGNORECASE),
    re.compile(r"^Recall result \(untrusted metadata\):[\s\S]*?```json[\s\S]*?```\n*", re.IGNORECASE),
)
_HEADER_RE = re.compile(
    r"^# (Role|System Context|Memory Data)[\s\S]*?(?=# (System Context|Memory Data|Instructions|Original Query)|$)",
    re.IGNORECASE,
)


def clean_prompt_preview(prompt: Optional[str], limit: int = 100) -> str:
    """Strip host metadata blocks and injected headers for log previews."""
    if not prompt:
        return ""
    text = prompt
    for pattern in _METADATA_BLOCK_RES:
        text = pattern.sub("", text, count=1)
    text = _HEADER_RE.sub("", text)
    text = text.replace(USER_QUERY_MARKER, "", 1)
    return text.strip()[:limit]
