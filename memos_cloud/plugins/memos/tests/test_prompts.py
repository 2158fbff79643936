"""Tests for prompt formatting."""

from datetime import datetime

import pytest

from ..prompts import (
    USER_QUERY_MARKER,
    PromptOptions,
    clean_prompt_preview,
    format_context_block,
    format_memory_line,
    format_preference_line,
    format_prompt_block,
    format_time,
    get_prompt_preview,
    normalize_preference_type,
)


def _epoch_ms(year, month, day, hour, minute):
    return int(datetime(year, month, day, hour, minute).timestamp() * 1000)


ONE_FACT = {"data": {"memory_detail_list": [{"memory_value": "User lives in Lisbon."}]}}


class TestFormatTime:
    """Tests for timestamp rendering."""

    def test_epoch_millis(self):
        assert format_time(_epoch_ms(2024, 3, 5, 9, 7)) == "2024-03-05 09:07"

    def test_digit_string(self):
        assert format_time(str(_epoch_ms(2024, 3, 5, 9, 7))) == "2024-03-05 09:07"

    def test_other_strings_pass_through(self):
        assert format_time("  yesterday ") == "yesterday"

    @pytest.mark.parametrize("value", ["\u00b2", "12\u00b3", "\u0661\u0662"])
    def test_non_ascii_digits_are_not_epochs(self, value):
        assert format_time(value) == value

    @pytest.mark.parametrize("value", [None, "", "   ", True, {"a": 1}])
    def test_unusable_values(self, value):
        assert format_time(value) == ""


class TestNormalizePreferenceType:
    """Tests for preference labels."""

    def test_known_kinds(self):
        assert normalize_preference_type("explicit_preference") == "Explicit Preference"
        assert normalize_preference_type("IMPLICIT") == "Implicit Preference"

    def test_other_kinds_are_title_cased(self):
        assert normalize_preference_type("style_hint") == "Style Hint"
        assert normalize_preference_type("tone-rule") == "Tone Rule"

    def test_empty(self):
        assert normalize_preference_type(None) == ""
        assert normalize_preference_type("   ") == ""


class TestLines:
    """Tests for individual memory lines."""

    def test_fact_without_time(self):
        assert format_memory_line({}, "likes\ntea") == "   - likes tea"

    def test_fact_with_time(self):
        item = {"create_time": _epoch_ms(2024, 1, 2, 3, 4)}
        assert format_memory_line(item, "x") == "   -[2024-01-02 03:04] x"

    def test_fact_truncated(self):
        assert format_memory_line({}, "abcdefgh", max_item_chars=3) == "   - abc..."

    def test_blank_fact_is_dropped(self):
        assert format_memory_line({}, " \n ") == ""

    def test_preference_with_label(self):
        item = {"preference_type": "explicit"}
        assert format_preference_line(item, "short answers") == "   - [Explicit Preference] short answers"

    def test_preference_with_time_and_label(self):
        item = {"preference_type": "implicit", "create_time": _epoch_ms(2024, 1, 2, 3, 4)}
        assert format_preference_line(item, "p") == "   -[2024-01-02 03:04] [Implicit Preference] p"


class TestFormatPromptBlock:
    """Tests for format_prompt_block."""

    @pytest.mark.parametrize("raw", [
        None,
        "not a dict",
        {},
        {"data": None},
        {"data": {}},
        {"data": {"memory_detail_list": [], "preference_detail_list": []}},
        {"data": {"memory_detail_list": [{"memory_value": "  "}]}},
    ])
    def test_empty_results(self, raw):
        assert format_prompt_block(raw) == ""

    def test_single_fact_has_empty_preferences_section(self):
        block = format_prompt_block(ONE_FACT)

        assert "   - User lives in Lisbon." in block
        assert "  <preferences>\n  </preferences>" in block
        assert block.count("```text") == 1

    def test_memory_key_used_when_value_missing(self):
        raw = {"data": {"memory_detail_list": [{"memory_key": "Home city"}]}}
        assert "   - Home city" in format_prompt_block(raw)

    @pytest.mark.parametrize("options", [
        PromptOptions(style="default"),
        PromptOptions(style="compact"),
        PromptOptions(template="Known:\n{memories}"),
        PromptOptions(template="{memories}\n{userQueryMarker}"),
    ])
    def test_every_style_ends_with_marker(self, options):
        block = format_prompt_block(ONE_FACT, options)

        assert block.endswith(USER_QUERY_MARKER)
        assert block.count(USER_QUERY_MARKER) == 1

    def test_default_style_sections(self):
        block = format_prompt_block(ONE_FACT)

        assert block.startswith("# Role")
        for heading in ("Source Verification", "Attribution Check",
                        "Strong Relevance Check", "Freshness Check"):
            assert heading in block

    def test_custom_template_placeholders(self):
        options = PromptOptions(
            template="Now: {currentTime}\n{memories}",
            current_time=_epoch_ms(2025, 6, 1, 12, 0),
            wrap_tag_blocks=False,
        )
        block = format_prompt_block(ONE_FACT, options)

        assert block.startswith("Now: 2025-06-01 12:00\n<memories>")
        assert "```" not in block
        assert block.endswith("\n" + USER_QUERY_MARKER)

    def test_template_takes_priority_over_style(self):
        options = PromptOptions(style="compact", template="T {memories}")
        assert format_prompt_block(ONE_FACT, options).startswith("T ")

    def test_preferences_only(self):
        raw = {"data": {"preference_detail_list": [{"preference": "Use metric units", "preference_type": "explicit"}]}}
        block = format_prompt_block(raw)

        assert "  <facts>\n  </facts>" in block
        assert "   - [Explicit Preference] Use metric units" in block

    def test_odd_create_time_does_not_break_block(self):
        raw = {"data": {"memory_detail_list": [
            {"memory_value": "User's cat is Miso."},
            {"memory_value": "Other fact", "create_time": "\u00b2"},
        ]}}
        block = format_prompt_block(raw)

        assert "User's cat is Miso." in block
        assert "Other fact" in block


class TestContextBlock:
    """Tests for the plain debug listing."""

    def test_all_sections(self):
        raw = {"data": {
            "memory_detail_list": [{"memory_value": "fact one"}],
            "preference_detail_list": [{"preference": "brief", "preference_type": "explicit"}],
            "tool_memory_detail_list": [{"tool_value": "used grep"}],
            "preference_note": "note",
        }}

        assert format_context_block(raw) == "\n".join([
            "Facts:",
            "- fact one",
            "Preferences:",
            "- (explicit) brief",
            "Tool Memories:",
            "- used grep",
            "Preference Note: note",
        ])

    def test_invalid_response(self):
        assert format_context_block({"data": []}) == ""


class TestPreview:
    """Tests for the dashboard preview helpers."""

    def test_prompt_preview_uses_sample_data(self):
        preview = get_prompt_preview("compact")

        assert "Sample fact: user prefers dark mode." in preview
        assert "[Explicit Preference] Respond concisely." in preview
        assert preview.endswith(USER_QUERY_MARKER)

    def test_clean_strips_metadata_block(self):
        prompt = 'Recall result (untrusted metadata):\n```json\n{"a": 1}\n```\n\nhello there'
        assert clean_prompt_preview(prompt) == "hello there"

    def test_clean_strips_marker(self):
        assert clean_prompt_preview(f"{USER_QUERY_MARKER} question") == "question"

    def test_clean_limits_length(self):
        assert len(clean_prompt_preview("x" * 500)) == 100

    def test_clean_empty(self):
        assert clean_prompt_preview(None) == ""
