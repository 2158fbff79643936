"""Tests for configuration resolution and validation."""

import pytest

from ..config import (
    DEFAULT_BASE_URL,
    DEFAULT_HEARTBEAT_KEYWORDS,
    ConfigValidationError,
    build_config,
    mask_secret,
    normalize_key,
    parse_bool,
    parse_int_in_window,
    validate_overrides,
)
from ..env import MappingEnvLookup


class TestParseBool:
    """Tests for boolean parsing."""

    @pytest.mark.parametrize("value", ["1", "true", "YES", " y ", "On", True])
    def test_truthy(self, value):
        assert parse_bool(value, False) is True

    @pytest.mark.parametrize("value", ["0", "false", "No", "n", "OFF", False])
    def test_falsy(self, value):
        assert parse_bool(value, True) is False

    @pytest.mark.parametrize("value", [None, "", "maybe", "2"])
    def test_unrecognised_returns_fallback(self, value):
        assert parse_bool(value, True) is True
        assert parse_bool(value, None) is None


class TestParseIntInWindow:
    """Tests for numeric window parsing."""

    def test_accepts_in_range(self):
        assert parse_int_in_window("42", 0, 100) == 42
        assert parse_int_in_window(7, 0, 100) == 7
        assert parse_int_in_window(7.9, 0, 100) == 7

    def test_rejects_out_of_range(self):
        assert parse_int_in_window(101, 0, 100) is None
        assert parse_int_in_window("-1", 0, 100) is None

    def test_rejects_non_numeric(self):
        assert parse_int_in_window("abc", 0, 100) is None
        assert parse_int_in_window("4.5", 0, 100) is None
        assert parse_int_in_window(True, 0, 100) is None
        assert parse_int_in_window(float("nan"), 0, 100) is None


class TestBuildConfig:
    """Tests for layered config resolution."""

    def test_defaults(self, empty_env):
        config = build_config(env=empty_env)

        assert config.base_url == DEFAULT_BASE_URL
        assert config.api_key == ""
        assert config.memory_limit_number == 10
        assert config.preference_limit_number == 10
        assert config.tool_memory_limit_number == 6
        assert config.timeout_ms == 5000
        assert config.retries == 1
        assert config.max_message_chars == 20000
        assert config.recall_global is True
        assert config.capture_strategy == "last_turn"
        assert config.tags == ("openclaw",)
        assert config.heartbeat_keywords == DEFAULT_HEARTBEAT_KEYWORDS
        assert config.dashboard_port == 9898

    def test_precedence(self):
        env = MappingEnvLookup({"MEMOS_USER_ID": "from-env"})

        assert build_config(env=env).user_id == "from-env"
        assert build_config({"user_id": "from-plugin"}, env=env).user_id == "from-plugin"
        assert build_config(
            {"user_id": "from-plugin"}, env=env, overrides={"user_id": "from-override"}
        ).user_id == "from-override"

    def test_env_numbers_are_parsed(self):
        env = MappingEnvLookup({"MEMOS_TIMEOUT_MS": "7000", "MEMOS_RETRIES": "3"})
        config = build_config(env=env)

        assert config.timeout_ms == 7000
        assert config.retries == 3

    def test_invalid_number_falls_back_to_default(self):
        env = MappingEnvLookup({"MEMOS_TIMEOUT_MS": "soon", "MEMOS_RETRIES": "99"})
        config = build_config(env=env)

        assert config.timeout_ms == 5000
        assert config.retries == 1

    def test_invalid_layer_falls_through_to_next(self):
        env = MappingEnvLookup({"MEMOS_TIMEOUT_MS": "7000"})
        config = build_config({"timeout_ms": 0}, env=env)

        assert config.timeout_ms == 7000

    def test_out_of_window_limit_uses_default(self, empty_env):
        config = build_config({"memory_limit_number": 500}, env=empty_env)
        assert config.memory_limit_number == 10

    def test_camel_case_keys(self, empty_env):
        config = build_config(
            {"memoryLimitNumber": 5, "conversationIdPrefix": "p-", "includeAssistant": "false"},
            env=empty_env,
        )

        assert config.memory_limit_number == 5
        assert config.conversation_id_prefix == "p-"
        assert config.include_assistant is False

    def test_base_url_trailing_slash_removed(self, empty_env):
        config = build_config({"base_url": "https://example.test/api/"}, env=empty_env)
        assert config.base_url == "https://example.test/api"

    def test_unknown_choice_uses_default(self, empty_env):
        config = build_config(
            {"capture_strategy": "everything", "prompt_style": "COMPACT"},
            env=empty_env,
        )

        assert config.capture_strategy == "last_turn"
        assert config.prompt_style == "compact"

    def test_keyword_list_from_string(self):
        env = MappingEnvLookup({})
        config = build_config({"heartbeat_keywords": "PING, PONG,"}, env=env)
        assert config.heartbeat_keywords == ("PING", "PONG")

    def test_env_booleans(self):
        env = MappingEnvLookup({"MEMOS_RECALL_GLOBAL": "no", "MEMOS_IGNORE_HEARTBEATS": "0"})
        config = build_config(env=env)

        assert config.recall_global is False
        assert config.ignore_heartbeats is False

    def test_config_is_immutable(self, empty_env):
        config = build_config(env=empty_env)
        with pytest.raises(Exception):
            config.retries = 3


class TestMasking:
    """Tests for secret masking."""

    def test_mask_long_secret(self):
        assert mask_secret("mpg-1234567890") == "mpg-...7890"

    def test_mask_short_secret(self):
        assert mask_secret("abc") == "***"

    def test_to_dict_masks_api_key(self, empty_env):
        config = build_config({"api_key": "mpg-1234567890"}, env=empty_env)
        data = config.to_dict()

        assert data["api_key"] == "mpg-...7890"
        assert data["tags"] == ["openclaw"]
        assert config.to_dict(mask_secrets=False)["api_key"] == "mpg-1234567890"


class TestValidateOverrides:
    """Tests for dashboard override validation."""

    def test_valid_update(self):
        valid, errors = validate_overrides({"memoryLimitNumber": 20, "timeout_ms": 800})
        assert valid is True
        assert errors == []

    def test_port_out_of_range(self):
        valid, errors = validate_overrides({"dashboard_port": 80})
        assert valid is False
        assert any("1024" in e for e in errors)

    def test_timeout_too_small(self):
        valid, errors = validate_overrides({"timeoutMs": 100})
        assert valid is False
        assert any("timeout" in e.lower() for e in errors)

    def test_limit_out_of_range(self):
        valid, errors = validate_overrides({"preference_limit_number": 101})
        assert valid is False

    def test_unknown_field(self):
        valid, errors = validate_overrides({"favourite_colour": "blue"})
        assert valid is False
        assert "favourite_colour" in errors[0]

    def test_non_mapping(self):
        valid, errors = validate_overrides(["not", "a", "dict"])
        assert valid is False

    def test_validation_error_carries_errors(self):
        error = ConfigValidationError(["a", "b"])
        assert error.errors == ["a", "b"]
        assert "a; b" in str(error)


def test_normalize_key():
    assert normalize_key("conversationIdPrefix") == "conversation_id_prefix"
    assert normalize_key("memory_limit_number") == "memory_limit_number"
