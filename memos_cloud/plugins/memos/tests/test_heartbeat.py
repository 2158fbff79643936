"""Tests for heartbeat classification."""

from ..heartbeat import debug_event_snapshot, is_heartbeat_event
from ..models import LifecycleEvent


class TestIsHeartbeatEvent:
    """Tests for the layered heartbeat classifier."""

    def test_disabled_never_matches(self, make_config):
        config = make_config(ignore_heartbeats=False)
        assert is_heartbeat_event({"isHeartbeat": True}, None, config) is False

    def test_explicit_event_flag(self, make_config):
        assert is_heartbeat_event({"isHeartbeat": True, "prompt": "hi"}, None, make_config())

    def test_explicit_context_flag(self, make_config):
        assert is_heartbeat_event({"prompt": "hi"}, {"isHeartbeat": True}, make_config())

    def test_metadata_flag(self, make_config):
        event = {"prompt": "hi", "metadata": {"isHeartbeat": True}}
        assert is_heartbeat_event(event, None, make_config())

    def test_reserved_tags(self, make_config):
        config = make_config()
        assert is_heartbeat_event({"type": "heartbeat"}, None, config)
        assert is_heartbeat_event({"source": "system_heartbeat"}, None, config)
        assert is_heartbeat_event({}, {"source": "heartbeat"}, config)
        assert is_heartbeat_event({}, {"type": "system_heartbeat"}, config)
        assert not is_heartbeat_event({"prompt": "hello there"}, {"type": "direct"}, config)

    def test_prompt_keyword(self, make_config):
        event = {"prompt": "Read HEARTBEAT.md and reply HEARTBEAT_OK"}
        assert is_heartbeat_event(event, None, make_config())

    def test_custom_keywords(self, make_config):
        config = make_config(heartbeat_keywords=["PING"])
        assert is_heartbeat_event({"prompt": "PING"}, None, config)
        assert not is_heartbeat_event({"prompt": "HEARTBEAT_OK"}, None, config)

    def test_last_user_message_keyword(self, make_config):
        event = {
            "prompt": "",
            "messages": [
                {"role": "user", "content": [{"type": "text", "text": "HEARTBEAT_OK"}]},
            ],
        }
        assert is_heartbeat_event(event, None, make_config())

    def test_earlier_heartbeat_message_is_ignored(self, make_config):
        event = {
            "prompt": "What's on my calendar?",
            "messages": [
                {"role": "user", "content": "HEARTBEAT_OK"},
                {"role": "assistant", "content": "HEARTBEAT_OK"},
                {"role": "user", "content": "What's on my calendar?"},
            ],
        }
        assert is_heartbeat_event(event, None, make_config()) is False

    def test_keyword_in_assistant_reply_is_ignored(self, make_config):
        event = {
            "prompt": "status?",
            "messages": [
                {"role": "user", "content": "status?"},
                {"role": "assistant", "content": "HEARTBEAT_OK"},
            ],
        }
        assert is_heartbeat_event(event, None, make_config()) is False

    def test_ordinary_event(self, make_config):
        event = LifecycleEvent(prompt="Tell me a joke")
        assert is_heartbeat_event(event, {"sessionKey": "s"}, make_config()) is False


def test_debug_event_snapshot():
    event = {
        "prompt": "x" * 200,
        "type": "agent",
        "metadata": {"k": 1},
        "messages": [{"role": "user", "content": "last one"}],
    }
    snapshot = debug_event_snapshot(event, {"sessionType": "dm", "source": "chat"})

    assert snapshot["event.type"] == "agent"
    assert snapshot["event.metadata"] == {"k": 1}
    assert snapshot["ctx.sessionType"] == "dm"
    assert snapshot["ctx.source"] == "chat"
    assert snapshot["ctx.type"] is None
    assert len(snapshot["promptPreview"]) == 120
    assert snapshot["lastUserPreview"] == "last one"
    assert "prompt" in snapshot["eventKeys"]
    assert snapshot["ctxKeys"] == ["sessionType", "source"]
