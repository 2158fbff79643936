"""Shared fixtures for MemOS Cloud plugin tests."""

from unittest.mock import Mock

import pytest

from ..config import build_config
from ..env import MappingEnvLookup


@pytest.fixture
def empty_env():
    return MappingEnvLookup({})


@pytest.fixture
def make_config(empty_env, tmp_path):
    """Build a MemosConfig from keyword overrides, isolated from the host env."""

    def _make(**values):
        values.setdefault("state_path", str(tmp_path / "state.json"))
        return build_config(values, env=empty_env)

    return _make


def json_response(data, status_code=200):
    response = Mock()
    response.status_code = status_code
    response.json.return_value = data
    return response
