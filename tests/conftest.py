"""Pytest configuration and shared fixtures."""
import io

import pytest

from kernel_chat.backend import ChatBackendClient
from kernel_chat.config import BackendSettings, ChatConfig
from kernel_chat.messages import ConversationHistory
from kernel_chat.plugins import MathPlugin, TimePlugin
from kernel_chat.tool_registry import ToolRegistry


class ScriptedBackend(ChatBackendClient):
    """Backend that replays one scripted fragment list per call.

    A script item that is an exception instance is raised at that point in
    the stream instead of being yielded.
    """

    def __init__(self, scripts):
        self.scripts = list(scripts)
        self.calls = []
        self.closed = False

    async def stream_completion(self, history, tools):
        self.calls.append({"history": tuple(history), "tools": list(tools)})
        script = self.scripts.pop(0)
        for item in script:
            if isinstance(item, Exception):
                raise item
            yield item

    async def close(self):
        self.closed = True


@pytest.fixture
def registry():
    """Registry with the math and time tools."""
    registry = ToolRegistry()
    registry.register_plugin(MathPlugin())
    registry.register_plugin(TimePlugin(timezone_offset=0, timezone_name="UTC"))
    return registry


@pytest.fixture
def history():
    return ConversationHistory("You are a helpful assistant.")


@pytest.fixture
def output():
    return io.StringIO()


@pytest.fixture
def chat_config():
    return ChatConfig(
        backend=BackendSettings(kind="local", model="test-model", endpoint="http://localhost:5273/v1"),
        request_timeout=5.0,
    )


@pytest.fixture
def make_backend():
    return ScriptedBackend
