"""Unit tests for the OpenAI chat backend."""
import json
from types import SimpleNamespace

import httpx
import openai
import pytest

from kernel_chat.backend import (
    ChatBackendClient,
    End,
    OpenAIChatBackend,
    TextChunk,
    ToolCallRequested,
    message_to_openai,
    translate_openai_error,
)
from kernel_chat.config import BackendSettings
from kernel_chat.errors import (
    BackendProtocolError,
    BackendRateLimitError,
    BackendUnavailableError,
    ConfigurationError,
)
from kernel_chat.messages import Message
from kernel_chat.tool_registry import ToolInvocationRequest

REQUEST = httpx.Request("POST", "https://example.invalid/v1/chat/completions")


def status_error(cls, status):
    response = httpx.Response(status, request=REQUEST)
    return cls("failed", response=response, body=None)


def text_chunk(content):
    delta = SimpleNamespace(content=content, tool_calls=None)
    return SimpleNamespace(choices=[SimpleNamespace(delta=delta)])


def tool_chunk(index, call_id=None, name=None, arguments=None):
    function = SimpleNamespace(name=name, arguments=arguments)
    tool_call = SimpleNamespace(index=index, id=call_id, function=function)
    delta = SimpleNamespace(content=None, tool_calls=[tool_call])
    return SimpleNamespace(choices=[SimpleNamespace(delta=delta)])


class FakeStream:
    def __init__(self, items):
        self.items = list(items)
        self.closed = False

    def __aiter__(self):
        return self

    async def __anext__(self):
        if not self.items:
            raise StopAsyncIteration
        item = self.items.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    async def close(self):
        self.closed = True


class FakeCompletions:
    def __init__(self, result):
        self.result = result
        self.kwargs = None

    async def create(self, **kwargs):
        self.kwargs = kwargs
        if isinstance(self.result, Exception):
            raise self.result
        return self.result


def make_backend(result):
    completions = FakeCompletions(result)
    client = SimpleNamespace(chat=SimpleNamespace(completions=completions))
    return OpenAIChatBackend(client, "test-model"), completions


async def collect(backend, history=(), tools=()):
    return [fragment async for fragment in backend.stream_completion(list(history), list(tools))]


class TestChatBackendClient:
    def test_backend_is_abstract(self):
        with pytest.raises(TypeError):
            ChatBackendClient()  # type: ignore


class TestMessageConversion:
    """Tests for the chat-completions wire format."""

    def test_plain_messages(self):
        assert message_to_openai(Message.user("hi")) == {"role": "user", "content": "hi"}
        assert message_to_openai(Message.system("s")) == {"role": "system", "content": "s"}

    def test_tool_message(self):
        assert message_to_openai(Message.tool("4.0", "call_1")) == {
            "role": "tool",
            "tool_call_id": "call_1",
            "content": "4.0",
        }

    def test_assistant_tool_calls(self):
        call = ToolInvocationRequest("call_1", "Add", {"a": 2, "b": 2})
        wire = message_to_openai(Message.assistant("", [call]))

        assert wire["content"] is None
        (tool_call,) = wire["tool_calls"]
        assert tool_call["id"] == "call_1"
        assert tool_call["function"]["name"] == "Add"
        assert json.loads(tool_call["function"]["arguments"]) == {"a": 2, "b": 2}


class TestOpenAIChatBackend:
    """Tests for stream parsing and error mapping."""

    @pytest.mark.asyncio
    async def test_streams_text_then_end(self, registry):
        stream = FakeStream([text_chunk("Hel"), text_chunk("lo"), text_chunk(None)])
        backend, completions = make_backend(stream)

        fragments = await collect(backend, [Message.user("hi")], registry.describe_all())

        assert fragments == [TextChunk("Hel"), TextChunk("lo"), End()]
        assert stream.closed
        assert completions.kwargs["stream"] is True
        assert completions.kwargs["model"] == "test-model"
        assert completions.kwargs["tool_choice"] == "auto"
        assert len(completions.kwargs["tools"]) == len(registry)
        assert completions.kwargs["messages"] == [{"role": "user", "content": "hi"}]

    @pytest.mark.asyncio
    async def test_no_tools_omits_tool_fields(self):
        backend, completions = make_backend(FakeStream([]))

        assert await collect(backend) == [End()]
        assert "tools" not in completions.kwargs

    @pytest.mark.asyncio
    async def test_skips_chunks_without_choices(self):
        empty = SimpleNamespace(choices=[])
        backend, _ = make_backend(FakeStream([empty, text_chunk("ok")]))

        assert await collect(backend) == [TextChunk("ok"), End()]

    @pytest.mark.asyncio
    async def test_accumulates_tool_call_deltas(self):
        stream = FakeStream(
            [
                tool_chunk(0, call_id="call_a", name="Add", arguments='{"a": 2'),
                tool_chunk(1, call_id="call_b", name="GetCurrentDateTime", arguments=""),
                tool_chunk(0, arguments=', "b": 2}'),
            ]
        )
        backend, _ = make_backend(stream)

        fragments = await collect(backend)

        assert fragments == [
            ToolCallRequested(ToolInvocationRequest("call_a", "Add", {"a": 2, "b": 2})),
            ToolCallRequested(ToolInvocationRequest("call_b", "GetCurrentDateTime", {})),
            End(),
        ]

    @pytest.mark.asyncio
    async def test_malformed_arguments_are_protocol_errors(self):
        backend, _ = make_backend(FakeStream([tool_chunk(0, "c", "Add", '{"a": ')]))

        with pytest.raises(BackendProtocolError):
            await collect(backend)

    @pytest.mark.asyncio
    async def test_tool_call_without_name_is_protocol_error(self):
        backend, _ = make_backend(FakeStream([tool_chunk(0, "c", None, "{}")]))

        with pytest.raises(BackendProtocolError):
            await collect(backend)

    @pytest.mark.asyncio
    async def test_create_failure_is_translated(self):
        backend, _ = make_backend(openai.APIConnectionError(request=REQUEST))

        with pytest.raises(BackendUnavailableError):
            await collect(backend)

    @pytest.mark.asyncio
    async def test_mid_stream_failure_closes_stream(self):
        stream = FakeStream([text_chunk("a"), status_error(openai.RateLimitError, 429)])
        backend, _ = make_backend(stream)

        with pytest.raises(BackendRateLimitError):
            await collect(backend)
        assert stream.closed

    @pytest.mark.asyncio
    async def test_dropped_connection_is_backend_unavailable(self):
        stream = FakeStream([text_chunk("a"), httpx.RemoteProtocolError("peer closed connection")])
        backend, _ = make_backend(stream)

        with pytest.raises(BackendUnavailableError, match="peer closed connection"):
            await collect(backend)
        assert stream.closed

    @pytest.mark.asyncio
    async def test_aclose_closes_underlying_stream(self):
        stream = FakeStream([text_chunk("a"), text_chunk("b")])
        backend, _ = make_backend(stream)

        fragments = backend.stream_completion([], [])
        assert await fragments.__anext__() == TextChunk("a")
        await fragments.aclose()
        assert stream.closed

    @pytest.mark.parametrize(
        "error, expected",
        [
            (openai.APITimeoutError(request=REQUEST), BackendUnavailableError),
            (openai.APIConnectionError(request=REQUEST), BackendUnavailableError),
            (status_error(openai.AuthenticationError, 401), BackendUnavailableError),
            (status_error(openai.PermissionDeniedError, 403), BackendUnavailableError),
            (status_error(openai.InternalServerError, 500), BackendUnavailableError),
            (status_error(openai.RateLimitError, 429), BackendRateLimitError),
            (status_error(openai.BadRequestError, 400), BackendProtocolError),
        ],
    )
    def test_error_translation(self, error, expected):
        assert isinstance(translate_openai_error(error), expected)


class TestFromSettings:
    """Tests for client construction."""

    def test_azure_client(self):
        settings = BackendSettings(
            kind="azure",
            model="gpt-4.1",
            endpoint="https://example.openai.azure.com",
            api_key="key",
            api_version="2024-10-21",
        )
        backend = OpenAIChatBackend.from_settings(settings, timeout=30)

        assert isinstance(backend.client, openai.AsyncAzureOpenAI)
        assert backend.client.max_retries == 0
        assert backend.model == "gpt-4.1"

    def test_local_client_needs_no_key(self):
        settings = BackendSettings(kind="local", model="phi", endpoint="http://localhost:5273/v1")
        backend = OpenAIChatBackend.from_settings(settings, timeout=30)

        assert isinstance(backend.client, openai.AsyncOpenAI)
        assert str(backend.client.base_url).startswith("http://localhost:5273/v1")

    def test_unknown_kind(self):
        with pytest.raises(ConfigurationError):
            OpenAIChatBackend.from_settings(BackendSettings(kind="other", model="m"), timeout=1)
