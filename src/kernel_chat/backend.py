"""
Chat-completion backend clients.

A backend turns the conversation history and the advertised tools into a
single-pass stream of response fragments: text chunks as they are generated,
tool calls the model wants executed, and an end marker.
"""

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, List, Sequence, Union

import httpx
import openai
from openai import AsyncAzureOpenAI, AsyncOpenAI

from .config import BackendSettings
from .errors import (
    BackendError,
    BackendProtocolError,
    BackendRateLimitError,
    BackendUnavailableError,
    ConfigurationError,
)
from .messages import Message, Role
from .tool_registry import ToolDescriptor, ToolInvocationRequest

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TextChunk:
    text: str


@dataclass(frozen=True)
class ToolCallRequested:
    request: ToolInvocationRequest


@dataclass(frozen=True)
class End:
    pass


ResponseFragment = Union[TextChunk, ToolCallRequested, End]


class ChatBackendClient(ABC):
    """Interface to a remote chat-completion service."""

    @abstractmethod
    def stream_completion(
        self, history: Sequence[Message], tools: Sequence[ToolDescriptor]
    ) -> AsyncIterator[ResponseFragment]:
        """Stream the model's response to the given history.

        The returned iterator is finite and single-pass. Callers pull one
        fragment at a time and must drain it or close it with ``aclose()``.

        Raises:
            BackendUnavailableError: Network failure, timeout or auth failure
            BackendRateLimitError: The service is rate limiting requests
            BackendProtocolError: The response could not be interpreted
        """

    async def close(self) -> None:
        """Release any client resources."""


def message_to_openai(message: Message) -> Dict[str, Any]:
    """Convert a message to the chat-completions wire format."""
    if message.role is Role.TOOL:
        return {"role": "tool", "tool_call_id": message.tool_call_id, "content": message.content}
    if message.role is Role.ASSISTANT and message.tool_calls:
        return {
            "role": "assistant",
            "content": message.content or None,
            "tool_calls": [
                {
                    "id": call.call_id,
                    "type": "function",
                    "function": {
                        "name": call.tool_name,
                        "arguments": json.dumps(call.arguments),
                    },
                }
                for call in message.tool_calls
            ],
        }
    return {"role": message.role.value, "content": message.content}


def translate_openai_error(error: Exception) -> BackendError:
    """Map an openai SDK exception onto the backend error taxonomy."""
    if isinstance(error, openai.RateLimitError):
        return BackendRateLimitError(f"Rate limited by backend: {error}")
    # APITimeoutError is a subclass of APIConnectionError
    if isinstance(error, openai.APIConnectionError):
        return BackendUnavailableError(f"Backend unreachable: {error}")
    if isinstance(error, (openai.AuthenticationError, openai.PermissionDeniedError)):
        return BackendUnavailableError(f"Backend rejected credentials: {error}")
    if isinstance(error, openai.InternalServerError):
        return BackendUnavailableError(f"Backend server error: {error}")
    return BackendProtocolError(f"Backend request failed: {error}")


def _parse_tool_call(index: int, slot: Dict[str, str]) -> ToolInvocationRequest:
    if not slot["name"]:
        raise BackendProtocolError(f"Tool call {index} has no function name")
    try:
        arguments = json.loads(slot["arguments"]) if slot["arguments"].strip() else {}
    except json.JSONDecodeError as e:
        raise BackendProtocolError(
            f"Malformed arguments for tool call {slot['name']}: {str(e)}"
        ) from e
    if not isinstance(arguments, dict):
        raise BackendProtocolError(f"Arguments for tool call {slot['name']} are not an object")
    return ToolInvocationRequest(
        call_id=slot["id"] or f"call_{index}",
        tool_name=slot["name"],
        arguments=arguments,
    )


class OpenAIChatBackend(ChatBackendClient):
    """Streaming chat completions through the openai SDK.

    Works against OpenAI, Azure OpenAI and any OpenAI-compatible server
    (the ``local`` backend). The SDK's own retries are disabled.
    """

    def __init__(self, client: Any, model: str):
        self.client = client
        self.model = model

    @classmethod
    def from_settings(cls, settings: BackendSettings, timeout: float) -> "OpenAIChatBackend":
        if settings.kind == "azure":
            client = AsyncAzureOpenAI(
                azure_endpoint=settings.endpoint,
                api_key=settings.api_key,
                api_version=settings.api_version,
                timeout=timeout,
                max_retries=0,
            )
        elif settings.kind in ("openai", "local"):
            client = AsyncOpenAI(
                base_url=settings.endpoint,
                # Local servers ignore the key but the SDK requires one
                api_key=settings.api_key or "not-needed",
                timeout=timeout,
                max_retries=0,
            )
        else:
            raise ConfigurationError(f"Unknown backend kind: {settings.kind}")
        logger.info(f"Using {settings.kind} backend with model {settings.model}")
        return cls(client, settings.model)

    async def stream_completion(
        self, history: Sequence[Message], tools: Sequence[ToolDescriptor]
    ) -> AsyncIterator[ResponseFragment]:
        create_args = {
            "model": self.model,
            "messages": [message_to_openai(m) for m in history],
            "stream": True,
        }
        if tools:
            create_args["tools"] = [tool.to_openai_schema() for tool in tools]
            create_args["tool_choice"] = "auto"

        try:
            stream = await self.client.chat.completions.create(**create_args)
        except openai.OpenAIError as e:
            raise translate_openai_error(e) from e

        # Tool call deltas arrive in pieces keyed by index
        pending: Dict[int, Dict[str, str]] = {}
        try:
            async for chunk in stream:
                if not chunk.choices:
                    continue
                delta = chunk.choices[0].delta
                if delta is None:
                    continue
                if delta.content:
                    yield TextChunk(delta.content)
                for tool_call in delta.tool_calls or []:
                    slot = pending.setdefault(
                        tool_call.index, {"id": "", "name": "", "arguments": ""}
                    )
                    if tool_call.id:
                        slot["id"] = tool_call.id
                    if tool_call.function is not None:
                        slot["name"] += tool_call.function.name or ""
                        slot["arguments"] += tool_call.function.arguments or ""
        except openai.OpenAIError as e:
            raise translate_openai_error(e) from e
        except httpx.TransportError as e:
            # The SDK does not wrap transport errors raised while reading the stream
            raise BackendUnavailableError(f"Backend connection lost: {e}") from e
        finally:
            await stream.close()

        requests: List[ToolInvocationRequest] = [
            _parse_tool_call(index, pending[index]) for index in sorted(pending)
        ]
        for request in requests:
            yield ToolCallRequested(request)
        yield End()

    async def close(self) -> None:
        await self.client.close()
