"""
Conversation messages and the append-only history sent to the backend.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Iterator, Optional, Tuple

from .tool_registry import ToolInvocationRequest


class Role(str, Enum):
    """Message roles, valued as the chat-completions wire roles."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


@dataclass(frozen=True)
class Message:
    """A single immutable entry in the conversation."""

    role: Role
    content: str
    tool_call_id: Optional[str] = None
    # Only set on assistant messages that announce a tool call round trip
    tool_calls: Tuple[ToolInvocationRequest, ...] = ()

    @classmethod
    def system(cls, content: str) -> "Message":
        return cls(Role.SYSTEM, content)

    @classmethod
    def user(cls, content: str) -> "Message":
        return cls(Role.USER, content)

    @classmethod
    def assistant(
        cls, content: str, tool_calls: Tuple[ToolInvocationRequest, ...] = ()
    ) -> "Message":
        return cls(Role.ASSISTANT, content, tool_calls=tuple(tool_calls))

    @classmethod
    def tool(cls, content: str, tool_call_id: str) -> "Message":
        return cls(Role.TOOL, content, tool_call_id=tool_call_id)


class ConversationHistory:
    """Ordered, append-only sequence of messages forming the model's context.

    The history is seeded with the system prompt, so the first message is
    always the System message when one is given.
    """

    def __init__(self, system_prompt: Optional[str] = None):
        self._messages = []
        if system_prompt:
            self._messages.append(Message.system(system_prompt))

    def append(self, message: Message) -> None:
        self._messages.append(message)

    def as_sequence(self) -> Tuple[Message, ...]:
        """Return a read-only snapshot in arrival order."""
        return tuple(self._messages)

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self) -> Iterator[Message]:
        return iter(tuple(self._messages))
