"""
Kernel Chat - A console chatbot with streaming responses and tool calling.

This package drives a conversation against an OpenAI-compatible chat
completion backend, letting the model call registered tools (arithmetic,
current time) mid-turn while its reply streams to the console.
"""

__version__ = "0.1.0"

from .backend import ChatBackendClient, End, OpenAIChatBackend, TextChunk, ToolCallRequested
from .chat_loop import ChatLoop
from .config import ChatConfig, load_config
from .messages import ConversationHistory, Message, Role
from .tool_registry import ToolDescriptor, ToolInvocationRequest, ToolRegistry

__all__ = [
    "ChatBackendClient",
    "ChatConfig",
    "ChatLoop",
    "ConversationHistory",
    "End",
    "Message",
    "OpenAIChatBackend",
    "Role",
    "TextChunk",
    "ToolCallRequested",
    "ToolDescriptor",
    "ToolInvocationRequest",
    "ToolRegistry",
    "load_config",
]
