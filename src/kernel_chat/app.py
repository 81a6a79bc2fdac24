import logging
from typing import Optional, TextIO

from .backend import ChatBackendClient, OpenAIChatBackend
from .chat_loop import ChatLoop
from .config import ChatConfig
from .messages import ConversationHistory
from .plugins.math_plugin import MathPlugin
from .plugins.time_plugin import TimePlugin
from .tool_registry import ToolRegistry

logger = logging.getLogger(__name__)


def create_plugins(config: ChatConfig) -> list:
    """Plugins whose tools are advertised to the model."""
    return [
        TimePlugin(timezone_offset=config.timezone_offset, timezone_name=config.timezone_name),
        MathPlugin(),
    ]


def create_registry(plugins: list) -> ToolRegistry:
    registry = ToolRegistry()
    for plugin in plugins:
        if hasattr(plugin, "hook_provide_tools"):
            registry.register_plugin(plugin)
    logger.info(f"Registered tools: {', '.join(registry.get_tool_names())}")
    return registry


def assemble_system_prompt(base_system_prompt: str, plugins: list) -> str:
    """Append plugin prompt additions to the base system prompt."""
    instructions = base_system_prompt
    additions = []
    for plugin in plugins:
        if hasattr(plugin, "hook_provide_system_prompt"):
            addition = plugin.hook_provide_system_prompt()
            if addition and addition.strip():
                additions.append(addition.strip())
    if additions:
        instructions = f"{instructions}\n\n" + "\n\n".join(additions)
    return instructions


def create_chat_loop(
    config: ChatConfig,
    backend: Optional[ChatBackendClient] = None,
    input_stream: Optional[TextIO] = None,
    output_stream: Optional[TextIO] = None,
) -> ChatLoop:
    """Wire the backend, tools and history into a ChatLoop."""
    plugins = create_plugins(config)
    registry = create_registry(plugins)
    history = ConversationHistory(assemble_system_prompt(config.system_prompt, plugins))
    if backend is None:
        backend = OpenAIChatBackend.from_settings(config.backend, config.request_timeout)

    return ChatLoop(
        backend,
        registry,
        history,
        max_tool_round_trips=config.max_tool_round_trips,
        request_timeout=config.request_timeout,
        input_stream=input_stream,
        output_stream=output_stream,
    )


async def run_chat(config: ChatConfig, backend: Optional[ChatBackendClient] = None) -> int:
    """Run a console session and release the backend afterwards."""
    chat = create_chat_loop(config, backend=backend)
    try:
        return await chat.run()
    finally:
        await chat.backend.close()
