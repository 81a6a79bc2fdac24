"""
Startup configuration.

Settings come from the environment (optionally populated from a ``.env`` file
by the entry point) and are read once into an immutable ``ChatConfig`` that is
passed to the components that need it.
"""

import logging
import math
import os
from dataclasses import dataclass
from typing import Mapping, Optional

from .errors import ConfigurationError

DEFAULT_SYSTEM_PROMPT = "You are a helpful assistant."
DEFAULT_AZURE_MODEL = "gpt-4.1"
DEFAULT_AZURE_API_VERSION = "2024-10-21"
DEFAULT_OPENAI_MODEL = "gpt-4.1"
DEFAULT_LOCAL_ENDPOINT = "http://localhost:5273/v1"
DEFAULT_LOCAL_MODEL = "Phi-3.5-mini-instruct-generic-gpu"
BACKEND_KINDS = ("azure", "openai", "local")


@dataclass(frozen=True)
class BackendSettings:
    """Where and how to reach the chat-completion service."""

    kind: str
    model: str
    endpoint: Optional[str] = None
    api_key: Optional[str] = None
    api_version: Optional[str] = None


@dataclass(frozen=True)
class ChatConfig:
    backend: BackendSettings
    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    request_timeout: float = 60.0
    max_tool_round_trips: int = 8
    log_level: str = "WARNING"
    timezone_offset: Optional[int] = None
    timezone_name: Optional[str] = None


def _require(env: Mapping[str, str], key: str, backend: str) -> str:
    value = (env.get(key) or "").strip()
    if not value:
        raise ConfigurationError(f"{key} must be set for the {backend} backend")
    return value


def _number(env: Mapping[str, str], key: str, default, cast, minimum):
    raw = env.get(key)
    if raw is None or not raw.strip():
        return default
    try:
        value = cast(raw)
    except ValueError:
        raise ConfigurationError(f"{key} must be a number, got {raw!r}") from None
    if not math.isfinite(value):
        raise ConfigurationError(f"{key} must be a finite number, got {raw!r}")
    if value < minimum:
        raise ConfigurationError(f"{key} must be at least {minimum}, got {raw!r}")
    return value


def load_backend_settings(env: Mapping[str, str]) -> BackendSettings:
    kind = (env.get("KERNEL_CHAT_BACKEND") or "azure").strip().lower()
    if kind == "azure":
        return BackendSettings(
            kind="azure",
            endpoint=_require(env, "AZURE_OPENAI_ENDPOINT", kind),
            api_key=_require(env, "AZURE_OPENAI_API_KEY", kind),
            model=env.get("AZURE_OPENAI_MODEL") or DEFAULT_AZURE_MODEL,
            api_version=env.get("AZURE_OPENAI_API_VERSION") or DEFAULT_AZURE_API_VERSION,
        )
    if kind == "openai":
        return BackendSettings(
            kind="openai",
            api_key=_require(env, "OPENAI_API_KEY", kind),
            model=env.get("OPENAI_MODEL") or DEFAULT_OPENAI_MODEL,
            endpoint=env.get("OPENAI_BASE_URL") or None,
        )
    if kind == "local":
        return BackendSettings(
            kind="local",
            endpoint=env.get("LOCAL_LLM_ENDPOINT") or DEFAULT_LOCAL_ENDPOINT,
            model=env.get("LOCAL_LLM_MODEL") or DEFAULT_LOCAL_MODEL,
            api_key=env.get("LOCAL_LLM_API_KEY") or None,
        )
    raise ConfigurationError(
        f"KERNEL_CHAT_BACKEND must be one of {', '.join(BACKEND_KINDS)}, got {kind!r}"
    )


def load_config(env: Optional[Mapping[str, str]] = None) -> ChatConfig:
    """Build the configuration from environment variables.

    Raises:
        ConfigurationError: If a required setting is missing or invalid
    """
    if env is None:
        env = os.environ

    log_level = (env.get("KERNEL_CHAT_LOG_LEVEL") or "WARNING").strip().upper()
    if not isinstance(logging.getLevelName(log_level), int):
        raise ConfigurationError(f"KERNEL_CHAT_LOG_LEVEL is not a logging level: {log_level!r}")

    timezone_offset = env.get("KERNEL_CHAT_TIMEZONE_OFFSET")
    if timezone_offset is not None and timezone_offset.strip():
        try:
            timezone_offset = int(timezone_offset)
        except ValueError:
            raise ConfigurationError(
                f"KERNEL_CHAT_TIMEZONE_OFFSET must be minutes from UTC, got {timezone_offset!r}"
            ) from None
    else:
        timezone_offset = None

    return ChatConfig(
        backend=load_backend_settings(env),
        system_prompt=env.get("KERNEL_CHAT_SYSTEM_PROMPT") or DEFAULT_SYSTEM_PROMPT,
        request_timeout=_number(env, "KERNEL_CHAT_TIMEOUT", 60.0, float, 0.1),
        max_tool_round_trips=_number(env, "KERNEL_CHAT_MAX_TOOL_ROUND_TRIPS", 8, int, 1),
        log_level=log_level,
        timezone_offset=timezone_offset,
        timezone_name=env.get("KERNEL_CHAT_TIMEZONE_NAME") or None,
    )
