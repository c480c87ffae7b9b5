"""Prompt assembly and chat transport for the assistant."""

from .client import ChatRequest, ChatTransport, ClientSettings, OpenAITransport, parse_completion_payload
from .context import ContextProvider, EnvironmentContextProvider, StaticContextProvider, format_context
from .message_builder import PromptAssembler, prune_turns
from .prompts import DEFAULT_SYSTEM_PROMPT, render_system_prompt

__all__ = [
    "ChatRequest",
    "ChatTransport",
    "ClientSettings",
    "OpenAITransport",
    "parse_completion_payload",
    "ContextProvider",
    "EnvironmentContextProvider",
    "StaticContextProvider",
    "format_context",
    "PromptAssembler",
    "prune_turns",
    "DEFAULT_SYSTEM_PROMPT",
    "render_system_prompt",
]
