"""Outbound message assembly with turn-window pruning."""

from __future__ import annotations

import logging
from typing import Callable, Dict, List, Sequence

from ..chat.message_model import Message
from .context import ContextProvider
from .prompts import render_system_prompt

LOGGER = logging.getLogger(__name__)

# Roles the chat completion API accepts from the conversation log.
OUTBOUND_ROLES = frozenset({"user", "assistant"})

ChatPayloadMessage = Dict[str, str]


def prune_turns(messages: Sequence[Message], max_turns: int) -> List[Message]:
    """Keep the newest ``max_turns`` turns of ``messages``.

    A turn starts at a user message. When the log holds more user messages
    than ``max_turns``, whole turns are dropped from the head so exactly
    ``max_turns`` user messages remain. The result is always a contiguous
    suffix of ``messages`` and a trailing unanswered user message is never
    dropped.

    Raises:
        ValueError: If ``max_turns`` is less than one.
    """

    if max_turns < 1:
        raise ValueError("max_turns must be at least 1")
    user_count = sum(1 for message in messages if message.role == "user")
    excess = user_count - max_turns
    if excess <= 0:
        return list(messages)
    seen = 0
    for index, message in enumerate(messages):
        if message.role != "user":
            continue
        if seen == excess:
            return list(messages[index:])
        seen += 1
    return list(messages)  # pragma: no cover - unreachable when excess > 0


def to_payload(messages: Sequence[Message]) -> List[ChatPayloadMessage]:
    """Map messages to ``{role, content}`` dicts, dropping inline error entries."""

    return [
        {"role": message.role, "content": message.content}
        for message in messages
        if message.role in OUTBOUND_ROLES
    ]


class PromptAssembler:
    """Builds the message list sent for one turn.

    The system message is rendered from the template with the user's
    preprompt and the gathered environment context; the conversation log is
    pruned to the configured turn window. The log itself is never mutated.
    """

    def __init__(
        self,
        *,
        template: str | None = None,
        preprompt_source: Callable[[], str] | None = None,
        context_provider: ContextProvider | None = None,
    ) -> None:
        self._template = template
        self._preprompt_source = preprompt_source
        self._context_provider = context_provider

    def system_message(self, query: str | None = None) -> ChatPayloadMessage:
        content = render_system_prompt(
            self._template,
            preprompt=self._preprompt(),
            context=self._context(query),
        )
        return {"role": "system", "content": content}

    def assemble(self, messages: Sequence[Message], max_turns: int) -> List[ChatPayloadMessage]:
        """Return ``[system] + pruned conversation`` as role/content dicts."""

        conversation = [message for message in messages if message.role in OUTBOUND_ROLES]
        pruned = prune_turns(conversation, max_turns)
        query = next((m.content for m in reversed(pruned) if m.role == "user"), None)
        LOGGER.debug(
            "Assembled prompt: %d of %d conversation messages (max_turns=%d)",
            len(pruned),
            len(conversation),
            max_turns,
        )
        return [self.system_message(query), *to_payload(pruned)]

    def _preprompt(self) -> str:
        if self._preprompt_source is None:
            return ""
        return self._preprompt_source() or ""

    def _context(self, query: str | None) -> str:
        if self._context_provider is None:
            return ""
        try:
            return self._context_provider.collect(query)
        except Exception:  # pragma: no cover - context is best effort
            LOGGER.warning("Context provider failed; continuing without context", exc_info=True)
            return ""


__all__ = ["PromptAssembler", "prune_turns", "to_payload", "OUTBOUND_ROLES"]
