"""Conversation manager domain service.

Owns the active conversation's message log. The request controller and
explicit user actions (new, clear, load) are the only writers; persistence
goes through the history store.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from ...chat.message_model import Conversation, Message, MessageRole, new_conversation_id, utc_timestamp
from ...services.history import HistoryStore
from ..events import (
    ConversationLoaded,
    ConversationSaved,
    ConversationStarted,
    EventBus,
    MessageAppended,
    MessageRolledBack,
)
from .restore_policy import SessionRestorePolicy

LOGGER = logging.getLogger(__name__)

ERROR_PREFIX = "Error: "


class ConversationManager:
    """Domain manager for the active conversation.

    There is no active conversation until one is started, loaded, or a
    message is appended. Callers only ever see copies of the log.

    Events Emitted:
        - ConversationStarted: A fresh conversation became active
        - ConversationLoaded: A stored conversation became active
        - ConversationSaved: A persist attempt finished
        - MessageAppended: A message was appended
        - MessageRolledBack: The trailing user message was removed
    """

    def __init__(
        self,
        history: HistoryStore,
        event_bus: EventBus,
        *,
        history_enabled: bool = True,
        restore_policy: SessionRestorePolicy | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize the conversation manager.

        Args:
            history: Store used to load and persist conversations.
            event_bus: Bus for publishing events.
            history_enabled: When false nothing is ever persisted.
            restore_policy: Receives pointer updates on new/load.
            clock: Source of message timestamps.
        """
        self._history = history
        self._bus = event_bus
        self._history_enabled = history_enabled
        self._restore_policy = restore_policy
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._active: Conversation | None = None

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def active_id(self) -> Optional[str]:
        return self._active.id if self._active is not None else None

    @property
    def has_active(self) -> bool:
        return self._active is not None

    @property
    def history_enabled(self) -> bool:
        return self._history_enabled

    @property
    def messages(self) -> tuple[Message, ...]:
        """Read-only view of the active log."""
        if self._active is None:
            return ()
        return tuple(self._active.messages)

    def snapshot(self) -> Optional[Conversation]:
        """Return a detached copy of the active conversation."""
        return self._active.copy() if self._active is not None else None

    def last_assistant_message(self) -> Optional[Message]:
        for message in reversed(self.messages):
            if message.role == "assistant":
                return message
        return None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start_new(self) -> str:
        """Persist the current conversation and begin a fresh one.

        Explicitly starting over also clears the restore pointers so the
        abandoned conversation is not resumed on the next open.
        """
        conversation_id = self.reset()
        if self._restore_policy is not None:
            self._restore_policy.forget()
        return conversation_id

    def reset(self, *, persist: bool = True) -> str:
        """Begin a fresh conversation, keeping the restore pointers.

        Args:
            persist: Save the outgoing conversation first when it has messages.
        """
        if persist and self._active is not None and self._active.messages:
            self.persist_active()
        self._active = Conversation(id=new_conversation_id())
        LOGGER.debug("Started conversation %s", self._active.id)
        self._bus.publish(ConversationStarted(conversation_id=self._active.id))
        return self._active.id

    def load_conversation(self, conversation_id: str) -> bool:
        """Make a stored conversation active.

        Returns:
            ``False`` (leaving the active conversation untouched) when the id
            is not in the history store.
        """
        stored = self._history.get_conversation(conversation_id)
        if stored is None:
            LOGGER.warning("Cannot load conversation %s: not in history", conversation_id)
            return False
        self._active = stored.copy()
        if self._restore_policy is not None:
            self._restore_policy.note_active(conversation_id)
        LOGGER.debug("Loaded conversation %s (%d messages)", conversation_id, len(stored.messages))
        self._bus.publish(
            ConversationLoaded(conversation_id=conversation_id, message_count=len(stored.messages))
        )
        return True

    def persist_active(self) -> bool:
        """Save the active conversation; no-op without messages or with history disabled."""
        if self._active is None or not self._active.messages:
            return False
        if not self._history_enabled:
            LOGGER.debug("History disabled; not persisting %s", self._active.id)
            return False
        success = self._history.save_conversation(self._active)
        self._bus.publish(ConversationSaved(conversation_id=self._active.id, success=success))
        return success

    # ------------------------------------------------------------------
    # Message log
    # ------------------------------------------------------------------

    def add_user_message(self, text: str) -> Message:
        return self._append("user", text)

    def add_assistant_message(self, text: str) -> Message:
        return self._append("assistant", text)

    def add_error_message(self, text: str) -> Message:
        """Append an inline error entry, prefixed with ``"Error: "``."""
        return self._append("error", f"{ERROR_PREFIX}{text}")

    def rollback_last_user_message(self) -> Optional[Message]:
        """Remove the trailing message if, and only if, it is a user message."""
        if self._active is None or not self._active.messages:
            return None
        if self._active.messages[-1].role != "user":
            LOGGER.debug("Rollback skipped: trailing message is %s", self._active.messages[-1].role)
            return None
        removed = self._active.messages.pop()
        self._bus.publish(MessageRolledBack(conversation_id=self._active.id, content=removed.content))
        return removed

    def _append(self, role: MessageRole, content: str) -> Message:
        if self._active is None:
            self.reset()
        assert self._active is not None
        message = Message(role=role, content=content, timestamp=utc_timestamp(self._clock()))
        self._active.messages.append(message)
        self._bus.publish(
            MessageAppended(conversation_id=self._active.id, role=role, content=content)
        )
        return message


__all__ = ["ConversationManager", "ERROR_PREFIX"]
