"""Headless assistant panel: the state a front end renders and drives.

The panel owns the composer text, the transient status line and the
open/close lifecycle, and forwards everything else to the domain managers.
Rendering is left to the caller (the terminal front end in :mod:`keymentor.app`).
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional

from ..chat.message_model import Message
from ..errors import RequestInFlightError, ValidationError
from ..services.history import HistoryStore
from ..services.settings import SettingsStore, redact_secret
from .domain.conversation_manager import ConversationManager
from .domain.request_controller import RequestController
from .domain.restore_policy import RestoreDecision, SessionRestorePolicy
from .events import (
    ConversationRestored,
    EventBus,
    HistoryChanged,
    RequestCompleted,
    RequestFailed,
    SettingsChanged,
    StatusMessage,
)
from .models.request_models import PendingRequest

LOGGER = logging.getLogger(__name__)

DEFAULT_STATUS_TIMEOUT_MS = 3_000
NO_RESPONSE_TO_APPLY = "No response to apply"


@dataclass(slots=True, frozen=True)
class HistoryItem:
    """One row of the history listing (1-based ``index``, newest first)."""

    index: int
    conversation_id: str
    summary: str
    updated_at: Optional[str]
    message_count: int


class AssistantPanel:
    """Coordinates the composer, the status line and the domain managers.

    Failures surface as transient status messages that expire after
    ``status_timeout_ms``; none of them close the panel or leave a request
    stuck.
    """

    def __init__(
        self,
        *,
        conversations: ConversationManager,
        controller: RequestController,
        restore_policy: SessionRestorePolicy,
        history: HistoryStore,
        event_bus: EventBus,
        settings: SettingsStore | None = None,
        status_timeout_ms: int = DEFAULT_STATUS_TIMEOUT_MS,
        monotonic: Callable[[], float] | None = None,
    ) -> None:
        self._conversations = conversations
        self._controller = controller
        self._restore_policy = restore_policy
        self._history = history
        self._bus = event_bus
        self._settings = settings
        self._status_timeout_ms = status_timeout_ms
        self._monotonic = monotonic or time.monotonic
        self._is_open = False
        self._composer_text = ""
        self._status_text: str | None = None
        self._status_expires_at: float | None = None
        self._last_error: str | None = None

        event_bus.subscribe(RequestCompleted, self._on_request_completed)
        event_bus.subscribe(RequestFailed, self._on_request_failed)
        event_bus.subscribe(StatusMessage, self._on_status_message)

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def is_open(self) -> bool:
        return self._is_open

    @property
    def is_loading(self) -> bool:
        return self._controller.is_loading

    @property
    def composer_text(self) -> str:
        return self._composer_text

    @composer_text.setter
    def composer_text(self, value: str) -> None:
        self._composer_text = value or ""

    @property
    def messages(self) -> tuple[Message, ...]:
        return self._conversations.messages

    @property
    def active_conversation_id(self) -> Optional[str]:
        return self._conversations.active_id

    @property
    def last_error(self) -> Optional[str]:
        return self._last_error

    @property
    def status_text(self) -> Optional[str]:
        """The current transient message, or ``None`` once it has expired."""
        if self._status_text is None:
            return None
        if self._status_expires_at is not None and self._monotonic() >= self._status_expires_at:
            self._status_text = None
            self._status_expires_at = None
        return self._status_text

    # ------------------------------------------------------------------
    # Open / close
    # ------------------------------------------------------------------

    def open(self) -> RestoreDecision | None:
        """Show the panel, resuming a prior conversation when the policy allows.

        Opening an already-open panel does nothing. Restore is only
        attempted when no conversation is active.

        Returns:
            The restore decision that was applied, if a conversation was
            resumed.
        """
        if self._is_open:
            return None
        self._is_open = True

        if self._restore_policy.mode == "never":
            self.cancel()
            self._conversations.reset()
            self._composer_text = ""
            return None
        if self._conversations.has_active:
            return None

        decision = self._restore_policy.resolve()
        if decision.should_restore and decision.conversation_id is not None:
            if self._conversations.load_conversation(decision.conversation_id):
                LOGGER.debug("Restored conversation %s from %s", decision.conversation_id, decision.source)
                self._bus.publish(
                    ConversationRestored(
                        conversation_id=decision.conversation_id,
                        source=decision.source or "",
                    )
                )
                return decision
        self._conversations.reset()
        return None

    def close(self) -> None:
        """Persist the conversation and record it for the next open.

        In ``never`` mode the conversation cannot be resumed, so a request
        still in flight is cancelled first and its unanswered prompt is not
        saved. Other modes let the reply land after the panel reopens.
        """
        if not self._is_open:
            return
        self._is_open = False
        if self._restore_policy.mode == "never":
            self.cancel()
        saved = self._conversations.persist_active()
        conversation_id = self._conversations.active_id
        if conversation_id and (saved or self._history.get_conversation(conversation_id) is not None):
            self._restore_policy.remember(conversation_id)

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    def submit(self) -> PendingRequest | None:
        """Submit the composer text; validation problems become status messages."""
        self._last_error = None
        try:
            return self._controller.submit(self._composer_text)
        except ValidationError as exc:
            self._flash(str(exc), level="warning")
        except RequestInFlightError:
            LOGGER.debug("Submit ignored while a request is in flight")
        return None

    def cancel(self) -> bool:
        """Cancel the outstanding request and put its prompt back in the composer."""
        prompt = self._controller.cancel()
        if prompt is None:
            return False
        self._composer_text = prompt
        return True

    async def wait(self) -> None:
        await self._controller.wait()

    def new_conversation(self) -> str:
        """Start over explicitly; the abandoned conversation will not be restored."""
        self.cancel()
        conversation_id = self._conversations.start_new()
        self._composer_text = ""
        self._last_error = None
        return conversation_id

    def clear(self) -> str:
        """Reset the panel to an empty conversation without touching restore pointers."""
        self.cancel()
        conversation_id = self._conversations.reset()
        self._composer_text = ""
        self._last_error = None
        self._status_text = None
        return conversation_id

    def apply_response(self) -> Optional[str]:
        """Copy the latest assistant reply into the composer."""
        message = self._conversations.last_assistant_message()
        response = message.content if message is not None else self._controller.last_response
        if not response:
            self._flash(NO_RESPONSE_TO_APPLY, level="warning")
            return None
        self._composer_text = response
        return response

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    def history_items(self) -> list[HistoryItem]:
        return [
            HistoryItem(
                index=position,
                conversation_id=conversation.id,
                summary=conversation.summary or "",
                updated_at=conversation.updated_at,
                message_count=len(conversation.messages),
            )
            for position, conversation in enumerate(self._history.conversations(), start=1)
        ]

    def open_history_item(self, index: int) -> bool:
        """Make the ``index``-th stored conversation (1-based) active."""
        conversation = self._history_entry(index)
        if conversation is None:
            self._flash(f"No conversation #{index}", level="warning")
            return False
        self.cancel()
        return self._conversations.load_conversation(conversation.id)

    def delete_history_item(self, index: int) -> bool:
        conversation = self._history_entry(index)
        if conversation is None or not self._history.delete_conversation_by_index(index):
            self._flash(f"Could not delete conversation #{index}", level="warning")
            return False
        if conversation.id == self._conversations.active_id:
            self.cancel()
            self._conversations.reset(persist=False)
        self._bus.publish(HistoryChanged(conversation_count=len(self._history.conversations())))
        return True

    def clear_history(self) -> bool:
        success = self._history.clear_all()
        if success:
            self._bus.publish(HistoryChanged(conversation_count=0))
        else:
            self._flash("Failed to clear history", level="error")
        return success

    def _history_entry(self, index: int):
        conversations = self._history.conversations()
        if 1 <= index <= len(conversations):
            return conversations[index - 1]
        return None

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    def set_preprompt(self, text: str) -> bool:
        store = self._require_settings()
        return self._after_settings_save(store.save_current_preprompt(text), {"preprompt": text})

    def set_api_key(self, api_key: str | None) -> bool:
        store = self._require_settings()
        return self._after_settings_save(
            store.save_current_api_key(api_key), {"api_key": redact_secret(api_key)}
        )

    def toggle_debug(self) -> bool:
        """Flip debug mode in the active scope and return the new value."""
        store = self._require_settings()
        enabled = not store.get_current_debug_mode()
        self._after_settings_save(store.save_current_debug_mode(enabled), {"debug_enabled": enabled})
        return enabled

    def toggle_scope(self) -> str:
        """Switch between global and project settings and return the new scope."""
        store = self._require_settings()
        scope = "project" if store.get_selected_scope() == "global" else "global"
        store.set_selected_scope(scope)
        self._bus.publish(SettingsChanged(scope="global", settings={"selected_scope": scope}))
        return scope

    def _require_settings(self) -> SettingsStore:
        if self._settings is None:
            raise RuntimeError("No settings store configured for this panel")
        return self._settings

    def _after_settings_save(self, success: bool, changes: dict) -> bool:
        store = self._require_settings()
        if success:
            self._bus.publish(SettingsChanged(scope=store.get_selected_scope(), settings=changes))
            self._flash("Settings saved")
        else:
            self._flash("Failed to save settings", level="error")
        return success

    # ------------------------------------------------------------------
    # Event handlers
    # ------------------------------------------------------------------

    def _flash(self, message: str, *, level: str = "info") -> None:
        self._bus.publish(StatusMessage(message=message, timeout_ms=self._status_timeout_ms, level=level))

    def _on_status_message(self, event: StatusMessage) -> None:
        self._status_text = event.message
        self._status_expires_at = (
            self._monotonic() + event.timeout_ms / 1000 if event.timeout_ms > 0 else None
        )

    def _on_request_completed(self, event: RequestCompleted) -> None:
        self._composer_text = ""
        self._last_error = None

    def _on_request_failed(self, event: RequestFailed) -> None:
        self._last_error = event.error
        self._flash(event.error, level="error")


__all__ = ["AssistantPanel", "HistoryItem", "DEFAULT_STATUS_TIMEOUT_MS", "NO_RESPONSE_TO_APPLY"]
