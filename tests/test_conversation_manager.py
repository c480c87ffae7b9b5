"""Tests for :class:`ConversationManager`."""

from __future__ import annotations

from pathlib import Path

from helpers import FIXED_NOW, FIXED_TIMESTAMP, EventRecorder
from keymentor.chat.message_model import Conversation, Message
from keymentor.services.history import HistoryStore
from keymentor.ui.domain.conversation_manager import ConversationManager
from keymentor.ui.domain.restore_policy import PointerFile, ProcessPointer, SessionRestorePolicy
from keymentor.ui.events import (
    ConversationLoaded,
    ConversationSaved,
    ConversationStarted,
    EventBus,
    MessageAppended,
    MessageRolledBack,
)


def _stored(history_store: HistoryStore, conversation_id: str = "conv_stored") -> Conversation:
    conversation = Conversation(
        id=conversation_id,
        messages=[Message("user", "how do I quit?", "t"), Message("assistant", ":q", "t")],
    )
    history_store.save_conversation(conversation)
    return conversation


# =============================================================================
# Lifecycle
# =============================================================================


class TestLifecycle:
    def test_starts_without_active_conversation(self, conversations: ConversationManager) -> None:
        assert conversations.has_active is False
        assert conversations.active_id is None
        assert conversations.messages == ()
        assert conversations.snapshot() is None

    def test_reset_publishes_started(self, conversations: ConversationManager, recorder: EventRecorder) -> None:
        recorder.watch(ConversationStarted)

        conversation_id = conversations.reset()

        assert conversations.active_id == conversation_id
        assert recorder.of_type(ConversationStarted)[0].conversation_id == conversation_id

    def test_reset_persists_outgoing_conversation(
        self, conversations: ConversationManager, history_store: HistoryStore
    ) -> None:
        conversations.add_user_message("how do I quit?")
        old_id = conversations.active_id

        new_id = conversations.reset()

        assert new_id != old_id
        assert history_store.get_conversation(old_id) is not None

    def test_reset_without_persist(self, conversations: ConversationManager, history_store: HistoryStore) -> None:
        conversations.add_user_message("scratch")

        conversations.reset(persist=False)

        assert history_store.conversations() == []

    def test_empty_conversation_is_never_persisted(
        self, conversations: ConversationManager, history_store: HistoryStore, recorder: EventRecorder
    ) -> None:
        recorder.watch(ConversationSaved)
        conversations.reset()

        assert conversations.persist_active() is False
        conversations.reset()

        assert history_store.conversations() == []
        assert recorder.of_type(ConversationSaved) == []
        assert not history_store.path.exists()

    def test_load_conversation_activates_a_copy(
        self, conversations: ConversationManager, history_store: HistoryStore, recorder: EventRecorder
    ) -> None:
        recorder.watch(ConversationLoaded)
        _stored(history_store)

        assert conversations.load_conversation("conv_stored") is True
        conversations.add_user_message("and save?")

        assert conversations.active_id == "conv_stored"
        assert len(conversations.messages) == 3
        assert len(history_store.get_conversation("conv_stored").messages) == 2
        assert recorder.of_type(ConversationLoaded)[0].message_count == 2

    def test_load_unknown_id_keeps_active(self, conversations: ConversationManager) -> None:
        conversations.add_user_message("hi")
        active = conversations.active_id

        assert conversations.load_conversation("conv_missing") is False
        assert conversations.active_id == active

    def test_history_disabled_never_saves(self, history_store: HistoryStore, event_bus: EventBus) -> None:
        manager = ConversationManager(history_store, event_bus, history_enabled=False)
        manager.add_user_message("secret")

        assert manager.persist_active() is False
        manager.reset()

        assert not history_store.path.exists()

    def test_start_new_forgets_restore_pointers(
        self, history_store: HistoryStore, event_bus: EventBus, tmp_path: Path
    ) -> None:
        pointer_file = PointerFile(tmp_path / "last")
        pointer_file.write("conv_old")
        policy = SessionRestorePolicy(
            "always", history=history_store, process_pointer=ProcessPointer("conv_old"), pointer_file=pointer_file
        )
        manager = ConversationManager(history_store, event_bus, restore_policy=policy)

        manager.start_new()

        assert policy.process_pointer.conversation_id is None
        assert pointer_file.read() is None

    def test_load_updates_process_pointer(self, history_store: HistoryStore, event_bus: EventBus) -> None:
        _stored(history_store)
        policy = SessionRestorePolicy("session", history=history_store)
        manager = ConversationManager(history_store, event_bus, restore_policy=policy)

        manager.load_conversation("conv_stored")

        assert policy.process_pointer.conversation_id == "conv_stored"


# =============================================================================
# Message log
# =============================================================================


class TestMessageLog:
    def test_append_starts_a_conversation_lazily(
        self, conversations: ConversationManager, recorder: EventRecorder
    ) -> None:
        recorder.watch(ConversationStarted, MessageAppended)

        message = conversations.add_user_message("how do I quit?")

        assert message == Message("user", "how do I quit?", FIXED_TIMESTAMP)
        assert [type(event) for event in recorder.events] == [ConversationStarted, MessageAppended]

    def test_error_messages_are_prefixed(self, conversations: ConversationManager) -> None:
        message = conversations.add_error_message("Request timed out")

        assert message.role == "error"
        assert message.content == "Error: Request timed out"

    def test_messages_view_is_detached(self, conversations: ConversationManager) -> None:
        conversations.add_user_message("q")
        snapshot = conversations.snapshot()
        snapshot.messages.clear()

        assert len(conversations.messages) == 1

    def test_rollback_removes_trailing_user_message(
        self, conversations: ConversationManager, recorder: EventRecorder
    ) -> None:
        recorder.watch(MessageRolledBack)
        conversations.add_user_message("how do I quit?")

        removed = conversations.rollback_last_user_message()

        assert removed is not None and removed.content == "how do I quit?"
        assert conversations.messages == ()
        assert recorder.of_type(MessageRolledBack)[0].content == "how do I quit?"

    def test_rollback_ignores_trailing_assistant(self, conversations: ConversationManager) -> None:
        conversations.add_user_message("q")
        conversations.add_assistant_message("a")

        assert conversations.rollback_last_user_message() is None
        assert len(conversations.messages) == 2

    def test_rollback_without_conversation(self, conversations: ConversationManager) -> None:
        assert conversations.rollback_last_user_message() is None

    def test_last_assistant_message(self, conversations: ConversationManager) -> None:
        assert conversations.last_assistant_message() is None
        conversations.add_user_message("q1")
        conversations.add_assistant_message("a1")
        conversations.add_user_message("q2")
        conversations.add_error_message("boom")

        assert conversations.last_assistant_message().content == "a1"

    def test_persist_stamps_summary(
        self, conversations: ConversationManager, history_store: HistoryStore, recorder: EventRecorder
    ) -> None:
        recorder.watch(ConversationSaved)
        conversations.add_user_message("x" * 60)
        conversations.add_assistant_message("a")

        assert conversations.persist_active() is True

        stored = history_store.get_conversation(conversations.active_id)
        assert stored.summary == "x" * 50 + "..."
        assert stored.updated_at == FIXED_NOW.strftime("%Y-%m-%dT%H:%M:%SZ")
        assert recorder.of_type(ConversationSaved)[0].success is True
