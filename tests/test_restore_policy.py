"""Tests for session restore decisions and conversation pointers."""

from __future__ import annotations

from pathlib import Path

import pytest

from keymentor.chat.message_model import Conversation, Message
from keymentor.services.history import HistoryStore
from keymentor.ui.domain.restore_policy import (
    PointerFile,
    ProcessPointer,
    RestoreDecision,
    SessionRestorePolicy,
)


@pytest.fixture
def pointer_file(tmp_path: Path) -> PointerFile:
    return PointerFile(tmp_path / "data" / "last_conversation")


def _store_conversation(history_store: HistoryStore, conversation_id: str) -> None:
    history_store.save_conversation(
        Conversation(id=conversation_id, messages=[Message("user", "q", "t"), Message("assistant", "a", "t")])
    )


def _policy(mode, history_store, pointer_file, process=None) -> SessionRestorePolicy:
    return SessionRestorePolicy(
        mode,
        history=history_store,
        process_pointer=ProcessPointer(process),
        pointer_file=pointer_file,
    )


class TestPointerFile:
    def test_missing_file_reads_none(self, pointer_file: PointerFile) -> None:
        assert pointer_file.read() is None

    def test_write_read_clear(self, pointer_file: PointerFile) -> None:
        assert pointer_file.write("conv_1") is True
        assert pointer_file.read() == "conv_1"
        assert pointer_file.clear() is True
        assert pointer_file.read() is None
        assert pointer_file.clear() is True

    def test_blank_file_reads_none(self, pointer_file: PointerFile) -> None:
        pointer_file.path.parent.mkdir(parents=True)
        pointer_file.path.write_text("\n", encoding="utf-8")

        assert pointer_file.read() is None


class TestResolve:
    def test_unknown_mode_is_rejected(self, history_store: HistoryStore) -> None:
        with pytest.raises(ValueError):
            SessionRestorePolicy("sometimes", history=history_store)  # type: ignore[arg-type]

    def test_never_mode_ignores_pointers(self, history_store: HistoryStore, pointer_file: PointerFile) -> None:
        _store_conversation(history_store, "conv_a")
        pointer_file.write("conv_a")

        decision = _policy("never", history_store, pointer_file, process="conv_a").resolve()

        assert decision == RestoreDecision()
        assert decision.should_restore is False

    def test_session_mode_uses_process_pointer(self, history_store: HistoryStore, pointer_file: PointerFile) -> None:
        _store_conversation(history_store, "conv_a")

        decision = _policy("session", history_store, pointer_file, process="conv_a").resolve()

        assert decision == RestoreDecision("conv_a", "process")

    def test_session_mode_ignores_pointer_file(self, history_store: HistoryStore, pointer_file: PointerFile) -> None:
        _store_conversation(history_store, "conv_a")
        pointer_file.write("conv_a")

        assert _policy("session", history_store, pointer_file).resolve().should_restore is False
        assert pointer_file.read() == "conv_a"

    def test_always_mode_prefers_process_pointer(
        self, history_store: HistoryStore, pointer_file: PointerFile
    ) -> None:
        _store_conversation(history_store, "conv_a")
        _store_conversation(history_store, "conv_b")
        pointer_file.write("conv_b")

        decision = _policy("always", history_store, pointer_file, process="conv_a").resolve()

        assert decision == RestoreDecision("conv_a", "process")

    def test_always_mode_falls_back_to_file(self, history_store: HistoryStore, pointer_file: PointerFile) -> None:
        _store_conversation(history_store, "conv_b")
        pointer_file.write("conv_b")

        decision = _policy("always", history_store, pointer_file).resolve()

        assert decision == RestoreDecision("conv_b", "file")

    def test_stale_pointers_are_cleared(self, history_store: HistoryStore, pointer_file: PointerFile) -> None:
        pointer_file.write("conv_deleted")
        policy = _policy("always", history_store, pointer_file, process="conv_gone")

        assert policy.resolve().should_restore is False
        assert policy.process_pointer.conversation_id is None
        assert pointer_file.read() is None

    def test_stale_process_pointer_falls_through_to_file(
        self, history_store: HistoryStore, pointer_file: PointerFile
    ) -> None:
        _store_conversation(history_store, "conv_b")
        pointer_file.write("conv_b")

        decision = _policy("always", history_store, pointer_file, process="conv_gone").resolve()

        assert decision == RestoreDecision("conv_b", "file")


class TestPointerUpdates:
    def test_remember_writes_file_only_in_always_mode(
        self, history_store: HistoryStore, pointer_file: PointerFile
    ) -> None:
        session = _policy("session", history_store, pointer_file)
        session.remember("conv_a")
        assert session.process_pointer.conversation_id == "conv_a"
        assert pointer_file.read() is None

        always = _policy("always", history_store, pointer_file)
        always.remember("conv_a")
        assert pointer_file.read() == "conv_a"

    def test_forget_clears_both_pointers(self, history_store: HistoryStore, pointer_file: PointerFile) -> None:
        policy = _policy("always", history_store, pointer_file, process="conv_a")
        pointer_file.write("conv_a")

        policy.forget()

        assert policy.process_pointer.conversation_id is None
        assert pointer_file.read() is None

    def test_note_active_only_touches_process_pointer(
        self, history_store: HistoryStore, pointer_file: PointerFile
    ) -> None:
        policy = _policy("always", history_store, pointer_file)

        policy.note_active("conv_a")

        assert policy.process_pointer.conversation_id == "conv_a"
        assert pointer_file.read() is None
