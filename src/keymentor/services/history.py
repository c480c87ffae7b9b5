"""Durable, versioned storage for assistant conversations."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Optional

from ..chat.message_model import Conversation, summarize, utc_timestamp
from ..errors import AssistantError, CorruptStateError, MigrationError, UnsupportedVersionError
from ..utils import file_io
from .history_migration import (
    HISTORY_VERSION,
    LEGACY_VERSION,
    HistoryData,
    detect_version,
    migrate_v1_to_v2,
)

LOGGER = logging.getLogger(__name__)

DEFAULT_MAX_ITEMS = 100
BACKUP_SUFFIX = ".v1.backup"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class HistoryStore:
    """Owns the history file and its in-memory cache.

    This is the only component that reads or writes the history file. Once
    loaded, reads return the cached :class:`HistoryData` until
    :meth:`invalidate` is called; successful writes replace the cache.

    When the file could not be loaded safely (an unknown schema version or a
    failed migration backup) the store refuses to overwrite it until
    :meth:`clear_all` is called, and the reason is exposed on
    :attr:`load_error`.
    """

    def __init__(
        self,
        path: Path | str,
        *,
        max_items: int = DEFAULT_MAX_ITEMS,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        if max_items < 1:
            raise ValueError("max_items must be at least 1")
        self._path = Path(path).expanduser()
        self._max_items = max_items
        self._clock = clock or _utcnow
        self._cache: HistoryData | None = None
        self._load_error: AssistantError | None = None

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def path(self) -> Path:
        return self._path

    @property
    def backup_path(self) -> Path:
        return self._path.with_name(self._path.name + BACKUP_SUFFIX)

    @property
    def max_items(self) -> int:
        return self._max_items

    @property
    def load_error(self) -> AssistantError | None:
        """The reportable error from the last load, if any."""
        return self._load_error

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def load(self) -> HistoryData:
        """Return the history, reading the file on first use.

        Missing, empty, or corrupt files yield an empty default without any
        write. Legacy files are migrated and persisted before returning.
        """
        if self._cache is None:
            self._cache = self._read()
        return self._cache

    def invalidate(self) -> None:
        """Drop the in-memory cache so the next read goes to disk."""
        self._cache = None
        self._load_error = None

    def conversations(self) -> list[Conversation]:
        """Return the stored conversations, newest first."""
        return list(self.load().conversations)

    def get_conversation(self, conversation_id: str) -> Optional[Conversation]:
        for conversation in self.load().conversations:
            if conversation.id == conversation_id:
                return conversation
        return None

    def _read(self) -> HistoryData:
        if not self._path.exists():
            LOGGER.debug("No history file at %s; starting empty", self._path)
            return HistoryData()
        try:
            text = file_io.read_text(self._path)
        except (OSError, UnicodeDecodeError) as exc:
            LOGGER.warning("History file %s could not be read: %s", self._path, exc)
            return HistoryData()
        if not text.strip():
            return HistoryData()
        try:
            payload = json.loads(text)
        except json.JSONDecodeError as exc:
            LOGGER.warning("History file %s is not valid JSON: %s", self._path, exc)
            return HistoryData()
        if not isinstance(payload, dict):
            LOGGER.warning("History file %s does not contain a JSON object", self._path)
            return HistoryData()

        try:
            version = detect_version(payload)
            if version not in (LEGACY_VERSION, HISTORY_VERSION):
                raise UnsupportedVersionError(version)
        except UnsupportedVersionError as exc:
            LOGGER.error("History file %s: %s; leaving it untouched", self._path, exc)
            self._load_error = exc
            return HistoryData()
        if version == LEGACY_VERSION:
            return self._migrate_legacy(payload)
        try:
            return HistoryData.from_dict(payload)
        except CorruptStateError as exc:
            LOGGER.warning("History file %s is corrupt: %s", self._path, exc)
            return HistoryData()

    def _migrate_legacy(self, payload: dict) -> HistoryData:
        try:
            migrated = migrate_v1_to_v2(payload, now=self._clock())
        except CorruptStateError as exc:
            LOGGER.warning("Legacy history file %s is corrupt: %s", self._path, exc)
            return HistoryData()

        try:
            self._write_backup()
        except OSError as exc:
            error = MigrationError(f"Could not back up legacy history to {self.backup_path}: {exc}")
            LOGGER.error("%s; migration aborted", error)
            self._load_error = error
            return HistoryData()

        if not self.save(migrated):
            error = MigrationError(f"Could not persist migrated history to {self._path}")
            LOGGER.error("%s; migration aborted", error)
            self._load_error = error
            return HistoryData()

        LOGGER.info(
            "Migrated %d legacy history entries (backup at %s)",
            len(migrated.conversations),
            self.backup_path,
        )
        return migrated

    def _write_backup(self) -> None:
        backup = self.backup_path
        if backup.exists():
            LOGGER.debug("Legacy history backup already present at %s", backup)
            return
        file_io.copy_file(self._path, backup)

    # ------------------------------------------------------------------
    # Writing
    # ------------------------------------------------------------------

    def save(self, data: HistoryData) -> bool:
        """Serialize ``data`` and atomically replace the history file.

        Returns:
            ``True`` on success. On failure the previous file content and the
            cache are left as they were.
        """
        if self._load_error is not None:
            LOGGER.error(
                "Refusing to overwrite history file %s after load error: %s",
                self._path,
                self._load_error,
            )
            return False
        try:
            body = json.dumps(data.to_dict(), indent=2, ensure_ascii=False)
            file_io.write_text(self._path, body)
        except (OSError, TypeError, ValueError) as exc:
            LOGGER.warning("Failed to save history to %s: %s", self._path, exc)
            return False
        self._cache = data
        LOGGER.debug("History saved to %s (%d conversations)", self._path, len(data.conversations))
        return True

    def save_conversation(self, conversation: Conversation) -> bool:
        """Upsert ``conversation`` and persist the store.

        Stamps ``updated_at`` (and ``created_at``/``summary`` when absent) on
        the given conversation. Existing entries keep their position; new
        ones are inserted at the front. The oldest conversations beyond
        :attr:`max_items` are evicted.
        """
        current = self.load()
        now = utc_timestamp(self._clock())
        conversation.updated_at = now
        if not conversation.created_at:
            conversation.created_at = now
        if not conversation.summary:
            conversation.summary = summarize(conversation.messages)

        stored = conversation.copy()
        conversations = list(current.conversations)
        for index, existing in enumerate(conversations):
            if existing.id == stored.id:
                conversations[index] = stored
                break
        else:
            conversations.insert(0, stored)
        if len(conversations) > self._max_items:
            LOGGER.debug("Evicting %d old conversation(s)", len(conversations) - self._max_items)
            del conversations[self._max_items :]
        return self.save(HistoryData(version=HISTORY_VERSION, conversations=conversations))

    def delete_conversation(self, conversation_id: str) -> bool:
        current = self.load()
        remaining = [item for item in current.conversations if item.id != conversation_id]
        if len(remaining) == len(current.conversations):
            LOGGER.warning("Conversation %s not found in history", conversation_id)
            return False
        return self.save(HistoryData(version=HISTORY_VERSION, conversations=remaining))

    def delete_conversation_by_index(self, index: int) -> bool:
        """Delete by 1-based position in the newest-first listing."""
        conversations = self.load().conversations
        if index < 1 or index > len(conversations):
            LOGGER.warning("History index %d out of range (1-%d)", index, len(conversations))
            return False
        return self.delete_conversation(conversations[index - 1].id)

    def clear_all(self) -> bool:
        """Replace the history with an empty store, clearing any load error."""
        self._load_error = None
        return self.save(HistoryData())


__all__ = ["HistoryStore", "DEFAULT_MAX_ITEMS", "BACKUP_SUFFIX"]
