"""Decides which conversation, if any, to resume when the panel opens."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from ...services.config import RESTORE_MODES, RestoreMode
from ...services.history import HistoryStore
from ...utils import file_io

LOGGER = logging.getLogger(__name__)


class ProcessPointer:
    """Last active conversation id for the lifetime of the running process."""

    __slots__ = ("_conversation_id",)

    def __init__(self, conversation_id: str | None = None) -> None:
        self._conversation_id = conversation_id

    @property
    def conversation_id(self) -> Optional[str]:
        return self._conversation_id

    def set(self, conversation_id: str) -> None:
        self._conversation_id = conversation_id

    def clear(self) -> None:
        self._conversation_id = None


class PointerFile:
    """A small file holding the last active conversation id across restarts."""

    def __init__(self, path: Path | str) -> None:
        self._path = Path(path).expanduser()

    @property
    def path(self) -> Path:
        return self._path

    def read(self) -> Optional[str]:
        if not self._path.exists():
            return None
        try:
            value = file_io.read_text(self._path).strip()
        except (OSError, UnicodeDecodeError) as exc:
            LOGGER.warning("Failed to read conversation pointer %s: %s", self._path, exc)
            return None
        return value or None

    def write(self, conversation_id: str) -> bool:
        try:
            file_io.write_text(self._path, conversation_id)
        except OSError as exc:
            LOGGER.warning("Failed to write conversation pointer %s: %s", self._path, exc)
            return False
        return True

    def clear(self) -> bool:
        try:
            self._path.unlink(missing_ok=True)
        except OSError as exc:
            LOGGER.warning("Failed to remove conversation pointer %s: %s", self._path, exc)
            return False
        return True


@dataclass(slots=True, frozen=True)
class RestoreDecision:
    """Outcome of :meth:`SessionRestorePolicy.resolve`.

    Attributes:
        conversation_id: Conversation to resume, or ``None`` to start fresh.
        source: ``"process"`` or ``"file"`` when resuming.
    """

    conversation_id: Optional[str] = None
    source: Optional[str] = None

    @property
    def should_restore(self) -> bool:
        return self.conversation_id is not None


class SessionRestorePolicy:
    """Resolves the conversation to resume for the configured restore mode.

    * ``never``: always start fresh.
    * ``session``: resume the conversation recorded in this process, if any.
    * ``always``: prefer the in-process pointer, then the pointer file.

    Pointers naming a conversation that no longer exists in the history
    store are cleared.
    """

    def __init__(
        self,
        mode: RestoreMode,
        *,
        history: HistoryStore,
        process_pointer: ProcessPointer | None = None,
        pointer_file: PointerFile | None = None,
    ) -> None:
        if mode not in RESTORE_MODES:
            raise ValueError(f"Unknown restore mode: {mode!r}")
        self._mode = mode
        self._history = history
        self._process_pointer = process_pointer or ProcessPointer()
        self._pointer_file = pointer_file

    @property
    def mode(self) -> RestoreMode:
        return self._mode

    @property
    def process_pointer(self) -> ProcessPointer:
        return self._process_pointer

    @property
    def pointer_file(self) -> PointerFile | None:
        return self._pointer_file

    def resolve(self) -> RestoreDecision:
        if self._mode == "never":
            return RestoreDecision()

        candidate = self._process_pointer.conversation_id
        if candidate:
            if self._history.get_conversation(candidate) is not None:
                return RestoreDecision(candidate, "process")
            LOGGER.debug("Clearing stale in-process conversation pointer %s", candidate)
            self._process_pointer.clear()

        if self._mode != "always" or self._pointer_file is None:
            return RestoreDecision()

        candidate = self._pointer_file.read()
        if not candidate:
            return RestoreDecision()
        if self._history.get_conversation(candidate) is not None:
            return RestoreDecision(candidate, "file")
        LOGGER.info("Conversation pointer %s no longer resolves; starting fresh", candidate)
        self._pointer_file.clear()
        return RestoreDecision()

    def note_active(self, conversation_id: str) -> None:
        """Record ``conversation_id`` as the most recent one for this process."""
        self._process_pointer.set(conversation_id)

    def remember(self, conversation_id: str) -> bool:
        """Record the conversation on close; the file is only written in ``always`` mode."""
        self._process_pointer.set(conversation_id)
        if self._mode == "always" and self._pointer_file is not None:
            return self._pointer_file.write(conversation_id)
        return True

    def forget(self) -> None:
        """Drop both pointers after the user explicitly starts over."""
        self._process_pointer.clear()
        if self._pointer_file is not None:
            self._pointer_file.clear()


__all__ = ["ProcessPointer", "PointerFile", "RestoreDecision", "SessionRestorePolicy"]
