"""Schema migrations for the persisted conversation history."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Mapping

from ..chat.message_model import (
    Conversation,
    Message,
    new_conversation_id,
    summarize,
    utc_timestamp,
)
from ..errors import CorruptStateError, UnsupportedVersionError

LOGGER = logging.getLogger(__name__)

HISTORY_VERSION = 2
LEGACY_VERSION = 1


@dataclass(slots=True)
class HistoryData:
    """In-memory form of the history file: newest conversation first."""

    version: int = HISTORY_VERSION
    conversations: list[Conversation] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "conversations": [conversation.to_dict() for conversation in self.conversations],
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "HistoryData":
        conversations = payload.get("conversations")
        if not isinstance(conversations, list):
            raise CorruptStateError("History payload is missing its conversation list")
        return cls(
            version=HISTORY_VERSION,
            conversations=[Conversation.from_dict(item) for item in conversations],
        )


def detect_version(payload: Mapping[str, Any]) -> int:
    """Return the schema version declared by ``payload``; files without one are v1.

    Raises:
        UnsupportedVersionError: ``version`` is present but not an integer.
    """

    version = payload.get("version")
    if version is None:
        return LEGACY_VERSION
    # bool is an int subclass and ``True == 1``
    if isinstance(version, bool) or not isinstance(version, int):
        raise UnsupportedVersionError(version)
    return version


def migrate_v1_to_v2(payload: Mapping[str, Any], *, now: datetime | None = None) -> HistoryData:
    """Convert a v1 ``{entries: [{timestamp, prompt, response}]}`` payload.

    Each entry becomes a two-message conversation (user prompt, assistant
    response) sharing the entry's timestamp. Entries keep their original
    order, so the result is not re-sorted newest first.

    Raises:
        CorruptStateError: If ``entries`` is present but not a list.
    """

    entries = payload.get("entries", [])
    if entries is None:
        entries = []
    if not isinstance(entries, list):
        raise CorruptStateError("Legacy history entries must be a list")

    fallback = utc_timestamp(now)
    seconds = now.timestamp() if now is not None else None
    conversations: list[Conversation] = []
    for index, entry in enumerate(entries, start=1):
        if not isinstance(entry, Mapping):
            LOGGER.warning("Skipping malformed legacy history entry #%d", index)
            continue
        timestamp = str(entry.get("timestamp") or fallback)
        messages = [
            Message(role="user", content=str(entry.get("prompt") or ""), timestamp=timestamp),
            Message(role="assistant", content=str(entry.get("response") or ""), timestamp=timestamp),
        ]
        conversations.append(
            Conversation(
                id=new_conversation_id(seconds),
                messages=messages,
                created_at=timestamp,
                updated_at=timestamp,
                summary=summarize(messages),
            )
        )
    return HistoryData(version=HISTORY_VERSION, conversations=conversations)


__all__ = [
    "HISTORY_VERSION",
    "LEGACY_VERSION",
    "HistoryData",
    "detect_version",
    "migrate_v1_to_v2",
]
