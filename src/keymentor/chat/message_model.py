"""Conversation and message data models."""

from __future__ import annotations

import itertools
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Literal, Mapping, Optional, get_args

from ..errors import CorruptStateError

MessageRole = Literal["user", "assistant", "error"]
MESSAGE_ROLES: tuple[str, ...] = get_args(MessageRole)
SUMMARY_MAX_CHARS = 50
UNTITLED_SUMMARY = "Untitled conversation"
TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%SZ"

_ID_COUNTER = itertools.count(1)


def _utcnow() -> datetime:
    """Return the current UTC time as a timezone-aware datetime."""

    return datetime.now(timezone.utc)


def utc_timestamp(moment: datetime | None = None) -> str:
    """Format ``moment`` (default: now) as an ISO-8601 UTC string."""

    instant = moment or _utcnow()
    if instant.tzinfo is not None:
        instant = instant.astimezone(timezone.utc)
    return instant.strftime(TIMESTAMP_FORMAT)


def new_conversation_id(now: float | None = None) -> str:
    """Return a conversation id unique within this process.

    The wall-clock second keeps ids readable and roughly sortable; the
    process-wide counter separates ids minted within the same second.
    """

    seconds = int(time.time() if now is None else now)
    return f"conv_{seconds}_{next(_ID_COUNTER)}"


def summarize(messages: "list[Message] | tuple[Message, ...]") -> str:
    """Derive a conversation summary from its first user message."""

    for message in messages:
        if message.role == "user":
            content = message.content
            if len(content) > SUMMARY_MAX_CHARS:
                return content[:SUMMARY_MAX_CHARS] + "..."
            return content
    return UNTITLED_SUMMARY


@dataclass(slots=True, frozen=True)
class Message:
    """A single entry in a conversation's message log."""

    role: MessageRole
    content: str
    timestamp: str = field(default_factory=utc_timestamp)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize the message for persistence."""

        return {"role": self.role, "content": self.content, "timestamp": self.timestamp}

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "Message":
        if not isinstance(payload, Mapping):
            raise CorruptStateError(f"Message entry must be an object, got {type(payload).__name__}")
        role = payload.get("role")
        content = payload.get("content")
        if role not in MESSAGE_ROLES:
            raise CorruptStateError(f"Unknown message role: {role!r}")
        if not isinstance(content, str):
            raise CorruptStateError("Message content must be a string")
        timestamp = payload.get("timestamp")
        return cls(role=role, content=content, timestamp=str(timestamp) if timestamp else utc_timestamp())


@dataclass(slots=True)
class Conversation:
    """An ordered, persisted sequence of messages sharing one identity.

    ``messages`` is kept in append order and is the only input used for turn
    counting and summaries.
    """

    id: str = field(default_factory=new_conversation_id)
    messages: list[Message] = field(default_factory=list)
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    summary: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return not self.messages

    def user_turns(self) -> int:
        """Return the number of user messages in the log."""

        return sum(1 for message in self.messages if message.role == "user")

    def copy(self) -> "Conversation":
        """Return a shallow copy with an independent message list."""

        return Conversation(
            id=self.id,
            messages=list(self.messages),
            created_at=self.created_at,
            updated_at=self.updated_at,
            summary=self.summary,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Serialize the conversation for persistence."""

        return {
            "id": self.id,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "summary": self.summary,
            "messages": [message.to_dict() for message in self.messages],
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "Conversation":
        if not isinstance(payload, Mapping):
            raise CorruptStateError(
                f"Conversation entry must be an object, got {type(payload).__name__}"
            )
        identifier = payload.get("id")
        if not isinstance(identifier, str) or not identifier:
            raise CorruptStateError("Conversation is missing its id")
        raw_messages = payload.get("messages") or []
        if not isinstance(raw_messages, list):
            raise CorruptStateError(f"Conversation {identifier} has a non-list message log")
        return cls(
            id=identifier,
            messages=[Message.from_dict(item) for item in raw_messages],
            created_at=payload.get("created_at"),
            updated_at=payload.get("updated_at"),
            summary=payload.get("summary"),
        )


__all__ = [
    "MessageRole",
    "MESSAGE_ROLES",
    "Message",
    "Conversation",
    "SUMMARY_MAX_CHARS",
    "UNTITLED_SUMMARY",
    "new_conversation_id",
    "summarize",
    "utc_timestamp",
]
