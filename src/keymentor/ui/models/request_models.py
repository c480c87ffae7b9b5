"""Request lifecycle models shared by the controller and the panel."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum


def _utcnow() -> datetime:
    """Return current UTC time."""
    return datetime.now(timezone.utc)


class RequestPhase(Enum):
    """Phase of the request lifecycle.

    The controller itself is only ever ``IDLE`` or ``SUBMITTING``; the
    terminal values record how a :class:`PendingRequest` ended.

    Values:
        IDLE: No request outstanding.
        SUBMITTING: A request is in flight.
        COMPLETED: The reply was appended to the conversation.
        FAILED: The transport failed and an error message was appended.
        CANCELLED: The user cancelled before the transport resolved.
    """

    IDLE = "idle"
    SUBMITTING = "submitting"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class CancellationToken:
    """Flag checked when a request's result arrives.

    Setting it never interrupts the transport; it only disarms the result.
    """

    __slots__ = ("_cancelled",)

    def __init__(self) -> None:
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True


@dataclass(slots=True)
class PendingRequest:
    """A request from submission until it reaches a terminal phase.

    Attributes:
        request_id: Unique identifier for this request.
        submitted_prompt: The text as submitted, restored on cancel.
        conversation_id: Conversation the request belongs to.
        token: Cancellation token checked when the result arrives.
        status: Current phase.
        response: Reply text once completed.
        error: Error text once failed.
        discarded: True when a result arrived after cancellation.
    """

    request_id: str
    submitted_prompt: str
    conversation_id: str
    token: CancellationToken = field(default_factory=CancellationToken)
    status: RequestPhase = RequestPhase.SUBMITTING
    response: str | None = None
    error: str | None = None
    discarded: bool = False
    created_at: datetime = field(default_factory=_utcnow)
    completed_at: datetime | None = None

    @property
    def cancelled(self) -> bool:
        return self.token.cancelled

    @property
    def is_finished(self) -> bool:
        return self.status in (RequestPhase.COMPLETED, RequestPhase.FAILED, RequestPhase.CANCELLED)

    def mark_completed(self, response: str) -> None:
        self.status = RequestPhase.COMPLETED
        self.response = response
        self.completed_at = _utcnow()

    def mark_failed(self, error: str) -> None:
        self.status = RequestPhase.FAILED
        self.error = error
        self.completed_at = _utcnow()

    def mark_cancelled(self) -> None:
        self.token.cancel()
        self.status = RequestPhase.CANCELLED
        self.completed_at = _utcnow()

    def mark_discarded(self) -> None:
        """Record that a late result was ignored."""
        self.discarded = True


__all__ = ["RequestPhase", "CancellationToken", "PendingRequest"]
