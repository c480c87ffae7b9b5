"""Event bus and the events published by the assistant engine.

Domain managers publish these events after every state change so the panel
(or any other front end) can react without holding references to the
managers themselves.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Callable, Generic, TypeVar, TYPE_CHECKING
from weakref import WeakMethod

if TYPE_CHECKING:  # pragma: no cover - imports for type checking only
    from typing import DefaultDict

logger = logging.getLogger(__name__)

E = TypeVar("E", bound="Event")

Handler = Callable[[E], None]


@dataclass(slots=True)
class Event:
    """Base class for all events; subclasses are ``@dataclass(slots=True)``."""


# =============================================================================
# Conversation Events
# =============================================================================


@dataclass(slots=True)
class ConversationStarted(Event):
    """A fresh, empty conversation became active."""

    conversation_id: str


@dataclass(slots=True)
class ConversationLoaded(Event):
    """A stored conversation replaced the active one.

    Attributes:
        conversation_id: Id of the loaded conversation.
        message_count: Number of messages in its log.
    """

    conversation_id: str
    message_count: int


@dataclass(slots=True)
class ConversationRestored(Event):
    """A conversation was resumed when the panel opened.

    Attributes:
        conversation_id: Id of the resumed conversation.
        source: ``"process"`` for the in-process pointer, ``"file"`` for
            the persisted pointer file.
    """

    conversation_id: str
    source: str


@dataclass(slots=True)
class ConversationSaved(Event):
    """The active conversation was written to the history store."""

    conversation_id: str
    success: bool


@dataclass(slots=True)
class MessageAppended(Event):
    """A message was appended to the active conversation."""

    conversation_id: str
    role: str
    content: str


@dataclass(slots=True)
class MessageRolledBack(Event):
    """The trailing user message was removed after a failure or cancel."""

    conversation_id: str
    content: str


@dataclass(slots=True)
class HistoryChanged(Event):
    """The stored conversation list changed (delete or clear)."""

    conversation_count: int


# =============================================================================
# Request Events
# =============================================================================


@dataclass(slots=True)
class RequestSubmitted(Event):
    """A prompt was accepted and dispatched to the transport."""

    request_id: str
    prompt: str


@dataclass(slots=True)
class RequestCompleted(Event):
    """The transport answered and the reply was appended."""

    request_id: str
    response: str


@dataclass(slots=True)
class RequestFailed(Event):
    """The transport failed; the error message is already in the log.

    Attributes:
        request_id: Id of the failed request.
        error: Human-readable error text.
        error_type: Machine-readable type reported by the service, if any.
    """

    request_id: str
    error: str
    error_type: str | None = None


@dataclass(slots=True)
class RequestCanceled(Event):
    """The user cancelled an outstanding request.

    Attributes:
        request_id: Id of the cancelled request.
        prompt: The submitted text, handed back for re-editing.
    """

    request_id: str
    prompt: str


@dataclass(slots=True)
class RequestDiscarded(Event):
    """A result arrived for a cancelled request and was ignored."""

    request_id: str


@dataclass(slots=True)
class LoadingChanged(Event):
    """The loading indicator flipped."""

    loading: bool


# =============================================================================
# UI Events
# =============================================================================


@dataclass(slots=True)
class StatusMessage(Event):
    """Transient feedback for the user.

    Attributes:
        message: Text to display.
        timeout_ms: How long to show it; 0 keeps it until replaced.
        level: ``"info"``, ``"warning"`` or ``"error"``.
    """

    message: str
    timeout_ms: int = 0
    level: str = "info"


@dataclass(slots=True)
class SettingsChanged(Event):
    """A settings value was saved.

    Attributes:
        scope: ``"global"`` or ``"project"``.
        settings: The changed fields and their new values (secrets redacted).
    """

    scope: str
    settings: dict[str, Any]


# =============================================================================
# Event Bus
# =============================================================================


class EventBus(Generic[E]):
    """A typed publish-subscribe bus.

    Handlers run synchronously in subscription order. Bound methods are held
    through weak references so subscribers can be collected without
    unsubscribing; plain functions and lambdas are held strongly.

    Not thread-safe: publish from the event loop thread only.
    """

    __slots__ = ("_handlers",)

    def __init__(self) -> None:
        self._handlers: DefaultDict[type[Event], list[_HandlerRef]] = defaultdict(list)

    def subscribe(self, event_type: type[E], handler: Handler[E]) -> None:
        """Register ``handler`` for events of exactly ``event_type``.

        Subscribing the same handler twice results in two invocations.
        """
        self._handlers[event_type].append(_HandlerRef.create(handler))
        logger.debug("Subscribed handler %s to %s", _handler_name(handler), event_type.__name__)

    def unsubscribe(self, event_type: type[E], handler: Handler[E]) -> None:
        """Remove the first registration of ``handler``; unknown handlers are ignored."""
        handlers = self._handlers.get(event_type)
        if handlers is None:
            return
        for index, handler_ref in enumerate(handlers):
            if handler_ref.matches(handler):
                handlers.pop(index)
                logger.debug(
                    "Unsubscribed handler %s from %s", _handler_name(handler), event_type.__name__
                )
                return

    def publish(self, event: E) -> None:
        """Deliver ``event`` to its subscribers.

        A handler that raises is logged and the remaining handlers still run.
        """
        event_type = type(event)
        handlers = self._handlers.get(event_type)
        if not handlers:
            return
        logger.debug("Publishing %s to %d handler(s)", event_type.__name__, len(handlers))

        dead: list[int] = []
        for index, handler_ref in enumerate(list(handlers)):
            handler = handler_ref.resolve()
            if handler is None:
                dead.append(index)
                continue
            try:
                handler(event)
            except Exception:
                logger.exception(
                    "Handler %s raised exception for event %s",
                    _handler_name(handler),
                    event_type.__name__,
                )
        for index in reversed(dead):
            if index < len(handlers) and handlers[index].resolve() is None:
                handlers.pop(index)

    def clear(self) -> None:
        """Remove all registered handlers."""
        self._handlers.clear()

    def handler_count(self, event_type: type[E] | None = None) -> int:
        if event_type is not None:
            return len(self._handlers.get(event_type, []))
        return sum(len(handlers) for handlers in self._handlers.values())


class _HandlerRef:
    """Weak reference for bound methods, strong reference for everything else."""

    __slots__ = ("_ref", "_is_weak")

    def __init__(self, handler_ref: Any, is_weak: bool) -> None:
        self._ref = handler_ref
        self._is_weak = is_weak

    @classmethod
    def create(cls, handler: Handler) -> _HandlerRef:
        if hasattr(handler, "__self__") and hasattr(handler, "__func__"):
            try:
                return cls(WeakMethod(handler), is_weak=True)
            except TypeError:
                pass
        return cls(handler, is_weak=False)

    def resolve(self) -> Handler | None:
        if not self._is_weak:
            return self._ref
        return self._ref()

    def matches(self, handler: Handler) -> bool:
        resolved = self.resolve()
        return resolved is not None and resolved == handler


def _handler_name(handler: Handler) -> str:
    if hasattr(handler, "__self__") and hasattr(handler, "__func__"):
        return f"{type(handler.__self__).__name__}.{handler.__func__.__name__}"
    return getattr(handler, "__name__", repr(handler))


__all__ = [
    "Event",
    "EventBus",
    "Handler",
    "ConversationStarted",
    "ConversationLoaded",
    "ConversationRestored",
    "ConversationSaved",
    "MessageAppended",
    "MessageRolledBack",
    "HistoryChanged",
    "RequestSubmitted",
    "RequestCompleted",
    "RequestFailed",
    "RequestCanceled",
    "RequestDiscarded",
    "LoadingChanged",
    "StatusMessage",
    "SettingsChanged",
]
