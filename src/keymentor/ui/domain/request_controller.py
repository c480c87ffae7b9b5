"""Request lifecycle controller domain service.

Runs at most one outbound request at a time and is the single source of
truth for the loading state. Every path out of ``SUBMITTING`` returns the
controller to ``IDLE`` with loading cleared.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import uuid
from dataclasses import dataclass
from typing import Any, Optional

from ...ai.client import ChatRequest, ChatTransport
from ...ai.message_builder import PromptAssembler
from ...errors import RequestInFlightError, TransportError, ValidationError
from ..events import (
    EventBus,
    LoadingChanged,
    RequestCanceled,
    RequestCompleted,
    RequestDiscarded,
    RequestFailed,
    RequestSubmitted,
)
from ..models.request_models import PendingRequest, RequestPhase
from .conversation_manager import ConversationManager

LOGGER = logging.getLogger(__name__)

EMPTY_PROMPT_MESSAGE = "Please enter a question"


@dataclass(slots=True)
class RequestOptions:
    """Per-request model parameters and the turn window."""

    model: str = "gpt-4o-mini"
    max_tokens: int = 500
    temperature: float = 0.7
    max_turns: int = 10

    @classmethod
    def from_config(cls, config: Any) -> "RequestOptions":
        return cls(
            model=config.model,
            max_tokens=config.max_tokens,
            temperature=config.temperature,
            max_turns=config.max_conversation_turns,
        )


class RequestController:
    """Domain manager for the submit / complete / fail / cancel lifecycle.

    ``submit`` dispatches the transport call as an asyncio task and returns
    immediately; ``cancel`` disarms the outstanding request synchronously.
    A result that arrives for a cancelled request, or for a conversation
    that is no longer active, is dropped without touching the conversation.

    Events Emitted:
        - RequestSubmitted: A prompt was accepted
        - LoadingChanged: Loading turned on or off
        - RequestCompleted: The reply was appended and persisted
        - RequestFailed: The error was appended in place of the turn
        - RequestCanceled: The user cancelled; carries the prompt to restore
        - RequestDiscarded: A late or orphaned result was ignored
    """

    def __init__(
        self,
        conversations: ConversationManager,
        assembler: PromptAssembler,
        transport: ChatTransport,
        event_bus: EventBus,
        *,
        options: RequestOptions | None = None,
    ) -> None:
        """Initialize the request controller.

        Args:
            conversations: Owner of the active message log.
            assembler: Builds the outbound message list.
            transport: Performs the network call.
            event_bus: Bus for publishing events.
            options: Model parameters and turn window.
        """
        self._conversations = conversations
        self._assembler = assembler
        self._transport = transport
        self._bus = event_bus
        self._options = options or RequestOptions()
        self._phase = RequestPhase.IDLE
        self._pending: PendingRequest | None = None
        self._tasks: dict[str, asyncio.Task[None]] = {}
        self._last_response: str | None = None

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def phase(self) -> RequestPhase:
        return self._phase

    @property
    def is_loading(self) -> bool:
        return self._phase is RequestPhase.SUBMITTING

    @property
    def pending(self) -> PendingRequest | None:
        """The outstanding request, if any."""
        return self._pending

    @property
    def last_response(self) -> str | None:
        """Text of the most recent successful reply."""
        return self._last_response

    @property
    def options(self) -> RequestOptions:
        return self._options

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def submit(self, prompt: str) -> PendingRequest:
        """Accept ``prompt`` and dispatch it.

        Must be called from a running event loop.

        Returns:
            The new :class:`PendingRequest`.

        Raises:
            RequestInFlightError: A request is already outstanding; nothing
                changes.
            ValidationError: ``prompt`` is empty or whitespace; nothing
                changes.
        """
        if self._phase is RequestPhase.SUBMITTING:
            raise RequestInFlightError("A request is already in progress")
        if not prompt or not prompt.strip():
            raise ValidationError(EMPTY_PROMPT_MESSAGE)
        loop = asyncio.get_running_loop()

        self._conversations.add_user_message(prompt)
        messages = self._assembler.assemble(self._conversations.messages, self._options.max_turns)
        request = ChatRequest(
            model=self._options.model,
            messages=messages,
            max_tokens=self._options.max_tokens,
            temperature=self._options.temperature,
        )
        pending = PendingRequest(
            request_id=f"req-{uuid.uuid4().hex[:8]}",
            submitted_prompt=prompt,
            conversation_id=self._conversations.active_id or "",
        )
        self._pending = pending
        self._phase = RequestPhase.SUBMITTING
        LOGGER.debug(
            "Request %s submitted (prompt_length=%d, outbound_messages=%d)",
            pending.request_id,
            len(prompt),
            len(messages),
        )
        self._bus.publish(RequestSubmitted(request_id=pending.request_id, prompt=prompt))
        self._bus.publish(LoadingChanged(loading=True))

        task = loop.create_task(self._run(pending, request))
        self._tasks[pending.request_id] = task
        task.add_done_callback(lambda _task, key=pending.request_id: self._tasks.pop(key, None))
        return pending

    def cancel(self) -> Optional[str]:
        """Cancel the outstanding request.

        The user message is rolled back and loading cleared immediately; the
        transport call is left to finish unless the transport offers
        ``abort()``.

        Returns:
            The submitted prompt for re-editing, or ``None`` when idle.
        """
        pending = self._pending
        if self._phase is not RequestPhase.SUBMITTING or pending is None:
            LOGGER.debug("cancel ignored: no request in flight")
            return None

        pending.mark_cancelled()
        self._conversations.rollback_last_user_message()
        self._finish()
        LOGGER.debug("Request %s cancelled", pending.request_id)
        self._bus.publish(
            RequestCanceled(request_id=pending.request_id, prompt=pending.submitted_prompt)
        )

        abort = getattr(self._transport, "abort", None)
        if callable(abort):
            try:
                abort()
            except Exception:  # pragma: no cover - abort is best effort
                LOGGER.debug("Transport abort failed", exc_info=True)
        return pending.submitted_prompt

    async def wait(self, pending: PendingRequest | None = None) -> None:
        """Wait until the transport call behind ``pending`` has resolved.

        Defaults to the outstanding request; returns at once if there is
        nothing to wait for.
        """
        target = pending or self._pending
        if target is None:
            return
        task = self._tasks.get(target.request_id)
        if task is not None:
            await asyncio.shield(task)

    async def shutdown(self) -> None:
        """Cancel any outstanding request and stop its task."""
        self.cancel()
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    async def _run(self, pending: PendingRequest, request: ChatRequest) -> None:
        try:
            response = await self._transport.complete(request)
        except asyncio.CancelledError:
            if pending is self._pending:
                self.cancel()
            raise
        except TransportError as exc:
            self._resolve_failure(pending, exc.message, exc.error_type)
        except Exception as exc:
            LOGGER.exception("Transport raised unexpectedly for request %s", pending.request_id)
            self._resolve_failure(pending, str(exc) or type(exc).__name__, None)
        else:
            self._resolve_success(pending, response)

    def _resolve_success(self, pending: PendingRequest, response: str) -> None:
        if self._discard_if_stale(pending):
            return
        self._conversations.add_assistant_message(response)
        pending.mark_completed(response)
        self._last_response = response
        self._finish()
        self._conversations.persist_active()
        LOGGER.debug("Request %s completed (%d chars)", pending.request_id, len(response))
        self._bus.publish(RequestCompleted(request_id=pending.request_id, response=response))

    def _resolve_failure(self, pending: PendingRequest, error: str, error_type: str | None) -> None:
        if self._discard_if_stale(pending):
            return
        self._conversations.rollback_last_user_message()
        self._conversations.add_error_message(error)
        pending.mark_failed(error)
        self._finish()
        LOGGER.warning("Request %s failed: %s", pending.request_id, error)
        self._bus.publish(
            RequestFailed(request_id=pending.request_id, error=error, error_type=error_type)
        )

    def _discard_if_stale(self, pending: PendingRequest) -> bool:
        if pending.cancelled:
            reason = "cancelled"
        elif pending.conversation_id != (self._conversations.active_id or ""):
            reason = "conversation changed"
        else:
            return False
        pending.mark_discarded()
        if pending is self._pending:
            # The conversation was switched underneath the request.
            pending.mark_cancelled()
            self._finish()
        LOGGER.debug("Discarding result for request %s (%s)", pending.request_id, reason)
        self._bus.publish(RequestDiscarded(request_id=pending.request_id))
        return True

    def _finish(self) -> None:
        self._pending = None
        self._phase = RequestPhase.IDLE
        self._bus.publish(LoadingChanged(loading=False))


__all__ = ["RequestController", "RequestOptions", "EMPTY_PROMPT_MESSAGE"]
