"""Shared test doubles.

Import from here instead of duplicating these classes in individual test
files::

    from helpers import FakeTransport
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any

from keymentor.ai.client import ChatRequest
from keymentor.ui.events import Event, EventBus

FIXED_NOW = datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
FIXED_TIMESTAMP = "2024-01-02T03:04:05Z"


class FakeTransport:
    """Chat transport whose calls stay pending until the test resolves them."""

    def __init__(self) -> None:
        self.requests: list[ChatRequest] = []
        self.aborted = 0
        self._futures: list[asyncio.Future[str]] = []

    async def complete(self, request: ChatRequest) -> str:
        self.requests.append(request)
        future: asyncio.Future[str] = asyncio.get_running_loop().create_future()
        self._futures.append(future)
        return await future

    async def wait_for_call(self, count: int = 1) -> None:
        while len(self.requests) < count:
            await asyncio.sleep(0)

    def resolve(self, text: str, index: int = -1) -> None:
        self._futures[index].set_result(text)

    def fail(self, error: BaseException, index: int = -1) -> None:
        self._futures[index].set_exception(error)

    def abort(self) -> None:
        self.aborted += 1


class EventRecorder:
    """Collects every published event of the watched types, in order."""

    def __init__(self, bus: EventBus) -> None:
        self._bus = bus
        self.events: list[Event] = []

    def watch(self, *event_types: type[Event]) -> "EventRecorder":
        for event_type in event_types:
            self._bus.subscribe(event_type, self.events.append)
        return self

    def of_type(self, event_type: type[Event]) -> list[Any]:
        return [event for event in self.events if isinstance(event, event_type)]
