"""Shared pytest fixtures."""

from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Callable

import pytest

from helpers import FIXED_NOW, EventRecorder, FakeTransport
from keymentor.ai.context import StaticContextProvider
from keymentor.ai.message_builder import PromptAssembler
from keymentor.services.history import HistoryStore
from keymentor.ui.domain.conversation_manager import ConversationManager
from keymentor.ui.domain.request_controller import RequestController, RequestOptions
from keymentor.ui.events import EventBus


@pytest.fixture
def event_bus() -> EventBus:
    return EventBus()


@pytest.fixture
def recorder(event_bus: EventBus) -> EventRecorder:
    return EventRecorder(event_bus)


@pytest.fixture
def fixed_clock() -> Callable[[], datetime]:
    return lambda: FIXED_NOW


@pytest.fixture
def history_path(tmp_path: Path) -> Path:
    return tmp_path / "data" / "history.json"


@pytest.fixture
def history_store(history_path: Path, fixed_clock: Callable[[], datetime]) -> HistoryStore:
    return HistoryStore(history_path, clock=fixed_clock)


@pytest.fixture
def conversations(history_store: HistoryStore, event_bus: EventBus) -> ConversationManager:
    return ConversationManager(history_store, event_bus, clock=lambda: FIXED_NOW)


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def assembler() -> PromptAssembler:
    return PromptAssembler(
        template="{preprompt}|{context}",
        preprompt_source=lambda: "be brief",
        context_provider=StaticContextProvider("shell: zsh"),
    )


@pytest.fixture
def controller(
    conversations: ConversationManager,
    assembler: PromptAssembler,
    transport: FakeTransport,
    event_bus: EventBus,
) -> RequestController:
    return RequestController(
        conversations,
        assembler,
        transport,
        event_bus,
        options=RequestOptions(model="test-model", max_tokens=64, temperature=0.1, max_turns=10),
    )
