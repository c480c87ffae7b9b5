"""UI layer: event bus, domain managers and the headless assistant panel."""

from .assistant_panel import AssistantPanel, HistoryItem
from .bootstrap import AssistantApp, create_assistant
from .events import EventBus

__all__ = [
    "AssistantApp",
    "AssistantPanel",
    "HistoryItem",
    "EventBus",
    "create_assistant",
]
