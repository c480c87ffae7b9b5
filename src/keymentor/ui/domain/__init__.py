"""Domain layer for the assistant engine.

Domain Managers:
    - ConversationManager: Active conversation message log
    - RequestController: Submit / complete / fail / cancel state machine
    - SessionRestorePolicy: Which conversation to resume on open

All domain managers receive their dependencies via constructor injection
and announce state changes on the event bus.
"""

from __future__ import annotations

from .conversation_manager import ConversationManager
from .request_controller import RequestController, RequestOptions
from .restore_policy import PointerFile, ProcessPointer, RestoreDecision, SessionRestorePolicy

__all__: list[str] = [
    "ConversationManager",
    "RequestController",
    "RequestOptions",
    "SessionRestorePolicy",
    "RestoreDecision",
    "ProcessPointer",
    "PointerFile",
]
