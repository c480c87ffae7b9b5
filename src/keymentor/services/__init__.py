"""Persistence and configuration services for the assistant."""

from .config import AssistantConfig, load_config
from .credentials import CredentialResolver
from .history import HistoryStore
from .history_migration import HISTORY_VERSION, HistoryData
from .settings import CLEAR, KEEP, Clear, Keep, SettingsStore, SettingsUpdate, SetTo, deep_merge

__all__ = [
    "AssistantConfig",
    "load_config",
    "CredentialResolver",
    "HistoryStore",
    "HistoryData",
    "HISTORY_VERSION",
    "SettingsStore",
    "SettingsUpdate",
    "Keep",
    "SetTo",
    "Clear",
    "KEEP",
    "CLEAR",
    "deep_merge",
]
