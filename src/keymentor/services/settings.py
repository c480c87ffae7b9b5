"""Two-scope (global and project) user settings with typed partial updates."""

from __future__ import annotations

import copy
import json
import logging
from dataclasses import dataclass, fields
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Generic, Literal, Mapping, TypeVar, Union, get_args

from ..chat.message_model import utc_timestamp
from ..utils import file_io

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")
Scope = Literal["global", "project"]
SCOPES: tuple[str, ...] = get_args(Scope)
SETTINGS_VERSION = 1
SETTINGS_DIRNAME = ".keymentor"
SETTINGS_FILENAME = "settings.json"
_DEFAULT_GLOBAL_PATH = Path.home() / SETTINGS_DIRNAME / SETTINGS_FILENAME


# ----------------------------------------------------------------------
# Typed partial updates
# ----------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Keep:
    """Leave the stored value untouched."""


@dataclass(frozen=True, slots=True)
class SetTo(Generic[T]):
    """Replace the stored value."""

    value: T


@dataclass(frozen=True, slots=True)
class Clear:
    """Remove the stored value so reads fall back to the default."""


FieldUpdate = Union[Keep, SetTo[Any], Clear]
KEEP = Keep()
CLEAR = Clear()


@dataclass(frozen=True, slots=True)
class SettingsUpdate:
    """A partial update; every field defaults to :class:`Keep`."""

    preprompt: FieldUpdate = KEEP
    api_key: FieldUpdate = KEEP
    debug_enabled: FieldUpdate = KEEP
    selected_scope: FieldUpdate = KEEP

    def changed_fields(self) -> list[str]:
        return [item.name for item in fields(self) if not isinstance(getattr(self, item.name), Keep)]

    def split(self) -> tuple[Dict[str, Any], set[str]]:
        """Return ``(values to set, keys to clear)``."""
        values: Dict[str, Any] = {}
        cleared: set[str] = set()
        for item in fields(self):
            change = getattr(self, item.name)
            if isinstance(change, SetTo):
                values[item.name] = change.value
            elif isinstance(change, Clear):
                cleared.add(item.name)
        return values, cleared


def deep_merge(base: Mapping[str, Any], overrides: Mapping[str, Any]) -> Dict[str, Any]:
    """Merge ``overrides`` into a copy of ``base``.

    New values win. Nested mappings on both sides are merged recursively;
    anything else (lists included) is replaced wholesale. Neither input is
    mutated.
    """

    merged: Dict[str, Any] = copy.deepcopy(dict(base))
    for key, value in overrides.items():
        current = merged.get(key)
        if isinstance(current, Mapping) and isinstance(value, Mapping):
            merged[key] = deep_merge(current, value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


# ----------------------------------------------------------------------
# Documents
# ----------------------------------------------------------------------


@dataclass(slots=True)
class ScopeSettings:
    """Typed view of one settings file."""

    version: int = SETTINGS_VERSION
    preprompt: str = ""
    api_key: str = ""
    debug_enabled: bool = False
    selected_scope: Scope = "global"
    last_modified: str | None = None

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "ScopeSettings":
        defaults = cls()
        data: Dict[str, Any] = {}
        for item in fields(cls):
            if item.name not in payload:
                continue
            value = payload[item.name]
            expected = getattr(defaults, item.name)
            if expected is not None and not isinstance(value, type(expected)):
                LOGGER.warning("Ignoring settings field %s with unexpected type %s", item.name, type(value).__name__)
                continue
            data[item.name] = value
        settings = cls(**data)
        if settings.selected_scope not in SCOPES:
            settings.selected_scope = "global"
        return settings


def default_document() -> Dict[str, Any]:
    return {
        "version": SETTINGS_VERSION,
        "preprompt": "",
        "api_key": "",
        "debug_enabled": False,
        "selected_scope": "global",
        "last_modified": None,
    }


def find_project_root(start: Path | str | None = None) -> Path:
    """Return the nearest ancestor of ``start`` holding a ``.git`` entry, else ``start``."""

    origin = Path(start or Path.cwd()).expanduser().resolve()
    for candidate in (origin, *origin.parents):
        if (candidate / ".git").exists():
            return candidate
    return origin


# ----------------------------------------------------------------------
# Store
# ----------------------------------------------------------------------


class SettingsStore:
    """Persistence adapter for the global and project settings files.

    Reads are cached per scope. ``selected_scope`` always lives in the global
    file and decides which scope the ``*_current_*`` accessors use.
    """

    def __init__(
        self,
        global_path: Path | str | None = None,
        *,
        project_root: Path | str | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._global_path = Path(global_path).expanduser() if global_path else _DEFAULT_GLOBAL_PATH
        self._project_root = Path(project_root).expanduser() if project_root else None
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._cache: Dict[str, Dict[str, Any]] = {}

    @property
    def global_path(self) -> Path:
        return self._global_path

    @property
    def project_root(self) -> Path:
        if self._project_root is None:
            self._project_root = find_project_root()
        return self._project_root

    @property
    def project_path(self) -> Path:
        return self.project_root / SETTINGS_DIRNAME / SETTINGS_FILENAME

    def path_for(self, scope: Scope) -> Path:
        _require_scope(scope)
        return self._global_path if scope == "global" else self.project_path

    # ------------------------------------------------------------------
    # Load / save
    # ------------------------------------------------------------------

    def load(self, scope: Scope) -> ScopeSettings:
        return ScopeSettings.from_dict(self._document(scope))

    def load_global(self) -> ScopeSettings:
        return self.load("global")

    def load_project(self) -> ScopeSettings:
        return self.load("project")

    def save(self, scope: Scope, update: SettingsUpdate) -> bool:
        """Apply ``update`` to ``scope`` and write the file atomically.

        Returns:
            ``True`` when the file was written; the cache is only refreshed
            on success.
        """
        path = self.path_for(scope)
        values, cleared = update.split()
        document = deep_merge(self._document(scope), values)
        for key in cleared:
            document.pop(key, None)
        document["version"] = SETTINGS_VERSION
        document["last_modified"] = utc_timestamp(self._clock())
        try:
            body = json.dumps(document, indent=2, sort_keys=True)
            file_io.write_text(path, body)
        except (OSError, TypeError, ValueError) as exc:
            LOGGER.warning("Failed to save %s settings to %s: %s", scope, path, exc)
            return False
        self._cache[scope] = document
        LOGGER.debug("Saved %s settings to %s (fields=%s)", scope, path, update.changed_fields())
        return True

    def save_global(self, update: SettingsUpdate) -> bool:
        return self.save("global", update)

    def save_project(self, update: SettingsUpdate) -> bool:
        return self.save("project", update)

    def clear_cache(self) -> None:
        self._cache.clear()

    # ------------------------------------------------------------------
    # Scope-aware accessors
    # ------------------------------------------------------------------

    def get_selected_scope(self) -> Scope:
        return self.load_global().selected_scope

    def set_selected_scope(self, scope: Scope) -> bool:
        _require_scope(scope)
        return self.save_global(SettingsUpdate(selected_scope=SetTo(scope)))

    def get_current_preprompt(self) -> str:
        return self.load(self.get_selected_scope()).preprompt

    def save_current_preprompt(self, text: str) -> bool:
        return self.save(self.get_selected_scope(), SettingsUpdate(preprompt=SetTo(text)))

    def get_current_api_key(self) -> str:
        return self.load(self.get_selected_scope()).api_key

    def save_current_api_key(self, api_key: str | None) -> bool:
        change: FieldUpdate = SetTo(api_key) if api_key else CLEAR
        return self.save(self.get_selected_scope(), SettingsUpdate(api_key=change))

    def get_current_debug_mode(self) -> bool:
        return self.load(self.get_selected_scope()).debug_enabled

    def save_current_debug_mode(self, enabled: bool) -> bool:
        return self.save(self.get_selected_scope(), SettingsUpdate(debug_enabled=SetTo(bool(enabled))))

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _document(self, scope: Scope) -> Dict[str, Any]:
        cached = self._cache.get(scope)
        if cached is None:
            cached = self._read(self.path_for(scope))
            self._cache[scope] = cached
        return cached

    def _read(self, path: Path) -> Dict[str, Any]:
        if not path.exists():
            return default_document()
        try:
            payload = json.loads(file_io.read_text(path))
        except (OSError, UnicodeDecodeError) as exc:
            LOGGER.warning("Settings file %s could not be read: %s", path, exc)
            return default_document()
        except json.JSONDecodeError as exc:
            LOGGER.warning("Settings file %s is not valid JSON: %s", path, exc)
            return default_document()
        if not isinstance(payload, dict):
            LOGGER.warning("Settings file %s does not contain a JSON object", path)
            return default_document()
        return payload


def _require_scope(scope: str) -> None:
    if scope not in SCOPES:
        raise ValueError(f"Unknown settings scope: {scope!r}")


def redact_secret(value: str | None) -> str:
    """Mask all but the outer two characters of a secret for display."""

    stripped = (value or "").strip()
    if not stripped:
        return ""
    if len(stripped) <= 4:
        return "*" * len(stripped)
    return f"{stripped[:2]}{'*' * (len(stripped) - 4)}{stripped[-2:]}"


__all__ = [
    "Scope",
    "SCOPES",
    "SETTINGS_VERSION",
    "Keep",
    "SetTo",
    "Clear",
    "KEEP",
    "CLEAR",
    "FieldUpdate",
    "SettingsUpdate",
    "ScopeSettings",
    "SettingsStore",
    "deep_merge",
    "default_document",
    "find_project_root",
    "redact_secret",
]
