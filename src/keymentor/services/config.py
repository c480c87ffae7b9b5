"""Runtime configuration for the assistant engine."""

from __future__ import annotations

import logging
import os
from dataclasses import asdict, dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, Literal, Mapping, Optional, get_args

from ..errors import ConfigError

LOGGER = logging.getLogger(__name__)

RestoreMode = Literal["never", "session", "always"]
RESTORE_MODES: tuple[str, ...] = get_args(RestoreMode)
DEFAULT_DATA_DIR = Path.home() / ".keymentor"
HISTORY_FILENAME = "history.json"
POINTER_FILENAME = "last_conversation.txt"

_TRUE_VALUES = {"1", "true", "yes", "on", "debug"}
_FALSE_VALUES = {"0", "false", "no", "off", "disabled"}
_ENV_OVERRIDES: Mapping[str, str] = {
    "KEYMENTOR_MODEL": "model",
    "KEYMENTOR_BASE_URL": "base_url",
    "KEYMENTOR_TEMPERATURE": "temperature",
    "KEYMENTOR_MAX_TOKENS": "max_tokens",
    "KEYMENTOR_REQUEST_TIMEOUT": "request_timeout",
    "KEYMENTOR_RESTORE_CONVERSATION": "restore_conversation",
    "KEYMENTOR_DATA_DIR": "data_dir",
    "KEYMENTOR_DEBUG": "debug",
    "KEYMENTOR_HISTORY_ENABLED": "history_enabled",
}


@dataclass(slots=True)
class AssistantConfig:
    """Static options controlling the model call, history and restore behaviour."""

    debug: bool = False
    model: str = "gpt-4o-mini"
    base_url: str = "https://api.openai.com/v1"
    max_tokens: int = 500
    temperature: float = 0.7
    request_timeout: float = 30.0
    max_retries: int = 2
    api_key: Optional[str] = None
    prompt_template: Optional[str] = None
    history_enabled: bool = True
    history_max_items: int = 100
    max_conversation_turns: int = 10
    restore_conversation: RestoreMode = "session"
    data_dir: Path = field(default_factory=lambda: DEFAULT_DATA_DIR)

    @property
    def history_path(self) -> Path:
        return Path(self.data_dir).expanduser() / HISTORY_FILENAME

    @property
    def pointer_path(self) -> Path:
        return Path(self.data_dir).expanduser() / POINTER_FILENAME

    def validate(self) -> "AssistantConfig":
        """Raise :class:`ConfigError` when a value is out of range."""

        if not self.model.strip():
            raise ConfigError("model must be a non-empty string")
        if not self.base_url.strip():
            raise ConfigError("base_url must be a non-empty string")
        if self.max_tokens <= 0:
            raise ConfigError("max_tokens must be positive")
        if not 0 <= self.temperature <= 2:
            raise ConfigError("temperature must be between 0 and 2")
        if self.request_timeout <= 0:
            raise ConfigError("request_timeout must be positive")
        if self.max_retries < 1:
            raise ConfigError("max_retries must be at least 1")
        if self.history_max_items <= 0:
            raise ConfigError("history_max_items must be positive")
        if self.max_conversation_turns <= 0:
            raise ConfigError("max_conversation_turns must be positive")
        if self.restore_conversation not in RESTORE_MODES:
            raise ConfigError(
                f"restore_conversation must be one of {', '.join(RESTORE_MODES)}; "
                f"got {self.restore_conversation!r}"
            )
        return self

    @classmethod
    def from_mapping(cls, options: Mapping[str, Any] | None) -> "AssistantConfig":
        """Build a validated config from user options, ignoring unknown keys."""

        return apply_overrides(cls(), options or {}, source="options").validate()

    def to_dict(self) -> Dict[str, Any]:
        payload = asdict(self)
        payload["data_dir"] = str(self.data_dir)
        return payload


def load_config(
    options: Mapping[str, Any] | None = None,
    *,
    overrides: Mapping[str, Any] | None = None,
    environ: Mapping[str, str] | None = None,
) -> AssistantConfig:
    """Resolve configuration from options, environment, then explicit overrides."""

    config = apply_overrides(AssistantConfig(), options or {}, source="options")
    env = os.environ if environ is None else environ
    env_values = {attr: env[name] for name, attr in _ENV_OVERRIDES.items() if env.get(name)}
    if env_values:
        config = apply_overrides(config, env_values, source="environment")
    if overrides:
        config = apply_overrides(config, overrides, source="CLI")
    return config.validate()


def apply_overrides(
    config: AssistantConfig,
    overrides: Mapping[str, Any],
    *,
    source: str = "runtime",
) -> AssistantConfig:
    """Return a copy of ``config`` with coerced ``overrides`` applied.

    Raises:
        ConfigError: If a value cannot be coerced to the field's type.
    """

    allowed = {item.name for item in fields(AssistantConfig)}
    updates: Dict[str, Any] = {}
    for key, value in overrides.items():
        if key not in allowed:
            LOGGER.warning("Ignoring unknown %s config option %r", source, key)
            continue
        updates[key] = coerce_field(key, value)
    if updates:
        LOGGER.debug("Applying %s config overrides: %s", source, sorted(updates))
        config = replace(config, **updates)
    return config


def coerce_field(name: str, value: Any) -> Any:
    """Coerce ``value`` (often a string from env/CLI) to the type of field ``name``."""

    if name in {"api_key", "prompt_template"}:
        if value is None or (isinstance(value, str) and value.strip().lower() in {"", "none", "null"}):
            return None
        return str(value)
    if name == "data_dir":
        return Path(str(value)).expanduser()
    default = getattr(AssistantConfig(), name)
    try:
        if isinstance(default, bool):
            return parse_bool(value)
        if isinstance(default, int):
            return int(str(value).strip(), 10) if isinstance(value, str) else int(value)
        if isinstance(default, float):
            return float(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid value for {name}: {value!r}") from exc
    return str(value).strip() if isinstance(value, str) else value


def parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    lowered = str(value).strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ValueError(f"Cannot coerce '{value}' to a boolean.")


__all__ = [
    "AssistantConfig",
    "RestoreMode",
    "RESTORE_MODES",
    "DEFAULT_DATA_DIR",
    "apply_overrides",
    "coerce_field",
    "load_config",
    "parse_bool",
]
