"""API key resolution across runtime, settings, dotenv files and config."""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path
from typing import Callable, Mapping, Optional, Protocol

from ..errors import MissingCredentialsError
from ..utils import file_io

LOGGER = logging.getLogger(__name__)

API_KEY_ENV = "OPENAI_API_KEY"
_DOTENV_PATTERN = re.compile(r"^OPENAI_API_KEY\s*=\s*(.+)$")


class ApiKeySettings(Protocol):
    def get_current_api_key(self) -> str: ...


def read_dotenv_key(path: Path) -> Optional[str]:
    """Return the ``OPENAI_API_KEY`` value from a dotenv file, if present."""

    if not path.is_file():
        return None
    try:
        text = file_io.read_text(path)
    except (OSError, UnicodeDecodeError) as exc:
        LOGGER.debug("Unable to read %s: %s", path, exc)
        return None
    for line in text.splitlines():
        match = _DOTENV_PATTERN.match(line.strip())
        if match is None:
            continue
        value = _strip_quotes(match.group(1).strip())
        if value:
            return value
    return None


def _strip_quotes(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in {'"', "'"}:
        return value[1:-1]
    return value


class CredentialResolver:
    """Resolves the API key; the first non-empty source wins.

    Precedence: the ``OPENAI_API_KEY`` environment variable, the key saved in
    the active settings scope, ``<cwd>/.env``, ``<home>/.env`` and finally
    the static configuration value.
    """

    def __init__(
        self,
        settings: ApiKeySettings | None = None,
        *,
        static_key: str | None = None,
        environ: Mapping[str, str] | None = None,
        cwd: Callable[[], Path] | None = None,
        home: Path | None = None,
    ) -> None:
        self._settings = settings
        self._static_key = static_key
        self._environ = environ
        self._cwd = cwd or Path.cwd
        self._home = home

    def resolve(self) -> Optional[str]:
        for source, candidate in self._candidates():
            value = candidate()
            if value and value.strip():
                LOGGER.debug("API key resolved from %s", source)
                return value.strip()
        return None

    def require(self) -> str:
        """Return the API key or raise :class:`MissingCredentialsError`."""
        key = self.resolve()
        if key is None:
            raise MissingCredentialsError()
        return key

    def _candidates(self):
        environ = os.environ if self._environ is None else self._environ
        home = self._home or Path.home()
        yield "environment", lambda: environ.get(API_KEY_ENV)
        yield "settings", self._settings_key
        yield "project .env", lambda: read_dotenv_key(self._cwd() / ".env")
        yield "home .env", lambda: read_dotenv_key(home / ".env")
        yield "config", lambda: self._static_key

    def _settings_key(self) -> Optional[str]:
        if self._settings is None:
            return None
        return self._settings.get_current_api_key()


__all__ = ["CredentialResolver", "read_dotenv_key", "API_KEY_ENV"]
