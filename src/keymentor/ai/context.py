"""Environment context gathered to ground the assistant's answers."""

from __future__ import annotations

import logging
import os
import platform
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Mapping, Optional, Protocol, runtime_checkable

from ..services.settings import find_project_root

LOGGER = logging.getLogger(__name__)


@runtime_checkable
class ContextProvider(Protocol):
    """Supplies the machine-gathered text for the ``{context}`` placeholder."""

    def collect(self, query: str | None = None) -> str: ...


@dataclass(slots=True, frozen=True)
class EnvironmentSnapshot:
    """Facts about the user's environment at the time of the request."""

    platform: str
    python_version: str
    shell: str
    editor: str
    terminal: str
    cwd: str
    project_root: str
    extra: Mapping[str, str] = field(default_factory=dict)


def format_context(snapshot: EnvironmentSnapshot) -> str:
    """Render a snapshot as labelled sections for the system prompt."""

    lines = [
        "== ENVIRONMENT ==",
        f"Platform: {snapshot.platform}",
        f"Python: {snapshot.python_version}",
        f"Shell: {snapshot.shell}",
        f"Editor: {snapshot.editor}",
        f"Terminal: {snapshot.terminal}",
        "",
        "== WORKSPACE ==",
        f"Working directory: {snapshot.cwd}",
        f"Project root: {snapshot.project_root}",
    ]
    if snapshot.extra:
        lines.extend(["", "== ADDITIONAL CONTEXT =="])
        lines.extend(f"{key}: {value}" for key, value in sorted(snapshot.extra.items()))
    return "\n".join(lines)


class EnvironmentContextProvider:
    """Default :class:`ContextProvider` reading the process environment.

    The snapshot is cached after the first collection; call
    :meth:`clear_cache` to pick up changes such as a new working directory.
    """

    def __init__(
        self,
        *,
        environ: Mapping[str, str] | None = None,
        cwd: Callable[[], Path] | None = None,
    ) -> None:
        self._environ = environ
        self._cwd = cwd or Path.cwd
        self._cached: Optional[EnvironmentSnapshot] = None

    def snapshot(self) -> EnvironmentSnapshot:
        if self._cached is None:
            self._cached = self._gather()
        return self._cached

    def collect(self, query: str | None = None) -> str:
        return format_context(self.snapshot())

    def clear_cache(self) -> None:
        self._cached = None

    def _gather(self) -> EnvironmentSnapshot:
        env = os.environ if self._environ is None else self._environ
        cwd = self._cwd()
        snapshot = EnvironmentSnapshot(
            platform=f"{platform.system() or 'unknown'} {platform.release()}".strip(),
            python_version=sys.version.split()[0],
            shell=Path(env.get("SHELL") or env.get("COMSPEC") or "unknown").name,
            editor=env.get("VISUAL") or env.get("EDITOR") or "unknown",
            terminal=env.get("TERM_PROGRAM") or env.get("TERM") or "unknown",
            cwd=str(cwd),
            project_root=str(find_project_root(cwd)),
        )
        LOGGER.debug("Collected environment context (shell=%s, editor=%s)", snapshot.shell, snapshot.editor)
        return snapshot


class StaticContextProvider:
    """Returns a fixed context string."""

    def __init__(self, text: str = "") -> None:
        self._text = text

    def collect(self, query: str | None = None) -> str:
        return self._text


__all__ = [
    "ContextProvider",
    "EnvironmentSnapshot",
    "EnvironmentContextProvider",
    "StaticContextProvider",
    "format_context",
]
