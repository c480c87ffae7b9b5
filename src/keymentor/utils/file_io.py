"""Atomic file IO helpers for the assistant's persisted state."""

from __future__ import annotations

import codecs
import os
import shutil
import tempfile
from pathlib import Path

__all__ = ["read_text", "write_text", "copy_file"]

_BOM_MAP: dict[bytes, str] = {
    codecs.BOM_UTF8: "utf-8-sig",
    codecs.BOM_UTF16_LE: "utf-16",
    codecs.BOM_UTF16_BE: "utf-16",
}


def read_text(path: Path | str, *, encoding: str | None = None) -> str:
    """Read a text file, honouring a leading byte-order mark when present."""

    raw = Path(path).read_bytes()
    detected = encoding or _detect_encoding(raw)
    text = raw.decode(detected)
    return text.replace("\r\n", "\n").replace("\r", "\n")


def write_text(
    path: Path | str,
    content: str,
    *,
    encoding: str = "utf-8",
    atomic: bool = True,
) -> Path:
    """Write text to disk, creating parent directories as needed.

    With ``atomic`` set the content lands in a sibling temporary file that is
    fsynced and then renamed over the target, so a failed write leaves the
    previous content intact.
    """

    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    if not atomic:
        with target.open("w", encoding=encoding, newline="") as handle:
            handle.write(content)
            handle.flush()
            os.fsync(handle.fileno())
        return target

    descriptor, tmp_name = tempfile.mkstemp(
        dir=str(target.parent), prefix=f".{target.name}.", suffix=".tmp"
    )
    try:
        with os.fdopen(descriptor, "w", encoding=encoding, newline="") as handle:
            handle.write(content)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_name, target)
    finally:
        if os.path.exists(tmp_name):  # pragma: no cover - cleanup path
            try:
                os.unlink(tmp_name)
            except OSError:
                pass
    return target


def copy_file(source: Path | str, destination: Path | str) -> Path:
    """Copy ``source`` to ``destination`` byte for byte, preserving metadata."""

    target = Path(destination)
    target.parent.mkdir(parents=True, exist_ok=True)
    shutil.copy2(source, target)
    return target


def _detect_encoding(raw: bytes) -> str:
    for bom, name in _BOM_MAP.items():
        if raw.startswith(bom):
            return name
    return "utf-8"
