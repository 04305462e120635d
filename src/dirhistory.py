"""Most-recently-used directory list kept on disk for ``cd`` and ``cdh``.

The file holds one absolute path per line, oldest first, without duplicates
and with at most MAX_ENTRIES lines.
"""
from __future__ import annotations

from pathlib import Path
from typing import List

MAX_ENTRIES = 10


def load(path: Path) -> List[str]:
    try:
        text = path.read_text()
    except FileNotFoundError:
        return []
    return [line for line in text.splitlines() if line.strip()]


def save(path: Path, entries: List[str]) -> None:
    path.write_text("".join(f"{entry}\n" for entry in entries[-MAX_ENTRIES:]))


def remember(path: Path, directory: str) -> List[str]:
    """Move ``directory`` to the most recent slot, evicting the oldest entry."""
    entries = [entry for entry in load(path) if entry != directory]
    entries.append(directory)
    entries = entries[-MAX_ENTRIES:]
    save(path, entries)
    return entries
