"""Configuration snapshot: KEY=VALUE text format and the local store."""

from __future__ import annotations

import re
import threading
from collections.abc import Mapping
from pathlib import Path

from .db import connection
from .exceptions import InvalidConfigEntry

_LINE_SPLIT_RE = re.compile(r"\r\n|\r|\n")


def parse_config_text(text: str) -> dict[str, str]:
    """Parse KEY=VALUE lines into a mapping.

    Blank lines and lines starting with '#' are skipped, as are lines without
    a key before the first '='. Keys and values are trimmed; values are
    otherwise kept verbatim, quotes included. Later duplicates win. Lines may
    end in LF, CRLF or a bare CR.
    """
    result: dict[str, str] = {}
    if not text:
        return result
    for raw in _LINE_SPLIT_RE.split(text):
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        eq = line.find("=")
        if eq <= 0:
            continue
        key = line[:eq].strip()
        value = line[eq + 1 :].strip()
        if key:
            result[key] = value
    return result


def serialize_config_text(entries: Mapping[str, str]) -> str:
    """Render a mapping as sorted KEY=VALUE lines with a trailing newline.

    An empty mapping renders as a single newline.
    """
    return "\n".join(f"{k}={entries[k]}" for k in sorted(entries)) + "\n"


def validate_entries(entries: Mapping[str, str]) -> None:
    """Reject entries that would not survive a serialize/parse round trip.

    Raises:
        InvalidConfigEntry: On an empty key, a key containing '=' or '#'-prefix,
            surrounding whitespace, or a newline anywhere
    """
    for key, value in entries.items():
        if not isinstance(key, str) or not isinstance(value, str):
            raise InvalidConfigEntry(f"Config keys and values must be strings: {key!r}")
        if not key or key != key.strip():
            raise InvalidConfigEntry(f"Invalid config key: {key!r}")
        if "=" in key or key.startswith("#"):
            raise InvalidConfigEntry(f"Invalid config key: {key!r}")
        if "\n" in key or "\r" in key or "\n" in value or "\r" in value:
            raise InvalidConfigEntry(f"Config entry {key!r} contains a newline")


class ConfigStore:
    """SQLite-backed configuration snapshot.

    A full replacement runs inside one SQLite transaction and a read is a
    single SELECT, so a reader never sees a mix of old and new entries, even
    across ConfigStore instances or processes sharing the database. The
    per-instance lock only keeps threads of one store from contending for
    the write lock.
    """

    def __init__(self, db_path: Path):
        self.db_path = db_path
        self._lock = threading.Lock()

    def get_snapshot(self) -> dict[str, str]:
        with self._lock, connection(self.db_path) as conn:
            rows = conn.execute("SELECT name, value FROM config_entries").fetchall()
        return {row["name"]: row["value"] for row in rows}

    def replace_snapshot(self, entries: Mapping[str, str]) -> None:
        """Replace the whole snapshot with entries (all-or-nothing)."""
        validate_entries(entries)
        with self._lock, connection(self.db_path) as conn:
            conn.execute("DELETE FROM config_entries")
            conn.executemany(
                "INSERT INTO config_entries (name, value) VALUES (?, ?)",
                list(entries.items()),
            )
