"""SQLite database storage layer for FleetSync.

Provides storage for:
- audit_log: append-only operation records
- config_entries: the locally curated configuration snapshot
- endpoints: source/target hosts known to the fleet
- sync_settings: singleton row holding the remote source/destination paths
"""

from __future__ import annotations

import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from .constants import DEFAULT_DESTINATION_PATH, DEFAULT_SOURCE_PATH


def init_db(db_path: Path) -> None:
    """Initialize database schema and enable WAL mode.

    Creates all required tables if they don't exist and seeds the
    sync_settings singleton row.

    Args:
        db_path: Path to database file
    """
    db_path.parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(db_path)
    try:
        conn.execute("PRAGMA journal_mode=WAL")

        conn.execute("""
            CREATE TABLE IF NOT EXISTS audit_log (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                type TEXT NOT NULL,
                message TEXT NOT NULL,
                level TEXT NOT NULL DEFAULT 'info',
                created_at TEXT NOT NULL
            )
        """)

        conn.execute("""
            CREATE TABLE IF NOT EXISTS config_entries (
                name TEXT PRIMARY KEY,
                value TEXT NOT NULL
            )
        """)

        conn.execute("""
            CREATE TABLE IF NOT EXISTS endpoints (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL,
                host TEXT NOT NULL,
                port INTEGER NOT NULL DEFAULT 22,
                role TEXT NOT NULL CHECK (role IN ('source', 'target')),
                active INTEGER NOT NULL DEFAULT 1,
                created_at TEXT NOT NULL
            )
        """)

        conn.execute("""
            CREATE TABLE IF NOT EXISTS sync_settings (
                id INTEGER PRIMARY KEY CHECK (id = 1),
                source_path TEXT NOT NULL,
                destination_path TEXT NOT NULL,
                updated_at TEXT
            )
        """)
        conn.execute(
            """
            INSERT OR IGNORE INTO sync_settings (id, source_path, destination_path)
            VALUES (1, ?, ?)
            """,
            (DEFAULT_SOURCE_PATH, DEFAULT_DESTINATION_PATH),
        )

        conn.commit()
    finally:
        conn.close()


def get_connection(db_path: Path) -> sqlite3.Connection:
    """Get database connection.

    Args:
        db_path: Path to database file

    Returns:
        SQLite connection configured for dict-like row access
    """
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA busy_timeout=5000")
    return conn


@contextmanager
def connection(db_path: Path) -> Iterator[sqlite3.Connection]:
    """Yield a connection that commits on success and always closes."""
    conn = get_connection(db_path)
    try:
        yield conn
        conn.commit()
    except BaseException:
        conn.rollback()
        raise
    finally:
        conn.close()

