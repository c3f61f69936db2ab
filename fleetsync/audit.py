"""FleetSync audit log.

Append-only record of sync and TLS operations, stored in SQLite. Writing is
best-effort: a failed write is counted and logged, never raised to the caller.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import asdict, dataclass
from enum import Enum
from pathlib import Path
from typing import Any

from .constants import AUDIT_DEFAULT_LIMIT
from .db import connection
from .utils import utc_now_iso

logger = logging.getLogger("fleetsync")


class Severity(str, Enum):
    INFO = "info"
    WARN = "warn"
    ERROR = "error"


@dataclass(frozen=True)
class AuditEntry:
    """One immutable audit record."""

    id: int
    type: str
    message: str
    level: str
    created_at: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def normalize_limit(value: Any, default: int = AUDIT_DEFAULT_LIMIT) -> int:
    """Coerce a user-supplied limit to a positive int, else return default.

    Accepts ints and numeric strings; anything non-numeric or non-positive
    (including bools and None) falls back to the default.
    """
    if value is None or isinstance(value, bool):
        return default
    try:
        limit = int(value)
    except (TypeError, ValueError):
        return default
    return limit if limit > 0 else default


class AuditLog:
    """SQLite-backed audit sink."""

    def __init__(self, db_path: Path):
        self.db_path = db_path
        self.dropped = 0
        self._lock = threading.Lock()

    def record(
        self,
        operation_type: str,
        message: str,
        severity: Severity | str = Severity.INFO,
    ) -> None:
        """Append one entry. Never raises."""
        try:
            level = Severity(severity).value
            with self._lock, connection(self.db_path) as conn:
                conn.execute(
                    "INSERT INTO audit_log (type, message, level, created_at) VALUES (?, ?, ?, ?)",
                    (operation_type, message, level, utc_now_iso()),
                )
        except Exception as e:
            self.dropped += 1
            logger.warning("Audit write failed (%s %r): %s", operation_type, message, e)

    def list(self, limit: Any = AUDIT_DEFAULT_LIMIT) -> list[AuditEntry]:
        """Return at most limit entries, most recent first."""
        limit = normalize_limit(limit)
        with connection(self.db_path) as conn:
            rows = conn.execute(
                """
                SELECT id, type, message, level, created_at
                FROM audit_log
                ORDER BY id DESC
                LIMIT ?
                """,
                (limit,),
            ).fetchall()
        return [
            AuditEntry(
                id=row["id"],
                type=row["type"],
                message=row["message"],
                level=row["level"],
                created_at=row["created_at"],
            )
            for row in rows
        ]
