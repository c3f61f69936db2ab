"""Fleet inventory: source/target endpoints and the sync path settings."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from enum import Enum
from pathlib import Path
from typing import Any

from .constants import DEFAULT_SSH_PORT
from .db import connection
from .exceptions import UserError
from .utils import looks_like_host, utc_now_iso


class Role(str, Enum):
    SOURCE = "source"
    TARGET = "target"


@dataclass(frozen=True)
class Endpoint:
    """A remote host, as recorded in the registry."""

    id: int
    name: str
    host: str
    port: int
    role: Role
    active: bool

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"

    def to_dict(self) -> dict[str, Any]:
        d = asdict(self)
        d["role"] = self.role.value
        return d


@dataclass(frozen=True)
class SyncSettings:
    """Remote file locations used by pull and push."""

    source_path: str
    destination_path: str


def _row_to_endpoint(row) -> Endpoint:
    return Endpoint(
        id=row["id"],
        name=row["name"],
        host=row["host"],
        port=row["port"],
        role=Role(row["role"]),
        active=bool(row["active"]),
    )


class EndpointRegistry:
    """SQLite-backed device registry."""

    def __init__(self, db_path: Path):
        self.db_path = db_path

    def add_endpoint(
        self,
        name: str,
        host: str,
        role: Role | str,
        *,
        port: int = DEFAULT_SSH_PORT,
        active: bool = True,
    ) -> Endpoint:
        """Register an endpoint and return it.

        Raises:
            UserError: On an empty name, a bad host, or a port outside 1-65535
        """
        role = Role(role)
        if not name:
            raise UserError("Endpoint name is required")
        if not looks_like_host(host):
            raise UserError(f"Does not look like a hostname or IP: {host!r}")
        if not 0 < port < 65536:
            raise UserError(f"Port out of range: {port}")
        with connection(self.db_path) as conn:
            cur = conn.execute(
                """
                INSERT INTO endpoints (name, host, port, role, active, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (name, host, port, role.value, int(active), utc_now_iso()),
            )
            row = conn.execute("SELECT * FROM endpoints WHERE id = ?", (cur.lastrowid,)).fetchone()
        return _row_to_endpoint(row)

    def list_endpoints(
        self, role: Role | str | None = None, *, include_inactive: bool = False
    ) -> list[Endpoint]:
        """Return endpoints in registration order (oldest first).

        Inactive endpoints are omitted unless include_inactive is set.
        """
        clauses: list[str] = []
        params: list[Any] = []
        if role is not None:
            clauses.append("role = ?")
            params.append(Role(role).value)
        if not include_inactive:
            clauses.append("active = 1")
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        with connection(self.db_path) as conn:
            rows = conn.execute(f"SELECT * FROM endpoints {where} ORDER BY id ASC", params).fetchall()
        return [_row_to_endpoint(row) for row in rows]

    def remove_endpoint(self, endpoint_id: int) -> bool:
        """Delete an endpoint. Returns False if it did not exist."""
        with connection(self.db_path) as conn:
            cur = conn.execute("DELETE FROM endpoints WHERE id = ?", (endpoint_id,))
        return cur.rowcount > 0

    def set_active(self, endpoint_id: int, active: bool) -> bool:
        with connection(self.db_path) as conn:
            cur = conn.execute(
                "UPDATE endpoints SET active = ? WHERE id = ?", (int(active), endpoint_id)
            )
        return cur.rowcount > 0

    def sync_settings(self) -> SyncSettings:
        with connection(self.db_path) as conn:
            row = conn.execute(
                "SELECT source_path, destination_path FROM sync_settings WHERE id = 1"
            ).fetchone()
        return SyncSettings(source_path=row["source_path"], destination_path=row["destination_path"])

    def update_sync_settings(
        self,
        *,
        source_path: str | None = None,
        destination_path: str | None = None,
    ) -> SyncSettings:
        """Update whichever paths are given and return the resulting settings.

        Raises:
            UserError: If a given path is not absolute
        """
        updates: dict[str, str] = {}
        if source_path is not None:
            updates["source_path"] = source_path
        if destination_path is not None:
            updates["destination_path"] = destination_path
        for field, value in updates.items():
            if not value.startswith("/"):
                raise UserError(f"{field} must be an absolute remote path: {value!r}")
        if updates:
            assignments = ", ".join(f"{field} = ?" for field in updates)
            with connection(self.db_path) as conn:
                conn.execute(
                    f"UPDATE sync_settings SET {assignments}, updated_at = ? WHERE id = 1",
                    [*updates.values(), utc_now_iso()],
                )
        return self.sync_settings()
