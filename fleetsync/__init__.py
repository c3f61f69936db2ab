"""
FleetSync - keep one KEY=VALUE config in sync across a fleet of hosts.

Pulls the authoritative file from the first reachable source host, pushes the
locally curated copy to every target host, and serves a small operator API
over HTTPS whose certificate can be rotated without a restart.

Design goals:
- Uses your existing OpenSSH client for transport.
- One encrypted SSH key, one process, no external services.
- Every remote operation is recorded in the audit log.
"""

from __future__ import annotations

from .cli import main
from .constants import DEFAULT_DESTINATION_PATH, DEFAULT_SOURCE_PATH
from .exceptions import FleetSyncError, UserError

__all__ = [
    "DEFAULT_DESTINATION_PATH",
    "DEFAULT_SOURCE_PATH",
    "FleetSyncError",
    "UserError",
    "main",
]
