"""FleetSync audit log command."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ..audit import AuditEntry
    from ..cli_types import LogsArgs
    from ..service import Service


def format_entry_line(entry: AuditEntry) -> str:
    return f"{entry.created_at} {entry.level.upper():<5} [{entry.type}] {entry.message}"


def cmd_logs(service: Service, args: LogsArgs) -> None:
    """Print audit entries, newest first."""
    entries = service.audit.list(args.limit)
    if args.json:
        print(json.dumps([e.to_dict() for e in entries], indent=2, sort_keys=True))
        return
    if not entries:
        print("Audit log is empty.")
        return
    for entry in entries:
        print(format_entry_line(entry))
