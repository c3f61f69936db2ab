"""FleetSync local configuration and sync path commands."""

from __future__ import annotations

import json
from dataclasses import asdict
from typing import TYPE_CHECKING

from ..snapshot import parse_config_text, serialize_config_text
from .vault import read_input_file

if TYPE_CHECKING:
    from ..cli_types import SettingsSetArgs
    from ..service import Service


def cmd_settings_show(service: Service, *, json_output: bool = False) -> None:
    settings = service.registry.sync_settings()
    if json_output:
        print(json.dumps(asdict(settings), indent=2, sort_keys=True))
        return
    print(f"Source path: {settings.source_path}")
    print(f"Destination path: {settings.destination_path}")


def cmd_settings_set(service: Service, args: SettingsSetArgs) -> None:
    settings = service.registry.update_sync_settings(
        source_path=args.source_path,
        destination_path=args.destination_path,
    )
    if args.json:
        print(json.dumps(asdict(settings), indent=2, sort_keys=True))
        return
    print(f"Source path: {settings.source_path}")
    print(f"Destination path: {settings.destination_path}")


def cmd_config_show(service: Service, *, json_output: bool = False) -> None:
    """Print the local snapshot in the text form pushed to targets."""
    snapshot = service.store.get_snapshot()
    if json_output:
        print(json.dumps(snapshot, indent=2, sort_keys=True))
        return
    print(serialize_config_text(snapshot), end="")


def cmd_config_import(service: Service, path: str) -> None:
    """Replace the local snapshot with the contents of a KEY=VALUE file."""
    data = read_input_file(path, "config")
    entries = parse_config_text(data.decode("utf-8", "replace"))
    service.store.replace_snapshot(entries)
    print(f"Imported {len(entries)} entries from {path}")
