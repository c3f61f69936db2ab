"""FleetSync pull/push commands."""

from __future__ import annotations

import json
import time
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ..service import Service
    from ..sync import PushReport


def format_push_lines(report: PushReport) -> list[str]:
    """One status line per attempted target, delivered first."""
    lines = [f"OK {address} config pushed" for address in report.delivered]
    lines += [f"FAIL {address} {detail}" for address, detail in report.failed.items()]
    return lines


def cmd_pull(service: Service, *, json_output: bool = False) -> None:
    """Replace the local snapshot with the first reachable source's file."""
    result = service.engine.pull()
    if json_output:
        print(json.dumps(result.to_dict(), indent=2, sort_keys=True))
        return
    print(f"Pulled {result.parsed_count} entries from {result.source}")


def cmd_push(service: Service, *, json_output: bool = False) -> None:
    """Push the local snapshot to every target.

    Exits 0 even when some targets fail; failures are listed and audited.
    """
    start_time = time.monotonic()
    report = service.engine.commit_to_all_targets()
    if json_output:
        print(json.dumps(report.to_dict(), indent=2, sort_keys=True))
        return
    if not report.attempted:
        print("No target endpoints registered.")
        return
    for line in format_push_lines(report):
        print(line)
    duration_s = time.monotonic() - start_time
    print(
        "\nSummary: total="
        f"{report.attempted} successful={len(report.delivered)} failed={len(report.failed)} "
        f"duration={duration_s:.1f}s"
    )
    if report.failed:
        print("See 'fleetsync logs' for details.")
