"""FleetSync endpoint registry commands."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

from ..exceptions import UserError

if TYPE_CHECKING:
    from ..cli_types import EndpointAddArgs
    from ..registry import Endpoint
    from ..service import Service


def format_endpoint_line(endpoint: Endpoint) -> str:
    state = "" if endpoint.active else " (inactive)"
    return f"{endpoint.id:>4}  {endpoint.role.value:<6}  {endpoint.name}  {endpoint.address}{state}"


def cmd_endpoint_add(service: Service, args: EndpointAddArgs) -> None:
    endpoint = service.registry.add_endpoint(
        args.name,
        args.host,
        args.role,
        port=args.port,
        active=not args.inactive,
    )
    if args.json:
        print(json.dumps(endpoint.to_dict(), indent=2, sort_keys=True))
        return
    print(f"Added {endpoint.role.value} endpoint {endpoint.id}: {endpoint.name} {endpoint.address}")


def cmd_endpoint_list(
    service: Service, *, role: str | None, include_inactive: bool, json_output: bool
) -> None:
    """List endpoints in the order pull/push visit them."""
    endpoints = service.registry.list_endpoints(role, include_inactive=include_inactive)
    if json_output:
        print(json.dumps([e.to_dict() for e in endpoints], indent=2, sort_keys=True))
        return
    if not endpoints:
        print("No endpoints registered.")
        return
    for endpoint in endpoints:
        print(format_endpoint_line(endpoint))


def cmd_endpoint_remove(service: Service, endpoint_id: int) -> None:
    if not service.registry.remove_endpoint(endpoint_id):
        raise UserError(f"No endpoint with id {endpoint_id}")
    print(f"Removed endpoint {endpoint_id}")


def cmd_endpoint_set_active(service: Service, endpoint_id: int, active: bool) -> None:
    if not service.registry.set_active(endpoint_id, active):
        raise UserError(f"No endpoint with id {endpoint_id}")
    print(f"Endpoint {endpoint_id} {'enabled' if active else 'disabled'}")
