"""FleetSync TLS bundle commands."""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING

import requests

from ..exceptions import FleetSyncError, UserError
from .vault import read_input_file

if TYPE_CHECKING:
    from ..cli_types import ServerArgs, TlsUploadPemArgs
    from ..service import Service

logger = logging.getLogger("fleetsync")


def request_server_reload(
    server_url: str,
    *,
    token: str | None,
    verify: bool = True,
    timeout: int = 30,
) -> dict:
    """Ask a running fleetsync server to reload its TLS listener.

    Raises:
        UserError: If no API token is configured
        FleetSyncError: If the server cannot be reached or refuses the reload
    """
    if not token:
        raise UserError("FLEETSYNC_API_TOKEN must be set to contact the server")
    url = server_url.rstrip("/") + "/api/tls/reload"
    logger.debug("POST %s", url)
    try:
        response = requests.post(
            url,
            headers={"Authorization": f"Bearer {token}"},
            timeout=timeout,
            verify=verify,
        )
    except requests.exceptions.RequestException as e:
        raise FleetSyncError(f"Cannot reach {url}: {e}")

    if response.status_code != 200:
        try:
            error = response.json().get("error")
        except ValueError:
            error = response.text
        raise FleetSyncError(f"Server returned {response.status_code}: {error}")
    return response.json()


def _notify(service: Service, server: ServerArgs) -> None:
    if not server.server:
        return
    request_server_reload(
        server.server,
        token=service.settings.api_token,
        verify=not server.insecure,
    )
    print(f"Server {server.server} reloading")


def cmd_tls_status(service: Service, *, json_output: bool = False) -> None:
    status = service.tls.status()
    if json_output:
        print(json.dumps(status.to_dict(), indent=2, sort_keys=True))
        return
    for name, present in status.to_dict().items():
        print(f"{name:<9} {'present' if present else 'missing'}")
    print(f"TLS dir: {service.tls.paths.directory}")


def cmd_tls_upload_pfx(service: Service, path: str, server: ServerArgs) -> None:
    """Store a PKCS#12 bundle and check that it loads."""
    data = read_input_file(path, "pfx")
    service.tls.upload_combined(data)
    print(f"Stored {service.tls.paths.combined}")
    _notify(service, server)


def cmd_tls_upload_pem(service: Service, args: TlsUploadPemArgs) -> None:
    """Store a PEM key + certificate (+ chain) and check that they load."""
    key = read_input_file(args.key, "key")
    cert = read_input_file(args.cert, "cert")
    chain = read_input_file(args.chain, "chain") if args.chain else None
    service.tls.upload_separate(key, cert, chain)
    print(f"Stored {service.tls.paths.key} and {service.tls.paths.cert}")
    if chain:
        print(f"Stored {service.tls.paths.chain}")
    _notify(service, args.server)


def cmd_tls_reload(service: Service, server: ServerArgs) -> None:
    """Validate the bundle on disk, then ask the server (if given) to reload."""
    service.tls.reload()
    print("Certificate bundle OK")
    _notify(service, server)
