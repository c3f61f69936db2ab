"""Component wiring: builds every FleetSync collaborator from one Settings."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from .api import make_handler
from .audit import AuditLog
from .db import init_db
from .registry import EndpointRegistry
from .settings import Settings
from .snapshot import ConfigStore
from .sync import SyncEngine
from .tls import HttpsListener, ListenerFactory, TlsManager, TlsPaths
from .transport import SshTransport, Transport
from .vault import CredentialVault

logger = logging.getLogger("fleetsync")


@dataclass
class Service:
    settings: Settings
    vault: CredentialVault
    audit: AuditLog
    store: ConfigStore
    registry: EndpointRegistry
    engine: SyncEngine
    tls: TlsManager


def build_service(
    settings: Settings,
    *,
    transport: Transport | None = None,
    listener_factory: ListenerFactory | None = None,
) -> Service:
    """Create the database if needed and wire up all components.

    Args:
        settings: Process settings
        transport: Remote file transport (default: OpenSSH client)
        listener_factory: Builds the HTTPS listener on reload; None means
            reloads only validate the bundle
    """
    init_db(settings.db_path)
    audit = AuditLog(settings.db_path)
    vault = CredentialVault(settings.secrets_dir, secret=settings.keys_secret)
    store = ConfigStore(settings.db_path)
    registry = EndpointRegistry(settings.db_path)
    if transport is None:
        transport = SshTransport(
            connect_timeout=settings.connect_timeout,
            timeout=settings.timeout,
        )
    engine = SyncEngine(
        vault=vault,
        registry=registry,
        store=store,
        audit=audit,
        transport=transport,
        username=settings.ssh_user,
    )
    tls = TlsManager(
        TlsPaths(settings.tls_dir),
        audit=audit,
        passphrase=settings.tls_passphrase,
        listener_factory=listener_factory,
    )
    return Service(
        settings=settings,
        vault=vault,
        audit=audit,
        store=store,
        registry=registry,
        engine=engine,
        tls=tls,
    )


def build_server(settings: Settings, *, transport: Transport | None = None) -> Service:
    """Build a service whose TLS reloads (re)start the operator API listener."""
    service: Service | None = None

    def factory(ctx):
        assert service is not None
        address = (settings.https_host, settings.https_port)
        return HttpsListener(address, make_handler(service), ctx)

    service = build_service(settings, transport=transport, listener_factory=factory)
    if not settings.api_token:
        logger.warning("FLEETSYNC_API_TOKEN is not set; API routes will answer 403")
    return service
