"""FleetSync configuration synchronization engine.

Pull: fetch the authoritative file from the first source endpoint that
answers, then replace the local snapshot with its parsed contents.

Push: serialize the local snapshot and deliver it to every target endpoint
independently. Each delivery writes a temp file next to the destination and
renames it into place, so the destination is never seen half-written.

Endpoints are visited sequentially in registry order. Any per-endpoint
failure is audited and skipped. Missing or corrupt credentials abort the run
before the next connection is attempted.
"""

from __future__ import annotations

import datetime as dt
import logging
import posixpath
import secrets
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from .audit import AuditLog, Severity
from .constants import AUDIT_OP_PULL, AUDIT_OP_PUSH, TMP_TIME_FORMAT
from .exceptions import CredentialUnavailable, NoSourceReachable, TransportError, VaultError
from .registry import EndpointRegistry, Role
from .snapshot import ConfigStore, parse_config_text, serialize_config_text

if TYPE_CHECKING:
    from .registry import Endpoint
    from .transport import Session, Transport
    from .vault import CredentialVault

logger = logging.getLogger("fleetsync")


def failure_detail(e: Exception) -> str:
    """Short description of a per-endpoint failure for the audit log."""
    if isinstance(e, TransportError):
        return e.detail
    return str(e) or type(e).__name__


@dataclass
class PullResult:
    """Outcome of a successful pull."""

    source: str
    parsed_count: int

    def to_dict(self) -> dict[str, Any]:
        return {"ok": True, "source": self.source, "parsedCount": self.parsed_count}


@dataclass
class PushReport:
    """Per-target outcome of a push. Informational only; a push never fails."""

    delivered: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)

    @property
    def attempted(self) -> int:
        return len(self.delivered) + len(self.failed)

    def to_dict(self) -> dict[str, Any]:
        return {"ok": True, "delivered": self.delivered, "failed": self.failed}


def temp_path_for(destination: str, now: dt.datetime | None = None) -> str:
    """Return a per-attempt temp path in the destination's directory."""
    now = now or dt.datetime.now(dt.UTC)
    stamp = now.strftime(TMP_TIME_FORMAT)
    directory, name = posixpath.split(destination)
    return posixpath.join(directory, f".{name}.tmp.{stamp}.{secrets.token_hex(4)}")


class SyncEngine:
    """Moves the configuration between the local store and the fleet."""

    def __init__(
        self,
        *,
        vault: CredentialVault,
        registry: EndpointRegistry,
        store: ConfigStore,
        audit: AuditLog,
        transport: Transport,
        username: str,
    ):
        self.vault = vault
        self.registry = registry
        self.store = store
        self.audit = audit
        self.transport = transport
        self.username = username

    def _require_credentials(self, operation: str) -> None:
        if not self.vault.has_private_key():
            self.audit.record(operation, "Private key not uploaded", Severity.ERROR)
            raise CredentialUnavailable("Private key not uploaded")

    def _open(self, endpoint: Endpoint) -> Session:
        # The decrypted key only lives for the duration of this call.
        private_key = self.vault.load_private_key()
        return self.transport.connect(endpoint.host, endpoint.port, self.username, private_key)

    def fetch_from_first_available_source(self) -> bytes:
        """Return the authoritative file from the first source that answers.

        Sources are tried in registry order; iteration stops at the first success.

        Raises:
            CredentialUnavailable: If no private key is stored
            TamperedOrCorrupt: If the stored key fails authentication
            NoSourceReachable: If every source failed (or none is registered)
        """
        _, data = self._fetch()
        return data

    def _fetch(self) -> tuple[Endpoint, bytes]:
        self._require_credentials(AUDIT_OP_PULL)
        sources = self.registry.list_endpoints(Role.SOURCE)
        source_path = self.registry.sync_settings().source_path

        for endpoint in sources:
            try:
                with self._open(endpoint) as session:
                    data = session.read_file(source_path)
            except VaultError:
                raise
            except Exception as e:
                logger.debug("Pull from %s failed: %s", endpoint.address, e)
                self.audit.record(
                    AUDIT_OP_PULL,
                    f"Failed fetching from {endpoint.host}: {failure_detail(e)}",
                    Severity.ERROR,
                )
                continue
            self.audit.record(AUDIT_OP_PULL, f"Fetched config from {endpoint.host}")
            return endpoint, data

        raise NoSourceReachable(
            f"No source endpoint reachable ({len(sources)} tried)"
            if sources
            else "No source endpoints registered"
        )

    def pull(self) -> PullResult:
        """Fetch from the first available source and replace the local snapshot.

        The snapshot is only touched after a successful fetch.
        """
        endpoint, data = self._fetch()
        entries = parse_config_text(data.decode("utf-8", "replace"))
        self.store.replace_snapshot(entries)
        logger.info("Stored %d config entries from %s", len(entries), endpoint.address)
        return PullResult(source=endpoint.host, parsed_count=len(entries))

    def commit_to_all_targets(self) -> PushReport:
        """Deliver the local snapshot to every target endpoint.

        Raises:
            CredentialUnavailable: If no private key is stored
            TamperedOrCorrupt: If the stored key fails authentication
        """
        self._require_credentials(AUDIT_OP_PUSH)
        targets = self.registry.list_endpoints(Role.TARGET)
        destination = self.registry.sync_settings().destination_path
        payload = serialize_config_text(self.store.get_snapshot()).encode("utf-8")

        report = PushReport()
        for endpoint in targets:
            tmp = temp_path_for(destination)
            try:
                with self._open(endpoint) as session:
                    session.write_file(payload, tmp)
                    session.rename(tmp, destination)
            except VaultError:
                raise
            except Exception as e:
                detail = failure_detail(e)
                logger.debug("Push to %s failed: %s", endpoint.address, e)
                self.audit.record(
                    AUDIT_OP_PUSH,
                    f"Failed pushing to {endpoint.host}: {detail}",
                    Severity.ERROR,
                )
                report.failed[endpoint.address] = detail
                continue
            self.audit.record(AUDIT_OP_PUSH, f"Pushed config to {endpoint.host}")
            report.delivered.append(endpoint.address)

        logger.info(
            "Push finished: %d delivered, %d failed", len(report.delivered), len(report.failed)
        )
        return report
