"""FleetSync TLS material manager.

Certificate bundles live at four fixed names under the TLS directory: a
combined PKCS#12 archive, or a PEM private key + certificate with an optional
chain. Uploading a bundle triggers a reload, which rebuilds the SSL context
and swaps the encrypted listener: the old listener is shut down and its
socket closed before the new one binds the same address, so there is a
brief window with no listener.
"""

from __future__ import annotations

import logging
import shutil
import ssl
import tempfile
import threading
from collections.abc import Callable
from dataclasses import dataclass
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path

from cryptography.hazmat.primitives.serialization import (
    Encoding,
    NoEncryption,
    PrivateFormat,
    pkcs12,
)

from .audit import AuditLog, Severity
from .constants import (
    AUDIT_OP_TLS,
    TLS_CERT_FILE_NAME,
    TLS_CHAIN_FILE_NAME,
    TLS_COMBINED_FILE_NAME,
    TLS_CONNECTION_TIMEOUT_S,
    TLS_KEY_FILE_NAME,
)
from .exceptions import EmptyUpload, NoCertificateMaterial, TlsReloadError
from .utils import ensure_private_dir, write_private_file

logger = logging.getLogger("fleetsync")


@dataclass(frozen=True)
class TlsPaths:
    """Fixed bundle locations under one directory."""

    directory: Path

    @property
    def combined(self) -> Path:
        return self.directory / TLS_COMBINED_FILE_NAME

    @property
    def key(self) -> Path:
        return self.directory / TLS_KEY_FILE_NAME

    @property
    def cert(self) -> Path:
        return self.directory / TLS_CERT_FILE_NAME

    @property
    def chain(self) -> Path:
        return self.directory / TLS_CHAIN_FILE_NAME


@dataclass(frozen=True)
class TlsStatus:
    combined_present: bool
    key_present: bool
    cert_present: bool
    chain_present: bool

    def to_dict(self) -> dict[str, bool]:
        return {
            "combined": self.combined_present,
            "key": self.key_present,
            "cert": self.cert_present,
            "chain": self.chain_present,
        }


def _new_server_context() -> ssl.SSLContext:
    ctx = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
    ctx.minimum_version = ssl.TLSVersion.TLSv1_2
    return ctx


def _load_pem_files(ctx: ssl.SSLContext, cert_pem: bytes, key_pem: bytes, password: str | None):
    """Feed in-memory PEM material to load_cert_chain, which only takes paths."""
    tmp_dir = Path(tempfile.mkdtemp(prefix="fleetsync-tls-"))
    try:
        cert_file = tmp_dir / "cert.pem"
        key_file = tmp_dir / "key.pem"
        write_private_file(cert_file, cert_pem)
        write_private_file(key_file, key_pem)
        ctx.load_cert_chain(str(cert_file), str(key_file), password=password)
    finally:
        shutil.rmtree(tmp_dir, ignore_errors=True)


def load_tls_context(paths: TlsPaths, passphrase: str | None = None) -> ssl.SSLContext:
    """Build a server SSL context from whichever bundle is on disk.

    The combined archive wins when both forms exist.

    Raises:
        NoCertificateMaterial: If neither a combined archive nor a key+cert pair exists
        TlsReloadError: If the material exists but cannot be loaded
    """
    ctx = _new_server_context()
    if paths.combined.exists():
        data = paths.combined.read_bytes()
        password = passphrase.encode("utf-8") if passphrase else None
        try:
            key, cert, extra = pkcs12.load_key_and_certificates(data, password)
        except ValueError as e:
            raise TlsReloadError(f"Cannot open {paths.combined.name}: {e}") from e
        if key is None or cert is None:
            raise NoCertificateMaterial(f"{paths.combined.name} has no key or certificate")
        cert_pem = cert.public_bytes(Encoding.PEM) + b"".join(
            c.public_bytes(Encoding.PEM) for c in extra or []
        )
        key_pem = key.private_bytes(Encoding.PEM, PrivateFormat.PKCS8, NoEncryption())
        try:
            _load_pem_files(ctx, cert_pem, key_pem, None)
        except ssl.SSLError as e:
            raise TlsReloadError(f"Cannot load {paths.combined.name}: {e}") from e
        return ctx

    if paths.key.exists() and paths.cert.exists():
        cert_pem = paths.cert.read_bytes()
        if paths.chain.exists():
            chain = paths.chain.read_bytes()
            if not cert_pem.endswith(b"\n"):
                cert_pem += b"\n"
            cert_pem += chain
        try:
            _load_pem_files(ctx, cert_pem, paths.key.read_bytes(), passphrase)
        except ssl.SSLError as e:
            raise TlsReloadError(f"Cannot load {paths.cert.name}/{paths.key.name}: {e}") from e
        return ctx

    raise NoCertificateMaterial(f"No TLS certificate found in {paths.directory}")


class _ListenerServer(ThreadingHTTPServer):
    # Request threads must not block server_close(); a reload may be
    # triggered from inside a request.
    daemon_threads = True

    def finish_request(self, request, client_address):
        # The handshake runs here, on the per-connection thread, so a client
        # that stalls or speaks plain TCP cannot hold up accept().
        request.settimeout(TLS_CONNECTION_TIMEOUT_S)
        try:
            request.do_handshake()
        except OSError as e:
            logger.debug("TLS handshake with %s failed: %s", client_address[0], e)
            return
        super().finish_request(request, client_address)


class HttpsListener:
    """A running HTTPS server bound to one address."""

    def __init__(
        self,
        address: tuple[str, int],
        handler_class: type[BaseHTTPRequestHandler],
        context: ssl.SSLContext,
    ):
        self._server = _ListenerServer(address, handler_class)
        self._server.socket = context.wrap_socket(
            self._server.socket, server_side=True, do_handshake_on_connect=False
        )
        self._thread: threading.Thread | None = None

    @property
    def address(self) -> tuple[str, int]:
        host, port = self._server.server_address[:2]
        return str(host), int(port)

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        self._thread = threading.Thread(
            target=self._server.serve_forever,
            name="fleetsync-https",
            daemon=True,
        )
        self._thread.start()
        logger.info("HTTPS listening on %s:%d", *self.address)

    def stop(self) -> None:
        """Stop serving and close the listening socket. Returns once closed."""
        if self._thread is not None:
            self._server.shutdown()
            self._thread.join()
            self._thread = None
        self._server.server_close()


ListenerFactory = Callable[[ssl.SSLContext], HttpsListener]


class TlsManager:
    """Accepts certificate uploads and owns the encrypted listener handle."""

    def __init__(
        self,
        paths: TlsPaths,
        *,
        audit: AuditLog,
        passphrase: str | None = None,
        listener_factory: ListenerFactory | None = None,
    ):
        self.paths = paths
        self.audit = audit
        self.passphrase = passphrase
        self.listener_factory = listener_factory
        self._listener: HttpsListener | None = None
        self._reload_lock = threading.Lock()

    @property
    def listener(self) -> HttpsListener | None:
        return self._listener

    def status(self) -> TlsStatus:
        return TlsStatus(
            combined_present=self.paths.combined.exists(),
            key_present=self.paths.key.exists(),
            cert_present=self.paths.cert.exists(),
            chain_present=self.paths.chain.exists(),
        )

    def store_combined(self, data: bytes | None) -> None:
        """Write a PKCS#12 archive without reloading.

        Raises:
            EmptyUpload: If data is empty; nothing is written
        """
        if not data:
            raise EmptyUpload("pfx file required")
        ensure_private_dir(self.paths.directory)
        write_private_file(self.paths.combined, data)
        self.audit.record(AUDIT_OP_TLS, f"Uploaded {self.paths.combined.name}")

    def store_separate(
        self, key: bytes | None, cert: bytes | None, chain: bytes | None = None
    ) -> None:
        """Write a PEM key + certificate (+ optional chain) without reloading.

        Raises:
            EmptyUpload: If key or cert is missing; nothing is written
        """
        if not key or not cert:
            raise EmptyUpload("key and cert required; chain optional")
        ensure_private_dir(self.paths.directory)
        write_private_file(self.paths.key, key)
        write_private_file(self.paths.cert, cert)
        names = [self.paths.key.name, self.paths.cert.name]
        if chain:
            write_private_file(self.paths.chain, chain)
            names.append(self.paths.chain.name)
        self.audit.record(AUDIT_OP_TLS, f"Uploaded {', '.join(names)}")

    def upload_combined(self, data: bytes | None) -> ssl.SSLContext:
        """Store a PKCS#12 archive and reload."""
        self.store_combined(data)
        return self.reload()

    def upload_separate(
        self, key: bytes | None, cert: bytes | None, chain: bytes | None = None
    ) -> ssl.SSLContext:
        """Store a PEM key + certificate (+ optional chain) and reload."""
        self.store_separate(key, cert, chain)
        return self.reload()

    def validate(self) -> ssl.SSLContext:
        """Load the bundle on disk without touching the listener."""
        return load_tls_context(self.paths, self.passphrase)

    def reload(self) -> ssl.SSLContext:
        """Rebuild the SSL context and restart the listener with it.

        Calls are serialized. Without a listener factory this only validates
        the bundle. On failure the previous listener may already be stopped.

        Raises:
            NoCertificateMaterial: If no usable bundle exists
            TlsReloadError: If the bundle cannot be loaded or the listener cannot bind
        """
        with self._reload_lock:
            try:
                ctx = load_tls_context(self.paths, self.passphrase)
            except (NoCertificateMaterial, TlsReloadError) as e:
                self.audit.record(AUDIT_OP_TLS, f"Reload failed: {e}", Severity.ERROR)
                raise

            if self.listener_factory is None:
                self.audit.record(AUDIT_OP_TLS, "Certificate bundle validated")
                return ctx

            if self._listener is not None:
                self._listener.stop()
                self._listener = None
            try:
                listener = self.listener_factory(ctx)
            except OSError as e:
                self.audit.record(AUDIT_OP_TLS, f"Reload failed: {e}", Severity.ERROR)
                raise TlsReloadError(f"Cannot bind HTTPS listener: {e}") from e
            listener.start()
            self._listener = listener
            host, port = listener.address
            self.audit.record(AUDIT_OP_TLS, f"HTTPS listener reloaded on {host}:{port}")
            return ctx

    def stop(self) -> None:
        with self._reload_lock:
            if self._listener is not None:
                self._listener.stop()
                self._listener = None
