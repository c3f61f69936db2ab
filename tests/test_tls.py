"""Tests for fleetsync/tls.py - certificate bundles and listener reload."""

from __future__ import annotations

import socket
import ssl
from http.server import BaseHTTPRequestHandler
from pathlib import Path

import pytest
import requests
import urllib3
from conftest import CertMaterial, make_cert_material
from cryptography import x509
from fleetsync.audit import AuditLog
from fleetsync.exceptions import (
    EmptyUpload,
    NoCertificateMaterial,
    TlsReloadError,
    UserError,
)
from fleetsync.tls import HttpsListener, TlsManager, TlsPaths, load_tls_context

urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)


class PingHandler(BaseHTTPRequestHandler):
    def do_GET(self):
        body = b"pong"
        self.send_response(200)
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def log_message(self, format, *args):
        pass


@pytest.fixture
def paths(tmp_dir: Path) -> TlsPaths:
    return TlsPaths(tmp_dir / "certs")


@pytest.fixture
def audit(temp_db: Path) -> AuditLog:
    return AuditLog(temp_db)


@pytest.fixture
def manager(paths: TlsPaths, audit: AuditLog) -> TlsManager:
    return TlsManager(paths, audit=audit)


@pytest.fixture
def live_manager(paths: TlsPaths, audit: AuditLog, free_port: int):
    """Manager whose reloads run a real HTTPS listener on localhost."""
    manager = TlsManager(
        paths,
        audit=audit,
        listener_factory=lambda ctx: HttpsListener(("127.0.0.1", free_port), PingHandler, ctx),
    )
    yield manager
    manager.stop()


def served_certificate(port: int) -> x509.Certificate:
    pem = ssl.get_server_certificate(("127.0.0.1", port))
    return x509.load_pem_x509_certificate(pem.encode("ascii"))


class TestStatus:
    """Tests for TlsManager.status."""

    def test_nothing_present(self, manager: TlsManager):
        assert manager.status().to_dict() == {
            "combined": False,
            "key": False,
            "cert": False,
            "chain": False,
        }

    def test_presence_only(self, manager: TlsManager, paths: TlsPaths):
        """Status checks existence, not content."""
        paths.directory.mkdir(parents=True)
        paths.key.write_bytes(b"not a key")
        paths.chain.write_bytes(b"junk")
        status = manager.status()
        assert status.key_present and status.chain_present
        assert not status.cert_present and not status.combined_present


class TestUploadValidation:
    """Uploads with missing parts write nothing."""

    def test_separate_missing_cert(self, manager: TlsManager, paths: TlsPaths, cert_material):
        with pytest.raises(EmptyUpload):
            manager.upload_separate(cert_material.key_pem, None)
        assert not paths.directory.exists()

    def test_separate_empty_key(self, manager: TlsManager, paths: TlsPaths, cert_material):
        with pytest.raises(EmptyUpload):
            manager.upload_separate(b"", cert_material.cert_pem, b"chain")
        assert not paths.directory.exists()

    def test_combined_empty(self, manager: TlsManager, paths: TlsPaths):
        with pytest.raises(EmptyUpload):
            manager.upload_combined(b"")
        assert not paths.directory.exists()

    def test_empty_upload_is_user_error(self):
        assert issubclass(EmptyUpload, UserError)


class TestUploadAndValidate:
    """Uploads without a listener factory only validate."""

    def test_upload_separate_writes_files(self, manager: TlsManager, paths: TlsPaths, cert_material):
        ctx = manager.upload_separate(cert_material.key_pem, cert_material.cert_pem)
        assert isinstance(ctx, ssl.SSLContext)
        assert paths.key.read_bytes() == cert_material.key_pem
        assert paths.cert.read_bytes() == cert_material.cert_pem
        assert not paths.chain.exists()
        assert manager.listener is None

    def test_upload_separate_with_chain(self, manager: TlsManager, paths: TlsPaths, cert_material):
        chain = make_cert_material("intermediate").cert_pem
        manager.upload_separate(cert_material.key_pem, cert_material.cert_pem, chain)
        assert paths.chain.read_bytes() == chain

    def test_upload_combined(self, manager: TlsManager, paths: TlsPaths, cert_material):
        manager.upload_combined(cert_material.pfx)
        assert paths.combined.read_bytes() == cert_material.pfx

    def test_audit_entries(self, manager: TlsManager, audit: AuditLog, cert_material):
        manager.upload_combined(cert_material.pfx)
        messages = [e.message for e in reversed(audit.list())]
        assert messages == ["Uploaded server.pfx", "Certificate bundle validated"]

    def test_store_does_not_reload(self, manager: TlsManager, audit: AuditLog):
        """store_* writes files without trying to load them."""
        manager.store_combined(b"not really a pfx")
        assert [e.message for e in audit.list()] == ["Uploaded server.pfx"]


class TestLoadTlsContext:
    """Tests for load_tls_context function."""

    def test_no_material(self, paths: TlsPaths):
        with pytest.raises(NoCertificateMaterial):
            load_tls_context(paths)

    def test_key_without_cert(self, paths: TlsPaths, cert_material):
        paths.directory.mkdir(parents=True)
        paths.key.write_bytes(cert_material.key_pem)
        with pytest.raises(NoCertificateMaterial):
            load_tls_context(paths)

    def test_pem(self, paths: TlsPaths, cert_material):
        paths.directory.mkdir(parents=True)
        paths.key.write_bytes(cert_material.key_pem)
        paths.cert.write_bytes(cert_material.cert_pem)
        ctx = load_tls_context(paths)
        assert ctx.minimum_version == ssl.TLSVersion.TLSv1_2

    def test_garbage_pem(self, paths: TlsPaths):
        paths.directory.mkdir(parents=True)
        paths.key.write_bytes(b"garbage")
        paths.cert.write_bytes(b"garbage")
        with pytest.raises(TlsReloadError):
            load_tls_context(paths)

    def test_mismatched_key(self, paths: TlsPaths, cert_material):
        paths.directory.mkdir(parents=True)
        paths.key.write_bytes(make_cert_material().key_pem)
        paths.cert.write_bytes(cert_material.cert_pem)
        with pytest.raises(TlsReloadError):
            load_tls_context(paths)

    def test_pfx_with_passphrase(self, paths: TlsPaths):
        material = make_cert_material(pfx_password=b"s3cret")
        paths.directory.mkdir(parents=True)
        paths.combined.write_bytes(material.pfx)
        assert isinstance(load_tls_context(paths, "s3cret"), ssl.SSLContext)

    def test_pfx_wrong_passphrase(self, paths: TlsPaths):
        material = make_cert_material(pfx_password=b"s3cret")
        paths.directory.mkdir(parents=True)
        paths.combined.write_bytes(material.pfx)
        with pytest.raises(TlsReloadError):
            load_tls_context(paths, "wrong")

    def test_combined_takes_precedence(self, paths: TlsPaths, cert_material):
        """A bad combined archive fails even when good PEM files exist."""
        paths.directory.mkdir(parents=True)
        paths.key.write_bytes(cert_material.key_pem)
        paths.cert.write_bytes(cert_material.cert_pem)
        paths.combined.write_bytes(b"not a pfx")
        with pytest.raises(TlsReloadError, match="server.pfx"):
            load_tls_context(paths)


class TestReload:
    """Tests for TlsManager.reload with a live listener."""

    def test_no_material(self, manager: TlsManager, audit: AuditLog):
        with pytest.raises(NoCertificateMaterial):
            manager.reload()
        entry = audit.list()[0]
        assert entry.level == "error"
        assert entry.message.startswith("Reload failed")

    def test_upload_starts_listener(self, live_manager: TlsManager, cert_material, free_port: int):
        live_manager.upload_separate(cert_material.key_pem, cert_material.cert_pem)
        listener = live_manager.listener
        assert listener is not None and listener.running
        assert listener.address == ("127.0.0.1", free_port)

        response = requests.get(f"https://127.0.0.1:{free_port}/", verify=False, timeout=5)
        assert response.status_code == 200
        assert response.text == "pong"

    def test_reload_is_idempotent(self, live_manager: TlsManager, cert_material, free_port: int):
        """Reloading twice leaves one equivalent listener on the same port."""
        live_manager.upload_combined(cert_material.pfx)
        first = live_manager.listener
        live_manager.reload()
        second = live_manager.listener
        assert second is not first
        assert first is not None and not first.running
        assert second is not None and second.running
        assert second.address == first.address
        response = requests.get(f"https://127.0.0.1:{free_port}/", verify=False, timeout=5)
        assert response.status_code == 200

    def test_rotation_serves_new_certificate(
        self, live_manager: TlsManager, cert_material: CertMaterial, free_port: int
    ):
        live_manager.upload_separate(cert_material.key_pem, cert_material.cert_pem)
        old = x509.load_pem_x509_certificate(cert_material.cert_pem)
        assert served_certificate(free_port) == old

        rotated = make_cert_material("rotated.example.com")
        live_manager.upload_separate(rotated.key_pem, rotated.cert_pem)
        assert served_certificate(free_port) == x509.load_pem_x509_certificate(rotated.cert_pem)

    def test_stalled_client_does_not_block(
        self, live_manager: TlsManager, cert_material, free_port: int
    ):
        """A client that connects and never handshakes blocks neither requests nor reload."""
        live_manager.upload_combined(cert_material.pfx)
        stalled = socket.create_connection(("127.0.0.1", free_port), timeout=5)
        try:
            response = requests.get(f"https://127.0.0.1:{free_port}/", verify=False, timeout=3)
            assert response.status_code == 200

            live_manager.reload()
            assert live_manager.listener.running
            response = requests.get(f"https://127.0.0.1:{free_port}/", verify=False, timeout=3)
            assert response.status_code == 200
        finally:
            stalled.close()

    def test_plaintext_client_is_dropped(
        self, live_manager: TlsManager, cert_material, free_port: int
    ):
        live_manager.upload_combined(cert_material.pfx)
        with socket.create_connection(("127.0.0.1", free_port), timeout=5) as plain:
            plain.sendall(b"GET / HTTP/1.0\r\n\r\n")
            response = requests.get(f"https://127.0.0.1:{free_port}/", verify=False, timeout=3)
            assert response.status_code == 200

    def test_failed_load_keeps_old_listener(
        self, live_manager: TlsManager, cert_material, paths: TlsPaths
    ):
        """The bundle is loaded before the running listener is touched."""
        live_manager.upload_separate(cert_material.key_pem, cert_material.cert_pem)
        listener = live_manager.listener
        paths.cert.write_bytes(b"garbage")
        with pytest.raises(TlsReloadError):
            live_manager.reload()
        assert live_manager.listener is listener
        assert listener.running

    def test_bind_failure(self, paths: TlsPaths, audit: AuditLog, cert_material):
        def factory(ctx):
            raise OSError(98, "Address already in use")

        manager = TlsManager(paths, audit=audit, listener_factory=factory)
        with pytest.raises(TlsReloadError, match="Cannot bind"):
            manager.upload_combined(cert_material.pfx)
        assert manager.listener is None
        assert audit.list()[0].level == "error"

    def test_stop(self, live_manager: TlsManager, cert_material):
        live_manager.upload_combined(cert_material.pfx)
        listener = live_manager.listener
        live_manager.stop()
        assert live_manager.listener is None
        assert not listener.running
