"""Operator HTTP API served on the encrypted listener.

Routes:
    GET  /healthz                 liveness, unauthenticated
    GET  /api/ops/logs?limit=N    audit entries, newest first
    POST /api/ops/get-config      pull from the first reachable source
    POST /api/ops/commit-config   push to every target (always 200)
    GET  /api/tls/status          which bundle files exist
    POST /api/tls/reload          reload the listener from disk
    POST /api/tls/upload/pfx      raw PKCS#12 body
    POST /api/tls/upload/pem      JSON {"key": ..., "cert": ..., "chain": ...}

Everything except /healthz needs "Authorization: Bearer <token>". With no
token configured those routes answer 403.
"""

from __future__ import annotations

import hmac
import json
import logging
import threading
from http.server import BaseHTTPRequestHandler
from typing import TYPE_CHECKING, Any
from urllib.parse import parse_qs, urlsplit

from .exceptions import FleetSyncError, UserError

if TYPE_CHECKING:
    from .service import Service

logger = logging.getLogger("fleetsync")

MAX_BODY_BYTES = 1024 * 1024


def pem_field(body: dict, name: str) -> bytes:
    """Return body[name] as bytes; a missing or null field is empty."""
    value = body.get(name)
    if value is None:
        return b""
    if not isinstance(value, str):
        raise UserError(f"{name} must be PEM text")
    return value.encode("utf-8")


def make_handler(service: Service) -> type[BaseHTTPRequestHandler]:
    """Build a request handler class bound to service."""
    token = service.settings.api_token

    class OpsHandler(BaseHTTPRequestHandler):
        server_version = "fleetsync"

        def _json_response(self, data: Any, status: int = 200) -> None:
            body = json.dumps(data, indent=2, default=str).encode("utf-8")
            self.send_response(status)
            self.send_header("Content-Type", "application/json")
            self.send_header("Content-Length", str(len(body)))
            self.end_headers()
            self.wfile.write(body)

        def _authorized(self) -> bool:
            if not token:
                return False
            header = self.headers.get("Authorization", "")
            scheme, _, supplied = header.partition(" ")
            return scheme.lower() == "bearer" and hmac.compare_digest(
                supplied.encode("utf-8"), token.encode("utf-8")
            )

        def _read_body(self) -> bytes:
            raw_length = self.headers.get("Content-Length") or "0"
            try:
                length = int(raw_length)
            except ValueError:
                raise UserError(f"Invalid Content-Length: {raw_length!r}")
            if length > MAX_BODY_BYTES:
                raise UserError(f"Request body too large ({length} bytes)")
            return self.rfile.read(length) if length > 0 else b""

        def do_GET(self):
            url = urlsplit(self.path)
            if url.path == "/healthz":
                self._json_response({"status": "ok"})
                return
            if not self._authorized():
                self._json_response({"error": "forbidden"}, status=403)
                return
            if url.path == "/api/ops/logs":
                limit = parse_qs(url.query).get("limit", [None])[0]
                entries = service.audit.list(limit)
                self._json_response([e.to_dict() for e in entries])
            elif url.path == "/api/tls/status":
                self._json_response(service.tls.status().to_dict())
            else:
                self._json_response({"error": "not found"}, status=404)

        def do_POST(self):
            url = urlsplit(self.path)
            if not self._authorized():
                self._json_response({"error": "forbidden"}, status=403)
                return
            try:
                if url.path == "/api/ops/get-config":
                    result = service.engine.pull()
                    self._json_response({"ok": True, "parsedCount": result.parsed_count})
                elif url.path == "/api/ops/commit-config":
                    service.engine.commit_to_all_targets()
                    self._json_response({"ok": True})
                elif url.path == "/api/tls/reload":
                    self._schedule_reload(service.tls.validate)
                elif url.path == "/api/tls/upload/pfx":
                    data = self._read_body()
                    service.tls.store_combined(data)
                    self._schedule_reload(service.tls.validate)
                elif url.path == "/api/tls/upload/pem":
                    body = json.loads(self._read_body() or b"{}")
                    if not isinstance(body, dict):
                        raise UserError("Expected a JSON object with key, cert and chain")
                    parts = {k: pem_field(body, k) for k in ("key", "cert", "chain")}
                    service.tls.store_separate(parts["key"], parts["cert"], parts["chain"] or None)
                    self._schedule_reload(service.tls.validate)
                else:
                    self._json_response({"error": "not found"}, status=404)
            except UserError as e:
                self._json_response({"error": str(e)}, status=400)
            except json.JSONDecodeError as e:
                self._json_response({"error": f"invalid JSON: {e}"}, status=400)
            except FleetSyncError as e:
                self._json_response({"error": str(e)}, status=500)

        def _schedule_reload(self, validate) -> None:
            """Check the bundle now; restart the listener after replying.

            The reload restarts the listener serving this request, so it runs
            on its own thread once the response is written.
            """
            validate()
            self._json_response({"ok": True})

            def run():
                try:
                    service.tls.reload()
                except FleetSyncError as e:
                    logger.error("TLS reload failed: %s", e)

            threading.Thread(target=run, name="fleetsync-tls-reload", daemon=True).start()

        def log_message(self, format, *args):
            logger.debug("API: %s", format % args)

    return OpsHandler
