"""Type definitions for CLI command arguments."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class VaultUploadArgs:
    """Arguments for vault-upload command."""

    private: str
    public: str | None
    json: bool


@dataclass
class EndpointAddArgs:
    """Arguments for endpoint-add command."""

    name: str
    host: str
    role: str
    port: int
    inactive: bool
    json: bool


@dataclass
class SettingsSetArgs:
    """Arguments for settings-set command."""

    source_path: str | None
    destination_path: str | None
    json: bool


@dataclass
class LogsArgs:
    """Arguments for logs command."""

    limit: int | None
    json: bool


@dataclass
class ServerArgs:
    """Where to send a reload request, if anywhere."""

    server: str | None
    insecure: bool = False


@dataclass
class TlsUploadPemArgs:
    """Arguments for tls-upload-pem command."""

    key: str
    cert: str
    chain: str | None
    server: ServerArgs
