"""FleetSync exception classes."""

from __future__ import annotations


class FleetSyncError(RuntimeError):
    """Base exception for FleetSync errors."""


class UserError(FleetSyncError):
    """Errors that should be shown to user without traceback."""

    def __init__(self, message: str, rc: int = 2):
        super().__init__(message)
        self.rc = rc


class CommandFailureError(FleetSyncError):
    """Command failed - error message already printed, just need to exit."""

    def __init__(self, rc: int = 1):
        super().__init__("")
        self.rc = rc


class InvalidConfigEntry(UserError):
    """A configuration key or value cannot be represented in KEY=VALUE text."""


# Credential vault


class VaultError(FleetSyncError):
    """Base class for credential vault failures."""


class CredentialUnavailable(VaultError):
    """No usable key material (vault key or encrypted private key)."""


class TamperedOrCorrupt(VaultError):
    """Encrypted blob failed authentication; no plaintext is returned."""


# Transport (per-endpoint, recoverable)


class TransportError(FleetSyncError):
    """Failure talking to a single remote endpoint."""

    def __init__(self, host: str, detail: str):
        super().__init__(f"{host}: {detail}")
        self.host = host
        self.detail = detail


class EndpointUnreachable(TransportError):
    """Could not open a session to the endpoint."""


class AuthenticationFailed(TransportError):
    """The endpoint rejected the vault's private key."""


class RemoteReadFailed(TransportError):
    """Reading the remote file failed."""


class RemoteWriteFailed(TransportError):
    """Writing or renaming the remote file failed."""


class NoSourceReachable(FleetSyncError):
    """Every source endpoint failed during a pull."""


# TLS material


class TlsError(FleetSyncError):
    """Base class for TLS material failures."""


class EmptyUpload(TlsError, UserError):
    """An upload was missing a required, non-empty part."""

    def __init__(self, message: str):
        UserError.__init__(self, message)


class NoCertificateMaterial(TlsError):
    """No usable certificate bundle exists on disk."""


class TlsReloadError(TlsError):
    """The bundle exists but could not be turned into a listener."""
