"""FleetSync credential vault.

Holds a single SSH private key encrypted at rest with AES-256-GCM. The
symmetric vault key is derived from FLEETSYNC_KEYS_SECRET when set, otherwise
it is read from (or generated once into) a key file in the secrets directory.
The vault key is re-derived for every call and never kept on the instance.

Encrypted blob layout: nonce (12 bytes) || tag (16 bytes) || ciphertext.
"""

from __future__ import annotations

import hashlib
import logging
import os
from pathlib import Path

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .constants import (
    NONCE_LEN,
    PRIVATE_KEY_FILE_NAME,
    PUBLIC_KEY_FILE_NAME,
    TAG_LEN,
    VAULT_KEY_FILE_NAME,
    VAULT_KEY_LEN,
)
from .exceptions import CredentialUnavailable, EmptyUpload, TamperedOrCorrupt
from .utils import ensure_private_dir, write_private_file

logger = logging.getLogger("fleetsync")


def normalize_secret(secret: str) -> bytes:
    """Hash an externally supplied secret down to a 32-byte key.

    A 64-character hex string is decoded first; anything else is taken as UTF-8.
    """
    raw: bytes
    if len(secret) == 64:
        try:
            raw = bytes.fromhex(secret)
        except ValueError:
            raw = secret.encode("utf-8")
    else:
        raw = secret.encode("utf-8")
    return hashlib.sha256(raw).digest()


class CredentialVault:
    """Encrypted storage for the fleet's SSH key pair."""

    def __init__(self, secrets_dir: Path, *, secret: str | None = None):
        self.secrets_dir = secrets_dir
        self._secret = secret

    @property
    def key_path(self) -> Path:
        return self.secrets_dir / VAULT_KEY_FILE_NAME

    @property
    def private_key_path(self) -> Path:
        return self.secrets_dir / PRIVATE_KEY_FILE_NAME

    @property
    def public_key_path(self) -> Path:
        return self.secrets_dir / PUBLIC_KEY_FILE_NAME

    def derive_or_load_key(self) -> bytes:
        """Return the 32-byte vault key.

        Uses the external secret if configured; otherwise reads the key file,
        generating and persisting a random key the first time.

        Raises:
            CredentialUnavailable: If the key file is unreadable, malformed,
                or cannot be created
        """
        if self._secret:
            return normalize_secret(self._secret)

        try:
            ensure_private_dir(self.secrets_dir)
            if self.key_path.exists():
                return self._read_key_file()
            key = os.urandom(VAULT_KEY_LEN)
            try:
                fd = os.open(self.key_path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
            except FileExistsError:
                # Another process created it first; use theirs.
                return self._read_key_file()
            with os.fdopen(fd, "wb") as f:
                f.write(key)
            logger.info("Generated new vault key at %s", self.key_path)
            return key
        except OSError as e:
            raise CredentialUnavailable(f"Vault key unavailable: {e}") from e

    def _read_key_file(self) -> bytes:
        key = self.key_path.read_bytes()
        if len(key) != VAULT_KEY_LEN:
            raise CredentialUnavailable(
                f"Vault key file {self.key_path} is {len(key)} bytes, expected {VAULT_KEY_LEN}"
            )
        return key

    def encrypt(self, plaintext: bytes) -> bytes:
        """Encrypt plaintext with a fresh random nonce."""
        key = self.derive_or_load_key()
        nonce = os.urandom(NONCE_LEN)
        sealed = AESGCM(key).encrypt(nonce, plaintext, None)
        # AESGCM appends the tag; the stored layout puts it before the ciphertext.
        ciphertext, tag = sealed[:-TAG_LEN], sealed[-TAG_LEN:]
        return nonce + tag + ciphertext

    def decrypt(self, blob: bytes) -> bytes:
        """Authenticate and decrypt a blob produced by encrypt().

        Raises:
            TamperedOrCorrupt: If the blob is truncated or fails tag verification
        """
        if len(blob) < NONCE_LEN + TAG_LEN:
            raise TamperedOrCorrupt(f"Encrypted blob too short ({len(blob)} bytes)")
        key = self.derive_or_load_key()
        nonce = blob[:NONCE_LEN]
        tag = blob[NONCE_LEN : NONCE_LEN + TAG_LEN]
        ciphertext = blob[NONCE_LEN + TAG_LEN :]
        try:
            return AESGCM(key).decrypt(nonce, ciphertext + tag, None)
        except InvalidTag:
            raise TamperedOrCorrupt(
                "Encrypted key failed authentication (tampered, corrupt, or wrong vault key)"
            ) from None

    def store_private_key(self, data: bytes, public_key: bytes | None = None) -> None:
        """Encrypt and persist the private key, replacing any previous one.

        Raises:
            EmptyUpload: If data is empty
        """
        if not data:
            raise EmptyUpload("private key required")
        ensure_private_dir(self.secrets_dir)
        write_private_file(self.private_key_path, self.encrypt(data))
        if public_key:
            write_private_file(self.public_key_path, public_key)
            os.chmod(self.public_key_path, 0o644)

    def has_private_key(self) -> bool:
        return self.private_key_path.exists()

    def load_private_key(self) -> bytes:
        """Return the decrypted private key.

        Raises:
            CredentialUnavailable: If no private key has been uploaded
            TamperedOrCorrupt: If the stored blob fails authentication
        """
        try:
            blob = self.private_key_path.read_bytes()
        except FileNotFoundError:
            raise CredentialUnavailable("Private key not uploaded") from None
        return self.decrypt(blob)

    def status(self) -> dict[str, bool]:
        return {
            "has_private": self.private_key_path.exists(),
            "has_public": self.public_key_path.exists(),
        }

    def remove(self) -> None:
        """Delete the stored key pair. The vault key itself is kept."""
        self.private_key_path.unlink(missing_ok=True)
        self.public_key_path.unlink(missing_ok=True)
