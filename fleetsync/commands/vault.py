"""FleetSync credential vault commands."""

from __future__ import annotations

import json
from pathlib import Path
from typing import TYPE_CHECKING

from ..constants import AUDIT_OP_VAULT
from ..exceptions import UserError

if TYPE_CHECKING:
    from ..cli_types import VaultUploadArgs
    from ..service import Service


def read_input_file(path: str, what: str) -> bytes:
    """Read a local file given on the command line."""
    p = Path(path)
    try:
        return p.read_bytes()
    except OSError as e:
        raise UserError(f"Cannot read {what} file {p}: {e.strerror or e}")


def cmd_vault_status(service: Service, *, json_output: bool = False) -> None:
    """Show which halves of the SSH key pair are stored."""
    status = service.vault.status()
    if json_output:
        print(json.dumps(status, indent=2, sort_keys=True))
        return
    print(f"Private key: {'stored (encrypted)' if status['has_private'] else 'missing'}")
    print(f"Public key: {'stored' if status['has_public'] else 'missing'}")
    print(f"Secrets dir: {service.vault.secrets_dir}")


def cmd_vault_upload(service: Service, args: VaultUploadArgs) -> None:
    """Encrypt and store the SSH private key (and optionally the public key)."""
    private = read_input_file(args.private, "private key")
    public = read_input_file(args.public, "public key") if args.public else None
    service.vault.store_private_key(private, public)

    stored = "private and public key" if public else "private key"
    service.audit.record(AUDIT_OP_VAULT, f"Uploaded {stored}")
    if args.json:
        print(json.dumps(service.vault.status(), indent=2, sort_keys=True))
        return
    print(f"Stored {stored} in {service.vault.secrets_dir}")


def cmd_vault_remove(service: Service, *, confirm: bool) -> None:
    """Delete the stored key pair."""
    if not confirm:
        print("DRY RUN: --confirm not provided; no changes will be made.")
        print(f"Would remove: {service.vault.private_key_path}")
        print(f"Would remove: {service.vault.public_key_path}")
        return
    service.vault.remove()
    service.audit.record(AUDIT_OP_VAULT, "Removed key pair")
    print("Removed stored key pair.")
