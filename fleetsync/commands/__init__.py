"""FleetSync command implementations."""

from __future__ import annotations

from .config import cmd_config_import, cmd_config_show, cmd_settings_set, cmd_settings_show
from .endpoints import (
    cmd_endpoint_add,
    cmd_endpoint_list,
    cmd_endpoint_remove,
    cmd_endpoint_set_active,
)
from .logs import cmd_logs
from .serve import cmd_serve
from .sync import cmd_pull, cmd_push
from .tls import cmd_tls_reload, cmd_tls_status, cmd_tls_upload_pem, cmd_tls_upload_pfx
from .vault import cmd_vault_remove, cmd_vault_status, cmd_vault_upload

__all__ = [
    "cmd_config_import",
    "cmd_config_show",
    "cmd_endpoint_add",
    "cmd_endpoint_list",
    "cmd_endpoint_remove",
    "cmd_endpoint_set_active",
    "cmd_logs",
    "cmd_pull",
    "cmd_push",
    "cmd_serve",
    "cmd_settings_set",
    "cmd_settings_show",
    "cmd_tls_reload",
    "cmd_tls_status",
    "cmd_tls_upload_pem",
    "cmd_tls_upload_pfx",
    "cmd_vault_remove",
    "cmd_vault_status",
    "cmd_vault_upload",
]
