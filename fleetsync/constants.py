"""FleetSync constants."""

from __future__ import annotations

# Remote paths (defaults for the singleton sync settings record)
DEFAULT_SOURCE_PATH = "/etc/eni/config.settings"
DEFAULT_DESTINATION_PATH = "/ephidin/ENI/config"
DEFAULT_SSH_USER = "root"
DEFAULT_SSH_PORT = 22

# Local layout
DATA_DIR_NAME = ".fleetsync"
DB_FILE_NAME = "fleetsync.db"
SECRETS_DIR_NAME = "ssh"
CERTS_DIR_NAME = "certs"

# Credential vault
VAULT_KEY_FILE_NAME = "secret.key"
PRIVATE_KEY_FILE_NAME = "id_rsa.enc"
PUBLIC_KEY_FILE_NAME = "id_rsa.pub"
VAULT_KEY_LEN = 32
NONCE_LEN = 12
TAG_LEN = 16

# TLS bundle
TLS_COMBINED_FILE_NAME = "server.pfx"
TLS_KEY_FILE_NAME = "server.key"
TLS_CERT_FILE_NAME = "server.crt"
TLS_CHAIN_FILE_NAME = "chain.crt"
DEFAULT_HTTPS_HOST = "0.0.0.0"
DEFAULT_HTTPS_PORT = 8443
TLS_CONNECTION_TIMEOUT_S = 10

# Audit log
AUDIT_DEFAULT_LIMIT = 200
AUDIT_OP_PULL = "pull"
AUDIT_OP_PUSH = "push"
AUDIT_OP_TLS = "tls"
AUDIT_OP_VAULT = "vault"

# Transport
SSH_TIMEOUT_EXIT_CODE = 124
SSH_ERROR_EXIT_CODE = 255
DEFAULT_CONNECT_TIMEOUT_S = 10
DEFAULT_TIMEOUT_S = 60
TMP_TIME_FORMAT = "%Y%m%dT%H%M%SZ"

# Environment variables
ENV_DATA_DIR = "FLEETSYNC_DATA_DIR"
ENV_TLS_CERT_DIR = "FLEETSYNC_TLS_CERT_DIR"
ENV_KEYS_SECRET = "FLEETSYNC_KEYS_SECRET"
ENV_TLS_PASSPHRASE = "FLEETSYNC_TLS_PASSPHRASE"
ENV_HTTPS_HOST = "FLEETSYNC_HTTPS_HOST"
ENV_HTTPS_PORT = "FLEETSYNC_HTTPS_PORT"
ENV_SSH_USER = "FLEETSYNC_SSH_USER"
ENV_API_TOKEN = "FLEETSYNC_API_TOKEN"
ENV_CONNECT_TIMEOUT = "FLEETSYNC_CONNECT_TIMEOUT"
ENV_TIMEOUT = "FLEETSYNC_TIMEOUT"
