"""Process configuration for FleetSync, read from the environment."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from .constants import (
    CERTS_DIR_NAME,
    DB_FILE_NAME,
    DEFAULT_CONNECT_TIMEOUT_S,
    DEFAULT_HTTPS_HOST,
    DEFAULT_HTTPS_PORT,
    DEFAULT_SSH_USER,
    DEFAULT_TIMEOUT_S,
    ENV_API_TOKEN,
    ENV_CONNECT_TIMEOUT,
    ENV_DATA_DIR,
    ENV_HTTPS_HOST,
    ENV_HTTPS_PORT,
    ENV_KEYS_SECRET,
    ENV_SSH_USER,
    ENV_TIMEOUT,
    ENV_TLS_CERT_DIR,
    ENV_TLS_PASSPHRASE,
    SECRETS_DIR_NAME,
)
from .exceptions import UserError
from .utils import default_data_dir


def _env_int(environ: Mapping[str, str], name: str, default: int) -> int:
    raw = environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise UserError(f"{name} must be an integer, got: {raw!r}")


@dataclass
class Settings:
    """Runtime settings shared by the CLI, the engine and the listener."""

    data_dir: Path
    tls_dir: Path
    keys_secret: str | None = None
    tls_passphrase: str | None = None
    https_host: str = DEFAULT_HTTPS_HOST
    https_port: int = DEFAULT_HTTPS_PORT
    ssh_user: str = DEFAULT_SSH_USER
    api_token: str | None = None
    connect_timeout: int = DEFAULT_CONNECT_TIMEOUT_S
    timeout: int = DEFAULT_TIMEOUT_S

    @property
    def db_path(self) -> Path:
        return self.data_dir / DB_FILE_NAME

    @property
    def secrets_dir(self) -> Path:
        return self.data_dir / SECRETS_DIR_NAME

    @classmethod
    def from_env(
        cls,
        environ: Mapping[str, str] | None = None,
        *,
        data_dir: Path | None = None,
    ) -> Settings:
        """Build settings from environment variables.

        Args:
            environ: Mapping to read from (defaults to os.environ)
            data_dir: Explicit data directory, overriding FLEETSYNC_DATA_DIR

        Raises:
            UserError: If a numeric variable is not an integer
        """
        env = os.environ if environ is None else environ
        if data_dir is None:
            data_dir = Path(env[ENV_DATA_DIR]) if env.get(ENV_DATA_DIR) else default_data_dir()
        tls_dir_raw = env.get(ENV_TLS_CERT_DIR)
        tls_dir = Path(tls_dir_raw) if tls_dir_raw else data_dir / CERTS_DIR_NAME
        return cls(
            data_dir=data_dir,
            tls_dir=tls_dir,
            keys_secret=env.get(ENV_KEYS_SECRET) or None,
            tls_passphrase=env.get(ENV_TLS_PASSPHRASE) or None,
            https_host=env.get(ENV_HTTPS_HOST) or DEFAULT_HTTPS_HOST,
            https_port=_env_int(env, ENV_HTTPS_PORT, DEFAULT_HTTPS_PORT),
            ssh_user=env.get(ENV_SSH_USER) or DEFAULT_SSH_USER,
            api_token=env.get(ENV_API_TOKEN) or None,
            connect_timeout=_env_int(env, ENV_CONNECT_TIMEOUT, DEFAULT_CONNECT_TIMEOUT_S),
            timeout=_env_int(env, ENV_TIMEOUT, DEFAULT_TIMEOUT_S),
        )
