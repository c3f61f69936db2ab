"""FleetSync utility functions."""

from __future__ import annotations

import datetime as dt
import ipaddress
import os
import re
import tempfile
from pathlib import Path

from .constants import DATA_DIR_NAME, ENV_DATA_DIR


def utc_now_iso() -> str:
    """Return current UTC time in ISO format without microseconds."""
    return dt.datetime.now(dt.UTC).replace(microsecond=0).isoformat()


def ensure_parent_dir(p: Path) -> None:
    """Create parent directory of path if it doesn't exist."""
    p.parent.mkdir(parents=True, exist_ok=True)


def ensure_private_dir(p: Path) -> Path:
    """Create directory p (owner-only access) if needed and return it."""
    p.mkdir(parents=True, exist_ok=True, mode=0o700)
    os.chmod(p, 0o700)
    return p


def write_private_file(path: Path, data: bytes) -> None:
    """Atomically replace path with data, readable by the owner only.

    Writes to a temp file in the same directory, then renames it into place,
    so readers never observe a half-written file.
    """
    ensure_parent_dir(path)
    fd, temp_path = tempfile.mkstemp(dir=path.parent, prefix=".tmp_")
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
        os.chmod(temp_path, 0o600)
        Path(temp_path).replace(path)
    except Exception:
        Path(temp_path).unlink(missing_ok=True)
        raise


def default_data_dir() -> Path:
    """Return the data directory (FLEETSYNC_DATA_DIR or ~/.fleetsync)."""
    env_dir = os.environ.get(ENV_DATA_DIR)
    if env_dir:
        return Path(env_dir)
    home = Path(os.path.expanduser("~"))
    return home / DATA_DIR_NAME


_HOSTNAME_RE = re.compile(
    r"^(?=.{1,253}$)([A-Za-z0-9](?:[A-Za-z0-9-]{0,61}[A-Za-z0-9])?)"
    r"(\.[A-Za-z0-9](?:[A-Za-z0-9-]{0,61}[A-Za-z0-9])?)*$"
)


def looks_like_host(host_arg: str) -> bool:
    """Return True if host_arg looks like a hostname or IP address."""
    if not host_arg:
        return False
    host = host_arg
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    try:
        ipaddress.ip_address(host)
        return True
    except ValueError:
        return _HOSTNAME_RE.match(host) is not None
