"""FleetSync remote file transport over the OpenSSH client.

A session authenticates with the vault's private key, written to a private
temp directory for the lifetime of the session only. Remote file operations
are small /bin/sh scripts, so any host with sshd and a POSIX shell works.
"""

from __future__ import annotations

import logging
import os
import shlex
import shutil
import subprocess
import tempfile
import time
from pathlib import Path
from typing import Protocol

from .constants import (
    DEFAULT_CONNECT_TIMEOUT_S,
    DEFAULT_TIMEOUT_S,
    SSH_ERROR_EXIT_CODE,
    SSH_TIMEOUT_EXIT_CODE,
)
from .exceptions import (
    AuthenticationFailed,
    EndpointUnreachable,
    FleetSyncError,
    RemoteReadFailed,
    RemoteWriteFailed,
)

logger = logging.getLogger("fleetsync")


class Session(Protocol):
    """An open connection to one endpoint."""

    def read_file(self, path: str) -> bytes: ...

    def write_file(self, data: bytes, path: str) -> None: ...

    def rename(self, src: str, dst: str) -> None: ...

    def close(self) -> None: ...

    def __enter__(self) -> Session: ...

    def __exit__(self, *exc_info: object) -> None: ...


class Transport(Protocol):
    """Opens sessions to remote endpoints."""

    def connect(self, host: str, port: int, username: str, private_key: bytes) -> Session: ...


def run_ssh(
    target: str,
    remote_cmd: str,
    *,
    ssh_options: list[str],
    input_bytes: bytes | None = None,
    timeout_s: int = DEFAULT_TIMEOUT_S,
) -> tuple[int, bytes, str]:
    """
    Executes: ssh [opts...] target remote_cmd

    Returns (returncode, stdout bytes, stderr text). Does NOT raise on non-zero rc.
    """
    cmd = ["ssh", "-o", "BatchMode=yes"] + ssh_options + [target, remote_cmd]
    logger.debug("SSH command: ssh %s %s '<script>'", " ".join(ssh_options), target)

    start_time = time.time()
    try:
        p = subprocess.run(
            cmd,
            input=input_bytes,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            timeout=timeout_s,
            check=False,
        )
    except subprocess.TimeoutExpired as e:
        elapsed = time.time() - start_time
        logger.debug("SSH timeout after %.2fs", elapsed)
        return (
            SSH_TIMEOUT_EXIT_CODE,
            e.stdout or b"",
            e.stderr.decode("utf-8", "replace") if e.stderr else "ssh timeout",
        )
    except FileNotFoundError:
        raise FleetSyncError("ssh binary not found on PATH. Install OpenSSH client (ssh).")

    elapsed = time.time() - start_time
    logger.debug("SSH completed in %.2fs (rc=%d)", elapsed, p.returncode)
    return p.returncode, p.stdout, p.stderr.decode("utf-8", "replace")


def build_ssh_options(
    *,
    port: int,
    identity_file: Path,
    connect_timeout: int,
    extra: list[str] | None = None,
) -> list[str]:
    """Build SSH options for a key-authenticated session."""
    opts: list[str] = ["-p", str(port), "-i", str(identity_file)]
    opts += ["-o", "IdentitiesOnly=yes"]
    opts += ["-o", f"ConnectTimeout={connect_timeout}"]
    # Fail fast rather than hang on unknown host key prompts.
    opts += ["-o", "StrictHostKeyChecking=accept-new"]
    if extra:
        for item in extra:
            opts += shlex.split(item)
    return opts


def remote_read_file_script(path: str) -> str:
    """Generate remote shell script to print a file."""
    script = f"""
set -eu
fp={shlex.quote(path)}
cat "$fp"
"""
    return "sh -c " + shlex.quote(script.strip("\n"))


def remote_write_file_script(path: str) -> str:
    """Generate remote shell script writing stdin to path."""
    # The parent directory must already exist; only the file is created.
    script = f"""
set -eu
fp={shlex.quote(path)}
umask 022
cat > "$fp"
"""
    return "sh -c " + shlex.quote(script.strip("\n"))


def remote_rename_script(src: str, dst: str) -> str:
    """Generate remote shell script for an atomic rename."""
    script = f"""
set -eu
mv -f {shlex.quote(src)} {shlex.quote(dst)}
"""
    return "sh -c " + shlex.quote(script.strip("\n"))


def _connect_error(host: str, rc: int, err: str) -> EndpointUnreachable | AuthenticationFailed:
    detail = err.strip() or f"ssh exited with rc={rc}"
    if rc == SSH_ERROR_EXIT_CODE and "Permission denied" in err:
        return AuthenticationFailed(host, detail)
    return EndpointUnreachable(host, detail)


class SshSession:
    """Key-authenticated session to a single host."""

    def __init__(self, host: str, target: str, ssh_options: list[str], key_dir: Path, timeout: int):
        self.host = host
        self.target = target
        self.ssh_options = ssh_options
        self.timeout = timeout
        self._key_dir: Path | None = key_dir

    def __enter__(self) -> SshSession:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _run(self, remote_cmd: str, input_bytes: bytes | None = None) -> tuple[int, bytes, str]:
        if self._key_dir is None:
            raise FleetSyncError(f"Session to {self.host} is closed")
        return run_ssh(
            self.target,
            remote_cmd,
            ssh_options=self.ssh_options,
            input_bytes=input_bytes,
            timeout_s=self.timeout,
        )

    def probe(self) -> None:
        """Check that the host is reachable and accepts the key.

        Raises:
            AuthenticationFailed: If the key is rejected
            EndpointUnreachable: On any other connection failure
        """
        rc, _, err = self._run("true")
        if rc != 0:
            raise _connect_error(self.host, rc, err)

    def read_file(self, path: str) -> bytes:
        rc, out, err = self._run(remote_read_file_script(path))
        if rc == SSH_ERROR_EXIT_CODE or rc == SSH_TIMEOUT_EXIT_CODE:
            raise _connect_error(self.host, rc, err)
        if rc != 0:
            raise RemoteReadFailed(self.host, f"cannot read {path}: {err.strip() or f'rc={rc}'}")
        return out

    def write_file(self, data: bytes, path: str) -> None:
        rc, _, err = self._run(remote_write_file_script(path), input_bytes=data)
        if rc != 0:
            raise RemoteWriteFailed(self.host, f"cannot write {path}: {err.strip() or f'rc={rc}'}")

    def rename(self, src: str, dst: str) -> None:
        rc, _, err = self._run(remote_rename_script(src, dst))
        if rc != 0:
            raise RemoteWriteFailed(
                self.host, f"cannot rename {src} -> {dst}: {err.strip() or f'rc={rc}'}"
            )

    def close(self) -> None:
        """Remove the on-disk key copy. Safe to call more than once."""
        if self._key_dir is not None:
            shutil.rmtree(self._key_dir, ignore_errors=True)
            self._key_dir = None


class SshTransport:
    """Transport that shells out to the local OpenSSH client."""

    def __init__(
        self,
        *,
        connect_timeout: int = DEFAULT_CONNECT_TIMEOUT_S,
        timeout: int = DEFAULT_TIMEOUT_S,
        ssh_option: list[str] | None = None,
    ):
        self.connect_timeout = connect_timeout
        self.timeout = timeout
        self.ssh_option = ssh_option

    def connect(self, host: str, port: int, username: str, private_key: bytes) -> SshSession:
        key_dir = Path(tempfile.mkdtemp(prefix="fleetsync-key-"))
        try:
            key_path = key_dir / "id"
            fd = os.open(key_path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
            with os.fdopen(fd, "wb") as f:
                f.write(private_key)
                # OpenSSH refuses PEM keys without a final newline.
                if not private_key.endswith(b"\n"):
                    f.write(b"\n")
            opts = build_ssh_options(
                port=port,
                identity_file=key_path,
                connect_timeout=self.connect_timeout,
                extra=self.ssh_option,
            )
            session = SshSession(host, f"{username}@{host}", opts, key_dir, self.timeout)
        except BaseException:
            shutil.rmtree(key_dir, ignore_errors=True)
            raise
        try:
            session.probe()
        except BaseException:
            session.close()
            raise
        return session
