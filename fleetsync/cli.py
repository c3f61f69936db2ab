"""FleetSync CLI using Click."""

from __future__ import annotations

import logging
import sys
from importlib.metadata import version
from pathlib import Path

import click

from .cli_types import (
    EndpointAddArgs,
    LogsArgs,
    ServerArgs,
    SettingsSetArgs,
    TlsUploadPemArgs,
    VaultUploadArgs,
)
from .commands import (
    cmd_config_import,
    cmd_config_show,
    cmd_endpoint_add,
    cmd_endpoint_list,
    cmd_endpoint_remove,
    cmd_endpoint_set_active,
    cmd_logs,
    cmd_pull,
    cmd_push,
    cmd_serve,
    cmd_settings_set,
    cmd_settings_show,
    cmd_tls_reload,
    cmd_tls_status,
    cmd_tls_upload_pem,
    cmd_tls_upload_pfx,
    cmd_vault_remove,
    cmd_vault_status,
    cmd_vault_upload,
)
from .exceptions import CommandFailureError, FleetSyncError, UserError
from .registry import Role
from .service import Service, build_server, build_service
from .settings import Settings

# Module logger
logger = logging.getLogger("fleetsync")


def setup_logging(debug: bool = False) -> None:
    """Configure logging for the CLI."""
    level = logging.DEBUG if debug else logging.WARNING
    logger.setLevel(level)
    if any(
        isinstance(h, logging.StreamHandler) and getattr(h, "stream", None) is sys.stderr
        for h in logger.handlers
    ):
        return
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
    logger.addHandler(handler)


def load_settings(ctx: click.Context) -> Settings:
    data_dir = ctx.obj.get("data_dir")
    return Settings.from_env(data_dir=Path(data_dir) if data_dir else None)


def load_service(ctx: click.Context) -> Service:
    return build_service(load_settings(ctx))


def json_option(func):
    """Decorator adding --json to a command."""
    return click.option(
        "--json",
        "json_output",
        is_flag=True,
        help="Emit machine-readable JSON to stdout.",
    )(func)


def server_options(func):
    """Decorator adding the options that ask a running server to reload."""
    func = click.option(
        "--insecure",
        is_flag=True,
        help="Skip certificate verification when contacting --server.",
    )(func)
    func = click.option(
        "--server",
        metavar="URL",
        help="Base URL of a running fleetsync server to reload, e.g. https://ops:8443.",
    )(func)
    return func


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(version=version("fleetsync"), prog_name="fleetsync")
@click.option(
    "--debug",
    "-d",
    is_flag=True,
    help="Enable debug logging to stderr.",
)
@click.option(
    "--data-dir",
    type=click.Path(file_okay=False),
    help="FleetSync data directory (default: $FLEETSYNC_DATA_DIR or ~/.fleetsync).",
)
@click.pass_context
def cli(ctx: click.Context, debug: bool, data_dir: str | None):
    """FleetSync: pull/push a KEY=VALUE config across source and target hosts via SSH."""
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug
    ctx.obj["data_dir"] = data_dir
    setup_logging(debug=debug)


# Credential vault


@cli.command("vault-status")
@json_option
@click.pass_context
def vault_status(ctx: click.Context, json_output: bool):
    """Show whether the SSH key pair is stored."""
    cmd_vault_status(load_service(ctx), json_output=json_output)


@cli.command("vault-upload")
@click.option(
    "--private",
    "private_path",
    required=True,
    type=click.Path(dir_okay=False),
    help="SSH private key file to encrypt and store.",
)
@click.option(
    "--public",
    "public_path",
    type=click.Path(dir_okay=False),
    help="Matching public key file (stored as-is).",
)
@json_option
@click.pass_context
def vault_upload(ctx: click.Context, private_path: str, public_path: str | None, json_output: bool):
    """Store the SSH key used to reach every endpoint."""
    args = VaultUploadArgs(private=private_path, public=public_path, json=json_output)
    cmd_vault_upload(load_service(ctx), args)


@cli.command("vault-remove")
@click.option(
    "--confirm",
    is_flag=True,
    help="Actually delete the key pair (without this, shows dry-run).",
)
@click.pass_context
def vault_remove(ctx: click.Context, confirm: bool):
    """Delete the stored SSH key pair."""
    cmd_vault_remove(load_service(ctx), confirm=confirm)


# Endpoint registry


@cli.command("endpoint-add")
@click.argument("name")
@click.argument("host")
@click.option(
    "--role",
    required=True,
    type=click.Choice([r.value for r in Role], case_sensitive=False),
    help="source: pulled from; target: pushed to.",
)
@click.option("--port", type=int, default=22, show_default=True, help="SSH port.")
@click.option("--inactive", is_flag=True, help="Register but skip during pull/push.")
@json_option
@click.pass_context
def endpoint_add(
    ctx: click.Context,
    name: str,
    host: str,
    role: str,
    port: int,
    inactive: bool,
    json_output: bool,
):
    """Register a source or target endpoint."""
    args = EndpointAddArgs(
        name=name,
        host=host,
        role=role.lower(),
        port=port,
        inactive=inactive,
        json=json_output,
    )
    cmd_endpoint_add(load_service(ctx), args)


@cli.command("endpoint-list")
@click.option(
    "--role",
    type=click.Choice([r.value for r in Role], case_sensitive=False),
    help="Only show endpoints with this role.",
)
@click.option("--all", "include_inactive", is_flag=True, help="Include inactive endpoints.")
@json_option
@click.pass_context
def endpoint_list(ctx: click.Context, role: str | None, include_inactive: bool, json_output: bool):
    """List endpoints in the order pull/push visit them."""
    cmd_endpoint_list(
        load_service(ctx),
        role=role.lower() if role else None,
        include_inactive=include_inactive,
        json_output=json_output,
    )


@cli.command("endpoint-remove")
@click.argument("endpoint_id", metavar="ID", type=int)
@click.pass_context
def endpoint_remove(ctx: click.Context, endpoint_id: int):
    """Remove an endpoint by id."""
    cmd_endpoint_remove(load_service(ctx), endpoint_id)


@cli.command("endpoint-enable")
@click.argument("endpoint_id", metavar="ID", type=int)
@click.pass_context
def endpoint_enable(ctx: click.Context, endpoint_id: int):
    """Include an endpoint in pull/push again."""
    cmd_endpoint_set_active(load_service(ctx), endpoint_id, True)


@cli.command("endpoint-disable")
@click.argument("endpoint_id", metavar="ID", type=int)
@click.pass_context
def endpoint_disable(ctx: click.Context, endpoint_id: int):
    """Keep an endpoint registered but skip it during pull/push."""
    cmd_endpoint_set_active(load_service(ctx), endpoint_id, False)


# Sync paths and local config


@cli.command("settings-show")
@json_option
@click.pass_context
def settings_show(ctx: click.Context, json_output: bool):
    """Show the remote source and destination paths."""
    cmd_settings_show(load_service(ctx), json_output=json_output)


@cli.command("settings-set")
@click.option("--source-path", help="Absolute path of the file read from sources.")
@click.option("--destination-path", help="Absolute path of the file written on targets.")
@json_option
@click.pass_context
def settings_set(
    ctx: click.Context,
    source_path: str | None,
    destination_path: str | None,
    json_output: bool,
):
    """Update the remote source and/or destination path."""
    if source_path is None and destination_path is None:
        raise click.UsageError("Give --source-path and/or --destination-path")
    args = SettingsSetArgs(
        source_path=source_path,
        destination_path=destination_path,
        json=json_output,
    )
    cmd_settings_set(load_service(ctx), args)


@cli.command("config-show")
@json_option
@click.pass_context
def config_show(ctx: click.Context, json_output: bool):
    """Print the local config snapshot."""
    cmd_config_show(load_service(ctx), json_output=json_output)


@cli.command("config-import")
@click.argument("file", type=click.Path(dir_okay=False))
@click.pass_context
def config_import(ctx: click.Context, file: str):
    """Replace the local config snapshot with a KEY=VALUE file."""
    cmd_config_import(load_service(ctx), file)


# Sync


@cli.command("pull")
@json_option
@click.pass_context
def pull(ctx: click.Context, json_output: bool):
    """Fetch the config from the first reachable source and store it locally."""
    cmd_pull(load_service(ctx), json_output=json_output)


@cli.command("push")
@json_option
@click.pass_context
def push(ctx: click.Context, json_output: bool):
    """Push the local config to every target.

    Per-target failures do not change the exit code; see 'fleetsync logs'.
    """
    cmd_push(load_service(ctx), json_output=json_output)


@cli.command("logs")
@click.option(
    "--limit",
    type=int,
    default=None,
    help="Maximum entries to show (default: 200).",
)
@json_option
@click.pass_context
def logs(ctx: click.Context, limit: int | None, json_output: bool):
    """Show the audit log, newest first."""
    cmd_logs(load_service(ctx), LogsArgs(limit=limit, json=json_output))


# TLS


@cli.command("tls-status")
@json_option
@click.pass_context
def tls_status(ctx: click.Context, json_output: bool):
    """Show which certificate bundle files exist."""
    cmd_tls_status(load_service(ctx), json_output=json_output)


@cli.command("tls-upload-pfx")
@click.argument("file", type=click.Path(dir_okay=False))
@server_options
@click.pass_context
def tls_upload_pfx(ctx: click.Context, file: str, server: str | None, insecure: bool):
    """Store a PKCS#12 certificate bundle.

    The passphrase, if any, is read from FLEETSYNC_TLS_PASSPHRASE.
    """
    cmd_tls_upload_pfx(load_service(ctx), file, ServerArgs(server=server, insecure=insecure))


@cli.command("tls-upload-pem")
@click.option("--key", required=True, type=click.Path(dir_okay=False), help="PEM private key.")
@click.option("--cert", required=True, type=click.Path(dir_okay=False), help="PEM certificate.")
@click.option("--chain", type=click.Path(dir_okay=False), help="PEM intermediate chain.")
@server_options
@click.pass_context
def tls_upload_pem(
    ctx: click.Context,
    key: str,
    cert: str,
    chain: str | None,
    server: str | None,
    insecure: bool,
):
    """Store a PEM private key and certificate (plus optional chain)."""
    args = TlsUploadPemArgs(
        key=key,
        cert=cert,
        chain=chain,
        server=ServerArgs(server=server, insecure=insecure),
    )
    cmd_tls_upload_pem(load_service(ctx), args)


@cli.command("tls-reload")
@server_options
@click.pass_context
def tls_reload(ctx: click.Context, server: str | None, insecure: bool):
    """Validate the stored bundle and ask a running server to reload it."""
    cmd_tls_reload(load_service(ctx), ServerArgs(server=server, insecure=insecure))


@cli.command("serve")
@click.pass_context
def serve(ctx: click.Context):
    """Serve the operator API over HTTPS until interrupted.

    Needs a certificate bundle (see tls-upload-pfx / tls-upload-pem).
    """
    if not ctx.obj.get("debug"):
        logger.setLevel(logging.INFO)
    cmd_serve(build_server(load_settings(ctx)))


def main():
    """Main entry point for the CLI."""
    try:
        cli()
    except CommandFailureError as e:
        # Command already printed its error message, just exit
        sys.exit(e.rc)
    except UserError as e:
        click.echo(f"ERROR: {e}", err=True)
        sys.exit(e.rc)
    except FleetSyncError as e:
        click.echo(f"ERROR: {e}", err=True)
        sys.exit(2)
    except KeyboardInterrupt:
        click.echo("ERROR: Interrupted", err=True)
        sys.exit(130)
