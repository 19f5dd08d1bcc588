"""Serve command — run the SSH server."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Optional

import click
import paramiko

from gitgood.errors import InvalidArgumentError
from gitgood.logging_config import setup_logging
from gitgood.models import ServerSettings
from gitgood.server import GitGoodServer, load_host_key
from gitgood.utils import log_debug, log_error


@click.command()
@click.option("--host", default=None, help="Listen address (default: $GITGOOD_HOST or 0.0.0.0).")
@click.option("--port", type=int, default=None, help="Listen port (default: $GITGOOD_PORT or 2222).")
@click.option("--repos-dir", type=click.Path(path_type=Path), default=None, help="Repository root.")
@click.option("--sftp-root", type=click.Path(path_type=Path), default=None, help="SFTP root (default: $GITGOOD_SFTP_ROOT or ~/.gitgood/files).")
@click.option("--host-key", type=click.Path(path_type=Path), default=None, help="SSH host private key.")
@click.option("--log-level", default=None, help="DEBUG, INFO, WARNING or ERROR (default: $LOG_LEVEL).")
@click.option("--log-format", type=click.Choice(["text", "json"]), default=None, help="Log output format.")
def serve(
    host: Optional[str],
    port: Optional[int],
    repos_dir: Optional[Path],
    sftp_root: Optional[Path],
    host_key: Optional[Path],
    log_level: Optional[str],
    log_format: Optional[str],
) -> None:
    """Run the SSH server until interrupted."""
    setup_logging(level=log_level, format_type=log_format)

    settings = ServerSettings.from_env(
        host=host,
        port=port,
        repos_dir=repos_dir,
        sftp_root=sftp_root,
        host_key_path=host_key,
    )
    log_debug(f"Settings: {settings.model_dump(mode='json')}")

    try:
        key = load_host_key(settings.host_key_path)
    except (OSError, paramiko.SSHException) as exc:
        log_error(f"Failed to load host key: {exc}")
        log_error("Generate one with 'gitgood keygen'")
        sys.exit(1)

    try:
        server = GitGoodServer(settings, key)
    except InvalidArgumentError as exc:
        log_error(str(exc))
        log_error("Point --sftp-root and --repos-dir at separate directories")
        sys.exit(1)

    try:
        server.serve_forever()
    except KeyboardInterrupt:
        pass
    finally:
        server.shutdown()
