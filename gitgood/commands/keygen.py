"""Keygen command — create the SSH host key."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Optional

import click

from gitgood.constants import HOST_KEY_BITS, get_host_key_path
from gitgood.server import generate_host_key
from gitgood.utils import format_kv, log_error, log_info, log_section, log_warn


@click.command()
@click.option("--host-key", type=click.Path(path_type=Path), default=None, help="Where to write the key.")
@click.option("--bits", type=int, default=HOST_KEY_BITS, show_default=True, help="RSA key size.")
@click.option("--force", is_flag=True, help="Overwrite an existing key.")
def keygen(host_key: Optional[Path], bits: int, force: bool) -> None:
    """Generate an RSA host key for the server."""
    path = host_key or get_host_key_path()
    if path.exists():
        if not force:
            log_error(f"Host key already exists: {path} (use --force to replace it)")
            sys.exit(1)
        log_warn(f"Replacing existing host key: {path}")

    key = generate_host_key(path, bits)
    log_section("Generated host key")
    log_info(format_kv("path", str(path)))
    log_info(format_kv("bits", str(bits)))
    log_info(format_kv("fingerprint", key.get_fingerprint().hex()))
