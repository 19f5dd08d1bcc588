"""Console output helpers for the gitgood CLI.

Server-side logging lives in :mod:`gitgood.logging_config`; these helpers
print operator-facing messages through click, which strips styling when
the stream is not a terminal.
"""

from __future__ import annotations

import os

import click

DEBUG_ENV = "GITGOOD_DEBUG"


def log_info(msg: str) -> None:
    click.echo(msg)


def log_debug(msg: str) -> None:
    """Print *msg* only when ``$GITGOOD_DEBUG`` is ``1``."""
    if os.environ.get(DEBUG_ENV) == "1":
        click.secho(f"DEBUG: {msg}", dim=True)


def log_warn(msg: str) -> None:
    click.secho(f"Warning: {msg}", fg="yellow", err=True)


def log_error(msg: str) -> None:
    click.secho(f"Error: {msg}", fg="red", err=True)


def log_section(title: str) -> None:
    """Print a bold section header preceded by a blank line."""
    click.echo()
    click.secho(title, bold=True)


def format_kv(key: str, value: object) -> str:
    """Render one indented ``key: value`` line for a details block."""
    return f"  {key}: {value}"
