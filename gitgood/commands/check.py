"""Check command — show how a repository argument would be interpreted."""

from __future__ import annotations

import sys

import click

from gitgood.errors import InvalidArgumentError
from gitgood.namespace import is_valid_repo_path, sanitize_arg


@click.command()
@click.argument("repo_arg")
def check(repo_arg: str) -> None:
    """Validate REPO_ARG the way git service requests are validated."""
    try:
        repo_path = sanitize_arg(repo_arg)
    except InvalidArgumentError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)

    if not is_valid_repo_path(repo_path):
        click.echo(f"Error: invalid repository owner or name: {repo_path}", err=True)
        sys.exit(1)

    click.echo(repo_path)
