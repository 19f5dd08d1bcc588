"""Create command — provision a repository from the host side."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Optional

import click

from gitgood.constants import get_repos_dir
from gitgood.errors import InvalidArgumentError, PathEscapeError, RepositoryError
from gitgood.models import RepositoryIdentifier
from gitgood.repository import RepositoryManager
from gitgood.utils import format_kv, log_error, log_info


@click.command()
@click.argument("repository")
@click.option("--repos-dir", type=click.Path(path_type=Path), default=None, help="Repository root.")
def create(repository: str, repos_dir: Optional[Path]) -> None:
    """Create an empty repository OWNER/NAME."""
    try:
        identifier = RepositoryIdentifier.parse(repository)
    except InvalidArgumentError as exc:
        log_error(f"Invalid repository '{repository}': {exc}")
        sys.exit(1)

    manager = RepositoryManager(repos_dir or get_repos_dir())
    try:
        path = manager.create(identifier.owner, identifier.name)
    except (InvalidArgumentError, PathEscapeError, RepositoryError) as exc:
        log_error(str(exc))
        sys.exit(1)

    log_info(f"Created repo {identifier}.")
    log_info(format_kv("path", path))
