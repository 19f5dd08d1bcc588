"""Repository provisioning.

Creates ``<repos_dir>/<owner>/<name>`` and initializes an empty git
repository in it. Provisioning happens once per identifier; this module
never renames or deletes a repository directory.
"""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
from pathlib import Path

from pydantic import ValidationError

from gitgood.constants import DEFAULT_DIR_MODE, GIT_BINARY, TIMEOUT_GIT_INIT
from gitgood.errors import InvalidArgumentError, RepositoryError
from gitgood.jail import PathJail
from gitgood.models import RepositoryIdentifier

logger = logging.getLogger(__name__)

# Minimal allowed env vars for ``git init``
ENV_ALLOWED: frozenset = frozenset({
    "PATH",
    "LANG",
    "LC_ALL",
    "LC_CTYPE",
    "TZ",
})


def build_init_env() -> dict[str, str]:
    """Build a sanitized environment for ``git init``.

    Starts from an empty env and only copies allowed variables. HOME points
    nowhere so user-level git config and templates are ignored.
    """
    clean: dict[str, str] = {}
    for key in ENV_ALLOWED:
        val = os.environ.get(key)
        if val is not None:
            clean[key] = val

    if "PATH" not in clean:
        clean["PATH"] = "/usr/local/bin:/usr/bin:/bin"

    clean["HOME"] = os.devnull
    clean["GIT_CONFIG_NOSYSTEM"] = "1"
    return clean


class RepositoryManager:
    """Provisions repositories beneath a jail root.

    Args:
        repos_dir: Jail root holding ``<owner>/<name>`` directories.
    """

    def __init__(self, repos_dir: str | Path) -> None:
        self._jail = PathJail(repos_dir)

    @property
    def jail(self) -> PathJail:
        return self._jail

    def path_for(self, identifier: RepositoryIdentifier) -> str:
        """Host directory of *identifier*."""
        return self._jail.resolve(identifier.path)

    def exists(self, identifier: RepositoryIdentifier) -> bool:
        """Check whether *identifier* has already been provisioned."""
        return os.path.isdir(os.path.join(self.path_for(identifier), ".git"))

    def create(self, owner: str, name: str) -> str:
        """Create and initialize the repository ``owner/name``.

        Args:
            owner: Repository owner.
            name: Repository name.

        Returns:
            Host path of the new repository.

        Raises:
            InvalidArgumentError: If *owner* or *name* is malformed.
            RepositoryError: If the repository exists or ``git init`` fails.
        """
        try:
            identifier = RepositoryIdentifier(owner=owner, name=name)
        except ValidationError as exc:
            raise InvalidArgumentError("invalid repository owner or name") from exc
        repo_dir = self.path_for(identifier)

        if self.exists(identifier):
            raise RepositoryError(f"repository already exists: {identifier}")

        git = shutil.which(GIT_BINARY)
        if git is None:
            raise RepositoryError(f"{GIT_BINARY} executable not found")

        try:
            os.makedirs(repo_dir, mode=DEFAULT_DIR_MODE, exist_ok=True)
            result = subprocess.run(
                [git, "init", "--quiet", repo_dir],
                capture_output=True,
                text=True,
                check=False,
                timeout=TIMEOUT_GIT_INIT,
                env=build_init_env(),
            )
        except (OSError, subprocess.TimeoutExpired) as exc:
            logger.error(f"Failed to initialize {repo_dir}: {exc}")
            raise RepositoryError(f"could not create repository {identifier}") from exc

        if result.returncode != 0:
            logger.error(f"git init failed for {repo_dir}: {result.stderr.strip()}")
            cause = subprocess.CalledProcessError(
                result.returncode, result.args, output=result.stdout, stderr=result.stderr,
            )
            raise RepositoryError(f"could not create repository {identifier}") from cause

        logger.info(f"Created repository {identifier}")
        return repo_dir
