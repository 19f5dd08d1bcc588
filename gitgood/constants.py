"""Configuration defaults for gitgood.

Directory getters read the environment at call time so tests (and
operators) can point a process at a different home without re-importing.
"""

from __future__ import annotations

import os
from pathlib import Path


def _env_int(key: str, default: int) -> int:
    """Read an integer from an environment variable, returning default on parse failure."""
    try:
        return int(os.environ.get(key, str(default)))
    except (ValueError, TypeError):
        return default


# ============================================================================
# Directory & Path Constants
# ============================================================================


def get_gitgood_home() -> Path:
    """Get the base directory for server state.

    Respects GITGOOD_HOME environment variable override.
    Defaults to ~/.gitgood if not set.

    Returns:
        Path to the gitgood home directory
    """
    home_str = os.environ.get("GITGOOD_HOME")
    if home_str:
        return Path(home_str)
    return Path.home() / ".gitgood"


def get_repos_dir() -> Path:
    """Get the jail root for hosted git repositories.

    Returns:
        Path to repos directory ($GITGOOD_REPOS_DIR or $GITGOOD_HOME/repos)
    """
    repos_str = os.environ.get("GITGOOD_REPOS_DIR")
    if repos_str:
        return Path(repos_str)
    return get_gitgood_home() / "repos"


def get_sftp_root() -> Path:
    """Get the jail root for SFTP sessions.

    Kept apart from the repository directory: SFTP clients must never be
    able to write git hooks or config that the service commands would run.

    Returns:
        Path to SFTP root ($GITGOOD_SFTP_ROOT or $GITGOOD_HOME/files)
    """
    root_str = os.environ.get("GITGOOD_SFTP_ROOT")
    if root_str:
        return Path(root_str)
    return get_gitgood_home() / "files"


def get_host_key_path() -> Path:
    """Get the path of the SSH host private key."""
    key_str = os.environ.get("GITGOOD_HOST_KEY")
    if key_str:
        return Path(key_str)
    return get_gitgood_home() / "host_key"


def get_listen_host() -> str:
    """Get the address the SSH server binds to."""
    return os.environ.get("GITGOOD_HOST", "0.0.0.0")


def get_listen_port() -> int:
    """Get the port the SSH server binds to."""
    return _env_int("GITGOOD_PORT", DEFAULT_PORT)


# ============================================================================
# Server Identity
# ============================================================================

SERVER_NAME: str = "Git Good"
"""Name shown in the SSH version banner and the shell greeting."""

SERVER_VERSION: str = "v.0.0.1"
"""Version shown next to SERVER_NAME."""

DEFAULT_PORT: int = 2222
"""Default SSH listen port."""

HOST_KEY_BITS: int = 3072
"""RSA modulus size for generated host keys."""

# ============================================================================
# Git Service Constants
# ============================================================================

GIT_UPLOAD_PACK: str = "git-upload-pack"
GIT_RECEIVE_PACK: str = "git-receive-pack"

GIT_SERVICE_COMMANDS: frozenset[str] = frozenset({GIT_UPLOAD_PACK, GIT_RECEIVE_PACK})
"""The only executables the command dispatcher may ever spawn."""

GIT_BINARY: str = "git"
"""Executable used for ``git init`` during repository provisioning."""

TIMEOUT_GIT_INIT: int = 30
"""Timeout in seconds for ``git init``."""

# ============================================================================
# Namespace Constants
# ============================================================================

COMPONENT_MAX_LENGTH: int = 100
"""Maximum length of a repository owner or name."""

# ============================================================================
# Filesystem Constants
# ============================================================================

DEFAULT_DIR_MODE: int = 0o755
"""Mode for directories created on behalf of clients."""

DEFAULT_FILE_MODE: int = 0o644
"""Mode for files created without explicit permissions."""

LIST_PAGE_SIZE: int = 100
"""Default number of entries returned per listing page."""

RELAY_CHUNK_SIZE: int = 32 * 1024
"""Buffer size for stream relays between sessions and subprocesses."""

# ============================================================================
# Shell Messages
# ============================================================================

SHELL_PROMPT: str = "> "

CREATE_USAGE: str = "Usage:\ncreate (USERNAME/)REPONAME"

SHELL_USAGE: str = (
    "Unknown command. Available commands:\n"
    "  create (USERNAME/)REPONAME\n"
    "  exit"
)
