"""Repository namespace validation.

Pure string checks for repository owners, names and the ``owner/name``
argument that clients pass to the git service commands. Nothing here
touches the filesystem.

Convention:
- ``is_valid_*`` predicates return a bool and never raise.
- ``sanitize_arg`` raises ``InvalidArgumentError`` with a short message
  that is safe to show to a remote client.
"""

from __future__ import annotations

import os
import posixpath
import re

from gitgood.constants import COMPONENT_MAX_LENGTH
from gitgood.errors import InvalidArgumentError

_COMPONENT_PATTERN = re.compile(rf"[a-z0-9_-]{{1,{COMPONENT_MAX_LENGTH}}}")
_ADJACENT_SEPARATORS = re.compile(r"__|--|_-|-_")
_EDGE_CHARS = ("-", "_")
_QUOTES = ("'", '"')


# ============================================================================
# Identifier Validation
# ============================================================================


def is_valid_component(name: str) -> bool:
    """Check a single repository owner or name.

    Args:
        name: Candidate component.

    Returns:
        True if *name* is 1-100 characters of ``[a-z0-9_-]``, does not
        start or end with ``-``/``_`` and has no two separators in a row.
    """
    if not _COMPONENT_PATTERN.fullmatch(name):
        return False
    if name.startswith(_EDGE_CHARS) or name.endswith(_EDGE_CHARS):
        return False
    if _ADJACENT_SEPARATORS.search(name):
        return False
    return True


def is_valid_repo_path(path: str) -> bool:
    """Check an ``owner/name`` repository path.

    Args:
        path: Candidate repository path.

    Returns:
        True if *path* has exactly two ``/``-separated components and both
        pass :func:`is_valid_component`.
    """
    parts = path.split("/")
    if len(parts) != 2:
        return False
    return is_valid_component(parts[0]) and is_valid_component(parts[1])


# ============================================================================
# Argument Sanitizing
# ============================================================================


def _strip_quotes(arg: str) -> str:
    """Remove one layer of matching single or double quotes."""
    if len(arg) >= 2 and arg[0] == arg[-1] and arg[0] in _QUOTES:
        return arg[1:-1]
    return arg


def sanitize_arg(raw: str) -> str:
    """Turn a client-supplied repository argument into a relative virtual path.

    SSH clients send the repository as a shell-quoted string such as
    ``'alice/repo'``. The quotes and surrounding whitespace are dropped and
    the path is cleaned lexically.

    Args:
        raw: Repository argument exactly as received.

    Returns:
        Cleaned relative path with ``/`` separators.

    Raises:
        InvalidArgumentError: If the argument is empty, absolute, or still
            climbs above its starting directory after cleaning.
    """
    arg = _strip_quotes(raw.strip()).strip()
    if not arg:
        raise InvalidArgumentError("empty repository argument")
    if os.path.isabs(arg) or arg.startswith("/"):
        raise InvalidArgumentError("absolute paths are not allowed")

    cleaned = posixpath.normpath(arg)
    # normpath keeps leading ".." segments it cannot collapse
    if ".." in cleaned.split("/"):
        raise InvalidArgumentError("parent traversal is not allowed")

    cleaned = posixpath.normpath("/" + cleaned).lstrip("/")
    if not cleaned:
        raise InvalidArgumentError("empty repository argument")
    return cleaned
