"""Path jail: map client virtual paths onto a contained host directory.

Every filesystem-touching code path in gitgood resolves client input here.
Callers never join paths themselves.

``resolve`` is purely lexical: ``..`` is collapsed before the host is
consulted and symlinks are never followed. ``confine`` re-checks an
already resolved path against the *real* (symlink-following) location and
is called right before a host operation.
"""

from __future__ import annotations

import logging
import os
import posixpath
from pathlib import Path

from gitgood.errors import InvalidArgumentError, PathEscapeError

logger = logging.getLogger(__name__)


def clean_virtual(virtual_path: str) -> str:
    """Collapse a virtual path into its ``/``-rooted canonical form.

    Args:
        virtual_path: Client path using ``/`` separators.

    Returns:
        Absolute virtual path without ``.`` or ``..`` segments.
    """
    cleaned = posixpath.normpath("/" + virtual_path)
    # POSIX keeps a leading "//" as implementation-defined; fold it
    if cleaned.startswith("//"):
        cleaned = "/" + cleaned.lstrip("/")
    return cleaned


def _is_within(path: str, root: str) -> bool:
    """Boundary-aware containment: ``/srv/root`` does not contain ``/srv/root-evil``."""
    return path == root or (path + os.sep).startswith(root + os.sep)


def roots_overlap(first: str | Path, second: str | Path) -> bool:
    """Check whether two jail roots are the same tree or nest in either direction.

    Compared by real path, so a symlinked alias of the other root counts.
    """
    a = os.path.realpath(os.fspath(first))
    b = os.path.realpath(os.fspath(second))
    return _is_within(a, b) or _is_within(b, a)


class PathJail:
    """Resolves virtual paths beneath a fixed jail root.

    Args:
        root: Host directory that bounds every resolution. Stored in
            absolute form; it does not have to exist yet.
    """

    def __init__(self, root: str | Path) -> None:
        self._root = os.path.abspath(os.fspath(root))

    @property
    def root(self) -> str:
        """Absolute host path of the jail root."""
        return self._root

    def __repr__(self) -> str:
        return f"PathJail({self._root!r})"

    def resolve(self, virtual_path: str) -> str:
        """Resolve *virtual_path* to a host path inside the jail.

        An empty path, or one made only of ``.``/``..`` segments, resolves
        to the jail root itself.

        Raises:
            InvalidArgumentError: If the path contains a NUL byte.
            PathEscapeError: If the joined path is not contained in the root.
        """
        if "\x00" in virtual_path:
            raise InvalidArgumentError("path contains a NUL byte")
        relative = clean_virtual(virtual_path).lstrip("/")
        parts = relative.split("/") if relative else []
        full = os.path.abspath(os.path.join(self._root, *parts))
        if not _is_within(full, self._root):
            logger.warning(
                "Rejected path outside jail",
                extra={"virtual_path": virtual_path, "jail_root": self._root},
            )
            raise PathEscapeError(f"path escapes jail: {clean_virtual(virtual_path)}")
        return full

    def confine(self, host_path: str, follow_final: bool = True) -> str:
        """Re-check a resolved host path against its real location.

        Symlinks planted inside the jail can point anywhere; this follows
        them and verifies the destination is still inside the real root.

        Args:
            host_path: Path previously returned by :meth:`resolve`.
            follow_final: Follow a symlink in the last component. Pass
                False for operations acting on the link itself (lstat,
                remove, rename, link creation).

        Returns:
            *host_path* unchanged.

        Raises:
            PathEscapeError: If the real path leaves the real root.
        """
        real_root = os.path.realpath(self._root)
        if follow_final:
            real = os.path.realpath(host_path)
        else:
            parent, leaf = os.path.split(host_path)
            real = os.path.join(os.path.realpath(parent), leaf) if leaf else os.path.realpath(parent)
        if not _is_within(real, real_root):
            logger.warning(
                "Rejected symlink escape",
                extra={"host_path": host_path, "real_path": real, "jail_root": self._root},
            )
            raise PathEscapeError(f"path escapes jail: {self.virtual(host_path)}")
        return host_path

    def contains(self, host_path: str) -> bool:
        """Lexical containment check for an absolute host path."""
        return _is_within(os.path.abspath(host_path), self._root)

    def virtual(self, host_path: str) -> str:
        """Map a contained host path back to its ``/``-rooted virtual form.

        Paths outside the jail collapse to ``/`` so host layout never
        reaches a client.
        """
        full = os.path.abspath(host_path)
        if not _is_within(full, self._root):
            return "/"
        relative = os.path.relpath(full, self._root)
        if relative == os.curdir:
            return "/"
        return "/" + relative.replace(os.sep, "/")
