"""Jailed file operations for the file-transfer protocol.

The protocol engine hands over :class:`~gitgood.models.FileOperationRequest`
values; this module resolves every path through a :class:`PathJail`,
re-checks the real location right before touching the host, and returns
protocol-neutral results:

- ``open_read`` / ``open_write`` / ``open_mixed`` return a
  :class:`FileHandle` addressed by byte offset.
- ``list`` returns a :class:`ListerAt` that pages through
  :class:`EntryInfo` snapshots.
- ``filecmd`` applies mutations and returns nothing.

Host ``OSError``s are passed through unchanged; mapping them to wire
status codes is the protocol layer's job.
"""

from __future__ import annotations

import logging
import os
import posixpath
import stat
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from gitgood.constants import DEFAULT_DIR_MODE, DEFAULT_FILE_MODE, LIST_PAGE_SIZE
from gitgood.errors import CommandError, PathEscapeError
from gitgood.jail import PathJail, clean_virtual
from gitgood.models import FileAttributes, FileMethod, FileOperationRequest, OpenFlags

logger = logging.getLogger(__name__)


# ============================================================================
# Result Types
# ============================================================================


@dataclass(frozen=True)
class EntryInfo:
    """A directory entry name plus a metadata snapshot."""

    name: str
    stat: os.stat_result

    @property
    def is_dir(self) -> bool:
        return stat.S_ISDIR(self.stat.st_mode)

    @property
    def is_symlink(self) -> bool:
        return stat.S_ISLNK(self.stat.st_mode)


class ListerAt:
    """Finite, offset-addressed sequence of entries.

    The caller drives iteration with explicit offsets; calling again with
    the same or a smaller offset simply re-serves from there.
    """

    def __init__(self, entries: list[EntryInfo]) -> None:
        self._entries = list(entries)

    def __len__(self) -> int:
        return len(self._entries)

    def list_at(self, offset: int, count: int = LIST_PAGE_SIZE) -> tuple[list[EntryInfo], bool]:
        """Return up to *count* entries starting at *offset*.

        Returns:
            ``(entries, eof)``. *eof* is True when the page reaches the last
            entry, or when *offset* is already past the end (in which case
            *entries* is empty).
        """
        if offset < 0:
            raise ValueError(f"offset must not be negative: {offset}")
        total = len(self._entries)
        if offset >= total:
            return [], True
        page = self._entries[offset:offset + max(count, 0)]
        return page, offset + len(page) >= total

    def __iter__(self):
        offset = 0
        while True:
            page, eof = self.list_at(offset)
            yield from page
            offset += len(page)
            if eof:
                return


class FileHandle:
    """An open host file addressed by byte offset.

    Reads and writes are positional (``pread``/``pwrite``), so one handle
    can serve out-of-order requests from the same client.
    """

    def __init__(self, fd: int, path: str, readable: bool, writable: bool) -> None:
        self._fd = fd
        self.path = path
        self.readable = readable
        self.writable = writable
        self._closed = False

    def fileno(self) -> int:
        return self._fd

    @property
    def closed(self) -> bool:
        return self._closed

    def read_at(self, offset: int, length: int) -> bytes:
        if not self.readable:
            raise OSError(f"handle not open for reading: {self.path}")
        return os.pread(self._fd, length, offset)

    def write_at(self, data: bytes, offset: int) -> int:
        if not self.writable:
            raise OSError(f"handle not open for writing: {self.path}")
        written = 0
        view = memoryview(data)
        while written < len(view):
            written += os.pwrite(self._fd, view[written:], offset + written)
        return written

    def stat(self) -> os.stat_result:
        return os.fstat(self._fd)

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            os.close(self._fd)

    def __enter__(self) -> FileHandle:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


# ============================================================================
# Flag Translation
# ============================================================================


def to_os_flags(flags: OpenFlags) -> int:
    """Translate protocol open flags into ``os.O_*`` bits.

    Append is always dropped: positional writes and ``O_APPEND`` disagree
    about offsets.
    """
    if flags.read and flags.write:
        result = os.O_RDWR
    elif flags.write:
        result = os.O_WRONLY
    else:
        result = os.O_RDONLY
    if flags.create:
        result |= os.O_CREAT
    if flags.truncate:
        result |= os.O_TRUNC
    if flags.exclusive:
        result |= os.O_EXCL
    return result & ~os.O_APPEND


def _create_mode(attrs: FileAttributes) -> int:
    if attrs.mode is not None:
        return stat.S_IMODE(attrs.mode)
    return DEFAULT_FILE_MODE


# ============================================================================
# Handler
# ============================================================================


class FileOperationHandler:
    """Implements file-transfer operations beneath a jail root.

    Args:
        root: Jail root for this handler. Every request path is resolved
            against it.
    """

    def __init__(self, root: str | Path) -> None:
        self._jail = PathJail(root)

    @property
    def jail(self) -> PathJail:
        return self._jail

    def _resolve(self, virtual_path: str, follow_final: bool = True) -> str:
        return self._jail.confine(self._jail.resolve(virtual_path), follow_final=follow_final)

    # ------------------------------------------------------------------
    # Open
    # ------------------------------------------------------------------

    def open_read(self, request: FileOperationRequest) -> FileHandle:
        """Open ``request.path`` read-only."""
        path = self._resolve(request.path)
        fd = os.open(path, os.O_RDONLY)
        return FileHandle(fd, path, readable=True, writable=False)

    def _open_writable(self, request: FileOperationRequest, flags: OpenFlags) -> FileHandle:
        path = self._jail.resolve(request.path)
        parent = os.path.dirname(path)
        self._jail.confine(parent)
        os.makedirs(parent, mode=DEFAULT_DIR_MODE, exist_ok=True)
        self._jail.confine(path)

        os_flags = to_os_flags(flags)
        fd = os.open(path, os_flags, _create_mode(request.attrs))
        access = os_flags & (os.O_RDONLY | os.O_WRONLY | os.O_RDWR)
        return FileHandle(
            fd,
            path,
            readable=access in (os.O_RDONLY, os.O_RDWR),
            writable=access in (os.O_WRONLY, os.O_RDWR),
        )

    def open_write(self, request: FileOperationRequest) -> FileHandle:
        """Open ``request.path`` for writing, creating parent directories.

        Permissions come from ``request.attrs.mode`` when supplied, else
        0o644. Without any access flag the file is opened write-only.
        """
        flags = request.flags
        if not flags.write:
            flags = flags.model_copy(update={"write": True})
        return self._open_writable(request, flags)

    def open_mixed(self, request: FileOperationRequest) -> FileHandle:
        """Open ``request.path`` so one handle serves reads and writes."""
        flags = request.flags
        if not (flags.read or flags.write):
            flags = flags.model_copy(update={"read": True, "write": True})
        return self._open_writable(request, flags)

    # ------------------------------------------------------------------
    # Listing
    # ------------------------------------------------------------------

    def list(self, request: FileOperationRequest) -> ListerAt:
        """Answer list, stat, lstat and readlink requests.

        Raises:
            CommandError: For any other method.
        """
        method = request.method
        if method == FileMethod.LIST:
            path = self._resolve(request.path)
            entries = []
            with os.scandir(path) as it:
                for entry in it:
                    entries.append(EntryInfo(entry.name, entry.stat(follow_symlinks=False)))
            entries.sort(key=lambda e: e.name)
            return ListerAt(entries)

        if method == FileMethod.STAT:
            path = self._resolve(request.path)
            return ListerAt([EntryInfo(os.path.basename(path), os.stat(path))])

        if method == FileMethod.LSTAT:
            path = self._resolve(request.path, follow_final=False)
            return ListerAt([EntryInfo(os.path.basename(path), os.lstat(path))])

        if method == FileMethod.READLINK:
            return ListerAt([self._readlink(request.path)])

        raise CommandError(f"unsupported list method: {method.value}")

    def _readlink(self, virtual_path: str) -> EntryInfo:
        """Describe where a link points, as metadata of its target.

        The stored link text is re-resolved relative to the link's own
        directory through the jail. The entry is named with the target's
        virtual path.
        """
        link_path = self._resolve(virtual_path, follow_final=False)
        stored = os.readlink(link_path)

        link_dir = posixpath.dirname(clean_virtual(virtual_path))
        if os.path.isabs(stored):
            # Links we create store jail-resolved host paths
            if not self._jail.contains(stored):
                raise PathEscapeError(f"link target escapes jail: {clean_virtual(virtual_path)}")
            target_virtual = self._jail.virtual(stored)
        else:
            target_virtual = clean_virtual(posixpath.join(link_dir, stored))

        target = self._resolve(target_virtual, follow_final=False)
        return EntryInfo(self._jail.virtual(target), os.lstat(target))

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def filecmd(self, request: FileOperationRequest) -> None:
        """Apply a mutating request.

        Raises:
            CommandError: On a missing target or an unsupported method.
        """
        method = request.method

        if method == FileMethod.MKDIR:
            os.mkdir(self._resolve(request.path, follow_final=False), DEFAULT_DIR_MODE)
        elif method == FileMethod.RMDIR:
            os.rmdir(self._resolve(request.path, follow_final=False))
        elif method == FileMethod.REMOVE:
            os.remove(self._resolve(request.path, follow_final=False))
        elif method in (FileMethod.RENAME, FileMethod.POSIX_RENAME):
            source, target = self._resolve_pair(request)
            if method == FileMethod.POSIX_RENAME:
                os.replace(source, target)
            else:
                os.rename(source, target)
        elif method == FileMethod.SYMLINK:
            link, target = self._resolve_pair(request)
            os.symlink(target, link)
        elif method == FileMethod.LINK:
            link, target = self._resolve_pair(request)
            os.link(target, link)
        elif method == FileMethod.SETSTAT:
            self._setstat(self._resolve(request.path), request.attrs)
        else:
            raise CommandError(f"unsupported command: {method.value}")

        logger.debug(
            "File command applied",
            extra={"method": method.value, "path": clean_virtual(request.path)},
        )

    def _resolve_pair(self, request: FileOperationRequest) -> tuple[str, str]:
        if not request.target:
            raise CommandError("missing target")
        return (
            self._resolve(request.path, follow_final=False),
            self._resolve(request.target, follow_final=False),
        )

    @staticmethod
    def _setstat(path: str, attrs: FileAttributes) -> None:
        """Best-effort attribute update; ownership is never changed."""
        if attrs.mode is not None:
            os.chmod(path, stat.S_IMODE(attrs.mode))
        if attrs.size is not None:
            os.truncate(path, attrs.size)
        if attrs.atime and attrs.mtime:
            os.utime(path, (attrs.atime, attrs.mtime))

    # ------------------------------------------------------------------
    # Single entry point
    # ------------------------------------------------------------------

    def handle(self, request: FileOperationRequest) -> Optional[FileHandle | ListerAt]:
        """Route *request* to the matching operation by method."""
        method = request.method
        if method == FileMethod.READ:
            return self.open_read(request)
        if method == FileMethod.WRITE:
            return self.open_write(request)
        if method == FileMethod.OPEN_MIXED:
            return self.open_mixed(request)
        if method in (FileMethod.LIST, FileMethod.STAT, FileMethod.LSTAT, FileMethod.READLINK):
            return self.list(request)
        self.filecmd(request)
        return None
