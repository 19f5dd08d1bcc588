"""paramiko SFTP subsystem backed by :class:`FileOperationHandler`.

paramiko parses the wire protocol and calls into
:class:`JailedSFTPServer`; each call is turned into a
:class:`~gitgood.models.FileOperationRequest`, handed to the handler, and
the result (or error) converted back into paramiko's types.

Error mapping:
- ``OSError``             -> ``SFTPServer.convert_errno(errno)``
- ``PathEscapeError``     -> ``SFTP_PERMISSION_DENIED``
- other ``GitGoodError``  -> ``SFTP_FAILURE``
"""

from __future__ import annotations

import logging
import os
from typing import Any, Callable, Union

import paramiko
from paramiko.sftp import (
    SFTP_FAILURE,
    SFTP_OK,
    SFTP_PERMISSION_DENIED,
)

from gitgood.errors import GitGoodError, PathEscapeError
from gitgood.fileops import EntryInfo, FileHandle, FileOperationHandler
from gitgood.jail import clean_virtual
from gitgood.models import FileAttributes, FileMethod, FileOperationRequest, OpenFlags

logger = logging.getLogger(__name__)

SFTPResult = Union[int, Any]


def to_status(exc: Exception) -> int:
    """Map an exception raised by the handler onto an SFTP status code."""
    if isinstance(exc, PathEscapeError):
        return SFTP_PERMISSION_DENIED
    if isinstance(exc, OSError) and exc.errno is not None:
        return paramiko.SFTPServer.convert_errno(exc.errno)
    return SFTP_FAILURE


def flags_from_os(os_flags: int) -> OpenFlags:
    """Rebuild protocol open flags from the ``os.O_*`` bits paramiko passes."""
    access = os_flags & (os.O_RDONLY | os.O_WRONLY | os.O_RDWR)
    return OpenFlags(
        read=access in (os.O_RDONLY, os.O_RDWR),
        write=access in (os.O_WRONLY, os.O_RDWR),
        append=bool(os_flags & os.O_APPEND),
        create=bool(os_flags & os.O_CREAT),
        truncate=bool(os_flags & os.O_TRUNC),
        exclusive=bool(os_flags & os.O_EXCL),
    )


def attributes_from_sftp(attr: paramiko.SFTPAttributes | None) -> FileAttributes:
    """Convert paramiko attributes, keeping only the fields the client set.

    paramiko leaves every field the request did not carry as ``None``.
    """
    if attr is None:
        return FileAttributes()
    values: dict[str, Any] = {}
    if attr.st_mode is not None:
        values["mode"] = attr.st_mode
    if attr.st_size is not None:
        values["size"] = attr.st_size
    if attr.st_atime is not None and attr.st_mtime is not None:
        values["atime"] = attr.st_atime
        values["mtime"] = attr.st_mtime
    if attr.st_uid is not None and attr.st_gid is not None:
        values["uid"] = attr.st_uid
        values["gid"] = attr.st_gid
    return FileAttributes(**values)


def attributes_from_entry(entry: EntryInfo) -> paramiko.SFTPAttributes:
    return paramiko.SFTPAttributes.from_stat(entry.stat, filename=entry.name)


class JailedSFTPHandle(paramiko.SFTPHandle):
    """paramiko handle delegating to a positional :class:`FileHandle`."""

    def __init__(self, handle: FileHandle, flags: int = 0) -> None:
        super().__init__(flags)
        self._handle = handle

    def close(self) -> None:
        self._handle.close()

    def read(self, offset: int, length: int) -> SFTPResult:
        try:
            return self._handle.read_at(offset, length)
        except OSError as exc:
            return to_status(exc)

    def write(self, offset: int, data: bytes) -> int:
        try:
            self._handle.write_at(data, offset)
        except OSError as exc:
            return to_status(exc)
        return SFTP_OK

    def stat(self) -> SFTPResult:
        try:
            return paramiko.SFTPAttributes.from_stat(self._handle.stat())
        except OSError as exc:
            return to_status(exc)

    def chattr(self, attr: paramiko.SFTPAttributes) -> int:
        values = attributes_from_sftp(attr)
        try:
            if values.mode is not None:
                os.fchmod(self._handle.fileno(), values.mode & 0o7777)
            if values.size is not None:
                os.ftruncate(self._handle.fileno(), values.size)
            if values.atime and values.mtime:
                os.utime(self._handle.fileno(), (values.atime, values.mtime))
        except OSError as exc:
            return to_status(exc)
        return SFTP_OK


class JailedSFTPServer(paramiko.SFTPServerInterface):
    """SFTP server interface confined to a :class:`FileOperationHandler`.

    Registered with ``Transport.set_subsystem_handler("sftp",
    paramiko.SFTPServer, JailedSFTPServer, handler)``.
    """

    def __init__(self, server: Any, handler: FileOperationHandler, *args: Any, **kwargs: Any) -> None:
        super().__init__(server, *args, **kwargs)
        self._handler = handler

    def _call(self, method: FileMethod, fn: Callable[[FileOperationRequest], Any], path: str, **fields: Any) -> Any:
        request = FileOperationRequest(method=method, path=path, **fields)
        try:
            return fn(request)
        except (OSError, GitGoodError) as exc:
            logger.info(
                f"SFTP {method.value} refused: {exc}",
                extra={"method": method.value, "path": clean_virtual(path)},
            )
            return to_status(exc)

    # ------------------------------------------------------------------
    # Files
    # ------------------------------------------------------------------

    def open(self, path: str, flags: int, attr: paramiko.SFTPAttributes) -> SFTPResult:
        open_flags = flags_from_os(flags)
        if open_flags.write and open_flags.read:
            method, fn = FileMethod.OPEN_MIXED, self._handler.open_mixed
        elif open_flags.write:
            method, fn = FileMethod.WRITE, self._handler.open_write
        else:
            method, fn = FileMethod.READ, self._handler.open_read

        result = self._call(method, fn, path, flags=open_flags, attrs=attributes_from_sftp(attr))
        if isinstance(result, int):
            return result
        return JailedSFTPHandle(result, flags)

    def list_folder(self, path: str) -> SFTPResult:
        result = self._call(FileMethod.LIST, self._handler.list, path)
        if isinstance(result, int):
            return result
        return [attributes_from_entry(entry) for entry in result]

    def stat(self, path: str) -> SFTPResult:
        return self._single(FileMethod.STAT, path)

    def lstat(self, path: str) -> SFTPResult:
        return self._single(FileMethod.LSTAT, path)

    def _single(self, method: FileMethod, path: str) -> SFTPResult:
        result = self._call(method, self._handler.list, path)
        if isinstance(result, int):
            return result
        entries, _ = result.list_at(0, 1)
        return attributes_from_entry(entries[0])

    def readlink(self, path: str) -> SFTPResult:
        """Answer with the virtual path of the resolved link target."""
        result = self._call(FileMethod.READLINK, self._handler.list, path)
        if isinstance(result, int):
            return result
        entries, _ = result.list_at(0, 1)
        return entries[0].name

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def _filecmd(self, method: FileMethod, path: str, **fields: Any) -> int:
        result = self._call(method, self._handler.filecmd, path, **fields)
        if isinstance(result, int):
            return result
        return SFTP_OK

    def remove(self, path: str) -> int:
        return self._filecmd(FileMethod.REMOVE, path)

    def rename(self, oldpath: str, newpath: str) -> int:
        return self._filecmd(FileMethod.RENAME, oldpath, target=newpath)

    def posix_rename(self, oldpath: str, newpath: str) -> int:
        return self._filecmd(FileMethod.POSIX_RENAME, oldpath, target=newpath)

    def mkdir(self, path: str, attr: paramiko.SFTPAttributes) -> int:
        return self._filecmd(FileMethod.MKDIR, path, attrs=attributes_from_sftp(attr))

    def rmdir(self, path: str) -> int:
        return self._filecmd(FileMethod.RMDIR, path)

    def chattr(self, path: str, attr: paramiko.SFTPAttributes) -> int:
        return self._filecmd(FileMethod.SETSTAT, path, attrs=attributes_from_sftp(attr))

    def symlink(self, target_path: str, path: str) -> int:
        return self._filecmd(FileMethod.SYMLINK, path, target=target_path)

    # ------------------------------------------------------------------
    # Paths
    # ------------------------------------------------------------------

    def canonicalize(self, path: str) -> str:
        """Return the virtual path; never the host location."""
        return clean_virtual(path)

