from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from gitgood import constants
from gitgood.errors import InvalidArgumentError
from gitgood.namespace import is_valid_component, is_valid_repo_path, sanitize_arg


class RepositoryIdentifier(BaseModel):
    """The ``(owner, name)`` pair naming a hosted repository.

    Both fields validate on construction; an instance is therefore always
    safe to join onto the repository root.
    """

    model_config = ConfigDict(frozen=True)

    owner: str
    """Owning principal (first path component)."""

    name: str
    """Repository name (second path component)."""

    @field_validator("owner", "name")
    @classmethod
    def _check_component(cls, value: str) -> str:
        if not is_valid_component(value):
            raise ValueError("invalid repository owner or name")
        return value

    @property
    def path(self) -> str:
        """Composed ``owner/name`` form."""
        return f"{self.owner}/{self.name}"

    def __str__(self) -> str:
        return self.path

    @classmethod
    def parse(cls, raw: str) -> RepositoryIdentifier:
        """Build an identifier from a raw client argument.

        Raises:
            InvalidArgumentError: If the argument is not a clean ``owner/name``.
        """
        repo_path = sanitize_arg(raw)
        if not is_valid_repo_path(repo_path):
            raise InvalidArgumentError("invalid repository owner or name")
        owner, name = repo_path.split("/")
        return cls(owner=owner, name=name)


class FileMethod(str, Enum):
    """Closed set of file-transfer operations."""

    READ = "read"
    WRITE = "write"
    OPEN_MIXED = "openMixed"
    LIST = "list"
    STAT = "stat"
    LSTAT = "lstat"
    READLINK = "readlink"
    MKDIR = "mkdir"
    RMDIR = "rmdir"
    REMOVE = "remove"
    RENAME = "rename"
    POSIX_RENAME = "posixRename"
    SYMLINK = "symlink"
    LINK = "link"
    SETSTAT = "setstat"


class OpenFlags(BaseModel):
    """Protocol-level open flags, independent of host ``os.O_*`` values."""

    model_config = ConfigDict(frozen=True)

    read: bool = False
    write: bool = False
    append: bool = False
    create: bool = False
    truncate: bool = False
    exclusive: bool = False


class FileAttributes(BaseModel):
    """Attribute set carried by write/open/setstat requests.

    A field left as ``None`` was not supplied by the client.
    """

    model_config = ConfigDict(frozen=True)

    mode: Optional[int] = None
    """Permission bits."""

    size: Optional[int] = Field(default=None, ge=0)
    """File size for truncation."""

    atime: Optional[float] = None
    """Access time (seconds since the epoch)."""

    mtime: Optional[float] = None
    """Modification time (seconds since the epoch)."""

    uid: Optional[int] = None
    """Owner uid (accepted, never applied)."""

    gid: Optional[int] = None
    """Owner gid (accepted, never applied)."""


class FileOperationRequest(BaseModel):
    """A single file-transfer request as delivered by the protocol engine."""

    model_config = ConfigDict(frozen=True)

    method: FileMethod
    path: str = ""
    target: str = ""
    flags: OpenFlags = Field(default_factory=OpenFlags)
    attrs: FileAttributes = Field(default_factory=FileAttributes)


class ServerSettings(BaseModel):
    """Runtime configuration of the SSH server.

    Built from the environment by :meth:`from_env`; CLI options override
    individual fields.
    """

    host: str = "0.0.0.0"
    """Listen address."""

    port: int = Field(default=constants.DEFAULT_PORT, ge=0, le=65535)
    """Listen port."""

    repos_dir: Path
    """Jail root for git repositories."""

    sftp_root: Path
    """Jail root for SFTP sessions."""

    host_key_path: Path
    """Path to the SSH host private key."""

    server_name: str = constants.SERVER_NAME
    server_version: str = constants.SERVER_VERSION

    @property
    def banner(self) -> str:
        """``<name> - <version>`` line used by the shell and the logs."""
        return f"{self.server_name} - {self.server_version}"

    @classmethod
    def from_env(cls, **overrides: Any) -> ServerSettings:
        """Build settings from environment defaults plus explicit overrides.

        ``None`` overrides are ignored so CLI options can be passed through
        unconditionally.
        """
        values: dict[str, Any] = {
            "host": constants.get_listen_host(),
            "port": constants.get_listen_port(),
            "repos_dir": constants.get_repos_dir(),
            "sftp_root": constants.get_sftp_root(),
            "host_key_path": constants.get_host_key_path(),
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)
