"""SSH server: accepts connections and hands sessions to the router.

One daemon thread per connection. paramiko performs the handshake and
authentication (any public key is accepted; this server does not
authorize), the SFTP subsystem is bound to a :class:`FileOperationHandler`
and exec/shell requests go through :func:`gitgood.router.route_session`.
"""

from __future__ import annotations

import logging
import os
import socket
import threading
from pathlib import Path
from typing import Optional

import paramiko

from gitgood.dispatcher import CommandDispatcher
from gitgood.errors import InvalidArgumentError
from gitgood.fileops import FileOperationHandler
from gitgood.jail import roots_overlap
from gitgood.logging_config import LogContext, generate_session_id, set_context
from gitgood.models import ServerSettings
from gitgood.repository import RepositoryManager
from gitgood.router import Session, route_session
from gitgood.sftp import JailedSFTPServer
from gitgood.shell import run_shell

logger = logging.getLogger(__name__)

ACCEPT_TIMEOUT = 30
"""Seconds to wait for the client to open a session channel."""

REQUEST_TIMEOUT = 30
"""Seconds to wait for an exec/shell/subsystem request on that channel."""

LISTEN_BACKLOG = 100


# ============================================================================
# Host Keys
# ============================================================================

_KEY_CLASSES = (paramiko.Ed25519Key, paramiko.ECDSAKey, paramiko.RSAKey)


def load_host_key(path: str | Path) -> paramiko.PKey:
    """Load a private host key of any supported type.

    Raises:
        FileNotFoundError: If *path* does not exist.
        paramiko.SSHException: If the file is not a usable private key.
    """
    key_path = os.fspath(path)
    if not os.path.isfile(key_path):
        raise FileNotFoundError(f"host key not found: {key_path}")
    errors = []
    for key_class in _KEY_CLASSES:
        try:
            return key_class.from_private_key_file(key_path)
        except (paramiko.SSHException, ValueError) as exc:
            errors.append(f"{key_class.__name__}: {exc}")
    raise paramiko.SSHException(f"unsupported host key {key_path}: {'; '.join(errors)}")


def generate_host_key(path: str | Path, bits: int) -> paramiko.RSAKey:
    """Generate an RSA host key and write it with mode 0600."""
    key_path = Path(path)
    key_path.parent.mkdir(parents=True, exist_ok=True)
    key = paramiko.RSAKey.generate(bits)
    key.write_private_key_file(str(key_path))
    os.chmod(key_path, 0o600)
    return key


# ============================================================================
# Channel Streams
# ============================================================================


class ChannelReader:
    """Readable byte stream over a channel; ``read1`` returns what has arrived."""

    def __init__(self, channel: paramiko.Channel) -> None:
        self._channel = channel

    def read1(self, size: int = -1) -> bytes:
        return self._channel.recv(size if size > 0 else 32768)

    read = read1


class ChannelWriter:
    """Writable byte stream over a channel's stdout or stderr."""

    def __init__(self, channel: paramiko.Channel, stderr: bool = False) -> None:
        self._send = channel.sendall_stderr if stderr else channel.sendall

    def write(self, data: bytes) -> int:
        self._send(data)
        return len(data)

    def flush(self) -> None:
        pass


# ============================================================================
# paramiko Server Interface
# ============================================================================


class GitGoodServerInterface(paramiko.ServerInterface):
    """Accepts any public key and records the session request type."""

    def __init__(self) -> None:
        self.request_event = threading.Event()
        self.request: Optional[str] = None
        self.command: Optional[str] = None

    def get_allowed_auths(self, username: str) -> str:
        return "publickey"

    def check_auth_publickey(self, username: str, key: paramiko.PKey) -> int:
        logger.info(
            "Accepted public key",
            extra={"user": username, "key_type": key.get_name(), "fingerprint": key.get_fingerprint().hex()},
        )
        return paramiko.AUTH_SUCCESSFUL

    def check_channel_request(self, kind: str, chanid: int) -> int:
        if kind == "session":
            return paramiko.OPEN_SUCCEEDED
        return paramiko.OPEN_FAILED_ADMINISTRATIVELY_PROHIBITED

    def check_channel_pty_request(self, channel, term, width, height, pixelwidth, pixelheight, modes) -> bool:
        return True

    def check_channel_shell_request(self, channel: paramiko.Channel) -> bool:
        self.request = "shell"
        self.request_event.set()
        return True

    def check_channel_exec_request(self, channel: paramiko.Channel, command: bytes) -> bool:
        self.request = "exec"
        self.command = command.decode("utf-8", errors="replace")
        self.request_event.set()
        return True

    def check_channel_subsystem_request(self, channel: paramiko.Channel, name: str) -> bool:
        self.request = "subsystem"
        self.request_event.set()
        return super().check_channel_subsystem_request(channel, name)


# ============================================================================
# Server
# ============================================================================


class GitGoodServer:
    """Listens for SSH connections and serves git, SFTP and the shell.

    Args:
        settings: Server configuration.
        host_key: Private host key presented to clients.

    Raises:
        InvalidArgumentError: If the SFTP root and the repository root
            overlap. SFTP writes into a repository could plant hooks that
            ``git-receive-pack`` would execute.
    """

    def __init__(self, settings: ServerSettings, host_key: paramiko.PKey) -> None:
        if roots_overlap(settings.sftp_root, settings.repos_dir):
            raise InvalidArgumentError(
                f"SFTP root {settings.sftp_root} overlaps repository root {settings.repos_dir}"
            )
        self.settings = settings
        self._host_key = host_key
        self.dispatcher = CommandDispatcher(settings.repos_dir)
        self.repositories = RepositoryManager(settings.repos_dir)
        self.file_handler = FileOperationHandler(settings.sftp_root)
        self._socket: Optional[socket.socket] = None
        self._stopped = threading.Event()

    @property
    def address(self) -> tuple[str, int]:
        """Bound ``(host, port)``; only valid after :meth:`bind`."""
        if self._socket is None:
            raise RuntimeError("server is not bound")
        host, port = self._socket.getsockname()[:2]
        return host, port

    def bind(self) -> None:
        os.makedirs(self.settings.repos_dir, exist_ok=True)
        os.makedirs(self.settings.sftp_root, exist_ok=True)
        self._socket = socket.create_server(
            (self.settings.host, self.settings.port), backlog=LISTEN_BACKLOG,
        )
        logger.info(self.settings.banner)
        logger.info(f"Listening on {self.settings.host}:{self.address[1]}")

    def serve_forever(self) -> None:
        """Accept connections until :meth:`shutdown` is called."""
        if self._socket is None:
            self.bind()
        assert self._socket is not None
        while not self._stopped.is_set():
            try:
                client, address = self._socket.accept()
            except OSError:
                if self._stopped.is_set():
                    break
                raise
            thread = threading.Thread(
                target=self.handle_connection,
                args=(client, address),
                name=f"ssh-{address[0]}:{address[1]}",
                daemon=True,
            )
            thread.start()

    def shutdown(self) -> None:
        self._stopped.set()
        if self._socket is not None:
            self._socket.close()

    def handle_connection(self, client: socket.socket, address: tuple) -> None:
        """Serve one SSH connection from handshake to close."""
        with LogContext(session_id=generate_session_id(), peer=f"{address[0]}:{address[1]}"):
            transport = paramiko.Transport(client)
            try:
                self._serve_transport(transport)
            except (paramiko.SSHException, EOFError, OSError) as exc:
                logger.warning(f"Connection ended with error: {exc}")
            finally:
                transport.close()

    def _serve_transport(self, transport: paramiko.Transport) -> None:
        transport.local_version = (
            f"SSH-2.0-{self.settings.server_name.replace(' ', '')}_{self.settings.server_version}"
        )
        transport.add_server_key(self._host_key)
        transport.set_subsystem_handler(
            "sftp", paramiko.SFTPServer, JailedSFTPServer, self.file_handler,
        )
        interface = GitGoodServerInterface()
        transport.start_server(server=interface)

        channel = transport.accept(ACCEPT_TIMEOUT)
        if channel is None:
            logger.info("No session channel opened")
            return

        user = transport.get_username() or ""
        set_context(user=user)

        if not interface.request_event.wait(REQUEST_TIMEOUT):
            logger.info("No session request received")
            channel.close()
            return

        if interface.request == "subsystem":
            # paramiko runs the SFTP server in its own thread
            transport.join()
            return

        session = Session(
            user=user,
            stdin=ChannelReader(channel),
            stdout=ChannelWriter(channel),
            stderr=ChannelWriter(channel, stderr=True),
            command=interface.command if interface.request == "exec" else None,
        )
        status = route_session(
            session,
            self.dispatcher,
            lambda s: run_shell(channel, s.user, self.repositories, self.settings.banner),
        )
        channel.send_exit_status(status)
        channel.close()
