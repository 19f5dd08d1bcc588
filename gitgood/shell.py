"""Interactive shell for sessions that are not git service calls.

The only real command is ``create (OWNER/)NAME``; ``exit`` ends the
session and anything else prints the usage text.

The byte relay runs three loops over a pseudo-terminal pair:

- inbound:  SSH channel -> pty master (what the user types)
- outbound: pty master -> SSH channel (echo and command output)
- dispatch: pty slave line reads -> :func:`execute_command` -> pty slave

Each loop stops on its own when its stream closes; a shared event records
that the session is over so the others stop waiting for input.
"""

from __future__ import annotations

import logging
import os
import pty
import select
import threading
from dataclasses import dataclass
from typing import Any

from pydantic import ValidationError

from gitgood.constants import CREATE_USAGE, RELAY_CHUNK_SIZE, SHELL_PROMPT, SHELL_USAGE
from gitgood.errors import InvalidArgumentError, PathEscapeError, RepositoryError
from gitgood.models import RepositoryIdentifier
from gitgood.repository import RepositoryManager

logger = logging.getLogger(__name__)

_POLL_INTERVAL = 0.2
_INVALID_NAME = (
    "Invalid repository name (allowed: lowercase letters, numbers, "
    "single '-' or '_' between them)"
)


@dataclass(frozen=True)
class ShellReply:
    """Text to send back for one input line, and whether to hang up."""

    text: str = ""
    close: bool = False


# ============================================================================
# Commands
# ============================================================================


def _parse_create_target(arg: str, principal: str) -> RepositoryIdentifier:
    if "/" in arg:
        return RepositoryIdentifier.parse(arg)
    return RepositoryIdentifier(owner=principal, name=arg)


def execute_command(line: str, principal: str, repositories: RepositoryManager) -> ShellReply:
    """Run one line typed into the interactive shell.

    Args:
        line: Raw input line (trailing newline allowed).
        principal: User name the session authenticated as; the default
            repository owner.
        repositories: Where ``create`` provisions repositories.

    Returns:
        The reply to print.
    """
    words = line.split()
    if not words:
        return ShellReply()

    command = words[0]
    if command == "exit":
        return ShellReply(close=True)

    if command != "create":
        return ShellReply(SHELL_USAGE)

    if len(words) != 2:
        return ShellReply(CREATE_USAGE)

    try:
        identifier = _parse_create_target(words[1], principal)
        repositories.create(identifier.owner, identifier.name)
    except (ValidationError, InvalidArgumentError, PathEscapeError):
        return ShellReply(_INVALID_NAME)
    except RepositoryError as exc:
        logger.warning(f"Repository creation failed: {exc}")
        return ShellReply(f"Error: {exc}")

    return ShellReply(f"Created repo {identifier}.")


# ============================================================================
# PTY Relay
# ============================================================================


def _wait_readable(fd: int, closed: threading.Event) -> bool:
    """Block until *fd* has data; False once the session is over."""
    while not closed.is_set():
        readable, _, _ = select.select([fd], [], [], _POLL_INTERVAL)
        if readable:
            return True
    return False


def _relay_inbound(channel: Any, master_fd: int, closed: threading.Event) -> None:
    try:
        while True:
            data = channel.recv(RELAY_CHUNK_SIZE)
            if not data:
                break
            os.write(master_fd, data)
    except OSError as exc:
        logger.debug(f"Inbound relay stopped: {exc}")
    finally:
        closed.set()


def _relay_outbound(channel: Any, master_fd: int, closed: threading.Event) -> None:
    try:
        while _wait_readable(master_fd, closed):
            data = os.read(master_fd, RELAY_CHUNK_SIZE)
            if not data:
                break
            channel.sendall(data)
    except OSError as exc:
        logger.debug(f"Outbound relay stopped: {exc}")
    finally:
        closed.set()


def _dispatch_lines(
    channel: Any,
    slave_fd: int,
    principal: str,
    repositories: RepositoryManager,
    closed: threading.Event,
) -> None:
    try:
        while _wait_readable(slave_fd, closed):
            data = os.read(slave_fd, RELAY_CHUNK_SIZE)
            if not data:
                break
            reply = execute_command(data.decode("utf-8", errors="replace"), principal, repositories)
            if reply.text:
                os.write(slave_fd, reply.text.encode("utf-8") + b"\n")
            if reply.close:
                break
            os.write(slave_fd, SHELL_PROMPT.encode("utf-8"))
    except OSError as exc:
        logger.debug(f"Shell dispatch stopped: {exc}")
    finally:
        closed.set()
        channel.close()


def run_shell(channel: Any, principal: str, repositories: RepositoryManager, banner: str) -> None:
    """Serve the interactive shell on *channel* until it closes.

    Args:
        channel: paramiko ``Channel`` (anything with ``recv``, ``sendall``
            and ``close``).
        principal: Authenticated user name.
        repositories: Repository provisioning backend.
        banner: ``<name> - <version>`` greeting line.
    """
    greeting = f"{banner}\nEnter command (or 'exit' to quit)\n{SHELL_PROMPT}"
    channel.sendall(greeting.replace("\n", "\r\n").encode("utf-8"))

    master_fd, slave_fd = pty.openpty()
    closed = threading.Event()
    threads = [
        threading.Thread(
            target=_relay_inbound, args=(channel, master_fd, closed),
            name="shell-inbound", daemon=True,
        ),
        threading.Thread(
            target=_dispatch_lines, args=(channel, slave_fd, principal, repositories, closed),
            name="shell-dispatch", daemon=True,
        ),
    ]
    try:
        for thread in threads:
            thread.start()
        _relay_outbound(channel, master_fd, closed)
        for thread in threads:
            thread.join()
    finally:
        os.close(master_fd)
        os.close(slave_fd)
