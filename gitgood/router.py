"""Session routing: git service call or interactive shell.

A session whose exec command splits into exactly two words goes to the
command dispatcher; everything else gets the interactive shell. The SFTP
subsystem never reaches this module (paramiko hands it straight to
:mod:`gitgood.sftp`).
"""

from __future__ import annotations

import logging
import shlex
from dataclasses import dataclass, field
from typing import IO, Callable, Optional

from gitgood.constants import SERVER_NAME
from gitgood.dispatcher import CommandDispatcher
from gitgood.errors import CommandError, GitGoodError, InvalidArgumentError, PathEscapeError

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1


@dataclass
class Session:
    """What the transport knows about one SSH session."""

    user: str
    stdin: IO[bytes]
    stdout: IO[bytes]
    stderr: IO[bytes]
    command: Optional[str] = None
    """Raw exec command, or None for a shell request."""

    argv: list[str] = field(default_factory=list)


def parse_command(raw: str) -> list[str]:
    """Split an exec command string the way a POSIX shell would.

    Raises:
        InvalidArgumentError: On unbalanced quotes.
    """
    try:
        return shlex.split(raw)
    except ValueError as exc:
        raise InvalidArgumentError("malformed command") from exc


def client_message(exc: GitGoodError) -> str:
    """One-line explanation safe to send to the remote client."""
    if isinstance(exc, PathEscapeError):
        return "invalid repository path"
    return str(exc)


def route_session(
    session: Session,
    dispatcher: CommandDispatcher,
    run_shell: Callable[[Session], None],
) -> int:
    """Serve *session* and return its exit status.

    Args:
        session: The session to serve.
        dispatcher: Runs git service commands.
        run_shell: Serves the interactive shell for non-service sessions.
    """
    if session.command is not None:
        try:
            session.argv = parse_command(session.command)
        except InvalidArgumentError as exc:
            return _fail(session, exc)

    if len(session.argv) != 2:
        logger.info("Starting interactive shell")
        run_shell(session)
        return EXIT_OK

    command, repo_arg = session.argv
    try:
        dispatcher.dispatch(command, repo_arg, session.stdin, session.stdout, session.stderr)
    except (CommandError, InvalidArgumentError, PathEscapeError) as exc:
        return _fail(session, exc)
    return EXIT_OK


def _fail(session: Session, exc: GitGoodError) -> int:
    cause = exc.__cause__
    logger.warning(
        f"Session command rejected: {exc}" + (f" ({cause})" if cause else ""),
        extra={"command": session.command},
    )
    try:
        session.stderr.write(f"{SERVER_NAME}: {client_message(exc)}\n".encode("utf-8"))
        session.stderr.flush()
    except OSError:
        pass
    return EXIT_FAILURE
