"""Git service command dispatch.

Turns an SSH exec request such as ``git-upload-pack 'alice/repo'`` into a
subprocess. Every step is a hard gate; nothing is spawned unless all of
them pass:

1. The command must be one of ``GIT_SERVICE_COMMANDS``.
2. The repository argument must sanitize to a valid ``owner/name`` and
   resolve inside the repository jail.
3. The subprocess runs in the jail root with an empty environment and its
   stdio relayed to the caller's streams.

Failures are never retried: a partially applied ``git-receive-pack`` must
not run twice.
"""

from __future__ import annotations

import logging
import shutil
import subprocess
import threading
from pathlib import Path
from typing import IO

from gitgood.constants import GIT_SERVICE_COMMANDS, RELAY_CHUNK_SIZE
from gitgood.errors import CommandError, InvalidArgumentError
from gitgood.jail import PathJail
from gitgood.namespace import is_valid_repo_path, sanitize_arg

logger = logging.getLogger(__name__)


def is_valid_command(command: str) -> bool:
    """Check *command* against the service allowlist."""
    return command in GIT_SERVICE_COMMANDS


# ---------------------------------------------------------------------------
# Stream Relays
# ---------------------------------------------------------------------------


def _read_chunk(source: IO[bytes]) -> bytes:
    """Read whatever is available, without waiting for a full chunk.

    The git protocol is conversational; a plain ``read(n)`` on a buffered
    stream would wait for *n* bytes and deadlock both sides.
    """
    read1 = getattr(source, "read1", None)
    if read1 is not None:
        return read1(RELAY_CHUNK_SIZE)
    return source.read(RELAY_CHUNK_SIZE)


def _pump(source: IO[bytes], sink: IO[bytes], close_sink: bool) -> None:
    """Copy *source* into *sink* until EOF or an I/O error on either side."""
    try:
        while True:
            chunk = _read_chunk(source)
            if not chunk:
                break
            sink.write(chunk)
            sink.flush()
    except (OSError, ValueError) as exc:
        # ValueError: the other side closed the file object under us
        logger.debug(f"Stream relay stopped: {exc}")
    finally:
        if close_sink:
            try:
                sink.close()
            except OSError:
                pass


def _start_pump(source: IO[bytes], sink: IO[bytes], close_sink: bool, name: str) -> threading.Thread:
    thread = threading.Thread(
        target=_pump, args=(source, sink, close_sink), name=name, daemon=True,
    )
    thread.start()
    return thread


# ---------------------------------------------------------------------------
# Dispatcher
# ---------------------------------------------------------------------------


class CommandDispatcher:
    """Validates and runs git service commands against a repository root.

    Args:
        repos_dir: Jail root holding ``<owner>/<name>`` repositories; also
            the working directory of every spawned service.
    """

    def __init__(self, repos_dir: str | Path) -> None:
        self._jail = PathJail(repos_dir)

    @property
    def jail(self) -> PathJail:
        return self._jail

    def resolve_repository(self, repo_arg: str) -> tuple[str, str]:
        """Validate a repository argument and locate it on the host.

        Returns:
            ``(repo_path, host_path)`` where *repo_path* is the clean
            ``owner/name`` string passed to git.

        Raises:
            InvalidArgumentError: If the argument is not a valid ``owner/name``.
            PathEscapeError: If it resolves outside the repository root.
        """
        repo_path = sanitize_arg(repo_arg)
        if not is_valid_repo_path(repo_path):
            raise InvalidArgumentError("invalid repository owner or name")
        return repo_path, self._jail.resolve(repo_path)

    def dispatch(
        self,
        command: str,
        repo_arg: str,
        stdin: IO[bytes],
        stdout: IO[bytes],
        stderr: IO[bytes],
    ) -> None:
        """Run *command* for *repo_arg* with the given byte streams.

        Blocks until the subprocess exits. There is no timeout; closing the
        session streams is what ends a stuck transfer.

        Raises:
            CommandError: If *command* is not allowed, the executable cannot
                be spawned, or it exits nonzero.
            InvalidArgumentError: If *repo_arg* fails validation.
            PathEscapeError: If *repo_arg* resolves outside the root.
        """
        if not is_valid_command(command):
            raise CommandError("invalid command")

        repo_path, host_path = self.resolve_repository(repo_arg)

        executable = shutil.which(command)
        if executable is None:
            raise CommandError(f"{command} is not available") from FileNotFoundError(command)

        logger.info(
            "Dispatching git service",
            extra={"command": command, "repository": repo_path},
        )
        logger.debug(f"Repository {repo_path} resolved to {host_path}")

        try:
            process = subprocess.Popen(
                [executable, repo_path],
                cwd=self._jail.root,
                env={},
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
            )
        except OSError as exc:
            raise CommandError(f"{command} could not be started") from exc

        self._relay(process, stdin, stdout, stderr)
        returncode = process.wait()

        if returncode != 0:
            cause = subprocess.CalledProcessError(returncode, [command, repo_path])
            raise CommandError(f"{command} failed with exit status {returncode}") from cause

        logger.info(
            "Git service finished",
            extra={"command": command, "repository": repo_path},
        )

    @staticmethod
    def _relay(
        process: subprocess.Popen,
        stdin: IO[bytes],
        stdout: IO[bytes],
        stderr: IO[bytes],
    ) -> None:
        """Wire the caller's streams to *process* and wait for its output.

        The stdin pump is not joined: the client may keep its side open
        after the service has exited, and that must not block the session.
        """
        assert process.stdin is not None
        assert process.stdout is not None
        assert process.stderr is not None

        _start_pump(stdin, process.stdin, close_sink=True, name="git-stdin")
        out_thread = _start_pump(process.stdout, stdout, close_sink=False, name="git-stdout")
        err_thread = _start_pump(process.stderr, stderr, close_sink=False, name="git-stderr")
        out_thread.join()
        err_thread.join()

