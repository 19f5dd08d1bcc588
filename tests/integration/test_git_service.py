"""Integration tests against real git executables.

Provision a repository with ``git init`` and run both service commands
through the dispatcher, including repositories made by the shell's
``create`` command. Skipped when git is not installed.
"""

import io
import shutil

import pytest

from gitgood.dispatcher import CommandDispatcher
from gitgood.errors import CommandError, RepositoryError
from gitgood.repository import RepositoryManager
from gitgood.shell import execute_command

pytestmark = [
    pytest.mark.integration,
    pytest.mark.skipif(
        any(shutil.which(exe) is None for exe in ("git", "git-upload-pack", "git-receive-pack")),
        reason="git service executables are not installed",
    ),
]


@pytest.fixture
def repo(jail_root):
    """An empty repository alice/proj under jail_root."""
    RepositoryManager(jail_root).create("alice", "proj")
    return jail_root


def test_created_repository_is_a_git_repository(repo):
    assert (repo / "alice" / "proj" / ".git").is_dir()
    with pytest.raises(RepositoryError, match="already exists"):
        RepositoryManager(repo).create("alice", "proj")


@pytest.mark.parametrize("command", ["git-upload-pack", "git-receive-pack"])
def test_service_advertises_and_exits(repo, command):
    stdout, stderr = io.BytesIO(), io.BytesIO()
    dispatcher = CommandDispatcher(repo)

    dispatcher.dispatch(command, "'alice/proj'", io.BytesIO(b"0000"), stdout, stderr)

    # pkt-line advertisement, terminated by a flush packet
    assert stdout.getvalue().endswith(b"0000")


def test_upload_and_receive_target_same_directory(repo):
    dispatcher = CommandDispatcher(repo)
    _, upload = dispatcher.resolve_repository("alice/proj")
    _, receive = dispatcher.resolve_repository("'alice/proj'")
    assert upload == receive == str(repo / "alice" / "proj")


def test_missing_repository_fails(repo):
    with pytest.raises(CommandError, match="exit status"):
        CommandDispatcher(repo).dispatch(
            "git-upload-pack", "bob/none", io.BytesIO(b"0000"), io.BytesIO(), io.BytesIO(),
        )


@pytest.mark.parametrize("command", ["git-upload-pack", "git-receive-pack"])
def test_shell_created_repository_is_served(jail_root, command):
    reply = execute_command("create alice/proj\n", "alice", RepositoryManager(jail_root))
    assert reply.text == "Created repo alice/proj."

    stdout, stderr = io.BytesIO(), io.BytesIO()
    CommandDispatcher(jail_root).dispatch(command, "'alice/proj'", io.BytesIO(b"0000"), stdout, stderr)

    assert stdout.getvalue().endswith(b"0000")
    assert b"fatal" not in stderr.getvalue()
