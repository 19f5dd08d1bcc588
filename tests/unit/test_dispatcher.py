"""Unit tests for gitgood/dispatcher.py.

Every test mocks ``subprocess.Popen`` so nothing is ever spawned; the
assertions check that nothing *would* be spawned unless the command is on
the allowlist and the repository argument is a clean ``owner/name``.
"""

from __future__ import annotations

import io
import subprocess
from unittest.mock import MagicMock, patch

import pytest

from gitgood.dispatcher import CommandDispatcher, _pump, _read_chunk, is_valid_command
from gitgood.errors import CommandError, InvalidArgumentError

EXE = "/usr/bin/git-upload-pack"


def _fake_process(returncode=0, out=b"", err=b""):
    process = MagicMock()
    process.stdin = io.BytesIO()
    process.stdout = io.BytesIO(out)
    process.stderr = io.BytesIO(err)
    process.wait.return_value = returncode
    return process


def _streams(data=b"0000"):
    return io.BytesIO(data), io.BytesIO(), io.BytesIO()


class TestIsValidCommand:
    """Tests for is_valid_command()."""

    @pytest.mark.parametrize("command", ["git-upload-pack", "git-receive-pack"])
    def test_allowed(self, command):
        assert is_valid_command(command) is True

    @pytest.mark.parametrize(
        "command",
        ["git-upload-archive", "git", "rm", "sh", "GIT-UPLOAD-PACK", "git-upload-pack ", ""],
    )
    def test_rejected(self, command):
        assert is_valid_command(command) is False


class TestResolveRepository:
    """Tests for CommandDispatcher.resolve_repository()."""

    def test_quoted_argument(self, jail_root):
        repo_path, host_path = CommandDispatcher(jail_root).resolve_repository("'alice/repo'")
        assert repo_path == "alice/repo"
        assert host_path == str(jail_root / "alice" / "repo")

    @pytest.mark.parametrize("arg", ["alice", "alice/repo/extra", "Alice/repo", "../alice/repo", "/alice/repo"])
    def test_rejected(self, jail_root, arg):
        with pytest.raises(InvalidArgumentError):
            CommandDispatcher(jail_root).resolve_repository(arg)


class TestDispatch:
    """Tests for CommandDispatcher.dispatch()."""

    @patch("gitgood.dispatcher.subprocess.Popen")
    @patch("gitgood.dispatcher.shutil.which", return_value=EXE)
    def test_spawns_allowed_command(self, mock_which, mock_popen, jail_root):
        mock_popen.return_value = _fake_process(out=b"refs", err=b"note")
        stdin, stdout, stderr = _streams()

        CommandDispatcher(jail_root).dispatch("git-upload-pack", "'alice/repo'", stdin, stdout, stderr)

        mock_which.assert_called_once_with("git-upload-pack")
        args, kwargs = mock_popen.call_args
        assert args[0] == [EXE, "alice/repo"]
        assert kwargs["cwd"] == str(jail_root)
        assert kwargs["env"] == {}
        assert kwargs["stdin"] == subprocess.PIPE
        assert stdout.getvalue() == b"refs"
        assert stderr.getvalue() == b"note"

    @patch("gitgood.dispatcher.subprocess.Popen")
    def test_disallowed_command_never_spawns(self, mock_popen, jail_root):
        with pytest.raises(CommandError, match="invalid command"):
            CommandDispatcher(jail_root).dispatch("rm", "-rf /", *_streams())
        mock_popen.assert_not_called()

    @patch("gitgood.dispatcher.shutil.which")
    @patch("gitgood.dispatcher.subprocess.Popen")
    def test_shell_command_string_has_no_side_effects(self, mock_popen, mock_which, jail_root):
        with pytest.raises(CommandError):
            CommandDispatcher(jail_root).dispatch("rm -rf /", "alice/repo", *_streams())
        mock_popen.assert_not_called()
        mock_which.assert_not_called()
        assert list(jail_root.iterdir()) == []

    @patch("gitgood.dispatcher.subprocess.Popen")
    def test_command_checked_before_argument(self, mock_popen, jail_root):
        with pytest.raises(CommandError):
            CommandDispatcher(jail_root).dispatch("sh", "../../etc/passwd", *_streams())
        mock_popen.assert_not_called()

    @patch("gitgood.dispatcher.subprocess.Popen")
    @patch("gitgood.dispatcher.shutil.which", return_value=EXE)
    def test_traversal_never_spawns(self, mock_which, mock_popen, jail_root):
        with pytest.raises(InvalidArgumentError):
            CommandDispatcher(jail_root).dispatch("git-receive-pack", "'../../etc'", *_streams())
        mock_popen.assert_not_called()

    @patch("gitgood.dispatcher.subprocess.Popen")
    @patch("gitgood.dispatcher.shutil.which", return_value=None)
    def test_missing_executable(self, mock_which, mock_popen, jail_root):
        with pytest.raises(CommandError, match="not available") as exc_info:
            CommandDispatcher(jail_root).dispatch("git-upload-pack", "alice/repo", *_streams())
        assert isinstance(exc_info.value.__cause__, FileNotFoundError)
        mock_popen.assert_not_called()

    @patch("gitgood.dispatcher.subprocess.Popen", side_effect=PermissionError("denied"))
    @patch("gitgood.dispatcher.shutil.which", return_value=EXE)
    def test_spawn_failure(self, mock_which, mock_popen, jail_root):
        with pytest.raises(CommandError, match="could not be started") as exc_info:
            CommandDispatcher(jail_root).dispatch("git-upload-pack", "alice/repo", *_streams())
        assert isinstance(exc_info.value.__cause__, PermissionError)

    @patch("gitgood.dispatcher.subprocess.Popen")
    @patch("gitgood.dispatcher.shutil.which", return_value=EXE)
    def test_nonzero_exit(self, mock_which, mock_popen, jail_root):
        mock_popen.return_value = _fake_process(returncode=128, err=b"fatal: not a git repository")
        stdin, stdout, stderr = _streams()

        with pytest.raises(CommandError, match="exit status 128") as exc_info:
            CommandDispatcher(jail_root).dispatch("git-receive-pack", "alice/repo", stdin, stdout, stderr)

        cause = exc_info.value.__cause__
        assert isinstance(cause, subprocess.CalledProcessError)
        assert cause.returncode == 128
        assert stderr.getvalue() == b"fatal: not a git repository"

    @patch("gitgood.dispatcher.subprocess.Popen")
    @patch("gitgood.dispatcher.shutil.which", return_value=EXE)
    def test_not_retried(self, mock_which, mock_popen, jail_root):
        mock_popen.return_value = _fake_process(returncode=1)
        with pytest.raises(CommandError):
            CommandDispatcher(jail_root).dispatch("git-receive-pack", "alice/repo", *_streams())
        assert mock_popen.call_count == 1


class TestRelay:
    """Tests for the stream relay helpers."""

    def test_pump_copies_everything(self):
        source = io.BytesIO(b"x" * 100_000)
        sink = io.BytesIO()
        _pump(source, sink, close_sink=False)
        assert sink.getvalue() == b"x" * 100_000

    def test_pump_closes_sink(self):
        sink = io.BytesIO()
        _pump(io.BytesIO(b"data"), sink, close_sink=True)
        assert sink.closed

    def test_pump_stops_on_write_error(self):
        sink = MagicMock()
        sink.write.side_effect = BrokenPipeError()
        _pump(io.BytesIO(b"data"), sink, close_sink=True)
        sink.close.assert_called_once()

    def test_read_chunk_without_read1(self):
        class Plain:
            def read(self, n):
                return b"abc"

        assert _read_chunk(Plain()) == b"abc"
