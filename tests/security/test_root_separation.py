"""SFTP clients must not be able to reach repository internals.

With default settings, a write aimed at a repository's hooks directory
lands in the SFTP tree instead of next to the repository ``git`` runs.
"""

import os

import pytest

from gitgood.fileops import FileOperationHandler
from gitgood.models import FileMethod, FileOperationRequest, OpenFlags, ServerSettings

pytestmark = [pytest.mark.security]


@pytest.fixture
def settings(monkeypatch, tmp_path):
    for key in ("GITGOOD_REPOS_DIR", "GITGOOD_SFTP_ROOT"):
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("GITGOOD_HOME", str(tmp_path / "home"))
    return ServerSettings.from_env()


@pytest.mark.parametrize(
    "path",
    [
        "/alice/proj/.git/hooks/post-receive",
        "/../repos/alice/proj/.git/hooks/post-receive",
        "/../../home/repos/alice/proj/.git/hooks/post-receive",
    ],
)
def test_hook_write_stays_in_sftp_tree(settings, path):
    hooks = settings.repos_dir / "alice" / "proj" / ".git" / "hooks"
    hooks.mkdir(parents=True)
    handler = FileOperationHandler(settings.sftp_root)

    request = FileOperationRequest(
        method=FileMethod.WRITE, path=path, flags=OpenFlags(create=True, truncate=True),
    )
    with handler.open_write(request) as handle:
        handle.write_at(b"#!/bin/sh\nexit 1\n", 0)

    assert os.listdir(hooks) == []
    assert handle.path.startswith(str(settings.sftp_root) + os.sep)
