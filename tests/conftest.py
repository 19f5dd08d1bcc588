"""
Top-level pytest conftest.py -- shared fixtures for gitgood tests.

Provides:
    jail_root    - empty directory used as a jail root
    outside_dir  - sibling directory that must never be reachable from the jail
    handler      - FileOperationHandler rooted at jail_root
    umask        - the process umask, for checking created file modes
"""

import logging
import os

import pytest

from gitgood.fileops import FileOperationHandler


@pytest.fixture
def jail_root(tmp_path):
    """Create an empty jail root directory."""
    root = tmp_path / "jail"
    root.mkdir()
    return root


@pytest.fixture
def outside_dir(tmp_path):
    """Create a directory next to the jail holding a secret file."""
    outside = tmp_path / "outside"
    outside.mkdir()
    (outside / "secret").write_text("do not read")
    return outside


@pytest.fixture
def handler(jail_root):
    """FileOperationHandler confined to jail_root."""
    return FileOperationHandler(jail_root)


@pytest.fixture(scope="session")
def umask():
    """Return the current umask without changing it."""
    current = os.umask(0)
    os.umask(current)
    return current


@pytest.fixture(autouse=True)
def _restore_root_logger():
    """Undo any handler changes setup_logging makes during a test."""
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)
