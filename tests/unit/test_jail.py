"""Unit tests for gitgood/jail.py.

Tests cover:
- clean_virtual: canonical rooted form
- PathJail.resolve: lexical containment, NUL rejection
- PathJail.confine: symlink-following re-check
- PathJail.virtual / contains: host to virtual mapping
- roots_overlap: separation of the SFTP and repository roots
"""

from __future__ import annotations

import os

import pytest

from gitgood.errors import InvalidArgumentError, PathEscapeError
from gitgood.jail import PathJail, _is_within, clean_virtual, roots_overlap


class TestCleanVirtual:
    """Tests for clean_virtual()."""

    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("", "/"),
            ("/", "/"),
            ("a/b", "/a/b"),
            ("/a/./b/", "/a/b"),
            ("../../etc/passwd", "/etc/passwd"),
            ("/a/../../b", "/b"),
            ("//a", "/a"),
        ],
    )
    def test_clean(self, raw, expected):
        assert clean_virtual(raw) == expected


class TestIsWithin:
    """Tests for the boundary-aware containment helper."""

    def test_root_itself(self):
        assert _is_within("/srv/root", "/srv/root") is True

    def test_child(self):
        assert _is_within("/srv/root/a", "/srv/root") is True

    def test_sibling_with_shared_prefix(self):
        assert _is_within("/srv/root-evil", "/srv/root") is False

    def test_parent(self):
        assert _is_within("/srv", "/srv/root") is False


class TestRootsOverlap:
    """Tests for roots_overlap()."""

    def test_same_root(self, tmp_path):
        assert roots_overlap(tmp_path, tmp_path) is True

    def test_nested_either_way(self, tmp_path):
        repos = tmp_path / "repos"
        assert roots_overlap(repos / "alice", repos) is True
        assert roots_overlap(tmp_path, repos) is True

    def test_siblings(self, tmp_path):
        assert roots_overlap(tmp_path / "repos", tmp_path / "files") is False

    def test_sibling_with_shared_prefix(self, tmp_path):
        assert roots_overlap(tmp_path / "repos", tmp_path / "repos-files") is False

    def test_symlink_alias(self, tmp_path):
        repos = tmp_path / "repos"
        repos.mkdir()
        alias = tmp_path / "files"
        os.symlink(repos, alias)
        assert roots_overlap(alias, repos) is True


class TestResolve:
    """Tests for PathJail.resolve()."""

    def test_root_is_absolute(self, tmp_path):
        jail = PathJail(os.path.relpath(tmp_path))
        assert os.path.isabs(jail.root)
        assert jail.root == str(tmp_path)

    @pytest.mark.parametrize("vp", ["", "/", ".", "..", "/../.."])
    def test_empty_and_dots_resolve_to_root(self, jail_root, vp):
        assert PathJail(jail_root).resolve(vp) == str(jail_root)

    def test_nested(self, jail_root):
        assert PathJail(jail_root).resolve("/alice/repo") == os.path.join(str(jail_root), "alice", "repo")

    def test_relative_same_as_absolute(self, jail_root):
        jail = PathJail(jail_root)
        assert jail.resolve("alice/repo") == jail.resolve("/alice/repo")

    def test_parent_segments_clamped_to_root(self, jail_root):
        resolved = PathJail(jail_root).resolve("../../etc/passwd")
        assert resolved == os.path.join(str(jail_root), "etc", "passwd")

    def test_does_not_touch_filesystem(self, tmp_path):
        missing = tmp_path / "not-created"
        resolved = PathJail(missing).resolve("a")
        assert resolved == str(missing / "a")
        assert not missing.exists()

    def test_nul_rejected(self, jail_root):
        with pytest.raises(InvalidArgumentError):
            PathJail(jail_root).resolve("a\x00b")

    def test_escape_error_message_uses_virtual_path(self, jail_root, monkeypatch):
        """If containment ever fails, the host root is not revealed."""
        monkeypatch.setattr("gitgood.jail._is_within", lambda path, root: False)
        with pytest.raises(PathEscapeError) as exc_info:
            PathJail(jail_root).resolve("a/b")
        assert str(jail_root) not in str(exc_info.value)


class TestConfine:
    """Tests for PathJail.confine()."""

    def test_plain_path_passes(self, jail_root):
        jail = PathJail(jail_root)
        path = jail.resolve("a")
        assert jail.confine(path) == path

    def test_symlink_out_rejected(self, jail_root, outside_dir):
        os.symlink(outside_dir, jail_root / "esc")
        jail = PathJail(jail_root)
        with pytest.raises(PathEscapeError):
            jail.confine(jail.resolve("/esc"))

    def test_path_below_symlink_out_rejected(self, jail_root, outside_dir):
        os.symlink(outside_dir, jail_root / "esc")
        jail = PathJail(jail_root)
        with pytest.raises(PathEscapeError):
            jail.confine(jail.resolve("/esc/secret"), follow_final=False)

    def test_link_itself_allowed_without_follow(self, jail_root, outside_dir):
        os.symlink(outside_dir, jail_root / "esc")
        jail = PathJail(jail_root)
        path = jail.resolve("/esc")
        assert jail.confine(path, follow_final=False) == path

    def test_internal_symlink_allowed(self, jail_root):
        (jail_root / "real").mkdir()
        os.symlink(jail_root / "real", jail_root / "alias")
        jail = PathJail(jail_root)
        path = jail.resolve("/alias")
        assert jail.confine(path) == path

    def test_symlinked_root(self, tmp_path):
        """A root reached through a symlink still confines its own tree."""
        real = tmp_path / "real-root"
        real.mkdir()
        os.symlink(real, tmp_path / "linked-root")
        jail = PathJail(tmp_path / "linked-root")
        path = jail.resolve("/file")
        assert jail.confine(path) == path


class TestVirtual:
    """Tests for PathJail.virtual() and contains()."""

    def test_root_maps_to_slash(self, jail_root):
        assert PathJail(jail_root).virtual(str(jail_root)) == "/"

    def test_child(self, jail_root):
        assert PathJail(jail_root).virtual(str(jail_root / "a" / "b")) == "/a/b"

    def test_outside_collapses_to_slash(self, jail_root, outside_dir):
        assert PathJail(jail_root).virtual(str(outside_dir)) == "/"

    def test_contains(self, jail_root, outside_dir):
        jail = PathJail(jail_root)
        assert jail.contains(str(jail_root / "x"))
        assert not jail.contains(str(outside_dir))

    def test_repr(self, jail_root):
        assert repr(PathJail(jail_root)) == f"PathJail({str(jail_root)!r})"
