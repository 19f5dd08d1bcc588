"""Exception hierarchy for gitgood.

Provides a structured exception tree so callers can catch broad
categories (``GitGoodError``) or specific failure modes.

This module is a base-layer module: it must NOT import from any
other ``gitgood`` submodule.
"""

from __future__ import annotations


class GitGoodError(Exception):
    """Base exception for all gitgood errors."""


class InvalidArgumentError(GitGoodError):
    """Input shape failures (bad identifiers, absolute paths, traversal)."""


class PathEscapeError(GitGoodError):
    """A path would resolve outside of its jail root."""


class CommandError(GitGoodError):
    """Disallowed commands and failed or unspawnable subprocesses."""


class RepositoryError(GitGoodError):
    """Failures while provisioning a repository."""
