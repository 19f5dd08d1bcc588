"""gitgood - git repositories over SSH and SFTP with a jailed filesystem."""

from importlib.metadata import PackageNotFoundError, version as _pkg_version

try:
    __version__ = _pkg_version("gitgood")
except PackageNotFoundError:
    __version__ = "0.0.1"  # fallback for editable installs / dev
