"""git-sandbox - sandboxed git operations for remote agents."""

from importlib.metadata import PackageNotFoundError, version as _pkg_version

try:
    __version__ = _pkg_version("git-sandbox")
except PackageNotFoundError:
    __version__ = "0.1.0"  # fallback for editable installs / dev
