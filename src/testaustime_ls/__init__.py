"""Testaustime language server package root."""

from importlib.metadata import PackageNotFoundError, version

from testaustime_ls.exceptions import AuthError, NetworkError, PreconditionMissing

__all__ = ["__version__", "AuthError", "NetworkError", "PreconditionMissing"]

DIST_NAME = "testaustime-ls"

try:
    __version__ = version(DIST_NAME)
except PackageNotFoundError:  # source checkout without an install
    __version__ = "0+unknown"
