"""Error taxonomy for the Testaustime language server."""

from __future__ import annotations


class TestaustimeError(RuntimeError):
    """Base class for failures in the reporting path.

    None of these are allowed to fail a protocol request; they end up in the
    editor's log panel through ``window/logMessage``.
    """


class AuthError(TestaustimeError):
    """The API key was rejected, or the service could not be reached to check it."""

    def __init__(self, cause: BaseException):
        super().__init__(str(cause))
        self.cause = cause


class NetworkError(TestaustimeError):
    """A heartbeat or flush call failed. Never retried."""

    def __init__(self, operation: str, cause: BaseException):
        super().__init__(f"{operation} failed: {cause}")
        self.operation = operation
        self.cause = cause


class PreconditionMissing(TestaustimeError):
    """The API client or workspace name was absent when a heartbeat was due."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message
