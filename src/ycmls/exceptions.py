"""Error taxonomy for the ycmd language server."""

from __future__ import annotations


class YcmlsError(RuntimeError):
    """Base class for errors raised by ycmls."""


class ConfigurationError(YcmlsError):
    """Client settings are unusable (missing or empty ycmd path, bad types).

    Reported to the user once; previously stored settings stay in place.
    """


class SessionStartError(YcmlsError):
    """The ycmd backend could not be started or never became ready."""


class BackendError(YcmlsError):
    """A ycmd request failed.

    ``exception_type`` carries the name of the exception ycmd reported in its
    error payload, when there was one.
    """

    def __init__(self, message: str, *, exception_type: str = "", status: int | None = None):
        super().__init__(message)
        self.exception_type = exception_type
        self.status = status


class HmacMismatchError(BackendError):
    """A ycmd response failed HMAC validation."""
