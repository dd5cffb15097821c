"""Exception hierarchy shared by the rtls-ctl modules."""

from __future__ import annotations


class RtlsCtlError(RuntimeError):
    """Base class for failures reported to the operator."""


class RangeError(RtlsCtlError, ValueError):
    """Raised when an address range cannot be parsed or derived."""


class Mg3Error(RtlsCtlError):
    """Raised when an MG3 gateway rejects or fails a configuration action."""

    def __init__(self, message: str, *, status: int | None = None, code: int | None = None) -> None:
        super().__init__(message)
        self.status = status
        self.code = code
