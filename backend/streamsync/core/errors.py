"""Error taxonomy for platform calls.

None of these are fatal: callers log, record and retry on the next tick.
"""

from __future__ import annotations

import httpx


class SyncError(Exception):
    """Base class for recoverable sync failures."""


class TransportError(SyncError):
    """The request never produced an HTTP response."""

    REFUSED = "refused"
    TIMEOUT = "timeout"
    OTHER = "other"

    def __init__(self, kind: str, message: str = "") -> None:
        super().__init__(message or kind)
        self.kind = kind

    @property
    def is_fast_retry(self) -> bool:
        return self.kind in (self.REFUSED, self.TIMEOUT)

    @classmethod
    def from_httpx(cls, exc: httpx.TransportError) -> TransportError:
        if isinstance(exc, httpx.TimeoutException):
            kind = cls.TIMEOUT
        elif isinstance(exc, httpx.ConnectError):
            kind = cls.REFUSED
        else:
            kind = cls.OTHER
        return cls(kind, str(exc) or type(exc).__name__)


class PlatformError(SyncError):
    """The platform answered with a non-2xx status."""

    def __init__(self, status: int, message: str = "") -> None:
        super().__init__(f"{status} {message}".strip())
        self.status = status
        self.message = message


class LookupMiss(SyncError):
    """A game id or template variable could not be resolved."""
