"""
Error taxonomy for the Patreon sync pipeline.

Everything deriving from :class:`PatreonError` is contained within a single
sync cycle: it is logged, the cycle ends without publishing, and the next tick
retries. :class:`ExpiredCredentialFatal` deliberately sits outside that
hierarchy so a blanket ``except PatreonError`` never swallows it.
"""

from __future__ import annotations

from datetime import datetime


class PatreonError(Exception):
    """Base class for recoverable sync failures."""


class TransportError(PatreonError):
    """The request never produced a usable HTTP response."""


class UpstreamStatusError(TransportError):
    """Patreon answered with a non-2xx status code."""

    def __init__(self, status: int, body: str, *, action: str = "request") -> None:
        super().__init__(f"{action} returned {status} status code")
        self.status = status
        self.body = body


class DecodeError(PatreonError):
    """The response body could not be decoded into the expected shape."""


class PersistenceError(PatreonError):
    """Refreshed tokens could not be written to the credential table."""


class CredentialExpiredError(PatreonError):
    """An API call was attempted with an access token past its expiry."""

    def __init__(self, expires_at: datetime) -> None:
        super().__init__(f"access token has already expired (expired at {expires_at.isoformat()})")
        self.expires_at = expires_at


class SyncCancelledError(PatreonError):
    """A phase deadline fired before the operation completed."""

    def __init__(self, phase: str, timeout: float | None = None) -> None:
        detail = f" after {timeout:g}s" if timeout is not None else ""
        super().__init__(f"{phase} cancelled{detail}")
        self.phase = phase
        self.timeout = timeout


class ExpiredCredentialFatal(Exception):
    """
    The stored credential expired before any refresh succeeded.

    The refresh token may already be unusable, so the process cannot recover
    on its own; an operator has to seed a fresh token pair.
    """


__all__ = [
    "PatreonError",
    "TransportError",
    "UpstreamStatusError",
    "DecodeError",
    "PersistenceError",
    "CredentialExpiredError",
    "SyncCancelledError",
    "ExpiredCredentialFatal",
]
