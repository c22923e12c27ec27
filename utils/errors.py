"""
Error taxonomy shared by the connectors, the video adapter and the reel store.

Remote failures are translated into these types at the adapter boundary;
``api.middleware`` turns them into structured JSON responses.
"""

from __future__ import annotations

from typing import Optional


class DropReelError(Exception):
    """Base class for every error raised deliberately by the service."""

    error_code: str = "error"

    def __init__(self, message: str, *, error_code: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        if error_code:
            self.error_code = error_code


class AuthExchangeError(DropReelError):
    """The token endpoint rejected a code exchange or refresh, or was unreachable."""

    error_code = "auth_exchange_failed"

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        error_code: Optional[str] = None,
    ) -> None:
        super().__init__(message, error_code=error_code)
        self.status_code = status_code

    @property
    def is_transport_failure(self) -> bool:
        """No usable answer from Dropbox (network error, timeout or 5xx)."""
        return self.status_code is None or self.status_code >= 500


class StorageError(DropReelError):
    """Local persistence (credential or reel document) failed."""

    error_code = "storage_error"


class ListingError(DropReelError):
    """A Dropbox folder/file call failed; carries the remote status and tag."""

    error_code = "listing_failed"

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        error_code: Optional[str] = None,
    ) -> None:
        super().__init__(message, error_code=error_code)
        self.status_code = status_code


class NotFoundError(DropReelError):
    """A referenced reel (or other record) does not exist."""

    error_code = "not_found"
