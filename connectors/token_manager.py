"""
Token manager — authorize / exchange / refresh / reset the Dropbox credential.

This is the single interface that routes, the prober and the video adapter
use to get an access token.  Remote refresh failures never escape
``get_valid_access_token``: callers just see "not authenticated".
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional, Tuple

from connectors.base import BaseConnector
from connectors.token_store import TokenStore
from utils.errors import AuthExchangeError, StorageError
from utils.schemas import Credential

logger = logging.getLogger(__name__)


class TokenLifecycleManager:
    """Owns the OAuth authorization-code and refresh flows for one credential."""

    def __init__(
        self,
        store: TokenStore,
        connector: BaseConnector,
        *,
        refresh_skew_seconds: int = 300,
    ) -> None:
        self._store = store
        self._connector = connector
        self._refresh_skew = refresh_skew_seconds
        self._inflight_refresh: Optional[asyncio.Future] = None
        self.last_refresh_error: Optional[AuthExchangeError] = None

    @property
    def store(self) -> TokenStore:
        return self._store

    # ── Authorization-code flow ─────────────────────────────────────────

    def build_authorization_url(self) -> str:
        """Authorization endpoint URL; pure, no side effects."""
        return self._connector.get_auth_url()

    async def exchange_code(self, code: str) -> Credential:
        """
        Exchange an authorization code and persist the resulting credential.

        Raises ``AuthExchangeError`` (remote rejected / malformed answer) or
        ``StorageError`` (credential could not be saved).
        """
        if not code:
            raise AuthExchangeError("No authorization code supplied", error_code="no_code")

        payload = await self._connector.handle_callback(code)
        credential = Credential.from_token_response(payload)
        await self._store.save(credential)
        self.last_refresh_error = None
        logger.info(
            "Dropbox connected (refresh token: %s, expires: %s)",
            "yes" if credential.refresh_token else "no",
            credential.expires_at.isoformat() if credential.expires_at else "unknown",
        )
        return credential

    # ── Access / refresh ────────────────────────────────────────────────

    async def has_credentials(self) -> bool:
        return await self._store.load() is not None

    async def get_valid_access_token(self) -> Optional[str]:
        """
        Return a usable access token, refreshing transparently when expired.

        1. No stored credential → None.
        2. Not expired (or expiry unknown) → stored token unchanged.
        3. Expired with a refresh token → refresh; new token, or None on failure.
        4. Expired without a refresh token → None.
        """
        try:
            credential = await self._store.load()
        except StorageError as exc:
            logger.error("Could not load Dropbox credential: %s", exc)
            return None

        if credential is None:
            return None
        if not credential.is_expired(self._refresh_skew):
            return credential.access_token
        if not credential.refresh_token:
            logger.warning("Dropbox token expired and no refresh token is stored")
            self.last_refresh_error = None
            return None

        refreshed = await self.refresh_access_token()
        return refreshed.access_token if refreshed else None

    async def refresh_access_token(self) -> Optional[Credential]:
        """
        Exchange the stored refresh token for a new credential.

        Concurrent callers share one in-flight refresh.  On failure the
        previous credential stays in the store and ``last_refresh_error``
        records why.
        """
        task = self._inflight_refresh
        if task is None or task.done():
            task = asyncio.ensure_future(self._refresh_once())
            self._inflight_refresh = task
        return await asyncio.shield(task)

    async def _refresh_once(self) -> Optional[Credential]:
        try:
            credential = await self._store.load()
            if credential is None or not credential.refresh_token:
                logger.info("No Dropbox refresh token available; authenticate first")
                self.last_refresh_error = None
                return None

            try:
                payload = await self._connector.refresh_access_token(credential.refresh_token)
            except AuthExchangeError as exc:
                self.last_refresh_error = exc
                logger.warning("Dropbox token refresh failed (%s): %s", exc.error_code, exc.message)
                return None

            refreshed = Credential.from_token_response(
                payload,
                previous_refresh_token=credential.refresh_token,
                refreshed=True,
            )
            await self._store.save(refreshed)
            self.last_refresh_error = None
            logger.info("Refreshed Dropbox access token")
            return refreshed
        except StorageError as exc:
            self.last_refresh_error = AuthExchangeError(str(exc), error_code="storage_error")
            logger.error("Dropbox token refresh could not be persisted: %s", exc)
            return None
        finally:
            self._inflight_refresh = None

    # ── Reset ───────────────────────────────────────────────────────────

    async def reset(self) -> Tuple[bool, str]:
        """Forget the stored credential.  Never raises."""
        try:
            await self._store.clear()
        except StorageError as exc:
            logger.error("Failed to reset Dropbox connection: %s", exc)
            return False, f"Failed to reset Dropbox connection: {exc}"
        self.last_refresh_error = None
        logger.info("Dropbox connection reset")
        return True, "Dropbox connection reset successfully. You will need to reconnect."
