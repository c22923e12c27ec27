"""
Connection prober — classify the stored Dropbox credential right now.

``test_connection`` runs a bounded state machine::

    PROBING ──(token stale)──▶ REFRESHING ──(refreshed)──▶ FINAL_PROBE
       │                           │                           │
       ▼                           ▼                           ▼
    status                       expired                     status

At most one refresh is attempted per probe and the final probe never
refreshes again.  The stored credential is never cleared here.
"""

from __future__ import annotations

import logging
import time
from enum import Enum
from typing import Any, Dict, Optional

import httpx

from connectors.dropbox_api import DropboxAPIClient, DropboxAPIError
from connectors.token_manager import TokenLifecycleManager
from utils.errors import AuthExchangeError
from utils.schemas import ConnectionState, ConnectionStatus, Credential, PingResult

logger = logging.getLogger(__name__)

_PING_URL = "https://api.dropboxapi.com/2"

_AUTHENTICATE = "authenticate"
_RECONNECT = "reconnect"
_RETRY_LATER = "retry later"


class ProbeStep(str, Enum):
    PROBING = "probing"
    REFRESHING = "refreshing"
    FINAL_PROBE = "final_probe"


class ConnectionProber:
    def __init__(
        self,
        manager: TokenLifecycleManager,
        *,
        timeout: float = 10.0,
        ping_timeout: float = 5.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._manager = manager
        self._timeout = timeout
        self._ping_timeout = ping_timeout
        self._transport = transport

    # ── Ping ────────────────────────────────────────────────────────────

    async def ping_remote_api(self) -> PingResult:
        """HEAD the API root; any 2xx/4xx answer means Dropbox is reachable."""
        started = time.perf_counter()
        try:
            async with httpx.AsyncClient(timeout=self._ping_timeout, transport=self._transport) as client:
                resp = await client.head(_PING_URL)
        except httpx.TimeoutException:
            return PingResult(reachable=False, latency_ms=_elapsed_ms(started), status_code=408)
        except httpx.HTTPError as exc:
            logger.warning("Dropbox API ping failed: %s", exc)
            return PingResult(reachable=False, latency_ms=_elapsed_ms(started))

        return PingResult(
            reachable=resp.is_success or 400 <= resp.status_code < 500,
            latency_ms=_elapsed_ms(started),
            status_code=resp.status_code,
        )

    # ── Composite check ─────────────────────────────────────────────────

    async def test_connection(self) -> ConnectionStatus:
        credential = await self._load_credential()
        if credential is None:
            return _status(
                ConnectionState.NOT_CONFIGURED,
                "no_token",
                retryable=False,
                action=_AUTHENTICATE,
                details={"tokenExists": False},
            )

        details = _credential_details(credential)
        token = await self._manager.get_valid_access_token()
        if token is None:
            return self._after_failed_refresh(details)

        # a different token means get_valid_access_token already refreshed once
        step = ProbeStep.PROBING
        if token != credential.access_token:
            step = ProbeStep.FINAL_PROBE
            details = _credential_details(await self._load_credential() or credential)
        while True:
            try:
                account = await self._client(token).get_current_account()
            except DropboxAPIError as exc:
                if step is ProbeStep.PROBING and exc.is_expired_token:
                    step = ProbeStep.REFRESHING
                    logger.info("Dropbox reported %s; refreshing once", exc.error_tag)
                    refreshed = await self._manager.refresh_access_token()
                    if refreshed is None:
                        return _status(
                            ConnectionState.EXPIRED,
                            "token_expired",
                            retryable=True,
                            action=_RECONNECT,
                            details={**details, "error": exc.message},
                        )
                    token = refreshed.access_token
                    details = _credential_details(refreshed)
                    step = ProbeStep.FINAL_PROBE
                    continue
                return _classify_api_error(exc, details)

            return _status(
                ConnectionState.CONNECTED,
                None,
                retryable=None,
                action=None,
                details={**details, "accountInfo": _account_summary(account)},
            )

    # ── internals ───────────────────────────────────────────────────────

    async def _load_credential(self) -> Optional[Credential]:
        return await self._manager.store.load()

    def _client(self, token: str) -> DropboxAPIClient:
        return DropboxAPIClient(token, timeout=self._timeout, transport=self._transport)

    def _after_failed_refresh(self, details: Dict[str, Any]) -> ConnectionStatus:
        """A credential is stored but no usable token came back."""
        error: Optional[AuthExchangeError] = self._manager.last_refresh_error
        details = {**details, "error": error.message if error else None}

        if error is not None and error.error_code == "invalid_grant":
            return _status(ConnectionState.REVOKED, "invalid_grant", retryable=False, action=_RECONNECT, details=details)
        if error is not None and error.is_transport_failure:
            return _status(
                ConnectionState.UNREACHABLE,
                error.error_code or "network_error",
                retryable=True,
                action=_RETRY_LATER,
                details=details,
            )
        return _status(
            ConnectionState.EXPIRED,
            error.error_code if error else "token_expired",
            retryable=True,
            action=_RECONNECT,
            details=details,
        )


def _classify_api_error(exc: DropboxAPIError, details: Dict[str, Any]) -> ConnectionStatus:
    details = {**details, "error": exc.message}
    if exc.is_rate_limited:
        return _status(ConnectionState.UNREACHABLE, "rate_limited", retryable=True, action=_RETRY_LATER, details=details)
    if exc.is_auth_error:
        return _status(
            ConnectionState.REVOKED,
            exc.root_tag or "invalid_token",
            retryable=False,
            action=_RECONNECT,
            details=details,
        )
    if exc.is_transport_failure or (exc.status_code or 0) >= 500:
        return _status(
            ConnectionState.UNREACHABLE,
            exc.error_tag or "network_error",
            retryable=True,
            action=_RETRY_LATER,
            details=details,
        )
    # Unexpected 4xx from a call that takes no arguments: treat as a bad credential.
    return _status(
        ConnectionState.REVOKED,
        exc.root_tag or f"http_{exc.status_code}",
        retryable=False,
        action=_RECONNECT,
        details=details,
    )


def _status(
    state: ConnectionState,
    error_code: Optional[str],
    *,
    retryable: Optional[bool],
    action: Optional[str],
    details: Dict[str, Any],
) -> ConnectionStatus:
    return ConnectionStatus(
        status=state,
        error_code=error_code,
        retryable=retryable,
        suggested_action=action,
        details=details,
    )


def _credential_details(credential: Credential) -> Dict[str, Any]:
    return {
        "tokenExists": True,
        "tokenExpiry": credential.expires_at.isoformat() if credential.expires_at else None,
        "refreshTokenExists": bool(credential.refresh_token),
    }


def _account_summary(account: Dict[str, Any]) -> Dict[str, Any]:
    name = account.get("name") or {}
    return {
        "accountId": account.get("account_id"),
        "displayName": name.get("display_name"),
        "email": account.get("email"),
    }


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)
