"""
Dropbox auth routes — start, callback, refresh, reset, status, test.

Route prefix: {api_prefix}/auth
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import JSONResponse, RedirectResponse

from api.dependencies import get_prober, get_settings, get_token_manager
from config.settings import Settings
from connectors.prober import ConnectionProber
from connectors.token_manager import TokenLifecycleManager
from utils.errors import AuthExchangeError, StorageError
from utils.schemas import Credential

logger = logging.getLogger(__name__)

router = APIRouter(tags=["auth"])

ACCESS_TOKEN_COOKIE = "dropbox_access_token"
REFRESH_TOKEN_COOKIE = "dropbox_refresh_token"
EXPIRES_AT_COOKIE = "dropbox_token_expires_at"
_CREDENTIAL_COOKIES = (ACCESS_TOKEN_COOKIE, REFRESH_TOKEN_COOKIE, EXPIRES_AT_COOKIE)


# ── Cookie helpers ─────────────────────────────────────────────────────


def _set_credential_cookies(response, credential: Credential, settings: Settings) -> None:
    """Mirror the credential into httpOnly cookies for stateless deployments."""
    values = {
        ACCESS_TOKEN_COOKIE: credential.access_token,
        REFRESH_TOKEN_COOKIE: credential.refresh_token,
        EXPIRES_AT_COOKIE: str(int(credential.expires_at.timestamp() * 1000)) if credential.expires_at else None,
    }
    for name, value in values.items():
        if value is None:
            continue
        response.set_cookie(
            name,
            value,
            max_age=settings.cookie_max_age_seconds,
            path="/",
            httponly=True,
            secure=settings.cookie_secure,
            samesite="lax",
        )


def _clear_credential_cookies(response, settings: Settings) -> None:
    for name in _CREDENTIAL_COOKIES:
        response.delete_cookie(name, path="/", secure=settings.cookie_secure, httponly=True, samesite="lax")


def _redirect_target(settings: Settings, **params: str) -> str:
    base = settings.post_auth_redirect or "/"
    separator = "&" if "?" in base else "?"
    return f"{base}{separator}{urlencode(params)}"


# ── Routes ─────────────────────────────────────────────────────────────


@router.get("/start")
async def start_auth(
    manager: TokenLifecycleManager = Depends(get_token_manager),
) -> RedirectResponse:
    """Redirect the browser to Dropbox's consent page."""
    return RedirectResponse(manager.build_authorization_url(), status_code=status.HTTP_307_TEMPORARY_REDIRECT)


@router.get("/callback")
async def oauth_callback(
    code: Optional[str] = Query(None),
    manager: TokenLifecycleManager = Depends(get_token_manager),
    settings: Settings = Depends(get_settings),
) -> RedirectResponse:
    """
    OAuth callback — Dropbox redirects here after consent.

    Exchanges the code, stores the credential and bounces back to the UI
    with ``?auth=success`` or ``?error=...``.
    """
    if not code:
        logger.error("No code provided in Dropbox callback")
        return RedirectResponse(_redirect_target(settings, error="no_code"), status_code=status.HTTP_302_FOUND)

    try:
        credential = await manager.exchange_code(code)
    except (AuthExchangeError, StorageError) as exc:
        logger.error("Dropbox callback failed: %s", exc)
        return RedirectResponse(
            _redirect_target(settings, error="auth_failed", details=exc.message),
            status_code=status.HTTP_302_FOUND,
        )

    response = RedirectResponse(_redirect_target(settings, auth="success"), status_code=status.HTTP_302_FOUND)
    _set_credential_cookies(response, credential, settings)
    return response


@router.get("/refresh")
async def refresh_token(
    manager: TokenLifecycleManager = Depends(get_token_manager),
    settings: Settings = Depends(get_settings),
) -> JSONResponse:
    """Force a refresh of the stored credential."""
    if not await manager.has_credentials():
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"success": False, "message": "No token available to refresh. Please authenticate first."},
        )

    credential = await manager.refresh_access_token()
    if credential is None:
        error = manager.last_refresh_error
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "success": False,
                "message": f"Failed to refresh token: {error.message}" if error else "Failed to refresh token",
            },
        )

    response = JSONResponse(content={"success": True, "message": "Token refreshed successfully"})
    _set_credential_cookies(response, credential, settings)
    return response


@router.get("/reset")
async def reset_connection(
    manager: TokenLifecycleManager = Depends(get_token_manager),
    settings: Settings = Depends(get_settings),
) -> JSONResponse:
    """Forget the stored credential (and its cookies)."""
    success, message = await manager.reset()
    response = JSONResponse(
        status_code=status.HTTP_200_OK if success else status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"success": success, "message": message},
    )
    if success:
        _clear_credential_cookies(response, settings)
    return response


@router.get("/status")
async def auth_status(prober: ConnectionProber = Depends(get_prober)) -> Dict[str, Any]:
    """Current connection health, for the UI's connect/reconnect affordance."""
    report = await prober.test_connection()
    return report.to_wire()


@router.get("/test")
async def connection_test(prober: ConnectionProber = Depends(get_prober)) -> Dict[str, Any]:
    """Raw API reachability plus the full connection check."""
    ping = await prober.ping_remote_api()
    report = await prober.test_connection()
    return {
        "dropboxAPI": ping.to_wire(),
        "connection": report.to_wire(),
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
