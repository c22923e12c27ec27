"""
DropboxConnector — OAuth2 authorization-code flow for Dropbox.

Requests offline access so Dropbox issues a refresh token alongside the
short-lived access token.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode

import httpx

from config.settings import Settings
from connectors.base import BaseConnector
from utils.errors import AuthExchangeError

logger = logging.getLogger(__name__)

# Dropbox OAuth2 endpoints
_DROPBOX_AUTH_URL = "https://www.dropbox.com/oauth2/authorize"
_DROPBOX_TOKEN_URL = "https://api.dropboxapi.com/oauth2/token"


class DropboxConnector(BaseConnector):
    """OAuth2 connector for Dropbox."""

    def __init__(
        self,
        settings: Settings,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._settings = settings
        self._transport = transport

    @property
    def provider_name(self) -> str:
        return "dropbox"

    @property
    def display_name(self) -> str:
        return "Dropbox"

    @property
    def scopes(self) -> List[str]:
        return list(self._settings.dropbox_scopes)

    def is_configured(self) -> bool:
        return self._settings.is_dropbox_configured()

    def get_auth_url(self, state: Optional[str] = None) -> str:
        params = {
            "client_id": self._settings.dropbox_client_id,
            "redirect_uri": self._settings.dropbox_redirect_uri,
            "response_type": "code",
            "token_access_type": "offline",   # gets refresh_token
        }
        if self.scopes:
            params["scope"] = " ".join(self.scopes)
        if state:
            params["state"] = state
        return f"{_DROPBOX_AUTH_URL}?{urlencode(params)}"

    async def handle_callback(self, code: str) -> Dict[str, Any]:
        """Exchange auth code for tokens."""
        logger.info("Exchanging Dropbox authorization code (redirect_uri=%s)", self._settings.dropbox_redirect_uri)
        return await self._token_request(
            {
                "code": code,
                "grant_type": "authorization_code",
                "redirect_uri": self._settings.dropbox_redirect_uri,
            },
            action="Token exchange",
        )

    async def refresh_access_token(self, refresh_token: str) -> Dict[str, Any]:
        """Use refresh token to get a new access token."""
        return await self._token_request(
            {
                "grant_type": "refresh_token",
                "refresh_token": refresh_token,
            },
            action="Token refresh",
        )

    async def _token_request(self, data: Dict[str, str], *, action: str) -> Dict[str, Any]:
        data = {
            **data,
            "client_id": self._settings.dropbox_client_id,
            "client_secret": self._settings.dropbox_client_secret,
        }
        try:
            async with httpx.AsyncClient(
                timeout=self._settings.request_timeout_seconds,
                transport=self._transport,
            ) as client:
                resp = await client.post(_DROPBOX_TOKEN_URL, data=data)
        except httpx.TimeoutException as exc:
            raise AuthExchangeError(f"{action} timed out: {exc}", error_code="timeout") from exc
        except httpx.HTTPError as exc:
            raise AuthExchangeError(f"{action} failed: {exc}", error_code="network_error") from exc

        payload = _json_or_empty(resp)
        if resp.status_code >= 400:
            error_code = payload.get("error") if isinstance(payload.get("error"), str) else None
            description = payload.get("error_description") or resp.text or resp.reason_phrase
            logger.warning("%s rejected by Dropbox: %s %s", action, resp.status_code, error_code)
            raise AuthExchangeError(
                f"{action} failed: {description}",
                status_code=resp.status_code,
                error_code=error_code or f"http_{resp.status_code}",
            )

        if not payload.get("access_token"):
            raise AuthExchangeError(
                f"{action} failed: response did not contain access_token",
                status_code=resp.status_code,
                error_code="malformed_response",
            )
        expires_in = payload.get("expires_in")
        if expires_in is not None:
            try:
                payload["expires_in"] = int(expires_in)
            except (TypeError, ValueError):
                raise AuthExchangeError(
                    f"{action} failed: invalid expires_in {expires_in!r}",
                    status_code=resp.status_code,
                    error_code="malformed_response",
                ) from None
        return payload


def _json_or_empty(resp: httpx.Response) -> Dict[str, Any]:
    try:
        body = resp.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}
