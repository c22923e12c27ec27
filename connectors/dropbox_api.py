"""
Thin async client for the Dropbox v2 HTTP API (RPC + content endpoints).

Every call carries an explicit timeout.  Failures surface as
``DropboxAPIError`` with the HTTP status and the Dropbox error tag so
callers (video adapter, prober) can classify them.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional

import httpx

logger = logging.getLogger(__name__)

_API_BASE = "https://api.dropboxapi.com/2"
_CONTENT_BASE = "https://content.dropboxapi.com/2"

# Auth error tags Dropbox returns with HTTP 401
EXPIRED_TOKEN_TAGS = frozenset({"expired_access_token", "invalid_access_token"})


class DropboxAPIError(Exception):
    """A Dropbox call failed; ``status_code`` is None for transport failures."""

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        error_tag: Optional[str] = None,
        user_message: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.error_tag = error_tag
        self.user_message = user_message

    @property
    def is_transport_failure(self) -> bool:
        return self.status_code is None

    @property
    def is_auth_error(self) -> bool:
        return self.status_code in (401, 403)

    @property
    def is_expired_token(self) -> bool:
        """401 whose tag says the access token itself is stale."""
        if self.status_code != 401:
            return False
        head = (self.error_tag or "").split("/", 1)[0]
        return head in EXPIRED_TOKEN_TAGS

    @property
    def is_rate_limited(self) -> bool:
        return self.status_code == 429

    @property
    def root_tag(self) -> Optional[str]:
        return self.error_tag.split("/", 1)[0] if self.error_tag else None


class DropboxAPIClient:
    """Per-token client; cheap to construct, one ``httpx.AsyncClient`` per call."""

    def __init__(
        self,
        access_token: str,
        *,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        if not access_token:
            raise ValueError("Dropbox access token is required")
        self._access_token = access_token
        self._timeout = timeout
        self._transport = transport

    # ── Low-level ───────────────────────────────────────────────────────

    async def rpc(self, route: str, payload: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """POST an RPC-style endpoint (JSON in, JSON out)."""
        resp = await self._post(
            f"{_API_BASE}/{route}",
            headers={"Content-Type": "application/json"},
            content=json.dumps(payload) if payload is not None else "null",
        )
        return resp.json()

    async def content(self, route: str, arg: Dict[str, Any]) -> bytes:
        """POST a content-download endpoint (argument in header, bytes out)."""
        resp = await self._post(
            f"{_CONTENT_BASE}/{route}",
            headers={"Dropbox-API-Arg": json.dumps(arg)},
        )
        return resp.content

    async def _post(self, url: str, **kwargs: Any) -> httpx.Response:
        headers = {"Authorization": f"Bearer {self._access_token}", **kwargs.pop("headers", {})}
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                resp = await client.post(url, headers=headers, **kwargs)
        except httpx.TimeoutException as exc:
            raise DropboxAPIError(f"Dropbox request timed out: {exc}", error_tag="timeout") from exc
        except httpx.HTTPError as exc:
            raise DropboxAPIError(f"Dropbox request failed: {exc}", error_tag="network_error") from exc

        if resp.status_code >= 400:
            raise _error_from_response(resp)
        return resp

    # ── Endpoints ───────────────────────────────────────────────────────

    async def get_current_account(self) -> Dict[str, Any]:
        return await self.rpc("users/get_current_account")

    async def get_metadata(self, path: str) -> Dict[str, Any]:
        return await self.rpc("files/get_metadata", {"path": path})

    async def list_folder(self, path: str, *, include_media_info: bool = False) -> List[Dict[str, Any]]:
        """All entries of a folder, following ``has_more`` cursors."""
        page = await self.rpc(
            "files/list_folder",
            {
                "path": path,
                "include_media_info": include_media_info,
                "include_non_downloadable_files": False,
            },
        )
        entries = list(page.get("entries", []))
        while page.get("has_more"):
            page = await self.rpc("files/list_folder/continue", {"cursor": page["cursor"]})
            entries.extend(page.get("entries", []))
        return entries

    async def search(self, query: str, path: str = "", *, max_results: int = 100) -> List[Dict[str, Any]]:
        result = await self.rpc(
            "files/search_v2",
            {
                "query": query,
                "options": {
                    "path": path,
                    "max_results": max_results,
                    "file_status": "active",
                    "filename_only": True,
                },
            },
        )
        return [m["metadata"]["metadata"] for m in result.get("matches", []) if "metadata" in m]

    async def get_temporary_link(self, path: str) -> str:
        result = await self.rpc("files/get_temporary_link", {"path": path})
        return result["link"]

    async def get_thumbnail(self, path: str, *, size: str = "w256h256") -> bytes:
        return await self.content(
            "files/get_thumbnail",
            {"path": path, "format": "jpeg", "size": size, "mode": "fitone_bestfit"},
        )


def _error_from_response(resp: httpx.Response) -> DropboxAPIError:
    """Parse Dropbox's ``error_summary`` / ``user_message`` out of a failure."""
    error_tag: Optional[str] = None
    user_message: Optional[str] = None
    try:
        body = resp.json()
    except ValueError:
        body = None

    if isinstance(body, dict):
        summary = body.get("error_summary") or ""
        parts = [p for p in summary.split("/") if p and not p.startswith(".")]
        if parts:
            error_tag = "/".join(parts)
        elif isinstance(body.get("error"), dict):
            error_tag = body["error"].get(".tag")
        if isinstance(body.get("user_message"), dict):
            user_message = body["user_message"].get("text")
        message = user_message or summary or resp.text
    else:
        message = resp.text or resp.reason_phrase
        # plain-text 400/401 bodies, e.g. "Error in call to API function ..."
        if resp.status_code == 401 and "expired" in message.lower():
            error_tag = "expired_access_token"

    logger.debug("Dropbox error %s %s: %s", resp.status_code, error_tag, message)
    return DropboxAPIError(
        f"Dropbox error {resp.status_code}: {message}",
        status_code=resp.status_code,
        error_tag=error_tag,
        user_message=user_message,
    )
