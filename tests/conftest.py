"""
Shared fixtures — isolated settings and a scripted fake of the Dropbox HTTP API.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import httpx
import pytest

from config.settings import Settings
from connectors.dropbox import DropboxConnector
from connectors.token_manager import TokenLifecycleManager
from connectors.token_store import MemoryTokenStore
from utils.schemas import Credential

TOKEN_PATH = "/oauth2/token"
ACCOUNT_PATH = "/2/users/get_current_account"
LIST_FOLDER_PATH = "/2/files/list_folder"
LIST_CONTINUE_PATH = "/2/files/list_folder/continue"
SEARCH_PATH = "/2/files/search_v2"
TEMP_LINK_PATH = "/2/files/get_temporary_link"
THUMBNAIL_PATH = "/2/files/get_thumbnail"
PING_PATH = "/2"


class FakeDropbox:
    """
    Answers requests by URL path from per-path queues.

    Each queued answer is used once, except the last one for a path, which
    keeps being returned.  An answer that is an exception is raised instead.
    """

    def __init__(self) -> None:
        self._answers: Dict[str, List[Any]] = {}
        self.requests: List[httpx.Request] = []

    def queue(
        self,
        path: str,
        status_code: int = 200,
        json: Any = None,
        *,
        content: Optional[bytes] = None,
    ) -> "FakeDropbox":
        self._answers.setdefault(path, []).append((status_code, json, content))
        return self

    def fail(self, path: str, exc: Exception) -> "FakeDropbox":
        self._answers.setdefault(path, []).append(exc)
        return self

    def calls(self, path: str) -> List[httpx.Request]:
        return [r for r in self.requests if r.url.path == path]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        answers = self._answers.get(request.url.path)
        if not answers:
            return httpx.Response(404, json={"error_summary": "not_scripted/"})

        answer = answers.pop(0) if len(answers) > 1 else answers[0]
        if isinstance(answer, Exception):
            raise answer
        status_code, body, content = answer
        if content is not None:
            return httpx.Response(status_code, content=content)
        if body is None:
            return httpx.Response(status_code)
        return httpx.Response(status_code, json=body)


# ── helpers ────────────────────────────────────────────────────────────────────


def make_credential(
    access_token: str = "live-token",
    refresh_token: Optional[str] = "refresh-1",
    expires_in: Optional[int] = 3600,
) -> Credential:
    """Credential expiring ``expires_in`` seconds from now (negative = already expired)."""
    expires_at = None
    if expires_in is not None:
        expires_at = datetime.now(timezone.utc) + timedelta(seconds=expires_in)
    return Credential(access_token=access_token, refresh_token=refresh_token, expires_at=expires_at)


def token_payload(access_token: str = "new-token", refresh_token: Optional[str] = None) -> Dict[str, Any]:
    body: Dict[str, Any] = {"access_token": access_token, "token_type": "bearer", "expires_in": 14400}
    if refresh_token:
        body["refresh_token"] = refresh_token
    return body


def expired_token_error() -> Dict[str, Any]:
    return {"error_summary": "expired_access_token/..", "error": {".tag": "expired_access_token"}}


# ── fixtures ───────────────────────────────────────────────────────────────────


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        dropbox_client_id="app-key",
        dropbox_client_secret="app-secret",
        dropbox_redirect_uri="http://localhost:8000/api/auth/callback",
        dropbox_folder_path="/Reels",
        token_store_backend="memory",
        token_store_path=str(tmp_path / "token.json"),
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'creds.db'}",
        reels_store_path=str(tmp_path / "reels.json"),
        cookie_secure=False,
    )


@pytest.fixture
def fake_dropbox() -> FakeDropbox:
    return FakeDropbox()


@pytest.fixture
def transport(fake_dropbox) -> httpx.MockTransport:
    return httpx.MockTransport(fake_dropbox.handler)


@pytest.fixture
def token_store() -> MemoryTokenStore:
    return MemoryTokenStore()


@pytest.fixture
def manager(settings, transport, token_store) -> TokenLifecycleManager:
    connector = DropboxConnector(settings, transport=transport)
    return TokenLifecycleManager(token_store, connector, refresh_skew_seconds=settings.token_refresh_skew_seconds)
