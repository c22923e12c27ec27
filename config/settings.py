"""
Application settings loaded from environment variables.
"""

from typing import List, Optional
from urllib.parse import quote

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # ── Dropbox OAuth2 ──────────────────────────────────────────────────
    dropbox_client_id: str = ""         # Dropbox app key
    dropbox_client_secret: str = ""     # Dropbox app secret
    dropbox_redirect_uri: str = "http://localhost:8000/api/auth/callback"
    dropbox_folder_path: str = ""       # default folder listed for reels ("" = root)
    dropbox_scopes: List[str] = []      # empty = scopes configured on the app console

    # ── Credential storage ──────────────────────────────────────────────
    token_store_backend: str = "file"   # "file" | "database" | "memory"
    token_store_path: str = ".credentials/dropbox_token.json"
    token_encryption_key: str = ""      # Fernet key for encrypting OAuth tokens at rest
    database_url: str = "sqlite+aiosqlite:///./.credentials/dropreel.db"
    token_refresh_skew_seconds: int = 300

    # ── Reels ───────────────────────────────────────────────────────────
    reels_store_path: str = "data/reels.json"

    # ── Remote calls ────────────────────────────────────────────────────
    request_timeout_seconds: float = 10.0
    ping_timeout_seconds: float = 5.0

    # ── Cookies / redirects ─────────────────────────────────────────────
    cookie_secure: bool = True
    cookie_max_age_seconds: int = 30 * 24 * 60 * 60
    post_auth_redirect: str = "/"

    # ── Server ──────────────────────────────────────────────────────────
    api_prefix: str = "/api"
    port: int = 8000
    host: str = "0.0.0.0"
    debug: bool = False
    cors_origins: list = ["*"]

    model_config = {
        "env_file": ".env",
        "case_sensitive": False,
    }

    def is_dropbox_configured(self) -> bool:
        """True when the app key and secret are both present."""
        return bool(self.dropbox_client_id and self.dropbox_client_secret)

    def thumbnail_endpoint(self, path: Optional[str] = None) -> str:
        """Local URL that proxies Dropbox thumbnails."""
        base = f"{self.api_prefix}/videos/thumbnail"
        if path is None:
            return base
        return f"{base}?path={quote(path, safe='')}"


config = Settings()
