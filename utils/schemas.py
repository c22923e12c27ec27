"""
Pydantic schemas for DropReel — credentials, connection health, videos, reels.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    """Base for models exchanged with the browser (camelCase on the wire)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


# ═══════════════════════════════════════════════════════════════════════════════
# Credentials
# ═══════════════════════════════════════════════════════════════════════════════


class Credential(BaseModel):
    """The single Dropbox OAuth credential held by this deployment."""

    access_token: str
    refresh_token: Optional[str] = None
    expires_at: Optional[datetime] = None
    last_refresh: Optional[datetime] = None

    @classmethod
    def from_token_response(
        cls,
        payload: Dict[str, Any],
        *,
        previous_refresh_token: Optional[str] = None,
        refreshed: bool = False,
    ) -> "Credential":
        """Build a credential from a Dropbox ``/oauth2/token`` JSON body."""
        now = datetime.now(timezone.utc)
        expires_in = payload.get("expires_in")
        return cls(
            access_token=payload["access_token"],
            refresh_token=payload.get("refresh_token") or previous_refresh_token,
            expires_at=now + timedelta(seconds=int(expires_in)) if expires_in else None,
            last_refresh=now if refreshed else None,
        )

    def is_expired(self, skew_seconds: int = 0, *, now: Optional[datetime] = None) -> bool:
        """Expiry unknown counts as valid."""
        if self.expires_at is None:
            return False
        now = now or datetime.now(timezone.utc)
        expires_at = self.expires_at
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        return now >= expires_at - timedelta(seconds=skew_seconds)


# ═══════════════════════════════════════════════════════════════════════════════
# Connection health
# ═══════════════════════════════════════════════════════════════════════════════


class ConnectionState(str, Enum):
    CONNECTED = "connected"
    EXPIRED = "expired"
    REVOKED = "revoked"
    UNREACHABLE = "unreachable"
    NOT_CONFIGURED = "not_configured"


class ConnectionStatus(WireModel):
    status: ConnectionState
    error_code: Optional[str] = None
    retryable: Optional[bool] = None
    suggested_action: Optional[str] = None
    details: Dict[str, Any] = Field(default_factory=dict)

    @property
    def is_authenticated(self) -> bool:
        return self.status is ConnectionState.CONNECTED

    def to_wire(self) -> Dict[str, Any]:
        body = super().to_wire()
        body["isAuthenticated"] = self.is_authenticated
        return body


class PingResult(WireModel):
    reachable: bool
    latency_ms: Optional[int] = None
    status_code: Optional[int] = None


# ═══════════════════════════════════════════════════════════════════════════════
# Videos
# ═══════════════════════════════════════════════════════════════════════════════


class VideoRecord(WireModel):
    id: str
    name: str
    path: str
    size: Optional[int] = None
    stream_url: Optional[str] = None
    thumbnail_url: Optional[str] = None
    duration: Optional[str] = None
    media_info: Optional[Dict[str, Any]] = None


class FolderEntry(WireModel):
    name: str
    path: str
    type: str  # "file" | "folder"
    is_video: bool = False
    size: Optional[int] = None
    parent_path: Optional[str] = None


# ═══════════════════════════════════════════════════════════════════════════════
# Reels
# ═══════════════════════════════════════════════════════════════════════════════


class DirectorInfo(WireModel):
    name: Optional[str] = None
    bio: Optional[str] = None
    image: Optional[str] = None


class TitlePosition(WireModel):
    x: float = 0
    y: float = 0


class TitleElement(WireModel):
    id: str
    text: str
    size: str = "medium"  # "small" | "medium" | "large" | "extra-large" | "huge"
    position: TitlePosition = Field(default_factory=TitlePosition)
    color: str = "#ffffff"
    background_color: str = "transparent"


class ReelEditState(WireModel):
    """What the editor needs to reopen a reel exactly as it was left."""

    current_your_videos: List[VideoRecord] = Field(default_factory=list)
    current_selects: List[VideoRecord] = Field(default_factory=list)
    folder_path: str = ""
    titles: Optional[List[TitleElement]] = None


class ReelRecord(WireModel):
    id: str
    videos: List[VideoRecord]
    title: Optional[str] = None
    description: Optional[str] = None
    director_info: Optional[DirectorInfo] = None
    edit_state: Optional[ReelEditState] = None
    created_at: str
    updated_at: str


class ReelCreateRequest(WireModel):
    videos: Optional[List[VideoRecord]] = None
    title: Optional[str] = None
    description: Optional[str] = None
    director_info: Optional[DirectorInfo] = None
    edit_state: Optional[ReelEditState] = None
