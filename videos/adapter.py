"""
Video listing adapter — Dropbox folder entries → ``VideoRecord``.

Only cheap data is produced eagerly (name, path, size, duration label,
a local thumbnail URL).  Stream links and thumbnail bytes are resolved on
demand, one video at a time.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any, Dict, List, Optional

import httpx

from config.settings import Settings
from connectors.dropbox_api import DropboxAPIClient, DropboxAPIError
from connectors.token_manager import TokenLifecycleManager
from utils.dropbox_paths import is_video_name, parent_path, streaming_link, to_api_path
from utils.durations import duration_from_media_info
from utils.errors import ListingError
from utils.schemas import FolderEntry, VideoRecord

logger = logging.getLogger(__name__)

MIN_SEARCH_QUERY = 2


class VideoListingAdapter:
    def __init__(
        self,
        manager: TokenLifecycleManager,
        settings: Settings,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._manager = manager
        self._settings = settings
        self._transport = transport

    # ── Listing ─────────────────────────────────────────────────────────

    async def list_videos(
        self,
        folder_path: Optional[str] = None,
        *,
        access_token: Optional[str] = None,
    ) -> List[VideoRecord]:
        """Video files (.mp4/.mov/.m4v) directly inside ``folder_path``."""
        raw = self._settings.dropbox_folder_path if folder_path is None else folder_path
        path = to_api_path(raw)
        client = await self._client(access_token)

        try:
            entries = await client.list_folder(path, include_media_info=True)
        except DropboxAPIError as exc:
            raise _listing_error(exc, path) from exc

        videos = self.to_video_records(entries)
        logger.info("Listed %d videos (of %d entries) in '%s'", len(videos), len(entries), path or "/")
        return videos

    def to_video_records(self, entries: List[Dict[str, Any]]) -> List[VideoRecord]:
        """Keep video files and translate them; pure."""
        videos: List[VideoRecord] = []
        for entry in entries:
            if entry.get(".tag") != "file" or not is_video_name(entry.get("name", "")):
                continue
            remote_path = entry.get("path_display") or entry.get("path_lower") or ""
            media_info = entry.get("media_info")
            videos.append(
                VideoRecord(
                    id=entry.get("id") or uuid.uuid4().hex,
                    name=entry["name"],
                    path=remote_path,
                    size=entry.get("size"),
                    thumbnail_url=self._settings.thumbnail_endpoint(remote_path),
                    duration=duration_from_media_info(media_info),
                    media_info=media_info,
                )
            )
        return videos

    async def list_folder_contents(
        self,
        folder_path: Optional[str] = None,
        *,
        access_token: Optional[str] = None,
    ) -> List[FolderEntry]:
        """Folders first, then files; alphabetical inside each group."""
        path = to_api_path(folder_path)
        client = await self._client(access_token)
        try:
            entries = await client.list_folder(path)
        except DropboxAPIError as exc:
            raise _listing_error(exc, path) from exc

        contents = [_folder_entry(e) for e in entries if e.get(".tag") in ("file", "folder")]
        contents.sort(key=lambda c: (c.type != "folder", c.name.lower()))
        return contents

    async def list_root_folders(self, *, access_token: Optional[str] = None) -> List[str]:
        """Root-level folder paths, offered when a configured folder is missing."""
        client = await self._client(access_token)
        try:
            entries = await client.list_folder("")
        except DropboxAPIError as exc:
            raise _listing_error(exc, "") from exc
        return [e.get("path_display") or e["name"] for e in entries if e.get(".tag") == "folder"]

    async def search(
        self,
        query: str,
        search_path: Optional[str] = None,
        *,
        access_token: Optional[str] = None,
    ) -> List[FolderEntry]:
        query = (query or "").strip()
        if len(query) < MIN_SEARCH_QUERY:
            raise ValueError(f"Search query must be at least {MIN_SEARCH_QUERY} characters long")

        path = to_api_path(search_path)
        client = await self._client(access_token)
        try:
            matches = await client.search(query, path)
        except DropboxAPIError as exc:
            raise _listing_error(exc, path) from exc
        return [_folder_entry(m, with_parent=True) for m in matches]

    # ── Lazy per-video resolution ───────────────────────────────────────

    async def get_stream_url(self, path: str, *, access_token: Optional[str] = None) -> str:
        client = await self._client(access_token)
        try:
            link = await client.get_temporary_link(path)
        except DropboxAPIError as exc:
            raise _listing_error(exc, path) from exc
        return streaming_link(link)

    async def resolve(self, video: VideoRecord, *, access_token: Optional[str] = None) -> VideoRecord:
        """Fill ``stream_url`` if it is still missing."""
        if not video.stream_url:
            video.stream_url = await self.get_stream_url(video.path, access_token=access_token)
        return video

    async def get_thumbnail(self, path: str, *, access_token: Optional[str] = None) -> Optional[bytes]:
        """JPEG bytes, or None when Dropbox has no preview for the file."""
        client = await self._client(access_token)
        try:
            data = await client.get_thumbnail(path)
        except DropboxAPIError as exc:
            if exc.status_code in (400, 404, 409):
                logger.info("No thumbnail for %s (%s)", path, exc.error_tag)
                return None
            raise _listing_error(exc, path) from exc
        return data or None

    # ── internals ───────────────────────────────────────────────────────

    async def _client(self, access_token: Optional[str]) -> DropboxAPIClient:
        token = access_token or await self._manager.get_valid_access_token()
        if not token:
            raise ListingError(
                "Dropbox access token not configured or expired. Please authenticate with Dropbox first.",
                status_code=401,
                error_code="not_authenticated",
            )
        return DropboxAPIClient(
            token,
            timeout=self._settings.request_timeout_seconds,
            transport=self._transport,
        )


def _folder_entry(entry: Dict[str, Any], *, with_parent: bool = False) -> FolderEntry:
    kind = entry.get(".tag", "file")
    path = entry.get("path_display") or entry.get("path_lower") or ""
    return FolderEntry(
        name=entry.get("name", ""),
        path=path,
        type=kind,
        is_video=kind == "file" and is_video_name(entry.get("name", "")),
        size=entry.get("size"),
        parent_path=parent_path(path) if with_parent else None,
    )


def _listing_error(exc: DropboxAPIError, path: str) -> ListingError:
    shown = path or "/"
    if exc.status_code == 409 and (exc.error_tag or "").startswith("path/not_found"):
        message = f'Folder "{shown}" was not found in your Dropbox account.'
    elif exc.status_code == 409:
        message = f"Cannot access {shown}: {exc.user_message or exc.error_tag or 'unknown issue'}."
    elif exc.status_code == 401:
        message = "Dropbox token expired or invalid."
    else:
        message = f"Dropbox error: {exc.user_message or exc.message}"
    return ListingError(message, status_code=exc.status_code, error_code=exc.error_tag or "dropbox_error")
